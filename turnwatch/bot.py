"""Composition root: store + source + scheduler + polling loop + sink."""
import logging
import time
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from turnwatch.alerts.store import AlertStore
from turnwatch.commands.handlers import CommandContext, handle_message
from turnwatch.config import Settings
from turnwatch.errors import PersistenceError
from turnwatch.game.polling import PollingLoop
from turnwatch.game.scheduler import AlertScheduler
from turnwatch.notify import NotificationSink
from turnwatch.tmars.source import GameStateSource, TMarsSource
from turnwatch.tmars.structs import Snapshot
from turnwatch.ws.handler import RoomConnectionManager

log = logging.getLogger(__name__)


class Bot:
    def __init__(
        self,
        settings: Settings,
        store: AlertStore,
        source: GameStateSource,
        sink: NotificationSink,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.store = store
        self.source = source
        self.sink = sink
        self.scheduler = AlertScheduler(
            store, sink, send_timeout=settings.NOTIFY_SEND_TIMEOUT, clock=clock
        )
        self.polling = PollingLoop(
            source,
            on_snapshot=self.on_snapshot,
            interval=settings.POLLING_INTERVAL,
            cooldown=settings.POLLING_HARD_STOP_COOLDOWN,
            fetch_timeout=settings.POLLING_FETCH_TIMEOUT,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> "Bot":
        if session_factory is None:
            from turnwatch.database import async_session as session_factory
        store = AlertStore(
            session_factory,
            min_delay_minutes=settings.ALERTS_MIN_DELAY_MINUTES,
            max_delay_minutes=settings.ALERTS_MAX_DELAY_MINUTES,
        )
        source = TMarsSource(
            settings.TMARS_URL,
            settings.TMARS_SERVER_ID,
            timeout=settings.POLLING_FETCH_TIMEOUT,
        )
        return cls(settings, store, source, RoomConnectionManager())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.store.load()
        await self.polling.start()
        log.info("Bot started against %s", self.settings.TMARS_URL)

    async def stop(self) -> None:
        await self.polling.stop()
        await self.scheduler.close()
        aclose = getattr(self.source, "aclose", None)
        if aclose is not None:
            await aclose()
        log.info("Bot stopped")

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    async def on_snapshot(self, snapshot: Snapshot) -> None:
        self.scheduler.process_snapshot(snapshot)
        # A partial snapshot cannot tell a finished game from a failed request.
        if self.settings.ALERTS_PRUNE_FINISHED_GAMES and snapshot.complete:
            try:
                await self.store.prune_games(snapshot.games)
            except PersistenceError:
                log.error("Pruning alerts of finished games failed, will retry next poll")

    async def handle_message(self, room_id: str, user_id: str, text: str) -> str | None:
        return await handle_message(text, self.command_context(room_id, user_id))

    def command_context(self, room_id: str, user_id: str) -> CommandContext:
        return CommandContext(
            room_id=room_id,
            user_id=user_id,
            store=self.store,
            snapshot=self.polling.latest,
            prefix=self.settings.COMMAND_PREFIX,
        )
