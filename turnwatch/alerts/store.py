"""Alert store -- the single owner of persisted subscriptions.

Every mutation commits to the database before the in-memory cache changes and
before the call returns, so a crash right after a successful register or
unregister can neither lose nor resurrect a subscription.  Writers are
serialized by one ``asyncio.Lock``; readers only ever see the cache.
"""
import asyncio
import logging
from collections.abc import Callable, Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from turnwatch.alerts.alert import AlertKey, Subscription
from turnwatch.config import MAX_DELAY_MINUTES
from turnwatch.errors import NotFoundError, PersistenceError, ValidationError
from turnwatch.models.alert import AlertRecord

log = logging.getLogger(__name__)


def _to_subscription(row: AlertRecord) -> Subscription:
    return Subscription(
        room_id=row.room_id,
        game_id=row.game_id,
        user_id=row.user_id,
        player_name=row.player_name,
        delay_minutes=row.delay_minutes,
    )


class AlertStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        min_delay_minutes: int = 1,
        max_delay_minutes: int = MAX_DELAY_MINUTES,
    ) -> None:
        self._session_factory = session_factory
        self.min_delay_minutes = min_delay_minutes
        self.max_delay_minutes = max_delay_minutes
        self._cache: dict[AlertKey, Subscription] = {}
        self._lock = asyncio.Lock()
        self._listeners: list[Callable[[AlertKey], None]] = []

    # ------------------------------------------------------------------
    # Change listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[[AlertKey], None]) -> None:
        """Call ``listener(key)`` after every committed change to a subscription."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[AlertKey], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, keys: Iterable[AlertKey]) -> None:
        for key in keys:
            for listener in list(self._listeners):
                listener(key)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """Fill the cache from the database. Returns the number of alerts."""
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(select(AlertRecord))).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load persisted alerts: {exc}") from exc

        async with self._lock:
            self._cache = {(r.room_id, r.game_id): _to_subscription(r) for r in rows}
        log.info("Loaded %d persisted alerts", len(self._cache))
        return len(self._cache)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def validate_delay(self, delay_minutes: int) -> None:
        if (
            isinstance(delay_minutes, bool)
            or not isinstance(delay_minutes, int)
            or not self.min_delay_minutes <= delay_minutes <= self.max_delay_minutes
        ):
            raise ValidationError(
                f"Invalid delay. Delay must be between {self.min_delay_minutes} "
                f"and {self.max_delay_minutes} minutes.",
                code="INVALID_DELAY",
            )

    async def register(
        self,
        room_id: str,
        game_id: str,
        user_id: str,
        player_name: str,
        delay_minutes: int,
    ) -> Subscription:
        """Create or overwrite the subscription for (room_id, game_id)."""
        self.validate_delay(delay_minutes)
        subscription = Subscription(
            room_id=room_id,
            game_id=game_id,
            user_id=user_id,
            player_name=player_name,
            delay_minutes=delay_minutes,
        )

        async with self._lock:
            try:
                async with self._session_factory() as db:
                    await db.merge(
                        AlertRecord(
                            room_id=room_id,
                            game_id=game_id,
                            user_id=user_id,
                            player_name=player_name,
                            delay_minutes=delay_minutes,
                        )
                    )
                    await db.commit()
            except SQLAlchemyError as exc:
                log.exception("Failed to persist alert for room %s game %s", room_id, game_id)
                raise PersistenceError(f"Failed to persist alert: {exc}") from exc
            replaced = self._cache.get(subscription.key)
            self._cache[subscription.key] = subscription

        self._notify([subscription.key])
        log.info(
            "%s alert for player %s in game %s for user %s in room %s with delay %d minutes",
            "Replaced" if replaced else "Registered",
            player_name, game_id, user_id, room_id, delay_minutes,
        )
        return subscription

    async def unregister(self, room_id: str, game_id: str) -> Subscription:
        key = (room_id, game_id)
        async with self._lock:
            if key not in self._cache:
                raise NotFoundError(
                    f"No alert registered for game '{game_id}' in this room.",
                    code="ALERT_NOT_FOUND",
                )
            try:
                async with self._session_factory() as db:
                    await db.execute(
                        delete(AlertRecord).where(
                            AlertRecord.room_id == room_id,
                            AlertRecord.game_id == game_id,
                        )
                    )
                    await db.commit()
            except SQLAlchemyError as exc:
                log.exception("Failed to delete alert for room %s game %s", room_id, game_id)
                raise PersistenceError(f"Failed to delete alert: {exc}") from exc
            removed = self._cache.pop(key)

        self._notify([key])
        log.info("Unregistered alert in room %s for game %s", room_id, game_id)
        return removed

    async def prune_games(self, active_game_ids: Iterable[str]) -> list[Subscription]:
        """Drop every subscription whose game is not in ``active_game_ids``."""
        active = set(active_game_ids)
        async with self._lock:
            stale = [s for s in self._cache.values() if s.game_id not in active]
            if not stale:
                return []
            stale_games = {s.game_id for s in stale}
            try:
                async with self._session_factory() as db:
                    await db.execute(
                        delete(AlertRecord).where(AlertRecord.game_id.in_(stale_games))
                    )
                    await db.commit()
            except SQLAlchemyError as exc:
                log.exception("Failed to prune alerts for games %s", sorted(stale_games))
                raise PersistenceError(f"Failed to prune alerts: {exc}") from exc
            for sub in stale:
                del self._cache[sub.key]

        self._notify(s.key for s in stale)
        for game_id in sorted(stale_games):
            log.info("Removing alerts for non-existing game %s", game_id)
        return stale

    # ------------------------------------------------------------------
    # Reads (cache only)
    # ------------------------------------------------------------------

    def get(self, room_id: str, game_id: str) -> Subscription | None:
        return self._cache.get((room_id, game_id))

    def list_by_room(self, room_id: str) -> list[Subscription]:
        return sorted(
            (s for s in self._cache.values() if s.room_id == room_id),
            key=lambda s: s.game_id,
        )

    def list_all(self) -> list[Subscription]:
        return [self._cache[k] for k in sorted(self._cache)]

    def __len__(self) -> int:
        return len(self._cache)
