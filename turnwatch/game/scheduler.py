"""Alert scheduler -- turns game snapshots into delayed, exactly-once alerts.

Every subscription referenced by the store is tracked with two pieces of
state: the last observed "is it this player's turn" flag and, while waiting,
one ``PendingTimer``.

    idle --(flag false -> true)--> waiting --(timer elapses)--> fired -> idle
    waiting --(flag true -> false)--> idle            (timer cancelled)

After firing, the flag stays true until the turn ends, so a sustained turn
fires once; the next activation needs a fresh false -> true flip.

A game missing from the snapshot drops its tracked subscriptions (no alert
for their in-flight timers).  A game listed as *unavailable* keeps whatever
state it had.  Unregistering or re-registering drops tracking at once,
through the store's change listener, so a removed alert never fires.
Delivery runs in its own task per alert so a stuck send never holds up the
next snapshot.
"""
import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from turnwatch.alerts.alert import AlertKey, Subscription
from turnwatch.alerts.store import AlertStore
from turnwatch.errors import DeliveryError
from turnwatch.notify import NotificationSink, build_turn_message
from turnwatch.tmars.structs import Player, Snapshot

log = logging.getLogger(__name__)


class AlertState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"


@dataclass(frozen=True)
class FireEvent:
    room_id: str
    game_id: str
    user_id: str
    player_name: str
    player_url: str
    activated_at: float


@dataclass(eq=False)
class PendingTimer:
    key: AlertKey
    player_name: str
    player_url: str
    detected_at: float
    fire_at: float
    handle: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()


@dataclass
class _Tracked:
    subscription: Subscription
    is_turn: bool = False
    timer: PendingTimer | None = None

    @property
    def state(self) -> AlertState:
        return AlertState.WAITING if self.timer is not None else AlertState.IDLE


class AlertScheduler:
    def __init__(
        self,
        store: AlertStore,
        sink: NotificationSink,
        send_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._sink = sink
        self._send_timeout = send_timeout
        self._clock = clock
        self._tracked: dict[AlertKey, _Tracked] = {}
        self._deliveries: set[asyncio.Task] = set()
        store.add_listener(self.forget)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def state(self, room_id: str, game_id: str) -> AlertState:
        tracked = self._tracked.get((room_id, game_id))
        return tracked.state if tracked else AlertState.IDLE

    def pending(self) -> list[PendingTimer]:
        return [t.timer for t in self._tracked.values() if t.timer is not None]

    def is_tracked(self, room_id: str, game_id: str) -> bool:
        return (room_id, game_id) in self._tracked

    # ------------------------------------------------------------------
    # Snapshot processing
    # ------------------------------------------------------------------

    def process_snapshot(self, snapshot: Snapshot) -> list[FireEvent]:
        """Reconcile one snapshot against the store. Must run inside the event loop.

        Returns the alerts that were already due and fired during this call.
        """
        now = self._clock()
        subscriptions = {s.key: s for s in self._store.list_all()}

        for key in [k for k in self._tracked if k not in subscriptions]:
            self._drop(key, "alert removed")

        for key, sub in subscriptions.items():
            if sub.game_id in snapshot.unavailable:
                continue

            game = snapshot.games.get(sub.game_id)
            if game is None:
                if key in self._tracked:
                    self._drop(key, f"game {sub.game_id} no longer listed")
                continue

            tracked = self._tracked.get(key)
            if tracked is not None and tracked.subscription != sub:
                self._drop(key, "alert re-registered")
                tracked = None
            if tracked is None:
                tracked = self._tracked[key] = _Tracked(sub)
                newly_tracked = True
            else:
                newly_tracked = False

            player = game.find_player(sub.player_name)
            if player is None:
                log_missing = log.warning if newly_tracked else log.debug
                log_missing(
                    "Player %s not found in game %s, alert for room %s stays idle",
                    sub.player_name, sub.game_id, sub.room_id,
                )
            self._transition(tracked, player, now)

        return self.fire_due()

    def _transition(self, tracked: _Tracked, player: Player | None, now: float) -> None:
        is_turn = player is not None and player.is_turn
        if is_turn and not tracked.is_turn:
            tracked.is_turn = True
            self._arm(tracked, player, now)
        elif not is_turn and tracked.is_turn:
            tracked.is_turn = False
            if tracked.timer is not None:
                tracked.timer.cancel()
                tracked.timer = None
                sub = tracked.subscription
                log.info(
                    "Turn of %s in game %s ended before the %d minute delay, alert for room %s cancelled",
                    sub.player_name, sub.game_id, sub.delay_minutes, sub.room_id,
                )

    def _arm(self, tracked: _Tracked, player: Player, now: float) -> None:
        sub = tracked.subscription
        timer = PendingTimer(
            key=sub.key,
            player_name=player.name,
            player_url=player.url,
            detected_at=now,
            fire_at=now + sub.delay.total_seconds(),
        )
        loop = asyncio.get_running_loop()
        timer.handle = loop.call_later(
            max(0.0, timer.fire_at - self._clock()), self._fire, sub.key, timer
        )
        tracked.timer = timer
        log.debug(
            "Waiting %d minutes before notifying user %s for game %s",
            sub.delay_minutes, sub.user_id, sub.game_id,
        )

    def _drop(self, key: AlertKey, reason: str) -> None:
        tracked = self._tracked.pop(key, None)
        if tracked is None:
            return
        if tracked.timer is not None:
            tracked.timer.cancel()
            log.info("Cancelled pending alert for room %s game %s: %s", key[0], key[1], reason)
        else:
            log.debug("Stopped tracking room %s game %s: %s", key[0], key[1], reason)

    def forget(self, key: AlertKey) -> None:
        """Stop tracking ``key`` if its subscription was removed or replaced."""
        tracked = self._tracked.get(key)
        if tracked is None:
            return
        current = self._store.get(*key)
        if current is None:
            self._drop(key, "alert removed")
        elif current != tracked.subscription:
            self._drop(key, "alert re-registered")

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    def fire_due(self) -> list[FireEvent]:
        """Fire every waiting timer whose fire time has passed."""
        now = self._clock()
        due = [
            (key, t.timer)
            for key, t in self._tracked.items()
            if t.timer is not None and t.timer.fire_at <= now
        ]
        events = []
        for key, timer in due:
            event = self._fire(key, timer)
            if event is not None:
                events.append(event)
        return events

    def _fire(self, key: AlertKey, timer: PendingTimer) -> FireEvent | None:
        tracked = self._tracked.get(key)
        # Cancelled or superseded while the callback was queued.
        if tracked is None or tracked.timer is not timer:
            return None
        if self._store.get(*key) != tracked.subscription:
            self._drop(key, "alert changed before firing")
            return None
        tracked.timer = None
        timer.cancel()

        sub = tracked.subscription
        event = FireEvent(
            room_id=sub.room_id,
            game_id=sub.game_id,
            user_id=sub.user_id,
            player_name=timer.player_name,
            player_url=timer.player_url,
            activated_at=timer.detected_at,
        )
        log.info(
            "Notifying user %s in room %s for game %s",
            sub.user_id, sub.room_id, sub.game_id,
        )
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return event

    async def _deliver(self, event: FireEvent) -> None:
        try:
            await asyncio.wait_for(
                self._sink.send(event.room_id, build_turn_message(event)),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            log.warning(
                "Timed out notifying room %s for game %s", event.room_id, event.game_id
            )
        except DeliveryError as exc:
            log.warning(
                "Failed to notify room %s for game %s: %s",
                event.room_id, event.game_id, exc.message,
            )
        except Exception:
            log.exception("Unexpected error notifying room %s", event.room_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        self._store.remove_listener(self.forget)
        for key in list(self._tracked):
            self._drop(key, "scheduler closing")
        tasks = list(self._deliveries)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
