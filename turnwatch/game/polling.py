"""Async polling loop -- fetches game state from the Terraforming Mars server.

The loop is started/stopped by the FastAPI lifespan handler and runs as a
background ``asyncio.Task``.  Every ``interval`` seconds it starts one tick:

1. Skip the tick if the previous one is still in flight (skipped, not queued).
2. Skip the tick if polling is suspended after a hard-stop answer.
3. Fetch a snapshot, bounded by ``fetch_timeout``.
4. Hand the snapshot to the consumer (the alert scheduler) and wait for it,
   so snapshots are processed strictly in arrival order.

Errors never escape a tick: transient ones are retried on the next tick,
hard-stop ones suspend polling for ``cooldown`` seconds.
"""
import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from turnwatch.errors import HardStopPollError, PollError, TransientPollError
from turnwatch.tmars.source import GameStateSource
from turnwatch.tmars.structs import Snapshot

log = logging.getLogger(__name__)

SnapshotConsumer = Callable[[Snapshot], Awaitable[None] | None]

# asyncio timers may wake up this much before the requested delay.
CLOCK_TOLERANCE = 0.001


class PollState(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"


class PollingLoop:
    """Drives ``GameStateSource.fetch_games`` on a fixed cadence."""

    def __init__(
        self,
        source: GameStateSource,
        on_snapshot: SnapshotConsumer | None = None,
        interval: float = 120.0,
        cooldown: float = 120.0,
        fetch_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.on_snapshot = on_snapshot
        self.interval = interval
        self.cooldown = cooldown
        self.fetch_timeout = fetch_timeout
        self._clock = clock

        self.state: PollState = PollState.RUNNING
        self.resume_at: float | None = None
        # Last successful snapshot, read by the command handlers.
        self.latest: Snapshot | None = None

        self._running: bool = False
        self._task: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None
        self._busy: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        log.info("Polling loop started (every %.0f s)", self.interval)

    async def stop(self) -> None:
        """Cancel the loop and any in-flight tick, and wait for both."""
        self._running = False
        for task in (self._task, self._in_flight):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._in_flight = None
        log.info("Polling loop stopped")

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        """Start a tick every ``interval`` seconds until stopped."""
        while self._running:
            if self._busy:
                log.warning("Previous poll still in flight, skipping this tick")
            else:
                self._in_flight = asyncio.create_task(self.tick(self._clock()))
            await asyncio.sleep(self.interval)

    async def poll_once(self) -> Snapshot:
        """Fetch one snapshot or raise a classified ``PollError``."""
        try:
            return await asyncio.wait_for(self.source.fetch_games(), timeout=self.fetch_timeout)
        except PollError:
            raise
        except asyncio.TimeoutError as exc:
            raise TransientPollError(
                f"Fetching games took longer than {self.fetch_timeout:.0f} s"
            ) from exc
        except Exception as exc:
            raise TransientPollError(f"Unexpected error while fetching games: {exc}") from exc

    async def tick(self, started: float | None = None) -> Snapshot | None:
        """Run one poll cycle. Returns the snapshot, or ``None`` if skipped or failed.

        ``started`` is when the tick was due; a cool-down is counted from it, so
        with ``cooldown == interval`` the very next tick resumes polling.
        """
        now = self._clock() if started is None else started
        if self._busy:
            log.debug("Poll already in flight, tick skipped")
            return None

        if self.state is PollState.SUSPENDED:
            if now + CLOCK_TOLERANCE < self.resume_at:
                log.debug("Polling suspended for %.0f more seconds", self.resume_at - now)
                return None
            self.state = PollState.RUNNING
            self.resume_at = None
            log.info("Cool-down over, polling resumed")

        self._busy = True
        try:
            try:
                snapshot = await self.poll_once()
            except HardStopPollError as exc:
                self._suspend(exc, now)
                return None
            except TransientPollError as exc:
                log.warning("Polling failed, retrying next tick: %s", exc.message)
                return None

            self.latest = snapshot
            if self.on_snapshot is not None:
                try:
                    result = self.on_snapshot(snapshot)
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception("Unhandled error while processing snapshot")
            return snapshot
        finally:
            self._busy = False

    def _suspend(self, exc: HardStopPollError, started: float) -> None:
        self.state = PollState.SUSPENDED
        self.resume_at = started + self.cooldown
        log.warning(
            "Game server unavailable (%s), suspending polling for %.0f s",
            exc.message, self.cooldown,
        )
