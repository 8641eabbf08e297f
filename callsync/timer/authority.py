"""
Timer Authority

The server-side countdown clock no client can tamper with.

Once per tick interval (1 s by default) it sweeps every running session
and hands the check-and-transition to the lifecycle controller, which
does it under that session's lock. Remaining time is recomputed from the
stored start time on every tick, so a slow or missed tick never drifts the
countdown; the next tick simply converges on the correct value.
"""

import asyncio
import logging

from callsync.session.lifecycle import LifecycleController

logger = logging.getLogger(__name__)


class TimerAuthority:
    """
    Periodic sweep over running sessions.

    Sessions are checked concurrently; a failure in one session's check
    is logged and does not affect the others.
    """

    def __init__(
        self,
        lifecycle: LifecycleController,
        tick_interval_seconds: float = 1.0,
    ):
        """
        Initialize the timer.

        Args:
            lifecycle: Controller applying the countdown transitions
            tick_interval_seconds: Cadence of the sweep
        """
        self._lifecycle = lifecycle
        self._store = lifecycle.store
        self._interval = tick_interval_seconds

        # Background tick task
        self._tick_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    async def start(self) -> None:
        """Start background tick task."""
        if self._tick_task is None:
            self._tick_task = asyncio.create_task(
                self._tick_loop(),
                name="timer_authority"
            )
            logger.info(f"Timer authority started (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop background tick task."""
        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None
            logger.info("Timer authority stopped")

    async def _tick_loop(self) -> None:
        """Tick on a fixed cadence, compensating for sweep duration."""
        loop = asyncio.get_running_loop()
        while True:
            try:
                started = loop.time()
                await self.tick()
                elapsed = loop.time() - started
                await asyncio.sleep(max(0.0, self._interval - elapsed))
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in timer loop: {e}")
                await asyncio.sleep(self._interval)

    async def tick(self) -> dict[str, int | None]:
        """
        One sweep over every running session.

        Returns:
            session_id -> remaining seconds (None if the session
            stopped running before its check)
        """
        session_ids = self._store.running_ids()
        if not session_ids:
            return {}

        results = await asyncio.gather(
            *(self._lifecycle.check_timer(session_id) for session_id in session_ids),
            return_exceptions=True,
        )

        remaining: dict[str, int | None] = {}
        for session_id, result in zip(session_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Timer check failed for session {session_id}: {result}")
                remaining[session_id] = None
            else:
                remaining[session_id] = result
        return remaining
