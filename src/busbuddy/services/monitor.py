"""Periodic re-evaluation of a bus's stop states.

Elapsed time moves even when no record changes, so a watching view re-derives
stop states on a tick (default once per second). Nothing is carried between
ticks except the latest result for readers.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from busbuddy.data.config import get_config
from busbuddy.models.responses import StopStatesResponse
from busbuddy.services.trip_service import get_stop_states

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


async def watch_stop_states(
    bus_id: str,
    tick_seconds: float | None = None,
    clock: Clock | None = None,
    db_path: Path | None = None,
) -> AsyncIterator[StopStatesResponse]:
    """Yield fresh stop states for a bus every tick.

    Stop by breaking out of the loop or cancelling the consuming task.
    Errors from a tick propagate to the consumer.
    """
    if tick_seconds is None:
        tick_seconds = get_config().tick_seconds
    clock = clock or _utc_now

    while True:
        yield await get_stop_states(bus_id, now=clock(), db_path=db_path)
        await asyncio.sleep(tick_seconds)


@dataclass(frozen=True)
class MonitorResult:
    """Latest tick of a StopStateMonitor."""

    states: StopStatesResponse | None
    evaluated_at: datetime
    error: str | None


class StopStateMonitor:
    """Background task that keeps a bus's stop states current.

    A failed tick is recorded in the latest result and retried on the next
    tick; the previous good states are kept alongside the error.

    Usage:
        monitor = StopStateMonitor("bus_1", on_update=render)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        bus_id: str,
        tick_seconds: float | None = None,
        on_update: Callable[[StopStatesResponse], Awaitable[None] | None] | None = None,
        clock: Clock | None = None,
        db_path: Path | None = None,
    ) -> None:
        self._bus_id = bus_id
        self._tick_seconds = tick_seconds if tick_seconds is not None else get_config().tick_seconds
        self._on_update = on_update
        self._clock = clock or _utc_now
        self._db_path = db_path
        self._latest: MonitorResult | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_latest(self) -> MonitorResult | None:
        """Return the most recent tick result, if any."""
        return self._latest

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"stop-state-monitor-{self._bus_id}"
        )

    async def stop(self) -> None:
        """Stop ticking and wait for the task to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def tick(self) -> MonitorResult:
        """Evaluate once and publish the result."""
        now = self._clock()
        previous = self._latest.states if self._latest else None
        try:
            states = await get_stop_states(self._bus_id, now=now, db_path=self._db_path)
        except Exception as e:
            logger.warning(f"Stop state refresh failed for {self._bus_id}: {e}")
            self._latest = MonitorResult(states=previous, evaluated_at=now, error=str(e))
            return self._latest

        self._latest = MonitorResult(states=states, evaluated_at=now, error=None)
        if self._on_update is not None:
            try:
                result = self._on_update(states)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Stop state update callback failed for {self._bus_id}: {e}")
                self._latest = MonitorResult(states=states, evaluated_at=now, error=str(e))
        return self._latest

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self._tick_seconds)
