"""Background scheduler: resume sweeps and schedule ticks.

Delay resumption lives outside the engine's call path. The scheduler
periodically asks the engine to resume due executions and, when given a
dispatcher, emits one schedule event per wall-clock minute so
``schedule`` triggers can match their cron expressions.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import structlog

from pulse.core.dispatcher import TriggerDispatcher
from pulse.core.engine import ExecutionEngine
from pulse.core.events import InboundEvent
from pulse.core.models import utcnow

logger = structlog.get_logger(__name__)

# Longest gap of missed minutes replayed after a stall
MAX_CATCH_UP_MINUTES = 60


def _minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


class Scheduler:
    """Drive resume sweeps and schedule ticks on an interval.

    Several schedulers may share one store; leases keep them from
    resuming the same execution twice.

    Example:
        >>> scheduler = Scheduler(engine, dispatcher)
        >>> task = asyncio.create_task(scheduler.run_forever())
        >>> ...
        >>> scheduler.stop()
        >>> await task
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        dispatcher: Optional[TriggerDispatcher] = None,
        interval: Optional[float] = None,
    ):
        """Initialize scheduler.

        Args:
            engine: Engine whose waiting executions are resumed
            dispatcher: Dispatcher receiving schedule ticks (ticks are
                disabled when omitted)
            interval: Seconds between iterations (engine config by default)
        """
        self.engine = engine
        self.dispatcher = dispatcher
        self.interval = interval if interval is not None else engine.config.resume_interval
        self._last_minute: Optional[datetime] = None
        self._stopping = asyncio.Event()

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """One iteration: emit pending schedule ticks, then resume due executions.

        Returns:
            Number of executions resumed
        """
        now = now or utcnow()
        if self.dispatcher is not None:
            await self.emit_ticks(now)
        return await self.engine.resume_due(now)

    async def emit_ticks(self, now: datetime) -> int:
        """Dispatch a schedule event for every minute not yet ticked, up to ``now``."""
        current = _minute(now)
        if self._last_minute is None:
            minutes = [current]
        else:
            first = max(self._last_minute + timedelta(minutes=1),
                        current - timedelta(minutes=MAX_CATCH_UP_MINUTES - 1))
            minutes = []
            while first <= current:
                minutes.append(first)
                first += timedelta(minutes=1)

        for minute in minutes:
            await self.dispatcher.on_event(InboundEvent.schedule_tick(minute), now=now)
            self._last_minute = minute
        return len(minutes)

    async def run_forever(self) -> None:
        """Run iterations until ``stop()`` is called.

        Errors in one iteration are logged and the loop carries on; the
        next sweep retries whatever was left waiting.
        """
        logger.info("Scheduler started", interval=self.interval)
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.exception("Scheduler iteration failed", error=str(e))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stopping.set()
