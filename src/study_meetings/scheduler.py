"""Start/stop handle for the periodic meeting-reminder sweep.

The sweep itself (finding meetings whose next occurrence is close and
notifying members) belongs to the host application; this module only owns
running it on an interval.

```
STOPPED --start()--> RUNNING --stop()--> STOPPED
```

`start()` while running and `stop()` while stopped are no-ops that log a
warning. A sweep that raises is logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from study_meetings.config import get_settings

logger = logging.getLogger(__name__)

Sweep = Callable[[], Awaitable[Any]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ReminderScheduler:
    """Runs a reminder sweep every `interval_seconds` on the running event loop.

    Example:
        ```python
        scheduler = ReminderScheduler(send_due_reminders)
        scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(self, sweep: Sweep, interval_seconds: float | None = None):
        self.sweep = sweep
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else get_settings().reminder_sweep_interval_seconds
        )
        self.state = SchedulerState.STOPPED
        self.runs = 0
        self.last_run_at: datetime | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> None:
        """Begin sweeping. Must be called from within an event loop."""
        if self.is_running:
            logger.warning("Reminder sweep is already running")
            return

        self._task = asyncio.get_running_loop().create_task(self._run())
        self.state = SchedulerState.RUNNING
        logger.info(f"Started reminder sweep every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop sweeping and wait for the loop to exit."""
        if not self.is_running:
            logger.warning("Reminder sweep is not running")
            return

        task, self._task = self._task, None
        self.state = SchedulerState.STOPPED
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Stopped reminder sweep")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.exception(f"Reminder sweep failed: {e}")
            self.runs += 1
            self.last_run_at = datetime.now(timezone.utc)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }
