"""Background task scheduler for periodic jobs (user reconciliation, held order cleanup)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from branchpos.core.config import settings

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals, checking every ``tick_seconds``.
    A failing task is logged and retried at its next interval, never sooner.
    State is in memory only.
    """

    def __init__(self, tick_seconds: Optional[float] = None):
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.scheduler_tick_seconds
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self._task_handle: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Run the scheduler loop until stopped or cancelled."""
        self._running = True
        logger.info("Task scheduler started")
        try:
            while self._running:
                await self.run_pending()
                await asyncio.sleep(self.tick_seconds)
        finally:
            self._running = False
            logger.info("Task scheduler stopped")

    async def run_pending(self, now: Optional[datetime] = None):
        """Run every task whose next run time has passed."""
        now = now or datetime.now(timezone.utc)
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if asyncio.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    task["func"]()
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.exception(f"Scheduled task '{name}' failed: {e}")
            task["last_run"] = now
            task["run_count"] += 1
            task["next_run"] = now + task["interval"]

    def run_in_background(self) -> asyncio.Task:
        """Start the loop as an asyncio task on the running event loop."""
        self._task_handle = asyncio.create_task(self.start(), name="task-scheduler")
        return self._task_handle

    def stop(self):
        self._running = False
        if self._task_handle:
            self._task_handle.cancel()
            self._task_handle = None

    def add_task(self, name: str, func: Callable, interval_seconds: int, first_run_delay: float = 10):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=first_run_delay),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "tasks": {
                name: {
                    "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                    "next_run": t["next_run"].isoformat(),
                    "interval_seconds": int(t["interval"].total_seconds()),
                    "run_count": t["run_count"],
                    "last_error": t["last_error"],
                }
                for name, t in self._tasks.items()
            },
        }


scheduler = TaskScheduler()
