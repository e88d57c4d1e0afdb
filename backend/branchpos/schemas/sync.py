"""User reconciliation schemas."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class SyncRunResponse(BaseModel):
    """Per-branch outcome of one reconciliation pass, keyed by branch code."""

    results: Dict[str, str]


class ScheduledTaskStatus(BaseModel):
    interval_seconds: int
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int


class SchedulerStatus(BaseModel):
    running: bool
    tasks: Dict[str, ScheduledTaskStatus]
