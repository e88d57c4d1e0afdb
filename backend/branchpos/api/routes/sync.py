"""User reconciliation routes: scheduler status and on-demand runs."""

from fastapi import APIRouter

from branchpos.core.security import ActingUser
from branchpos.schemas.sync import SchedulerStatus, SyncRunResponse
from branchpos.services.scheduler_service import scheduler
from branchpos.services.user_sync_service import run_user_sync

router = APIRouter()


@router.get("/status", response_model=SchedulerStatus)
def get_sync_status(current_user: ActingUser):
    return scheduler.get_status()


@router.post("/users", response_model=SyncRunResponse)
async def sync_users_now(current_user: ActingUser):
    """Run one head office -> branch user reconciliation pass now."""
    return SyncRunResponse(results=await run_user_sync())
