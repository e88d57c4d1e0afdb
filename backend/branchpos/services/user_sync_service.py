"""Head office -> branch user reconciliation.

The head office directory is authoritative. For every active branch the job
inserts users the branch is missing and overwrites the synced fields of users
that drifted. A failing branch is logged and skipped; the others still run.
Nothing is ever deleted from a branch.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchpos.core.metrics import metrics
from branchpos.db.base import utcnow
from branchpos.db.session import HeadOfficeSessionLocal, branch_session
from branchpos.models.head_office import Branch, HeadOfficeUser
from branchpos.models.user import BranchUser

logger = logging.getLogger(__name__)

SYNCED_FIELDS = (
    "email",
    "full_name_en",
    "full_name_ar",
    "phone",
    "preferred_language",
    "role",
    "is_active",
    "password_hash",
)


@dataclass
class SyncResult:
    inserted: int = 0
    updated: int = 0


class BranchUserSyncService:
    """One reconciliation pass over all active branches."""

    def __init__(
        self,
        head_office_session_factory: Callable[[], Session] = HeadOfficeSessionLocal,
        branch_session_factory: Callable[[str], Session] = branch_session,
    ):
        self.head_office_session_factory = head_office_session_factory
        self.branch_session_factory = branch_session_factory

    def sync_all(self) -> Dict[str, str]:
        """Reconcile every active branch; returns ``{branch_code: "ok" | "failed"}``."""
        results: Dict[str, str] = {}
        with self.head_office_session_factory() as head_office:
            branches = head_office.scalars(
                select(Branch).where(Branch.is_active.is_(True)).order_by(Branch.code)
            ).all()
            for branch in branches:
                try:
                    result = self.sync_branch(head_office, branch)
                except Exception:
                    logger.exception(f"User sync failed for branch {branch.code}")
                    metrics.inc("user_sync_failures")
                    results[branch.code] = "failed"
                    continue
                logger.info(
                    f"User sync for branch {branch.code}: "
                    f"{result.inserted} inserted, {result.updated} updated"
                )
                results[branch.code] = "ok"

        metrics.inc("user_sync_runs")
        return results

    def sync_branch(self, head_office: Session, branch: Branch) -> SyncResult:
        expected = {
            u.id: u
            for u in head_office.scalars(
                select(HeadOfficeUser).where(HeadOfficeUser.branch_id == branch.id)
            )
        }
        result = SyncResult()
        db = self.branch_session_factory(branch.database_url)
        try:
            actual = {u.id: u for u in db.scalars(select(BranchUser))}
            now = utcnow()
            for user_id, source in expected.items():
                target = actual.get(user_id)
                if target is None:
                    db.add(
                        BranchUser(
                            id=source.id,
                            username=source.username,
                            created_at=now,
                            updated_at=now,
                            **{field: getattr(source, field) for field in SYNCED_FIELDS},
                        )
                    )
                    result.inserted += 1
                elif self._apply_changes(source, target):
                    target.updated_at = now
                    result.updated += 1
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return result

    @staticmethod
    def _apply_changes(source: HeadOfficeUser, target: BranchUser) -> bool:
        changed = False
        for field in SYNCED_FIELDS:
            value = getattr(source, field)
            if getattr(target, field) != value:
                setattr(target, field, value)
                changed = True
        return changed


async def run_user_sync(service: Optional[BranchUserSyncService] = None) -> Dict[str, str]:
    """Scheduler entry point; the blocking database work runs in a worker thread."""
    service = service or BranchUserSyncService()
    return await asyncio.to_thread(service.sync_all)
