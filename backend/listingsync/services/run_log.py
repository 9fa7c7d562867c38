"""
Append/update-only audit trail of worker invocations.

Every run writes at least one row, whether it succeeded or not, so failures
stay visible after the fact.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from listingsync.models.run_log import IngestionRun, ReconciliationRun, RunStatus

logger = logging.getLogger(__name__)


class RunLogService:

    def __init__(self, db: Session):
        self.db = db

    # Ingestion: one row per page

    def record_ingestion_page(
        self,
        source_id: int,
        page: int,
        items_fetched: int,
        duration_ms: int,
        error_message: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> IngestionRun:
        run = IngestionRun(
            source_id=source_id,
            page=page,
            items_fetched=items_fetched,
            status=(RunStatus.ERROR if error_message else RunStatus.SUCCESS).value,
            error_message=error_message,
            duration_ms=duration_ms,
            started_at=started_at or datetime.now(timezone.utc),
        )
        self.db.add(run)
        self.db.commit()
        return run

    # Reconciliation: one row, patched in place

    def start_reconciliation(self, source_id: int, start_cursor: int = 0) -> ReconciliationRun:
        run = ReconciliationRun(
            source_id=source_id,
            status=RunStatus.IN_PROGRESS.value,
            start_cursor=start_cursor,
            last_cursor=start_cursor,
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def update_reconciliation_progress(
        self,
        run: ReconciliationRun,
        items_checked: int,
        items_archived: int,
        last_cursor: int,
    ) -> None:
        run.items_checked = items_checked
        run.items_archived = items_archived
        run.last_cursor = last_cursor
        self.db.commit()

    def finish_reconciliation(
        self,
        run: ReconciliationRun,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> None:
        run.status = (RunStatus.ERROR if error_message else RunStatus.SUCCESS).value
        run.error_message = error_message
        run.duration_ms = duration_ms
        run.finished_at = datetime.now(timezone.utc)
        self.db.commit()

    def mark_orphaned_reconciliations(self, source_id: int) -> int:
        """
        Finalize in_progress rows left behind by a crashed run.

        Only call while holding the reconciliation lease for the source, so
        no live run can own these rows.
        """
        orphans = self.db.query(ReconciliationRun).filter(
            ReconciliationRun.source_id == source_id,
            ReconciliationRun.status == RunStatus.IN_PROGRESS.value,
        ).all()
        for run in orphans:
            run.status = RunStatus.ERROR.value
            run.error_message = "Interrupted before completion"
            run.finished_at = datetime.now(timezone.utc)
        if orphans:
            self.db.commit()
            logger.warning(f"Marked {len(orphans)} interrupted reconciliation run(s) for source {source_id}")
        return len(orphans)

    # Reads

    def latest_ingestion_runs(self, source_id: int, limit: int = 20) -> list[IngestionRun]:
        return self.db.query(IngestionRun).filter(
            IngestionRun.source_id == source_id
        ).order_by(IngestionRun.started_at.desc(), IngestionRun.page.desc()).limit(limit).all()

    def latest_reconciliation_runs(self, source_id: int, limit: int = 20) -> list[ReconciliationRun]:
        return self.db.query(ReconciliationRun).filter(
            ReconciliationRun.source_id == source_id
        ).order_by(ReconciliationRun.started_at.desc()).limit(limit).all()

    def latest_reconciliation_run(self, source_id: int) -> Optional[ReconciliationRun]:
        runs = self.latest_reconciliation_runs(source_id, limit=1)
        return runs[0] if runs else None


@dataclass
class RunSummary:
    """What a worker invocation did; returned to the trigger (API, Celery task)."""
    source_id: int
    kind: str
    status: str = RunStatus.SUCCESS.value
    pages: int = 0
    items_fetched: int = 0
    items_checked: int = 0
    items_archived: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    run_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == RunStatus.SUCCESS.value

    def as_dict(self) -> dict:
        return asdict(self)
