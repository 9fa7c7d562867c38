from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from listingsync.database import get_db
from listingsync.errors import RunAlreadyInProgressError, WorkerDisabledError
from listingsync.schemas import RunLogResponse, RunSummaryResponse
from listingsync.services.ingestion_worker import IngestionWorker
from listingsync.services.reconciliation_worker import ReconciliationWorker
from listingsync.services.run_log import RunLogService
from listingsync.services.scoring import get_scorer
from listingsync.api.sources import get_source_or_404

router = APIRouter()
logger = logging.getLogger(__name__)


def get_ingestion_worker(db: Session = Depends(get_db)) -> IngestionWorker:
    return IngestionWorker(db, scorer=get_scorer())


def get_reconciliation_worker(db: Session = Depends(get_db)) -> ReconciliationWorker:
    return ReconciliationWorker(db)


@router.get("/{source_id}/runs", response_model=RunLogResponse)
async def list_runs(
    source_id: int,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    source = get_source_or_404(db, source_id)
    run_log = RunLogService(db)
    return {
        "ingestion": run_log.latest_ingestion_runs(source.id, limit=limit),
        "reconciliation": run_log.latest_reconciliation_runs(source.id, limit=limit),
    }


@router.post("/{source_id}/runs/ingestion", response_model=RunSummaryResponse)
async def trigger_ingestion(
    source_id: int,
    filters: Optional[dict] = Body(None, embed=True),
    db: Session = Depends(get_db),
    worker: IngestionWorker = Depends(get_ingestion_worker),
):
    """Run ingestion for one source now and return its summary."""
    source = get_source_or_404(db, source_id)
    try:
        summary = await worker.run(source, filters=filters)
    except RunAlreadyInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except WorkerDisabledError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return summary.as_dict()


@router.post("/{source_id}/runs/reconciliation", response_model=RunSummaryResponse)
async def trigger_reconciliation(
    source_id: int,
    db: Session = Depends(get_db),
    worker: ReconciliationWorker = Depends(get_reconciliation_worker),
):
    """Run reconciliation for one source now and return its summary."""
    source = get_source_or_404(db, source_id)
    try:
        summary = await worker.run(source)
    except RunAlreadyInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except WorkerDisabledError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return summary.as_dict()
