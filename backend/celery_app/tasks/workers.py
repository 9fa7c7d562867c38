import asyncio
from typing import Optional
from celery import shared_task
from celery.utils.log import get_task_logger
from listingsync.database import SessionLocal
from listingsync.errors import RunAlreadyInProgressError, WorkerDisabledError
from listingsync.models import SourceConfig
from listingsync.services.ingestion_worker import IngestionWorker
from listingsync.services.reconciliation_worker import ReconciliationWorker
from listingsync.services.scoring import get_scorer

logger = get_task_logger(__name__)


def _skipped(source_id: int, kind: str, reason: str) -> dict:
    return {"source_id": source_id, "kind": kind, "status": "skipped", "error": reason}


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def run_ingestion(self, source_id: int, filters: Optional[dict] = None) -> dict:
    db = SessionLocal()

    try:
        source = db.query(SourceConfig).filter(SourceConfig.id == source_id).first()
        if not source:
            logger.error(f"Source {source_id} not found")
            return _skipped(source_id, "ingestion", "Source not found")

        worker = IngestionWorker(db, scorer=get_scorer())
        summary = asyncio.run(worker.run(source, filters=filters))
        logger.info(f"Ingestion for {source.slug}: {summary.status}, {summary.items_fetched} items")
        return summary.as_dict()

    except (RunAlreadyInProgressError, WorkerDisabledError) as e:
        logger.warning(str(e))
        return _skipped(source_id, "ingestion", str(e))

    except Exception as e:
        logger.exception(f"Ingestion task failed for source {source_id}")
        raise self.retry(exc=e)

    finally:
        db.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def run_reconciliation(self, source_id: int) -> dict:
    db = SessionLocal()

    try:
        source = db.query(SourceConfig).filter(SourceConfig.id == source_id).first()
        if not source:
            logger.error(f"Source {source_id} not found")
            return _skipped(source_id, "reconciliation", "Source not found")

        worker = ReconciliationWorker(db)
        summary = asyncio.run(worker.run(source))
        logger.info(
            f"Reconciliation for {source.slug}: {summary.status}, "
            f"checked {summary.items_checked}, archived {summary.items_archived}"
        )
        return summary.as_dict()

    except (RunAlreadyInProgressError, WorkerDisabledError) as e:
        logger.warning(str(e))
        return _skipped(source_id, "reconciliation", str(e))

    except Exception as e:
        logger.exception(f"Reconciliation task failed for source {source_id}")
        raise self.retry(exc=e)

    finally:
        db.close()


@shared_task
def run_all_ingestion():
    db = SessionLocal()

    try:
        sources = db.query(SourceConfig).filter(SourceConfig.fetch_worker_enabled == True).all()
        logger.info(f"Queueing ingestion for {len(sources)} enabled sources")

        for source in sources:
            run_ingestion.delay(source.id)

    finally:
        db.close()


@shared_task
def run_all_reconciliation():
    db = SessionLocal()

    try:
        sources = db.query(SourceConfig).filter(SourceConfig.check_worker_enabled == True).all()
        logger.info(f"Queueing reconciliation for {len(sources)} enabled sources")

        for source in sources:
            run_reconciliation.delay(source.id)

    finally:
        db.close()
