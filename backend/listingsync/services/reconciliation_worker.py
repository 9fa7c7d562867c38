"""
Reconciliation: re-check stored listings upstream and archive the ones that are gone.

Listings are walked in item_id order with a keyset cursor, so archiving rows
in one batch never shifts the next batch. Checks inside a batch run
concurrently (bounded by a semaphore) and are joined before anything is
archived. The cursor is saved on the run row after every batch; a run that
follows a failed or interrupted one picks up from there.
"""
import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from listingsync.config import Settings, get_settings
from listingsync.errors import ListingSyncError, RunLeaseLostError, RunTimedOutError, WorkerDisabledError
from listingsync.models.listing import Listing
from listingsync.models.run_lease import WorkerKind
from listingsync.models.run_log import ReconciliationRun, RunStatus
from listingsync.models.source_config import SourceConfig
from listingsync.services.credentials import UpstreamCredentials
from listingsync.services.listing_store import ListingStore
from listingsync.services.run_lease import RunLeaseService
from listingsync.services.run_log import RunLogService, RunSummary
from listingsync.services.upstream_client import ItemStatus, MarketplaceClient

logger = logging.getLogger(__name__)


class ReconciliationWorker:

    def __init__(
        self,
        db: Session,
        client: Optional[MarketplaceClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.client = client
        self.store = ListingStore(db)
        self.run_log = RunLogService(db)
        self.leases = RunLeaseService(db, ttl_seconds=self.settings.run_lease_seconds)

    async def run(self, source: SourceConfig) -> RunSummary:
        if not source.check_worker_enabled:
            raise WorkerDisabledError(source.id, WorkerKind.RECONCILIATION.value)

        async with self.leases.hold(source.id, WorkerKind.RECONCILIATION) as lease:
            if self.client is not None:
                return await self._reconcile(source, self.client, lease)

            credentials = UpstreamCredentials(self.db, self.settings)
            async with MarketplaceClient(credentials, self.settings) as client:
                return await self._reconcile(source, client, lease)

    def resume_cursor(self, source_id: int) -> int:
        """Where a new run starts: 0, or the saved cursor of a run that did not finish."""
        if not self.settings.reconciliation_resume:
            return 0
        previous = self.run_log.latest_reconciliation_run(source_id)
        if previous is None or previous.status == RunStatus.SUCCESS.value:
            return 0
        return previous.last_cursor or 0

    async def _reconcile(self, source: SourceConfig, client, lease) -> RunSummary:
        start_cursor = self.resume_cursor(source.id)
        self.run_log.mark_orphaned_reconciliations(source.id)
        run = self.run_log.start_reconciliation(source.id, start_cursor=start_cursor)

        summary = RunSummary(
            source_id=source.id,
            kind=WorkerKind.RECONCILIATION.value,
            run_id=run.id,
        )
        started = time.monotonic()
        timeout = self.settings.run_timeout_seconds
        deadline = started + timeout if timeout > 0 else None
        batch_size = self.settings.reconciliation_batch_size

        if start_cursor:
            logger.info(f"Resuming reconciliation for {source.slug} after item {start_cursor}")
        else:
            logger.info(f"Starting reconciliation for {source.slug}")

        cursor = start_cursor
        try:
            while True:
                if deadline is not None and time.monotonic() > deadline:
                    raise RunTimedOutError(f"Run timed out after {timeout:g}s at item {cursor}")

                batch = self.store.scan_active_after(source.id, cursor, batch_size)
                if not batch:
                    break

                statuses = await self._check_batch(source, client, batch)
                summary.items_archived += self._archive_stale(source, statuses)
                summary.items_checked += len(batch)
                cursor = batch[-1].item_id

                self.run_log.update_reconciliation_progress(
                    run, summary.items_checked, summary.items_archived, cursor
                )
                if not self.leases.renew(lease):
                    raise RunLeaseLostError(source.id, WorkerKind.RECONCILIATION.value)
                logger.info(
                    f"Reconciliation batch for {source.slug}: checked {summary.items_checked}, "
                    f"archived {summary.items_archived}, cursor {cursor}"
                )
        except ListingSyncError as e:
            self._fail(source, run, summary, started, str(e))
            return summary
        except Exception as e:
            self._fail(source, run, summary, started, f"Unexpected error: {e}")
            raise

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        self.run_log.finish_reconciliation(run, summary.duration_ms)
        logger.info(
            f"Reconciliation for {source.slug} finished: checked {summary.items_checked}, "
            f"archived {summary.items_archived} in {summary.duration_ms}ms"
        )
        return summary

    async def _check_batch(self, source: SourceConfig, client, batch: list[Listing]) -> list[tuple[int, ItemStatus]]:
        semaphore = asyncio.Semaphore(max(1, self.settings.reconciliation_concurrency))

        async def check(item_id: int) -> tuple[int, ItemStatus]:
            async with semaphore:
                return item_id, await client.check_item(source, item_id)

        results = await asyncio.gather(
            *(check(listing.item_id) for listing in batch),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    def _archive_stale(self, source: SourceConfig, statuses: list[tuple[int, ItemStatus]]) -> int:
        stale: dict[str, list[int]] = defaultdict(list)
        for item_id, status in statuses:
            if not status.is_active:
                stale[status.reason].append(item_id)

        archived = 0
        archived_at = datetime.now(timezone.utc)
        for reason, item_ids in stale.items():
            archived += self.store.bulk_update(
                source.id,
                item_ids,
                {"is_archived": True, "archived_reason": reason, "archived_at": archived_at},
            )
            logger.info(f"Archived {len(item_ids)} listing(s) for {source.slug}: {reason}")
        return archived

    def _fail(self, source: SourceConfig, run: ReconciliationRun, summary: RunSummary, started: float, message: str) -> None:
        self.db.rollback()
        summary.status = RunStatus.ERROR.value
        summary.error = message
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        run.items_checked = summary.items_checked
        run.items_archived = summary.items_archived
        self.run_log.finish_reconciliation(run, summary.duration_ms, error_message=message)
        logger.error(
            f"Reconciliation for {source.slug} failed after checking "
            f"{summary.items_checked} item(s): {message}"
        )
