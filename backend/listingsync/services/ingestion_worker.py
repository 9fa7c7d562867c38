"""
Ingestion: page through a source's upstream listing search and upsert what comes back.

Runs fail per page, not atomically. Each page gets its own run-log row, so
pages upserted before a failure stay in the store and stay auditable.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from listingsync.config import Settings, get_settings
from listingsync.errors import ListingSyncError, RunLeaseLostError, WorkerDisabledError
from listingsync.models.run_lease import WorkerKind
from listingsync.models.run_log import RunStatus
from listingsync.models.source_config import SourceConfig
from listingsync.schemas.source import SourceSchema
from listingsync.services.credentials import UpstreamCredentials
from listingsync.services.listing_store import ListingCandidate, ListingStore
from listingsync.services.run_lease import RunLeaseService
from listingsync.services.run_log import RunLogService, RunSummary
from listingsync.services.scoring import ListingScorer, NullScorer
from listingsync.services.upstream_client import MarketplaceClient

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_item_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class IngestionWorker:
    """
    One ingestion run for one source:
    1. Take the (source, ingestion) lease
    2. Fetch pages in order until upstream reports no next page
    3. Build candidates, score them best-effort, upsert each page
    4. Log every page, success or error
    5. Pause between successful pages
    """

    def __init__(
        self,
        db: Session,
        client: Optional[MarketplaceClient] = None,
        scorer: Optional[ListingScorer] = None,
        settings: Optional[Settings] = None,
        sleep=asyncio.sleep,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.client = client
        self.scorer = scorer or NullScorer()
        self.store = ListingStore(db)
        self.run_log = RunLogService(db)
        self.leases = RunLeaseService(db, ttl_seconds=self.settings.run_lease_seconds)
        self._sleep = sleep

    async def run(self, source: SourceConfig, filters: Optional[dict] = None) -> RunSummary:
        if not source.fetch_worker_enabled:
            raise WorkerDisabledError(source.id, WorkerKind.INGESTION.value)

        async with self.leases.hold(source.id, WorkerKind.INGESTION) as lease:
            if self.client is not None:
                return await self._paginate(source, filters, self.client, lease)

            credentials = UpstreamCredentials(self.db, self.settings)
            async with MarketplaceClient(credentials, self.settings) as client:
                return await self._paginate(source, filters, client, lease)

    async def _paginate(self, source: SourceConfig, filters: Optional[dict], client, lease) -> RunSummary:
        summary = RunSummary(source_id=source.id, kind=WorkerKind.INGESTION.value)
        schema = SourceSchema.from_source(source)
        started = time.monotonic()
        timeout = self.settings.run_timeout_seconds
        deadline = started + timeout if timeout > 0 else None
        page_limit = source.fetch_page_limit

        logger.info(f"Starting ingestion for {source.slug}")

        page = 1
        while True:
            if deadline is not None and time.monotonic() > deadline:
                message = f"Run timed out after {timeout:g}s before page {page}"
                self.run_log.record_ingestion_page(source.id, page, 0, 0, error_message=message)
                summary.status = RunStatus.ERROR.value
                summary.error = message
                logger.warning(f"Ingestion for {source.slug}: {message}")
                break

            page_started_at = datetime.now(timezone.utc)
            page_started = time.monotonic()
            items_fetched = 0
            error_message = None

            try:
                result = await client.fetch_page(source, page, filters)
                items_fetched = len(result.items)
                candidates = await self._build_candidates(source, schema, result.items, page_started_at)
                self.store.upsert(candidates)
                has_next = result.has_next_page
            except ListingSyncError as e:
                error_message = str(e)
                has_next = False
            except Exception as e:
                # Unexpected failure (e.g. the store): log the page, then propagate
                self.db.rollback()
                self.run_log.record_ingestion_page(
                    source.id, page, items_fetched,
                    int((time.monotonic() - page_started) * 1000),
                    error_message=f"Unexpected error: {e}",
                    started_at=page_started_at,
                )
                raise

            duration_ms = int((time.monotonic() - page_started) * 1000)
            self.run_log.record_ingestion_page(
                source.id, page, items_fetched, duration_ms,
                error_message=error_message,
                started_at=page_started_at,
            )
            summary.pages += 1
            summary.items_fetched += items_fetched

            if error_message:
                logger.error(f"Ingestion for {source.slug} stopped on page {page}: {error_message}")
                summary.status = RunStatus.ERROR.value
                summary.error = error_message
                break

            logger.info(f"Page {page} for {source.slug}: {items_fetched} items")
            if not has_next:
                break
            if page_limit and page >= page_limit:
                logger.info(f"Reached page limit ({page_limit}) for {source.slug}")
                break
            if not self.leases.renew(lease):
                summary.status = RunStatus.ERROR.value
                summary.error = str(RunLeaseLostError(source.id, WorkerKind.INGESTION.value))
                logger.error(f"Ingestion for {source.slug} stopped after page {page}: {summary.error}")
                break

            page += 1
            await self._sleep(self.settings.ingestion_page_delay_seconds)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Ingestion for {source.slug} finished ({summary.status}): "
            f"{summary.pages} page(s), {summary.items_fetched} item(s) in {summary.duration_ms}ms"
        )
        return summary

    async def _build_candidates(
        self,
        source: SourceConfig,
        schema: SourceSchema,
        items: list[dict],
        seen_at: datetime,
    ) -> list[ListingCandidate]:
        candidates = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item_id = _as_item_id(item.get("item_id"))
            if item_id is None:
                logger.warning(f"Skipping upstream item without a usable item_id for {source.slug}")
                continue
            candidates.append(self.build_candidate(source, schema, item_id, item, seen_at))

        scores = await asyncio.gather(*(self._score(c, source) for c in candidates))
        for candidate, score in zip(candidates, scores):
            candidate.score = score
        return candidates

    def build_candidate(
        self,
        source: SourceConfig,
        schema: SourceSchema,
        item_id: int,
        item: dict,
        seen_at: datetime,
    ) -> ListingCandidate:
        extension_data = {
            column.id: item[column.id]
            for column in schema.extension_columns()
            if column.id in item
        }
        currency = item.get("currency") or (source.default_filters or {}).get("currency")
        return ListingCandidate(
            source_id=source.id,
            item_id=item_id,
            url=source.listing_url(item_id),
            title=item.get("title"),
            price=_as_float(item.get("price")),
            currency=str(currency) if currency else None,
            extension_data=extension_data,
            raw_payload=item,
            seen_at=seen_at,
        )

    async def _score(self, candidate: ListingCandidate, source: SourceConfig) -> Optional[int]:
        listing = {
            "item_id": candidate.item_id,
            "title": candidate.title,
            "price": candidate.price,
            "currency": candidate.currency,
            "extension_data": candidate.extension_data,
        }
        try:
            score = await self.scorer.score(listing, source)
        except Exception as e:
            logger.warning(f"Scoring failed for item {candidate.item_id}: {e}")
            return None
        if isinstance(score, int) and 1 <= score <= 100:
            return score
        return None
