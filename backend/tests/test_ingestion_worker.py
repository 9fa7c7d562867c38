"""Tests for the ingestion worker: pagination, per-page run log, upsert safety."""
import asyncio

import httpx
import pytest

from listingsync.config import Settings
from listingsync.errors import RunAlreadyInProgressError, WorkerDisabledError
from listingsync.models import IngestionRun, Listing, RunLease, WorkerKind
from listingsync.services.ingestion_worker import IngestionWorker
from listingsync.services.listing_store import ListingStore
from listingsync.services.run_lease import RunLeaseService


def _item(item_id, **fields):
    return {
        "item_id": item_id,
        "title": f"Account {item_id}",
        "price": 10 + item_id,
        "currency": "usd",
        "steam_level": item_id * 2,
        "steam_region": "eu",
        "unmapped_field": "kept in raw payload only",
        **fields,
    }


def make_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


class PagedUpstream:
    """Serves `pages` (a list of item lists) and records which pages were asked for."""

    def __init__(self, pages, fail_on=None, status=500):
        self.pages = pages
        self.fail_on = fail_on
        self.status = status
        self.requested = []

    def __call__(self, request):
        page = int(request.url.params["page"])
        self.requested.append(page)
        if page == self.fail_on:
            return httpx.Response(self.status, text="upstream down")
        return httpx.Response(200, json={
            "items": self.pages[page - 1],
            "hasNextPage": page < len(self.pages),
            "totalItems": sum(len(p) for p in self.pages),
        })


class FixedScorer:
    def __init__(self, value):
        self.value = value

    async def score(self, listing, source):
        return self.value


class ExplodingScorer:
    async def score(self, listing, source):
        raise RuntimeError("model unavailable")


def _runs(db_session, source):
    return (
        db_session.query(IngestionRun)
        .filter_by(source_id=source.id)
        .order_by(IngestionRun.page)
        .all()
    )


class TestPagination:
    async def test_stops_when_upstream_has_no_next_page(self, db_session, source, settings, make_client, sleeps):
        upstream = PagedUpstream([[_item(1)], [_item(2)], [_item(3)]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings, sleep=make_sleep(sleeps))

        summary = await worker.run(source)

        assert upstream.requested == [1, 2, 3]
        assert summary.is_success
        assert summary.pages == 3
        assert summary.items_fetched == 3
        assert [r.page for r in _runs(db_session, source)] == [1, 2, 3]
        assert all(r.status == "success" for r in _runs(db_session, source))
        # Paused between pages, not after the last one
        assert len(sleeps) == 2

    async def test_page_limit_is_honored(self, db_session, make_source, settings, make_client, sleeps):
        limited = make_source(fetch_page_limit=2)
        upstream = PagedUpstream([[_item(i)] for i in range(1, 6)])
        worker = IngestionWorker(
            db_session, client=make_client(upstream), settings=settings, sleep=make_sleep(sleeps)
        )

        summary = await worker.run(limited)

        assert upstream.requested == [1, 2]
        assert summary.pages == 2
        # No pause after the last allowed page
        assert len(sleeps) == 1

    async def test_caller_filters_reach_upstream(self, db_session, source, settings, make_client):
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json={"items": [], "hasNextPage": False, "totalItems": 0})

        worker = IngestionWorker(db_session, client=make_client(handler), settings=settings)
        await worker.run(source, filters={"price_max": 25})

        assert seen[0].get("pmax") == "25"


class TestPageFailure:
    async def test_failure_keeps_earlier_pages(self, db_session, source, settings, make_client):
        upstream = PagedUpstream([[_item(1), _item(2)], [_item(3)], [_item(4)]], fail_on=2)
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        summary = await worker.run(source)

        assert upstream.requested == [1, 2]
        assert summary.status == "error"
        assert "500" in summary.error
        assert sorted(l.item_id for l in db_session.query(Listing).all()) == [1, 2]

        runs = _runs(db_session, source)
        assert [(r.page, r.status) for r in runs] == [(1, "success"), (2, "error")]
        assert "500" in runs[1].error_message
        assert runs[0].items_fetched == 2

    async def test_exhausted_rate_limit_is_a_page_error(self, db_session, source, settings, make_client, sleeps):
        upstream = PagedUpstream([[_item(1)], [_item(2)]], fail_on=2, status=429)
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        summary = await worker.run(source)

        # one request for page 1, then the initial try plus 3 retries for page 2
        assert upstream.requested == [1, 2, 2, 2, 2]
        assert summary.status == "error"
        assert _runs(db_session, source)[-1].status == "error"

    async def test_missing_token_logs_an_error_row(self, db_session, source, make_client):
        no_token = Settings(upstream_api_token="", ingestion_page_delay_seconds=0)
        upstream = PagedUpstream([[_item(1)]])
        worker = IngestionWorker(db_session, client=make_client(upstream, no_token), settings=no_token)

        summary = await worker.run(source)

        assert upstream.requested == []
        assert summary.status == "error"
        assert "token" in _runs(db_session, source)[0].error_message

    async def test_deadline_stops_the_run(self, db_session, source, make_client):
        timed = Settings(upstream_api_token="t", ingestion_page_delay_seconds=0, run_timeout_seconds=0.05)
        upstream = PagedUpstream([[_item(1)], [_item(2)], [_item(3)]])

        async def slow_handler(request):
            await asyncio.sleep(0.2)
            return upstream(request)

        worker = IngestionWorker(db_session, client=make_client(slow_handler, timed), settings=timed)

        summary = await worker.run(source)

        assert upstream.requested == [1]
        assert summary.status == "error"
        last = _runs(db_session, source)[-1]
        assert last.status == "error"
        assert last.error_message.startswith("Run timed out")


class TestCandidates:
    async def test_builds_listing_from_item(self, db_session, source, settings, make_client):
        upstream = PagedUpstream([[_item(5)]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        await worker.run(source)

        listing = db_session.query(Listing).one()
        assert listing.item_id == 5
        assert listing.url == "https://market.test/5/"
        assert listing.title == "Account 5"
        assert listing.price == 15.0
        assert listing.currency == "usd"
        assert listing.extension_data == {"steam_level": 10, "steam_region": "eu"}
        assert listing.raw_payload["unmapped_field"] == "kept in raw payload only"
        assert listing.score is None

    async def test_items_without_id_are_skipped(self, db_session, source, settings, make_client):
        upstream = PagedUpstream([[{"title": "no id"}, _item(1), "garbage"]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        summary = await worker.run(source)

        assert summary.items_fetched == 3
        assert [l.item_id for l in db_session.query(Listing).all()] == [1]

    async def test_scores_are_stored(self, db_session, source, settings, make_client):
        worker = IngestionWorker(
            db_session, client=make_client(PagedUpstream([[_item(1)]])),
            scorer=FixedScorer(87), settings=settings,
        )
        await worker.run(source)
        assert db_session.query(Listing).one().score == 87

    @pytest.mark.parametrize("scorer", [ExplodingScorer(), FixedScorer(0), FixedScorer(150), FixedScorer("90")])
    async def test_scoring_failure_degrades_to_none(self, db_session, source, settings, make_client, scorer):
        worker = IngestionWorker(
            db_session, client=make_client(PagedUpstream([[_item(1)]])),
            scorer=scorer, settings=settings,
        )
        summary = await worker.run(source)

        assert summary.is_success
        assert db_session.query(Listing).one().score is None


class TestReingest:
    async def test_reingest_keeps_archive_and_first_seen(self, db_session, source, settings, make_client):
        upstream = PagedUpstream([[_item(1, price=10)]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)
        await worker.run(source)

        store = ListingStore(db_session)
        store.bulk_update(source.id, [1], {"is_hidden": True, "is_archived": True, "archived_reason": "gone"})
        db_session.expire_all()
        first = db_session.query(Listing).one()
        first_seen, last_seen, archived_at = first.first_seen_at, first.last_seen_at, first.archived_at

        upstream.pages = [[_item(1, price=99)]]
        await worker.run(source)

        db_session.expire_all()
        again = db_session.query(Listing).one()
        assert again.price == 99.0
        assert again.first_seen_at == first_seen
        assert again.last_seen_at > last_seen
        assert (again.is_hidden, again.is_archived, again.archived_reason, again.archived_at) == (
            True, True, "gone", archived_at
        )


class TestGuards:
    async def test_disabled_source_is_refused(self, db_session, make_source, settings, make_client):
        disabled = make_source(fetch_worker_enabled=False)
        upstream = PagedUpstream([[_item(1)]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        with pytest.raises(WorkerDisabledError):
            await worker.run(disabled)
        assert upstream.requested == []

    async def test_concurrent_run_is_refused(self, db_session, source, settings, make_client):
        RunLeaseService(db_session).acquire(source.id, WorkerKind.INGESTION)
        upstream = PagedUpstream([[_item(1)]])
        worker = IngestionWorker(db_session, client=make_client(upstream), settings=settings)

        with pytest.raises(RunAlreadyInProgressError):
            await worker.run(source)
        assert upstream.requested == []

    async def test_lease_is_released_after_run(self, db_session, source, settings, make_client):
        worker = IngestionWorker(db_session, client=make_client(PagedUpstream([[_item(1)]])), settings=settings)
        await worker.run(source)
        # A second run can take the lease again
        summary = await worker.run(source)
        assert summary.is_success

    async def test_stops_when_lease_is_taken_over(
        self, db_session, source, settings, make_client, sleeps, take_over_lease
    ):
        upstream = PagedUpstream([[_item(1)], [_item(2)], [_item(3)]])

        def handler(request):
            response = upstream(request)
            if request.url.params["page"] == "1":
                take_over_lease(source.id, WorkerKind.INGESTION)
            return response

        worker = IngestionWorker(
            db_session, client=make_client(handler), settings=settings, sleep=make_sleep(sleeps)
        )
        summary = await worker.run(source)

        assert upstream.requested == [1]
        assert summary.status == "error"
        assert "taken over" in summary.error
        assert sleeps == []
        # The other run keeps its lease
        assert db_session.query(RunLease).one().holder == "other-run"
