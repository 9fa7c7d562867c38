"""
Test fixtures for listingsync backend tests.
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from listingsync.config import Settings
from listingsync.database import Base, enable_sqlite_foreign_keys, get_db
from listingsync.main import app
from listingsync.models import RunLease, SourceConfig
from listingsync.schemas import SourceConfigCreate
from listingsync.services.credentials import UpstreamCredentials
from listingsync.services.listing_store import ListingCandidate, ListingStore
from listingsync.services.upstream_client import MarketplaceClient


# Create test database engine (SQLite in-memory, one shared connection)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Enable foreign key constraints for SQLite
enable_sqlite_foreign_keys(test_engine)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

UPSTREAM_BASE_URL = "https://market.test"


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def settings():
    """Settings with every delay zeroed so workers run instantly."""
    return Settings(
        upstream_api_token="test-token",
        ingestion_page_delay_seconds=0,
        rate_limit_backoff_seconds=0,
        rate_limit_max_retries=3,
        reconciliation_batch_size=50,
        reconciliation_concurrency=5,
        reconciliation_resume=True,
        run_timeout_seconds=0,
        scoring_enabled=False,
        seed_default_sources=False,
    )


@pytest.fixture
def source_fields():
    """A small Steam-like source exercising every column and filter kind."""
    return {
        "slug": "steam",
        "name": "Steam",
        "category": "PC Gaming Platform",
        "api_base_url": UPSTREAM_BASE_URL,
        "list_path": "/steam",
        "check_path_template": "/item/{id}/check-account",
        "default_filters": {"currency": "usd"},
        "columns": [
            {"id": "item_id", "label": "Item ID", "kind": "core", "is_numeric": True},
            {"id": "title", "label": "Title", "kind": "core"},
            {"id": "price", "label": "Price", "kind": "core", "is_numeric": True},
            {"id": "score", "label": "Deal Score", "kind": "core", "is_numeric": True},
            {"id": "steam_level", "label": "Level", "kind": "extension", "is_numeric": True},
            {"id": "steam_region", "label": "Region", "kind": "extension"},
        ],
        "filters": [
            {"id": "title", "label": "Search", "kind": "text", "param_name": "title"},
            {"id": "price", "label": "Price", "kind": "number_range",
             "param_name_min": "pmin", "param_name_max": "pmax"},
            {"id": "steam_level", "label": "Level", "kind": "number_range",
             "param_name_min": "lmin", "param_name_max": "lmax"},
            {"id": "steam_region", "label": "Region", "kind": "select",
             "param_name": "region[]", "options": ["eu", "us", "asia"]},
        ],
        "sorts": [
            {"id": "price_to_up", "label": "Price: Low to High", "column": "price", "ascending": True},
            {"id": "level_to_down", "label": "Level: High to Low", "column": "steam_level", "ascending": False},
            {"id": "newest", "label": "Newest First", "column": "last_seen_at", "ascending": False},
        ],
        "fetch_page_limit": None,
    }


@pytest.fixture
def make_source(db_session, source_fields):
    def _make(**overrides) -> SourceConfig:
        fields = SourceConfigCreate(**{**source_fields, **overrides}).to_row_fields()
        source = SourceConfig(**fields)
        db_session.add(source)
        db_session.commit()
        db_session.refresh(source)
        return source

    return _make


@pytest.fixture
def source(make_source):
    return make_source()


@pytest.fixture
def add_listings(db_session):
    """Insert listings through the store, the same path ingestion uses."""
    def _add(source, *items: dict, seen_at=None):
        seen_at = seen_at or datetime.now(timezone.utc)
        candidates = [
            ListingCandidate(
                source_id=source.id,
                item_id=item["item_id"],
                url=source.listing_url(item["item_id"]),
                title=item.get("title"),
                price=item.get("price"),
                currency=item.get("currency", "usd"),
                extension_data=item.get("extension_data", {}),
                score=item.get("score"),
                raw_payload=item,
                seen_at=seen_at,
            )
            for item in items
        ]
        return ListingStore(db_session).upsert(candidates)

    return _add


@pytest.fixture
def take_over_lease(db_session):
    """Replace a run's lease with one held by another run, as after an expiry takeover."""
    def _take_over(source_id: int, kind):
        db_session.query(RunLease).filter_by(
            source_id=source_id, worker_kind=kind.value
        ).delete(synchronize_session="fetch")
        db_session.add(RunLease(
            source_id=source_id,
            worker_kind=kind.value,
            holder="other-run",
            acquired_at=datetime.now(timezone.utc),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        ))
        db_session.commit()

    return _take_over


@pytest.fixture
def sleeps():
    """Delays requested by the code under test, recorded instead of slept."""
    return []


@pytest.fixture
def make_client(settings, sleeps):
    """Build a MarketplaceClient whose HTTP traffic goes to `handler`."""
    async def fake_sleep(delay):
        sleeps.append(delay)

    def _make(handler, client_settings=None) -> MarketplaceClient:
        client_settings = client_settings or settings
        return MarketplaceClient(
            UpstreamCredentials(settings=client_settings),
            settings=client_settings,
            transport=httpx.MockTransport(handler),
            sleep=fake_sleep,
        )

    return _make


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db):
    """
    Create an async test client with the database dependency overridden.
    """
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()
