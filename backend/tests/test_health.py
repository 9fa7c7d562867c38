"""
Tests for health check endpoints.
"""
import pytest

from listingsync.models import WorkerKind
from listingsync.services.run_lease import RunLeaseService


@pytest.mark.asyncio
async def test_health_endpoint_returns_healthy(client):
    """Test that the /health endpoint returns a healthy status."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "healthy"


@pytest.mark.asyncio
async def test_health_returns_json(client):
    """Test that the /health endpoint returns JSON content type."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_ping(client):
    response = await client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_counts_runs_in_progress(client, db_session, source):
    response = await client.get("/health")
    assert response.json()["runs_in_progress"] == 0

    RunLeaseService(db_session).acquire(source.id, WorkerKind.INGESTION)

    response = await client.get("/health")
    assert response.json()["runs_in_progress"] == 1
