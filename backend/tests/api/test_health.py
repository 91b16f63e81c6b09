"""Tests for the health check endpoint."""
from httpx import AsyncClient


async def test_health_endpoint_returns_200(client: AsyncClient) -> None:
    """Test that the health endpoint returns 200 OK."""
    response = await client.get("/health")
    assert response.status_code == 200


async def test_health_endpoint_returns_healthy_status(client: AsyncClient) -> None:
    """Test that the health endpoint returns healthy status."""
    response = await client.get("/health")
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "healthy"


async def test_health_endpoint_reports_recorder_state(client: AsyncClient) -> None:
    """A fresh process has no baselines and no pending undo/redo marks."""
    response = await client.get("/health")
    data = response.json()
    assert data["cached_states"] == 0
    assert data["pending_undo_redo_marks"] == 0


async def test_health_endpoint_sets_security_headers(client: AsyncClient) -> None:
    """Responses carry the security headers."""
    response = await client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
