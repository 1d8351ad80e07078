import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_health_endpoints(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        liveness = await client.get("/api/v1/health")
        root = await client.get("/healthz")
        readiness = await client.get("/api/v1/health/readyz")

    assert liveness.json() == {"status": "ok"}
    assert root.status_code == 200
    assert root.json()["status"] == "ok"
    assert root.json()["version"] == "0.1.0"
    assert readiness.status_code == 200
    assert readiness.json() == {"status": "ready", "database": "ready", "detail": None}
