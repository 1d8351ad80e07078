from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from revisit_api.core.settings import settings
from revisit_api.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from revisit_api.observability.tracing import loyalty_span


def test_store_snapshot_aggregates_counters() -> None:
    store = LoyaltyObservabilityStore()
    store.record_registration("new")
    store.record_registration("new")
    store.record_registration("existing")
    store.record_sale(30, promoted=False)
    store.record_sale(45, promoted=True)
    store.record_redemption("cashback", 20)
    store.record_redemption("progressive_discount", 0)
    store.record_failure("insufficient_points")
    store.record_expiration(3, 120)

    snapshot = store.snapshot().as_dict()

    assert snapshot == {
        "registrations": {"new": 2, "existing": 1},
        "sales": {"committed": 2, "points_earned": 75, "promotions": 1},
        "redemptions": {
            "by_type": {"cashback": 1, "progressive_discount": 1},
            "points_by_type": {"cashback": 20, "progressive_discount": 0},
        },
        "failures": {"insufficient_points": 1},
        "expirations": {"runs": 1, "customers": 3, "points": 120},
    }

    store.reset()
    assert store.snapshot().as_dict()["sales"] == {}


def test_loyalty_span_is_usable_without_exporter() -> None:
    with loyalty_span("loyalty.test", restaurant_id="abc", card_number=None) as span:
        assert span is not None


@pytest.mark.asyncio
async def test_loyalty_snapshot_requires_key(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "observability_api_key", "snapshot-key")
    get_loyalty_store().record_registration("new")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.get("/api/v1/observability/loyalty")
        wrong = await client.get("/api/v1/observability/loyalty", headers={"X-API-Key": "nope"})
        allowed = await client.get("/api/v1/observability/loyalty", headers={"X-API-Key": "snapshot-key"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json()["registrations"] == {"new": 1}


@pytest.mark.asyncio
async def test_loyalty_snapshot_counts_failures(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(
            "/api/v1/pos/sales",
            json={"cardNumber": "#0001-9", "amountCents": 0},
            headers={"X-Restaurant-Id": str(tenant.restaurant_id), "X-Staff-User": tenant.owner_user},
        )
        response = await client.get("/api/v1/observability/loyalty")

    assert response.status_code == 200
    assert response.json()["failures"] == {"invalid_amount": 1}
