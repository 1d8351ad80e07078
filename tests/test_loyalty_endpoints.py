import pytest
from httpx import ASGITransport, AsyncClient

from revisit_api.models import RewardTypeEnum


def _headers(tenant, user: str | None = None) -> dict[str, str]:
    headers = {"X-Restaurant-Id": str(tenant.restaurant_id)}
    if user is not None:
        headers["X-Staff-User"] = user
    return headers


@pytest.mark.asyncio
async def test_enroll_sell_and_redeem_flow(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)
    staff = _headers(tenant, tenant.manager_user)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        registered = await client.post(
            "/api/v1/customers/register",
            json={"name": "Ana Souza", "phone": "(11) 98888-7777"},
            headers=_headers(tenant),
        )
        assert registered.status_code == 200
        assert registered.json() == {
            "cardNumber": "#0001-9",
            "customerName": "Ana Souza",
            "rankName": "Bronze",
            "isExisting": False,
        }

        preview = await client.post(
            "/api/v1/pos/lookup",
            json={"cardNumber": "#0001-9", "amount": "12.34"},
            headers=staff,
        )
        assert preview.status_code == 200
        assert preview.json()["pointsPreview"] == 12
        assert preview.json()["amountCents"] == 1234
        assert preview.json()["staffId"] == str(tenant.manager_id)

        sale = await client.post(
            "/api/v1/pos/sales",
            json={"cardNumber": "#0001-9", "amountCents": 1234},
            headers=staff,
        )
        assert sale.status_code == 200
        assert sale.json()["pointsEarned"] == 12
        assert sale.json()["newBalance"] == 12
        assert sale.json()["rankPromoted"] is False

        card = await client.get("/api/v1/cards/0001-9", headers=_headers(tenant))
        assert card.status_code == 200
        body = card.json()
        assert body["pointsBalance"] == 12
        assert body["visitCount"] == 1
        assert body["totalSpendCents"] == 1234
        assert body["rank"]["name"] == "Bronze"
        assert body["nextRankName"] == "Prata"
        assert body["visitsToNextRank"] == 2
        assert body["rewardType"] == "cashback"
        assert [(entry["type"], entry["pointsDelta"]) for entry in body["transactions"]] == [("earn", 12)]

        encoded = await client.get("/api/v1/cards/%230001-9", headers=_headers(tenant))
        assert encoded.json()["cardNumber"] == "#0001-9"

        check = await client.get(
            "/api/v1/rewards/check",
            params={"card_number": "#0001-9"},
            headers=staff,
        )
        assert check.json() == {"type": "cashback", "pointsBalance": 12, "availableCredit": 12, "earnRate": 1}

        redeemed = await client.post(
            "/api/v1/rewards/redemptions",
            json={"cardNumber": "#0001-9", "rewardType": "cashback"},
            headers=staff,
        )
        assert redeemed.status_code == 200
        assert redeemed.json()["pointsSpent"] == 12
        assert redeemed.json()["creditAmount"] == 12
        assert redeemed.json()["newBalance"] == 0

        again = await client.post(
            "/api/v1/rewards/redemptions",
            json={"cardNumber": "#0001-9", "rewardType": "cashback"},
            headers=staff,
        )
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "insufficient_points"

        audit = await client.get("/api/v1/customers/0001-9/ledger/audit", headers=staff)
        assert audit.status_code == 200
        assert audit.json()["consistent"] is True
        assert audit.json()["entries"] == 2
        assert audit.json()["storedBalance"] == 0


@pytest.mark.asyncio
async def test_register_errors_use_structured_detail(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing_tenant = await client.post(
            "/api/v1/customers/register",
            json={"name": "Ana Souza", "phone": "11988887777"},
        )
        invalid = await client.post(
            "/api/v1/customers/register",
            json={"name": "Ana Souza", "phone": "123"},
            headers=_headers(tenant),
        )
        unknown_card = await client.get("/api/v1/cards/0042-2", headers=_headers(tenant))

    assert missing_tenant.status_code == 401
    assert missing_tenant.json()["detail"]["error"] == "not_authenticated"
    assert invalid.status_code == 422
    assert invalid.json()["detail"]["error"] == "validation_error"
    assert "phone" in invalid.json()["detail"]["fieldErrors"]
    assert unknown_card.status_code == 404
    assert unknown_card.json()["detail"]["error"] == "customer_not_found"


@pytest.mark.asyncio
async def test_pos_requires_a_known_staff_member(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)
    other = await tenant_seeder(session_factory, slug="other")
    payload = {"cardNumber": "#0001-9", "amountCents": 1000}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        no_staff = await client.post("/api/v1/pos/sales", json=payload, headers=_headers(tenant))
        stranger = await client.post("/api/v1/pos/sales", json=payload, headers=_headers(tenant, "nobody"))
        foreign = await client.post("/api/v1/pos/sales", json=payload, headers=_headers(tenant, other.owner_user))
        bad_card = await client.post(
            "/api/v1/pos/sales",
            json={"cardNumber": "0001-9", "amountCents": 1000},
            headers=_headers(tenant, tenant.owner_user),
        )
        unknown_card = await client.post(
            "/api/v1/pos/sales",
            json=payload,
            headers=_headers(tenant, tenant.owner_user),
        )

    assert [response.status_code for response in (no_staff, stranger, foreign)] == [401, 401, 401]
    assert bad_card.status_code == 422
    assert bad_card.json()["detail"]["error"] == "invalid_card_format"
    assert unknown_card.status_code == 404
    assert unknown_card.json()["detail"]["error"] == "customer_not_found"


@pytest.mark.asyncio
async def test_free_product_redemption_over_http(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(
        session_factory,
        reward_type=RewardTypeEnum.FREE_PRODUCT,
        rewards=(("Sobremesa", 10),),
    )
    staff = _headers(tenant, tenant.owner_user)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(
            "/api/v1/customers/register",
            json={"name": "Ana Souza", "phone": "11988887777"},
            headers=_headers(tenant),
        )
        before = await client.get("/api/v1/rewards/check", params={"card_number": "#0001-9"}, headers=staff)
        await client.post("/api/v1/pos/sales", json={"cardNumber": "#0001-9", "amountCents": 1500}, headers=staff)
        after = await client.get("/api/v1/rewards/check", params={"card_number": "#0001-9"}, headers=staff)
        missing_reward = await client.post(
            "/api/v1/rewards/redemptions",
            json={"cardNumber": "#0001-9", "rewardType": "free_product"},
            headers=staff,
        )
        redeemed = await client.post(
            "/api/v1/rewards/redemptions",
            json={
                "cardNumber": "#0001-9",
                "rewardType": "free_product",
                "rewardConfigId": str(tenant.reward_ids[0]),
            },
            headers=staff,
        )

    assert before.json() == {"type": "free_product", "pointsBalance": 0, "available": False}
    assert after.json()["available"] is True
    assert after.json()["rewardName"] == "Sobremesa"
    assert after.json()["rewardId"] == str(tenant.reward_ids[0])
    assert missing_reward.status_code == 404
    assert missing_reward.json()["detail"]["error"] == "reward_not_found"
    assert redeemed.status_code == 200
    assert redeemed.json()["pointsSpent"] == 10
    assert redeemed.json()["newBalance"] == 5


@pytest.mark.asyncio
async def test_rank_settings_are_owner_managed(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)
    new_ranks = {
        "ranks": [
            {"name": "VIP", "minVisits": 5, "multiplier": "3", "discountPct": "20"},
            {"name": "Novato", "minVisits": 0, "multiplier": "1", "discountPct": "0"},
        ]
    }

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        listed = await client.get("/api/v1/settings/ranks", headers=_headers(tenant, tenant.manager_user))
        forbidden = await client.put(
            "/api/v1/settings/ranks",
            json=new_ranks,
            headers=_headers(tenant, tenant.manager_user),
        )
        replaced = await client.put(
            "/api/v1/settings/ranks",
            json=new_ranks,
            headers=_headers(tenant, tenant.owner_user),
        )
        invalid = await client.put(
            "/api/v1/settings/ranks",
            json={"ranks": [{"name": "Only", "minVisits": 0, "multiplier": "20"}]},
            headers=_headers(tenant, tenant.owner_user),
        )

    assert [rank["name"] for rank in listed.json()] == ["Bronze", "Prata", "Ouro"]
    assert forbidden.status_code == 403
    assert replaced.status_code == 200
    assert [(rank["name"], rank["sortOrder"], rank["multiplier"]) for rank in replaced.json()] == [
        ("Novato", 0, 1.0),
        ("VIP", 1, 3.0),
    ]
    assert invalid.status_code == 422
    assert invalid.json()["detail"]["error"] == "validation_error"
    assert "ranks.0.multiplier" in invalid.json()["detail"]["fieldErrors"]
