from __future__ import annotations

import pytest

from lightlister.models.user import UserCreditRecord

USER = {"X-User-Id": "user_2abc"}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/credits"),
        ("post", "/credits/consume"),
        ("post", "/credits/grant"),
        ("get", "/credits/history"),
        ("post", "/credits/purchases"),
        ("post", "/credits/subscription/cancel"),
        ("post", "/batch/group"),
    ],
)
async def test_requests_without_identity_are_unauthorized(client, db, method, path):
    response = await getattr(client, method)(path)

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert await db.get_user("user_2abc") is None


@pytest.mark.asyncio
async def test_first_access_creates_user_with_starter_credits(client):
    response = await client.get("/credits", headers=USER)

    assert response.status_code == 200
    assert response.json() == {
        "available": 10,
        "total": 10,
        "used": 0,
        "bonus": 0,
        "low_credits": True,
        "out_of_credits": False,
    }


@pytest.mark.asyncio
async def test_consume_until_insufficient(client, db):
    await db.add_user(UserCreditRecord(id="user_2abc", credits_total=2))

    first = await client.post("/credits/consume", headers=USER, json={"image_count": 12})
    assert first.status_code == 200
    assert first.json() == {"success": True, "remaining": 1}

    second = await client.post("/credits/consume", headers=USER)
    assert second.json() == {"success": True, "remaining": 0}

    third = await client.post("/credits/consume", headers=USER)
    assert third.status_code == 402
    body = third.json()
    assert body["success"] is False
    assert body["reason"] == "InsufficientCredits"

    record = await db.get_user("user_2abc")
    assert record.credits_used == 2


@pytest.mark.asyncio
async def test_grant_and_history(client):
    welcome = await client.post("/credits/grant", headers=USER)
    assert welcome.json()["credits_granted"] == 10

    refused = await client.post("/credits/grant", headers=USER)
    assert refused.json()["success"] is False

    await client.post("/credits/consume", headers=USER)
    history = await client.get("/credits/history", headers=USER, params={"limit": 5})

    assert history.status_code == 200
    assert [row["type"] for row in history.json()] == ["consume", "starter_grant"]
    assert history.json()[0]["available_after"] == 9


@pytest.mark.asyncio
async def test_products(client):
    response = await client.get("/credits/products")

    ids = [p["id"] for p in response.json()]
    assert ids == ["starter", "professional", "business", "small"]


@pytest.mark.asyncio
async def test_group_images_uses_fallback(client):
    images = [{"index": i, "thumbnail": "aGVsbG8="} for i in range(120)]

    response = await client.post("/batch/group", headers=USER, json={"images": images})

    assert response.status_code == 200
    body = response.json()
    assert body["method"] == "fallback"
    assert body["total_groups"] == 20
    assert body["degraded"] is False
    assert body["groups"][0] == {
        "indices": [0, 1, 2, 3, 4, 5],
        "suggested_name": "Item 1",
        "confidence": 0.7,
    }


@pytest.mark.asyncio
async def test_group_images_rejects_bad_input(client):
    empty = await client.post("/batch/group", headers=USER, json={"images": []})
    assert empty.status_code == 400
    assert empty.json()["error"] == "no_images_provided"

    missing = await client.post("/batch/group", headers=USER, json={})
    assert missing.status_code == 400
    assert missing.json()["error"] == "malformed_input"

    shuffled = await client.post(
        "/batch/group", headers=USER, json={"images": [{"index": 1}, {"index": 0}]}
    )
    assert shuffled.status_code == 400
    assert shuffled.json()["error"] == "malformed_input"


@pytest.mark.asyncio
async def test_purchases_apply_packs_and_plans(client, db):
    pack = await client.post("/credits/purchases", headers=USER, json={"product_id": "small"})
    assert pack.status_code == 200
    assert pack.json()["available"] == 110

    await client.post("/credits/consume", headers=USER)
    plan = await client.post(
        "/credits/purchases", headers=USER, json={"product_id": "professional"}
    )
    assert plan.status_code == 200
    assert plan.json()["available"] == 450
    assert plan.json()["used"] == 0

    record = await db.get_user("user_2abc")
    assert record.subscription_status == "active"
    assert record.subscription_plan == "professional"

    history = await client.get("/credits/history", headers=USER)
    assert [row["type"] for row in history.json()][:2] == ["subscription", "consume"]


@pytest.mark.asyncio
async def test_purchase_rejects_unknown_products(client, db):
    response = await client.post(
        "/credits/purchases", headers=USER, json={"product_id": "platinum"}
    )

    assert response.status_code == 404
    assert await db.get_user("user_2abc") is None

    empty = await client.post("/credits/purchases", headers=USER, json={})
    assert empty.status_code == 400
    assert empty.json()["error"] == "malformed_input"


@pytest.mark.asyncio
async def test_cancel_subscription_keeps_remaining_credits(client, db):
    await client.post("/credits/purchases", headers=USER, json={"product_id": "starter"})

    response = await client.post("/credits/subscription/cancel", headers=USER)

    assert response.status_code == 200
    assert response.json()["available"] == 150
    record = await db.get_user("user_2abc")
    assert record.subscription_status == "cancelled"

    ghost = await client.post(
        "/credits/subscription/cancel", headers={"X-User-Id": "user_ghost"}
    )
    assert ghost.status_code == 404
