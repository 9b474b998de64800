from __future__ import annotations

import pytest

from lightlister.errors import UnknownProductError, UserNotFoundError
from lightlister.logging.ledger_logger import LedgerLogger
from lightlister.models.user import SubscriptionStatus
from lightlister.services.subscription_service import SubscriptionService


@pytest.fixture
def subscriptions(db, ledger_path, credit_ledger) -> SubscriptionService:
    return SubscriptionService(
        db=db,
        ledger=LedgerLogger(db=db, file_path=ledger_path),
        credit_ledger=credit_ledger,
    )


def test_catalog_lists_plans_and_packs(subscriptions):
    products = {p.id: p for p in subscriptions.list_products()}

    assert products["starter"].credits == 150
    assert products["professional"].recurring is True
    assert products["small"].recurring is False
    assert products["small"].credits == 100

    with pytest.raises(UnknownProductError):
        subscriptions.get_product("platinum")


@pytest.mark.asyncio
async def test_credit_pack_adds_to_total(subscriptions, credit_ledger):
    await credit_ledger.ensure_user_exists("user-1")
    await credit_ledger.consume("user-1")

    record = await subscriptions.apply_purchase("user-1", "small")

    assert record.credits_total == 110
    assert record.credits_used == 1
    assert credit_ledger.get_available_credits(record) == 109
    latest = (await credit_ledger.get_history("user-1", limit=1))[0]
    assert latest.transaction_type == "purchase"
    assert latest.metadata["product_id"] == "small"


@pytest.mark.asyncio
async def test_subscription_replaces_allotment_and_keeps_bonus(subscriptions, credit_ledger):
    await credit_ledger.ensure_user_exists("user-1")
    await credit_ledger.consume("user-1")
    await credit_ledger.grant_bonus("user-1", 5)

    record = await subscriptions.apply_purchase("user-1", "professional")

    assert record.credits_total == 450
    assert record.credits_used == 0
    assert record.bonus_credits == 5
    assert record.subscription_status == SubscriptionStatus.ACTIVE
    assert record.subscription_plan == "professional"
    assert record.subscription_valid_until is not None
    latest = (await credit_ledger.get_history("user-1", limit=1))[0]
    assert latest.transaction_type == "subscription"
    assert latest.available_after == 455


@pytest.mark.asyncio
async def test_cancel_subscription_keeps_counters(subscriptions, credit_ledger):
    await credit_ledger.ensure_user_exists("user-1")
    await subscriptions.apply_purchase("user-1", "starter")

    record = await subscriptions.cancel_subscription("user-1")

    assert record.subscription_status == SubscriptionStatus.CANCELLED
    assert record.credits_total == 150


@pytest.mark.asyncio
async def test_purchase_requires_existing_user(subscriptions):
    with pytest.raises(UserNotFoundError):
        await subscriptions.apply_purchase("ghost", "small")
    with pytest.raises(UserNotFoundError):
        await subscriptions.apply_purchase("ghost", "business")
    with pytest.raises(UserNotFoundError):
        await subscriptions.cancel_subscription("ghost")
