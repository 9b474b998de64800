from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..models.api_models import (
    ConsumeCreditFailure,
    ConsumeCreditRequest,
    ConsumeCreditResponse,
    GrantOutcome,
    PurchaseRequest,
    TransactionView,
)
from ..models.products import CreditProduct
from ..models.user import CreditDisplay
from ..services.credit_service import CreditLedger
from ..services.subscription_service import SubscriptionService
from .dependencies import (
    get_correlation_id,
    get_credit_ledger,
    get_identity,
    get_subscription_service,
)


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("", response_model=CreditDisplay)
async def get_credits(
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    correlation_id: Optional[str] = Depends(get_correlation_id),
) -> CreditDisplay:
    record = await ledger.ensure_user_exists(identity, correlation_id=correlation_id)
    return ledger.display_credits(record)


@router.post(
    "/consume",
    response_model=ConsumeCreditResponse,
    responses={402: {"model": ConsumeCreditFailure}},
)
async def consume_credit(
    payload: Optional[ConsumeCreditRequest] = None,
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    correlation_id: Optional[str] = Depends(get_correlation_id),
) -> ConsumeCreditResponse:
    payload = payload or ConsumeCreditRequest()
    await ledger.ensure_user_exists(identity, correlation_id=correlation_id)
    record = await ledger.consume(
        identity,
        image_count=payload.image_count,
        description=payload.description,
        correlation_id=correlation_id,
    )
    return ConsumeCreditResponse(
        success=True, remaining=max(0, ledger.get_available_credits(record))
    )


@router.post("/grant", response_model=GrantOutcome)
async def grant_credits(
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    correlation_id: Optional[str] = Depends(get_correlation_id),
) -> GrantOutcome:
    return await ledger.grant_goodwill(identity, correlation_id=correlation_id)


@router.get("/history", response_model=List[TransactionView])
async def get_history(
    limit: int = Query(default=20, ge=1, le=100),
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> List[TransactionView]:
    transactions = await ledger.get_history(identity, limit=limit)
    return [
        TransactionView(
            id=tx.id,
            type=tx.transaction_type,
            credits=tx.credits,
            available_after=tx.available_after,
            description=tx.description,
            date=tx.timestamp,
        )
        for tx in transactions
    ]


@router.get("/products", response_model=List[CreditProduct])
async def list_products(
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> List[CreditProduct]:
    return subscriptions.list_products()


@router.post("/purchases", response_model=CreditDisplay)
async def apply_purchase(
    payload: PurchaseRequest,
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    correlation_id: Optional[str] = Depends(get_correlation_id),
) -> CreditDisplay:
    """Apply a purchase event already verified by the payment provider."""
    subscriptions.get_product(payload.product_id)
    await ledger.ensure_user_exists(identity, correlation_id=correlation_id)
    record = await subscriptions.apply_purchase(
        identity, payload.product_id, correlation_id=correlation_id
    )
    return ledger.display_credits(record)


@router.post("/subscription/cancel", response_model=CreditDisplay)
async def cancel_subscription(
    identity: str = Depends(get_identity),
    ledger: CreditLedger = Depends(get_credit_ledger),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    correlation_id: Optional[str] = Depends(get_correlation_id),
) -> CreditDisplay:
    record = await subscriptions.cancel_subscription(
        identity, correlation_id=correlation_id
    )
    return ledger.display_credits(record)
