from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field


class CreditProduct(BaseModel):
    """
    A purchasable bundle of credits. Recurring products are subscription
    plans that replace the period allotment; the rest are one-time packs.
    """

    id: str
    name: str
    credits: int = Field(gt=0)
    price: float
    recurring: bool = False
    description: Optional[str] = None


SUBSCRIPTION_PERIOD_DAYS = 30

PLANS: Dict[str, CreditProduct] = {
    plan.id: plan
    for plan in (
        CreditProduct(
            id="starter",
            name="Starter",
            credits=150,
            price=29,
            recurring=True,
            description="Perfect for casual sellers",
        ),
        CreditProduct(
            id="professional",
            name="Professional",
            credits=450,
            price=69,
            recurring=True,
            description="For serious resellers",
        ),
        CreditProduct(
            id="business",
            name="Business",
            credits=750,
            price=99,
            recurring=True,
            description="For high-volume operations",
        ),
    )
}

CREDIT_PACKS: Dict[str, CreditProduct] = {
    pack.id: pack
    for pack in (
        CreditProduct(
            id="small",
            name="Quick Top-up",
            credits=100,
            price=25,
            description="Emergency credits when you need them",
        ),
    )
}

CATALOG: Dict[str, CreditProduct] = {**PLANS, **CREDIT_PACKS}
