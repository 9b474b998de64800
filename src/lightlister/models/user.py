from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field

from .base import DBSerializableModel, utcnow


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class UserCreditRecord(DBSerializableModel):
    """
    Per-user credit counters.

    The id is the identity string supplied by the identity provider and
    doubles as the uniqueness constraint that makes first-access creation
    race-safe.
    """

    collection_name: ClassVar[str] = "users"

    id: str = Field(description="Opaque identity from the identity provider.")
    email: Optional[str] = None
    credits_total: int = Field(
        default=0, description="Cumulative purchased, subscription and starter credits."
    )
    credits_used: int = Field(default=0, description="Cumulative consumed credits.")
    bonus_credits: int = Field(default=0, description="Grants outside the purchase flow.")
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    subscription_plan: Optional[str] = None
    subscription_valid_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def available(self) -> int:
        """Raw balance; negative only when debits have over-run."""
        return self.credits_total - self.credits_used + self.bonus_credits


class CreditDisplay(BaseModel):
    """Balance as shown to the user; never negative."""

    available: int
    total: int
    used: int
    bonus: int
    low_credits: bool = False
    out_of_credits: bool = False
