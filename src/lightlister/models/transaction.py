from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from pydantic import Field

from .base import DBSerializableModel, utcnow


class TransactionType(str, Enum):
    STARTER_GRANT = "starter_grant"
    CONSUME = "consume"
    BONUS_GRANT = "bonus_grant"
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"


class CreditTransaction(DBSerializableModel):
    """
    Audit row written for every change to a user's credit counters.
    """

    collection_name: ClassVar[str] = "credit_transactions"

    id: Optional[str] = Field(default=None)
    user_id: str
    transaction_type: TransactionType
    credits: int = Field(description="Credits granted or consumed by this change.")
    available_after: int
    timestamp: datetime = Field(default_factory=utcnow)
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
