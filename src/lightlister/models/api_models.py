from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .grouping import ImageDescriptor


class ConsumeCreditRequest(BaseModel):
    image_count: int = Field(default=1, ge=1)
    description: Optional[str] = None


class ConsumeCreditResponse(BaseModel):
    success: bool
    remaining: int


class ConsumeCreditFailure(BaseModel):
    success: bool = False
    reason: str = "InsufficientCredits"


class PurchaseRequest(BaseModel):
    product_id: str = Field(min_length=1)


class GrantOutcome(BaseModel):
    success: bool
    message: str
    credits_granted: int
    total_credits: int


class TransactionView(BaseModel):
    id: Optional[str]
    type: str
    credits: int
    available_after: int
    description: Optional[str]
    date: datetime


class GroupImagesRequest(BaseModel):
    images: list[ImageDescriptor]
