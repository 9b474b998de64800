from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GroupingMethod(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"


class ImageDescriptor(BaseModel):
    index: int = Field(ge=0, description="Position in the submitted sequence.")
    thumbnail: Optional[str] = Field(
        default=None,
        description="Base64 payload or data URL; only read by the AI grouping path.",
    )


class Group(BaseModel):
    indices: list[int] = Field(min_length=1)
    suggested_name: str
    confidence: float = Field(ge=0.0, le=1.0)


class GroupingResult(BaseModel):
    groups: list[Group]
    method: GroupingMethod
    degraded: bool = Field(
        default=False,
        description="Set when the overflow policy produced an oversized last group.",
    )
    total_groups: int
    average_images_per_group: int
