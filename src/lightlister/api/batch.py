from __future__ import annotations

from fastapi import APIRouter, Depends

from ..models.api_models import GroupImagesRequest
from ..models.grouping import GroupingResult
from ..services.grouping_service import GroupingService
from .dependencies import get_grouping_service, get_identity


router = APIRouter(prefix="/batch", tags=["batch"])


@router.post("/group", response_model=GroupingResult)
async def group_images(
    payload: GroupImagesRequest,
    identity: str = Depends(get_identity),
    grouping: GroupingService = Depends(get_grouping_service),
) -> GroupingResult:
    # Grouping is free; credits are charged per analysis, not per upload.
    return await grouping.group_images(payload.images)
