from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from ..ai.grouping_client import ImageGrouper
from ..errors import AIGroupingUnavailableError, MalformedInputError, NoImagesProvidedError
from ..models.grouping import Group, GroupingMethod, GroupingResult, ImageDescriptor


logger = logging.getLogger(__name__)

# eBay accepts at most 24 photos per listing
MAX_GROUP_SIZE = 24
MAX_GROUPS = 25
AVERAGE_IMAGES_PER_ITEM = 6
FALLBACK_CONFIDENCE = 0.7


def fallback_groups(
    count: int,
    max_group_size: int = MAX_GROUP_SIZE,
    max_groups: int = MAX_GROUPS,
    average_images_per_item: int = AVERAGE_IMAGES_PER_ITEM,
    confidence: float = FALLBACK_CONFIDENCE,
) -> List[Group]:
    """
    Chunk indices `0..count-1` into consecutive groups.

    Aims for `average_images_per_item` photos per group, never more than
    `max_group_size`, and never more than `max_groups` groups. When the cap
    on groups is hit with indices left over, the last group takes all of
    them so that no image is dropped.
    """
    if count <= 0:
        raise NoImagesProvidedError("no images provided")

    target_groups = min(max_groups, math.ceil(count / average_images_per_item))
    group_size = min(math.ceil(count / target_groups), max_group_size)

    chunks: List[List[int]] = []
    for start in range(0, count, group_size):
        if len(chunks) == max_groups:
            chunks[-1].extend(range(start, count))
            break
        chunks.append(list(range(start, min(start + group_size, count))))

    return [
        Group(indices=chunk, suggested_name=f"Item {ordinal}", confidence=confidence)
        for ordinal, chunk in enumerate(chunks, start=1)
    ]


def is_exact_partition(groups: Sequence[Group], count: int) -> bool:
    seen = sorted(i for group in groups for i in group.indices)
    return seen == list(range(count))


class GroupingService:
    """
    Groups uploaded photos into items.

    The AI grouper is tried once; its answer is used verbatim if it is a
    well-formed partition. Otherwise, or when no grouper is configured, the
    deterministic fallback runs.
    """

    def __init__(
        self,
        grouper: Optional[ImageGrouper] = None,
        ai_max_images: int = 20,
        max_group_size: int = MAX_GROUP_SIZE,
        max_groups: int = MAX_GROUPS,
    ) -> None:
        self._grouper = grouper
        self._ai_max_images = ai_max_images
        self._max_group_size = max_group_size
        self._max_groups = max_groups

    async def group_images(self, images: Sequence[ImageDescriptor]) -> GroupingResult:
        self._validate(images)

        try:
            groups = await self._group_with_ai(images)
            method = GroupingMethod.AI
        except AIGroupingUnavailableError as exc:
            logger.info("Using fallback grouping for %d images: %s", len(images), exc)
            groups = fallback_groups(
                len(images),
                max_group_size=self._max_group_size,
                max_groups=self._max_groups,
            )
            method = GroupingMethod.FALLBACK

        degraded = any(len(g.indices) > self._max_group_size for g in groups)
        if degraded:
            logger.warning(
                "Degraded grouping: %d images exceed %d groups of %d",
                len(images),
                self._max_groups,
                self._max_group_size,
            )

        logger.info("Created %d groups from %d images (%s)", len(groups), len(images), method.value)
        return GroupingResult(
            groups=groups,
            method=method,
            degraded=degraded,
            total_groups=len(groups),
            average_images_per_group=round(len(images) / len(groups)),
        )

    async def _group_with_ai(self, images: Sequence[ImageDescriptor]) -> List[Group]:
        if self._grouper is None:
            raise AIGroupingUnavailableError("no AI grouper configured")
        if len(images) > self._ai_max_images:
            raise AIGroupingUnavailableError(
                f"{len(images)} images exceed the AI batch limit of {self._ai_max_images}"
            )
        if any(not image.thumbnail for image in images):
            raise AIGroupingUnavailableError("thumbnails missing")

        try:
            groups = await self._grouper.group(images, self._max_groups)
        except AIGroupingUnavailableError:
            raise
        except Exception as exc:
            logger.exception("AI grouper failed for %d images", len(images))
            raise AIGroupingUnavailableError(f"AI grouper failed: {exc}") from exc

        if not groups or len(groups) > self._max_groups:
            raise AIGroupingUnavailableError(f"AI returned {len(groups)} groups")
        if not is_exact_partition(groups, len(images)):
            raise AIGroupingUnavailableError("AI groups are not a partition of the input")
        if any(len(g.indices) > self._max_group_size for g in groups):
            raise AIGroupingUnavailableError("AI group exceeds the maximum group size")
        return groups

    @staticmethod
    def _validate(images: Sequence[ImageDescriptor]) -> None:
        if not images:
            raise NoImagesProvidedError("no images provided")
        indices = [image.index for image in images]
        if indices != list(range(len(images))):
            raise MalformedInputError(
                "image indices must run 0..N-1 in submission order",
                details={"received": indices[:50]},
            )
