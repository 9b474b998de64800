"""
Vision-model image grouping.

The model sees every thumbnail labelled with its index and is asked to return
JSON describing which photos show the same physical item. Anything other than
a parseable list of groups is reported as AIGroupingUnavailableError so the
caller can fall back to deterministic chunking.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Protocol, Sequence, Tuple

import anthropic
from pydantic import ValidationError

from ..errors import AIGroupingUnavailableError
from ..models.grouping import Group, ImageDescriptor


logger = logging.getLogger(__name__)

AI_DEFAULT_CONFIDENCE = 0.9
# Floor for model-reported confidence; stays above the fallback grouping value.
AI_MIN_CONFIDENCE = 0.75
DEFAULT_MEDIA_TYPE = "image/jpeg"

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

GROUPING_PROMPT = """You are helping a reseller list second-hand items on eBay and Vinted.
The {count} photos above are labelled "Image 0" to "Image {last}". Several photos
may show the same physical item (front, back, labels, flaws).

Group the photos by item. Every image index must appear in exactly one group,
and there must be at most {max_groups} groups.

Reply with JSON only, in this shape:
{{"groups": [{{"indices": [0, 1, 2], "name": "Short item description", "confidence": 0.9}}]}}"""


class ImageGrouper(Protocol):
    async def group(
        self, images: Sequence[ImageDescriptor], max_groups: int
    ) -> List[Group]: ...


def split_thumbnail(thumbnail: str) -> Tuple[str, str]:
    """Return (media_type, base64 data) for a raw payload or a data URL."""
    match = _DATA_URL_RE.match(thumbnail)
    if match is None:
        return DEFAULT_MEDIA_TYPE, thumbnail.strip()
    media_type = match.group(1).lower()
    if media_type == "image/jpg":
        media_type = DEFAULT_MEDIA_TYPE
    return media_type, thumbnail[match.end():].strip()


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    text = text[3:]
    for lang in ("json", "JSON"):
        text = text.removeprefix(lang)
    return text.rsplit("```", 1)[0].strip()


def extract_json(text: str) -> Dict[str, Any]:
    """Parse the JSON object out of a free-form model reply."""
    text = _strip_code_fence(text.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise AIGroupingUnavailableError("no JSON object in model reply") from None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise AIGroupingUnavailableError("unparseable JSON in model reply") from exc
    if not isinstance(data, dict):
        raise AIGroupingUnavailableError("model reply is not a JSON object")
    return data


def parse_groups(data: Dict[str, Any]) -> List[Group]:
    raw_groups = data.get("groups")
    if not isinstance(raw_groups, list) or not raw_groups:
        raise AIGroupingUnavailableError("model returned no groups")

    groups: List[Group] = []
    for ordinal, raw in enumerate(raw_groups, start=1):
        if not isinstance(raw, dict):
            raise AIGroupingUnavailableError("group entry is not an object")
        confidence = raw.get("confidence", AI_DEFAULT_CONFIDENCE)
        try:
            confidence = min(1.0, max(AI_MIN_CONFIDENCE, float(confidence)))
            group = Group(
                indices=raw.get("indices"),
                suggested_name=str(raw.get("name") or f"Item {ordinal}"),
                confidence=confidence,
            )
        except (TypeError, ValueError, ValidationError) as exc:
            raise AIGroupingUnavailableError(f"malformed group {ordinal}") from exc
        groups.append(group)
    return groups


class AnthropicImageGrouper:
    """ImageGrouper backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        max_tokens: int = 1024,
    ) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    def build_messages(
        self, images: Sequence[ImageDescriptor], max_groups: int
    ) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = []
        for image in images:
            if not image.thumbnail:
                raise AIGroupingUnavailableError(f"image {image.index} has no thumbnail")
            media_type, data = split_thumbnail(image.thumbnail)
            content.append({"type": "text", "text": f"Image {image.index}:"})
            content.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": media_type, "data": data},
                }
            )
        content.append(
            {
                "type": "text",
                "text": GROUPING_PROMPT.format(
                    count=len(images), last=len(images) - 1, max_groups=max_groups
                ),
            }
        )
        return [{"role": "user", "content": content}]

    async def group(
        self, images: Sequence[ImageDescriptor], max_groups: int
    ) -> List[Group]:
        messages = self.build_messages(images, max_groups)
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=messages,  # type: ignore[arg-type]
            )
        except anthropic.APIError as exc:
            raise AIGroupingUnavailableError(f"grouping request failed: {exc}") from exc

        logger.info(
            "AI grouping used %s input / %s output tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return parse_groups(extract_json(text))
