from __future__ import annotations

import json

import anthropic
import httpx
import pytest

from fakes import FakeMessages, make_images
from lightlister.ai.grouping_client import (
    AI_DEFAULT_CONFIDENCE,
    AI_MIN_CONFIDENCE,
    AnthropicImageGrouper,
    extract_json,
    parse_groups,
    split_thumbnail,
)
from lightlister.errors import AIGroupingUnavailableError
from lightlister.models.grouping import GroupingMethod
from lightlister.services.grouping_service import FALLBACK_CONFIDENCE, GroupingService


class FakeClient:
    def __init__(self, messages: FakeMessages) -> None:
        self.messages = messages


def test_split_thumbnail_handles_data_urls_and_raw_payloads():
    assert split_thumbnail("data:image/png;base64,AAAA") == ("image/png", "AAAA")
    assert split_thumbnail("data:image/jpg;base64,BBBB") == ("image/jpeg", "BBBB")
    assert split_thumbnail("CCCC") == ("image/jpeg", "CCCC")


def test_extract_json_from_fenced_and_chatty_replies():
    payload = {"groups": [{"indices": [0]}]}
    fenced = "```json\n" + json.dumps(payload) + "\n```"
    chatty = "Here are the groups:\n" + json.dumps(payload) + "\nLet me know!"

    assert extract_json(fenced) == payload
    assert extract_json(chatty) == payload
    with pytest.raises(AIGroupingUnavailableError):
        extract_json("I could not see any items.")


def test_parse_groups_defaults_and_clamps():
    groups = parse_groups(
        {
            "groups": [
                {"indices": [0, 1], "name": "Nike hoodie", "confidence": 1.7},
                {"indices": [2]},
                {"indices": [3], "name": "Blurry scarf", "confidence": 0.2},
            ]
        }
    )

    assert groups[0].suggested_name == "Nike hoodie"
    assert groups[0].confidence == 1.0
    assert groups[1].suggested_name == "Item 2"
    assert groups[1].confidence == AI_DEFAULT_CONFIDENCE
    assert groups[2].confidence == AI_MIN_CONFIDENCE
    assert min(g.confidence for g in groups) > FALLBACK_CONFIDENCE


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"groups": []},
        {"groups": "0,1,2"},
        {"groups": [{"indices": []}]},
        {"groups": [{"indices": ["front"]}]},
        {"groups": [{"indices": [0], "confidence": "high"}]},
        {"groups": [[0, 1]]},
    ],
)
def test_parse_groups_rejects_malformed_payloads(data):
    with pytest.raises(AIGroupingUnavailableError):
        parse_groups(data)


@pytest.mark.asyncio
async def test_grouper_sends_labelled_images_and_parses_reply():
    reply = json.dumps(
        {
            "groups": [
                {"indices": [0, 1], "name": "Ralph Lauren polo", "confidence": 0.95},
                {"indices": [2], "name": "Dr. Martens boots", "confidence": 0.8},
            ]
        }
    )
    messages = FakeMessages(text=reply)
    grouper = AnthropicImageGrouper(FakeClient(messages), model="test-model", max_tokens=256)

    groups = await grouper.group(make_images(3, thumbnail="data:image/png;base64,AAAA"), 25)

    assert [g.indices for g in groups] == [[0, 1], [2]]
    assert messages.kwargs["model"] == "test-model"
    assert messages.kwargs["max_tokens"] == 256
    content = messages.kwargs["messages"][0]["content"]
    images = [block for block in content if block["type"] == "image"]
    assert len(images) == 3
    assert images[0]["source"] == {"type": "base64", "media_type": "image/png", "data": "AAAA"}
    assert content[0] == {"type": "text", "text": "Image 0:"}
    assert "at most 25 groups" in content[-1]["text"]


@pytest.mark.asyncio
async def test_grouper_wraps_api_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeMessages(error=anthropic.APIConnectionError(request=request))
    grouper = AnthropicImageGrouper(FakeClient(messages), model="test-model")

    with pytest.raises(AIGroupingUnavailableError, match="grouping request failed"):
        await grouper.group(make_images(2), 25)


@pytest.mark.asyncio
async def test_api_failure_falls_back_end_to_end():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeMessages(error=anthropic.APIConnectionError(request=request))
    service = GroupingService(
        grouper=AnthropicImageGrouper(FakeClient(messages), model="test-model")
    )

    result = await service.group_images(make_images(8))

    assert result.method == GroupingMethod.FALLBACK
    assert [g.indices for g in result.groups] == [[0, 1, 2, 3], [4, 5, 6, 7]]
