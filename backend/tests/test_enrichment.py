"""
Unit tests for routing, place cards and the response pipeline.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from aivan.enrichment import (
    CONNECTION_ERROR_MESSAGE,
    EMPTY_REPLY_MESSAGE,
    IMAGE_ERROR_MESSAGE,
    IMAGE_NOT_CREATED_MESSAGE,
    MAPS_TOOL,
    SEARCH_TOOL,
    KeywordClassifier,
    KeywordRule,
    ResponseEnrichmentPipeline,
    format_places_block,
    split_places_block,
)
from aivan.enrichment.classifier import PLACE_CATEGORY_KEYWORDS, build_classifier
from aivan.enrichment.places import PLACES_CLOSE, PLACES_OPEN
from aivan.llm.base import GeneratedImage, GroundingCitation, LLMResponse
from aivan.models import Attachment, ChatMessage, PlaceCard


def make_provider(content: str = "Here you go", citations=None, image=None):
    provider = MagicMock()
    provider.generate_content = AsyncMock(return_value=LLMResponse(
        content=content, model="test-model", citations=citations or []
    ))
    provider.generate_image = AsyncMock(return_value=image)
    return provider


def make_pipeline(provider, **kwargs) -> ResponseEnrichmentPipeline:
    return ResponseEnrichmentPipeline(
        provider,
        chat_model="chat-model",
        maps_model="maps-model",
        image_model="image-model",
        **kwargs
    )


def embedded_cards(reply: str):
    start = reply.index(PLACES_OPEN) + len(PLACES_OPEN)
    end = reply.index(PLACES_CLOSE)
    return json.loads(reply[start:end])


class TestKeywordClassifier:
    """Tests for the first-match keyword classifier."""

    def test_first_match_wins(self):
        classifier = KeywordClassifier([
            KeywordRule("hotel", ("hotel",)),
            KeywordRule("restaurant", ("restaurant",)),
        ], default="other")

        assert classifier.classify("Hotel restaurant on the roof") == "hotel"
        assert classifier.classify("Rooftop Restaurant") == "restaurant"
        assert classifier.classify("Old Town") == "other"

    def test_no_default(self):
        classifier = KeywordClassifier([KeywordRule("image", ("draw",))])

        assert classifier.classify("hello") is None
        assert classifier.matches("Please DRAW a cat")
        assert not classifier.matches("hello")

    def test_locales_merge_in_order(self):
        classifier = build_classifier(PLACE_CATEGORY_KEYWORDS, ["he", "en"], default="other")

        assert classifier.classify("מלון דן") == "hotel"
        assert classifier.classify("Grand Hotel") == "hotel"
        assert classifier.classify("מוזיאון ישראל") == "attraction"
        assert classifier.classify("City Museum") == "attraction"

    def test_unknown_locale_is_skipped(self):
        classifier = build_classifier(PLACE_CATEGORY_KEYWORDS, ["xx", "en"], default="other")

        assert classifier.classify("Beach Cafe") == "restaurant"


class TestPlacesBlock:
    """Tests for the embedded place-card block."""

    def test_split_extracts_cards(self):
        cards = [PlaceCard(type="hotel", title="Hotel Dan", uri="https://maps/1")]
        text = "Great trip!\n" + format_places_block(cards)

        prose, parsed = split_places_block(text)

        assert prose == "Great trip!"
        assert parsed == cards

    def test_missing_or_unterminated_block(self):
        assert split_places_block("Just text") == ("Just text", [])
        unterminated = f"Text {PLACES_OPEN}[]"
        assert split_places_block(unterminated) == (unterminated, [])

    def test_malformed_block_keeps_text(self):
        for payload in ["not json", '{"type": "hotel"}', '[{"type": "hotel"}]']:
            text = f"Text {PLACES_OPEN}{payload}{PLACES_CLOSE}"
            assert split_places_block(text) == (text, [])

    def test_unknown_type_becomes_other(self):
        text = f'{PLACES_OPEN}[{{"type": "spa", "title": "Dead Sea Spa"}}]{PLACES_CLOSE}'

        _, cards = split_places_block(text)

        assert cards[0].type == "other"
        assert cards[0].title == "Dead Sea Spa"

    def test_non_ascii_is_kept(self):
        block = format_places_block([PlaceCard(type="hotel", title="מלון דן")])

        assert "מלון דן" in block


class TestResponsePipeline:
    """Tests for ResponseEnrichmentPipeline.respond."""

    @pytest.mark.asyncio
    async def test_image_request_uses_image_model_only(self):
        provider = make_provider(image=GeneratedImage(data="aGVsbG8=", mime_type="image/png"))
        pipeline = make_pipeline(provider)

        reply = await pipeline.respond([], "draw a cat")

        assert reply == "data:image/png;base64,aGVsbG8="
        provider.generate_content.assert_not_called()
        provider.generate_image.assert_awaited_once_with(
            "draw a cat", aspect_ratio="1:1", model="image-model"
        )

    @pytest.mark.asyncio
    async def test_hebrew_image_request(self):
        provider = make_provider(image=GeneratedImage(data="eA=="))

        reply = await make_pipeline(provider).respond([], "צייר לי חתול")

        assert reply.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_image_without_inline_data(self):
        provider = make_provider(image=None)

        assert await make_pipeline(provider).respond([], "draw a cat") == IMAGE_NOT_CREATED_MESSAGE

    @pytest.mark.asyncio
    async def test_image_failure(self):
        provider = make_provider()
        provider.generate_image.side_effect = RuntimeError("quota")

        assert await make_pipeline(provider).respond([], "draw a cat") == IMAGE_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_image_keyword_with_attachment_goes_to_chat(self):
        provider = make_provider()
        attachment = Attachment(type="image", mimeType="image/jpeg", data="data:image/jpeg;base64,QUJD")

        await make_pipeline(provider).respond([], "draw this again", [attachment])

        provider.generate_image.assert_not_called()
        provider.generate_content.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_citations_become_classified_cards(self):
        provider = make_provider(content="Two options nearby.", citations=[
            GroundingCitation(uri="https://maps/hotel", title="Hotel Example"),
            GroundingCitation(uri="https://maps/rest", title="Restaurant Example"),
        ])

        reply = await make_pipeline(provider).respond([], "where should I stay in Paris?")

        assert reply.startswith("Two options nearby.\n" + PLACES_OPEN)
        cards = embedded_cards(reply)
        assert [(c["type"], c["title"]) for c in cards] == [
            ("hotel", "Hotel Example"),
            ("restaurant", "Restaurant Example"),
        ]
        assert cards[0]["details"] == ["Navigate", "Reviews"]

    @pytest.mark.asyncio
    async def test_cards_are_capped_and_deduplicated(self):
        provider = make_provider(citations=[
            GroundingCitation(uri="https://maps/1", title="Louvre Museum"),
            GroundingCitation(uri="https://maps/1", title="Louvre Museum"),
            GroundingCitation(uri=None, title="No link"),
            GroundingCitation(uri="https://maps/2"),
            GroundingCitation(uri="https://maps/3", title="Central Park"),
            GroundingCitation(uri="https://maps/4", title="Airport Shuttle"),
        ])

        reply = await make_pipeline(provider).respond([], "trip to Paris")

        cards = embedded_cards(reply)
        assert [c["uri"] for c in cards] == ["https://maps/1", "https://maps/2", "https://maps/3"]
        assert cards[1]["title"] == "Location on map"
        assert cards[1]["type"] == "other"

    @pytest.mark.asyncio
    async def test_existing_block_is_not_duplicated(self):
        content = "Plan:\n" + format_places_block([PlaceCard(type="flight", title="TLV to LHR")])
        provider = make_provider(content=content, citations=[
            GroundingCitation(uri="https://maps/1", title="Hotel Example"),
        ])

        reply = await make_pipeline(provider).respond([], "5 days in London")

        assert reply == content

    @pytest.mark.asyncio
    async def test_routing_picks_model_and_tool(self):
        provider = make_provider()
        pipeline = make_pipeline(provider)

        await pipeline.respond([], "Where is the nearest bus station?")
        kwargs = provider.generate_content.call_args.kwargs
        assert kwargs["model"] == "maps-model"
        assert kwargs["tools"] == [MAPS_TOOL]

        await pipeline.respond([], "Explain quantum computing")
        kwargs = provider.generate_content.call_args.kwargs
        assert kwargs["model"] == "chat-model"
        assert kwargs["tools"] == [SEARCH_TOOL]
        assert "PLACES_DATA" in kwargs["system_instruction"]

    @pytest.mark.asyncio
    async def test_history_and_attachments_are_forwarded(self):
        provider = make_provider()
        history = [
            ChatMessage(role="user", text="Hi"),
            ChatMessage(role="model", text="Hello!"),
        ]
        attachment = Attachment(type="image", mimeType="image/jpeg", data="data:image/jpeg;base64,QUJD")

        await make_pipeline(provider).respond(history, "What is this?", [attachment])

        messages = provider.generate_content.call_args.args[0]
        assert [m.role for m in messages] == ["user", "model", "user"]
        assert messages[-1].parts == [
            {"text": "What is this?"},
            {"inlineData": {"mimeType": "image/jpeg", "data": "QUJD"}},
        ]

    @pytest.mark.asyncio
    async def test_provider_error_returns_connection_message(self):
        provider = make_provider()
        provider.generate_content.side_effect = RuntimeError("network down")

        assert await make_pipeline(provider).respond([], "Hello") == CONNECTION_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_provider(self):
        pipeline = make_pipeline(None)

        assert await pipeline.respond([], "Hello") == CONNECTION_ERROR_MESSAGE
        assert await pipeline.respond([], "draw a cat") == IMAGE_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        provider = make_provider(content="")

        assert await make_pipeline(provider).respond([], "Hello") == EMPTY_REPLY_MESSAGE
