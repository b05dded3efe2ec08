"""
Response Enrichment Pipeline - Turns a user message into one model message.

Routing:
1. Image requests without attachments go to the image model and return a
   data URI.
2. Travel/location questions use the lighter maps model with the maps
   tool; everything else uses the default model with the search tool.
3. When the reply is grounded but the model did not emit a places block,
   one is synthesized from the citations.

The pipeline never raises: transport failures become fixed messages.
"""

import logging
from typing import List, Optional

from ..core.logging_config import truncate_large_data
from ..llm.base import LLMMessage, LLMProvider, GroundingCitation
from ..models import Attachment, ChatMessage, PlaceCard
from .classifier import (
    IMAGE_REQUEST_KEYWORDS,
    MAPS_KEYWORDS,
    PLACE_CATEGORY_KEYWORDS,
    KeywordClassifier,
    build_classifier,
)
from .places import PLACES_CLOSE, PLACES_OPEN, format_places_block, has_places_block

logger = logging.getLogger(__name__)

IMAGE_NOT_CREATED_MESSAGE = "Sorry, I couldn't create the image."
IMAGE_ERROR_MESSAGE = "Something went wrong while creating the image."
EMPTY_REPLY_MESSAGE = "Sorry, I couldn't process the response."
CONNECTION_ERROR_MESSAGE = "Could not reach the assistant. Please try again."

CITATION_FALLBACK_TITLE = "Location on map"
CITATION_DESCRIPTION = "Tap for more details and directions"
CITATION_DETAILS = ["Navigate", "Reviews"]

SEARCH_TOOL = {"googleSearch": {}}
MAPS_TOOL = {"googleMaps": {}}

SYSTEM_INSTRUCTION = f"""You are Aivan, a smart travel and lifestyle assistant.

RULES FOR TRIP PLANNING AND PLACE CARDS:
1. If the user asks for a trip plan (e.g. "5 days in London"):
   - Start with a short, enthusiastic text summary of the plan.
   - Then emit a JSON block with the key components of the trip:
     the flight to the destination, a recommended hotel, the main
     attractions for each day and a recommended restaurant.

2. The JSON block must be wrapped in {PLACES_OPEN} and {PLACES_CLOSE}:
   [ {{ "type": "CATEGORY", "title": "Name or Day X: Activity", "uri": "Map link", "description": "Short explanation", "details": ["Detail 1"] }} ]

3. CATEGORY is exactly one of:
   - flight: flights
   - hotel: accommodation
   - restaurant: food and dining
   - nature: parks, hiking, outdoor views
   - attraction: museums, theme parks, landmarks
   - shopping: malls, markets
   - transport: buses, trains

4. Content:
   - For trip plans the title may name the day, e.g. "Day 1: Eiffel Tower".
   - The description is a short persuasive explanation.
   - Always try to find real locations with the maps tool.

General:
   - Answer in the user's language.
   - Keep the text outside the JSON concise.
"""


class ResponseEnrichmentPipeline:
    """Routes a user turn to the right model and enriches the reply."""

    def __init__(
        self,
        provider: Optional[LLMProvider],
        chat_model: str = "gemini-3-pro-preview",
        maps_model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        locales: Optional[List[str]] = None,
        max_place_cards: int = 3,
        image_classifier: Optional[KeywordClassifier] = None,
        maps_classifier: Optional[KeywordClassifier] = None,
        category_classifier: Optional[KeywordClassifier] = None,
    ):
        """
        Args:
            provider: LLM provider; None makes every call fail softly
            chat_model: Default reasoning model (search tool)
            maps_model: Faster model used with the maps tool
            image_model: Image generation model
            locales: Keyword rule languages, in priority order
            max_place_cards: Cap on synthesized place cards
            image_classifier: Overrides image-request detection
            maps_classifier: Overrides maps-tool selection
            category_classifier: Overrides citation categorization
        """
        locales = locales or ["he", "en"]
        self.provider = provider
        self.chat_model = chat_model
        self.maps_model = maps_model
        self.image_model = image_model
        self.max_place_cards = max_place_cards
        self.image_classifier = image_classifier or build_classifier(IMAGE_REQUEST_KEYWORDS, locales)
        self.maps_classifier = maps_classifier or build_classifier(MAPS_KEYWORDS, locales)
        self.category_classifier = category_classifier or build_classifier(
            PLACE_CATEGORY_KEYWORDS, locales, default="other"
        )

    def is_image_request(self, text: str, attachments: List[Attachment]) -> bool:
        return not attachments and self.image_classifier.matches(text)

    def needs_maps(self, text: str) -> bool:
        return self.maps_classifier.matches(text)

    async def respond(
        self,
        history: List[ChatMessage],
        text: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> str:
        """
        Produce the model message text for a new user turn.

        Args:
            history: Earlier messages of the session, without the new one
            text: The new user message
            attachments: Files sent with the message

        Returns:
            Reply text, possibly with an embedded places block, an image
            data URI, or a fixed error message
        """
        attachments = attachments or []

        if self.is_image_request(text, attachments):
            return await self._generate_image(text)

        try:
            if self.provider is None:
                raise RuntimeError("LLM provider is not configured")

            if self.needs_maps(text):
                model, tools = self.maps_model, [MAPS_TOOL]
            else:
                model, tools = self.chat_model, [SEARCH_TOOL]

            messages = [
                LLMMessage.text("user" if message.role == "user" else "model", message.text)
                for message in history
            ]
            messages.append(LLMMessage.multimodal("user", text, attachments))

            logger.debug(
                f"Sending turn: model={model}, history={len(history)}, "
                f"attachments={len(attachments)}"
            )
            response = await self.provider.generate_content(
                messages, system_instruction=SYSTEM_INSTRUCTION, tools=tools, model=model
            )
        except Exception as e:
            logger.error(
                f"Chat call failed: {str(e)}",
                exc_info=True,
                extra={"extra_fields": {"error": str(e)}}
            )
            return CONNECTION_ERROR_MESSAGE

        reply = response.content or EMPTY_REPLY_MESSAGE
        if response.citations and not has_places_block(reply):
            cards = self.cards_from_citations(response.citations)
            if cards:
                reply += "\n" + format_places_block(cards)
                logger.debug(f"Synthesized {len(cards)} place cards from citations")

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Reply: {truncate_large_data(reply, max_length=500)}")
        return reply

    def cards_from_citations(self, citations: List[GroundingCitation]) -> List[PlaceCard]:
        """Deduplicate citations by URI and classify their titles into cards."""
        cards: List[PlaceCard] = []
        seen = set()
        for citation in citations:
            if not citation.uri or citation.uri in seen:
                continue
            seen.add(citation.uri)
            title = citation.title or CITATION_FALLBACK_TITLE
            cards.append(PlaceCard(
                type=self.category_classifier.classify(title),
                title=title,
                uri=citation.uri,
                description=CITATION_DESCRIPTION,
                details=list(CITATION_DETAILS),
            ))
        return cards[:self.max_place_cards]

    async def _generate_image(self, prompt: str) -> str:
        try:
            if self.provider is None:
                raise RuntimeError("LLM provider is not configured")
            image = await self.provider.generate_image(
                prompt, aspect_ratio="1:1", model=self.image_model
            )
        except Exception as e:
            logger.error(f"Image generation error: {str(e)}", exc_info=True)
            return IMAGE_ERROR_MESSAGE

        if image is None:
            return IMAGE_NOT_CREATED_MESSAGE
        return image.data_uri
