"""
Place-card block codec.

Model messages may carry structured place data inline:

    Short summary...
    :::PLACES_DATA:::[{"type": "hotel", "title": ...}]:::END_PLACES_DATA:::

Renderers locate the delimited substring; the rest of the message is
plain prose.
"""

import json
import logging
from typing import List, Sequence, Tuple, get_args

from pydantic import ValidationError

from ..models import PlaceCard, PlaceType

logger = logging.getLogger(__name__)

PLACES_OPEN = ":::PLACES_DATA:::"
PLACES_CLOSE = ":::END_PLACES_DATA:::"
PLACE_TYPES = frozenset(get_args(PlaceType))


def _normalize(item: object) -> object:
    # Unknown categories from the model still render, as "other".
    if isinstance(item, dict) and item.get("type") not in PLACE_TYPES:
        return {**item, "type": "other"}
    return item


def has_places_block(text: str) -> bool:
    return PLACES_OPEN in text


def format_places_block(cards: Sequence[PlaceCard]) -> str:
    payload = json.dumps([card.model_dump() for card in cards], ensure_ascii=False)
    return f"{PLACES_OPEN}{payload}{PLACES_CLOSE}"


def split_places_block(text: str) -> Tuple[str, List[PlaceCard]]:
    """
    Separate the prose from the embedded place cards.

    Returns:
        (text without the block, cards). A missing, unterminated or
        malformed block yields the original text and no cards.
    """
    start = text.find(PLACES_OPEN)
    if start == -1:
        return text, []
    end = text.find(PLACES_CLOSE, start + len(PLACES_OPEN))
    if end == -1:
        return text, []

    raw = text[start + len(PLACES_OPEN):end]
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("places block is not a list")
        cards = [PlaceCard.model_validate(_normalize(item)) for item in items]
    except (ValueError, ValidationError) as e:
        logger.debug(f"Ignoring malformed places block: {e}")
        return text, []

    prose = (text[:start] + text[end + len(PLACES_CLOSE):]).strip()
    return prose, cards
