"""Enrichment module - response routing, place-card synthesis and the card block codec."""

from .classifier import KeywordRule, KeywordClassifier, build_classifier
from .places import (
    PLACES_OPEN,
    PLACES_CLOSE,
    format_places_block,
    has_places_block,
    split_places_block,
)
from .pipeline import (
    ResponseEnrichmentPipeline,
    CONNECTION_ERROR_MESSAGE,
    EMPTY_REPLY_MESSAGE,
    IMAGE_ERROR_MESSAGE,
    IMAGE_NOT_CREATED_MESSAGE,
    MAPS_TOOL,
    SEARCH_TOOL,
)

__all__ = [
    'KeywordRule', 'KeywordClassifier', 'build_classifier',
    'PLACES_OPEN', 'PLACES_CLOSE', 'format_places_block', 'has_places_block', 'split_places_block',
    'ResponseEnrichmentPipeline', 'CONNECTION_ERROR_MESSAGE', 'EMPTY_REPLY_MESSAGE',
    'IMAGE_ERROR_MESSAGE', 'IMAGE_NOT_CREATED_MESSAGE', 'MAPS_TOOL', 'SEARCH_TOOL',
]
