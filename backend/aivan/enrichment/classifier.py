"""
Keyword Classifier - Ordered keyword rules, first match wins.

Used both to pick the route for a user message (image generation, maps)
and to categorize grounding citations into place-card types. Rule sets
are kept per language and merged in the configured locale order.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    """A label and the keywords that select it."""
    label: str
    keywords: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in self.keywords)


class KeywordClassifier:
    """Classifies text with the first matching rule, falling back to ``default``."""

    def __init__(self, rules: Sequence[KeywordRule], default: Optional[str] = None):
        self.rules = list(rules)
        self.default = default

    def classify(self, text: str) -> Optional[str]:
        for rule in self.rules:
            if rule.matches(text):
                return rule.label
        return self.default

    def matches(self, text: str) -> bool:
        """True if any rule matches."""
        return any(rule.matches(text) for rule in self.rules)


# Per-language keyword tables: label -> keywords, in rule order.
LocaleRules = Dict[str, List[str]]

IMAGE_REQUEST_KEYWORDS: Dict[str, LocaleRules] = {
    "he": {"image": ["צייר", "צור תמונה", "תמונה של"]},
    "en": {"image": ["draw", "generate image"]},
}

MAPS_KEYWORDS: Dict[str, LocaleRules] = {
    "he": {"maps": [
        "איפה", "מסעדה", "טיול", "נווט", "מפה", "מיקום", "קרוב ל",
        "מלון", "בית מלון", "אוטובוס", "קו", "תחנה", 'לו"ז', "מתי מגיע",
        "רכבת", "תחבורה", "טיסה", "טיסות",
    ]},
    "en": {"maps": [
        "where", "map", "trip", "route", "navigate", "location", "restaurant",
        "store", "shop", "hotel", "bus", "station", "schedule", "stop",
        "flight", "plan", "days",
    ]},
}

PLACE_CATEGORY_KEYWORDS: Dict[str, LocaleRules] = {
    "he": {
        "hotel": ["מלון"],
        "restaurant": ["מסעדה", "פיצה", "קפה"],
        "flight": ["נמל תעופה", "טיסה"],
        "transport": ["קו", "תחנה", "רכבת"],
        "nature": ["פארק", "שמורה", "גן", "הר"],
        "shopping": ["קניון", "שוק", "חנות"],
        "attraction": ["מוזיאון", "לונה פארק", "אטרקציה"],
    },
    "en": {
        "hotel": ["hotel", "hostel", "resort"],
        "restaurant": ["restaurant", "cafe", "pizza", "bistro"],
        "flight": ["airport", "airlines", "flight"],
        "transport": ["bus", "station", "train", "metro"],
        "nature": ["park", "reserve", "garden", "beach"],
        "shopping": ["mall", "market", "shop"],
        "attraction": ["museum", "tower", "attraction", "gallery"],
    },
}


def merge_locale_rules(tables: Dict[str, LocaleRules], locales: Iterable[str]) -> List[KeywordRule]:
    """
    Merge per-language tables into one ordered rule list.

    Label order follows the first locale that defines each label; keywords
    of later locales are appended to the same rule.
    """
    merged: Dict[str, List[str]] = {}
    for locale in locales:
        table = tables.get(locale)
        if table is None:
            logger.warning(f"No keyword rules for locale '{locale}'")
            continue
        for label, keywords in table.items():
            merged.setdefault(label, []).extend(keywords)
    return [KeywordRule(label, tuple(keywords)) for label, keywords in merged.items()]


def build_classifier(
    tables: Dict[str, LocaleRules],
    locales: Iterable[str],
    default: Optional[str] = None,
) -> KeywordClassifier:
    return KeywordClassifier(merge_locale_rules(tables, locales), default=default)
