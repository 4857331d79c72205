"""Relevance rules, the keyed verdict store and infobox categorization."""

from src.media_relevance.domain.infobox import InfoboxSelection, categorize_infobox_media
from src.media_relevance.domain.relevance_store import MediaRelevanceStore, RelevanceEntry
from src.media_relevance.domain.rules import (
    MEDIA_DENYLIST_KEYWORDS,
    SOURCE_PRECEDENCE,
    TECHNICAL_IMAGE_KEYWORDS,
    is_denylisted,
    is_technical_image,
    matches_topic_keywords,
)

__all__ = [
    "categorize_infobox_media",
    "InfoboxSelection",
    "is_denylisted",
    "is_technical_image",
    "matches_topic_keywords",
    "MEDIA_DENYLIST_KEYWORDS",
    "MediaRelevanceStore",
    "RelevanceEntry",
    "SOURCE_PRECEDENCE",
    "TECHNICAL_IMAGE_KEYWORDS",
]
