"""Domain models and deterministic rules for Wikipedia imports."""

from src.wiki_import.domain.errors import (
    ImportForbiddenError,
    ImportInputError,
    ImportPipelineError,
    ImportUnauthorizedError,
    PageNotFoundError,
    PolicyViolationError,
    SynthesisFailedError,
)
from src.wiki_import.domain.markdown import ensure_markdown
from src.wiki_import.domain.models import (
    ImportRequest,
    ImportResult,
    MediaCandidate,
    MediaInfo,
    MediaRelevanceResult,
    SourcePage,
    WikitextImagePlacement,
)
from src.wiki_import.domain.wikitext import extract_wikitext_image_placements

__all__ = [
    "ensure_markdown",
    "extract_wikitext_image_placements",
    "ImportForbiddenError",
    "ImportInputError",
    "ImportPipelineError",
    "ImportRequest",
    "ImportResult",
    "ImportUnauthorizedError",
    "MediaCandidate",
    "MediaInfo",
    "MediaRelevanceResult",
    "PageNotFoundError",
    "PolicyViolationError",
    "SourcePage",
    "SynthesisFailedError",
    "WikitextImagePlacement",
]
