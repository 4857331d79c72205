import json
import re
from dataclasses import replace
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config.logger_config import logger
from src.config.prompts import MEDIA_ANALYSIS_PROMPT
from src.media_relevance.domain.relevance_store import MediaRelevanceStore
from src.media_relevance.domain.rules import (
    DEFAULT_LLM_PRIORITY,
    EXCLUDED_PRIORITY,
    HEURISTIC_GALLERY_COUNT,
    HEURISTIC_GALLERY_PRIORITY,
    INFOBOX_PRIORITY,
    INLINE_PRIORITY,
    SIZE_FILL_PRIORITY,
    TECHNICAL_FILL_PRIORITY,
    WIKITEXT_EXCERPT_CHARS,
    is_technical_image,
    matches_topic_keywords,
)
from src.wiki_import.application.ports import TextGeneratorPort
from src.wiki_import.domain.models import PLACEMENTS, MediaInfo, MediaRelevanceResult, WikitextImagePlacement
from src.wiki_import.domain.rules import relevance_key, topic_keywords
from src.wiki_import.domain.wikitext import INTRO_SECTION

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class MediaVerdict(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    relevant: bool = False
    reason: str = ""
    placement: str = "exclude"
    suggested_caption: str | None = Field(default=None, alias="suggestedCaption")
    priority: int = DEFAULT_LLM_PRIORITY
    inline_section: str | None = Field(default=None, alias="inlineSection")

    @field_validator("placement", mode="before")
    @classmethod
    def _known_placement(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text if text in PLACEMENTS else "exclude"

    @field_validator("priority", mode="before")
    @classmethod
    def _numeric_priority(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return DEFAULT_LLM_PRIORITY
        return int(value)

    @field_validator("relevant", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "yes", "1"}
        return bool(value)


class MediaVerdictList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    media: list[MediaVerdict] = Field(default_factory=list)


def parse_media_analysis_response(text: str) -> list[MediaVerdict]:
    """Structured verdicts from a model answer; anything unparseable yields no verdicts."""
    payload = (text or "").strip()
    fence = _CODE_FENCE_RE.search(payload)
    if fence:
        payload = fence.group(1).strip()

    matches = [m for m in (_JSON_OBJECT_RE.search(payload), _JSON_ARRAY_RE.search(payload)) if m]
    if matches:
        # Whichever bracket opens first is the outermost value.
        payload = min(matches, key=lambda m: m.start()).group(0)

    try:
        data = json.loads(payload)
        if isinstance(data, list):
            data = {"media": data}
        return MediaVerdictList.model_validate(data).media
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        logger.warning("Could not parse media analysis response: {}", exc)
        return []


def _describe_media(info: MediaInfo) -> str:
    dimensions = f"{info.width}x{info.height}" if info.width and info.height else "unknown size"
    size = f"{info.size} bytes" if info.size else "unknown bytes"
    return f"- {info.title} ({info.mime}, {dimensions}, {size})"


def _describe_placement(placement: WikitextImagePlacement) -> str:
    where = "infobox" if placement.is_infobox else f"section: {placement.section}"
    caption = f" caption: {placement.caption}" if placement.caption else ""
    return f"- {placement.filename} [{where}]{caption}"


def build_media_analysis_prompt(
    infos: Sequence[MediaInfo],
    topic_title: str,
    topic_type: str,
    wikitext: str,
    placements: Sequence[WikitextImagePlacement],
) -> str:
    return MEDIA_ANALYSIS_PROMPT.format(
        page_title=topic_title,
        entity_type=topic_type or "concept",
        media_list="\n".join(_describe_media(info) for info in infos),
        placements="\n".join(_describe_placement(p) for p in placements) or "(none)",
        wikitext_excerpt=(wikitext or "")[:WIKITEXT_EXCERPT_CHARS],
    )


class MediaRelevanceClassifier:
    def __init__(self, gallery_minimum: int = 4) -> None:
        self.gallery_minimum = gallery_minimum

    async def classify(
        self,
        infos: Sequence[MediaInfo],
        topic_title: str,
        topic_type: str,
        wikitext: str,
        placements: Sequence[WikitextImagePlacement],
        *,
        generator: TextGeneratorPort | None = None,
    ) -> list[MediaRelevanceResult]:
        if not infos:
            return []

        store = MediaRelevanceStore()
        for info in infos:
            store.seed(info.title)

        await self._initial_verdicts(store, infos, topic_title, topic_type, wikitext, placements, generator)
        self._backstop_infobox_media(store, infos, "audio/")
        self._backstop_infobox_media(store, infos, "video/")
        self._apply_wikitext_placements(store, infos, placements)
        self._demote_extra_infobox_images(store, infos)
        self._fill_gallery_technical(store, infos)
        self._fill_gallery_by_size(store, infos, topic_title)

        results = store.results()
        logger.info(
            "Classified {} media for '{}': {} relevant ({} gallery)",
            len(results),
            topic_title,
            sum(1 for r in results if r.relevant),
            store.count("gallery"),
        )
        return results

    async def _initial_verdicts(
        self,
        store: MediaRelevanceStore,
        infos: Sequence[MediaInfo],
        topic_title: str,
        topic_type: str,
        wikitext: str,
        placements: Sequence[WikitextImagePlacement],
        generator: TextGeneratorPort | None,
    ) -> None:
        if generator is None:
            self._apply_heuristic(store, infos)
            return

        prompt = build_media_analysis_prompt(infos, topic_title, topic_type, wikitext, placements)
        try:
            response = await generator.generate(prompt)
        except Exception as exc:
            logger.warning("Media classification failed, using fallback: {}: {}", type(exc).__name__, exc)
            self._apply_failure_fallback(store, infos, f"fallback: {exc}")
            return

        known = {relevance_key(info.title) for info in infos}
        applied = 0
        for verdict in parse_media_analysis_response(response):
            if relevance_key(verdict.title) not in known:
                continue
            store.apply(
                MediaRelevanceResult(
                    title=verdict.title,
                    relevant=verdict.relevant and verdict.placement != "exclude",
                    placement=verdict.placement,
                    priority=verdict.priority if verdict.relevant else max(verdict.priority, EXCLUDED_PRIORITY),
                    reason=verdict.reason,
                    caption=verdict.suggested_caption,
                    inline_section=verdict.inline_section,
                ),
                "llm",
            )
            applied += 1

        if applied == 0:
            logger.info("Media classification returned no usable verdicts; using heuristic")
            self._apply_heuristic(store, infos)

    @staticmethod
    def _apply_heuristic(store: MediaRelevanceStore, infos: Sequence[MediaInfo]) -> None:
        for index, info in enumerate(infos):
            if index == 0:
                placement, priority, relevant = "infobox", INFOBOX_PRIORITY, True
            elif index <= HEURISTIC_GALLERY_COUNT:
                placement, priority, relevant = "gallery", HEURISTIC_GALLERY_PRIORITY, True
            else:
                placement, priority, relevant = "exclude", EXCLUDED_PRIORITY, False
            store.apply(
                MediaRelevanceResult(
                    title=info.title,
                    relevant=relevant,
                    placement=placement,
                    priority=priority,
                    reason="heuristic",
                ),
                "heuristic",
            )

    @staticmethod
    def _apply_failure_fallback(store: MediaRelevanceStore, infos: Sequence[MediaInfo], reason: str) -> None:
        for index, info in enumerate(infos):
            first = index == 0
            store.apply(
                MediaRelevanceResult(
                    title=info.title,
                    relevant=first,
                    placement="infobox" if first else "exclude",
                    priority=INFOBOX_PRIORITY if first else EXCLUDED_PRIORITY,
                    reason=reason,
                ),
                "heuristic",
            )

    @staticmethod
    def _backstop_infobox_media(store: MediaRelevanceStore, infos: Sequence[MediaInfo], mime_prefix: str) -> None:
        matching = [info for info in infos if info.mime.lower().startswith(mime_prefix)]
        if not matching:
            return
        for info in matching:
            entry = store.get(info.title)
            if entry is not None and entry.relevant and entry.placement == "infobox":
                return

        first = matching[0]
        entry = store.get(first.title)
        store.apply(
            MediaRelevanceResult(
                title=first.title,
                relevant=True,
                placement="infobox",
                priority=INFOBOX_PRIORITY,
                reason=f"infobox {mime_prefix.rstrip('/')} backstop",
                caption=entry.result.caption if entry else None,
            ),
            "backstop",
        )

    @staticmethod
    def _apply_wikitext_placements(
        store: MediaRelevanceStore,
        infos: Sequence[MediaInfo],
        placements: Sequence[WikitextImagePlacement],
    ) -> None:
        known = {relevance_key(info.title) for info in infos}
        # Inline first so an infobox placement of the same file has the last word.
        ordered = sorted(placements, key=lambda p: p.is_infobox)
        for placement in ordered:
            if relevance_key(placement.filename) not in known:
                continue
            if not placement.is_infobox and (not placement.section or placement.section == INTRO_SECTION):
                continue

            entry = store.get(placement.filename)
            existing_caption = entry.result.caption if entry else None
            if placement.is_infobox:
                result = MediaRelevanceResult(
                    title=placement.filename,
                    relevant=True,
                    placement="infobox",
                    priority=INFOBOX_PRIORITY,
                    reason="wikitext infobox",
                    caption=existing_caption or placement.caption,
                )
            else:
                result = MediaRelevanceResult(
                    title=placement.filename,
                    relevant=True,
                    placement="inline",
                    priority=INLINE_PRIORITY,
                    reason="wikitext inline",
                    caption=existing_caption or placement.caption,
                    inline_section=placement.section,
                )
            store.apply(result, "wikitext")

    @staticmethod
    def _demote_extra_infobox_images(store: MediaRelevanceStore, infos: Sequence[MediaInfo]) -> None:
        """Keep one infobox image (or the wikitext ones) and move the rest to the gallery."""
        image_keys = {relevance_key(info.title) for info in infos if info.is_image}
        boxed = sorted(
            (
                entry
                for entry in store
                if entry.relevant and entry.placement == "infobox" and entry.key in image_keys
            ),
            key=lambda entry: (entry.result.priority, entry.order),
        )
        keep_best = not any(entry.source == "wikitext" for entry in boxed)
        for entry in boxed:
            if entry.source == "wikitext":
                continue
            if keep_best:
                keep_best = False
                continue
            # Same source rank, so the store accepts the rewrite.
            store.apply(
                replace(
                    entry.result,
                    placement="gallery",
                    priority=max(entry.result.priority, HEURISTIC_GALLERY_PRIORITY),
                    reason=f"{entry.result.reason or 'infobox'}; extra infobox image",
                ),
                entry.source,
            )

    def _fill_gallery_technical(self, store: MediaRelevanceStore, infos: Sequence[MediaInfo]) -> None:
        if store.count("gallery") >= self.gallery_minimum:
            return
        for info in infos:
            entry = store.get(info.title)
            if entry is None or entry.relevant or not info.is_image or not is_technical_image(info.title):
                continue
            store.apply(
                MediaRelevanceResult(
                    title=info.title,
                    relevant=True,
                    placement="gallery",
                    priority=TECHNICAL_FILL_PRIORITY,
                    reason="gallery fill: technical",
                    caption=entry.result.caption,
                ),
                "fill",
            )

    def _fill_gallery_by_size(self, store: MediaRelevanceStore, infos: Sequence[MediaInfo], topic_title: str) -> None:
        missing = self.gallery_minimum - store.count("gallery")
        if missing <= 0:
            return

        keywords = topic_keywords(topic_title)
        remaining = []
        for info in infos:
            entry = store.get(info.title)
            if entry is None or entry.relevant or not info.is_image:
                continue
            remaining.append(info)

        # Stable sort: keyword matches first, then larger files, discovery order on ties.
        remaining.sort(
            key=lambda info: (
                0 if keywords and matches_topic_keywords(info.title, keywords) else 1,
                -(info.size or info.pixel_area),
            )
        )
        for info in remaining[:missing]:
            entry = store.get(info.title)
            store.apply(
                MediaRelevanceResult(
                    title=info.title,
                    relevant=True,
                    placement="gallery",
                    priority=SIZE_FILL_PRIORITY,
                    reason="gallery fill: size",
                    caption=entry.result.caption if entry else None,
                ),
                "fill",
            )
