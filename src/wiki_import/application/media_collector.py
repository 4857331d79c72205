import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import aiohttp

from src.config.logger_config import logger
from src.config.settings import MediaLimits
from src.media_relevance.domain.rules import is_denylisted, matches_topic_keywords
from src.wiki_import.application.ports import WikiSourcePort
from src.wiki_import.domain.models import COMMONS, MediaCandidate, MediaInfo, SourcePage, WikitextImagePlacement
from src.wiki_import.domain.rules import media_title_key, relevance_key, strip_file_prefix, topic_keywords


@dataclass(frozen=True)
class MediaCollection:
    candidates: tuple[MediaCandidate, ...] = ()
    infos: tuple[MediaInfo, ...] = ()
    used_keys: frozenset[str] = field(default_factory=frozenset)


def dedupe_candidates(candidates: Iterable[MediaCandidate]) -> list[MediaCandidate]:
    seen: set[str] = set()
    unique: list[MediaCandidate] = []
    for candidate in candidates:
        title = strip_file_prefix(candidate.title)
        key = media_title_key(title)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(MediaCandidate(origin=candidate.origin, title=title))
    return unique


class MediaCandidateCollector:
    def __init__(self, wiki: WikiSourcePort, concurrency: int = 5) -> None:
        self.wiki = wiki
        self._semaphore = asyncio.Semaphore(concurrency)

    async def collect(
        self,
        session: aiohttp.ClientSession,
        sources: Sequence[SourcePage],
        placements: Sequence[WikitextImagePlacement],
        limits: MediaLimits,
    ) -> MediaCollection:
        if not sources:
            return MediaCollection()

        base = sources[0]
        topic = base.title
        keywords = topic_keywords(topic)
        threshold = limits.coverage_threshold

        candidates = await self.gather_candidates(session, sources, placements)
        candidates = [c for c in candidates if not is_denylisted(c.title)]

        if len(candidates) < threshold:
            known = {media_title_key(c.title) for c in candidates}
            for title in await self._search_commons(session, topic):
                if media_title_key(title) in known or is_denylisted(title):
                    continue
                if not matches_topic_keywords(title, keywords):
                    continue
                known.add(media_title_key(title))
                candidates.append(MediaCandidate(origin=COMMONS, title=title))

        candidates = candidates[: limits.max_candidates]
        used_keys = {relevance_key(c.title) for c in candidates}
        placement_keys = {relevance_key(p.filename) for p in placements}

        looked_up = await asyncio.gather(*(self._lookup(session, candidate) for candidate in candidates))
        infos: list[MediaInfo] = []
        info_keys: set[str] = set()
        for candidate, info in zip(candidates, looked_up):
            if info is None:
                continue
            key = relevance_key(info.title)
            if key in info_keys:
                continue
            referenced = key in placement_keys or relevance_key(candidate.title) in placement_keys
            if not self._within_limits(info, limits, referenced=referenced):
                continue
            info_keys.add(key)
            used_keys.add(key)
            infos.append(info)

        if len(infos) < threshold:
            needed = min(threshold, limits.max_candidates) - len(infos)
            extra = await self.backfill(session, topic, limits, used_keys, needed)
            for info in extra:
                used_keys.add(relevance_key(info.title))
                infos.append(info)

        logger.info(
            "Collected {} media candidates, {} with metadata, for '{}'",
            len(candidates),
            len(infos),
            topic,
        )
        return MediaCollection(candidates=tuple(candidates), infos=tuple(infos), used_keys=frozenset(used_keys))

    async def gather_candidates(
        self,
        session: aiohttp.ClientSession,
        sources: Sequence[SourcePage],
        placements: Sequence[WikitextImagePlacement],
    ) -> list[MediaCandidate]:
        base = sources[0]
        raw: list[MediaCandidate] = []
        if base.page_image_title:
            raw.append(MediaCandidate(origin=base.lang, title=base.page_image_title))

        listed = await asyncio.gather(*(self._page_media(session, source) for source in sources))
        for source, titles in zip(sources, listed):
            raw.extend(MediaCandidate(origin=source.lang, title=title) for title in titles)

        raw.extend(MediaCandidate(origin=base.lang, title=p.filename) for p in placements)
        return dedupe_candidates(raw)

    async def backfill(
        self,
        session: aiohttp.ClientSession,
        topic: str,
        limits: MediaLimits,
        exclude_keys: Iterable[str],
        needed: int,
        *,
        images_only: bool = False,
    ) -> list[MediaInfo]:
        """Commons search straight to MediaInfo, skipping files already considered."""
        if needed <= 0:
            return []
        keywords = topic_keywords(topic)
        seen = set(exclude_keys)
        found: list[MediaInfo] = []
        for title in await self._search_commons(session, topic, limit=max(needed * 3, 10)):
            if len(found) >= needed:
                break
            key = relevance_key(title)
            if key in seen or is_denylisted(title) or not matches_topic_keywords(title, keywords):
                continue
            seen.add(key)
            info = await self._lookup(session, MediaCandidate(origin=COMMONS, title=title))
            if info is None or (images_only and not info.is_image):
                continue
            if not self._within_limits(info, limits, referenced=False):
                continue
            found.append(info)
        if found:
            logger.info("Backfilled {} media from commons for '{}'", len(found), topic)
        return found

    async def _page_media(self, session: aiohttp.ClientSession, source: SourcePage) -> list[str]:
        try:
            return await self.wiki.fetch_page_media(session, source.lang, source.page_id)
        except Exception as exc:
            logger.warning(
                "Media list of [{}] '{}' unavailable: {}: {}", source.lang, source.title, type(exc).__name__, exc
            )
            return []

    async def _search_commons(self, session: aiohttp.ClientSession, topic: str, limit: int = 20) -> list[str]:
        try:
            return await self.wiki.search_media(session, topic, limit=limit)
        except Exception as exc:
            logger.warning("Commons search for '{}' failed: {}: {}", topic, type(exc).__name__, exc)
            return []

    async def _lookup(self, session: aiohttp.ClientSession, candidate: MediaCandidate) -> MediaInfo | None:
        async with self._semaphore:
            origins = [candidate.origin] if candidate.origin == COMMONS else [candidate.origin, COMMONS]
            for origin in origins:
                try:
                    info = await self.wiki.fetch_image_info(session, origin, candidate.title)
                except Exception as exc:
                    logger.warning(
                        "Media info for '{}' on {} failed: {}: {}", candidate.title, origin, type(exc).__name__, exc
                    )
                    continue
                if info is not None:
                    return info
            return None

    @staticmethod
    def _within_limits(info: MediaInfo, limits: MediaLimits, *, referenced: bool) -> bool:
        if info.size is not None and info.size > limits.max_bytes:
            logger.info("Skipping '{}': {} bytes exceeds {}", info.title, info.size, limits.max_bytes)
            return False
        if info.is_image and not referenced:
            width, height = info.width or 0, info.height or 0
            if (info.width is not None or info.height is not None) and (
                width < limits.min_image_pixels or height < limits.min_image_pixels
            ):
                return False
        return True
