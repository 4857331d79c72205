import asyncio

import aiohttp

from src.config.logger_config import logger
from src.wiki_import.application.ports import WikiSourcePort
from src.wiki_import.domain.models import SourcePage, WikiLangLink
from src.wiki_import.domain.rules import normalize_lang, normalize_topic_title, titles_match


class LanguageAggregator:
    """Collects the same topic from other language editions plus verification pages in the target language."""

    def __init__(self, wiki: WikiSourcePort, concurrency: int = 5) -> None:
        self.wiki = wiki
        self._semaphore = asyncio.Semaphore(concurrency)

    async def aggregate(
        self,
        session: aiohttp.ClientSession,
        base: SourcePage,
        *,
        target_lang: str,
        max_languages: int,
        max_verification_sources: int,
    ) -> list[SourcePage]:
        sources = [base]
        links: list[WikiLangLink] = []
        try:
            links = await self.wiki.fetch_lang_links(session, base.lang, base.page_id)
        except Exception as exc:
            logger.warning("Language links for '{}' unavailable: {}: {}", base.title, type(exc).__name__, exc)

        selected = links[: max(max_languages, 0)]
        # Each fetch fills its own slot; failures come back as None.
        fetched = await asyncio.gather(*(self._fetch_link(session, link) for link in selected))
        for page in fetched:
            if page is not None and not self._already_present(sources, page):
                sources.append(page)

        target = normalize_lang(target_lang)
        if target and max_verification_sources > 0:
            target_link = next((link for link in links if normalize_lang(link.lang) == target), None)
            query = target_link.title if target_link else base.title
            limit = max_languages + max_verification_sources
            try:
                await self._add_verification_sources(session, sources, base, target, query, limit)
            except Exception as exc:
                logger.warning("Verification search for '{}' failed: {}: {}", query, type(exc).__name__, exc)

        logger.info("Aggregated {} sources for '{}'", len(sources), base.title)
        return sources

    async def _fetch_link(self, session: aiohttp.ClientSession, link: WikiLangLink) -> SourcePage | None:
        async with self._semaphore:
            try:
                return await self.wiki.fetch_page(session, link.lang, title=link.title)
            except Exception as exc:
                logger.warning("Fetching [{}] '{}' failed: {}: {}", link.lang, link.title, type(exc).__name__, exc)
                return None

    async def _add_verification_sources(
        self,
        session: aiohttp.ClientSession,
        sources: list[SourcePage],
        base: SourcePage,
        target_lang: str,
        query: str,
        limit: int,
    ) -> None:
        hits = await self.wiki.search(session, target_lang, query, limit=10)
        for hit in hits:
            if len(sources) >= limit:
                break
            if not titles_match(hit.title, base.title):
                continue
            if self._already_present_key(sources, target_lang, hit.page_id, hit.title):
                continue
            page = await self.wiki.fetch_page(session, target_lang, page_id=hit.page_id, title=hit.title)
            if page is None or self._already_present(sources, page):
                continue
            sources.append(page)

    @classmethod
    def _already_present(cls, sources: list[SourcePage], page: SourcePage) -> bool:
        return cls._already_present_key(sources, page.lang, page.page_id, page.title)

    @staticmethod
    def _already_present_key(sources: list[SourcePage], lang: str, page_id: int | None, title: str) -> bool:
        normalized = normalize_topic_title(title)
        for source in sources:
            if source.lang != lang:
                continue
            if page_id is not None and source.page_id == page_id:
                return True
            if normalize_topic_title(source.title) == normalized:
                return True
        return False
