from typing import Sequence

import aiohttp

from src.config.logger_config import logger
from src.wiki_import.application.ports import WikiSourcePort
from src.wiki_import.domain.errors import PageNotFoundError
from src.wiki_import.domain.models import ResolvedPage, SourcePage
from src.wiki_import.domain.rules import DEFAULT_LANG, normalize_lang


class SourceResolver:
    """Finds the requested page, walking the fallback languages when the preferred edition has none."""

    def __init__(self, wiki: WikiSourcePort) -> None:
        self.wiki = wiki

    async def resolve(
        self,
        session: aiohttp.ClientSession,
        preferred_lang: str,
        *,
        page_id: int | str | None = None,
        title: str | None = None,
        fallback_langs: Sequence[str] = (),
    ) -> ResolvedPage:
        preferred = normalize_lang(preferred_lang) or DEFAULT_LANG
        page = await self.wiki.fetch_page(session, preferred, page_id=page_id or None, title=title or None)
        if page is not None:
            return ResolvedPage(lang=preferred, page=page, fallback_used=False)

        if not title:
            # A page id only means something in its own language edition.
            raise PageNotFoundError(f"Page not found: {page_id} ({preferred})")

        for lang in self._fallback_order(preferred, fallback_langs):
            page = await self._fetch_in_language(session, lang, title)
            if page is not None:
                logger.info("Resolved '{}' via fallback language {}", title, lang)
                return ResolvedPage(lang=lang, page=page, fallback_used=lang != preferred)

        raise PageNotFoundError(f"Page not found: {title}")

    async def _fetch_in_language(self, session: aiohttp.ClientSession, lang: str, title: str) -> SourcePage | None:
        page = await self.wiki.fetch_page(session, lang, title=title)
        if page is not None:
            return page

        hits = await self.wiki.search(session, lang, title, limit=1)
        if not hits:
            return None
        top = hits[0]
        if top.page_id:
            return await self.wiki.fetch_page(session, lang, page_id=top.page_id)
        return await self.wiki.fetch_page(session, lang, title=top.title)

    @staticmethod
    def _fallback_order(preferred: str, fallback_langs: Sequence[str]) -> list[str]:
        ordered: list[str] = []
        for lang in fallback_langs:
            normalized = normalize_lang(lang)
            if normalized and normalized != preferred and normalized not in ordered:
                ordered.append(normalized)
        return ordered
