from typing import Any, Protocol, runtime_checkable

import aiohttp

from src.wiki_import.domain.models import EntityDraft, MediaInfo, SourcePage, WikiLangLink, WikiSearchHit


@runtime_checkable
class WikiSourcePort(Protocol):
    async def fetch_page(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        *,
        page_id: int | str | None = None,
        title: str | None = None,
    ) -> SourcePage | None: ...

    async def fetch_page_media(self, session: aiohttp.ClientSession, lang: str, page_id: int) -> list[str]: ...

    async def fetch_lang_links(self, session: aiohttp.ClientSession, lang: str, page_id: int) -> list[WikiLangLink]: ...

    async def search(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        query: str,
        limit: int = 10,
        namespace: int = 0,
    ) -> list[WikiSearchHit]: ...

    async def search_media(self, session: aiohttp.ClientSession, query: str, limit: int = 20) -> list[str]: ...

    async def fetch_image_info(self, session: aiohttp.ClientSession, lang: str, title: str) -> MediaInfo | None: ...

    async def download(self, session: aiohttp.ClientSession, url: str, max_bytes: int | None = None) -> bytes: ...


@runtime_checkable
class TextGeneratorPort(Protocol):
    async def generate(self, prompt: str) -> str: ...


@runtime_checkable
class AssetStorePort(Protocol):
    def write(self, workspace_id: str, title: str, data: bytes, now_ms: int | None = None) -> str: ...

    def delete(self, storage_key: str) -> None: ...


@runtime_checkable
class WorldRepositoryPort(Protocol):
    def create_entity(self, draft: EntityDraft) -> str: ...

    def create_article(self, workspace_id: str, entity_id: str) -> str: ...

    def create_revision(
        self,
        workspace_id: str,
        article_id: str,
        body_md: str,
        change_summary: str,
        user_id: str,
        approved: bool,
    ) -> str: ...

    def set_base_revision(self, article_id: str, revision_id: str) -> None: ...

    def update_entity_media(
        self,
        entity_id: str,
        user_id: str,
        main_image_id: str | None,
        infobox_media: dict[str, Any] | None,
    ) -> None: ...

    def create_asset(self, workspace_id: str, user_id: str, info: MediaInfo, storage_key: str, size: int) -> str: ...

    def delete_asset(self, asset_id: str) -> None: ...

    def create_source_record(
        self,
        workspace_id: str,
        user_id: str,
        target_type: str,
        target_id: str,
        *,
        source_url: str,
        title: str,
        author: str | None = None,
        license_id: str | None = None,
        license_url: str | None = None,
        attribution_text: str | None = None,
        note: str | None = None,
    ) -> str: ...

    def append_audit(
        self,
        workspace_id: str,
        user_id: str,
        action: str,
        target_type: str,
        target_id: str,
        meta: dict[str, Any],
    ) -> str: ...
