from dataclasses import dataclass

import aiohttp

from src.config.logger_config import logger
from src.config.settings import MediaLimits
from src.wiki_import.application.persistence_writer import store_media_file
from src.wiki_import.application.ports import AssetStorePort, WikiSourcePort, WorldRepositoryPort
from src.wiki_import.domain.errors import ImportInputError, ImportPipelineError, PageNotFoundError
from src.wiki_import.domain.models import COMMONS, MediaInfo
from src.wiki_import.domain.rules import parse_wiki_image_input


@dataclass(frozen=True)
class ImportedMediaFile:
    asset_id: str
    title: str
    mime: str
    size: int
    source_url: str
    origin: str

    def to_dict(self) -> dict[str, object]:
        return {
            "assetId": self.asset_id,
            "title": self.title,
            "mime": self.mime,
            "size": self.size,
            "sourceUrl": self.source_url,
            "origin": self.origin,
        }


class ImportAssetWorkflow:
    """Import a single Wikipedia or Commons file as a workspace asset."""

    def __init__(
        self,
        wiki: WikiSourcePort,
        repository: WorldRepositoryPort,
        asset_store: AssetStorePort,
        limits: MediaLimits | None = None,
        default_lang: str = "en",
    ) -> None:
        self.wiki = wiki
        self.repository = repository
        self.asset_store = asset_store
        self.limits = limits or MediaLimits()
        self.default_lang = default_lang

    async def run(
        self,
        session: aiohttp.ClientSession,
        workspace_id: str,
        user_id: str,
        lang: str,
        image_input: str,
    ) -> ImportedMediaFile:
        if not workspace_id.strip():
            raise ImportInputError("Missing fields")
        parsed = parse_wiki_image_input(image_input, lang or self.default_lang)
        if parsed is None or not parsed[1]:
            raise ImportInputError("Invalid image title or URL")
        origin, title = parsed

        info = await self._lookup(session, origin, title)
        if info is None:
            raise PageNotFoundError(f"Media not found: {title}")

        try:
            data = await self.wiki.download(session, info.url, self.limits.max_bytes)
        except Exception as exc:
            logger.error("Download of '{}' failed: {}: {}", info.title, type(exc).__name__, exc)
            raise ImportPipelineError(f"Media download failed: {exc}", status_code=502) from exc

        asset_id = store_media_file(self.repository, self.asset_store, workspace_id, user_id, info, data)
        self.repository.append_audit(
            workspace_id,
            user_id,
            "import_asset",
            "asset",
            asset_id,
            {"source": "wikipedia", "url": info.url, "origin": info.origin},
        )
        logger.info("Imported media '{}' as asset {}", info.title, asset_id)
        return ImportedMediaFile(
            asset_id=asset_id,
            title=info.title,
            mime=info.mime,
            size=len(data),
            source_url=info.url,
            origin=info.origin,
        )

    async def _lookup(self, session: aiohttp.ClientSession, origin: str, title: str) -> MediaInfo | None:
        origins = [origin] if origin == COMMONS else [origin, COMMONS]
        for candidate in origins:
            info = await self.wiki.fetch_image_info(session, candidate, title)
            if info is not None:
                return info
        return None
