from dataclasses import dataclass, field
from typing import Sequence

import aiohttp
from tqdm import tqdm

from src.config.logger_config import logger
from src.config.settings import MediaLimits
from src.media_relevance.domain.infobox import categorize_infobox_media
from src.media_relevance.domain.rules import SIZE_FILL_PRIORITY
from src.wiki_import.application.media_collector import MediaCandidateCollector, MediaCollection
from src.wiki_import.application.ports import AssetStorePort, WikiSourcePort, WorldRepositoryPort
from src.wiki_import.domain.markdown import insert_after_section_heading, insert_gallery_section, media_markdown
from src.wiki_import.domain.models import (
    EntityDraft,
    ImportedAsset,
    ImportResult,
    InfoboxMedia,
    InfoboxMediaEntry,
    MediaInfo,
    MediaRelevanceResult,
    ResolvedPage,
    SourcePage,
    SynthesisResult,
)
from src.wiki_import.domain.rules import build_wiki_attribution, relevance_key


@dataclass(frozen=True)
class WriterConfig:
    limits: MediaLimits = field(default_factory=MediaLimits)
    show_progress: bool = False


def rewrite_body(body: str, assets: Sequence[ImportedAsset]) -> str:
    """Splice inline media under their section heading and collect the rest into a gallery."""
    snippets = [media_markdown(asset.asset_id, asset.mime, asset.caption or asset.title) for asset in assets]

    # One insertion per section keeps several images of a section in asset order.
    sections: dict[str, tuple[str, list[str]]] = {}
    for asset, snippet in zip(assets, snippets):
        if asset.placement == "inline" and (asset.inline_section or "").strip():
            key = asset.inline_section.strip().lower()
            sections.setdefault(key, (asset.inline_section, []))[1].append(snippet)

    placed: set[str] = set()
    for key, (section, section_snippets) in sections.items():
        body, inserted = insert_after_section_heading(body, section, "\n\n".join(section_snippets))
        if inserted:
            placed.add(key)

    gallery: list[str] = []
    for asset, snippet in zip(assets, snippets):
        if asset.placement == "gallery":
            gallery.append(snippet)
        elif asset.placement == "inline" and (asset.inline_section or "").strip().lower() not in placed:
            gallery.append(snippet)
    return insert_gallery_section(body, gallery)


def store_media_file(
    repository: WorldRepositoryPort,
    asset_store: AssetStorePort,
    workspace_id: str,
    user_id: str,
    info: MediaInfo,
    data: bytes,
) -> str:
    """Write the bytes, the asset row and its source record, or none of them."""
    storage_key = asset_store.write(workspace_id, info.title, data)
    asset_id = None
    try:
        asset_id = repository.create_asset(workspace_id, user_id, info, storage_key, len(data))
        repository.create_source_record(
            workspace_id,
            user_id,
            "asset",
            asset_id,
            source_url=info.url,
            title=info.title,
            author=info.author,
            license_id=info.license_id,
            license_url=info.license_url,
            attribution_text=info.attribution_text,
            note=f"origin={info.origin}",
        )
    except Exception:
        if asset_id is not None:
            repository.delete_asset(asset_id)
        asset_store.delete(storage_key)
        raise
    return asset_id


def build_infobox_media(
    results: Sequence[MediaRelevanceResult],
    infos: Sequence[MediaInfo],
    imported: Sequence[ImportedAsset],
) -> InfoboxMedia:
    by_key = {relevance_key(asset.title): asset for asset in imported}
    selection = categorize_infobox_media(results, infos)

    main_image_id = None
    for result in selection.images:
        asset = by_key.get(relevance_key(result.title))
        if asset is not None:
            main_image_id = asset.asset_id
            break

    def entries(items: Sequence[MediaRelevanceResult]) -> tuple[InfoboxMediaEntry, ...]:
        picked = []
        for result in items:
            asset = by_key.get(relevance_key(result.title))
            if asset is not None:
                picked.append(InfoboxMediaEntry(asset_id=asset.asset_id, caption=result.caption or result.title))
        return tuple(picked)

    return InfoboxMedia(
        main_image_asset_id=main_image_id,
        audio=entries(selection.audio),
        video=entries(selection.video),
    )


class PersistenceWriter:
    def __init__(
        self,
        wiki: WikiSourcePort,
        repository: WorldRepositoryPort,
        asset_store: AssetStorePort,
        collector: MediaCandidateCollector,
        config: WriterConfig | None = None,
    ) -> None:
        self.wiki = wiki
        self.repository = repository
        self.asset_store = asset_store
        self.collector = collector
        self.config = config or WriterConfig()

    async def commit(
        self,
        session: aiohttp.ClientSession,
        draft: EntityDraft,
        resolved: ResolvedPage,
        sources: Sequence[SourcePage],
        synthesis: SynthesisResult,
        results: Sequence[MediaRelevanceResult],
        collection: MediaCollection,
        *,
        media_enabled: bool = True,
    ) -> ImportResult:
        # Mandatory writes: failures here abort the import.
        entity_id = self.repository.create_entity(draft)
        article_id = self.repository.create_article(draft.workspace_id, entity_id)

        infos_by_key = {relevance_key(info.title): info for info in collection.infos}
        relevant = [r for r in results if r.relevant and r.placement != "exclude"]
        imported = await self.import_media(session, draft, relevant, infos_by_key)

        if media_enabled:
            imported += await self._backfill_gallery(session, draft, resolved.page.title, imported, collection)

        body = rewrite_body(synthesis.body_md, imported)
        change_summary = (
            f"Synthesized from Wikipedia ({len(sources)} sources)"
            if synthesis.used_llm
            else f"Imported from Wikipedia ({resolved.page.url})"
        )
        revision_id = self.repository.create_revision(
            draft.workspace_id,
            article_id,
            body,
            change_summary,
            draft.user_id,
            approved=draft.publish,
        )
        if draft.publish:
            self.repository.set_base_revision(article_id, revision_id)

        infobox = build_infobox_media(results, collection.infos, imported)
        if infobox.main_image_asset_id or infobox.has_av:
            self.repository.update_entity_media(
                entity_id,
                draft.user_id,
                infobox.main_image_asset_id,
                infobox.to_dict() if infobox.has_av else None,
            )

        for source in sources:
            attribution = build_wiki_attribution(source.title, source.url)
            self.repository.create_source_record(
                draft.workspace_id,
                draft.user_id,
                "article_revision",
                revision_id,
                source_url=source.url,
                title=source.title,
                note=f"lang={source.lang}" + ("; llm_synthesized=true" if synthesis.used_llm else ""),
                **attribution,
            )

        self.repository.append_audit(
            draft.workspace_id,
            draft.user_id,
            "import",
            "entity",
            entity_id,
            {
                "source": "wikipedia",
                "url": resolved.page.url,
                "lang": resolved.lang,
                "synthesized": synthesis.used_llm,
                "assets": len(imported),
            },
        )
        logger.info("Imported '{}' as entity {} with {} assets", draft.title, entity_id, len(imported))

        return ImportResult(
            entity_id=entity_id,
            article_id=article_id,
            revision_id=revision_id,
            body_md=body,
            used_llm=synthesis.used_llm,
            page_lang=resolved.lang,
            fallback_used=resolved.fallback_used,
            source_count=len(sources),
            assets=tuple(imported),
            infobox=infobox,
        )

    async def import_media(
        self,
        session: aiohttp.ClientSession,
        draft: EntityDraft,
        relevant: Sequence[MediaRelevanceResult],
        infos_by_key: dict[str, MediaInfo],
    ) -> list[ImportedAsset]:
        imported: list[ImportedAsset] = []
        with tqdm(
            total=len(relevant),
            desc="Importing media",
            unit="file",
            leave=False,
            disable=not self.config.show_progress,
        ) as progress:
            for result in relevant:
                info = infos_by_key.get(relevance_key(result.title))
                if info is not None:
                    asset_id = await self.import_one(session, draft.workspace_id, draft.user_id, info)
                    if asset_id is not None:
                        imported.append(
                            ImportedAsset(
                                asset_id=asset_id,
                                title=info.title,
                                mime=info.mime,
                                placement=result.placement,
                                priority=result.priority,
                                caption=result.caption,
                                inline_section=result.inline_section,
                            )
                        )
                progress.update(1)
        return imported

    async def import_one(
        self,
        session: aiohttp.ClientSession,
        workspace_id: str,
        user_id: str,
        info: MediaInfo,
    ) -> str | None:
        """Download one file into workspace storage and record it; ``None`` when anything fails."""
        try:
            data = await self.wiki.download(session, info.url, self.config.limits.max_bytes)
            return store_media_file(self.repository, self.asset_store, workspace_id, user_id, info, data)
        except Exception as exc:
            logger.warning("Skipping media '{}': {}: {}", info.title, type(exc).__name__, exc)
            return None

    async def _backfill_gallery(
        self,
        session: aiohttp.ClientSession,
        draft: EntityDraft,
        topic: str,
        imported: Sequence[ImportedAsset],
        collection: MediaCollection,
    ) -> list[ImportedAsset]:
        limits = self.config.limits
        gallery_count = sum(1 for asset in imported if asset.placement == "gallery")
        missing = min(limits.gallery_minimum - gallery_count, limits.max_candidates - len(imported))
        if missing <= 0:
            return []

        exclude = set(collection.used_keys) | {relevance_key(asset.title) for asset in imported}
        infos = await self.collector.backfill(session, topic, limits, exclude, missing, images_only=True)
        added: list[ImportedAsset] = []
        for info in infos:
            asset_id = await self.import_one(session, draft.workspace_id, draft.user_id, info)
            if asset_id is None:
                continue
            added.append(
                ImportedAsset(
                    asset_id=asset_id,
                    title=info.title,
                    mime=info.mime,
                    placement="gallery",
                    priority=SIZE_FILL_PRIORITY,
                    caption=info.title,
                )
            )
        return added
