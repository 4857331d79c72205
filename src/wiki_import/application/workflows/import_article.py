import asyncio
from dataclasses import dataclass, field, replace
from typing import Callable, cast

import aiohttp

from src.config.logger_config import logger
from src.config.settings import ImportSettings, MediaLimits
from src.llm.errors import LlmError
from src.media_relevance.application.classifier import MediaRelevanceClassifier
from src.wiki_import.application.aggregator import LanguageAggregator
from src.wiki_import.application.media_collector import MediaCandidateCollector, MediaCollection
from src.wiki_import.application.persistence_writer import PersistenceWriter, WriterConfig
from src.wiki_import.application.ports import AssetStorePort, TextGeneratorPort, WikiSourcePort
from src.wiki_import.application.resolver import SourceResolver
from src.wiki_import.application.synthesizer import ContentSynthesizer
from src.wiki_import.domain.errors import (
    ImportInputError,
    PolicyViolationError,
    SynthesisFailedError,
)
from src.wiki_import.domain.models import EntityDraft, ImportRequest, ImportResult, SynthesisResult
from src.wiki_import.domain.rules import normalize_entity_type, normalize_lang, parse_wiki_page_input
from src.wiki_import.domain.wikitext import extract_wikitext_image_placements
from src.wiki_import.infrastructure.repository_sqlite import SQLiteWorldRepository

GeneratorFactory = Callable[[ImportRequest], TextGeneratorPort]


@dataclass(frozen=True)
class ImportWorkflowConfig:
    default_lang: str = "en"
    fallback_langs: tuple[str, ...] = ("en",)
    lang_limit: int = 10
    verification_limit: int = 3
    require_llm: bool = True
    source_char_limit: int = 4000
    markdown_min_chars: int = 600
    media: MediaLimits = field(default_factory=MediaLimits)
    user_agent: str = "WorldforgeWikiImport/0.1"
    connector_limit: int = 0
    connector_limit_per_host: int = 10
    connector_ttl_dns_cache: int = 300
    show_progress: bool = False

    @classmethod
    def from_settings(cls, settings: ImportSettings, show_progress: bool = False) -> "ImportWorkflowConfig":
        return cls(
            default_lang=settings.default_lang,
            fallback_langs=settings.fallback_langs,
            lang_limit=settings.lang_limit,
            verification_limit=settings.verification_limit,
            require_llm=settings.require_llm,
            source_char_limit=settings.source_char_limit,
            markdown_min_chars=settings.markdown_min_chars,
            media=settings.media,
            user_agent=settings.user_agent,
            show_progress=show_progress,
        )


class ImportArticleWorkflow:
    def __init__(
        self,
        wiki: WikiSourcePort,
        repository: SQLiteWorldRepository,
        asset_store: AssetStorePort,
        generator_factory: GeneratorFactory | None = None,
        config: ImportWorkflowConfig | None = None,
    ) -> None:
        self.wiki = wiki
        self.repository = repository
        self.asset_store = asset_store
        self.generator_factory = generator_factory
        self.config = config or ImportWorkflowConfig()
        self.resolver = SourceResolver(wiki)
        self.aggregator = LanguageAggregator(wiki)
        self.synthesizer = ContentSynthesizer(
            source_char_limit=self.config.source_char_limit,
            min_chars=self.config.markdown_min_chars,
        )

    async def run(self, request: ImportRequest) -> ImportResult:
        self.validate(request)
        connector = aiohttp.TCPConnector(
            limit=self.config.connector_limit,
            limit_per_host=self.config.connector_limit_per_host,
            ttl_dns_cache=self.config.connector_ttl_dns_cache,
        )
        headers = {"User-Agent": self.config.user_agent}
        async with aiohttp.ClientSession(connector=connector, headers=headers) as session:
            return await self.run_with_session(session, request)

    @staticmethod
    def validate(request: ImportRequest) -> None:
        if not request.workspace_id.strip() or not (request.page_id.strip() or request.title.strip()):
            raise ImportInputError("Missing fields")

    async def run_with_session(self, session: aiohttp.ClientSession, request: ImportRequest) -> ImportResult:
        self.validate(request)
        preferred = normalize_lang(request.lang) or self.config.default_lang
        title = request.title.strip() or None
        if title:
            # URL and "xx:Title" input carry their own language.
            parsed = parse_wiki_page_input(title, preferred)
            if parsed is not None:
                preferred, title = parsed
        resolved = await self.resolver.resolve(
            session,
            preferred,
            page_id=request.page_id.strip() or None,
            title=title,
            fallback_langs=self.config.fallback_langs,
        )

        if resolved.fallback_used and not request.use_llm and self.config.require_llm:
            raise PolicyViolationError("LLM is required to synthesize non-target language sources")

        generator = self._build_generator(request) if request.use_llm else None
        output_lang = normalize_lang(request.target_lang) or preferred

        sources = [resolved.page]
        if generator is not None and request.aggregate_langs:
            sources = await self.aggregator.aggregate(
                session,
                resolved.page,
                target_lang=output_lang,
                max_languages=self.config.lang_limit,
                max_verification_sources=self.config.verification_limit,
            )

        prompt_template = None
        if request.prompt_template_id.strip():
            prompt_template = self.repository.get_prompt_template(request.workspace_id, request.prompt_template_id)
            if prompt_template is None:
                logger.warning("Prompt template {} not found; using the default prompt", request.prompt_template_id)

        limits = self._limits_for(request)
        placements = extract_wikitext_image_placements(resolved.page.wikitext)
        collector = MediaCandidateCollector(self.wiki)

        synthesis, collection = await asyncio.gather(
            self.synthesizer.synthesize(sources, output_lang, generator=generator, prompt_template=prompt_template),
            self._collect_media(collector, session, request, sources, placements, limits),
            return_exceptions=True,
        )
        if isinstance(synthesis, BaseException):
            raise synthesis
        if isinstance(collection, BaseException):
            logger.warning("Media collection failed: {}: {}", type(collection).__name__, collection)
            collection = MediaCollection()
        synthesis = cast(SynthesisResult, synthesis)

        entity_type = normalize_entity_type(request.entity_type)
        classifier = MediaRelevanceClassifier(gallery_minimum=limits.gallery_minimum)
        results = await classifier.classify(
            collection.infos,
            resolved.page.title,
            entity_type,
            resolved.page.wikitext,
            placements,
            generator=generator,
        )

        draft = EntityDraft(
            workspace_id=request.workspace_id,
            user_id=request.user_id,
            entity_type=entity_type,
            title=resolved.page.title,
            publish=request.publish,
        )
        writer = PersistenceWriter(
            self.wiki,
            self.repository,
            self.asset_store,
            collector,
            WriterConfig(limits=limits, show_progress=self.config.show_progress),
        )
        return await writer.commit(
            session,
            draft,
            resolved,
            sources,
            synthesis,
            results,
            collection,
            media_enabled=request.import_media,
        )

    async def _collect_media(
        self,
        collector: MediaCandidateCollector,
        session: aiohttp.ClientSession,
        request: ImportRequest,
        sources,
        placements,
        limits: MediaLimits,
    ) -> MediaCollection:
        if not request.import_media:
            return MediaCollection()
        return await collector.collect(session, sources, placements, limits)

    def _build_generator(self, request: ImportRequest) -> TextGeneratorPort | None:
        if self.generator_factory is None:
            return None
        try:
            return self.generator_factory(request)
        except LlmError as exc:
            raise SynthesisFailedError(f"LLM synthesis failed: {exc}") from exc

    def _limits_for(self, request: ImportRequest) -> MediaLimits:
        limits = self.config.media
        if request.media_max_candidates is not None and request.media_max_candidates > 0:
            limits = replace(limits, max_candidates=request.media_max_candidates)
        if request.media_max_bytes is not None and request.media_max_bytes > 0:
            limits = replace(limits, max_bytes=request.media_max_bytes)
        return limits
