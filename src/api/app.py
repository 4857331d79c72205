"""HTTP endpoints for Wikipedia imports and ad-hoc LLM execution.

Identity comes from the ``X-User-Id`` header; editing routes additionally
require an owner/admin/editor membership in the target workspace.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import aiohttp
from fastapi import Depends, FastAPI, Form, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse

from src.config.logger_config import configure_logging, logger
from src.config.settings import ImportSettings, get_settings, parse_bool
from src.llm.errors import LlmError
from src.llm.events import DeltaEvent, ErrorEvent, MessageEvent
from src.llm.service import TextGenerator, build_text_generator
from src.wiki_import.application.workflows.import_article import ImportArticleWorkflow, ImportWorkflowConfig
from src.wiki_import.application.workflows.import_asset import ImportAssetWorkflow
from src.wiki_import.domain.errors import ImportPipelineError
from src.wiki_import.domain.models import ImportRequest
from src.wiki_import.domain.rules import normalize_lang
from src.wiki_import.import_article import make_generator_factory
from src.wiki_import.infrastructure.asset_store import LocalAssetStore
from src.wiki_import.infrastructure.mw_client import MediaWikiClient
from src.wiki_import.infrastructure.repository_sqlite import SQLiteWorldRepository

GeneratorBuilder = Callable[[str], TextGenerator]


@dataclass
class ApiServices:
    settings: ImportSettings
    repository: SQLiteWorldRepository
    asset_store: LocalAssetStore
    wiki: MediaWikiClient
    generator_builder: GeneratorBuilder
    owns_repository: bool = False

    def article_workflow(self) -> ImportArticleWorkflow:
        return ImportArticleWorkflow(
            wiki=self.wiki,
            repository=self.repository,
            asset_store=self.asset_store,
            generator_factory=make_generator_factory(self.settings),
            config=ImportWorkflowConfig.from_settings(self.settings),
        )

    def asset_workflow(self) -> ImportAssetWorkflow:
        return ImportAssetWorkflow(
            wiki=self.wiki,
            repository=self.repository,
            asset_store=self.asset_store,
            limits=self.settings.media,
            default_lang=self.settings.default_lang,
        )

    def client_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(headers={"User-Agent": self.settings.user_agent})


def get_services(request: Request) -> ApiServices:
    return request.app.state.services


def require_user(x_user_id: str | None = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


def _optional_int(value: str | None) -> int | None:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def create_app(
    settings: ImportSettings | None = None,
    *,
    repository: SQLiteWorldRepository | None = None,
    asset_store: LocalAssetStore | None = None,
    wiki: MediaWikiClient | None = None,
    generator_builder: GeneratorBuilder | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_dir, settings.log_level)
        logger.info("API started (db={}, storage={})", settings.db_path, settings.storage_dir)
        yield
        services: ApiServices = app.state.services
        if services.owns_repository:
            services.repository.close()
        logger.info("API shutdown")

    app = FastAPI(title="Worldforge Wiki Import API", version="0.1.0", lifespan=lifespan)
    app.state.services = ApiServices(
        settings=settings,
        repository=repository or SQLiteWorldRepository(settings.db_path),
        asset_store=asset_store or LocalAssetStore(settings.storage_dir),
        wiki=wiki or MediaWikiClient(),
        generator_builder=generator_builder or (lambda provider: build_text_generator(settings, provider or None)),
        owns_repository=repository is None,
    )

    @app.exception_handler(HTTPException)
    async def plain_http_error(request: Request, exc: HTTPException) -> PlainTextResponse:
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.post("/api/wiki/import/article")
    async def import_article(
        workspaceId: str = Form(""),
        lang: str = Form(""),
        pageId: str = Form(""),
        title: str = Form(""),
        entityType: str = Form("concept"),
        publish: str | None = Form(None),
        targetLang: str = Form(""),
        useLlm: str | None = Form(None),
        aggregateLangs: str | None = Form(None),
        llmProvider: str = Form(""),
        llmModel: str = Form(""),
        llmApiKey: str = Form(""),
        codexAuthBase64: str = Form(""),
        promptTemplateId: str = Form(""),
        importMedia: str | None = Form(None),
        mediaMaxCandidates: str | None = Form(None),
        mediaMaxBytes: str | None = Form(None),
        user_id: str = Depends(require_user),
        services: ApiServices = Depends(get_services),
    ) -> Response:
        if not workspaceId.strip() or not (pageId.strip() or title.strip()):
            return PlainTextResponse("Missing fields", status_code=status.HTTP_400_BAD_REQUEST)
        if not services.repository.can_edit(workspaceId, user_id):
            return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)

        defaults = services.settings
        request = ImportRequest(
            workspace_id=workspaceId.strip(),
            user_id=user_id,
            lang=lang,
            page_id=pageId,
            title=title,
            entity_type=entityType,
            publish=parse_bool(publish, False),
            target_lang=targetLang,
            use_llm=parse_bool(useLlm, defaults.use_llm),
            aggregate_langs=parse_bool(aggregateLangs, defaults.aggregate_langs),
            llm_provider=llmProvider,
            llm_model=llmModel,
            llm_api_key=llmApiKey,
            codex_auth_base64=codexAuthBase64,
            prompt_template_id=promptTemplateId,
            import_media=parse_bool(importMedia, defaults.import_media),
            media_max_candidates=_optional_int(mediaMaxCandidates),
            media_max_bytes=_optional_int(mediaMaxBytes),
        )
        try:
            result = await services.article_workflow().run(request)
        except ImportPipelineError as exc:
            logger.warning("Import rejected ({}): {}", exc.status_code, exc.message)
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        except Exception as exc:
            logger.exception("Import failed: {}", exc)
            return PlainTextResponse("Import failed", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return RedirectResponse(f"/articles/{result.entity_id}", status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/api/wiki/import/asset")
    async def import_asset(
        workspaceId: str = Form(""),
        lang: str = Form(""),
        imageTitle: str = Form(""),
        user_id: str = Depends(require_user),
        services: ApiServices = Depends(get_services),
    ) -> Response:
        if not workspaceId.strip() or not imageTitle.strip():
            return PlainTextResponse("Missing fields", status_code=status.HTTP_400_BAD_REQUEST)
        if not services.repository.can_edit(workspaceId, user_id):
            return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
        try:
            async with services.client_session() as session:
                imported = await services.asset_workflow().run(
                    session, workspaceId.strip(), user_id, normalize_lang(lang), imageTitle
                )
        except ImportPipelineError as exc:
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        return JSONResponse(imported.to_dict())

    @app.get("/api/wiki/search")
    async def search(
        q: str = "",
        lang: str = "",
        user_id: str = Depends(require_user),
        services: ApiServices = Depends(get_services),
    ) -> JSONResponse:
        query = q.strip()
        if not query:
            return JSONResponse({"results": []})
        async with services.client_session() as session:
            hits = await services.wiki.search(
                session, normalize_lang(lang) or services.settings.default_lang, query, limit=10
            )
        return JSONResponse({"results": [hit.to_dict() for hit in hits]})

    @app.post("/api/llm/execute")
    async def execute_llm(
        prompt: str = Form(""),
        context: str = Form(""),
        provider: str = Form(""),
        workspaceId: str = Form(""),
        user_id: str = Depends(require_user),
        services: ApiServices = Depends(get_services),
    ) -> Response:
        prompt = prompt.strip()
        context = context.strip()
        workspace_id = workspaceId.strip() or None
        if not prompt:
            return PlainTextResponse("Prompt required", status_code=status.HTTP_400_BAD_REQUEST)
        if workspace_id and services.repository.get_member_role(workspace_id, user_id) is None:
            return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
        try:
            generator = services.generator_builder(provider)
        except LlmError as exc:
            return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)

        full_prompt = f"{prompt}\n\n[Context]\n{context}" if context else prompt
        repository = services.repository
        log_id = repository.create_llm_log(workspace_id, user_id, generator.provider, full_prompt)

        async def body() -> AsyncIterator[str]:
            parts: list[str] = []
            error: str | None = None
            try:
                async for event in generator.stream(full_prompt):
                    if isinstance(event, ErrorEvent):
                        error = event.message
                    elif isinstance(event, (MessageEvent, DeltaEvent)) and event.text:
                        parts.append(event.text)
                        yield event.text
            except Exception as exc:
                logger.error("LLM execution failed: {}: {}", type(exc).__name__, exc)
                error = str(exc) or type(exc).__name__
            status_value = "error" if error else "ok"
            repository.finish_llm_log(log_id, "".join(parts), status_value, error)
            repository.append_audit(
                workspace_id or "system",
                user_id,
                "llm_execute",
                "llm_log",
                log_id,
                {"provider": generator.provider, "status": status_value},
            )
            if error and not parts:
                yield f"[error] {error}"

        return StreamingResponse(body(), media_type="text/plain", headers={"X-Llm-Log-Id": log_id})

    @app.get("/api/assets/file/{asset_id}")
    async def asset_file(asset_id: str, services: ApiServices = Depends(get_services)) -> Response:
        asset = services.repository.get_asset(asset_id)
        if asset is None:
            return PlainTextResponse("Not found", status_code=status.HTTP_404_NOT_FOUND)
        try:
            data = services.asset_store.read(asset["storage_key"])
        except FileNotFoundError:
            return PlainTextResponse("Not found", status_code=status.HTTP_404_NOT_FOUND)
        return Response(content=data, media_type=asset["mime_type"])

    return app
