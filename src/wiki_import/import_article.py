from __future__ import annotations
import asyncio
from datetime import datetime, timezone
from pathlib import Path

from src.config.settings import ImportSettings, get_settings
from src.llm.service import TextGenerator, build_text_generator
from src.wiki_import.application.workflows.import_article import ImportArticleWorkflow, ImportWorkflowConfig
from src.wiki_import.domain.models import ImportRequest, ImportResult
from src.wiki_import.infrastructure.api_call_sink import ApiCallJsonlSink
from src.wiki_import.infrastructure.asset_store import LocalAssetStore
from src.wiki_import.infrastructure.mw_client import MediaWikiClient
from src.wiki_import.infrastructure.repository_sqlite import SQLiteWorldRepository


def make_generator_factory(settings: ImportSettings):
    def factory(request: ImportRequest) -> TextGenerator:
        return build_text_generator(
            settings,
            request.llm_provider or None,
            model=request.llm_model or None,
            api_key=request.llm_api_key or None,
            codex_auth_base64=request.codex_auth_base64 or None,
        )

    return factory


async def run_import_async(
    request: ImportRequest,
    *,
    settings: ImportSettings | None = None,
    show_progress: bool = True,
) -> ImportResult:
    settings = settings or get_settings()
    db_file_path = Path(settings.db_path)
    db_file_path.parent.mkdir(parents=True, exist_ok=True)
    run_id = _build_run_id()

    raw_sink = ApiCallJsonlSink(settings.api_log_dir, run_id=run_id)
    mw_client = MediaWikiClient(raw_sink=raw_sink, run_id=run_id)
    repository = SQLiteWorldRepository(db_file_path)
    asset_store = LocalAssetStore(settings.storage_dir)
    workflow = ImportArticleWorkflow(
        wiki=mw_client,
        repository=repository,
        asset_store=asset_store,
        generator_factory=make_generator_factory(settings),
        config=ImportWorkflowConfig.from_settings(settings, show_progress=show_progress),
    )
    try:
        return await workflow.run(request)
    finally:
        raw_sink.close()
        repository.close()


def run_import(
    request: ImportRequest,
    *,
    settings: ImportSettings | None = None,
    show_progress: bool = True,
) -> ImportResult:
    return asyncio.run(run_import_async(request, settings=settings, show_progress=show_progress))


def _build_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
