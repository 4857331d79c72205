from collections.abc import AsyncIterator
from typing import Protocol

from src.config.logger_config import logger
from src.config.settings import ImportSettings
from src.llm.codex_cli import CodexCliRunner
from src.llm.errors import LlmConfigError
from src.llm.events import LlmEvent, collect_text
from src.llm.gemini_client import GeminiStreamClient
from src.llm.openrouter_client import OpenRouterStreamClient

PROVIDERS = ("gemini_ai", "gemini_vertex", "codex_cli", "openrouter")
_ALIASES = {"gemini": "gemini_ai", "vertex": "gemini_vertex", "codex": "codex_cli"}


class EventStreamBackend(Protocol):
    def stream(self, prompt: str) -> AsyncIterator[LlmEvent]: ...


def normalize_provider(value: str | None, default: str = "gemini_ai") -> str:
    lowered = (value or "").strip().lower()
    lowered = _ALIASES.get(lowered, lowered)
    if not lowered:
        return default
    if lowered not in PROVIDERS:
        raise LlmConfigError(f"Unsupported LLM provider: {value}")
    return lowered


class TextGenerator:
    """Provider-agnostic facade: ``stream`` yields events, ``generate`` returns the joined text."""

    def __init__(self, provider: str, backend: EventStreamBackend) -> None:
        self.provider = provider
        self.backend = backend

    def stream(self, prompt: str) -> AsyncIterator[LlmEvent]:
        return self.backend.stream(prompt)

    async def generate(self, prompt: str) -> str:
        logger.info("Generating text with {} ({} prompt chars)", self.provider, len(prompt))
        return await collect_text(self.backend.stream(prompt))


def build_text_generator(
    settings: ImportSettings,
    provider: str | None = None,
    *,
    model: str | None = None,
    api_key: str | None = None,
    codex_auth_base64: str | None = None,
) -> TextGenerator:
    name = normalize_provider(provider, default=normalize_provider(settings.llm_provider))
    chosen_model = (model or settings.llm_model or "").strip()

    if name == "gemini_ai":
        backend: EventStreamBackend = GeminiStreamClient(
            api_key=(api_key or "").strip() or settings.gemini_api_key,
            model=chosen_model or settings.gemini_model,
            source="ai_studio",
            enable_search=settings.gemini_enable_search,
        )
    elif name == "gemini_vertex":
        backend = GeminiStreamClient(
            api_key=(api_key or "").strip() or settings.vertex_api_key,
            model=chosen_model or settings.gemini_model,
            source="vertex",
            vertex_project=settings.vertex_project,
            vertex_location=settings.vertex_location,
            enable_search=settings.gemini_enable_search,
        )
    elif name == "openrouter":
        backend = OpenRouterStreamClient(
            api_key=(api_key or "").strip() or settings.openrouter_api_key,
            model=chosen_model or settings.openrouter_model,
        )
    else:
        backend = CodexCliRunner(
            cli_path=settings.codex_cli_path,
            model=chosen_model or settings.codex_model,
            timeout_seconds=settings.codex_timeout_seconds,
            auth_base64=codex_auth_base64,
        )
    return TextGenerator(name, backend)
