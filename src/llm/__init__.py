"""Text generation backends: hosted Gemini, OpenRouter and the Codex CLI."""

from src.llm.errors import LlmConfigError, LlmError, LlmProviderError, LlmTimeoutError
from src.llm.events import DeltaEvent, DoneEvent, ErrorEvent, JsonLineEventDecoder, MessageEvent, collect_text
from src.llm.service import PROVIDERS, TextGenerator, build_text_generator, normalize_provider

__all__ = [
    "build_text_generator",
    "collect_text",
    "DeltaEvent",
    "DoneEvent",
    "ErrorEvent",
    "JsonLineEventDecoder",
    "LlmConfigError",
    "LlmError",
    "LlmProviderError",
    "LlmTimeoutError",
    "MessageEvent",
    "normalize_provider",
    "PROVIDERS",
    "TextGenerator",
]
