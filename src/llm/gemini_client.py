import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.config.logger_config import logger
from src.llm.errors import LlmConfigError
from src.llm.events import DeltaEvent, DoneEvent, ErrorEvent, LlmEvent

AI_STUDIO_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:streamGenerateContent"
VERTEX_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}/locations/{location}"
    "/publishers/google/models/{model}:streamGenerateContent"
)


class _GeminiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class GeminiPart(_GeminiModel):
    text: str | None = None


class GeminiContent(_GeminiModel):
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(_GeminiModel):
    content: GeminiContent | None = None
    finishReason: str | None = None


class GeminiError(_GeminiModel):
    code: int | None = None
    message: str = ""


class GeminiChunk(_GeminiModel):
    candidates: list[GeminiCandidate] = Field(default_factory=list)
    error: GeminiError | None = None

    @property
    def text(self) -> str:
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)


def parse_sse_data(line: str) -> str | None:
    """Payload of an SSE ``data:`` line, ``None`` for comments, blanks and other fields."""
    if not line.startswith("data:"):
        return None
    payload = line[len("data:") :].strip()
    return payload or None


class GeminiStreamClient:
    """Hosted Gemini over ``streamGenerateContent?alt=sse`` with API key auth.

    ``source`` selects Google AI Studio (``ai_studio``) or Vertex AI (``vertex``).
    """

    def __init__(
        self,
        api_key: str | None,
        model: str,
        *,
        source: str = "ai_studio",
        vertex_project: str | None = None,
        vertex_location: str | None = None,
        enable_search: bool = False,
        timeout_seconds: float = 300.0,
    ) -> None:
        if not api_key:
            raise LlmConfigError("Gemini API key not configured")
        if source == "vertex" and (not vertex_project or not vertex_location):
            raise LlmConfigError("Vertex project/location not configured")
        self.api_key = api_key
        self.model = model
        self.source = source
        self.vertex_project = vertex_project
        self.vertex_location = vertex_location
        self.enable_search = enable_search
        self.timeout_seconds = timeout_seconds

    @property
    def url(self) -> str:
        if self.source == "vertex":
            base = VERTEX_URL.format(
                location=self.vertex_location,
                project=self.vertex_project,
                model=self.model,
            )
        else:
            base = AI_STUDIO_URL.format(model=self.model)
        return f"{base}?alt=sse&key={quote(self.api_key, safe='')}"

    def build_body(self, prompt: str) -> dict[str, Any]:
        body: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if self.enable_search:
            body["tools"] = [{"google_search": {}}]
        return body

    async def stream(self, prompt: str) -> AsyncIterator[LlmEvent]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds, connect=10)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async for event in self.stream_with_session(session, prompt):
                yield event

    async def stream_with_session(self, session: aiohttp.ClientSession, prompt: str) -> AsyncIterator[LlmEvent]:
        async with session.post(self.url, json=self.build_body(prompt)) as resp:
            if resp.status != 200:
                body = await resp.text()
                logger.error("Gemini error {}: {}", resp.status, body[:500])
                yield ErrorEvent(message=f"Gemini error {resp.status}: {body[:500]}")
                yield DoneEvent()
                return

            async for raw_line in resp.content:
                payload = parse_sse_data(raw_line.decode("utf-8", errors="replace").rstrip("\r\n"))
                if payload is None:
                    continue
                try:
                    chunk = GeminiChunk.model_validate(json.loads(payload))
                except (json.JSONDecodeError, ValidationError) as exc:
                    logger.warning("Skipping malformed Gemini stream chunk: {}", exc)
                    continue
                if chunk.error is not None:
                    yield ErrorEvent(message=f"Gemini error {chunk.error.code}: {chunk.error.message}")
                    continue
                text = chunk.text
                if text:
                    yield DeltaEvent(text=text)

        yield DoneEvent()
