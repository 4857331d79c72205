"""Typed events shared by every text generation backend.

Backends yield ``DeltaEvent`` for incremental text, ``MessageEvent`` for a
complete assistant message, ``ErrorEvent`` when the backend reports a failure
and a final ``DoneEvent``.
"""

import json
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any

from src.llm.errors import LlmProviderError


@dataclass(frozen=True)
class MessageEvent:
    text: str


@dataclass(frozen=True)
class DeltaEvent:
    text: str


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class DoneEvent:
    pass


LlmEvent = MessageEvent | DeltaEvent | ErrorEvent | DoneEvent

_ERROR_TYPES = {"error", "turn.failed"}
_MESSAGE_TYPES = {"message", "thread.message"}
_DELTA_TYPES = {"text_delta", "content_block_delta", "delta"}


def extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(extract_text(part) for part in content)
    if isinstance(content, dict):
        for key in ("text", "output_text"):
            value = content.get(key)
            if isinstance(value, str):
                return value
    return ""


class JsonLineEventDecoder:
    """Turns one line of ``codex exec --json`` output into an event.

    Lines that are not JSON are passed through as text deltas so plain-text
    CLIs still work.
    """

    def decode(self, line: str) -> LlmEvent | None:
        stripped = line.strip()
        if not stripped:
            return None
        try:
            event = json.loads(stripped)
        except json.JSONDecodeError:
            return DeltaEvent(text=stripped + "\n")
        if not isinstance(event, dict):
            return DeltaEvent(text=stripped + "\n")

        event_type = event.get("type")
        if event_type in _ERROR_TYPES:
            error = event.get("error")
            nested = error.get("message") if isinstance(error, dict) else error
            message = extract_text(event.get("message") or nested) or "Codex CLI reported an error"
            return ErrorEvent(message=message)

        if event_type in _MESSAGE_TYPES:
            message = event.get("message", event)
            if isinstance(message, dict) and message.get("role") == "assistant":
                text = extract_text(message.get("content") or message.get("text"))
                return MessageEvent(text=text) if text else None
            return None

        if event_type == "item.completed":
            item = event.get("item")
            if isinstance(item, dict) and item.get("type") in {"agent_message", "assistant_message"}:
                text = extract_text(item.get("text") or item.get("content"))
                return MessageEvent(text=text) if text else None
            return None

        if event_type in _DELTA_TYPES:
            text = extract_text(event.get("text") or event.get("delta") or event.get("output_text"))
            return DeltaEvent(text=text) if text else None

        return None


async def collect_text(events: AsyncIterable[LlmEvent]) -> str:
    """Join the text of an event stream; raise if the backend reported an error."""
    parts: list[str] = []
    error: str | None = None
    async for event in events:
        if isinstance(event, ErrorEvent):
            error = event.message
        elif isinstance(event, (MessageEvent, DeltaEvent)):
            parts.append(event.text)
    if error is not None:
        raise LlmProviderError(error)
    return "".join(parts).strip()
