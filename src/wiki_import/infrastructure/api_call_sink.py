import asyncio
import json
from pathlib import Path
from typing import Any

# wikitext of long articles can run to megabytes; keep the log readable
DEFAULT_TEXT_LIMIT = 20_000


class ApiCallJsonlSink:
    """Appends one JSON line per outbound MediaWiki call of an import run."""

    def __init__(self, output_dir: str | Path, run_id: str, text_limit: int = DEFAULT_TEXT_LIMIT) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = run_id
        self.text_limit = text_limit
        self.file_path = self.output_dir / f"wiki_import_{run_id}.jsonl"
        self.event_count = 0
        self._lock = asyncio.Lock()
        self._handle = self.file_path.open("a", encoding="utf-8")
        self._closed = False

    def _clip(self, payload: dict[str, Any]) -> dict[str, Any]:
        text = payload.get("response_text")
        if isinstance(text, str) and len(text) > self.text_limit:
            payload["response_text"] = text[: self.text_limit]
            payload["response_text_truncated"] = len(text)
        return payload

    async def write_event(self, event: dict[str, Any]) -> None:
        payload = self._clip(dict(event))
        payload.setdefault("run_id", self.run_id)
        line = json.dumps(payload, ensure_ascii=False, default=str)
        async with self._lock:
            if self._closed:
                raise RuntimeError(f"API call log {self.file_path.name} is already closed")
            self._handle.write(line + "\n")
            self._handle.flush()
            self.event_count += 1

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._handle.close()
