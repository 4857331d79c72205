import asyncio
import base64
import binascii
import json
import os
import shutil
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

from src.config.logger_config import logger
from src.llm.errors import LlmConfigError, LlmProviderError, LlmTimeoutError
from src.llm.events import DoneEvent, ErrorEvent, JsonLineEventDecoder, LlmEvent

# StreamReader line limit for codex stdout.
STDOUT_LINE_LIMIT = 4 * 1024 * 1024


def decode_codex_auth(auth_base64: str) -> str:
    try:
        decoded = base64.b64decode(auth_base64.strip(), validate=True).decode("utf-8")
        json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LlmConfigError("Invalid codex auth base64 (expected JSON)") from exc
    return decoded


class CodexCliRunner:
    """Runs ``codex exec --json`` as a subprocess and streams its JSON-lines output as events."""

    def __init__(
        self,
        cli_path: str = "codex",
        model: str = "gpt-5.2",
        timeout_seconds: float = 120.0,
        auth_base64: str | None = None,
    ) -> None:
        self.cli_path = cli_path
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.auth_json = decode_codex_auth(auth_base64) if auth_base64 and auth_base64.strip() else None
        self.decoder = JsonLineEventDecoder()

    def build_args(self) -> list[str]:
        return ["exec", "--json", "--model", self.model, "--sandbox", "read-only", "-"]

    def _prepare_home(self) -> tuple[dict[str, str], Path | None]:
        env = dict(os.environ)
        if self.auth_json is None:
            return env, None
        auth_dir = Path(tempfile.mkdtemp(prefix="codex-auth-"))
        (auth_dir / "auth.json").write_text(self.auth_json, encoding="utf-8")
        env["CODEX_HOME"] = str(auth_dir)
        return env, auth_dir

    async def stream(self, prompt: str) -> AsyncIterator[LlmEvent]:
        env, auth_dir = self._prepare_home()
        process: asyncio.subprocess.Process | None = None
        stderr_task: asyncio.Task[bytes] | None = None
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    self.cli_path,
                    *self.build_args(),
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                    limit=STDOUT_LINE_LIMIT,
                )
            except FileNotFoundError as exc:
                raise LlmProviderError("Codex CLI not installed or not on PATH") from exc
            except OSError as exc:
                raise LlmProviderError(str(exc)) from exc

            assert process.stdin is not None and process.stdout is not None and process.stderr is not None
            stderr_task = asyncio.create_task(process.stderr.read())
            process.stdin.write(f"{prompt}\n".encode("utf-8"))
            await process.stdin.drain()
            process.stdin.close()

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.timeout_seconds
            while True:
                remaining = max(deadline - loop.time(), 0)
                try:
                    raw_line = await asyncio.wait_for(process.stdout.readline(), timeout=remaining)
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
                    logger.error("Codex CLI timed out after {}s and was killed", self.timeout_seconds)
                    raise LlmTimeoutError(f"Codex CLI timed out after {self.timeout_seconds:g}s") from None
                if not raw_line:
                    break
                event = self.decoder.decode(raw_line.decode("utf-8", errors="replace"))
                if event is not None:
                    yield event

            exit_code = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
            if exit_code != 0:
                logger.error("Codex CLI exited with code {}: {}", exit_code, stderr[:500])
                yield ErrorEvent(message=stderr or f"Codex CLI exited with code {exit_code}")
            yield DoneEvent()
        finally:
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()
            if auth_dir is not None:
                shutil.rmtree(auth_dir, ignore_errors=True)
