import re
from typing import Sequence

from src.config.logger_config import logger
from src.config.prompts import SYNTHESIS_PROMPT, SYNTHESIS_RETRY_NOTE, SYNTHESIS_RULES
from src.wiki_import.application.ports import TextGeneratorPort
from src.wiki_import.domain.errors import SynthesisFailedError
from src.wiki_import.domain.markdown import (
    DEFAULT_MIN_CHARS,
    build_fallback_markdown,
    build_sources_list,
    ensure_markdown,
    is_valid_markdown,
)
from src.wiki_import.domain.models import SourcePage, SynthesisResult
from src.wiki_import.domain.rules import truncate_text

DEFAULT_SOURCE_CHAR_LIMIT = 4000

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(target_lang|source_list|source_blocks|rules|source_count)\s*\}\}")


def build_source_blocks(sources: Sequence[SourcePage], char_limit: int = DEFAULT_SOURCE_CHAR_LIMIT) -> str:
    return "\n\n".join(
        f"SOURCE [{source.lang}] {source.title}\nURL: {source.url}\nCONTENT:\n{truncate_text(source.text, char_limit)}"
        for source in sources
    )


def render_custom_template(
    template: str,
    *,
    target_lang: str,
    rules: str,
    source_list: str,
    source_blocks: str,
    source_count: int,
) -> str:
    """Substitute ``{{placeholder}}`` tokens; a template without any gets rules and sources appended."""
    values = {
        "target_lang": target_lang,
        "source_list": source_list,
        "source_blocks": source_blocks,
        "rules": rules,
        "source_count": str(source_count),
    }
    rendered, replaced = _PLACEHOLDER_RE.subn(lambda m: values[m.group(1)], template)
    if replaced:
        return rendered
    return f"{template.rstrip()}\n\n{rules}\n\nSources:\n{source_list}\n\n{source_blocks}\n"


class ContentSynthesizer:
    def __init__(
        self,
        source_char_limit: int = DEFAULT_SOURCE_CHAR_LIMIT,
        min_chars: int = DEFAULT_MIN_CHARS,
    ) -> None:
        self.source_char_limit = source_char_limit
        self.min_chars = min_chars

    def build_prompt(
        self,
        sources: Sequence[SourcePage],
        output_lang: str,
        prompt_template: str | None = None,
    ) -> str:
        rules = SYNTHESIS_RULES.format(target_lang=output_lang)
        source_list = build_sources_list(sources)
        source_blocks = build_source_blocks(sources, self.source_char_limit)
        if prompt_template and prompt_template.strip():
            return render_custom_template(
                prompt_template,
                target_lang=output_lang,
                rules=rules,
                source_list=source_list,
                source_blocks=source_blocks,
                source_count=len(sources),
            )
        return SYNTHESIS_PROMPT.format(
            rules=rules,
            source_count=len(sources),
            source_list=source_list,
            source_blocks=source_blocks,
        )

    async def synthesize(
        self,
        sources: Sequence[SourcePage],
        output_lang: str,
        *,
        generator: TextGeneratorPort | None = None,
        prompt_template: str | None = None,
    ) -> SynthesisResult:
        if not sources:
            raise SynthesisFailedError("No sources to synthesize")

        if generator is None:
            body = ensure_markdown(sources[0].text, output_lang, sources, self.min_chars)
            return SynthesisResult(body_md=body, used_llm=False)

        prompt = self.build_prompt(sources, output_lang, prompt_template)
        output = await self._generate(generator, prompt)
        if not output:
            logger.warning("LLM returned an empty article; keeping the first source extract")
            body = ensure_markdown(sources[0].text, output_lang, sources, self.min_chars)
            return SynthesisResult(body_md=body, used_llm=False, prompt_chars=len(prompt))

        if not is_valid_markdown(output, self.min_chars):
            logger.info("LLM article rejected ({} chars); retrying once", len(output.strip()))
            retry_prompt = f"{prompt}\n\n{SYNTHESIS_RETRY_NOTE.format(min_chars=self.min_chars)}"
            output = await self._generate(generator, retry_prompt)

        if not is_valid_markdown(output, self.min_chars):
            logger.warning("LLM article still invalid after retry; using deterministic summary")
            body = build_fallback_markdown(sources, output_lang)
            return SynthesisResult(body_md=body, used_llm=False, prompt_chars=len(prompt))

        body = ensure_markdown(output, output_lang, sources, self.min_chars)
        return SynthesisResult(body_md=body, used_llm=True, prompt_chars=len(prompt))

    @staticmethod
    async def _generate(generator: TextGeneratorPort, prompt: str) -> str:
        try:
            return (await generator.generate(prompt) or "").strip()
        except Exception as exc:
            logger.error("LLM synthesis failed: {}: {}", type(exc).__name__, exc)
            raise SynthesisFailedError(f"LLM synthesis failed: {exc}") from exc
