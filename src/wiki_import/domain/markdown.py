import re
from typing import Sequence

from src.wiki_import.domain.models import SourcePage
from src.wiki_import.domain.rules import truncate_text

DEFAULT_MIN_CHARS = 600
SOURCES_HEADING = "## Sources"
GALLERY_HEADING = "## Reference Gallery"
ASSET_URL_TEMPLATE = "/api/assets/file/{asset_id}"

_HEADING_RE = re.compile(r"^#{1,6}\s+\S", re.M)
_SOURCES_HEADING_RE = re.compile(r"^#{1,6}\s+sources\s*$", re.I | re.M)
_SECTION_HEADING_RE = re.compile(r"^##[ \t]+(.+?)[ \t]*$", re.M)
_LEFTOVER_MARKUP_RE = re.compile(r"\[\[|\]\]|\{\{|\}\}|'''|<ref|\{\|")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|(?<=[。！？])")

_WIKI_LINK_RE = re.compile(r"\[\[(?:[^\]|]*\|)?([^\]]*)\]\]")
_TEMPLATE_RE = re.compile(r"\{\{[^{}]*\}\}")
_REF_RE = re.compile(r"<ref[^>/]*/>|<ref[^>]*>.*?</ref>", re.S)
_HTML_TAG_RE = re.compile(r"<[^>]+>")

_LABELS: dict[str, tuple[str, str]] = {
    "en": ("Summary", "Source excerpts"),
    "de": ("Zusammenfassung", "Auszüge aus den Quellen"),
    "fr": ("Résumé", "Extraits des sources"),
    "es": ("Resumen", "Extractos de las fuentes"),
    "ja": ("概要", "出典の抜粋"),
    "ko": ("요약", "출처 발췌"),
    "zh": ("摘要", "來源摘錄"),
}

SUMMARY_SENTENCES = 3
EXCERPT_CHARS = 1200


def has_heading(body: str) -> bool:
    return bool(_HEADING_RE.search(body or ""))


def has_sources_section(body: str, sources: Sequence[SourcePage] = ()) -> bool:
    """True when the last ``##`` section is Sources and it lists every source URL."""
    headings = list(_SECTION_HEADING_RE.finditer(body or ""))
    if not headings or headings[-1].group(1).strip().lower() != "sources":
        return False
    section = body[headings[-1].end() :]
    return all(source.url in section for source in sources)


def has_leftover_markup(body: str) -> bool:
    return bool(_LEFTOVER_MARKUP_RE.search(body or ""))


def is_valid_markdown(body: str, min_chars: int = DEFAULT_MIN_CHARS) -> bool:
    text = (body or "").strip()
    return len(text) >= min_chars and has_heading(text) and not has_leftover_markup(text)


def build_sources_list(sources: Sequence[SourcePage]) -> str:
    if not sources:
        return "- (no sources)"
    return "\n".join(f"- [{source.lang}] {source.title}: {source.url}" for source in sources)


def append_sources_section(body: str, sources: Sequence[SourcePage]) -> str:
    return f"{body.rstrip()}\n\n{SOURCES_HEADING}\n{build_sources_list(sources)}\n"


def strip_wikitext(text: str) -> str:
    cleaned = _REF_RE.sub("", text or "")
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = _TEMPLATE_RE.sub("", cleaned)
    cleaned = _WIKI_LINK_RE.sub(lambda m: m.group(1), cleaned)
    cleaned = re.sub(r"'{2,}", "", cleaned)
    cleaned = _HTML_TAG_RE.sub("", cleaned)
    cleaned = re.sub(r"^=+\s*(.*?)\s*=+\s*$", r"\1", cleaned, flags=re.M)
    cleaned = _LEFTOVER_MARKUP_RE.sub("", cleaned)
    return re.sub(r"\n{3,}", "\n\n", cleaned).strip()


def _plain_text(source: SourcePage) -> str:
    if source.extract:
        return source.extract.strip()
    return strip_wikitext(source.wikitext)


def _summary_sentences(text: str, limit: int = SUMMARY_SENTENCES) -> list[str]:
    first_paragraph = next((p for p in text.split("\n") if p.strip()), "")
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(first_paragraph) if s and s.strip()]
    return sentences[:limit]


def build_fallback_markdown(sources: Sequence[SourcePage], lang: str) -> str:
    summary_label, excerpts_label = _LABELS.get((lang or "").split("-")[0], _LABELS["en"])
    title = sources[0].title if sources else "Imported article"
    lines: list[str] = [f"# {title}", ""]

    summary = _summary_sentences(_plain_text(sources[0])) if sources else []
    lines.append(f"## {summary_label}")
    if summary:
        lines.extend(f"- {sentence}" for sentence in summary)
    else:
        lines.append(f"- {title}")
    lines.append("")

    excerpts = [(source, _plain_text(source)) for source in sources]
    excerpts = [(source, text) for source, text in excerpts if text]
    if excerpts:
        lines.append(f"## {excerpts_label}")
        for source, text in excerpts:
            lines.append(f"### [{source.lang}] {source.title}")
            lines.append(truncate_text(text, EXCERPT_CHARS))
            lines.append("")

    lines.append(SOURCES_HEADING)
    lines.append(build_sources_list(sources))
    return "\n".join(lines).strip() + "\n"


def ensure_markdown(
    body: str,
    lang: str,
    sources: Sequence[SourcePage],
    min_chars: int = DEFAULT_MIN_CHARS,
) -> str:
    """Return ``body`` if it is usable Markdown, otherwise a deterministic summary of ``sources``.

    Accepted bodies get a Sources section appended unless they already end with
    one naming every source URL. The result is a fixed point: running it again
    on its own output changes nothing.
    """
    if is_valid_markdown(body, min_chars):
        if has_sources_section(body, sources):
            return body
        return append_sources_section(body, sources)
    return build_fallback_markdown(sources, lang)


def media_markdown(asset_id: str, mime: str, caption: str) -> str:
    label = re.sub(r"[\[\]]", "", caption or "").strip() or asset_id
    url = ASSET_URL_TEMPLATE.format(asset_id=asset_id)
    if mime.lower().startswith("image/"):
        return f"![{label}]({url})"
    return f"[{label}]({url})"


def insert_after_section_heading(body: str, section: str, snippet: str) -> tuple[str, bool]:
    if not section:
        return body, False
    pattern = re.compile(rf"^#{{2,6}}[ \t]*{re.escape(section.strip())}[ \t]*$", re.I | re.M)
    match = pattern.search(body)
    if not match:
        return body, False
    insert_at = match.end()
    rest = body[insert_at:].lstrip("\n")
    return f"{body[:insert_at]}\n\n{snippet}\n\n{rest}", True


def insert_gallery_section(body: str, snippets: Sequence[str]) -> str:
    if not snippets:
        return body
    gallery = f"{GALLERY_HEADING}\n\n" + "\n\n".join(snippets) + "\n"
    matches = list(_SOURCES_HEADING_RE.finditer(body))
    if not matches:
        return f"{body.rstrip()}\n\n{gallery}"
    insert_at = matches[-1].start()
    head = body[:insert_at].rstrip()
    return f"{head}\n\n{gallery}\n{body[insert_at:]}"
