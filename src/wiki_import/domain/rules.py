import re
import time
import unicodedata
from urllib.parse import quote, unquote, urlparse

from pathvalidate import sanitize_filename as lib_sanitize

from src.wiki_import.domain.models import COMMONS

DEFAULT_LANG = "en"

_FILE_PREFIX_RE = re.compile(r"^\s*(file|image)\s*:\s*", re.I)
_EXTENSION_RE = re.compile(r"\.[a-z0-9]{2,5}$", re.I)
_PARENTHETICAL_RE = re.compile(r"\s*[\(\[（][^\)\]）]*[\)\]）]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_LANG_PREFIX_RE = re.compile(r"^([a-z]{2,3})\s*:\s*(.+)$")

TOPIC_STOPWORDS = frozenset(
    {"the", "and", "for", "with", "from", "der", "die", "das", "und", "les", "des", "del", "von", "of"}
)


def normalize_lang(lang: str | None) -> str:
    return (lang or "").strip().lower()


def api_host(lang: str) -> str:
    if lang == COMMONS:
        return "commons.wikimedia.org"
    return f"{lang}.wikipedia.org"


def build_canonical_url(title: str, lang: str = DEFAULT_LANG) -> str:
    safe_url_title = quote((title or "").strip().replace(" ", "_"))
    return f"https://{api_host(lang)}/wiki/{safe_url_title}"


def build_wiki_attribution(title: str, url: str) -> dict[str, str]:
    return {
        "author": "Wikipedia contributors",
        "license_id": "CC-BY-SA-4.0",
        "license_url": "https://creativecommons.org/licenses/by-sa/4.0/",
        "attribution_text": f"{title} - Wikipedia contributors ({url})",
    }


def sanitize_filename(title: str) -> str:
    safe_name = lib_sanitize(title.replace(" ", "_"), replacement_text="_")
    if not safe_name:
        return "untitled"
    return safe_name


def make_storage_key(title: str, now_ms: int | None = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}-{sanitize_filename(title)}"


def strip_file_prefix(title: str) -> str:
    return _FILE_PREFIX_RE.sub("", title or "").strip()


def media_title_key(title: str) -> str:
    """Case-insensitive identity of a file title, ignoring the namespace prefix."""
    return _WHITESPACE_RE.sub(" ", strip_file_prefix(title).replace("_", " ")).strip().lower()


def relevance_key(title: str) -> str:
    """Like media_title_key, with the file extension dropped as well."""
    return _EXTENSION_RE.sub("", media_title_key(title)).strip()


def normalize_topic_title(title: str) -> str:
    decomposed = unicodedata.normalize("NFKD", title or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _PARENTHETICAL_RE.sub(" ", stripped)
    stripped = _PUNCTUATION_RE.sub(" ", stripped.replace("_", " "))
    return _WHITESPACE_RE.sub(" ", stripped).strip().lower()


def titles_match(left: str, right: str) -> bool:
    a = normalize_topic_title(left)
    b = normalize_topic_title(right)
    if not a or not b:
        return False
    return a in b or b in a


def topic_keywords(title: str) -> tuple[str, ...]:
    words = normalize_topic_title(title).split()
    keywords: list[str] = []
    for word in words:
        if len(word) < 3 or word in TOPIC_STOPWORDS or word.isdigit():
            continue
        if word not in keywords:
            keywords.append(word)
    return tuple(keywords)


def truncate_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "\n\n[truncated]"


def parse_wiki_page_input(raw: str, fallback_lang: str | None = None) -> tuple[str, str] | None:
    """Accept a Wikipedia URL, a ``xx:Title`` string or a bare title; return (lang, title)."""
    text = (raw or "").strip()
    if not text:
        return None

    if text.startswith(("http://", "https://")):
        parsed = urlparse(text)
        host_parts = (parsed.hostname or "").split(".")
        lang = host_parts[0] if len(host_parts) >= 3 else (fallback_lang or DEFAULT_LANG)
        title = unquote(re.sub(r"^/wiki/", "", parsed.path)).replace("_", " ").strip()
        if title:
            return normalize_lang(lang), title

    match = _LANG_PREFIX_RE.match(text)
    if match:
        return normalize_lang(match.group(1)), match.group(2).strip()

    return normalize_lang(fallback_lang or DEFAULT_LANG), text


def parse_wiki_image_input(raw: str, fallback_lang: str | None = None) -> tuple[str, str] | None:
    """Accept a file page URL (Wikipedia or Commons) or a ``File:`` title; return (lang, title)."""
    text = (raw or "").strip()
    if not text:
        return None

    if text.startswith(("http://", "https://")):
        parsed = urlparse(text)
        hostname = parsed.hostname or ""
        host_parts = hostname.split(".")
        if "commons.wikimedia.org" in hostname:
            lang = COMMONS
        else:
            lang = host_parts[0] if len(host_parts) >= 3 else (fallback_lang or DEFAULT_LANG)
        title = unquote(re.sub(r"^/wiki/", "", parsed.path)).replace("_", " ")
        title = strip_file_prefix(title)
        if title:
            return normalize_lang(lang), title

    return normalize_lang(fallback_lang or DEFAULT_LANG), strip_file_prefix(text)


ENTITY_TYPES: tuple[str, ...] = (
    "character",
    "location",
    "faction",
    "event",
    "item",
    "concept",
    "organization",
    "species",
    "vehicle",
    "technology",
    "other",
)


def normalize_entity_type(value: str | None) -> str:
    lowered = (value or "").strip().lower()
    return lowered if lowered in ENTITY_TYPES else "concept"
