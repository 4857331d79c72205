import re

from src.wiki_import.domain.models import WikitextImagePlacement
from src.wiki_import.domain.rules import strip_file_prefix

INTRO_SECTION = "intro"

_FILE_LINK_START_RE = re.compile(r"\[\[\s*(?:File|Image)\s*:", re.I)
_SECTION_RE = re.compile(r"^(={2,6})\s*(.+?)\s*\1\s*$", re.M)
_INFOBOX_START_RE = re.compile(r"\{\{\s*infobox", re.I)
_INFOBOX_MEDIA_PARAM_RE = re.compile(
    r"\|\s*(image\d*|image_name|photo|picture|audio|sound|video)\s*=\s*([^|\n}]+)",
    re.I,
)
_INFOBOX_CAPTION_PARAM_RE = re.compile(r"\|\s*(?:caption|image_caption|alt)\s*=\s*([^|\n}]+)", re.I)
_MEDIA_FILENAME_RE = re.compile(r"\.(jpe?g|png|gif|svg|webp|tiff?|ogg|oga|ogv|mp3|wav|flac|webm|mp4)$", re.I)
_SIZE_OPTION_RE = re.compile(r"^(\d+x)?\d+px$", re.I)
_DISPLAY_OPTIONS = {"thumb", "thumbnail", "frame", "frameless", "framed", "border"}
_ALIGN_OPTIONS = {"left", "right", "center", "centre", "none"}
_KEYWORD_OPTION_PREFIXES = ("upright", "alt=", "link=", "page=", "lang=", "class=")
_INNER_LINK_RE = re.compile(r"\[\[(?:[^\]|]*\|)?([^\]]*)\]\]")


def find_matching_braces(text: str, start: int) -> int:
    """Index of the closing ``}}`` that balances the ``{{`` at ``start``."""
    depth = 0
    i = start
    while i < len(text) - 1:
        pair = text[i : i + 2]
        if pair == "{{":
            depth += 1
            i += 2
            continue
        if pair == "}}":
            depth -= 1
            if depth == 0:
                return i + 1
            i += 2
            continue
        i += 1
    return len(text)


def _find_link_end(text: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(text) - 1:
        pair = text[i : i + 2]
        if pair == "[[":
            depth += 1
            i += 2
            continue
        if pair == "]]":
            depth -= 1
            if depth == 0:
                return i + 2
            i += 2
            continue
        i += 1
    return -1


def _split_options(body: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    i = 0
    while i < len(body):
        pair = body[i : i + 2]
        if pair in ("[[", "{{"):
            depth += 1
            current.append(pair)
            i += 2
            continue
        if pair in ("]]", "}}"):
            depth = max(depth - 1, 0)
            current.append(pair)
            i += 2
            continue
        if body[i] == "|" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(body[i])
        i += 1
    parts.append("".join(current))
    return [part.strip() for part in parts]


def clean_caption(value: str) -> str:
    text = _INNER_LINK_RE.sub(lambda m: m.group(1), value)
    text = re.sub(r"'{2,}", "", text)
    text = re.sub(r"\{\{[^}]*\}\}", "", text)
    return re.sub(r"\s+", " ", text).strip()


def _section_at(sections: list[tuple[int, str]], position: int) -> str:
    current = INTRO_SECTION
    for start, title in sections:
        if start > position:
            break
        current = title
    return current


def extract_wikitext_image_placements(wikitext: str) -> list[WikitextImagePlacement]:
    if not wikitext:
        return []

    sections = [(m.start(), m.group(2).strip()) for m in _SECTION_RE.finditer(wikitext)]
    infobox_match = _INFOBOX_START_RE.search(wikitext)
    infobox_start = infobox_match.start() if infobox_match else -1
    infobox_end = find_matching_braces(wikitext, infobox_start) if infobox_start >= 0 else -1

    placements: list[WikitextImagePlacement] = []
    seen_infobox_params: set[str] = set()

    for match in _FILE_LINK_START_RE.finditer(wikitext):
        end = _find_link_end(wikitext, match.start())
        if end < 0:
            continue
        inner = wikitext[match.end() : end - 2]
        parts = _split_options(inner)
        filename = strip_file_prefix(parts[0])
        if not filename:
            continue

        size = None
        alignment = None
        caption = None
        for option in parts[1:]:
            lowered = option.lower()
            if not option:
                continue
            if _SIZE_OPTION_RE.match(option):
                size = option
            elif lowered in _ALIGN_OPTIONS:
                alignment = "center" if lowered == "centre" else lowered
            elif lowered in _DISPLAY_OPTIONS or lowered.startswith(_KEYWORD_OPTION_PREFIXES):
                continue
            else:
                # Last free-text option is the caption.
                caption = clean_caption(option) or None

        position = match.start()
        placements.append(
            WikitextImagePlacement(
                filename=filename,
                section=_section_at(sections, position),
                is_infobox=infobox_start >= 0 and infobox_start <= position <= infobox_end,
                position=position,
                caption=caption,
                size=size,
                alignment=alignment,
            )
        )

    if infobox_start >= 0:
        infobox_text = wikitext[infobox_start : infobox_end + 1]
        caption_match = _INFOBOX_CAPTION_PARAM_RE.search(infobox_text)
        infobox_caption = clean_caption(caption_match.group(1)) if caption_match else None
        for param in _INFOBOX_MEDIA_PARAM_RE.finditer(infobox_text):
            raw_value = param.group(2).strip()
            if "[" in raw_value:
                # Already captured as a [[File:...]] link above.
                continue
            filename = strip_file_prefix(raw_value)
            if not _MEDIA_FILENAME_RE.search(filename) or filename.lower() in seen_infobox_params:
                continue
            seen_infobox_params.add(filename.lower())
            placements.append(
                WikitextImagePlacement(
                    filename=filename,
                    section=INTRO_SECTION,
                    is_infobox=True,
                    position=infobox_start + param.start(),
                    caption=infobox_caption or None,
                )
            )

    placements.sort(key=lambda p: p.position)
    return placements
