from dataclasses import dataclass, field
from typing import Any, Literal

Placement = Literal["infobox", "inline", "gallery", "exclude"]
PLACEMENTS: tuple[str, ...] = ("infobox", "inline", "gallery", "exclude")

COMMONS = "commons"


@dataclass(frozen=True)
class SourcePage:
    lang: str
    page_id: int
    title: str
    url: str
    extract: str = ""
    wikitext: str = ""
    page_image_title: str | None = None
    thumbnail_url: str | None = None

    @property
    def text(self) -> str:
        return self.extract or self.wikitext or ""


@dataclass(frozen=True)
class ResolvedPage:
    lang: str
    page: SourcePage
    fallback_used: bool


@dataclass(frozen=True)
class WikiLangLink:
    lang: str
    title: str


@dataclass(frozen=True)
class WikiSearchHit:
    lang: str
    page_id: int | None
    title: str
    snippet: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "lang": self.lang,
            "pageId": self.page_id,
            "title": self.title,
            "snippet": self.snippet,
            "url": self.url,
        }


@dataclass(frozen=True)
class MediaCandidate:
    origin: str
    title: str


@dataclass(frozen=True)
class MediaInfo:
    title: str
    url: str
    mime: str
    width: int | None = None
    height: int | None = None
    size: int | None = None
    author: str | None = None
    license_id: str | None = None
    license_url: str | None = None
    attribution_text: str | None = None
    origin: str = COMMONS

    @property
    def is_image(self) -> bool:
        return self.mime.lower().startswith("image/")

    @property
    def is_audio(self) -> bool:
        return self.mime.lower().startswith("audio/")

    @property
    def is_video(self) -> bool:
        return self.mime.lower().startswith("video/")

    @property
    def pixel_area(self) -> int:
        return (self.width or 0) * (self.height or 0)


@dataclass(frozen=True)
class WikitextImagePlacement:
    filename: str
    section: str
    is_infobox: bool
    position: int = 0
    caption: str | None = None
    size: str | None = None
    alignment: str | None = None


@dataclass(frozen=True)
class MediaRelevanceResult:
    title: str
    relevant: bool
    placement: Placement
    priority: int
    reason: str = ""
    caption: str | None = None
    inline_section: str | None = None


@dataclass(frozen=True)
class ImportedAsset:
    asset_id: str
    title: str
    mime: str
    placement: Placement
    priority: int
    caption: str | None = None
    inline_section: str | None = None


@dataclass(frozen=True)
class InfoboxMediaEntry:
    asset_id: str
    caption: str

    def to_dict(self) -> dict[str, str]:
        return {"assetId": self.asset_id, "caption": self.caption}


@dataclass(frozen=True)
class InfoboxMedia:
    main_image_asset_id: str | None = None
    audio: tuple[InfoboxMediaEntry, ...] = ()
    video: tuple[InfoboxMediaEntry, ...] = ()

    @property
    def has_av(self) -> bool:
        return bool(self.audio or self.video)

    def to_dict(self) -> dict[str, Any]:
        return {
            "audio": [entry.to_dict() for entry in self.audio],
            "video": [entry.to_dict() for entry in self.video],
        }


@dataclass(frozen=True)
class SynthesisResult:
    body_md: str
    used_llm: bool
    prompt_chars: int = 0


@dataclass(frozen=True)
class ImportRequest:
    workspace_id: str
    user_id: str
    lang: str = ""
    page_id: str = ""
    title: str = ""
    entity_type: str = "concept"
    publish: bool = False
    target_lang: str = ""
    use_llm: bool = True
    aggregate_langs: bool = True
    llm_provider: str = ""
    llm_model: str = ""
    llm_api_key: str = ""
    codex_auth_base64: str = ""
    prompt_template_id: str = ""
    import_media: bool = True
    media_max_candidates: int | None = None
    media_max_bytes: int | None = None


@dataclass(frozen=True)
class EntityDraft:
    workspace_id: str
    user_id: str
    entity_type: str
    title: str
    publish: bool
    tags: tuple[str, ...] = ("imported", "wikipedia")


@dataclass(frozen=True)
class ImportResult:
    entity_id: str
    article_id: str
    revision_id: str
    body_md: str
    used_llm: bool
    page_lang: str
    fallback_used: bool
    source_count: int
    assets: tuple[ImportedAsset, ...] = field(default_factory=tuple)
    infobox: InfoboxMedia = field(default_factory=InfoboxMedia)
