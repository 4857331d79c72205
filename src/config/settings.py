# 匯入流程的設定檔：啟動時從環境變數讀取一次，之後以參數往下傳

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_lang_list(value: str | None) -> tuple[str, ...]:
    seen: list[str] = []
    for entry in (value or "").split(","):
        lang = entry.strip().lower()
        if lang and lang not in seen:
            seen.append(lang)
    return tuple(seen)


@dataclass(frozen=True)
class MediaLimits:
    max_candidates: int = 30
    max_bytes: int = 15 * 1024 * 1024
    gallery_minimum: int = 4
    min_image_pixels: int = 100

    @property
    def coverage_threshold(self) -> int:
        return max(2 * self.gallery_minimum, 6)


@dataclass(frozen=True)
class ImportSettings:
    default_lang: str = "en"
    fallback_langs: tuple[str, ...] = ("en",)
    lang_limit: int = 10
    verification_limit: int = 3
    use_llm: bool = True
    aggregate_langs: bool = True
    require_llm: bool = True
    import_media: bool = True
    llm_provider: str = "gemini_ai"
    llm_model: str = ""
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_enable_search: bool = False
    vertex_api_key: str | None = None
    vertex_project: str | None = None
    vertex_location: str | None = None
    openrouter_api_key: str | None = None
    openrouter_model: str = "xiaomi/mimo-v2-flash:free"
    codex_cli_path: str = "codex"
    codex_model: str = "gpt-5.2"
    codex_timeout_seconds: float = 120.0
    source_char_limit: int = 4000
    markdown_min_chars: int = 600
    media: MediaLimits = field(default_factory=MediaLimits)
    user_agent: str = "WorldforgeWikiImport/0.1 (https://github.com/worldforge; bot)"
    db_path: str = "artifacts/worldforge.db"
    storage_dir: str = "storage"
    log_dir: str = "logs"
    api_log_dir: str = "artifacts/api_calls"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ImportSettings":
        env = os.environ
        defaults = cls()
        return cls(
            default_lang=(env.get("WIKI_DEFAULT_LANG") or defaults.default_lang).strip().lower(),
            fallback_langs=parse_lang_list(env.get("WIKI_FALLBACK_LANGS")) or defaults.fallback_langs,
            lang_limit=parse_int(env.get("WIKI_IMPORT_LANG_LIMIT"), defaults.lang_limit),
            verification_limit=parse_int(env.get("WIKI_IMPORT_VERIFY_LIMIT"), defaults.verification_limit),
            use_llm=parse_bool(env.get("WIKI_IMPORT_USE_LLM"), defaults.use_llm),
            aggregate_langs=parse_bool(env.get("WIKI_IMPORT_AGGREGATE_LANGS"), defaults.aggregate_langs),
            require_llm=parse_bool(env.get("WIKI_IMPORT_REQUIRE_LLM"), defaults.require_llm),
            import_media=parse_bool(env.get("WIKI_IMPORT_MEDIA"), defaults.import_media),
            llm_provider=(
                env.get("WIKI_LLM_PROVIDER") or env.get("LLM_DEFAULT_PROVIDER") or defaults.llm_provider
            ).strip(),
            llm_model=(env.get("WIKI_LLM_MODEL") or "").strip(),
            gemini_api_key=env.get("GEMINI_API_KEY"),
            gemini_model=env.get("GEMINI_MODEL") or defaults.gemini_model,
            gemini_enable_search=parse_bool(env.get("GEMINI_ENABLE_SEARCH"), defaults.gemini_enable_search),
            vertex_api_key=env.get("VERTEX_GEMINI_API_KEY"),
            vertex_project=env.get("VERTEX_GEMINI_PROJECT"),
            vertex_location=env.get("VERTEX_GEMINI_LOCATION"),
            openrouter_api_key=env.get("OPENROUTER_API_KEY"),
            openrouter_model=env.get("OPENROUTER_MODEL") or defaults.openrouter_model,
            codex_cli_path=env.get("CODEX_CLI_PATH") or defaults.codex_cli_path,
            codex_model=env.get("CODEX_MODEL") or defaults.codex_model,
            codex_timeout_seconds=parse_int(env.get("CODEX_EXEC_TIMEOUT_MS"), 120000) / 1000,
            source_char_limit=parse_int(env.get("WIKI_SOURCE_CHAR_LIMIT"), defaults.source_char_limit),
            markdown_min_chars=parse_int(env.get("WIKI_MARKDOWN_MIN_CHARS"), defaults.markdown_min_chars),
            media=MediaLimits(
                max_candidates=parse_int(env.get("WIKI_MEDIA_MAX_CANDIDATES"), defaults.media.max_candidates),
                max_bytes=parse_int(env.get("WIKI_MEDIA_MAX_BYTES"), defaults.media.max_bytes),
                gallery_minimum=parse_int(env.get("WIKI_MEDIA_GALLERY_MIN"), defaults.media.gallery_minimum),
                min_image_pixels=parse_int(env.get("WIKI_MEDIA_MIN_PIXELS"), defaults.media.min_image_pixels),
            ),
            user_agent=env.get("WIKI_USER_AGENT") or defaults.user_agent,
            db_path=env.get("WORLDFORGE_DB_PATH") or defaults.db_path,
            storage_dir=env.get("WORLDFORGE_STORAGE_DIR") or defaults.storage_dir,
            log_dir=env.get("WORLDFORGE_LOG_DIR") or defaults.log_dir,
            api_log_dir=env.get("WORLDFORGE_API_LOG_DIR") or defaults.api_log_dir,
            log_level=env.get("LOG_LEVEL") or defaults.log_level,
        )


@lru_cache(maxsize=1)
def get_settings() -> ImportSettings:
    load_dotenv()
    return ImportSettings.from_env()
