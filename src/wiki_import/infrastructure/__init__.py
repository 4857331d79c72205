"""Infrastructure adapters for Wikipedia imports."""

from src.wiki_import.infrastructure.api_call_sink import ApiCallJsonlSink
from src.wiki_import.infrastructure.asset_store import LocalAssetStore
from src.wiki_import.infrastructure.mw_client import MediaDownloadError, MediaWikiClient
from src.wiki_import.infrastructure.repository_sqlite import SQLiteWorldRepository

__all__ = [
    "ApiCallJsonlSink",
    "LocalAssetStore",
    "MediaDownloadError",
    "MediaWikiClient",
    "SQLiteWorldRepository",
]
