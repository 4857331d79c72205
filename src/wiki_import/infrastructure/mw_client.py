import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any

import aiohttp
from aiohttp import (
    ClientConnectorError,
    ClientPayloadError,
    ClientResponseError,
    ContentTypeError,
    ServerDisconnectedError,
)
from src.config.logger_config import logger

from src.wiki_import.domain.models import COMMONS, MediaInfo, SourcePage, WikiLangLink, WikiSearchHit
from src.wiki_import.domain.rules import (
    DEFAULT_LANG,
    api_host,
    build_canonical_url,
    normalize_lang,
    strip_file_prefix,
)
from src.wiki_import.infrastructure.api_call_sink import ApiCallJsonlSink
from src.wiki_import.infrastructure.mw_schemas import (
    ApiFailure,
    QueryResponse,
    ShapeMismatch,
    decode_query_response,
)

_HTML_TAG_RE = re.compile(r"<[^>]+>")
FILE_NAMESPACE = 6


class MediaDownloadError(Exception):
    pass


def _html_to_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = re.sub(r"\s+", " ", _HTML_TAG_RE.sub("", value)).strip()
    return text or None


class MediaWikiClient:
    """Read-only client for Wikipedia language editions and Wikimedia Commons."""

    def __init__(
        self,
        api_url_template: str = "https://{host}/w/api.php",
        raw_sink: ApiCallJsonlSink | None = None,
        run_id: str | None = None,
    ) -> None:
        self.api_url_template = api_url_template
        self.raw_sink = raw_sink
        self.run_id = run_id

    def api_url(self, lang: str) -> str:
        return self.api_url_template.format(host=api_host(normalize_lang(lang) or DEFAULT_LANG))

    async def fetch_page(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        *,
        page_id: int | str | None = None,
        title: str | None = None,
    ) -> SourcePage | None:
        lang = normalize_lang(lang) or DEFAULT_LANG
        if not page_id and not title:
            return None

        params: dict[str, Any] = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "prop": "extracts|revisions|info|pageimages",
            "explaintext": "1",
            "inprop": "url",
            "rvprop": "content",
            "rvslots": "main",
            "piprop": "thumbnail|name",
            "pithumbsize": "800",
            "redirects": "1",
        }
        if page_id:
            params["pageids"] = str(page_id)
        else:
            params["titles"] = title

        response = await self._query(session, lang, params, operation="fetch_page", subject=str(page_id or title))
        if response is None:
            return None

        page = response.first_page
        if page is None or page.missing or page.invalid or page.pageid is None:
            logger.info("Page '{}' not found on {}.wikipedia", page_id or title, lang)
            return None

        wikitext = page.revisions[0].text if page.revisions else ""
        return SourcePage(
            lang=lang,
            page_id=int(page.pageid),
            title=page.title,
            url=page.fullurl or build_canonical_url(page.title, lang),
            extract=page.extract or "",
            wikitext=wikitext,
            page_image_title=page.pageimage,
            thumbnail_url=page.thumbnail.source if page.thumbnail else None,
        )

    async def fetch_page_media(self, session: aiohttp.ClientSession, lang: str, page_id: int) -> list[str]:
        params: dict[str, Any] = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "prop": "images",
            "imlimit": "500",
            "pageids": str(page_id),
        }
        continue_token: dict[str, Any] = {}
        seen: set[str] = set()
        titles: list[str] = []

        while True:
            response = await self._query(
                session,
                lang,
                {**params, **continue_token},
                operation="fetch_page_media",
                subject=str(page_id),
            )
            if response is None:
                break

            page = response.first_page
            for image in page.images if page is not None else []:
                name = strip_file_prefix(image.title)
                if name and name.lower() not in seen:
                    seen.add(name.lower())
                    titles.append(name)

            if not response.continue_:
                break
            continue_token = response.continue_

        return titles

    async def fetch_lang_links(self, session: aiohttp.ClientSession, lang: str, page_id: int) -> list[WikiLangLink]:
        params = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "prop": "langlinks",
            "lllimit": "500",
            "pageids": str(page_id),
        }
        response = await self._query(session, lang, params, operation="fetch_lang_links", subject=str(page_id))
        page = response.first_page if response is not None else None
        if page is None:
            return []
        return [
            WikiLangLink(lang=normalize_lang(link.lang), title=link.title)
            for link in page.langlinks
            if link.lang and link.title
        ]

    async def search(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        query: str,
        limit: int = 10,
        namespace: int = 0,
    ) -> list[WikiSearchHit]:
        lang = normalize_lang(lang) or DEFAULT_LANG
        params = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "list": "search",
            "srsearch": query,
            "srnamespace": str(namespace),
            "srlimit": str(limit),
        }
        response = await self._query(session, lang, params, operation="search", subject=query)
        if response is None or response.query is None:
            return []
        return [
            WikiSearchHit(
                lang=lang,
                page_id=hit.pageid,
                title=hit.title,
                snippet=_html_to_text(hit.snippet) or "",
                url=build_canonical_url(hit.title, lang),
            )
            for hit in response.query.search
        ]

    async def search_media(self, session: aiohttp.ClientSession, query: str, limit: int = 20) -> list[str]:
        hits = await self.search(session, COMMONS, query, limit=limit, namespace=FILE_NAMESPACE)
        return [strip_file_prefix(hit.title) for hit in hits if strip_file_prefix(hit.title)]

    async def fetch_image_info(self, session: aiohttp.ClientSession, lang: str, title: str) -> MediaInfo | None:
        lang = normalize_lang(lang) or DEFAULT_LANG
        name = strip_file_prefix(title)
        params = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "prop": "imageinfo",
            "iiprop": "url|size|mime|extmetadata",
            "titles": f"File:{name}",
        }
        response = await self._query(session, lang, params, operation="fetch_image_info", subject=name)
        page = response.first_page if response is not None else None
        if page is None or not page.imageinfo or not page.imageinfo[0].url:
            return None

        info = page.imageinfo[0]
        return MediaInfo(
            title=strip_file_prefix(page.title) or name,
            url=info.url,
            mime=info.mime or "application/octet-stream",
            width=info.width,
            height=info.height,
            size=info.size,
            author=_html_to_text(info.meta("Artist", "Author")),
            license_id=_html_to_text(info.meta("LicenseShortName", "License")),
            license_url=info.meta("LicenseUrl"),
            attribution_text=_html_to_text(info.meta("Attribution", "Credit", "ImageDescription")),
            origin=lang,
        )

    async def download(
        self,
        session: aiohttp.ClientSession,
        url: str,
        max_bytes: int | None = None,
    ) -> bytes:
        timeout = aiohttp.ClientTimeout(total=120, connect=10)
        async with session.get(url, timeout=timeout) as resp:
            if resp.status != 200:
                raise MediaDownloadError(f"Failed to download {url} (HTTP {resp.status})")
            chunks: list[bytes] = []
            total = 0
            async for chunk in resp.content.iter_chunked(64 * 1024):
                total += len(chunk)
                if max_bytes is not None and total > max_bytes:
                    raise MediaDownloadError(f"Download of {url} exceeds {max_bytes} bytes")
                chunks.append(chunk)
            return b"".join(chunks)

    async def _query(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        params: dict[str, Any],
        *,
        operation: str,
        subject: str | None = None,
    ) -> QueryResponse | None:
        data = await self._fetch(session, lang, params, operation=operation, subject=subject)
        if data is None:
            return None

        decoded = decode_query_response(data, operation)
        if isinstance(decoded, ApiFailure):
            logger.error("API error for {} '{}' on {}: {} {}", operation, subject, lang, decoded.code, decoded.info)
            return None
        if isinstance(decoded, ShapeMismatch):
            logger.warning("Unexpected response shape for {} '{}' on {}: {}", operation, subject, lang, decoded.detail)
            return None
        return decoded.value

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        lang: str,
        params: dict[str, Any],
        retries: int = 3,
        *,
        operation: str,
        subject: str | None = None,
    ) -> Any | None:
        url = self.api_url(lang)
        timeout = aiohttp.ClientTimeout(total=45, connect=10)
        for attempt in range(1, retries + 1):
            started_at = datetime.now(timezone.utc).isoformat()
            event = {
                "run_id": self.run_id,
                "operation": operation,
                "lang": lang,
                "subject": subject,
                "attempt": attempt,
                "request": {"url": url, "params": params},
                "started_at": started_at,
            }
            try:
                async with session.get(url, params=params, timeout=timeout) as resp:
                    if resp.status >= 500 or resp.status == 429:
                        logger.warning(
                            "Server error {} for {}. Attempt {}/{}",
                            resp.status,
                            operation,
                            attempt,
                            retries,
                        )
                        raise ClientResponseError(
                            resp.request_info,
                            resp.history,
                            status=resp.status,
                            message="Server Error",
                        )

                    if resp.status != 200:
                        body = await resp.text()
                        await self._write_raw_event(
                            event,
                            http=self._build_http_meta(resp),
                            response_text=body,
                            error={"type": "HTTPError", "message": f"HTTP {resp.status}"},
                            outcome="http_error",
                        )
                        logger.error("HTTP {} for {}: {}", resp.status, operation, body[:500])
                        return None

                    try:
                        data = await resp.json()
                    except (ContentTypeError, json.JSONDecodeError, ValueError) as exc:
                        body = await resp.text()
                        await self._write_raw_event(
                            event,
                            http=self._build_http_meta(resp),
                            response_text=body,
                            error={"type": type(exc).__name__, "message": str(exc)},
                            outcome="retryable_error",
                        )
                        if attempt == retries:
                            logger.error("Failed after {} attempts. Error: {}", retries, exc)
                            return None
                        wait_time = 2**attempt
                        logger.warning("Malformed JSON ({}). Retrying in {}s...", exc, wait_time)
                        await asyncio.sleep(wait_time)
                        continue

                    await self._write_raw_event(
                        event,
                        http=self._build_http_meta(resp),
                        response_json=data,
                        warnings=data.get("warnings") if isinstance(data, dict) else None,
                        continue_token=data.get("continue") if isinstance(data, dict) else None,
                        outcome="success",
                    )
                    return data

            except (
                ClientResponseError,
                ClientConnectorError,
                ServerDisconnectedError,
                asyncio.TimeoutError,
                ClientPayloadError,
            ) as exc:
                await self._write_raw_event(
                    event,
                    http={"status": getattr(exc, "status", None)},
                    error={"type": type(exc).__name__, "message": str(exc)},
                    outcome="retryable_error",
                )
                if attempt == retries:
                    logger.error("Failed after {} attempts. Error: {}", retries, exc)
                    return None
                wait_time = 2**attempt
                logger.warning("Connection unstable ({}). Retrying in {}s...", exc, wait_time)
                await asyncio.sleep(wait_time)
            except Exception as exc:
                await self._write_raw_event(
                    event,
                    error={"type": type(exc).__name__, "message": str(exc)},
                    outcome="fatal_error",
                )
                logger.error("Unexpected error while fetching {}: {}", operation, exc)
                return None

        return None

    @staticmethod
    def _build_http_meta(resp: aiohttp.ClientResponse) -> dict[str, Any]:
        return {
            "status": resp.status,
            "etag": resp.headers.get("ETag", ""),
            "last_modified": resp.headers.get("Last-Modified", ""),
            "headers": dict(resp.headers),
        }

    async def _write_raw_event(
        self,
        base: dict[str, Any],
        *,
        outcome: str,
        http: dict[str, Any] | None = None,
        response_json: Any = None,
        response_text: str | None = None,
        warnings: Any = None,
        continue_token: Any = None,
        error: dict[str, Any] | None = None,
    ) -> None:
        if self.raw_sink is None:
            return
        event = {
            **base,
            "http": http,
            "response_json": response_json,
            "response_text": response_text,
            "warnings": warnings,
            "continue_token": continue_token,
            "error": error,
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "outcome": outcome,
        }
        try:
            await self.raw_sink.write_event(event)
        except Exception as exc:
            logger.warning("Failed to persist raw API event: {}", exc)
