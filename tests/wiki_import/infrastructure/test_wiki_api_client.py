import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from src.wiki_import.infrastructure.mw_client import MediaDownloadError, MediaWikiClient


class FakeContent:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def iter_chunked(self, size):
        for chunk in self._chunks:
            yield chunk


class FakeResponse:
    def __init__(self, status=200, json_data=None, text_data="", headers=None, chunks=()):
        self.status = status
        self._json_data = json_data
        self._text_data = text_data
        self.headers = headers or {}
        self.content = FakeContent(chunks)
        self.request_info = SimpleNamespace(real_url="http://test.invalid")
        self.history = ()

    async def json(self):
        if isinstance(self._json_data, Exception):
            raise self._json_data
        return self._json_data

    async def text(self):
        return self._text_data

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def get(self, url, params=None, **kwargs):
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        self.requests.append((url, dict(params or {})))
        return self._responses.pop(0)


class FakeRawSink:
    def __init__(self):
        self.events = []

    async def write_event(self, event):
        self.events.append(event)


PAGE_RESPONSE = {
    "query": {
        "pages": [
            {
                "pageid": 42,
                "title": "Trabant",
                "fullurl": "https://en.wikipedia.org/wiki/Trabant",
                "extract": "The Trabant is a car.",
                "revisions": [{"slots": {"main": {"content": "'''Trabant''' wikitext"}}}],
                "pageimage": "Trabant_601.jpg",
                "thumbnail": {"source": "https://upload.invalid/thumb.jpg", "width": 800, "height": 600},
            }
        ]
    }
}


class MediaWikiClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_api_url_per_language(self):
        client = MediaWikiClient()
        self.assertEqual(client.api_url("de"), "https://de.wikipedia.org/w/api.php")
        self.assertEqual(client.api_url("commons"), "https://commons.wikimedia.org/w/api.php")

    async def test_fetch_page_decodes_page(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(json_data=PAGE_RESPONSE)])

        page = await client.fetch_page(session, "EN", title="Trabant")

        self.assertIsNotNone(page)
        self.assertEqual(page.lang, "en")
        self.assertEqual(page.page_id, 42)
        self.assertEqual(page.wikitext, "'''Trabant''' wikitext")
        self.assertEqual(page.extract, "The Trabant is a car.")
        self.assertEqual(page.page_image_title, "Trabant_601.jpg")
        url, params = session.requests[0]
        self.assertEqual(url, "https://en.wikipedia.org/w/api.php")
        self.assertEqual(params["titles"], "Trabant")
        self.assertEqual(params["formatversion"], "2")

    async def test_fetch_page_missing_returns_none(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(json_data={"query": {"pages": [{"title": "Nope", "missing": True}]}})])
        self.assertIsNone(await client.fetch_page(session, "en", title="Nope"))

    async def test_api_error_body_returns_none(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(json_data={"error": {"code": "badvalue", "info": "bad"}})])
        self.assertIsNone(await client.fetch_page(session, "en", page_id=1))

    async def test_unexpected_shape_returns_none(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(json_data={"query": {"pages": "not-a-list"}})])
        self.assertIsNone(await client.fetch_page(session, "en", page_id=1))

    async def test_fetch_retries_on_500_and_logs_raw_events(self):
        sink = FakeRawSink()
        client = MediaWikiClient(raw_sink=sink, run_id="run-1")
        session = FakeSession([FakeResponse(status=500), FakeResponse(json_data=PAGE_RESPONSE)])

        with patch("src.wiki_import.infrastructure.mw_client.asyncio.sleep", new=AsyncMock()) as sleep:
            page = await client.fetch_page(session, "en", page_id=42)

        self.assertIsNotNone(page)
        self.assertEqual(len(session.requests), 2)
        sleep.assert_awaited_once_with(2)
        self.assertEqual([e["outcome"] for e in sink.events], ["retryable_error", "success"])
        self.assertEqual(sink.events[-1]["run_id"], "run-1")
        self.assertEqual(sink.events[-1]["operation"], "fetch_page")

    async def test_fetch_gives_up_after_retries(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(status=503), FakeResponse(status=503)])
        with patch("src.wiki_import.infrastructure.mw_client.asyncio.sleep", new=AsyncMock()):
            result = await client._fetch(session, "en", {"action": "query"}, retries=2, operation="fetch_page")
        self.assertIsNone(result)

    async def test_fetch_returns_payload_and_logs_http_meta(self):
        sink = FakeRawSink()
        client = MediaWikiClient(raw_sink=sink)
        payload = {"batchcomplete": True, "query": {}}
        session = FakeSession([FakeResponse(json_data=payload, headers={"ETag": "abc"})])

        result = await client._fetch(session, "en", {"action": "query"}, operation="search")

        self.assertEqual(result, payload)
        self.assertEqual(sink.events[0]["http"]["etag"], "abc")

    async def test_non_200_is_http_error_without_retry(self):
        sink = FakeRawSink()
        client = MediaWikiClient(raw_sink=sink)
        session = FakeSession([FakeResponse(status=404, text_data="not found")])
        result = await client._fetch(session, "en", {"action": "query"}, operation="search")
        self.assertIsNone(result)
        self.assertEqual(sink.events[0]["outcome"], "http_error")

    async def test_page_media_follows_continuation_and_dedups(self):
        client = MediaWikiClient()
        first = {
            "continue": {"imcontinue": "42|B.jpg", "continue": "||"},
            "query": {"pages": [{"pageid": 42, "title": "T", "images": [{"title": "File:A.jpg"}, {"title": "File:B.jpg"}]}]},
        }
        second = {"query": {"pages": [{"pageid": 42, "title": "T", "images": [{"title": "File:a.jpg"}, {"title": "File:C.ogg"}]}]}}
        session = FakeSession([FakeResponse(json_data=first), FakeResponse(json_data=second)])

        titles = await client.fetch_page_media(session, "en", 42)

        self.assertEqual(titles, ["A.jpg", "B.jpg", "C.ogg"])
        self.assertEqual(session.requests[1][1]["imcontinue"], "42|B.jpg")

    async def test_lang_links(self):
        client = MediaWikiClient()
        data = {"query": {"pages": [{"pageid": 42, "title": "T", "langlinks": [{"lang": "DE", "title": "Trabant"}]}]}}
        session = FakeSession([FakeResponse(json_data=data)])
        links = await client.fetch_lang_links(session, "en", 42)
        self.assertEqual([(l.lang, l.title) for l in links], [("de", "Trabant")])

    async def test_search_strips_snippet_markup(self):
        client = MediaWikiClient()
        data = {"query": {"search": [{"pageid": 5, "title": "Trabant 601", "snippet": "The <span>Trabant</span> 601"}]}}
        session = FakeSession([FakeResponse(json_data=data)])
        hits = await client.search(session, "en", "Trabant")
        self.assertEqual(hits[0].snippet, "The Trabant 601")
        self.assertEqual(hits[0].url, "https://en.wikipedia.org/wiki/Trabant_601")

    async def test_search_media_queries_commons_file_namespace(self):
        client = MediaWikiClient()
        data = {"query": {"search": [{"pageid": 9, "title": "File:Trabant 601.jpg"}]}}
        session = FakeSession([FakeResponse(json_data=data)])
        titles = await client.search_media(session, "Trabant")
        self.assertEqual(titles, ["Trabant 601.jpg"])
        url, params = session.requests[0]
        self.assertEqual(url, "https://commons.wikimedia.org/w/api.php")
        self.assertEqual(params["srnamespace"], "6")

    async def test_image_info_reads_license_metadata(self):
        client = MediaWikiClient()
        data = {
            "query": {
                "pages": [
                    {
                        "title": "File:Trabant 601.jpg",
                        "imageinfo": [
                            {
                                "url": "https://upload.invalid/Trabant_601.jpg",
                                "mime": "image/jpeg",
                                "size": 1234,
                                "width": 1024,
                                "height": 768,
                                "extmetadata": {
                                    "Artist": {"value": "<a href='x'>Jane Doe</a>"},
                                    "LicenseShortName": {"value": "CC BY-SA 3.0"},
                                    "LicenseUrl": {"value": "https://creativecommons.org/licenses/by-sa/3.0"},
                                },
                            }
                        ],
                    }
                ]
            }
        }
        session = FakeSession([FakeResponse(json_data=data)])

        info = await client.fetch_image_info(session, "commons", "Trabant 601.jpg")

        self.assertEqual(info.title, "Trabant 601.jpg")
        self.assertEqual(info.author, "Jane Doe")
        self.assertEqual(info.license_id, "CC BY-SA 3.0")
        self.assertEqual(info.origin, "commons")
        self.assertEqual((info.width, info.height, info.size), (1024, 768, 1234))
        self.assertEqual(session.requests[0][1]["titles"], "File:Trabant 601.jpg")

    async def test_image_info_without_url_is_none(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(json_data={"query": {"pages": [{"title": "File:X.jpg", "missing": True}]}})])
        self.assertIsNone(await client.fetch_image_info(session, "en", "X.jpg"))

    async def test_download_joins_chunks(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(chunks=[b"ab", b"cd"])])
        self.assertEqual(await client.download(session, "https://upload.invalid/a"), b"abcd")

    async def test_download_over_limit_raises(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(chunks=[b"abc", b"def"])])
        with self.assertRaises(MediaDownloadError):
            await client.download(session, "https://upload.invalid/a", max_bytes=4)

    async def test_download_http_error_raises(self):
        client = MediaWikiClient()
        session = FakeSession([FakeResponse(status=404)])
        with self.assertRaises(MediaDownloadError):
            await client.download(session, "https://upload.invalid/a")


if __name__ == "__main__":
    unittest.main()
