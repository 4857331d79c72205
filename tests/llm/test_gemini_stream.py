import json
import unittest

from src.llm.errors import LlmConfigError
from src.llm.events import DeltaEvent, DoneEvent, ErrorEvent
from src.llm.gemini_client import GeminiChunk, GeminiStreamClient, parse_sse_data


class FakeLines:
    def __init__(self, lines):
        self._lines = list(lines)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._lines:
            raise StopAsyncIteration
        return self._lines.pop(0)


class FakePostResponse:
    def __init__(self, status=200, lines=(), text_data=""):
        self.status = status
        self.content = FakeLines(lines)
        self._text_data = text_data

    async def text(self):
        return self._text_data

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePostSession:
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, json=None, **kwargs):
        self.posts.append((url, json))
        return self.response


def sse(payload):
    return f"data: {json.dumps(payload)}\n".encode("utf-8")


def chunk(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class GeminiStreamClientTests(unittest.IsolatedAsyncioTestCase):
    def test_missing_key_or_vertex_settings_are_config_errors(self):
        with self.assertRaises(LlmConfigError):
            GeminiStreamClient(None, "gemini-1.5-flash")
        with self.assertRaises(LlmConfigError):
            GeminiStreamClient("k", "gemini-1.5-flash", source="vertex", vertex_project="p")

    def test_ai_studio_url_uses_sse(self):
        client = GeminiStreamClient("k/ey", "gemini-1.5-flash")
        self.assertEqual(
            client.url,
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:streamGenerateContent"
            "?alt=sse&key=k%2Fey",
        )

    def test_vertex_url(self):
        client = GeminiStreamClient("k", "m", source="vertex", vertex_project="proj", vertex_location="europe-west4")
        self.assertTrue(
            client.url.startswith(
                "https://europe-west4-aiplatform.googleapis.com/v1/projects/proj/locations/europe-west4"
                "/publishers/google/models/m:streamGenerateContent?alt=sse"
            )
        )

    def test_search_tool_only_when_enabled(self):
        self.assertNotIn("tools", GeminiStreamClient("k", "m").build_body("hi"))
        body = GeminiStreamClient("k", "m", enable_search=True).build_body("hi")
        self.assertEqual(body["tools"], [{"google_search": {}}])
        self.assertEqual(body["contents"][0]["parts"][0]["text"], "hi")

    def test_parse_sse_data(self):
        self.assertEqual(parse_sse_data('data: {"a": 1}'), '{"a": 1}')
        self.assertIsNone(parse_sse_data(": keep-alive"))
        self.assertIsNone(parse_sse_data("data:"))

    def test_chunk_text_joins_parts(self):
        parsed = GeminiChunk.model_validate({"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]})
        self.assertEqual(parsed.text, "ab")
        self.assertEqual(GeminiChunk.model_validate({}).text, "")

    async def test_stream_yields_deltas_and_skips_malformed_chunks(self):
        response = FakePostResponse(lines=[sse(chunk("Hel")), b"\n", b"data: {broken\n", sse(chunk("lo")), b": ping\n"])
        session = FakePostSession(response)
        client = GeminiStreamClient("k", "m")

        events = [event async for event in client.stream_with_session(session, "prompt")]

        self.assertEqual(events, [DeltaEvent(text="Hel"), DeltaEvent(text="lo"), DoneEvent()])
        self.assertEqual(session.posts[0][1]["contents"][0]["parts"][0]["text"], "prompt")

    async def test_http_error_becomes_error_event(self):
        session = FakePostSession(FakePostResponse(status=403, text_data="denied"))
        client = GeminiStreamClient("k", "m")

        events = [event async for event in client.stream_with_session(session, "prompt")]

        self.assertEqual(events, [ErrorEvent(message="Gemini error 403: denied"), DoneEvent()])

    async def test_in_stream_error_chunk(self):
        response = FakePostResponse(lines=[sse({"error": {"code": 429, "message": "quota"}})])
        client = GeminiStreamClient("k", "m")
        events = [event async for event in client.stream_with_session(FakePostSession(response), "p")]
        self.assertEqual(events[0], ErrorEvent(message="Gemini error 429: quota"))


if __name__ == "__main__":
    unittest.main()
