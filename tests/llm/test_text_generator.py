import unittest
from dataclasses import replace
from unittest.mock import patch

from src.config.settings import ImportSettings
from src.llm.codex_cli import CodexCliRunner
from src.llm.errors import LlmConfigError, LlmProviderError
from src.llm.events import DeltaEvent, DoneEvent, ErrorEvent
from src.llm.gemini_client import GeminiStreamClient
from src.llm.openrouter_client import OpenRouterStreamClient
from src.llm.service import TextGenerator, build_text_generator, normalize_provider


class ScriptedBackend:
    def __init__(self, *events):
        self.events = events
        self.prompts = []

    async def stream(self, prompt):
        self.prompts.append(prompt)
        for event in self.events:
            yield event


class FakeCompletion:
    def __init__(self, delta):
        self.delta = delta


class FakeOpenRouter:
    def __init__(self, **kwargs):
        self.kwargs = kwargs

    async def astream_complete(self, prompt):
        async def gen():
            for delta in ("Hello", "", " world"):
                yield FakeCompletion(delta)

        return gen()


class ProviderSelectionTests(unittest.TestCase):
    def setUp(self):
        self.settings = ImportSettings(gemini_api_key="g-key", openrouter_api_key="o-key")

    def test_aliases_and_default(self):
        self.assertEqual(normalize_provider("Gemini"), "gemini_ai")
        self.assertEqual(normalize_provider("codex"), "codex_cli")
        self.assertEqual(normalize_provider("", default="openrouter"), "openrouter")

    def test_unknown_provider_is_config_error(self):
        with self.assertRaises(LlmConfigError):
            normalize_provider("clippy")

    def test_builds_backend_per_provider(self):
        gemini = build_text_generator(self.settings)
        self.assertEqual(gemini.provider, "gemini_ai")
        self.assertIsInstance(gemini.backend, GeminiStreamClient)

        codex = build_text_generator(self.settings, "codex_cli", model="gpt-x")
        self.assertIsInstance(codex.backend, CodexCliRunner)
        self.assertEqual(codex.backend.model, "gpt-x")

        with patch("src.llm.openrouter_client.OpenRouter", new=FakeOpenRouter):
            openrouter = build_text_generator(self.settings, "openrouter")
        self.assertIsInstance(openrouter.backend, OpenRouterStreamClient)
        self.assertEqual(openrouter.backend.llm.kwargs["api_key"], "o-key")

    def test_request_api_key_overrides_settings(self):
        generator = build_text_generator(replace(self.settings, gemini_api_key=None), "gemini_ai", api_key=" req ")
        self.assertEqual(generator.backend.api_key, "req")

    def test_missing_key_is_config_error(self):
        with self.assertRaises(LlmConfigError):
            build_text_generator(ImportSettings(), "gemini_ai")

    def test_vertex_requires_project_and_location(self):
        with self.assertRaises(LlmConfigError):
            build_text_generator(ImportSettings(vertex_api_key="v"), "vertex")


class TextGeneratorTests(unittest.IsolatedAsyncioTestCase):
    async def test_generate_joins_stream(self):
        backend = ScriptedBackend(DeltaEvent("## Title"), DeltaEvent("\nBody "), DoneEvent())
        text = await TextGenerator("gemini_ai", backend).generate("prompt")
        self.assertEqual(text, "## Title\nBody")
        self.assertEqual(backend.prompts, ["prompt"])

    async def test_empty_output_is_empty_string(self):
        self.assertEqual(await TextGenerator("gemini_ai", ScriptedBackend(DoneEvent())).generate("p"), "")

    async def test_error_event_raises(self):
        backend = ScriptedBackend(ErrorEvent("quota"), DoneEvent())
        with self.assertRaises(LlmProviderError):
            await TextGenerator("gemini_ai", backend).generate("p")

    async def test_openrouter_stream_skips_empty_deltas(self):
        with patch("src.llm.openrouter_client.OpenRouter", new=FakeOpenRouter):
            client = OpenRouterStreamClient("key", "some/model")
        events = [event async for event in client.stream("p")]
        self.assertEqual(events, [DeltaEvent("Hello"), DeltaEvent(" world"), DoneEvent()])


if __name__ == "__main__":
    unittest.main()
