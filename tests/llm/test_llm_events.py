import unittest

from src.llm.errors import LlmProviderError
from src.llm.events import (
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    JsonLineEventDecoder,
    MessageEvent,
    collect_text,
)


async def _events(*events):
    for event in events:
        yield event


class JsonLineEventDecoderTests(unittest.TestCase):
    def setUp(self):
        self.decoder = JsonLineEventDecoder()

    def test_plain_text_becomes_delta(self):
        self.assertEqual(self.decoder.decode("hello world\n"), DeltaEvent(text="hello world\n"))

    def test_blank_line_is_ignored(self):
        self.assertIsNone(self.decoder.decode("   \n"))

    def test_agent_message_item(self):
        line = '{"type": "item.completed", "item": {"type": "agent_message", "text": "## Article"}}'
        self.assertEqual(self.decoder.decode(line), MessageEvent(text="## Article"))

    def test_assistant_message_with_content_parts(self):
        line = '{"type": "message", "message": {"role": "assistant", "content": [{"text": "a"}, {"text": "b"}]}}'
        self.assertEqual(self.decoder.decode(line), MessageEvent(text="ab"))

    def test_user_message_is_dropped(self):
        self.assertIsNone(self.decoder.decode('{"type": "message", "message": {"role": "user", "content": "x"}}'))

    def test_error_events(self):
        self.assertEqual(
            self.decoder.decode('{"type": "turn.failed", "error": {"message": "quota"}}'),
            ErrorEvent(message="quota"),
        )
        self.assertEqual(self.decoder.decode('{"type": "error"}'), ErrorEvent(message="Codex CLI reported an error"))

    def test_delta_event(self):
        self.assertEqual(self.decoder.decode('{"type": "text_delta", "delta": "par"}'), DeltaEvent(text="par"))

    def test_unknown_json_event_is_ignored(self):
        self.assertIsNone(self.decoder.decode('{"type": "thread.started", "thread_id": "t"}'))


class CollectTextTests(unittest.IsolatedAsyncioTestCase):
    async def test_joins_messages_and_deltas(self):
        text = await collect_text(_events(DeltaEvent("Hel"), DeltaEvent("lo"), MessageEvent(" there "), DoneEvent()))
        self.assertEqual(text, "Hello there")

    async def test_error_event_raises(self):
        with self.assertRaises(LlmProviderError) as ctx:
            await collect_text(_events(DeltaEvent("partial"), ErrorEvent("boom"), DoneEvent()))
        self.assertEqual(str(ctx.exception), "boom")


if __name__ == "__main__":
    unittest.main()
