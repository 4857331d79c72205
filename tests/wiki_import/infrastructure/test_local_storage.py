import json
import unittest

from src.wiki_import.infrastructure.api_call_sink import ApiCallJsonlSink
from src.wiki_import.infrastructure.asset_store import LocalAssetStore
from tests.utils.tempdir import managed_temp_dir


class ApiCallJsonlSinkTests(unittest.IsolatedAsyncioTestCase):
    async def test_writes_one_line_per_event_with_run_id(self):
        with managed_temp_dir("api_sink") as tmp:
            sink = ApiCallJsonlSink(tmp, run_id="20250101T000000Z")
            try:
                await sink.write_event({"operation": "fetch_page", "outcome": "success"})
                await sink.write_event({"operation": "search", "run_id": "other", "title": "Zürich"})
            finally:
                sink.close()

            lines = sink.file_path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(sink.file_path.name, "wiki_import_20250101T000000Z.jsonl")
            self.assertEqual(len(lines), 2)
            self.assertEqual(sink.event_count, 2)
            first, second = (json.loads(line) for line in lines)
            self.assertEqual(first["run_id"], "20250101T000000Z")
            self.assertEqual(second["run_id"], "other")
            self.assertIn("Zürich", lines[1])

    async def test_long_response_text_is_clipped(self):
        with managed_temp_dir("api_sink_clip") as tmp:
            sink = ApiCallJsonlSink(tmp, run_id="r", text_limit=5)
            try:
                await sink.write_event({"operation": "fetch_page", "response_text": "0123456789"})
            finally:
                sink.close()
            event = json.loads(sink.file_path.read_text(encoding="utf-8"))
            self.assertEqual(event["response_text"], "01234")
            self.assertEqual(event["response_text_truncated"], 10)

    async def test_write_after_close_raises(self):
        with managed_temp_dir("api_sink_closed") as tmp:
            sink = ApiCallJsonlSink(tmp, run_id="r")
            sink.close()
            sink.close()
            with self.assertRaises(RuntimeError):
                await sink.write_event({"operation": "x"})


class LocalAssetStoreTests(unittest.TestCase):
    def test_write_and_read_round_trip_under_workspace(self):
        with managed_temp_dir("asset_store") as tmp:
            store = LocalAssetStore(tmp / "storage")
            key = store.write("ws1", "Trabant 601/front.jpg", b"\x89PNG", now_ms=1700000000000)

            self.assertTrue(key.startswith("ws1/1700000000000-"))
            self.assertEqual(key.count("/"), 1)
            self.assertEqual(store.read(key), b"\x89PNG")
            self.assertTrue(store.path_for(key).is_file())

    def test_delete_removes_file_and_tolerates_missing_keys(self):
        with managed_temp_dir("asset_store_delete") as tmp:
            store = LocalAssetStore(tmp)
            key = store.write("ws", "a.jpg", b"1", now_ms=1)
            store.delete(key)
            self.assertFalse(store.path_for(key).exists())
            store.delete(key)

    def test_distinct_timestamps_give_distinct_keys(self):
        with managed_temp_dir("asset_store_keys") as tmp:
            store = LocalAssetStore(tmp)
            first = store.write("ws", "a.jpg", b"1", now_ms=1)
            second = store.write("ws", "a.jpg", b"2", now_ms=2)
            self.assertNotEqual(first, second)
            self.assertEqual(store.read(first), b"1")


if __name__ == "__main__":
    unittest.main()
