import json
import stat
import tempfile
import unittest
from pathlib import Path

from grclink.session_store import (
    RELOAD_TIMESTAMP_KEY,
    SessionStore,
    is_stale_bundle_error,
    should_reload_after_load_error,
)


class SessionStoreTests(unittest.TestCase):
    def test_in_memory_store(self) -> None:
        store = SessionStore()
        store.set_item("redirectAfterLogin", "/risks")

        self.assertEqual(store.get_item("redirectAfterLogin"), "/risks")
        store.remove_item("redirectAfterLogin")
        self.assertIsNone(store.get_item("redirectAfterLogin"))

    def test_file_store_persists_between_instances(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "nested" / "session.json"
            SessionStore(path).set_item("redirectAfterLogin", "/audits/a-1")

            self.assertEqual(json.loads(path.read_text()), {"redirectAfterLogin": "/audits/a-1"})
            self.assertEqual(stat.S_IMODE(path.stat().st_mode), 0o600)
            reopened = SessionStore(path)
            self.assertEqual(reopened.get_item("redirectAfterLogin"), "/audits/a-1")
            reopened.clear()
            self.assertEqual(json.loads(path.read_text()), {})

    def test_invalid_file_starts_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "session.json"
            path.write_text("{not json")

            self.assertIsNone(SessionStore(path).get_item("anything"))


class ReloadGuardTests(unittest.TestCase):
    def test_stale_bundle_messages(self) -> None:
        self.assertTrue(is_stale_bundle_error("Failed to fetch dynamically imported module: /a.js"))
        self.assertTrue(is_stale_bundle_error("Loading chunk 42 failed."))
        self.assertFalse(is_stale_bundle_error("TypeError: x is undefined"))
        self.assertFalse(is_stale_bundle_error(None))

    def test_reload_at_most_once_per_window(self) -> None:
        store = SessionStore()
        message = "Failed to load module script"

        self.assertTrue(should_reload_after_load_error(store, message, now_ms=1_000))
        self.assertEqual(store.get_item(RELOAD_TIMESTAMP_KEY), "1000")
        self.assertFalse(should_reload_after_load_error(store, message, now_ms=11_000))
        self.assertTrue(should_reload_after_load_error(store, message, now_ms=11_001))

    def test_other_errors_never_reload(self) -> None:
        store = SessionStore()

        self.assertFalse(should_reload_after_load_error(store, "boom", now_ms=1_000))
        self.assertIsNone(store.get_item(RELOAD_TIMESTAMP_KEY))


if __name__ == "__main__":
    unittest.main()
