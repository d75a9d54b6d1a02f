import json
import tempfile
import unittest
from pathlib import Path


class TestMailboxStore(unittest.TestCase):
    def setUp(self) -> None:
        from ccmcp.kernel.mailbox import MailboxStore

        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name) / "mcp_manager"
        self.mailbox = MailboxStore(self.root)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _doc(self, sid: str = "s1"):
        from ccmcp.contracts.v1 import FeedbackRequestDoc

        return FeedbackRequestDoc(
            session_id=sid,
            ai_response="Proceed?",
            context="demo",
            source="cursor",
            source_display="Cursor AI",
        )

    def test_directories_created_lazily(self) -> None:
        self.assertFalse(self.root.exists())
        self.assertEqual(self.mailbox.list_pending_request_ids(), set())
        self.assertIsNone(self.mailbox.take_response("s1"))

        self.mailbox.put_request(self._doc())
        self.assertTrue((self.root / "requests" / "s1.json").is_file())

    def test_request_round_trip(self) -> None:
        doc = self._doc()
        self.mailbox.put_request(doc)
        self.mailbox.put_request(doc)  # retry is harmless

        got = self.mailbox.get_request("s1")
        self.assertIsNotNone(got)
        self.assertEqual(got, doc)
        self.assertEqual(got.status, "pending")

        raw = json.loads((self.root / "requests" / "s1.json").read_text(encoding="utf-8"))
        self.assertEqual(raw["session_id"], "s1")
        self.assertEqual(raw["ai_response"], "Proceed?")

    def test_unknown_fields_survive_rewrite(self) -> None:
        p = self.root / "requests" / "s2.json"
        p.parent.mkdir(parents=True)
        p.write_text(json.dumps({"session_id": "s2", "ai_response": "x", "window": {"w": 3}}), encoding="utf-8")

        self.mailbox.mark_seen("s2", processed=True)
        raw = json.loads(p.read_text(encoding="utf-8"))
        self.assertEqual(raw["window"], {"w": 3})
        self.assertEqual(raw["status"], "processed")
        self.assertTrue(raw["processed_at"])
        self.assertTrue(raw["last_seen_at"])

    def test_delete_request_is_idempotent(self) -> None:
        self.mailbox.put_request(self._doc())
        self.assertTrue(self.mailbox.delete_request("s1"))
        self.assertFalse(self.mailbox.delete_request("s1"))
        self.assertFalse(self.mailbox.has_request("s1"))
        self.assertIsNone(self.mailbox.get_request("s1"))

    def test_take_response_only_once(self) -> None:
        self.mailbox.put_response("s1", "yes")
        self.assertEqual(self.mailbox.take_response("s1"), "yes")
        self.assertIsNone(self.mailbox.take_response("s1"))
        self.assertFalse((self.root / "responses" / "s1.json").exists())

    def test_partial_response_is_not_yet_available(self) -> None:
        p = self.root / "responses" / "s1.json"
        p.parent.mkdir(parents=True)
        p.write_text('{"feedback": "ye', encoding="utf-8")
        self.assertIsNone(self.mailbox.take_response("s1"))
        self.assertTrue(p.exists())

    def test_list_ignores_temp_and_foreign_files(self) -> None:
        self.mailbox.put_request(self._doc("a"))
        self.mailbox.put_request(self._doc("b"))
        d = self.root / "requests"
        (d / ".c.json.123.tmp").write_text("{}", encoding="utf-8")
        (d / "notes.txt").write_text("x", encoding="utf-8")
        self.assertEqual(self.mailbox.list_pending_request_ids(), {"a", "b"})
        self.assertEqual([doc.session_id for doc in self.mailbox.iter_requests()], ["a", "b"])

    def test_mark_seen_does_not_resurrect(self) -> None:
        self.assertIsNone(self.mailbox.mark_seen("gone", processed=True))
        self.assertFalse(self.mailbox.has_request("gone"))

    def test_rejects_path_like_session_ids(self) -> None:
        for bad in ("", "../x", "a/b", ".hidden"):
            with self.assertRaises(ValueError):
                self.mailbox.request_path(bad)

    def test_write_failure_raises_mailbox_error(self) -> None:
        from ccmcp.kernel.mailbox import MailboxError, MailboxStore

        blocker = Path(self._td.name) / "not_a_dir"
        blocker.write_text("x", encoding="utf-8")
        store = MailboxStore(blocker)
        with self.assertRaises(MailboxError):
            store.put_request(self._doc())
        with self.assertRaises(MailboxError):
            store.put_response("s1", "yes")


if __name__ == "__main__":
    unittest.main()
