import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Tuple


class _Sink:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = False

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("no console")
        self.events.append((event, payload))

    def requests(self) -> List[Dict[str, Any]]:
        return [p for e, p in self.events if e == "feedback-request"]


class TestDirectoryWatcher(unittest.TestCase):
    def setUp(self) -> None:
        from ccmcp.kernel.mailbox import MailboxStore
        from ccmcp.kernel.watcher import DirectoryWatcher

        self._td = tempfile.TemporaryDirectory()
        self.mailbox = MailboxStore(Path(self._td.name))
        self.sink = _Sink()
        self.alerts: List[int] = []
        self.watcher = DirectoryWatcher(
            self.mailbox,
            self.sink,
            interval_s=0.05,
            renotify_window_s=300,
            alert=lambda: self.alerts.append(1),
        )

    def tearDown(self) -> None:
        self.watcher.stop()
        self._td.cleanup()

    def _put(self, sid: str, **extra) -> None:
        from ccmcp.contracts.v1 import FeedbackRequestDoc

        self.mailbox.put_request(FeedbackRequestDoc(session_id=sid, ai_response="hi", source="cursor", **extra))

    def test_new_request_raised_once(self) -> None:
        self._put("s1")

        self.assertEqual(self.watcher.scan_once(), 1)
        self.assertEqual(self.watcher.scan_once(), 0)

        reqs = self.sink.requests()
        self.assertEqual(len(reqs), 1)
        self.assertEqual(reqs[0]["session_id"], "s1")
        self.assertFalse(reqs[0]["replay"])
        self.assertEqual(self.alerts, [1])

    def test_marking_keeps_the_document(self) -> None:
        self._put("s1")
        self.watcher.scan_once()

        doc = self.mailbox.get_request("s1")
        self.assertIsNotNone(doc)
        self.assertEqual(doc.status, "processed")
        self.assertTrue(doc.processed_at)
        self.assertTrue(doc.last_seen_at)

    def test_processed_request_is_skipped(self) -> None:
        self._put("s1", status="processed")
        self.assertEqual(self.watcher.scan_once(), 0)
        self.assertEqual(self.sink.events, [])
        self.assertEqual(self.alerts, [])

    def test_recently_seen_request_is_debounced(self) -> None:
        from ccmcp.util.time import utc_now_iso

        self._put("s1", last_seen_at=utc_now_iso())
        self.assertEqual(self.watcher.scan_once(), 0)
        self.assertEqual(self.sink.events, [])

    def test_stale_last_seen_is_raised_again(self) -> None:
        self._put("s1", last_seen_at="2001-01-01T00:00:00Z")
        self.assertEqual(self.watcher.scan_once(), 1)

    def test_replay_resurfaces_without_alert(self) -> None:
        self._put("s1", status="processed")
        self._put("s2")

        self.assertEqual(self.watcher.scan(replay=True), 2)

        by_id = {p["session_id"]: p for p in self.sink.requests()}
        self.assertTrue(by_id["s1"]["replay"])
        self.assertFalse(by_id["s2"]["replay"])
        self.assertEqual(self.alerts, [1])
        self.assertEqual(self.mailbox.get_request("s2").status, "processed")

    def test_closed_event_when_request_disappears(self) -> None:
        self._put("s1")
        self.watcher.scan_once()
        self.mailbox.delete_request("s1")

        self.watcher.scan_once()
        self.assertEqual(self.sink.events[-1], ("feedback-closed", {"session_id": "s1"}))
        self.watcher.scan_once()
        self.assertEqual(len([e for e, _ in self.sink.events if e == "feedback-closed"]), 1)

    def test_emit_failure_leaves_request_for_retry(self) -> None:
        self._put("s1")
        self.sink.fail = True
        self.assertEqual(self.watcher.scan_once(), 0)
        self.assertEqual(self.mailbox.get_request("s1").status, "pending")
        self.assertEqual(self.alerts, [])

        self.sink.fail = False
        self.assertEqual(self.watcher.scan_once(), 1)

    def test_corrupt_document_is_ignored(self) -> None:
        (self.mailbox.requests_dir / "bad.json").parent.mkdir(parents=True, exist_ok=True)
        (self.mailbox.requests_dir / "bad.json").write_text("{", encoding="utf-8")
        self._put("s1")
        self.assertEqual(self.watcher.scan_once(), 1)

    def test_consumed_answer_left_behind_is_reaped(self) -> None:
        self._put("s1", status="processed", feedback_submitted=True, last_seen_at="2001-01-01T00:00:00Z")
        self.watcher._surfaced.add("s1")

        self.assertEqual(self.watcher.scan_once(), 0)
        self.assertFalse(self.mailbox.has_request("s1"))

        self.watcher.scan_once()
        self.assertIn(("feedback-closed", {"session_id": "s1"}), self.sink.events)

    def test_answer_awaiting_pickup_is_kept(self) -> None:
        from ccmcp.util.time import utc_now_iso

        self._put("s1", status="processed", feedback_submitted=True, last_seen_at="2001-01-01T00:00:00Z")
        self.mailbox.put_response("s1", "yes")
        self._put("s2", status="processed", feedback_submitted=True, last_seen_at=utc_now_iso())

        self.watcher.scan_once()
        self.assertTrue(self.mailbox.has_request("s1"))
        self.assertTrue(self.mailbox.has_request("s2"))

    def test_background_thread(self) -> None:
        import time

        self._put("s1")
        self.watcher.start()
        self.assertTrue(self.watcher.running)
        deadline = time.monotonic() + 5
        while not self.sink.requests() and time.monotonic() < deadline:
            time.sleep(0.01)
        self.watcher.stop()
        self.assertFalse(self.watcher.running)
        self.assertEqual([p["session_id"] for p in self.sink.requests()], ["s1"])


if __name__ == "__main__":
    unittest.main()
