import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient


class TestWebConsole(unittest.TestCase):
    def setUp(self) -> None:
        from ccmcp.kernel.mailbox import MailboxStore
        from ccmcp.kernel.settings import Settings
        from ccmcp.ports.web.app import create_app

        self._td = tempfile.TemporaryDirectory()
        self.mailbox = MailboxStore(Path(self._td.name))
        self.app = create_app(Settings(alert_enabled=False), mailbox=self.mailbox, start_watcher=False)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _put(self, sid: str, ai_response: str = "Proceed?") -> None:
        from ccmcp.contracts.v1 import FeedbackRequestDoc

        self.mailbox.put_request(FeedbackRequestDoc(session_id=sid, ai_response=ai_response, source="cursor"))

    def test_ping(self) -> None:
        with TestClient(self.app) as client:
            body = client.get("/api/v1/ping").json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["result"]["storage_dir"], str(self.mailbox.root))
        self.assertEqual(body["result"]["watcher"], "stopped")

    def test_list_and_get(self) -> None:
        self._put("a")
        self._put("b", "Other")
        with TestClient(self.app) as client:
            sessions = client.get("/api/v1/feedback").json()["result"]["sessions"]
            one = client.get("/api/v1/feedback/b").json()["result"]
            missing = client.get("/api/v1/feedback/zzz")
            bad = client.get("/api/v1/feedback/.hidden")

        self.assertEqual({s["session_id"] for s in sessions}, {"a", "b"})
        self.assertEqual(one["ai_response"], "Other")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"]["code"], "session_not_found")
        self.assertEqual(bad.status_code, 400)

    def test_reply(self) -> None:
        self._put("a")
        with TestClient(self.app) as client:
            r = client.post("/api/v1/feedback/a/reply", json={"feedback": "go ahead"})
            again = client.post("/api/v1/feedback/nope/reply", json={"feedback": "x"})

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["result"], {"session_id": "a"})
        doc = self.mailbox.get_request("a")
        self.assertEqual(doc.status, "processed")
        self.assertTrue(doc.feedback_submitted)
        self.assertEqual(self.mailbox.take_response("a"), "go ahead")
        self.assertEqual(again.status_code, 404)
        self.assertFalse(self.mailbox.response_path("nope").exists())

    def test_reply_requires_feedback(self) -> None:
        self._put("a")
        with TestClient(self.app) as client:
            r = client.post("/api/v1/feedback/a/reply", json={})
        self.assertEqual(r.status_code, 422)

    def test_cancel(self) -> None:
        self._put("a")
        with TestClient(self.app) as client:
            first = client.post("/api/v1/feedback/a/cancel").json()["result"]
            second = client.post("/api/v1/feedback/a/cancel").json()["result"]
        self.assertTrue(first["removed"])
        self.assertFalse(second["removed"])
        self.assertFalse(self.mailbox.has_request("a"))

    def test_scan_surfaces_to_broker(self) -> None:
        self._put("a")
        with TestClient(self.app) as client:
            first = client.post("/api/v1/feedback/scan").json()["result"]
            second = client.post("/api/v1/feedback/scan").json()["result"]

        self.assertEqual(first["surfaced"], 1)
        # Rescans replay what the console has already seen.
        self.assertEqual(second["surfaced"], 1)
        recent = self.app.state.broker.recent()
        self.assertEqual([e for e, _ in recent], ["feedback-request", "feedback-request"])
        self.assertFalse(recent[0][1]["replay"])
        self.assertTrue(recent[1][1]["replay"])

    def test_tools(self) -> None:
        with TestClient(self.app) as client:
            names = [t["name"] for t in client.get("/api/v1/tools").json()["result"]["tools"]]
            info = client.post("/api/v1/tools/system_info", json={})
            failed = client.post("/api/v1/tools/file_read", json={"arguments": {}})
            unknown = client.post("/api/v1/tools/nope", json={})

        self.assertEqual(names, ["file_read", "system_info", "feedback"])
        self.assertEqual(info.status_code, 200)
        self.assertIn("hostname", info.json()["result"])
        self.assertEqual(failed.status_code, 400)
        self.assertEqual(failed.json()["error"]["code"], "missing_argument")
        self.assertEqual(unknown.status_code, 404)

    def test_shutdown_releases_blocked_feedback_call(self) -> None:
        import threading

        outcome = {}

        def call() -> None:
            outcome.update(self.app.state.registry.execute("feedback", {"ai_response": "still there?"}))

        with TestClient(self.app):
            t = threading.Thread(target=call, daemon=True)
            t.start()
            for _ in range(500):
                if self.mailbox.list_pending_request_ids():
                    break
                t.join(0.01)
        t.join(5)

        self.assertTrue(self.app.state.stop_event.is_set())
        self.assertFalse(t.is_alive())
        self.assertEqual(outcome["type"], "cancelled")
        self.assertEqual(self.mailbox.list_pending_request_ids(), set())

    def test_token_required_when_configured(self) -> None:
        with patch.dict(os.environ, {"CCMCP_WEB_TOKEN": "s3cret"}):
            with TestClient(self.app) as client:
                denied = client.get("/api/v1/ping")
                allowed = client.get("/api/v1/ping", headers={"Authorization": "Bearer s3cret"})
        self.assertEqual(denied.status_code, 401)
        self.assertEqual(allowed.status_code, 200)


class TestEventEncoding(unittest.TestCase):
    def test_encode_sse(self) -> None:
        from ccmcp.ports.web.streams import encode_sse

        frame = encode_sse("feedback-closed", {"session_id": "a"})
        self.assertEqual(frame, b'event: feedback-closed\ndata: {"session_id": "a"}\n\n')

    def test_late_subscriber_receives_backlog(self) -> None:
        import asyncio

        from ccmcp.ports.web.streams import EventBroker, encode_sse, sse_events

        async def scenario():
            broker = EventBroker()
            broker.bind(asyncio.get_running_loop())
            broker.emit("feedback-request", {"session_id": "a"})
            await asyncio.sleep(0)

            stream = sse_events(broker, heartbeat_s=0.05)
            frames = [await stream.__anext__(), await stream.__anext__()]
            broker.emit("feedback-closed", {"session_id": "a"})
            frames.append(await stream.__anext__())
            await stream.aclose()
            return frames

        frames = asyncio.run(scenario())
        self.assertEqual(frames[0], b": connected\n\n")
        self.assertEqual(frames[1], encode_sse("feedback-request", {"session_id": "a"}))
        self.assertEqual(frames[2], encode_sse("feedback-closed", {"session_id": "a"}))

    def test_emit_without_loop_only_records(self) -> None:
        from ccmcp.ports.web.streams import EventBroker

        broker = EventBroker(backlog=2)
        for i in range(3):
            broker.emit("feedback-closed", {"session_id": str(i)})
        self.assertEqual([p["session_id"] for _, p in broker.recent()], ["1", "2"])


if __name__ == "__main__":
    unittest.main()
