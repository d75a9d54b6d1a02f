import io
import json
import logging
import unittest


class TestJsonLogging(unittest.TestCase):
    def test_formatter_carries_correlation_fields(self) -> None:
        from ccmcp.util.obslog import JsonlFormatter

        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonlFormatter(component="mcp"))
        log = logging.getLogger("ccmcp.test.obslog")
        log.propagate = False
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        try:
            log.info("resolved %s", "response", extra={"session_id": "abc", "tool": "feedback", "source": " "})
        finally:
            log.removeHandler(handler)

        line = json.loads(stream.getvalue())
        self.assertEqual(line["msg"], "resolved response")
        self.assertEqual(line["component"], "mcp")
        self.assertEqual(line["session_id"], "abc")
        self.assertEqual(line["tool"], "feedback")
        self.assertNotIn("source", line)
        self.assertTrue(line["ts"].endswith("Z"))

    def test_parse_level(self) -> None:
        from ccmcp.util.obslog import parse_level

        self.assertEqual(parse_level("debug"), logging.DEBUG)
        self.assertEqual(parse_level("notice"), logging.INFO)
        self.assertEqual(parse_level("emergency"), logging.CRITICAL)
        self.assertEqual(parse_level("nonsense", default=logging.WARNING), logging.WARNING)
        self.assertEqual(parse_level(None), logging.INFO)


if __name__ == "__main__":
    unittest.main()
