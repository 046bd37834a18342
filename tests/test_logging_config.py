"""
Tests for coresend_core.logging_config: formatters, handlers, redaction.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import unittest

from coresend_core.logging_config import (
    REDACTED,
    SecretRedactingFilter,
    _HumanFormatter,
    _JSONFormatter,
    setup_logging,
)

KEY_HEX = "e284129cc0922579a535bbf4d1a3b25773090d28c909bc0fed73b5e0222cc372"
ADDRESS = "840c4084865fc7153bcef07c5458e1bae1137053"


def _record(msg, *args, level=logging.INFO):
    return logging.LogRecord("coresend_test", level, __file__, 1, msg, args, None)


class TestRedaction(unittest.TestCase):

    def test_long_hex_masked(self):
        rec = _record("key=%s", KEY_HEX)
        SecretRedactingFilter().filter(rec)
        self.assertEqual(rec.getMessage(), f"key={REDACTED}")

    def test_signature_masked(self):
        rec = _record("sig " + "ab" * 64)
        SecretRedactingFilter().filter(rec)
        self.assertNotIn("abab", rec.getMessage())

    def test_address_kept(self):
        rec = _record("inbox %s ready", ADDRESS)
        SecretRedactingFilter().filter(rec)
        self.assertEqual(rec.getMessage(), f"inbox {ADDRESS} ready")

    def test_filter_never_drops(self):
        self.assertTrue(SecretRedactingFilter().filter(_record("plain")))

    def test_traceback_masked(self):
        try:
            raise ValueError(f"bad key {KEY_HEX}")
        except ValueError:
            rec = logging.LogRecord("x", logging.ERROR, __file__, 1, "oops", None, sys.exc_info())
        SecretRedactingFilter().filter(rec)
        self.assertNotIn(KEY_HEX, rec.exc_text)
        self.assertIn(f"bad key {REDACTED}", rec.exc_text)
        self.assertNotIn(KEY_HEX, _JSONFormatter().format(rec))
        self.assertNotIn(KEY_HEX, _HumanFormatter(colour=False).format(rec))


class TestFormatters(unittest.TestCase):

    def test_json(self):
        out = json.loads(_JSONFormatter().format(_record("hello %d", 5)))
        self.assertEqual(out["msg"], "hello 5")
        self.assertEqual(out["level"], "INFO")
        self.assertEqual(out["logger"], "coresend_test")
        self.assertIn("ts", out)

    def test_json_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            rec = logging.LogRecord("x", logging.ERROR, __file__, 1, "oops", None, sys.exc_info())
        out = json.loads(_JSONFormatter().format(rec))
        self.assertIn("ValueError", out["exception"])

    def test_json_context_fields(self):
        rec = _record("GET /api/x -> 409")
        rec.method, rec.path, rec.status = "GET", "/api/x", 409
        out = json.loads(_JSONFormatter().format(rec))
        self.assertEqual((out["method"], out["path"], out["status"]), ("GET", "/api/x", 409))
        self.assertNotIn("address", out)

    def test_human_plain_when_not_a_tty(self):
        line = _HumanFormatter(colour=False).format(_record("hi"))
        self.assertNotIn("\033", line)
        self.assertTrue(line.endswith("[INFO   ] coresend_test: hi"))

    def test_human(self):
        line = _HumanFormatter().format(_record("hi", level=logging.WARNING))
        self.assertIn("WARNING", line)
        self.assertIn("coresend_test: hi", line)


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        root = logging.getLogger()
        self._saved = (root.level, list(root.handlers))

    def tearDown(self):
        root = logging.getLogger()
        for h in root.handlers:
            h.close()
        root.setLevel(self._saved[0])
        root.handlers[:] = self._saved[1]

    def test_level_and_single_console_handler(self):
        setup_logging("DEBUG", "json")
        setup_logging("WARNING", "human")
        root = logging.getLogger()
        self.assertEqual(root.level, logging.WARNING)
        self.assertEqual(len(root.handlers), 1)
        self.assertIsInstance(root.handlers[0].formatter, _HumanFormatter)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("LOUD")
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_file_handler_is_json_and_redacted(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "sub", "client.log")
            setup_logging("INFO", "human", log_file=path)
            logging.getLogger("coresend_test").info("leaked %s", KEY_HEX)
            for h in logging.getLogger().handlers:
                h.flush()
            with open(path) as f:
                line = json.loads(f.readline())
        self.assertEqual(line["msg"], f"leaked {REDACTED}")
