# tests/test_logging_config.py
import json
import logging
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from maestro_themes.logging_config import (  # noqa: E402
    ConsoleFormatter,
    ProductionJSONFormatter,
    log_json,
    reset_logging_state,
    setup_logging,
)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("maestro_themes.test", logging.INFO, __file__, 10, msg, None, None, func="fn")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class FormatterTests(unittest.TestCase):
    def test_json_formatter_redacts_tokens_and_sensitive_extras(self) -> None:
        record = _record("calling site with Bearer abc.def.ghi", api_key="sk_live_1234567890", package_id="astra")

        payload = json.loads(ProductionJSONFormatter().format(record))

        self.assertEqual(payload["level"], "INFO")
        self.assertNotIn("abc.def.ghi", payload["msg"])
        self.assertEqual(payload["extra"]["api_key"], "sk_l***7890")
        self.assertEqual(payload["extra"]["package_id"], "astra")

    def test_console_formatter_inlines_known_extras(self) -> None:
        line = ConsoleFormatter().format(_record("Theme upgraded", package_id="astra", state="completed"))

        self.assertIn("[ INFO] maestro_themes.test - Theme upgraded", line)
        self.assertIn("| package_id=astra state=completed", line)

    def test_log_json_redacts_payload(self) -> None:
        logger = logging.getLogger("maestro_themes.test.log_json")
        with self.assertLogs(logger, level="INFO") as captured:
            log_json(logger, logging.INFO, {"event": "site.request", "token": "short"})

        self.assertEqual(json.loads(captured.records[0].getMessage()), {"event": "site.request", "token": "***"})


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        root = logging.getLogger()
        self._handlers = list(root.handlers)
        self._level = root.level
        reset_logging_state()

    def tearDown(self) -> None:
        root = logging.getLogger()
        root.handlers[:] = self._handlers
        root.setLevel(self._level)
        reset_logging_state()

    def test_installs_single_handler_once(self) -> None:
        setup_logging("debug", as_json=True)
        setup_logging("info", as_json=False)

        root = logging.getLogger()
        self.assertEqual(len(root.handlers), 1)
        self.assertIsInstance(root.handlers[0].formatter, ProductionJSONFormatter)
        self.assertEqual(root.level, logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
