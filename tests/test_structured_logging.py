import json
import logging
import unittest

from nowbench.util.logging import log_structured_event, new_job_id


class _CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


def _capturing_logger(name):
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    handler = _CaptureHandler()
    logger.handlers = [handler]
    return logger, handler


class TestStructuredLogging(unittest.TestCase):
    def test_new_job_id_prefix(self):
        job_id = new_job_id("bench")
        self.assertTrue(job_id.startswith("bench_"))
        self.assertGreater(len(job_id), len("bench_"))

    def test_new_job_id_without_prefix(self):
        self.assertEqual(len(new_job_id()), 12)

    def test_log_structured_event_emits_json_message(self):
        logger, handler = _capturing_logger("nowbench.tests.structured_logging")

        payload = log_structured_event(
            logger,
            logging.INFO,
            "unit_done",
            unit_id="dotWalkingTests-caller_details-10",
            winner="rest",
            rest_ms=11.0,
        )
        self.assertEqual(payload["event"], "unit_done")
        self.assertEqual(len(handler.messages), 1)

        decoded = json.loads(handler.messages[0])
        self.assertEqual(decoded["event"], "unit_done")
        self.assertEqual(decoded["unit_id"], "dotWalkingTests-caller_details-10")
        self.assertEqual(decoded["winner"], "rest")
        self.assertEqual(decoded["rest_ms"], 11.0)

    def test_log_structured_event_redacts_sensitive_fields(self):
        logger, handler = _capturing_logger("nowbench.tests.structured_logging.redaction")

        payload = log_structured_event(
            logger,
            logging.INFO,
            "auth_event",
            session_token="abc123",
            authorization="Basic secret",
            password="hunter2",
            retries=2,
        )
        self.assertEqual(payload["session_token"], "<redacted>")
        self.assertEqual(payload["authorization"], "<redacted>")
        self.assertEqual(payload["password"], "<redacted>")
        self.assertEqual(payload["retries"], 2)

        decoded = json.loads(handler.messages[0])
        self.assertEqual(decoded["session_token"], "<redacted>")
        self.assertNotIn("hunter2", handler.messages[0])

    def test_log_structured_event_redacts_inside_nested_headers(self):
        logger, handler = _capturing_logger("nowbench.tests.structured_logging.nested")

        payload = log_structured_event(
            logger,
            logging.INFO,
            "request_sent",
            headers={"X-UserToken": "tok", "Accept": "application/json"},
        )

        self.assertEqual(payload["headers"], {"X-UserToken": "<redacted>", "Accept": "application/json"})
        self.assertNotIn('"tok"', handler.messages[0])

    def test_log_structured_event_drops_none_and_truncates_long_strings(self):
        logger, handler = _capturing_logger("nowbench.tests.structured_logging.truncate")

        payload = log_structured_event(logger, logging.INFO, "big", error=None, body="x" * 5000)

        self.assertNotIn("error", payload)
        self.assertTrue(payload["body"].endswith("...<truncated>"))
        self.assertLess(len(payload["body"]), 5000)

    def test_log_structured_event_skips_disabled_levels(self):
        logger, handler = _capturing_logger("nowbench.tests.structured_logging.disabled")

        payload = log_structured_event(logger, logging.DEBUG, "quiet", value=1)

        self.assertEqual(payload["value"], 1)
        self.assertEqual(handler.messages, [])
