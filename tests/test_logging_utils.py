"""Tests for pipeline summary logging."""

import json
import logging

import pytest

from ai_tool_catalog.logging_config import IndentLogger
from ai_tool_catalog.logging_utils import SUMMARY_PREFIX
from ai_tool_catalog.logging_utils import pipeline_summary


def _summary_payload(caplog):
    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith(SUMMARY_PREFIX)]
    assert len(lines) == 1
    return json.loads(lines[0][len(SUMMARY_PREFIX) :])


def test_success_summary(caplog):
    with caplog.at_level(logging.INFO):
        with pipeline_summary("demo") as summary:
            summary.add_metric("count", 3.0)
            summary.add_metric("skipped", None)
            summary.add_metric("flag", True)
            summary.add_attribute("url", "https://example.com")

    payload = _summary_payload(caplog)
    assert payload["status"] == "success"
    assert payload["metrics"] == {"count": 3, "flag": 1}
    assert payload["attributes"] == {"url": "https://example.com"}


def test_exception_marks_failure_and_reraises(caplog):
    recorded = []
    with caplog.at_level(logging.INFO):
        with pytest.raises(ValueError):
            with pipeline_summary("demo", recorder=lambda name, payload: recorded.append(payload)):
                raise ValueError("bad")

    payload = _summary_payload(caplog)
    assert payload["status"] == "error"
    assert payload["error_type"] == "ValueError"
    assert recorded[0]["status"] == "error"


def test_recorder_failure_is_logged_not_raised(caplog):
    def broken(name, payload):
        raise RuntimeError("disk full")

    with caplog.at_level(logging.WARNING):
        with pipeline_summary("demo", recorder=broken) as summary:
            summary.mark_failed(error_type="FETCH_FAILED", note="HTTP 503")

    assert "Failed to record pipeline run" in caplog.text


def test_indent_logger_prefixes(caplog):
    ilog = IndentLogger(logging.getLogger("indent-test"))
    with caplog.at_level(logging.INFO, logger="indent-test"):
        ilog.info("top")
        ilog.indent()
        ilog.info("nested")
        ilog.dedent()
        ilog.dedent()
        ilog.info("top again")

    assert [r.getMessage() for r in caplog.records] == ["▶ top", "  • nested", "▶ top again"]
