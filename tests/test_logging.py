"""
Tests for aidwatch/utils/logging.py - JSON formatter and correlation ids.
"""
import json
import logging
import sys

from aidwatch.utils.logging import (
    StructuredJsonFormatter,
    configure_structured_logging,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


def _record(msg="Crisis created", **extra) -> logging.LogRecord:
    record = logging.LogRecord("aidwatch.services.correlation", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    def test_generate_is_hex(self):
        cid = generate_correlation_id()
        assert len(cid) == 32
        int(cid, 16)

    def test_set_and_get(self):
        set_correlation_id("cid-1")
        try:
            assert get_correlation_id() == "cid-1"
        finally:
            set_correlation_id(None)
        assert get_correlation_id() is None


class TestStructuredJsonFormatter:
    def test_core_fields(self):
        set_correlation_id("cid-7")
        try:
            line = json.loads(StructuredJsonFormatter().format(_record()))
        finally:
            set_correlation_id(None)

        assert line["level"] == "INFO"
        assert line["module"] == "aidwatch.services.correlation"
        assert line["message"] == "Crisis created"
        assert line["correlation_id"] == "cid-7"
        assert line["timestamp"].endswith("Z")

    def test_known_extras_copied(self):
        line = json.loads(StructuredJsonFormatter().format(
            _record(crisis_id="c-1", job="summary_batch", unrelated="dropped"),
        ))
        assert line["crisis_id"] == "c-1"
        assert line["job"] == "summary_batch"
        assert "unrelated" not in line

    def test_exception_included(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        line = json.loads(StructuredJsonFormatter().format(record))
        assert "ValueError: bad payload" in line["exception"]


class TestConfigure:
    def test_installs_single_json_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_structured_logging("debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)
            assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
