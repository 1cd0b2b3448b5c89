"""Unit tests for logging module."""

import json

from loguru import logger

from src.exchangehub.logging import _is_library_record, get_logger, serialize, trace_context


def test_trace_context_binds_trace_id():
    """Test records inside the context carry the trace id."""
    seen = []
    sink_id = logger.add(lambda message: seen.append(message.record["extra"].get("trace_id")), level="DEBUG")
    try:
        with trace_context("trace-1") as trace_id:
            get_logger("tests").info("inside")
        get_logger("tests").info("outside")
    finally:
        logger.remove(sink_id)

    assert trace_id == "trace-1"
    assert seen == ["trace-1", None]


def test_trace_context_generates_id():
    with trace_context() as trace_id:
        assert len(trace_id) == 36


def test_serialize_emits_json_line():
    """Test JSON output includes extras and survives braces in messages."""
    lines = []
    sink_id = logger.add(lines.append, format=serialize, level="DEBUG")
    try:
        get_logger("tests.json").bind(order_id="ORD-1").info("payload {'a': 1}")
    finally:
        logger.remove(sink_id)

    record = json.loads(lines[0])
    assert record["message"] == "payload {'a': 1}"
    assert record["level"] == "INFO"
    assert record["service"] == "exchangehub"
    assert record["order_id"] == "ORD-1"


def test_activity_records_are_kept_out_of_library_sinks():
    assert _is_library_record({"extra": {"module": "x"}})
    assert not _is_library_record({"extra": {"activity_sink": "token"}})
