"""
Tests for the structured JSON log formatter.
"""
import json
import logging

from nclex_cat.core.logging_config import JSONFormatter, request_id_context


def make_record(level=logging.INFO, msg="Exam started", **extra):
    record = logging.LogRecord(
        name="nclex_cat.api.v1.exams",
        level=level,
        pathname="/app/nclex_cat/api/v1/exams.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(make_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "nclex_cat.api.v1.exams"
        assert entry["message"] == "Exam started"
        assert "timestamp" in entry
        assert "source" not in entry

    def test_structured_extras_are_copied(self):
        record = make_record(session_id=12, candidate_id="cand-1", unrelated="x")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["session_id"] == 12
        assert entry["candidate_id"] == "cand-1"
        assert "unrelated" not in entry

    def test_errors_include_source(self):
        entry = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert entry["source"] == "/app/nclex_cat/api/v1/exams.py:42"

    def test_request_id_from_context(self):
        token = request_id_context.set("req-abc")
        try:
            entry = json.loads(JSONFormatter().format(make_record()))
        finally:
            request_id_context.reset(token)
        assert entry["request_id"] == "req-abc"
