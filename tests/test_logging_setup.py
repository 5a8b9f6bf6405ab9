import json
import logging

import pytest

import logging_setup
from logging_setup import _HumanFormatter, human_kv, preview, set_request_id, sha256_8


def test_human_kv_truncates_and_flattens():
    out = human_kv({"a": "line1\nline2", "b": None, "c": "x" * 200})
    assert out.startswith("a=line1 line2 b=- c=")
    assert out.endswith("…")


def test_preview_never_returns_full_long_text():
    assert preview(None) == {"len": 0, "preview": ""}
    p = preview("  abcdef  ", lim=3)
    assert p == {"len": 6, "preview": "abc…"}


def test_sha256_8_is_stable():
    assert sha256_8("hello") == sha256_8("hello")
    assert len(sha256_8("hello")) == 8
    assert sha256_8(None) == sha256_8("")


def test_human_formatter_appends_context_and_kv():
    record = logging.LogRecord("classification.pipeline", logging.INFO, __file__, 1, "classify_complete", None, None)
    record.service = "content-classifier"
    record.request_id = "req-1"
    record.user_id = None
    record.kv = {"tasks": 1}

    line = _HumanFormatter().format(record)

    assert "INFO content-classifier classification.pipeline: classify_complete" in line
    assert line.endswith("| request_id=req-1 tasks=1")


@pytest.fixture
def fresh_root():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level, getattr(root, "_initialized_by_app", False))
    root._initialized_by_app = False
    yield root
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    root._initialized_by_app = saved[2]


def test_init_logging_json_carries_request_context(fresh_root, capsys):
    logging_setup.init_logging("DEBUG", "svc-test", "json")
    set_request_id("req-42")
    try:
        logging.getLogger("test").info("hello")
    finally:
        set_request_id(None)

    payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert payload["message"] == "hello"
    assert payload["service"] == "svc-test"
    assert payload["request_id"] == "req-42"


def test_init_logging_is_idempotent(fresh_root):
    logging_setup.init_logging("INFO", "svc-test", "both")
    count = len(fresh_root.handlers)
    logging_setup.init_logging("INFO", "svc-test", "both")
    assert len(fresh_root.handlers) == count == 2
