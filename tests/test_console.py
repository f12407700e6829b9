"""Tests for stage logging and debug dumps."""

import json

from chatlens import console as chat_console
from chatlens.console import log, write_debug


def test_write_debug_disabled_without_dir():
    assert write_debug(None, "attempt1", {"prompt": "p"}) is None
    assert write_debug("", "attempt1", {"prompt": "p"}) is None


def test_write_debug_dumps_json(tmp_path):
    path = write_debug(str(tmp_path / "debug"), "classify_batch1_attempt1", {"prompt": "안녕", "raw_response": "{}"})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert path.name == "classify_batch1_attempt1.json"
    assert data["prompt"] == "안녕"
    assert "timestamp" in data


def test_stage_tag_printed_literally(monkeypatch):
    monkeypatch.setattr(chat_console, "quiet", False)
    with chat_console.console.capture() as capture:
        log("classifier", "batch 1/2 done")
    assert "[classifier] batch 1/2 done" in capture.get()


def test_quiet_suppresses_log_but_not_error():
    with chat_console.console.capture() as capture:
        log("segment", "hidden")
        chat_console.error("pipeline", "shown")
    output = capture.get()
    assert "hidden" not in output
    assert "[pipeline] shown" in output
