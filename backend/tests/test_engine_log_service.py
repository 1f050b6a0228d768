"""
Tests for the engine log sink and JSON log formatting.
"""
import json
import logging

from agent_engine.logging_config import JSONFormatter
from agent_engine.models.engine_log import LogType
from agent_engine.services.engine_log_service import MAX_CONTENT_LENGTH, EngineLogSink, truncate


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("x" * 15, 10) == "x" * 10 + "... [truncated 5 chars]"


def test_write_persists_entry(db, make_execution):
    execution = make_execution()
    sink = EngineLogSink(db)

    entry = sink.write(execution.id, 3, LogType.COMMIT, "Committed abc1234 (2 files)", metadata={"sha": "abc1234"})

    assert entry.id is not None
    assert entry.step == 3
    assert entry.type == LogType.COMMIT
    assert entry.log_metadata == {"sha": "abc1234"}
    assert entry.timestamp is not None


def test_long_content_is_capped(db, make_execution):
    execution = make_execution()
    entry = EngineLogSink(db).write(execution.id, 1, LogType.MESSAGE, "y" * (MAX_CONTENT_LENGTH + 50))
    assert entry.content.startswith("y" * MAX_CONTENT_LENGTH)
    assert entry.content.endswith("[truncated 50 chars]")


def test_list_returns_latest_oldest_first(db, make_execution):
    execution = make_execution()
    other = make_execution(task_id="AGT-2")
    sink = EngineLogSink(db)
    for i in range(5):
        sink.write(execution.id, i, LogType.SYSTEM, f"entry {i}")
    sink.write(other.id, 0, LogType.SYSTEM, "other")

    latest = sink.list_for_execution(execution.id, limit=3)

    assert [e.content for e in latest] == ["entry 2", "entry 3", "entry 4"]


def test_json_formatter_includes_execution_context():
    record = logging.LogRecord("agent_engine", logging.INFO, __file__, 1, "step done", None, None)
    record.execution_id = 12
    record.step = 4

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "step done"
    assert payload["level"] == "INFO"
    assert payload["execution_id"] == 12
    assert payload["step"] == 4
