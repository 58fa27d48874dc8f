"""
Tests for core/structured_log.py - JSONL event logging.
"""

from core import structured_log
from core.structured_log import jlog, read_recent_logs


class TestJlog:
    """Tests for writing and reading events."""

    def test_writes_json_line(self, isolated_event_log):
        jlog("evolution_best", kind="order", score=12.5)

        entries = read_recent_logs()
        assert len(entries) == 1
        assert entries[0]["event"] == "evolution_best"
        assert entries[0]["score"] == 12.5
        assert entries[0]["level"] == "INFO"
        assert (isolated_event_log / "events.jsonl").exists()

    def test_level_filter_and_count(self):
        for i in range(5):
            jlog("tick", i=i)
        jlog("problem", level="WARNING")

        assert [e["i"] for e in read_recent_logs(2, level="INFO")] == [3, 4]
        assert [e["event"] for e in read_recent_logs(level="WARNING")] == ["problem"]

    def test_unknown_level_still_logged(self):
        jlog("odd", level="CHATTY")
        assert read_recent_logs()[-1]["level"] == "CHATTY"

    def test_non_json_fields_stringified(self):
        jlog("obj", value=object())
        assert read_recent_logs()[-1]["value"].startswith("<object")

    def test_no_file_yet(self):
        assert structured_log._file_handler is None
        assert read_recent_logs() == []
