# FILE: tests/test_events.py
"""Tests for the structured event ledger."""

import json
import logging

from topic_miner.events import EventLedger, read_events


class TestEventLedger:
    def test_emit_in_memory(self):
        ledger = EventLedger()
        record = ledger.emit("GAP_ITER_START", node="gap_loop", repo="acme/notes", iter=1)
        assert record.event == "GAP_ITER_START"
        assert record.data == {"iter": 1}
        assert ledger.names() == ["GAP_ITER_START"]
        assert len(ledger) == 1

    def test_named(self):
        ledger = EventLedger()
        ledger.emit("GAP_FAIL", iter=1)
        ledger.emit("GAP_SUCCESS", iter=2)
        ledger.emit("GAP_FAIL", iter=3)
        assert [e.data["iter"] for e in ledger.named("GAP_FAIL")] == [1, 3]

    def test_mirrored_to_logging(self, caplog):
        ledger = EventLedger()
        with caplog.at_level(logging.WARNING, logger="topic_miner.events"):
            ledger.emit("BUDGET_STOP_RUN", level="warn", node="budget", reason="maxReposPerRun reached")
        assert "[budget] BUDGET_STOP_RUN" in caplog.text

    def test_ndjson_persistence(self, tmp_path):
        path = tmp_path / "logs" / "events.ndjson"
        ledger = EventLedger(str(path))
        ledger.emit("GAP_SUCCESS", node="gap_loop", repo="acme/notes", coverage_ratio=1.0)
        ledger.emit("GAP_FAIL", level="warn", repo="acme/other")

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert list(first) == sorted(first)
        assert first["event"] == "GAP_SUCCESS"
        assert first["data"] == {"coverage_ratio": 1.0}
        assert ", " not in lines[0]


class TestReadEvents:
    def test_round_trip_skips_bad_lines(self, tmp_path):
        path = tmp_path / "events.ndjson"
        ledger = EventLedger(str(path))
        ledger.emit("GAP_ITER_START", iter=1)
        with open(path, "a", encoding="utf-8") as f:
            f.write("{broken\n\n")
        ledger.emit("GAP_SUCCESS", iter=1)

        events = read_events(str(path))
        assert [e["event"] for e in events] == ["GAP_ITER_START", "GAP_SUCCESS"]

    def test_missing_file(self, tmp_path):
        assert read_events(str(tmp_path / "nope.ndjson")) == []
