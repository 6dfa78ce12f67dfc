"""Tests for the append-only event log."""

import json
import pytest
from datetime import datetime, timezone

from progressvault.persistence.event_log import EventKind, EventLog, EventRecord


OWNER = "0x1f9090aaE28b8a3dCeaDf281B0F12828e676c326"
METRIC = "0x" + "12" * 32


def _event(n: int, kind: EventKind = EventKind.GOAL_SET, metric: str = METRIC) -> EventRecord:
    return EventRecord.create(
        event_id=f"EVT-{n:08d}",
        event_kind=kind,
        actor_id=OWNER,
        payload={"metric_id": metric, "orientation": "higher_is_better"},
        timestamp_utc=datetime(2026, 1, 1, 0, 0, n, tzinfo=timezone.utc),
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event(1).event_hash == _event(1).event_hash
        assert _event(1).event_hash != _event(2).event_hash
        assert _event(1).event_hash.startswith("sha256:")

    def test_timestamp_format(self) -> None:
        assert _event(5).timestamp_utc == "2026-01-01T00:00:05Z"


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event(1))
        log.append(_event(2, EventKind.RESULT_SUBMITTED))
        log.append(_event(3, EventKind.RESULT_SUBMITTED, metric="0x" + "34" * 32))
        assert log.count == 3
        assert len(log.events(EventKind.RESULT_SUBMITTED)) == 2
        assert len(log.events_for_metric(OWNER, METRIC)) == 2
        assert log.last_event.event_id == "EVT-00000003"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event(1))
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(_event(1))
        assert log.count == 1

    def test_persist_and_reload(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event(1))
        log.append(_event(2, EventKind.ACCESS_GRANTED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.event_hashes() == log.event_hashes()
        assert reloaded.events()[1].event_kind == EventKind.ACCESS_GRANTED

    def test_tampered_file_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event(1))

        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["orientation"] = "lower_is_better"
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity"):
            EventLog(storage_path=path)

    def test_replayed_line_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event(1))
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")

        with pytest.raises(ValueError, match="Duplicate"):
            EventLog(storage_path=path)
