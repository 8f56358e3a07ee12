"""Tests for the audit event log — append-only, hash-verified persistence."""

import pytest
import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from commissions.models.commission import CommissionStatus
from commissions.persistence.event_log import EventKind, EventLog, EventRecord, to_payload


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_event(event_id: str = "evt-1", subject_id: str = "T-001") -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=EventKind.COMMISSION_ALLOCATED,
        subject_id=subject_id,
        payload={"total_commission_amount": Decimal("3240.00")},
        timestamp_utc=NOW,
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _make_event().event_hash == _make_event().event_hash
        assert _make_event().event_hash.startswith("sha256:")

    def test_hash_depends_on_subject(self) -> None:
        assert _make_event(subject_id="T-001").event_hash != _make_event(subject_id="T-002").event_hash

    def test_payload_is_json_safe(self) -> None:
        event = _make_event()
        assert event.payload == {"total_commission_amount": "3240.00"}
        assert event.timestamp_utc == "2026-03-01T12:00:00Z"

    def test_to_payload_converts_enums_and_dates(self) -> None:
        assert to_payload({"status": CommissionStatus.PAID, "at": NOW, "ids": ("a", "b")}) == {
            "status": "paid",
            "at": NOW.isoformat(),
            "ids": ["a", "b"],
        }


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_make_event("evt-1", "T-001"))
        log.append(_make_event("evt-2", "T-002"))
        assert log.count == 2
        assert [e.event_id for e in log.events_for("T-002")] == ["evt-2"]
        assert len(log.events(EventKind.COMMISSION_ALLOCATED)) == 2
        assert log.events(EventKind.EVALUATION_FAILED) == []
        assert log.last_event.event_id == "evt-2"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_make_event("evt-1"))
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_make_event("evt-1"))

    def test_record_assigns_sequential_ids(self) -> None:
        log = EventLog()
        first = log.record(EventKind.RULES_MATCHED, "T-001", {"rule_ids": []}, timestamp_utc=NOW)
        second = log.record(EventKind.COMMISSION_STATUS_CHANGED, "T-001", {}, actor_id="finance-01")
        assert first.event_id == "evt-000001"
        assert second.event_id == "evt-000002"
        assert second.actor_id == "finance-01"


class TestPersistence:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.COMMISSION_CALCULATED, "T-001", {"amount": Decimal("1500")}, timestamp_utc=NOW)
        log.record(EventKind.COMMISSION_ALLOCATED, "T-001", {"amount": Decimal("1500")}, timestamp_utc=NOW)

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events() == log.events()

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_make_event())

        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["total_commission_amount"] = "9999.00"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_replayed_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_make_event())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")

        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
