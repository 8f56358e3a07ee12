"""Append-only audit log of commission decisions.

Every calculation, rule match, allocation, status change and failed
evaluation is recorded as an immutable event. The log can be persisted
as JSONL (one JSON object per line) and reloaded; each record carries a
SHA-256 hash of its canonical JSON so tampering is detected on load.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    COMMISSION_CALCULATED = "commission_calculated"
    RULES_MATCHED = "rules_matched"
    COMMISSION_ALLOCATED = "commission_allocated"
    SPLIT_RECORDED = "split_recorded"
    COMMISSION_STATUS_CHANGED = "commission_status_changed"
    EVALUATION_FAILED = "evaluation_failed"


def to_payload(value: Any) -> Any:
    """Convert engine values into JSON-safe payload values.

    Decimals become strings so amounts survive the round trip exactly.
    """
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(v) for v in value]
    return value


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    subject_id: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "subject_id": subject_id,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable audit event.

    subject_id is the transaction the event concerns; actor_id is who
    (or what) caused it, "system" for engine steps.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    subject_id: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        subject_id: str,
        payload: dict[str, Any],
        actor_id: str = "system",
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        safe_payload = to_payload(payload)
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            subject_id=subject_id,
            actor_id=actor_id,
            payload=safe_payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, subject_id, actor_id, safe_payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "subject_id": self.subject_id,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence.

    Events can only be appended, never modified or deleted. Duplicate
    event ids are rejected both on append and on reload.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event. Raises ValueError on a duplicate event_id."""
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def record(
        self,
        event_kind: EventKind,
        subject_id: str,
        payload: dict[str, Any],
        actor_id: str = "system",
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create and append an event with the next sequential id."""
        event = EventRecord.create(
            event_id=f"evt-{len(self._events) + 1:06d}",
            event_kind=event_kind,
            subject_id=subject_id,
            payload=payload,
            actor_id=actor_id,
            timestamp_utc=timestamp_utc,
        )
        self.append(event)
        return event

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for(self, subject_id: str) -> list[EventRecord]:
        """Return the audit trail of one transaction, oldest first."""
        return [e for e in self._events if e.subject_id == subject_id]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _load_from_file(self, path: Path) -> None:
        """Load events from JSONL, rejecting tampered or replayed records."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["subject_id"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    subject_id=data["subject_id"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
