"""Audit events for version engine mutations.

The engine emits one structured event per mutating or compatibility-check
operation. Delivery is the job of an ``AuditSink``: anything with an
``emit(event)`` method. Bundled sinks:

- InMemoryAuditSink: keeps events in a list
- JsonlAuditSink: appends JSON lines to a file under a cross-process lock
- NullAuditSink: discards events
"""

import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from templar.file_lock_manager import LockTimeoutError, acquire_file_lock
from templar.versioning.models import SYSTEM_ACTOR, Actor, Classification

logger = logging.getLogger(__name__)


class AuditEventType(StrEnum):
    VERSION_CREATED = "VERSION_CREATED"
    VERSION_DEPRECATED = "VERSION_DEPRECATED"
    MIGRATION_CREATED = "MIGRATION_CREATED"
    MIGRATION_EXECUTED = "MIGRATION_EXECUTED"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"
    COMPATIBILITY_CHECKED = "COMPATIBILITY_CHECKED"


@dataclass(frozen=True)
class AuditEvent:
    """Structured record of one engine operation."""

    template_id: str
    event_type: AuditEventType
    version: str
    actor_id: str
    classification: Classification
    details: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "template_id": self.template_id,
            "event_type": str(self.event_type),
            "version": self.version,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "actor_id": self.actor_id,
            "details": self.details,
            "classification": str(self.classification),
        }


def make_event(
    event_type: AuditEventType,
    template_id: str,
    version: str,
    actor: Actor | None = None,
    details: dict[str, Any] | None = None,
    classification: Classification | None = None,
) -> AuditEvent:
    """Build an event, defaulting the classification to the actor's clearance."""
    actor = actor or SYSTEM_ACTOR
    return AuditEvent(
        template_id=template_id,
        event_type=event_type,
        version=version,
        actor_id=actor.id,
        classification=classification or actor.clearance,
        details=details or {},
    )


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None: ...


class NullAuditSink:
    """Sink that drops every event."""

    def emit(self, event: AuditEvent) -> None:
        return None


class InMemoryAuditSink:
    """Sink that keeps events in memory, in emission order."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class JsonlAuditSink:
    """Append events as JSON lines to a file with 0600 permissions.

    Writes are serialized across processes with ``acquire_file_lock``. A
    failed write is logged and dropped so that auditing never rolls back a
    mutation that has already been persisted.
    """

    def __init__(self, log_file: Path, lock_timeout: float = 5.0):
        self.log_file = Path(log_file).expanduser()
        self.lock_timeout = lock_timeout
        self._lock_file = self.log_file.with_suffix(self.log_file.suffix + ".lock")

    def emit(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), default=str)
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with acquire_file_lock(self._lock_file, timeout=self.lock_timeout, operation="audit logging"):
                with open(self.log_file, "a") as f:
                    f.write(line + "\n")
                os.chmod(self.log_file, 0o600)
        except (OSError, LockTimeoutError) as e:
            logger.error(f"Failed to write audit event {event.event_id} to {self.log_file}: {e}")

    def read_events(self) -> list[dict[str, Any]]:
        """Return all logged events, skipping unreadable lines."""
        if not self.log_file.exists():
            return []

        events = []
        with open(self.log_file) as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt audit line in {self.log_file}")
        return events


__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "NullAuditSink",
    "make_event",
]
