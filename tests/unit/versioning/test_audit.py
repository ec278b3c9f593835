"""Unit tests for audit events and sinks."""

import json
import stat
from unittest.mock import patch


class TestAuditEvent:
    """Test event construction and serialization."""

    def test_make_event_defaults_to_actor_clearance(self):
        """Test classification falls back to the actor's clearance."""
        from templar.versioning.audit import AuditEventType, make_event
        from templar.versioning.models import Actor, Classification

        event = make_event(
            AuditEventType.VERSION_CREATED, "widget", "1.0.0", Actor("alice", Classification.SECRET)
        )

        assert event.actor_id == "alice"
        assert event.classification == Classification.SECRET
        assert event.details == {}

    def test_make_event_without_actor_uses_system(self):
        from templar.versioning.audit import AuditEventType, make_event

        event = make_event(AuditEventType.CONFLICT_DETECTED, "widget", "1.0.0")

        assert event.actor_id == "system"
        assert event.classification == "OPEN"

    def test_event_ids_are_unique(self):
        from templar.versioning.audit import AuditEventType, make_event

        first = make_event(AuditEventType.VERSION_CREATED, "widget", "1.0.0")
        second = make_event(AuditEventType.VERSION_CREATED, "widget", "1.0.0")

        assert first.event_id != second.event_id

    def test_to_dict_contract(self):
        """Test the serialized event carries every contract field."""
        from templar.versioning.audit import AuditEventType, make_event

        data = make_event(
            AuditEventType.MIGRATION_EXECUTED, "widget", "2.0.0", details={"migration_id": "m1"}
        ).to_dict()

        assert set(data) == {
            "event_id",
            "template_id",
            "event_type",
            "version",
            "timestamp",
            "actor_id",
            "details",
            "classification",
        }
        assert data["event_type"] == "MIGRATION_EXECUTED"
        assert data["timestamp"].endswith("Z")


class TestSinks:
    """Test bundled sinks."""

    def test_in_memory_sink_filters_and_clears(self):
        from templar.versioning.audit import AuditEventType, InMemoryAuditSink, make_event

        sink = InMemoryAuditSink()
        sink.emit(make_event(AuditEventType.VERSION_CREATED, "widget", "1.0.0"))
        sink.emit(make_event(AuditEventType.VERSION_DEPRECATED, "widget", "1.0.0"))

        assert len(sink.events) == 2
        assert len(sink.of_type(AuditEventType.VERSION_DEPRECATED)) == 1

        sink.clear()
        assert sink.events == []

    def test_null_sink_accepts_events(self):
        from templar.versioning.audit import AuditEventType, NullAuditSink, make_event

        assert NullAuditSink().emit(make_event(AuditEventType.VERSION_CREATED, "w", "1.0.0")) is None

    def test_jsonl_sink_appends_lines(self, tmp_path):
        """Test each event becomes one JSON line in a 0600 file."""
        from templar.versioning.audit import AuditEventType, JsonlAuditSink, make_event

        log_file = tmp_path / "audit" / "events.jsonl"
        sink = JsonlAuditSink(log_file)

        sink.emit(make_event(AuditEventType.VERSION_CREATED, "widget", "1.0.0"))
        sink.emit(make_event(AuditEventType.VERSION_DEPRECATED, "widget", "1.0.0"))

        lines = log_file.read_text().splitlines()
        assert [json.loads(line)["event_type"] for line in lines] == [
            "VERSION_CREATED",
            "VERSION_DEPRECATED",
        ]
        assert stat.S_IMODE(log_file.stat().st_mode) == 0o600
        assert len(sink.read_events()) == 2

    def test_jsonl_sink_skips_corrupt_lines(self, tmp_path):
        from templar.versioning.audit import JsonlAuditSink

        log_file = tmp_path / "events.jsonl"
        log_file.write_text('{"event_type": "VERSION_CREATED"}\nnot json\n\n')

        assert JsonlAuditSink(log_file).read_events() == [{"event_type": "VERSION_CREATED"}]

    def test_jsonl_sink_logs_write_failures(self, tmp_path, caplog):
        """Test a failed write is logged rather than raised."""
        from templar.file_lock_manager import LockTimeoutError
        from templar.versioning.audit import AuditEventType, JsonlAuditSink, make_event

        sink = JsonlAuditSink(tmp_path / "events.jsonl")

        with patch(
            "templar.versioning.audit.acquire_file_lock", side_effect=LockTimeoutError("busy")
        ):
            sink.emit(make_event(AuditEventType.VERSION_CREATED, "widget", "1.0.0"))

        assert "Failed to write audit event" in caplog.text
        assert sink.read_events() == []
