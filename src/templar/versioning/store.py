"""Version and migration stores.

Provides:
- VersionStore: per-template version lists, kept in descending precedence
- MigrationStore: per-template migration lists, in creation order

Both stores own the in-memory registry for their record kind, lazily load a
template's list from the persistence backend on first access, and rewrite the
full list through the backend on every mutation.

Concurrency:
- Mutations for one template are serialized by a per-template RLock
- Readers never lock; they see the list reference that was current when
  they looked (lists are replaced, never mutated in place)
- The in-memory list is swapped only after the backend write succeeds, so a
  PersistenceFailure leaves memory exactly as it was
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from templar.versioning.audit import AuditEventType, AuditSink, NullAuditSink, make_event
from templar.versioning.errors import (
    InvalidVersionFormat,
    PersistenceFailure,
    VersionExists,
    VersionNotFound,
)
from templar.versioning.models import Actor, Migration, VersionRecord
from templar.versioning.persistence import (
    MIGRATIONS,
    VERSIONS,
    PersistenceBackend,
    validate_template_id,
)
from templar.versioning.semver import precedence_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _TemplateLocks:
    """Lazily created RLock per template id."""

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def __call__(self, template_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(template_id)
            if lock is None:
                lock = self._locks[template_id] = threading.RLock()
            return lock


def _sorted_descending(records: list[VersionRecord]) -> list[VersionRecord]:
    # Ties (build metadata only) keep a stable order by version string.
    by_text = sorted(records, key=lambda r: r.version)
    return sorted(by_text, key=lambda r: precedence_key(r.version), reverse=True)


def _decode(
    template_id: str,
    kind: str,
    from_dict: Callable[[dict[str, Any]], T],
    raw: list[dict[str, Any]],
) -> list[T]:
    """Decode loaded entries, reporting malformed ones as PersistenceFailure."""
    decoded = []
    for index, entry in enumerate(raw):
        try:
            decoded.append(from_dict(entry))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PersistenceFailure(
                f"Corrupt {kind} entry {index} for {template_id}: {type(e).__name__}: {e}",
                template_id=template_id,
            ) from e
    return decoded


class VersionStore:
    """Ordered, persisted collection of version records per template."""

    def __init__(
        self,
        persistence: PersistenceBackend,
        audit_sink: AuditSink | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize the store.

        Args:
            persistence: Backend used to load and save version lists
            audit_sink: Receives VERSION_CREATED / VERSION_DEPRECATED events
            cancel_event: When set, pending persistence writes are abandoned
        """
        self._persistence = persistence
        self._audit = audit_sink or NullAuditSink()
        self._cancel_event = cancel_event
        self._versions: dict[str, list[VersionRecord]] = {}
        self._lock_for = _TemplateLocks()

    def _snapshot(self, template_id: str) -> list[VersionRecord]:
        records = self._versions.get(template_id)
        if records is not None:
            return records

        validate_template_id(template_id)
        with self._lock_for(template_id):
            records = self._versions.get(template_id)
            if records is None:
                raw = self._persistence.load(template_id, VERSIONS)
                decoded = _decode(template_id, VERSIONS, VersionRecord.from_dict, raw)
                try:
                    records = _sorted_descending(decoded)
                except InvalidVersionFormat as e:
                    raise PersistenceFailure(
                        f"Corrupt {VERSIONS} file for {template_id}: {e}", template_id=template_id
                    ) from e
                self._versions[template_id] = records
                logger.debug(f"Loaded {len(records)} versions for {template_id}")
            return records

    def _persist(self, template_id: str, records: list[VersionRecord]) -> None:
        payload: list[dict[str, Any]] = [r.to_dict() for r in records]
        self._persistence.save(template_id, VERSIONS, payload, cancel_event=self._cancel_event)

    def put(self, record: VersionRecord, actor: Actor | None = None) -> VersionRecord:
        """Add a new version record.

        Raises:
            VersionExists: If the version string is already present for the template
            PersistenceFailure: If the updated list cannot be written
        """
        template_id = record.template_id
        with self._lock_for(template_id):
            current = self._snapshot(template_id)
            if any(r.version == record.version for r in current):
                raise VersionExists(
                    f"Version {record.version} already exists for template {template_id}",
                    template_id=template_id,
                    version=record.version,
                )

            updated = _sorted_descending([*current, record])
            self._persist(template_id, updated)
            self._versions[template_id] = updated

        self._audit.emit(
            make_event(
                AuditEventType.VERSION_CREATED,
                template_id,
                record.version,
                actor,
                details={"record": record.to_dict()},
                classification=record.compliance.classification,
            )
        )
        logger.debug(f"Stored version {record.version} for {template_id}")
        return record

    def get(self, template_id: str, version: str) -> VersionRecord | None:
        for record in self._snapshot(template_id):
            if record.version == version:
                return record
        return None

    def list(
        self,
        template_id: str,
        include_deprecated: bool = False,
        include_prerelease: bool = False,
    ) -> list[VersionRecord]:
        """List versions in descending precedence.

        Args:
            template_id: Template to list
            include_deprecated: Keep deprecated versions
            include_prerelease: Keep prerelease versions

        Returns:
            New list of records, highest precedence first
        """
        return [
            r
            for r in self._snapshot(template_id)
            if (include_deprecated or not r.deprecated)
            and (include_prerelease or not r.prerelease)
        ]

    def all(self, template_id: str) -> list[VersionRecord]:
        """Every version of a template, deprecated and prerelease included."""
        return list(self._snapshot(template_id))

    def deprecate(self, template_id: str, version: str, actor: Actor | None = None) -> VersionRecord:
        """Mark a version deprecated. Deprecating twice is a no-op.

        Raises:
            VersionNotFound: If the version does not exist
            PersistenceFailure: If the updated list cannot be written
        """
        with self._lock_for(template_id):
            current = self._snapshot(template_id)
            existing = next((r for r in current if r.version == version), None)
            if existing is None:
                raise VersionNotFound(
                    f"Version {version} not found for template {template_id}",
                    template_id=template_id,
                    version=version,
                )
            if existing.deprecated:
                logger.debug(f"Version {version} of {template_id} already deprecated")
                return existing

            deprecated = existing.with_deprecated()
            updated = [deprecated if r is existing else r for r in current]
            self._persist(template_id, updated)
            self._versions[template_id] = updated

        self._audit.emit(
            make_event(
                AuditEventType.VERSION_DEPRECATED,
                template_id,
                version,
                actor,
                details={"record": deprecated.to_dict()},
                classification=deprecated.compliance.classification,
            )
        )
        return deprecated

    def template_ids(self) -> list[str]:
        """Known template ids, from memory and the backend."""
        known = {t for t, records in self._versions.items() if records}
        try:
            known |= self._persistence.template_ids()
        except OSError as e:
            raise PersistenceFailure(f"Failed to list templates: {e}") from e
        return sorted(known)


class MigrationStore:
    """Persisted migrations per template, in creation order."""

    def __init__(
        self,
        persistence: PersistenceBackend,
        audit_sink: AuditSink | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self._persistence = persistence
        self._audit = audit_sink or NullAuditSink()
        self._cancel_event = cancel_event
        self._migrations: dict[str, list[Migration]] = {}
        self._lock_for = _TemplateLocks()

    def _snapshot(self, template_id: str) -> list[Migration]:
        migrations = self._migrations.get(template_id)
        if migrations is not None:
            return migrations

        validate_template_id(template_id)
        with self._lock_for(template_id):
            migrations = self._migrations.get(template_id)
            if migrations is None:
                raw = self._persistence.load(template_id, MIGRATIONS)
                migrations = _decode(template_id, MIGRATIONS, Migration.from_dict, raw)
                self._migrations[template_id] = migrations
            return migrations

    def add(self, migration: Migration, actor: Actor | None = None) -> Migration:
        """Append a migration and persist the template's migration list."""
        template_id = migration.template_id
        with self._lock_for(template_id):
            updated = [*self._snapshot(template_id), migration]
            self._persistence.save(
                template_id,
                MIGRATIONS,
                [m.to_dict() for m in updated],
                cancel_event=self._cancel_event,
            )
            self._migrations[template_id] = updated

        self._audit.emit(
            make_event(
                AuditEventType.MIGRATION_CREATED,
                template_id,
                f"{migration.from_version} -> {migration.to_version}",
                actor,
                details={"migration": migration.to_dict()},
            )
        )
        return migration

    def list(self, template_id: str) -> list[Migration]:
        return list(self._snapshot(template_id))

    def get(self, template_id: str, migration_id: str) -> Migration | None:
        return next((m for m in self._snapshot(template_id) if m.id == migration_id), None)


__all__ = ["MigrationStore", "VersionStore"]
