"""Migration planning and application.

Provides:
- MigrationPlanner: register migrations, select chains, apply them to content
- apply_transformation: apply a single Transformation to a content string

Chain selection is a window membership test: every migration of the template
whose ``from_version >= from`` and ``to_version <= to`` is a candidate, sorted
ascending by ``from_version``. Overlapping candidates are reported by
``find_overlaps`` and surfaced as warnings when applied.
"""

import logging
import re
import uuid
from collections.abc import Iterable, Sequence

from templar.versioning.audit import AuditEventType, AuditSink, NullAuditSink, make_event
from templar.versioning.errors import (
    MigrationSourceVersionMissing,
    MigrationTargetVersionMissing,
    NoVersionsForTemplate,
)
from templar.versioning.models import (
    SYSTEM_ACTOR,
    Actor,
    DiffType,
    Migration,
    MigrationOutcome,
    Transformation,
    TransformationKind,
)
from templar.versioning.semver import compare_versions, precedence_key, version_diff
from templar.versioning.store import MigrationStore, VersionStore

logger = logging.getLogger(__name__)


def apply_transformation(content: str, transformation: Transformation) -> tuple[str, str | None]:
    """Apply one transformation to content.

    Returns:
        Tuple of (new content, warning or None). Skipped transformations
        return the content unchanged.
    """
    if not transformation.applies_to(content):
        return content, None

    kind = transformation.kind
    replacement = transformation.replacement or ""

    try:
        if kind == TransformationKind.REPLACE:
            return re.sub(transformation.target, replacement, content), None
        if kind == TransformationKind.REMOVE:
            return re.sub(transformation.target, "", content), None
        if kind == TransformationKind.RENAME:
            pattern = rf"\b{re.escape(transformation.target)}\b"
            return re.sub(pattern, lambda _: replacement, content), None
    except re.error as e:
        return content, f"Transformation {kind} on {transformation.target!r} skipped: {e}"

    if kind == TransformationKind.ADD:
        return content + "\n" + replacement, None

    # modify / restructure need a parsed representation of the content
    return content, f"Transformation {kind} on {transformation.target!r} is not supported and was skipped"


def find_overlaps(migrations: Sequence[Migration]) -> list[tuple[Migration, Migration]]:
    """Return pairs of migrations whose version windows overlap."""
    overlaps = []
    for i, first in enumerate(migrations):
        for second in migrations[i + 1 :]:
            if (
                compare_versions(first.from_version, second.to_version) < 0
                and compare_versions(second.from_version, first.to_version) < 0
            ):
                overlaps.append((first, second))
    return overlaps


class MigrationPlanner:
    """Create, select and apply migrations for templates."""

    def __init__(
        self,
        versions: VersionStore,
        migrations: MigrationStore,
        audit_sink: AuditSink | None = None,
    ):
        self.versions = versions
        self.migrations = migrations
        self._audit = audit_sink or NullAuditSink()

    def create_migration(
        self,
        template_id: str,
        from_version: str,
        to_version: str,
        transformations: Iterable[Transformation] = (),
        breaking: bool = False,
        automated: bool = True,
        requirements: Iterable[str] = (),
        warnings: Iterable[str] = (),
        instructions: str | None = None,
        migration_script: str | None = None,
        actor: Actor | None = None,
    ) -> Migration:
        """Register a migration between two existing versions.

        The diff type is the level at which the versions first differ, and a
        major diff always marks the migration as breaking.

        Raises:
            MigrationSourceVersionMissing: If ``from_version`` does not exist
            MigrationTargetVersionMissing: If ``to_version`` does not exist
            ValueError: If a transformation has a callable condition
            PersistenceFailure: If the migration list cannot be written
        """
        if self.versions.get(template_id, from_version) is None:
            raise MigrationSourceVersionMissing(
                f"Source version {from_version} not found for template {template_id}",
                template_id=template_id,
                version=from_version,
            )
        if self.versions.get(template_id, to_version) is None:
            raise MigrationTargetVersionMissing(
                f"Target version {to_version} not found for template {template_id}",
                template_id=template_id,
                version=to_version,
            )

        actor = actor or SYSTEM_ACTOR
        diff_type = DiffType(version_diff(from_version, to_version))
        migration = Migration(
            id=str(uuid.uuid4()),
            template_id=template_id,
            from_version=from_version,
            to_version=to_version,
            diff_type=diff_type,
            created_by=actor.id,
            breaking=breaking or diff_type == DiffType.MAJOR,
            automated=automated,
            transformations=tuple(transformations),
            requirements=tuple(requirements),
            warnings=tuple(warnings),
            instructions=instructions,
            migration_script=migration_script,
        )

        self.migrations.add(migration, actor)
        logger.info(
            f"Created migration {migration.id} for {template_id}: "
            f"{from_version} -> {to_version} ({diff_type}, breaking={migration.breaking})"
        )
        return migration

    def _window(self, template_id: str, from_version: str, to_version: str) -> list[Migration]:
        selected = [
            m
            for m in self.migrations.list(template_id)
            if compare_versions(m.from_version, from_version) >= 0
            and compare_versions(m.to_version, to_version) <= 0
        ]
        return sorted(selected, key=lambda m: precedence_key(m.from_version))

    def build_migration_chain(self, template_id: str, from_version: str, to_version: str) -> list[str]:
        """Select candidate migration ids inside the version window, ascending by source."""
        return [m.id for m in self._window(template_id, from_version, to_version)]

    def find_overlaps(self, template_id: str, chain: Sequence[str]) -> list[tuple[Migration, Migration]]:
        """Report pairs of chain members whose version windows overlap."""
        members = [m for m in (self.migrations.get(template_id, mid) for mid in chain) if m]
        return find_overlaps(members)

    def apply_migrations(
        self,
        template_id: str,
        content: str,
        chain: Sequence[str],
        auto_only: bool = True,
        actor: Actor | None = None,
    ) -> MigrationOutcome:
        """Apply a migration chain to content, in chain order.

        Non-automated migrations are only applied when ``auto_only`` is False;
        otherwise they produce a warning and leave content unchanged.

        Returns:
            MigrationOutcome with the transformed content, applied ids and warnings
        """
        outcome = MigrationOutcome(content=content)

        for first, second in self.find_overlaps(template_id, chain):
            outcome.warnings.append(
                f"Migrations {first.id} ({first.from_version} -> {first.to_version}) and "
                f"{second.id} ({second.from_version} -> {second.to_version}) overlap; "
                "content may be transformed twice"
            )

        for migration_id in chain:
            migration = self.migrations.get(template_id, migration_id)
            if migration is None:
                outcome.warnings.append(f"Migration {migration_id} not found for template {template_id}")
                continue

            if auto_only and not migration.automated:
                message = (
                    f"Migration {migration.id} ({migration.from_version} -> {migration.to_version}) "
                    "requires manual application"
                )
                if migration.instructions:
                    message += f": {migration.instructions}"
                outcome.warnings.append(message)
                continue

            for transformation in migration.transformations:
                outcome.content, warning = apply_transformation(outcome.content, transformation)
                if warning:
                    outcome.warnings.append(warning)

            outcome.applied.append(migration.id)
            outcome.warnings.extend(migration.warnings)

            self._audit.emit(
                make_event(
                    AuditEventType.MIGRATION_EXECUTED,
                    template_id,
                    migration.to_version,
                    actor,
                    details={
                        "migration_id": migration.id,
                        "from_version": migration.from_version,
                        "to_version": migration.to_version,
                        "transformations": len(migration.transformations),
                    },
                )
            )
            logger.info(
                f"Applied migration {migration.id} to {template_id}: "
                f"{migration.from_version} -> {migration.to_version}"
            )

        return outcome

    def migrate_to_latest(
        self,
        template_id: str,
        content: str,
        current_version: str,
        auto_only: bool = True,
        actor: Actor | None = None,
    ) -> MigrationOutcome:
        """Apply every candidate migration between ``current_version`` and the latest stable version.

        Raises:
            NoVersionsForTemplate: If the template has no live stable version
        """
        latest = self.versions.list(template_id)
        if not latest:
            raise NoVersionsForTemplate(
                f"No versions found for template {template_id}", template_id=template_id
            )

        target = latest[0].version
        if compare_versions(current_version, target) >= 0:
            logger.debug(f"{template_id}@{current_version} is already at or past {target}")
            return MigrationOutcome(content=content)

        chain = self.build_migration_chain(template_id, current_version, target)
        return self.apply_migrations(template_id, content, chain, auto_only=auto_only, actor=actor)


__all__ = ["MigrationPlanner", "apply_transformation", "find_overlaps"]
