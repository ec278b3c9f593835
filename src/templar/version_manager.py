"""Public API for the template version engine.

TemplateVersionManager wires the stores, validator, resolver, compatibility
checker and migration planner together and is the only object callers need.

Example:
    >>> from templar.config_manager import EngineConfig
    >>> from templar.version_manager import create_version_manager
    >>>
    >>> manager = create_version_manager(EngineConfig(data_dir="/tmp/templar"))
    >>> record = manager.create_version("widget", "1.0.0", author="alice")
    >>> manager.resolve_version("widget", "^1.0.0").resolved_version
    '1.0.0'
"""

import logging
import threading
import time
from collections.abc import Generator, Iterable, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from templar.config_manager import ConfigManager, EngineConfig
from templar.versioning.audit import AuditSink, JsonlAuditSink, NullAuditSink
from templar.versioning.compatibility import CompatibilityChecker
from templar.versioning.dependency_validator import DependencyValidator
from templar.versioning.errors import VersionExists
from templar.versioning.migrations import MigrationPlanner
from templar.versioning.models import (
    SYSTEM_ACTOR,
    Actor,
    Compatibility,
    CompatibilityReport,
    ComplianceMetadata,
    DependencyDeclaration,
    Migration,
    MigrationOutcome,
    ResolutionStrategy,
    TargetEnvironment,
    Transformation,
    VersionRecord,
    VersionResolution,
)
from templar.versioning.persistence import PersistenceBackend, YamlPersistence, validate_template_id
from templar.versioning.resolver import VersionResolver
from templar.versioning.semver import parse_version
from templar.versioning.store import MigrationStore, VersionStore

logger = logging.getLogger(__name__)


class TemplateVersionManager:
    """Facade over the version engine components."""

    def __init__(
        self,
        persistence: PersistenceBackend,
        audit_sink: AuditSink | None = None,
        config: EngineConfig | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize the manager.

        Args:
            persistence: Backend for version and migration lists
            audit_sink: Receives audit events for mutations and checks
            config: Engine configuration (defaults when omitted)
            cancel_event: When set, pending persistence writes are abandoned
        """
        self.config = config or EngineConfig()
        self.audit_sink = audit_sink or NullAuditSink()

        self.versions = VersionStore(persistence, self.audit_sink, cancel_event)
        self.migrations = MigrationStore(persistence, self.audit_sink, cancel_event)
        self.validator = DependencyValidator(self.versions)
        self.resolver = VersionResolver(
            self.versions,
            self.audit_sink,
            max_depth=self.config.max_resolution_depth,
            max_fanout=self.config.max_dependency_fanout,
        )
        self.compatibility = CompatibilityChecker(self.versions, self.resolver, self.audit_sink)
        self.planner = MigrationPlanner(self.versions, self.migrations, self.audit_sink)

    @contextmanager
    def _operation(self, name: str, template_id: str, **context: Any) -> Generator[None, None, None]:
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            details = ", ".join(f"{k}={v}" for k, v in context.items())
            logger.error(f"{name} failed for {template_id} ({details}) after {elapsed:.1f}ms: {e}")
            raise
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug(f"{name} for {template_id} completed in {elapsed:.1f}ms")

    # Versions

    def create_version(
        self,
        template_id: str,
        version: str,
        author: str,
        actor: Actor | None = None,
        changelog: str | None = None,
        breaking: bool = False,
        dependencies: Iterable[DependencyDeclaration] = (),
        commit_ref: str | None = None,
        tags: Iterable[str] = (),
        compatibility: Compatibility | None = None,
    ) -> VersionRecord:
        """Create and store a new version.

        The version string is validated, then every dependency declaration,
        before anything is written. The record's compliance classification is
        the actor's clearance.

        Raises:
            InvalidTemplateId: If the template id is unsafe
            InvalidVersionFormat: If ``version`` is not valid semver
            VersionExists: If the version already exists
            DependencyMissing / ConstraintUnsatisfiable: If a required dependency fails
            PersistenceFailure: If the version list cannot be written
        """
        actor = actor or SYSTEM_ACTOR
        with self._operation("create_version", template_id, version=version, actor=actor.id):
            validate_template_id(template_id)
            parsed = parse_version(version)

            if self.versions.get(template_id, version) is not None:
                raise VersionExists(
                    f"Version {version} already exists for template {template_id}",
                    template_id=template_id,
                    version=version,
                )

            declarations = tuple(dependencies)
            self.validator.validate(declarations, template_id)

            record = VersionRecord(
                version=version,
                template_id=template_id,
                author=author,
                commit_ref=commit_ref,
                changelog=changelog,
                breaking=breaking,
                prerelease=parsed.is_prerelease,
                tags=frozenset(tags),
                dependencies=declarations,
                compatibility=compatibility or Compatibility(),
                compliance=ComplianceMetadata(classification=actor.clearance),
            )
            self.versions.put(record, actor)

        logger.info(f"Created version {version} of {template_id} (author={author})")
        return record

    def get_versions(
        self,
        template_id: str,
        include_deprecated: bool = False,
        include_prerelease: bool = False,
    ) -> list[VersionRecord]:
        return self.versions.list(template_id, include_deprecated, include_prerelease)

    def get_version_history(self, template_id: str, version: str) -> VersionRecord | None:
        return self.versions.get(template_id, version)

    def get_latest_version(self, template_id: str, include_prerelease: bool = False) -> VersionRecord | None:
        """Highest non-deprecated version, or None."""
        versions = self.versions.list(template_id, include_prerelease=include_prerelease)
        return versions[0] if versions else None

    def deprecate_version(self, template_id: str, version: str, actor: Actor | None = None) -> VersionRecord:
        """Deprecate a version. Deprecating an already deprecated version is a no-op."""
        actor = actor or SYSTEM_ACTOR
        with self._operation("deprecate_version", template_id, version=version, actor=actor.id):
            record = self.versions.deprecate(template_id, version, actor)
        logger.info(f"Deprecated version {version} of {template_id}")
        return record

    def list_templates(self) -> list[str]:
        return self.versions.template_ids()

    # Resolution and compatibility

    def resolve_version(
        self,
        template_id: str,
        constraint: str,
        include_prerelease: bool = False,
        strategy: ResolutionStrategy | str = ResolutionStrategy.RANGE,
        max_depth: int | None = None,
        max_fanout: int | None = None,
        actor: Actor | None = None,
    ) -> VersionResolution:
        """Resolve a constraint and its transitive dependencies.

        See ``VersionResolver.resolve`` for the policy.
        """
        with self._operation("resolve_version", template_id, constraint=constraint, strategy=strategy):
            return self.resolver.resolve(
                template_id,
                constraint,
                include_prerelease=include_prerelease,
                strategy=strategy,
                max_depth=max_depth,
                max_fanout=max_fanout,
                actor=actor,
            )

    def check_compatibility(
        self,
        template_id: str,
        version: str,
        target: TargetEnvironment | Mapping[str, Any] | None = None,
        actor: Actor | None = None,
    ) -> CompatibilityReport:
        """Check a version against a target environment.

        Args:
            template_id: Template to check
            version: Exact version string
            target: TargetEnvironment or a mapping with the same keys
            actor: Caller identity for the audit event
        """
        if target is None:
            target = TargetEnvironment()
        elif not isinstance(target, TargetEnvironment):
            target = TargetEnvironment(
                framework=target.get("framework"),
                runtime_version=target.get("runtime_version"),
                tool_version=target.get("tool_version"),
                platforms=list(target.get("platforms") or []),
            )

        with self._operation("check_compatibility", template_id, version=version):
            return self.compatibility.check(template_id, version, target, actor)

    # Migrations

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
        actor = actor or SYSTEM_ACTOR
        with self._operation(
            "create_migration", template_id, from_version=from_version, to_version=to_version
        ):
            return self.planner.create_migration(
                template_id,
                from_version,
                to_version,
                transformations=transformations,
                breaking=breaking,
                automated=automated,
                requirements=requirements,
                warnings=warnings,
                instructions=instructions,
                migration_script=migration_script,
                actor=actor,
            )

    def get_migrations(self, template_id: str) -> list[Migration]:
        return self.migrations.list(template_id)

    def build_migration_chain(self, template_id: str, from_version: str, to_version: str) -> list[str]:
        return self.planner.build_migration_chain(template_id, from_version, to_version)

    def apply_migrations(
        self,
        template_id: str,
        content: str,
        chain: Sequence[str],
        auto_only: bool = True,
        actor: Actor | None = None,
    ) -> MigrationOutcome:
        with self._operation("apply_migrations", template_id, migrations=len(chain)):
            return self.planner.apply_migrations(template_id, content, chain, auto_only, actor)

    def migrate_to_latest(
        self,
        template_id: str,
        content: str,
        current_version: str,
        auto_only: bool = True,
        actor: Actor | None = None,
    ) -> MigrationOutcome:
        with self._operation("migrate_to_latest", template_id, current_version=current_version):
            return self.planner.migrate_to_latest(
                template_id, content, current_version, auto_only, actor
            )


def create_version_manager(
    config: EngineConfig | None = None,
    audit_sink: AuditSink | None = None,
    cancel_event: threading.Event | None = None,
) -> TemplateVersionManager:
    """Build a manager backed by YAML files.

    Args:
        config: Engine configuration; loaded from the config file when omitted
        audit_sink: Audit sink; defaults to a JSON lines file when
            ``config.audit_log`` is set, otherwise events are discarded
        cancel_event: When set, pending persistence writes are abandoned
    """
    config = config or ConfigManager.load_config()
    persistence = YamlPersistence(config.data_path, lock_timeout=config.lock_timeout_seconds)

    if audit_sink is None and config.audit_log_path is not None:
        audit_sink = JsonlAuditSink(config.audit_log_path, lock_timeout=config.lock_timeout_seconds)

    logger.debug(f"Version manager using data directory {config.data_path}")
    return TemplateVersionManager(persistence, audit_sink, config, cancel_event)


__all__ = ["TemplateVersionManager", "create_version_manager"]
