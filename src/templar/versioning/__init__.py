"""Template versioning - semver, ranges, stores, resolution and migrations.

This package provides the version engine behind TemplateVersionManager:
- Semver: strict parsing, precedence and diff level
- Ranges: node-style range expressions (^, ~, x-ranges, hyphens, ||)
- Stores: persisted per-template version and migration lists
- Resolution: strategies, transitive dependencies and conflict reports
- Compatibility: target environment checks
- Migrations: window-selected chains of content transformations

Public API:
"""

from templar.versioning.errors import (
    ConstraintUnsatisfiable,
    DependencyError,
    DependencyMissing,
    InvalidRangeFormat,
    InvalidTemplateId,
    InvalidVersionFormat,
    MigrationSourceVersionMissing,
    MigrationTargetVersionMissing,
    NoPrereleaseVersions,
    NoSatisfyingVersion,
    NoVersionsForTemplate,
    PersistenceFailure,
    VersionExists,
    VersionManagerError,
    VersionNotFound,
)

from templar.versioning.semver import (
    SemanticVersion,
    compare_versions,
    is_valid,
    parse_version,
    version_diff,
)

from templar.versioning.ranges import (
    VersionRange,
    max_satisfying,
    parse_range,
    satisfies,
)

from templar.versioning.models import (
    SYSTEM_ACTOR,
    UNRESOLVED,
    Actor,
    Classification,
    Compatibility,
    CompatibilityReport,
    ComplianceMetadata,
    DependencyDeclaration,
    DependencyKind,
    DiffType,
    Migration,
    MigrationOutcome,
    ResolutionStrategy,
    ResolvedDependency,
    TargetEnvironment,
    Transformation,
    TransformationKind,
    VersionConflict,
    VersionRecord,
    VersionResolution,
)

from templar.versioning.audit import (
    AuditEvent,
    AuditEventType,
    AuditSink,
    InMemoryAuditSink,
    JsonlAuditSink,
    NullAuditSink,
)

from templar.versioning.persistence import (
    InMemoryPersistence,
    PersistenceBackend,
    YamlPersistence,
)

from templar.versioning.store import (
    MigrationStore,
    VersionStore,
)

from templar.versioning.dependency_validator import DependencyValidator
from templar.versioning.resolver import VersionResolver
from templar.versioning.compatibility import CompatibilityChecker
from templar.versioning.migrations import MigrationPlanner

__all__ = [
    # Errors
    "ConstraintUnsatisfiable",
    "DependencyError",
    "DependencyMissing",
    "InvalidRangeFormat",
    "InvalidTemplateId",
    "InvalidVersionFormat",
    "MigrationSourceVersionMissing",
    "MigrationTargetVersionMissing",
    "NoPrereleaseVersions",
    "NoSatisfyingVersion",
    "NoVersionsForTemplate",
    "PersistenceFailure",
    "VersionExists",
    "VersionManagerError",
    "VersionNotFound",
    # Semver and ranges
    "SemanticVersion",
    "VersionRange",
    "compare_versions",
    "is_valid",
    "max_satisfying",
    "parse_range",
    "parse_version",
    "satisfies",
    "version_diff",
    # Models
    "SYSTEM_ACTOR",
    "UNRESOLVED",
    "Actor",
    "Classification",
    "Compatibility",
    "CompatibilityReport",
    "ComplianceMetadata",
    "DependencyDeclaration",
    "DependencyKind",
    "DiffType",
    "Migration",
    "MigrationOutcome",
    "ResolutionStrategy",
    "ResolvedDependency",
    "TargetEnvironment",
    "Transformation",
    "TransformationKind",
    "VersionConflict",
    "VersionRecord",
    "VersionResolution",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "NullAuditSink",
    # Persistence and stores
    "InMemoryPersistence",
    "MigrationStore",
    "PersistenceBackend",
    "VersionStore",
    "YamlPersistence",
    # Engine
    "CompatibilityChecker",
    "DependencyValidator",
    "MigrationPlanner",
    "VersionResolver",
]
