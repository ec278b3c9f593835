"""Data model for versioned templates, dependencies and migrations.

Provides:
- VersionRecord: one released version of a template (immutable except ``deprecated``)
- DependencyDeclaration: a version constraint on another template
- Compatibility / ComplianceMetadata: environment and compliance facts
- Migration / Transformation: declared content upgrades between versions
- VersionResolution: transient result of resolving a constraint
- Actor: opaque caller identity

Every persisted type serializes with ``to_dict()`` / ``from_dict()``.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

UNRESOLVED = "UNRESOLVED"


class Classification(StrEnum):
    """Sensitivity classification, ordered from least to most restricted."""

    OPEN = "OPEN"
    RESTRICTED = "RESTRICTED"
    CONFIDENTIAL = "CONFIDENTIAL"
    SECRET = "SECRET"


class AccessibilityLevel(StrEnum):
    A = "A"
    AA = "AA"
    AAA = "AAA"


class DependencyKind(StrEnum):
    RUNTIME = "runtime"
    PEER = "peer"
    DEV = "dev"
    OPTIONAL = "optional"


class ResolutionStrategy(StrEnum):
    EXACT = "exact"
    LATEST = "latest"
    RANGE = "range"
    PRERELEASE = "prerelease"


class DiffType(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    PRERELEASE = "prerelease"


class TransformationKind(StrEnum):
    RENAME = "rename"
    REMOVE = "remove"
    ADD = "add"
    MODIFY = "modify"
    REPLACE = "replace"
    RESTRUCTURE = "restructure"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Actor:
    """Caller identity attached to mutations and audit events."""

    id: str
    clearance: Classification = Classification.OPEN


SYSTEM_ACTOR = Actor(id="system")


@dataclass(frozen=True)
class DependencyDeclaration:
    """Dependency of a template version on another template."""

    dependency_id: str
    version_constraint: str
    kind: DependencyKind = DependencyKind.RUNTIME
    required: bool = True
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "dependency_id": self.dependency_id,
            "version_constraint": self.version_constraint,
            "kind": str(self.kind),
            "required": self.required,
        }
        if self.reason:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyDeclaration":
        return cls(
            dependency_id=data["dependency_id"],
            version_constraint=data["version_constraint"],
            kind=DependencyKind(data.get("kind", DependencyKind.RUNTIME)),
            required=data.get("required", True),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class Compatibility:
    """Environments a template version is known to work in."""

    frameworks: frozenset[str] = frozenset()
    runtime_version_range: str | None = None
    tool_version_range: str | None = None
    platforms: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "frameworks": sorted(self.frameworks),
            "platforms": sorted(self.platforms),
        }
        if self.runtime_version_range:
            data["runtime_version_range"] = self.runtime_version_range
        if self.tool_version_range:
            data["tool_version_range"] = self.tool_version_range
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Compatibility":
        data = data or {}
        return cls(
            frameworks=frozenset(data.get("frameworks", [])),
            runtime_version_range=data.get("runtime_version_range"),
            tool_version_range=data.get("tool_version_range"),
            platforms=frozenset(data.get("platforms", [])),
        )


@dataclass(frozen=True)
class ComplianceMetadata:
    """Classification and approval state of a template version."""

    classification: Classification = Classification.OPEN
    data_protection_compliant: bool = True
    accessibility_level: AccessibilityLevel = AccessibilityLevel.AA
    approved: bool = False
    approver: str | None = None
    approval_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "classification": str(self.classification),
            "data_protection_compliant": self.data_protection_compliant,
            "accessibility_level": str(self.accessibility_level),
            "approved": self.approved,
        }
        if self.approver:
            data["approver"] = self.approver
        if self.approval_date:
            data["approval_date"] = self.approval_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ComplianceMetadata":
        data = data or {}
        return cls(
            classification=Classification(data.get("classification", Classification.OPEN)),
            data_protection_compliant=data.get("data_protection_compliant", True),
            accessibility_level=AccessibilityLevel(
                data.get("accessibility_level", AccessibilityLevel.AA)
            ),
            approved=data.get("approved", False),
            approver=data.get("approver"),
            approval_date=_parse_datetime(data.get("approval_date")),
        )


@dataclass(frozen=True)
class VersionRecord:
    """A single released version of a template.

    Records are frozen. The only permitted change, deprecation, produces a
    new record via ``with_deprecated()`` that replaces the old one in the
    store.
    """

    version: str
    template_id: str
    author: str
    release_date: datetime = field(default_factory=_utcnow)
    commit_ref: str | None = None
    changelog: str | None = None
    breaking: bool = False
    deprecated: bool = False
    prerelease: bool = False
    tags: frozenset[str] = frozenset()
    dependencies: tuple[DependencyDeclaration, ...] = ()
    compatibility: Compatibility = field(default_factory=Compatibility)
    compliance: ComplianceMetadata = field(default_factory=ComplianceMetadata)

    def with_deprecated(self) -> "VersionRecord":
        return replace(self, deprecated=True)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "template_id": self.template_id,
            "release_date": self.release_date.isoformat(),
            "author": self.author,
            "breaking": self.breaking,
            "deprecated": self.deprecated,
            "prerelease": self.prerelease,
            "tags": sorted(self.tags),
            "dependencies": [d.to_dict() for d in self.dependencies],
            "compatibility": self.compatibility.to_dict(),
            "compliance": self.compliance.to_dict(),
        }
        if self.commit_ref:
            data["commit_ref"] = self.commit_ref
        if self.changelog:
            data["changelog"] = self.changelog
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VersionRecord":
        return cls(
            version=data["version"],
            template_id=data["template_id"],
            author=data["author"],
            release_date=_parse_datetime(data.get("release_date")) or _utcnow(),
            commit_ref=data.get("commit_ref"),
            changelog=data.get("changelog"),
            breaking=data.get("breaking", False),
            deprecated=data.get("deprecated", False),
            prerelease=data.get("prerelease", False),
            tags=frozenset(data.get("tags", [])),
            dependencies=tuple(
                DependencyDeclaration.from_dict(d) for d in data.get("dependencies", [])
            ),
            compatibility=Compatibility.from_dict(data.get("compatibility")),
            compliance=ComplianceMetadata.from_dict(data.get("compliance")),
        )


ContentCondition = Callable[[str], bool]


@dataclass(frozen=True)
class Transformation:
    """One content edit inside a migration.

    ``target`` is a regular expression for ``replace`` and ``remove``, and a
    literal identifier for ``rename``. ``condition`` is either a callable
    taking the current content or a regular expression that must be found in
    it; only string conditions are persisted.
    """

    kind: TransformationKind
    target: str
    replacement: str | None = None
    condition: ContentCondition | str | None = None
    reason: str | None = None

    VALID_KINDS = frozenset(TransformationKind)

    def __post_init__(self):
        """Validate kind and patterns after initialization."""
        try:
            kind = TransformationKind(self.kind)
        except ValueError:
            raise ValueError(
                f"Invalid transformation kind: {self.kind}. "
                f"Must be one of {sorted(self.VALID_KINDS)}"
            ) from None
        object.__setattr__(self, "kind", kind)

        patterns = [self.condition] if isinstance(self.condition, str) else []
        if kind in (TransformationKind.REPLACE, TransformationKind.REMOVE):
            patterns.append(self.target)
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid transformation pattern {pattern!r}: {e}") from e

    def applies_to(self, content: str) -> bool:
        if self.condition is None:
            return True
        if isinstance(self.condition, str):
            return re.search(self.condition, content) is not None
        return bool(self.condition(content))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": str(self.kind), "target": self.target}
        if self.replacement is not None:
            data["replacement"] = self.replacement
        if isinstance(self.condition, str):
            data["condition"] = self.condition
        if self.reason:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transformation":
        return cls(
            kind=TransformationKind(data["kind"]),
            target=data["target"],
            replacement=data.get("replacement"),
            condition=data.get("condition"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class Migration:
    """Declared upgrade path between two versions of one template.

    Migrations are persisted, so transformation conditions must be regular
    expression strings; callable conditions are rejected on construction.
    ``migration_script`` is an opaque script reference stored for callers and
    never executed by the engine.
    """

    id: str
    template_id: str
    from_version: str
    to_version: str
    diff_type: DiffType
    created_by: str
    breaking: bool = False
    automated: bool = True
    transformations: tuple[Transformation, ...] = ()
    requirements: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    instructions: str | None = None
    migration_script: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        for transformation in self.transformations:
            if transformation.condition is not None and not isinstance(transformation.condition, str):
                raise ValueError(
                    f"Migration {self.from_version} -> {self.to_version} of {self.template_id}: "
                    f"{transformation.kind} on {transformation.target!r} has a callable condition; "
                    "persisted migrations accept only regular expression conditions"
                )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "template_id": self.template_id,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "diff_type": str(self.diff_type),
            "breaking": self.breaking,
            "automated": self.automated,
            "transformations": [t.to_dict() for t in self.transformations],
            "requirements": list(self.requirements),
            "warnings": list(self.warnings),
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }
        if self.instructions:
            data["instructions"] = self.instructions
        if self.migration_script:
            data["migration_script"] = self.migration_script
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Migration":
        return cls(
            id=data["id"],
            template_id=data["template_id"],
            from_version=data["from_version"],
            to_version=data["to_version"],
            diff_type=DiffType(data["diff_type"]),
            created_by=data["created_by"],
            breaking=data.get("breaking", False),
            automated=data.get("automated", True),
            transformations=tuple(
                Transformation.from_dict(t) for t in data.get("transformations", [])
            ),
            requirements=tuple(data.get("requirements", [])),
            warnings=tuple(data.get("warnings", [])),
            instructions=data.get("instructions"),
            migration_script=data.get("migration_script"),
            created_at=_parse_datetime(data.get("created_at")) or _utcnow(),
        )


@dataclass(frozen=True)
class ResolvedDependency:
    template_id: str
    requested_constraint: str
    resolved_version: str
    reason: str | None = None

    @property
    def unresolved(self) -> bool:
        return self.resolved_version == UNRESOLVED


@dataclass(frozen=True)
class VersionConflict:
    template_id: str
    conflicting_versions: tuple[str, ...]
    reason: str | None = None


@dataclass
class VersionResolution:
    """Outcome of resolving a constraint, including the flattened dependency graph."""

    template_id: str
    requested_constraint: str
    resolved_version: str
    strategy: ResolutionStrategy
    dependencies: list[ResolvedDependency] = field(default_factory=list)
    conflicts: list[VersionConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def unresolved(self) -> list[ResolvedDependency]:
        return [d for d in self.dependencies if d.unresolved]


@dataclass
class TargetEnvironment:
    """Environment a caller wants to run a template version in."""

    framework: str | None = None
    runtime_version: str | None = None
    tool_version: str | None = None
    platforms: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "framework": self.framework,
            "runtime_version": self.runtime_version,
            "tool_version": self.tool_version,
            "platforms": list(self.platforms),
        }


@dataclass
class CompatibilityReport:
    compatible: bool
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class MigrationOutcome:
    """Content after applying a migration chain."""

    content: str
    applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


__all__ = [
    "SYSTEM_ACTOR",
    "UNRESOLVED",
    "AccessibilityLevel",
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
]
