"""Version resolution with transitive dependencies and conflict detection.

Resolution policy, in order:
1. Load every version of the template (NoVersionsForTemplate when there are none)
2. Drop deprecated versions
3. Drop prereleases unless requested; the ``prerelease`` strategy instead
   picks the highest non-deprecated prerelease
4. Apply the strategy (exact, latest, range, prerelease)
5. Resolve dependencies depth-first with the same options into a flat list;
   failures are recorded as UNRESOLVED instead of aborting
6. Report every template that resolved to more than one version as a conflict

Cycles are cut by tracking the templates on the current resolution path, and
the walk is bounded by ``max_depth`` and ``max_fanout``.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from templar.versioning.audit import AuditEventType, AuditSink, NullAuditSink, make_event
from templar.versioning.errors import (
    NoPrereleaseVersions,
    NoSatisfyingVersion,
    NoVersionsForTemplate,
    VersionManagerError,
    VersionNotFound,
)
from templar.versioning.models import (
    UNRESOLVED,
    Actor,
    DependencyDeclaration,
    ResolutionStrategy,
    ResolvedDependency,
    VersionConflict,
    VersionRecord,
    VersionResolution,
)
from templar.versioning.ranges import satisfies
from templar.versioning.store import VersionStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32
DEFAULT_MAX_FANOUT = 64

CONFLICT_REASON = "Multiple versions required by different dependencies"


@dataclass(frozen=True)
class _Options:
    include_prerelease: bool
    strategy: ResolutionStrategy
    max_depth: int
    max_fanout: int


class VersionResolver:
    """Resolve version constraints against a VersionStore."""

    def __init__(
        self,
        store: VersionStore,
        audit_sink: AuditSink | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_fanout: int = DEFAULT_MAX_FANOUT,
    ):
        """Initialize resolver.

        Args:
            store: Version store to read candidates from
            audit_sink: Receives CONFLICT_DETECTED events
            max_depth: Deepest dependency level that is still resolved
            max_fanout: Most dependency declarations resolved per version
        """
        self.store = store
        self._audit = audit_sink or NullAuditSink()
        self.max_depth = max_depth
        self.max_fanout = max_fanout

    def select(
        self,
        template_id: str,
        constraint: str,
        include_prerelease: bool = False,
        strategy: ResolutionStrategy | str = ResolutionStrategy.RANGE,
    ) -> VersionRecord:
        """Pick one version of a template without touching its dependencies.

        Raises:
            NoVersionsForTemplate: If the template has no versions at all
            VersionNotFound: If ``exact`` names no eligible version
            NoPrereleaseVersions: If ``prerelease`` finds no eligible prerelease
            NoSatisfyingVersion: If no eligible version matches the constraint
            InvalidRangeFormat: If ``range`` is given a malformed expression
        """
        strategy = ResolutionStrategy(strategy)
        versions = self.store.list(template_id, include_deprecated=True, include_prerelease=True)
        if not versions:
            raise NoVersionsForTemplate(
                f"No versions found for template {template_id}", template_id=template_id
            )

        live = [v for v in versions if not v.deprecated]

        if strategy == ResolutionStrategy.PRERELEASE:
            prereleases = [v for v in live if v.prerelease]
            if not prereleases:
                raise NoPrereleaseVersions(
                    f"No prerelease versions found for template {template_id}",
                    template_id=template_id,
                )
            return prereleases[0]

        candidates = live if include_prerelease else [v for v in live if not v.prerelease]

        if strategy == ResolutionStrategy.EXACT:
            for record in candidates:
                if record.version == constraint:
                    return record
            raise VersionNotFound(
                f"Exact version {constraint} not found for template {template_id}",
                template_id=template_id,
                version=constraint,
            )

        if strategy == ResolutionStrategy.LATEST:
            if not candidates:
                raise NoSatisfyingVersion(
                    f"No eligible versions for template {template_id}", template_id=template_id
                )
            return candidates[0]

        # Candidates are already in descending precedence, so the first hit wins.
        for record in candidates:
            if satisfies(record.version, constraint, include_prerelease):
                return record
        raise NoSatisfyingVersion(
            f"No version of {template_id} satisfies constraint {constraint}",
            template_id=template_id,
            version=constraint,
        )

    def resolve(
        self,
        template_id: str,
        constraint: str,
        include_prerelease: bool = False,
        strategy: ResolutionStrategy | str = ResolutionStrategy.RANGE,
        max_depth: int | None = None,
        max_fanout: int | None = None,
        actor: Actor | None = None,
    ) -> VersionResolution:
        """Resolve a constraint and the transitive dependency graph.

        Failures on the requested template raise; failures on dependencies
        are recorded as UNRESOLVED entries with a reason.

        Returns:
            VersionResolution with the flat dependency list and any conflicts
        """
        options = _Options(
            include_prerelease=include_prerelease,
            strategy=ResolutionStrategy(strategy),
            max_depth=self.max_depth if max_depth is None else max_depth,
            max_fanout=self.max_fanout if max_fanout is None else max_fanout,
        )

        chosen = self.select(template_id, constraint, include_prerelease, options.strategy)
        dependencies = self._resolve_dependencies(chosen.dependencies, options, (template_id,))
        conflicts = detect_conflicts(dependencies)

        resolution = VersionResolution(
            template_id=template_id,
            requested_constraint=constraint,
            resolved_version=chosen.version,
            strategy=options.strategy,
            dependencies=dependencies,
            conflicts=conflicts,
        )

        logger.info(
            f"Resolved {template_id}@{constraint} -> {chosen.version} "
            f"(strategy={options.strategy}, dependencies={len(dependencies)}, "
            f"conflicts={len(conflicts)})"
        )

        if conflicts:
            logger.warning(
                f"Version conflicts for {template_id}@{chosen.version}: "
                + ", ".join(f"{c.template_id} {list(c.conflicting_versions)}" for c in conflicts)
            )
            self._audit.emit(
                make_event(
                    AuditEventType.CONFLICT_DETECTED,
                    template_id,
                    chosen.version,
                    actor,
                    details={
                        "requested_constraint": constraint,
                        "strategy": str(options.strategy),
                        "conflicts": [
                            {
                                "template_id": c.template_id,
                                "conflicting_versions": list(c.conflicting_versions),
                                "reason": c.reason,
                            }
                            for c in conflicts
                        ],
                    },
                )
            )

        return resolution

    def _resolve_dependencies(
        self,
        declarations: Sequence[DependencyDeclaration],
        options: _Options,
        path: tuple[str, ...],
    ) -> list[ResolvedDependency]:
        resolved: list[ResolvedDependency] = []
        depth = len(path)

        for index, declaration in enumerate(declarations):
            dependency_id = declaration.dependency_id
            constraint = declaration.version_constraint

            if index >= options.max_fanout:
                resolved.append(
                    ResolvedDependency(
                        dependency_id,
                        constraint,
                        UNRESOLVED,
                        f"MaxFanoutExceeded: {path[-1]} declares more than "
                        f"{options.max_fanout} dependencies",
                    )
                )
                continue

            if dependency_id in path:
                cycle = " -> ".join([*path, dependency_id])
                logger.warning(f"Dependency cycle detected: {cycle}")
                resolved.append(
                    ResolvedDependency(dependency_id, constraint, UNRESOLVED, f"CyclicDependency: {cycle}")
                )
                continue

            if depth > options.max_depth:
                resolved.append(
                    ResolvedDependency(
                        dependency_id,
                        constraint,
                        UNRESOLVED,
                        f"MaxDepthExceeded: depth {depth} exceeds {options.max_depth}",
                    )
                )
                continue

            try:
                chosen = self.select(
                    dependency_id, constraint, options.include_prerelease, options.strategy
                )
            except VersionManagerError as e:
                logger.debug(f"Dependency {dependency_id}@{constraint} unresolved: {e}")
                resolved.append(ResolvedDependency(dependency_id, constraint, UNRESOLVED, str(e)))
                continue

            resolved.append(ResolvedDependency(dependency_id, constraint, chosen.version))
            resolved.extend(
                self._resolve_dependencies(chosen.dependencies, options, (*path, dependency_id))
            )

        return resolved


def detect_conflicts(dependencies: Sequence[ResolvedDependency]) -> list[VersionConflict]:
    """Group a flat dependency list by template and report multi-version templates.

    UNRESOLVED counts as a distinct version, so a template that resolved in
    one branch and failed in another is reported too.
    """
    by_template: dict[str, list[str]] = {}
    for dependency in dependencies:
        seen = by_template.setdefault(dependency.template_id, [])
        if dependency.resolved_version not in seen:
            seen.append(dependency.resolved_version)

    return [
        VersionConflict(template_id, tuple(versions), CONFLICT_REASON)
        for template_id, versions in by_template.items()
        if len(versions) > 1
    ]


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_FANOUT",
    "VersionResolver",
    "detect_conflicts",
]
