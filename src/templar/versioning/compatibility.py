"""Environment compatibility checks for a template version.

Hard problems (framework, runtime, unresolvable dependencies) are issues and
make the version incompatible. Tool-version and platform mismatches are only
warnings.
"""

import logging

from templar.versioning.audit import AuditEventType, AuditSink, NullAuditSink, make_event
from templar.versioning.errors import InvalidRangeFormat, VersionManagerError, VersionNotFound
from templar.versioning.models import Actor, CompatibilityReport, TargetEnvironment
from templar.versioning.ranges import satisfies
from templar.versioning.resolver import VersionResolver
from templar.versioning.store import VersionStore

logger = logging.getLogger(__name__)


def _range_check(actual: str, declared: str) -> bool | None:
    """Return whether ``actual`` satisfies ``declared``, or None for a malformed range."""
    try:
        return satisfies(actual, declared)
    except InvalidRangeFormat:
        return None


class CompatibilityChecker:
    """Check a stored version against a target environment."""

    def __init__(
        self,
        store: VersionStore,
        resolver: VersionResolver,
        audit_sink: AuditSink | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self._audit = audit_sink or NullAuditSink()

    def check(
        self,
        template_id: str,
        version: str,
        target: TargetEnvironment,
        actor: Actor | None = None,
    ) -> CompatibilityReport:
        """Check one version against ``target``.

        Args:
            template_id: Template to check
            version: Exact version string
            target: Environment to check against; unset fields are not checked
            actor: Caller identity for the audit event

        Returns:
            CompatibilityReport; ``compatible`` is True when there are no issues

        Raises:
            VersionNotFound: If the version does not exist
        """
        record = self.store.get(template_id, version)
        if record is None:
            raise VersionNotFound(
                f"Version {version} not found for template {template_id}",
                template_id=template_id,
                version=version,
            )

        compat = record.compatibility
        issues: list[str] = []
        warnings: list[str] = []

        if target.framework and compat.frameworks and target.framework not in compat.frameworks:
            issues.append(
                f"Framework {target.framework} is not supported. "
                f"Supported: {', '.join(sorted(compat.frameworks))}"
            )

        if target.runtime_version and compat.runtime_version_range:
            ok = _range_check(target.runtime_version, compat.runtime_version_range)
            if ok is None:
                issues.append(f"Runtime version range {compat.runtime_version_range!r} is malformed")
            elif not ok:
                issues.append(
                    f"Runtime version {target.runtime_version} does not satisfy "
                    f"requirement {compat.runtime_version_range}"
                )

        if target.tool_version and compat.tool_version_range:
            ok = _range_check(target.tool_version, compat.tool_version_range)
            if ok is None:
                warnings.append(f"Tool version range {compat.tool_version_range!r} is malformed")
            elif not ok:
                warnings.append(
                    f"Tool version {target.tool_version} does not satisfy "
                    f"recommendation {compat.tool_version_range}"
                )

        if target.platforms and compat.platforms:
            unsupported = [p for p in target.platforms if p not in compat.platforms]
            if unsupported:
                warnings.append(f"Platforms may not be fully supported: {', '.join(unsupported)}")

        for dependency in record.dependencies:
            try:
                self.resolver.resolve(dependency.dependency_id, dependency.version_constraint)
            except VersionManagerError as e:
                issues.append(
                    f"Dependency {dependency.dependency_id}@{dependency.version_constraint} "
                    f"cannot be resolved: {e}"
                )

        report = CompatibilityReport(compatible=not issues, issues=issues, warnings=warnings)
        logger.info(
            f"Compatibility check for {template_id}@{version}: compatible={report.compatible}, "
            f"issues={len(issues)}, warnings={len(warnings)}"
        )

        self._audit.emit(
            make_event(
                AuditEventType.COMPATIBILITY_CHECKED,
                template_id,
                version,
                actor,
                details={
                    "compatible": report.compatible,
                    "issues": list(issues),
                    "warnings": list(warnings),
                    "target_environment": target.to_dict(),
                },
                classification=record.compliance.classification,
            )
        )
        return report


__all__ = ["CompatibilityChecker"]
