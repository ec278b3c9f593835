"""Error taxonomy for the template version engine.

Every error carries a stable ``code`` plus the template id and version it
concerns, so callers can branch on the type or on the code.
"""


class VersionManagerError(Exception):
    """Base class for all version engine failures."""

    code = "VERSION_MANAGER_ERROR"

    def __init__(
        self,
        message: str,
        template_id: str | None = None,
        version: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.template_id = template_id
        self.version = version


class InvalidVersionFormat(VersionManagerError, ValueError):
    """Raised when a version string does not follow semantic versioning."""

    code = "INVALID_VERSION"


class InvalidRangeFormat(InvalidVersionFormat):
    """Raised when a version range expression cannot be parsed."""

    code = "INVALID_RANGE"


class InvalidTemplateId(VersionManagerError, ValueError):
    """Raised when a template id is unsafe to use as a storage key."""

    code = "INVALID_TEMPLATE_ID"


class VersionExists(VersionManagerError):
    code = "VERSION_EXISTS"


class VersionNotFound(VersionManagerError):
    code = "VERSION_NOT_FOUND"


class NoVersionsForTemplate(VersionManagerError):
    code = "NO_VERSIONS"


class NoSatisfyingVersion(VersionManagerError):
    code = "NO_SATISFYING_VERSION"


class NoPrereleaseVersions(VersionManagerError):
    code = "NO_PRERELEASE_VERSIONS"


class MigrationSourceVersionMissing(VersionManagerError):
    code = "SOURCE_VERSION_NOT_FOUND"


class MigrationTargetVersionMissing(VersionManagerError):
    code = "TARGET_VERSION_NOT_FOUND"


class PersistenceFailure(VersionManagerError):
    """Raised when a store/load round trip with the backend fails.

    The mutation that triggered the write is rejected as a whole.
    """

    code = "PERSISTENCE_FAILURE"


class DependencyError(VersionManagerError):
    """Raised when a declared dependency cannot be satisfied."""

    code = "DEPENDENCY_ERROR"

    def __init__(
        self,
        message: str,
        template_id: str,
        dependency_id: str,
        constraint: str,
        version: str | None = None,
    ):
        super().__init__(message, template_id=template_id, version=version)
        self.dependency_id = dependency_id
        self.constraint = constraint


class DependencyMissing(DependencyError):
    code = "DEPENDENCY_MISSING"


class ConstraintUnsatisfiable(DependencyError):
    code = "CONSTRAINT_UNSATISFIABLE"


__all__ = [
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
]
