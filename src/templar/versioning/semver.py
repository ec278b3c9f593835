"""Semantic version parsing and precedence.

Provides:
- SemanticVersion: MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]
- parse_version / is_valid: strict parsing against the semver grammar
- compare_versions: precedence comparison of two version strings
- version_diff: the level at which two versions first differ

Precedence follows semver 2.0.0: numeric MAJOR, MINOR and PATCH first, then
prerelease identifiers (a version without prerelease outranks one with it).
Build metadata never participates in ordering.
"""

import re
from dataclasses import dataclass, field

from templar.versioning.errors import InvalidVersionFormat

_NUMERIC = r"0|[1-9]\d*"
_PRERELEASE_ID = r"(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
_BUILD_ID = r"[0-9a-zA-Z-]+"

SEMVER_PATTERN = re.compile(
    rf"^(?P<major>{_NUMERIC})\.(?P<minor>{_NUMERIC})\.(?P<patch>{_NUMERIC})"
    rf"(?:-(?P<prerelease>{_PRERELEASE_ID}(?:\.{_PRERELEASE_ID})*))?"
    rf"(?:\+(?P<build>{_BUILD_ID}(?:\.{_BUILD_ID})*))?$",
    re.ASCII,
)


def _parse_identifier(identifier: str) -> int | str:
    return int(identifier) if identifier.isdigit() else identifier


def _compare_identifiers(left: int | str, right: int | str) -> int:
    # Numeric identifiers always have lower precedence than alphanumeric ones.
    if isinstance(left, int) and isinstance(right, str):
        return -1
    if isinstance(left, str) and isinstance(right, int):
        return 1
    if left == right:
        return 0
    return -1 if left < right else 1  # type: ignore[operator]


@dataclass(frozen=True)
class SemanticVersion:
    """Parsed semantic version.

    Equality compares every field, build metadata included. Ordering uses
    semver precedence, so two versions differing only in build metadata are
    neither less nor greater than each other.
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[int | str, ...] = field(default_factory=tuple)
    build: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @classmethod
    def from_string(cls, version_str: str) -> "SemanticVersion":
        """Parse version from string.

        Args:
            version_str: Version string (e.g., "1.2.3-beta.1+build.5")

        Returns:
            SemanticVersion instance

        Raises:
            InvalidVersionFormat: If the string does not match the semver grammar
        """
        match = SEMVER_PATTERN.match(version_str.strip()) if isinstance(version_str, str) else None
        if not match:
            raise InvalidVersionFormat(
                f"Invalid semantic version: {version_str!r}. "
                "Expected 'MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]'",
                version=str(version_str),
            )

        prerelease = match.group("prerelease")
        build = match.group("build")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=tuple(_parse_identifier(p) for p in prerelease.split(".")) if prerelease else (),
            build=tuple(build.split(".")) if build else (),
        )

    def compare(self, other: "SemanticVersion") -> int:
        """Return -1, 0 or 1 according to semver precedence."""
        if self.core != other.core:
            return -1 if self.core < other.core else 1

        if not self.prerelease and not other.prerelease:
            return 0
        if not self.prerelease:
            return 1
        if not other.prerelease:
            return -1

        for left, right in zip(self.prerelease, other.prerelease):
            result = _compare_identifiers(left, right)
            if result:
                return result

        if len(self.prerelease) == len(other.prerelease):
            return 0
        return -1 if len(self.prerelease) < len(other.prerelease) else 1

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.compare(other) < 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.compare(other) <= 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.compare(other) > 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.compare(other) >= 0


def parse_version(version_str: str) -> SemanticVersion:
    """Parse a version string, raising InvalidVersionFormat on failure."""
    return SemanticVersion.from_string(version_str)


def is_valid(version_str: str) -> bool:
    """Check whether a string is a valid semantic version."""
    try:
        SemanticVersion.from_string(version_str)
    except InvalidVersionFormat:
        return False
    return True


def compare_versions(left: str, right: str) -> int:
    """Compare two version strings by precedence (-1, 0, 1)."""
    return parse_version(left).compare(parse_version(right))


def precedence_key(version_str: str) -> "_PrecedenceKey":
    """Sort key ordering version strings by semver precedence."""
    return _PrecedenceKey(parse_version(version_str))


@dataclass(frozen=True)
class _PrecedenceKey:
    version: SemanticVersion

    def __lt__(self, other: "_PrecedenceKey") -> bool:
        return self.version.compare(other.version) < 0


def version_diff(from_version: str, to_version: str) -> str:
    """Return the level at which two versions first differ.

    Returns one of "major", "minor", "patch" or "prerelease". Versions that
    share MAJOR.MINOR.PATCH (including identical versions) report
    "prerelease".
    """
    left = parse_version(from_version)
    right = parse_version(to_version)

    if left.major != right.major:
        return "major"
    if left.minor != right.minor:
        return "minor"
    if left.patch != right.patch:
        return "patch"
    return "prerelease"


__all__ = [
    "SEMVER_PATTERN",
    "SemanticVersion",
    "compare_versions",
    "is_valid",
    "parse_version",
    "precedence_key",
    "version_diff",
]
