"""Version range expressions.

Supported syntax (node-style ranges):
- Comparators: ``>=1.2.3``, ``>1.2.3``, ``<=1.2.3``, ``<1.2.3``, ``=1.2.3``, ``1.2.3``
- Partial and X-ranges: ``1``, ``1.2``, ``1.x``, ``1.2.*``, ``*``, empty string
- Tilde ranges: ``~1.2.3``, ``~1.2``, ``~1`` (``~>`` accepted as an alias)
- Caret ranges: ``^1.2.3``, ``^0.2.3``, ``^0.0.3``, ``^1.x``
- Hyphen ranges: ``1.2.3 - 2.3.4``
- Intersection by whitespace, union by ``||``

Every range is reduced to a union of comparator sets. A prerelease version
only satisfies a comparator set that names a prerelease on the same
MAJOR.MINOR.PATCH, unless ``include_prerelease`` is requested.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from templar.versioning.errors import InvalidRangeFormat, InvalidVersionFormat
from templar.versioning.semver import SemanticVersion

_WILDCARDS = {"x", "X", "*"}

_PARTIAL = re.compile(
    r"^v?(?P<major>[0-9]+|[xX*])"
    r"(?:\.(?P<minor>[0-9]+|[xX*])"
    r"(?:\.(?P<patch>[0-9]+|[xX*])"
    r"(?P<qualifier>(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?))?)?$",
    re.ASCII,
)
_COMPARATOR = re.compile(r"^(?P<op>~>|~|\^|>=|<=|>|<|=)?\s*(?P<partial>\S*)$")
_HYPHEN = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
_OPERATOR_GAP = re.compile(r"(~>|~|\^|>=|<=|>|<|=)\s+")


@dataclass(frozen=True)
class Comparator:
    """Single ``<op> <version>`` test."""

    operator: str
    version: SemanticVersion
    synthetic: bool = False

    def test(self, version: SemanticVersion) -> bool:
        result = version.compare(self.version)
        if self.operator == ">=":
            return result >= 0
        if self.operator == ">":
            return result > 0
        if self.operator == "<=":
            return result <= 0
        if self.operator == "<":
            return result < 0
        return result == 0

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


@dataclass(frozen=True)
class _Partial:
    major: int | None
    minor: int | None
    patch: int | None
    prerelease: tuple[int | str, ...] = ()

    @property
    def is_any(self) -> bool:
        return self.major is None

    def floor(self) -> SemanticVersion:
        return SemanticVersion(
            self.major or 0,
            self.minor or 0,
            self.patch or 0,
            self.prerelease if self.patch is not None else (),
        )


def _below(major: int, minor: int, patch: int) -> Comparator:
    # "-0" is the lowest possible prerelease, so "<X.Y.Z-0" excludes every X.Y.Z prerelease.
    return Comparator("<", SemanticVersion(major, minor, patch, (0,)), synthetic=True)


def _at_least(major: int, minor: int, patch: int) -> Comparator:
    return Comparator(">=", SemanticVersion(major, minor, patch, (0,)), synthetic=True)


def _parse_partial(text: str, expression: str) -> _Partial:
    match = _PARTIAL.match(text)
    if not match:
        raise InvalidRangeFormat(f"Invalid version range: {expression!r} (bad version {text!r})")

    def number(group: str) -> int | None:
        value = match.group(group)
        if value is None or value in _WILDCARDS:
            return None
        return int(value)

    major, minor, patch = number("major"), number("minor"), number("patch")
    # A wildcard swallows everything to its right ("1.x.3" means "1.x").
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None

    prerelease: tuple[int | str, ...] = ()
    qualifier = match.group("qualifier") or ""
    if qualifier and patch is not None:
        try:
            prerelease = SemanticVersion.from_string(f"{major}.{minor}.{patch}{qualifier}").prerelease
        except InvalidVersionFormat as e:
            raise InvalidRangeFormat(f"Invalid version range: {expression!r} ({e})") from e

    return _Partial(major, minor, patch, prerelease)


def _x_range(partial: _Partial) -> list[Comparator]:
    if partial.is_any:
        return []
    if partial.minor is None:
        return [
            Comparator(">=", SemanticVersion(partial.major, 0, 0)),
            _below(partial.major + 1, 0, 0),
        ]
    if partial.patch is None:
        return [
            Comparator(">=", SemanticVersion(partial.major, partial.minor, 0)),
            _below(partial.major, partial.minor + 1, 0),
        ]
    return [Comparator("=", partial.floor())]


def _tilde(partial: _Partial) -> list[Comparator]:
    if partial.is_any or partial.minor is None or partial.patch is None:
        return _x_range(partial)
    return [
        Comparator(">=", partial.floor()),
        _below(partial.major, partial.minor + 1, 0),
    ]


def _caret(partial: _Partial) -> list[Comparator]:
    if partial.is_any:
        return []
    major = partial.major
    if partial.minor is None:
        return _x_range(partial)
    if partial.patch is None:
        if major == 0:
            upper = _below(0, partial.minor + 1, 0)
        else:
            upper = _below(major + 1, 0, 0)
        return [Comparator(">=", SemanticVersion(major, partial.minor, 0)), upper]

    if major != 0:
        upper = _below(major + 1, 0, 0)
    elif partial.minor != 0:
        upper = _below(0, partial.minor + 1, 0)
    else:
        upper = _below(0, 0, partial.patch + 1)
    return [Comparator(">=", partial.floor()), upper]


def _primitive(operator: str, partial: _Partial) -> list[Comparator]:
    if partial.is_any:
        # ">*" and "<*" can never match; the other operators accept anything.
        if operator in (">", "<"):
            return [_below(0, 0, 0)]
        return []

    if partial.patch is not None:
        return [Comparator(operator, partial.floor())]

    # Partial versions: widen to the boundaries of the missing components.
    if partial.minor is None:
        next_core = (partial.major + 1, 0, 0)
    else:
        next_core = (partial.major, partial.minor + 1, 0)
    floor = partial.floor()

    if operator == ">":
        return [_at_least(*next_core)]
    if operator == ">=":
        return [Comparator(">=", floor)]
    if operator == "<":
        return [_below(floor.major, floor.minor, floor.patch)]
    return [_below(*next_core)]


def _hyphen(low_text: str, high_text: str, expression: str) -> list[Comparator]:
    low = _parse_partial(low_text, expression)
    high = _parse_partial(high_text, expression)

    comparators: list[Comparator] = []
    if not low.is_any:
        comparators.append(Comparator(">=", low.floor()))
    if high.is_any:
        return comparators
    if high.patch is not None:
        comparators.append(Comparator("<=", high.floor()))
    else:
        comparators.extend(_primitive("<=", high))
    return comparators


def _parse_comparator(token: str, expression: str) -> list[Comparator]:
    match = _COMPARATOR.match(token)
    if not match:
        raise InvalidRangeFormat(f"Invalid version range: {expression!r} (bad comparator {token!r})")

    operator = match.group("op") or ""
    partial = _parse_partial(match.group("partial") or "*", expression)

    if operator in ("~", "~>"):
        return _tilde(partial)
    if operator == "^":
        return _caret(partial)
    if operator in ("", "="):
        return _x_range(partial)
    return _primitive(operator, partial)


def _parse_set(text: str, expression: str) -> tuple[Comparator, ...]:
    text = text.strip()
    hyphen = _HYPHEN.match(text)
    if hyphen:
        return tuple(_hyphen(hyphen.group("low"), hyphen.group("high"), expression))

    text = _OPERATOR_GAP.sub(r"\1", text)
    comparators: list[Comparator] = []
    for token in text.split():
        comparators.extend(_parse_comparator(token, expression))
    return tuple(comparators)


class VersionRange:
    """Parsed range expression (a union of comparator sets)."""

    def __init__(self, expression: str):
        """Parse a range expression.

        Args:
            expression: Range string (e.g., "^1.2.0", ">=1.0.0 <2.0.0 || 3.x")

        Raises:
            InvalidRangeFormat: If the expression cannot be parsed
        """
        if not isinstance(expression, str):
            raise InvalidRangeFormat(f"Invalid version range: {expression!r}")
        self.expression = expression
        self.comparator_sets: tuple[tuple[Comparator, ...], ...] = tuple(
            _parse_set(part, expression) for part in expression.split("||")
        )

    def __repr__(self) -> str:
        return f"VersionRange({self.expression!r})"

    def __str__(self) -> str:
        return " || ".join(
            " ".join(str(c) for c in comparators) or "*" for comparators in self.comparator_sets
        )

    def satisfied_by(self, version: SemanticVersion | str, include_prerelease: bool = False) -> bool:
        """Check whether a version falls inside this range."""
        if isinstance(version, str):
            version = SemanticVersion.from_string(version)
        return any(
            self._set_satisfied(comparators, version, include_prerelease)
            for comparators in self.comparator_sets
        )

    @staticmethod
    def _set_satisfied(
        comparators: tuple[Comparator, ...],
        version: SemanticVersion,
        include_prerelease: bool,
    ) -> bool:
        if not all(c.test(version) for c in comparators):
            return False
        if not version.is_prerelease or include_prerelease:
            return True
        # Prereleases only match when the range opts into that exact release line.
        return any(
            c.version.is_prerelease
            and c.version.core == version.core
            and not c.synthetic
            for c in comparators
        )


def parse_range(expression: str) -> VersionRange:
    """Parse a range expression, raising InvalidRangeFormat on failure."""
    return VersionRange(expression)


def satisfies(version: str, expression: str, include_prerelease: bool = False) -> bool:
    """Check whether ``version`` satisfies the range ``expression``.

    Invalid versions never satisfy a range; invalid ranges raise.
    """
    version_range = parse_range(expression)
    try:
        parsed = SemanticVersion.from_string(version)
    except InvalidVersionFormat:
        return False
    return version_range.satisfied_by(parsed, include_prerelease)


def max_satisfying(
    versions: Iterable[str],
    expression: str,
    include_prerelease: bool = False,
) -> str | None:
    """Return the highest-precedence version satisfying the range, if any."""
    version_range = parse_range(expression)
    best: SemanticVersion | None = None
    best_text: str | None = None

    for text in versions:
        try:
            candidate = SemanticVersion.from_string(text)
        except InvalidVersionFormat:
            continue
        if not version_range.satisfied_by(candidate, include_prerelease):
            continue
        if best is None or candidate > best:
            best, best_text = candidate, text

    return best_text


__all__ = ["Comparator", "VersionRange", "max_satisfying", "parse_range", "satisfies"]
