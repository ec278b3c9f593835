"""Unit tests for semantic version parsing and precedence.

Test coverage: strict semver grammar, precedence ordering, diff level
"""

import pytest


class TestParseVersion:
    """Test parsing version strings."""

    def test_parse_core_version(self):
        """Test parsing MAJOR.MINOR.PATCH."""
        from templar.versioning.semver import parse_version

        version = parse_version("1.2.3")

        assert version.major == 1
        assert version.minor == 2
        assert version.patch == 3
        assert not version.is_prerelease
        assert str(version) == "1.2.3"

    def test_parse_prerelease_and_build(self):
        """Test prerelease identifiers are split and numeric ones become ints."""
        from templar.versioning.semver import parse_version

        version = parse_version("1.0.0-beta.11+build.5")

        assert version.prerelease == ("beta", 11)
        assert version.build == ("build", "5")
        assert version.is_prerelease
        assert str(version) == "1.0.0-beta.11+build.5"

    def test_parse_strips_surrounding_whitespace(self):
        """Test leading and trailing whitespace is ignored."""
        from templar.versioning.semver import parse_version

        assert str(parse_version("  2.0.0\n")) == "2.0.0"

    @pytest.mark.parametrize(
        "text",
        ["1.0", "1", "01.0.0", "1.0.0-", "1.0.0-01", "v1.0.0", "1.0.0.0", "a.b.c", "", "١.0.0"],
    )
    def test_invalid_versions_rejected(self, text):
        """Test strings outside the semver grammar raise InvalidVersionFormat."""
        from templar.versioning.errors import InvalidVersionFormat
        from templar.versioning.semver import parse_version

        with pytest.raises(InvalidVersionFormat, match="Invalid semantic version"):
            parse_version(text)

    def test_invalid_version_is_value_error(self):
        """Test InvalidVersionFormat can be caught as ValueError."""
        from templar.versioning.semver import parse_version

        with pytest.raises(ValueError):
            parse_version("not-a-version")

    def test_is_valid(self):
        """Test is_valid mirrors parse success."""
        from templar.versioning.semver import is_valid

        assert is_valid("0.0.0")
        assert is_valid("10.20.30-rc.1+sha.abc")
        assert not is_valid("1.2")


class TestPrecedence:
    """Test semver precedence ordering."""

    def test_core_numeric_ordering(self):
        """Test MAJOR.MINOR.PATCH compare numerically, not lexically."""
        from templar.versioning.semver import compare_versions

        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("2.0.0", "10.0.0") == -1
        assert compare_versions("1.0.0", "1.0.0") == 0

    def test_prerelease_precedence_chain(self):
        """Test the canonical prerelease ordering."""
        from templar.versioning.semver import precedence_key

        ordered = [
            "1.0.0-alpha",
            "1.0.0-alpha.1",
            "1.0.0-alpha.beta",
            "1.0.0-beta",
            "1.0.0-beta.2",
            "1.0.0-beta.11",
            "1.0.0-rc.1",
            "1.0.0",
        ]
        shuffled = [ordered[i] for i in (7, 3, 0, 5, 2, 6, 1, 4)]

        assert sorted(shuffled, key=precedence_key) == ordered

    def test_release_outranks_prerelease(self):
        """Test a version without prerelease has higher precedence."""
        from templar.versioning.semver import parse_version

        assert parse_version("1.0.0") > parse_version("1.0.0-rc.1")
        assert parse_version("1.0.0-rc.1") < parse_version("1.0.0")

    def test_numeric_identifier_below_alphanumeric(self):
        """Test numeric prerelease identifiers rank below alphanumeric ones."""
        from templar.versioning.semver import compare_versions

        assert compare_versions("1.0.0-1", "1.0.0-alpha") == -1

    def test_build_metadata_ignored_for_ordering(self):
        """Test versions differing only in build metadata have equal precedence."""
        from templar.versioning.semver import compare_versions, parse_version

        assert compare_versions("1.0.0+build.1", "1.0.0+build.2") == 0
        left, right = parse_version("1.0.0+a"), parse_version("1.0.0+b")
        assert not left < right
        assert not left > right
        assert left != right

    def test_comparison_with_other_types(self):
        """Test ordering against non-versions is unsupported."""
        from templar.versioning.semver import parse_version

        with pytest.raises(TypeError):
            parse_version("1.0.0") < "1.0.0"


class TestVersionDiff:
    """Test the level at which two versions first differ."""

    @pytest.mark.parametrize(
        "left,right,expected",
        [
            ("1.0.0", "2.0.0", "major"),
            ("1.2.0", "1.3.5", "minor"),
            ("1.2.3", "1.2.4", "patch"),
            ("1.0.0-alpha", "1.0.0", "prerelease"),
            ("1.0.0", "1.0.0", "prerelease"),
            ("1.9.9", "2.0.0-rc.1", "major"),
        ],
    )
    def test_version_diff(self, left, right, expected):
        """Test first-differing-level classification."""
        from templar.versioning.semver import version_diff

        assert version_diff(left, right) == expected
