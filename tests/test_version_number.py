"""Tests for major.minor version arithmetic."""
import pytest

from riskreg.models.enums import BumpKind
from riskreg.models.version import VersionNumber


class TestBump:

    def test_none_is_a_no_op(self):
        v = VersionNumber(2, 3)
        assert v.bump(BumpKind.NONE) == v
        assert v.bump(BumpKind.NONE).bump(BumpKind.NONE) == v

    def test_minor_increments_minor(self):
        assert VersionNumber(1, 0).bump(BumpKind.MINOR) == VersionNumber(1, 1)

    def test_major_resets_minor(self):
        """INVARIANT: bump(MAJOR) always resets minor to 0."""
        assert VersionNumber(3, 7).bump(BumpKind.MAJOR) == VersionNumber(4, 0)

    def test_repeated_minor_bumps_stay_exact(self):
        """Ten minor bumps land on x.10, never on a rounded float."""
        v = VersionNumber(0, 1)
        for _ in range(10):
            v = v.bump(BumpKind.MINOR)
        assert v == VersionNumber(0, 11)
        assert v.display() == "0.11"

    def test_bump_accepts_enum_value_string(self):
        assert VersionNumber(1, 1).bump("MAJOR") == VersionNumber(2, 0)


class TestOrderingAndDisplay:

    def test_ordering_is_lexicographic(self):
        assert VersionNumber(1, 10) > VersionNumber(1, 9)
        assert VersionNumber(2, 0) > VersionNumber(1, 99)
        assert sorted([VersionNumber(1, 2), VersionNumber(0, 9), VersionNumber(1, 0)]) == [
            VersionNumber(0, 9), VersionNumber(1, 0), VersionNumber(1, 2)
        ]

    def test_display(self):
        assert VersionNumber(1, 1).display() == "1.1"
        assert str(VersionNumber(4, 0)) == "4.0"

    def test_parse(self):
        assert VersionNumber.parse("0.1") == VersionNumber(0, 1)
        assert VersionNumber.parse("3") == VersionNumber(3, 0)

    @pytest.mark.parametrize("text", ["", "a.b", "1.x", "-1.0"])
    def test_parse_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            VersionNumber.parse(text)

    def test_negative_components_rejected(self):
        with pytest.raises(ValueError):
            VersionNumber(-1, 0)
