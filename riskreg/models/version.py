"""Document version numbers.

Versions are an explicit (major, minor) pair. They are never stored as a
float, so repeated minor bumps cannot drift off exact tenths.
"""
from dataclasses import dataclass

from riskreg.models.enums import BumpKind


@dataclass(frozen=True, order=True)
class VersionNumber:
    """
    A major.minor document version.

    Ordering is lexicographic on (major, minor).
    """
    major: int = 0
    minor: int = 0

    def __post_init__(self):
        if self.major < 0 or self.minor < 0:
            raise ValueError(f"Version components must be non-negative: {self.major}.{self.minor}")

    def bump(self, kind: BumpKind) -> "VersionNumber":
        kind = BumpKind(kind)
        if kind == BumpKind.MAJOR:
            return VersionNumber(self.major + 1, 0)
        if kind == BumpKind.MINOR:
            return VersionNumber(self.major, self.minor + 1)
        return self

    def display(self) -> str:
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, text: str) -> "VersionNumber":
        """Parse "major.minor" (a bare "3" means 3.0)."""
        raw = (text or "").strip()
        major, _, minor = raw.partition(".")
        if not major.isdigit() or (minor and not minor.isdigit()):
            raise ValueError(f"Unsupported version format: {text!r}")
        return cls(int(major), int(minor or 0))

    def __str__(self) -> str:
        return self.display()
