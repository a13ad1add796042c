import re
from dataclasses import dataclass

# semver.org 2.0.0 grammar, with an optional leading "v" as used by release tags
SEMVER_PATTERN = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

RELEASE_BRANCH_PATTERN = re.compile(r"^release-(\d+)\.(\d+)$")


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = ""

    @property
    def major_minor(self) -> tuple[int, int]:
        return (self.major, self.minor)

    def _key(self) -> tuple:
        # A release sorts above any of its pre-releases; build metadata is ignored.
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease.split(".")
        )
        return (self.major, self.minor, self.patch, 0, identifiers)

    def __lt__(self, other: "SemVer") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "SemVer") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "SemVer") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "SemVer") -> bool:
        return self._key() >= other._key()


def parse_semver(tag: str) -> SemVer | None:
    """Parse a release tag like 'v3.6.2' or '3.6.2-rc.1'.

    Args:
        tag: Tag name.

    Returns:
        SemVer, or None if the tag is not a valid semantic version.
    """
    match = SEMVER_PATTERN.match(tag)
    if not match:
        return None
    major, minor, patch, prerelease, build = match.groups()
    return SemVer(int(major), int(minor), int(patch), prerelease or "", build or "")


def branch_version(branch: str) -> tuple[int, int] | None:
    """Extract (major, minor) from a 'release-X.Y' branch name."""
    match = RELEASE_BRANCH_PATTERN.match(branch)
    if not match:
        return None
    return (int(match.group(1)), int(match.group(2)))
