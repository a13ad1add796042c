from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .versions import parse_semver


class PRState(str, Enum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


class CIStatus(str, Enum):
    PASSING = "passing"
    FAILING = "failing"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "CIStatus":
        """Convert a raw string to a CIStatus, defaulting to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class BranchStatusType(str, Enum):
    PENDING = "pending"  # no cherry-pick attempt seen yet
    FAILED = "failed"  # bot attempted and failed, usually conflicts
    PICKED = "picked"  # cherry-pick PR exists, not merged
    MERGED = "merged"
    RELEASED = "released"


ALLOWED_TRANSITIONS: dict[BranchStatusType, frozenset[BranchStatusType]] = {
    BranchStatusType.PENDING: frozenset(
        {BranchStatusType.FAILED, BranchStatusType.PICKED, BranchStatusType.MERGED}
    ),
    BranchStatusType.FAILED: frozenset(
        {BranchStatusType.FAILED, BranchStatusType.PICKED, BranchStatusType.MERGED}
    ),
    BranchStatusType.PICKED: frozenset({BranchStatusType.PICKED, BranchStatusType.MERGED}),
    BranchStatusType.MERGED: frozenset({BranchStatusType.RELEASED}),
    BranchStatusType.RELEASED: frozenset(),
}


class PickPR(BaseModel):
    number: int
    title: str = ""
    ci_status: CIStatus = CIStatus.UNKNOWN
    run_attempt: int = 0


class BranchStatus(BaseModel):
    status: BranchStatusType = BranchStatusType.PENDING
    pr: PickPR | None = None

    @property
    def is_finalized(self) -> bool:
        """Merged and released branches are never re-evaluated by the updater."""
        return self.status in (BranchStatusType.MERGED, BranchStatusType.RELEASED)

    @property
    def is_removable(self) -> bool:
        """Only branches without a cherry-pick PR may be dropped when a label goes away."""
        return self.status in (BranchStatusType.PENDING, BranchStatusType.FAILED)

    def can_transition(self, to: BranchStatusType) -> bool:
        return to in ALLOWED_TRANSITIONS[self.status]


class TrackedPR(BaseModel):
    number: int
    title: str = ""
    ignored: bool = False
    branches: dict[str, BranchStatus] = Field(default_factory=dict)

    @property
    def is_completely_released(self) -> bool:
        if not self.branches:
            return False
        return all(b.status == BranchStatusType.RELEASED for b in self.branches.values())


class TrackerState(BaseModel):
    """Repository settings plus everything the fetch cycle reconciles."""

    org: str = ""
    repo: str = ""
    source_branch: str = "main"
    last_fetch_date: datetime | None = None
    last_checked_release: dict[str, str] = Field(default_factory=dict)
    tracker_issues: dict[str, int] = Field(default_factory=dict)
    tracked_prs: list[TrackedPR] = Field(default_factory=list)

    @property
    def full_repo(self) -> str:
        return f"{self.org}/{self.repo}"

    def find_pr(self, number: int) -> TrackedPR | None:
        for tracked_pr in self.tracked_prs:
            if tracked_pr.number == number:
                return tracked_pr
        return None

    def is_tracked(self, number: int) -> bool:
        return self.find_pr(number) is not None

    def get_checkpoint(self, branch: str) -> str | None:
        return self.last_checked_release.get(branch)

    def advance_checkpoint(self, branch: str, tag: str) -> bool:
        """Record ``tag`` as the newest release examined for ``branch``.

        The checkpoint only ever moves forward: a tag whose version is not
        newer than the stored one is refused.

        Returns:
            True if the stored checkpoint changed.
        """
        current = self.last_checked_release.get(branch)
        if current == tag:
            return False
        if current is not None:
            current_version = parse_semver(current)
            new_version = parse_semver(tag)
            if current_version is not None and (
                new_version is None or new_version <= current_version
            ):
                return False
        self.last_checked_release[branch] = tag
        return True

    def delete_checkpoint(self, branch: str) -> None:
        self.last_checked_release.pop(branch, None)


# GitHub-side value types


class PRInfo(BaseModel):
    number: int
    title: str
    url: str = ""
    author: str = ""
    state: PRState = PRState.MERGED
    created_at: datetime | None = None
    merged_at: datetime | None = None
    base_branch: str = ""
    head_sha: str = ""
    merge_commit_sha: str = ""
    ci_status: CIStatus = CIStatus.UNKNOWN
    run_attempt: int = 0
    cherry_pick_for: list[str] = Field(default_factory=list)

    @property
    def merged(self) -> bool:
        return self.state == PRState.MERGED


class Comment(BaseModel):
    id: int
    body: str = ""
    user: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Commit(BaseModel):
    sha: str
    message: str = ""
    author: str = ""
    date: datetime | None = None


class Release(BaseModel):
    tag_name: str
    name: str = ""
    draft: bool = False
    prerelease: bool = False
    published_at: datetime | None = None


class Issue(BaseModel):
    number: int
    title: str
    body: str = ""
    url: str = ""
    state: str = "open"


class WorkflowRun(BaseModel):
    id: int
    name: str = ""
    status: str = ""
    conclusion: str | None = None
    run_attempt: int = 1


class CherryPickCandidate(BaseModel):
    branch: str
    number: int | None = None
    failed: bool = False
    source: str = ""
