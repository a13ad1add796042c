"""Tests for release_scanner module."""

from fakes import make_commit

from cherry_picker.github_client import GitHubError
from cherry_picker.models import BranchStatus, BranchStatusType, PickPR, Release, TrackedPR
from cherry_picker.release_scanner import (
    find_in_releases,
    releases_for_branch,
    tail_base,
    unchecked_releases,
    update_released_status,
)

PICKED_COMMIT = "Fix crash (#500)\n\nFixes #100\n(cherry picked from commit abc123)"


def _releases(*tags: str, draft: tuple[str, ...] = ()) -> list[Release]:
    return [Release(tag_name=tag, draft=tag in draft) for tag in tags]


def _tags(releases: list[Release]) -> list[str]:
    return [release.tag_name for release in releases]


def _merged(state, branch="release-3.6", number=100, pick=500):
    tracked = TrackedPR(
        number=number,
        title="Fix crash",
        branches={branch: BranchStatus(status=BranchStatusType.MERGED, pr=PickPR(number=pick))},
    )
    state.tracked_prs.append(tracked)
    return tracked


def test_releases_for_branch():
    """Test selection and ordering of a branch's releases."""
    releases = _releases(
        "v3.7.0", "v3.6.1", "v3.6.10", "v3.6.2", "3.6.3-rc.1", "nightly", "v3.6.4", draft=("v3.6.4",)
    )
    assert _tags(releases_for_branch(releases, "release-3.6")) == [
        "v3.6.10",
        "3.6.3-rc.1",
        "v3.6.2",
        "v3.6.1",
    ]
    assert releases_for_branch(releases, "main") == []


def test_unchecked_releases():
    """Test slicing at the checkpoint."""
    releases = _releases("v3.6.3", "v3.6.2", "v3.6.1")
    assert _tags(unchecked_releases(releases, None)) == ["v3.6.3", "v3.6.2", "v3.6.1"]
    assert _tags(unchecked_releases(releases, "v3.6.2")) == ["v3.6.3"]
    assert unchecked_releases(releases, "v3.6.3") == []


def test_unchecked_releases_missing_checkpoint_tag():
    """Test version comparison when the checkpoint tag is gone."""
    releases = _releases("v3.6.4", "v3.6.2")
    assert _tags(unchecked_releases(releases, "v3.6.3")) == ["v3.6.4"]
    assert unchecked_releases(_releases("v3.6.2"), "v3.6.3") == []


def test_tail_base():
    """Test the base of the oldest unchecked range."""
    releases = _releases("v3.6.4", "v3.6.2", "v3.6.1")
    assert tail_base(releases, unchecked_releases(releases, "v3.6.2")) == "v3.6.2"
    assert tail_base(releases, unchecked_releases(releases, "v3.6.3")) == "v3.6.2"
    assert tail_base(releases, unchecked_releases(releases, None)) is None
    only_newer = _releases("v3.6.4")
    assert tail_base(only_newer, unchecked_releases(only_newer, "v3.6.3")) is None


def test_find_in_releases_pairs_then_tail(client):
    """Test consecutive ranges first, then the range up to the oldest release."""
    releases = _releases("v3.6.3", "v3.6.2")
    client.ranges[(None, "v3.6.2")] = [make_commit(PICKED_COMMIT)]

    assert find_in_releases(client, releases, None, 100) == "v3.6.2"
    assert client.calls_to("get_commits_between") == [("v3.6.2", "v3.6.3"), (None, "v3.6.2")]


def test_find_in_releases_skips_failing_range(client):
    """Test that a failing range comparison is skipped."""
    releases = _releases("v3.6.3", "v3.6.2")
    client.errors["get_commits_between"] = GitHubError("compare failed")
    assert find_in_releases(client, releases, "v3.6.1", 100) is None


def test_merged_to_released(state, client):
    """Test a merged cherry-pick found in a new release."""
    tracked = _merged(state)
    state.last_checked_release["release-3.6"] = "v3.6.1"
    client.releases = _releases("v3.6.2", "v3.6.1")
    client.ranges[("v3.6.1", "v3.6.2")] = [make_commit("Bump deps"), make_commit(PICKED_COMMIT)]

    assert update_released_status(state, client)
    assert tracked.branches["release-3.6"].status == BranchStatusType.RELEASED
    assert state.get_checkpoint("release-3.6") == "v3.6.2"


def test_released_when_checkpoint_tag_deleted(state, client):
    """Test that a deleted checkpoint tag doesn't hide the release range behind it."""
    tracked = _merged(state)
    state.last_checked_release["release-3.6"] = "v3.6.3"
    client.releases = _releases("v3.6.4", "v3.6.2")
    client.ranges[("v3.6.2", "v3.6.4")] = [make_commit(PICKED_COMMIT)]

    assert update_released_status(state, client)
    assert tracked.branches["release-3.6"].status == BranchStatusType.RELEASED
    assert client.calls_to("get_commits_between") == [("v3.6.2", "v3.6.4")]
    assert state.get_checkpoint("release-3.6") == "v3.6.4"


def test_checkpoint_advances_without_match(state, client):
    """Test forward progress of the checkpoint when nothing matches."""
    tracked = _merged(state)
    client.releases = _releases("v3.6.2", "v3.6.1")

    assert update_released_status(state, client)
    assert tracked.branches["release-3.6"].status == BranchStatusType.MERGED
    assert state.get_checkpoint("release-3.6") == "v3.6.2"

    client.calls.clear()
    assert not update_released_status(state, client)
    assert client.calls_to("get_commits_between") == []


def test_checkpoint_never_regresses(state, client):
    """Test a shorter release list doesn't move the checkpoint back."""
    _merged(state)
    state.last_checked_release["release-3.6"] = "v3.6.5"
    client.releases = _releases("v3.6.3", "v3.6.2")

    update_released_status(state, client)
    assert state.get_checkpoint("release-3.6") == "v3.6.5"


def test_release_list_failure_is_noop(state, client):
    """Test that a failing release listing changes nothing."""
    tracked = _merged(state)
    client.errors["list_releases"] = GitHubError("down")

    assert not update_released_status(state, client)
    assert tracked.branches["release-3.6"].status == BranchStatusType.MERGED
    assert state.last_checked_release == {}


def test_only_merged_branches_are_scanned(state, client):
    """Test that picked branches and non-release branches are left alone."""
    state.tracked_prs.append(
        TrackedPR(
            number=100,
            branches={
                "release-3.6": BranchStatus(status=BranchStatusType.PICKED, pr=PickPR(number=500)),
                "hotfix": BranchStatus(status=BranchStatusType.MERGED, pr=PickPR(number=501)),
            },
        )
    )
    client.releases = _releases("v3.6.2")

    assert not update_released_status(state, client)
    assert client.calls_to("get_commits_between") == []
    assert state.last_checked_release == {}
