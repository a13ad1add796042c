"""Tests for models module."""

import pytest

from cherry_picker.models import (
    BranchStatus,
    BranchStatusType,
    CIStatus,
    PickPR,
    PRInfo,
    PRState,
    TrackedPR,
    TrackerState,
)

ALL = list(BranchStatusType)


@pytest.mark.parametrize(
    "current,allowed",
    [
        (BranchStatusType.PENDING, {"failed", "picked", "merged"}),
        (BranchStatusType.FAILED, {"failed", "picked", "merged"}),
        (BranchStatusType.PICKED, {"picked", "merged"}),
        (BranchStatusType.MERGED, {"released"}),
        (BranchStatusType.RELEASED, set()),
    ],
)
def test_transition_table(current, allowed):
    """Test every (from, to) pair against the transition table."""
    status = BranchStatus(status=current)
    for target in ALL:
        assert status.can_transition(target) == (target.value in allowed)


def test_finalized_and_removable():
    """Test which statuses are finalized and which may be dropped."""
    assert BranchStatus(status=BranchStatusType.MERGED).is_finalized
    assert BranchStatus(status=BranchStatusType.RELEASED).is_finalized
    assert not BranchStatus(status=BranchStatusType.PICKED).is_finalized

    assert BranchStatus(status=BranchStatusType.PENDING).is_removable
    assert BranchStatus(status=BranchStatusType.FAILED).is_removable
    assert not BranchStatus(status=BranchStatusType.PICKED).is_removable
    assert not BranchStatus(status=BranchStatusType.MERGED).is_removable


def test_ci_status_parse():
    """Test that unknown CI strings map to unknown."""
    assert CIStatus.parse("passing") == CIStatus.PASSING
    assert CIStatus.parse("weird") == CIStatus.UNKNOWN
    assert CIStatus.parse(None) == CIStatus.UNKNOWN


def test_completely_released():
    """Test that a PR is completely released only when every branch is."""
    pr = TrackedPR(
        number=1,
        branches={
            "release-1.0": BranchStatus(status=BranchStatusType.RELEASED),
            "release-1.1": BranchStatus(status=BranchStatusType.MERGED),
        },
    )
    assert not pr.is_completely_released
    pr.branches["release-1.1"].status = BranchStatusType.RELEASED
    assert pr.is_completely_released
    assert not TrackedPR(number=2).is_completely_released


def test_find_pr(state):
    """Test looking up tracked PRs by number."""
    state.tracked_prs.append(TrackedPR(number=42, title="x"))
    assert state.find_pr(42).title == "x"
    assert state.find_pr(43) is None
    assert state.is_tracked(42)
    assert state.full_repo == "org/repo"


def test_checkpoint_only_moves_forward(state):
    """Test that the release checkpoint never goes backwards."""
    assert state.get_checkpoint("release-1.0") is None
    assert state.advance_checkpoint("release-1.0", "v1.0.2")
    assert not state.advance_checkpoint("release-1.0", "v1.0.2")
    assert not state.advance_checkpoint("release-1.0", "v1.0.1")
    assert not state.advance_checkpoint("release-1.0", "not-a-version")
    assert state.get_checkpoint("release-1.0") == "v1.0.2"

    assert state.advance_checkpoint("release-1.0", "v1.0.3")
    assert state.get_checkpoint("release-1.0") == "v1.0.3"

    state.delete_checkpoint("release-1.0")
    assert state.get_checkpoint("release-1.0") is None


def test_pr_info_merged():
    """Test PRInfo merged property."""
    assert PRInfo(number=1, title="a", state=PRState.MERGED).merged
    assert not PRInfo(number=1, title="a", state=PRState.OPEN).merged


def test_state_serializes_literal_strings(state):
    """Test that statuses dump as their literal strings."""
    state.tracked_prs.append(
        TrackedPR(
            number=7,
            title="t",
            branches={
                "release-1.0": BranchStatus(
                    status=BranchStatusType.PICKED,
                    pr=PickPR(number=8, title="cp", ci_status=CIStatus.FAILING),
                )
            },
        )
    )
    data = state.model_dump(mode="json")
    branch = data["tracked_prs"][0]["branches"]["release-1.0"]
    assert branch["status"] == "picked"
    assert branch["pr"]["ci_status"] == "failing"
