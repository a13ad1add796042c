import logging

from .models import BranchStatus, BranchStatusType, PRInfo, TrackedPR, TrackerState

logger = logging.getLogger(__name__)

CHERRY_PICK_LABEL_PREFIX = "cherry-pick/"
RELEASE_BRANCH_PREFIX = "release-"


def is_cherry_pick_label(name: str) -> bool:
    """Labels taking part in the merged-PR search start with 'cherry-pick'."""
    return name.startswith("cherry-pick")


def label_to_branch(label: str) -> str | None:
    """Map a 'cherry-pick/X.Y' label to its 'release-X.Y' target branch.

    Args:
        label: Label name.

    Returns:
        Target branch name, or None for any other label.
    """
    if not label.startswith(CHERRY_PICK_LABEL_PREFIX):
        return None
    version = label[len(CHERRY_PICK_LABEL_PREFIX) :]
    if not version:
        return None
    return RELEASE_BRANCH_PREFIX + version


def branches_from_labels(labels: list[str]) -> list[str]:
    """Derive target branches from a PR's labels, keeping label order.

    Args:
        labels: Label names on the pull request.

    Returns:
        De-duplicated list of target branch names.
    """
    branches: list[str] = []
    for label in labels:
        branch = label_to_branch(label)
        if branch and branch not in branches:
            branches.append(branch)
    return branches


def new_tracked_pr(pr: PRInfo) -> TrackedPR:
    """Start tracking a PR with every labelled branch pending."""
    return TrackedPR(
        number=pr.number,
        title=pr.title,
        branches={branch: BranchStatus() for branch in pr.cherry_pick_for},
    )


def sync_branches(tracked_pr: TrackedPR, label_branches: list[str]) -> bool:
    """Reconcile a tracked PR's branches with the branches its labels imply.

    Branches implied by labels but not tracked are added as pending. Tracked
    branches whose label is gone are removed only while pending or failed;
    anything with a cherry-pick PR stays for history.

    Args:
        tracked_pr: Tracked PR, updated in place.
        label_branches: Branches derived from the PR's current labels.

    Returns:
        True if the branch mapping changed.
    """
    updated = False
    wanted = set(label_branches)

    for branch in label_branches:
        if branch not in tracked_pr.branches:
            logger.info("Adding branch from label: PR #%d -> %s", tracked_pr.number, branch)
            tracked_pr.branches[branch] = BranchStatus(status=BranchStatusType.PENDING)
            updated = True

    for branch, status in list(tracked_pr.branches.items()):
        if branch in wanted or not status.is_removable:
            continue
        logger.info(
            "Removing branch, label removed: PR #%d -> %s (%s)",
            tracked_pr.number,
            branch,
            status.status.value,
        )
        del tracked_pr.branches[branch]
        updated = True

    return updated


def remove_empty_prs(state: TrackerState) -> int:
    """Drop tracked PRs that have no branches left.

    Returns:
        Number of PRs removed.
    """
    remaining = []
    removed = 0
    for tracked_pr in state.tracked_prs:
        if tracked_pr.branches:
            remaining.append(tracked_pr)
        else:
            logger.info("Removing PR with no branches: #%d", tracked_pr.number)
            removed += 1
    state.tracked_prs = remaining
    return removed
