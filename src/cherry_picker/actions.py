"""Operations run on demand against picked branches: merge and CI retry."""

import logging
from typing import Callable

from .github_client import GitHubClient, GitHubError
from .models import BranchStatus, BranchStatusType, CIStatus, TrackedPR, TrackerState

logger = logging.getLogger(__name__)

Target = tuple[TrackedPR, str, BranchStatus]
Eligibility = Callable[[BranchStatus], bool]


class ActionError(Exception):
    """Raised when the requested PR or branch can't be acted upon."""

    pass


def is_eligible_for_merge(status: BranchStatus) -> bool:
    return (
        status.status == BranchStatusType.PICKED
        and status.pr is not None
        and status.pr.ci_status == CIStatus.PASSING
    )


def is_eligible_for_retry(status: BranchStatus) -> bool:
    return (
        status.status == BranchStatusType.PICKED
        and status.pr is not None
        and status.pr.ci_status == CIStatus.FAILING
    )


def select_targets(
    state: TrackerState,
    eligible: Eligibility,
    operation: str,
    pr_number: int | None = None,
    branch: str | None = None,
) -> list[Target]:
    """Pick the branches an operation should run on.

    Without a PR number every eligible branch of every non-ignored PR is
    selected; nothing eligible is not an error then. Naming a PR (and
    optionally a branch) requires that selection to be eligible.

    Args:
        state: Tracker state.
        eligible: Predicate deciding whether a branch qualifies.
        operation: Operation name used in error messages.
        pr_number: Restrict to this tracked PR.
        branch: Restrict to this branch of the PR.

    Returns:
        (tracked PR, branch, status) triples.

    Raises:
        ActionError: If the named PR or branch is unknown or not eligible.
    """
    if pr_number is None:
        return [
            (tracked_pr, name, status)
            for tracked_pr in state.tracked_prs
            if not tracked_pr.ignored
            for name, status in tracked_pr.branches.items()
            if eligible(status)
        ]

    tracked_pr = state.find_pr(pr_number)
    if tracked_pr is None:
        raise ActionError(f"PR #{pr_number} is not tracked")
    if tracked_pr.ignored:
        raise ActionError(f"PR #{pr_number} is ignored")

    if branch is not None:
        status = tracked_pr.branches.get(branch)
        if status is None:
            raise ActionError(f"PR #{pr_number} is not tracked for {branch}")
        if not eligible(status):
            ci = status.pr.ci_status.value if status.pr else "none"
            raise ActionError(
                f"PR #{pr_number} on {branch} is not eligible for {operation} "
                f"(status {status.status.value}, CI {ci})"
            )
        return [(tracked_pr, branch, status)]

    targets = [
        (tracked_pr, name, status)
        for name, status in tracked_pr.branches.items()
        if eligible(status)
    ]
    if not targets:
        raise ActionError(f"PR #{pr_number} has no branches eligible for {operation}")
    return targets


def merge_targets(
    state: TrackerState,
    client: GitHubClient,
    targets: list[Target],
    save: Callable[[TrackerState], None],
) -> tuple[int, list[str]]:
    """Squash-merge each target's cherry-pick PR and mark the branch merged.

    The state is saved after every successful merge.

    Returns:
        Number of merged PRs and the error messages of the failed ones.
    """
    merged = 0
    errors = []
    for tracked_pr, branch, status in targets:
        logger.info(
            "Merging cherry-pick PR #%d of PR #%d on %s", status.pr.number, tracked_pr.number, branch
        )
        try:
            client.merge_pr(status.pr.number, method="squash")
        except GitHubError as e:
            errors.append(
                f"PR #{tracked_pr.number} on {branch} (cherry-pick PR #{status.pr.number}): {e}"
            )
            continue
        status.status = BranchStatusType.MERGED
        save(state)
        merged += 1
    return merged, errors


def retry_targets(client: GitHubClient, targets: list[Target]) -> tuple[int, list[str]]:
    """Re-run the failed workflows of each target's cherry-pick PR.

    Returns:
        Number of PRs whose workflows were re-triggered and the error messages
        of the failed ones.
    """
    retried = 0
    errors = []
    for tracked_pr, branch, status in targets:
        try:
            runs = client.retry_failed_workflows(status.pr.number)
        except GitHubError as e:
            errors.append(
                f"PR #{tracked_pr.number} on {branch} (cherry-pick PR #{status.pr.number}): {e}"
            )
            continue
        logger.info(
            "Re-ran %d workflow runs of cherry-pick PR #%d (%s)", runs, status.pr.number, branch
        )
        retried += 1
    return retried, errors
