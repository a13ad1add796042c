"""Advance each tracked branch through pending -> picked -> merged.

The updater never touches merged or released branches; moving those on is
the release scanner's job.
"""

import logging

from .cherry_pick_detector import CherryPickDetector
from .github_client import GitHubClient, GitHubError
from .models import (
    BranchStatus,
    BranchStatusType,
    CherryPickCandidate,
    CIStatus,
    PickPR,
    PRInfo,
    TrackedPR,
    TrackerState,
)

logger = logging.getLogger(__name__)


def determine_branch_status(
    candidate: CherryPickCandidate,
    details: PRInfo | None,
    tracked_pr: TrackedPR,
) -> BranchStatus:
    """Work out the status a branch should have for a detected candidate.

    Args:
        candidate: Candidate cherry-pick for the branch.
        details: The candidate PR with CI status, or None if it couldn't be fetched.
        tracked_pr: Tracked PR owning the branch.

    Returns:
        New BranchStatus; picked with unknown CI when details are missing.
    """
    if candidate.failed or candidate.number is None:
        return BranchStatus(status=BranchStatusType.FAILED)

    if details is None:
        return BranchStatus(
            status=BranchStatusType.PICKED,
            pr=PickPR(
                number=candidate.number,
                title=f"{tracked_pr.title} (cherry-pick {candidate.branch})",
                ci_status=CIStatus.UNKNOWN,
            ),
        )

    return BranchStatus(
        status=BranchStatusType.MERGED if details.merged else BranchStatusType.PICKED,
        pr=PickPR(
            number=details.number,
            title=details.title,
            ci_status=details.ci_status,
            run_attempt=details.run_attempt,
        ),
    )


def _fetch_details(client: GitHubClient, candidate: CherryPickCandidate) -> PRInfo | None:
    if candidate.failed or candidate.number is None:
        return None
    try:
        return client.get_pr_with_details(candidate.number)
    except GitHubError as e:
        logger.warning("Failed to fetch PR #%d: %s", candidate.number, e)
        return None


def _refresh_in_place(current: PickPR, details: PRInfo) -> bool:
    """Copy the CI state of a freshly fetched PR onto a still-picked branch."""
    changed = False
    for field, value in (
        ("ci_status", details.ci_status),
        ("title", details.title),
        ("run_attempt", details.run_attempt),
    ):
        if getattr(current, field) != value:
            setattr(current, field, value)
            changed = True
    return changed


def _stored_candidate(branch: str, current: BranchStatus) -> CherryPickCandidate:
    return CherryPickCandidate(branch=branch, number=current.pr.number, source="stored")


def update_branch(
    tracked_pr: TrackedPR,
    branch: str,
    candidate: CherryPickCandidate | None,
    client: GitHubClient,
) -> bool:
    """Apply one cycle of the state machine to a single branch.

    Returns:
        True if the branch status changed.
    """
    current = tracked_pr.branches[branch]
    if current.is_finalized:
        logger.debug("Skipping finalized PR #%d on %s", tracked_pr.number, branch)
        return False

    following = current.status == BranchStatusType.PICKED and current.pr is not None
    if candidate is None:
        if not following:
            logger.info("No cherry-pick yet for PR #%d on %s", tracked_pr.number, branch)
            return False
        # Nothing reported this cycle, keep following the PR we already know.
        candidate = _stored_candidate(branch, current)

    details = _fetch_details(client, candidate)
    new = determine_branch_status(candidate, details, tracked_pr)

    if not current.can_transition(new.status) and following and candidate.source != "stored":
        # A late failure report can't undo a pick; keep following the known PR.
        logger.debug(
            "Ignoring %s report for PR #%d on %s, checking cherry-pick PR #%d",
            new.status.value,
            tracked_pr.number,
            branch,
            current.pr.number,
        )
        candidate = _stored_candidate(branch, current)
        details = _fetch_details(client, candidate)
        new = determine_branch_status(candidate, details, tracked_pr)

    if not current.can_transition(new.status):
        logger.debug(
            "Ignoring %s report for PR #%d on %s (currently %s)",
            new.status.value,
            tracked_pr.number,
            branch,
            current.status.value,
        )
        return False

    new_number = new.pr.number if new.pr else None
    current_number = current.pr.number if current.pr else None

    if new.status != current.status or (new_number is not None and new_number != current_number):
        tracked_pr.branches[branch] = new
        logger.info(
            "Updated PR #%d on %s: %s -> %s",
            tracked_pr.number,
            branch,
            current.status.value,
            new.status.value,
        )
        return True

    if current.status == BranchStatusType.PICKED and current.pr and details:
        if _refresh_in_place(current.pr, details):
            logger.info(
                "Cherry-pick PR #%d of PR #%d on %s: CI %s",
                current.pr.number,
                tracked_pr.number,
                branch,
                current.pr.ci_status.value,
            )
            return True

    return False


def update_tracked_pr(
    tracked_pr: TrackedPR,
    client: GitHubClient,
    detector: CherryPickDetector,
) -> bool:
    """Run the detector once for a tracked PR and update all of its open branches.

    Returns:
        True if any branch changed.
    """
    open_branches = [b for b, s in tracked_pr.branches.items() if not s.is_finalized]
    if not open_branches:
        return False

    logger.info("Checking tracked PR #%d", tracked_pr.number)
    candidates = detector.find_candidates(tracked_pr.number, list(tracked_pr.branches))

    updated = False
    for branch in open_branches:
        try:
            if update_branch(tracked_pr, branch, candidates.get(branch), client):
                updated = True
        except GitHubError as e:
            logger.warning("Failed to update PR #%d on %s: %s", tracked_pr.number, branch, e)
    return updated


def update_all_tracked_prs(
    state: TrackerState,
    client: GitHubClient,
    detector: CherryPickDetector | None = None,
) -> bool:
    """Update the cherry-pick status of every tracked PR.

    Args:
        state: Tracker state, updated in place.
        client: GitHub client.
        detector: Detector to use; one bound to the client by default.

    Returns:
        True if anything changed.
    """
    detector = detector or CherryPickDetector(client)
    updated = False
    for tracked_pr in state.tracked_prs:
        if update_tracked_pr(tracked_pr, client, detector):
            updated = True
    return updated
