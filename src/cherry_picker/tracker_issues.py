import logging

from .branch_detector import RELEASE_BRANCH_PREFIX
from .github_client import GitHubClient, GitHubError
from .models import TrackerState

logger = logging.getLogger(__name__)


def tracker_issue_title(branch: str) -> str | None:
    """'release-3.6' -> 'Release v3.6 patch'; None for other branch names."""
    if not branch.startswith(RELEASE_BRANCH_PREFIX):
        return None
    return f"Release v{branch[len(RELEASE_BRANCH_PREFIX):]} patch"


def update_tracker_issues(state: TrackerState, client: GitHubClient) -> bool:
    """Record the open tracker issue of every tracked branch that lacks one.

    The most recently updated matching issue wins. Known mappings are never
    looked up again.

    Returns:
        True if any mapping was added.
    """
    branches = sorted({branch for pr in state.tracked_prs for branch in pr.branches})
    updated = False

    for branch in branches:
        if branch in state.tracker_issues:
            continue
        search_text = tracker_issue_title(branch)
        if search_text is None:
            logger.debug("Branch %s has no tracker issue naming", branch)
            continue

        try:
            issues = client.search_open_issues(search_text)
        except GitHubError as e:
            logger.debug("Failed to search tracker issue for %s: %s", branch, e)
            continue

        if not issues:
            logger.debug("No tracker issue found for %s", branch)
            continue

        state.tracker_issues[branch] = issues[0].number
        logger.info("Found tracker issue for %s: #%d %s", branch, issues[0].number, issues[0].title)
        updated = True

    return updated
