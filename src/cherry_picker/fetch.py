"""One reconciliation cycle against GitHub.

Stages run in order and the state is saved after each one that changed
something, so a failure in a later stage never loses earlier progress.
Every stage is idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from .branch_detector import branches_from_labels, new_tracked_pr, remove_empty_prs, sync_branches
from .cherry_pick_detector import CherryPickDetector
from .github_client import GitHubClient, GitHubError
from .models import TrackerState
from .release_scanner import update_released_status
from .status_updater import update_all_tracked_prs
from .tracker_issues import update_tracker_issues

logger = logging.getLogger(__name__)

SaveFn = Callable[[TrackerState], None]


@dataclass
class FetchResult:
    added: int = 0
    removed: int = 0
    synced: bool = False
    statuses_updated: bool = False
    releases_updated: bool = False
    tracker_issues_updated: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.added
            or self.removed
            or self.synced
            or self.statuses_updated
            or self.releases_updated
            or self.tracker_issues_updated
        )


def discover_and_sync(state: TrackerState, client: GitHubClient, result: FetchResult) -> bool:
    """Track newly labelled PRs and reconcile every tracked PR with its labels.

    Returns:
        True if the state changed.
    """
    logger.info("Fetching merged PRs with cherry-pick labels from %s", state.full_repo)
    try:
        prs = client.search_merged_prs(state.source_branch)
    except GitHubError as e:
        logger.warning("Failed to search merged PRs, skipping label sync: %s", e)
        return False

    logger.info("Fetched %d PRs from GitHub", len(prs))
    by_number = {pr.number: pr for pr in prs}

    for pr in prs:
        if not state.is_tracked(pr.number):
            logger.info("Found new PR #%d %s -> %s", pr.number, pr.title, ", ".join(pr.cherry_pick_for))
            state.tracked_prs.append(new_tracked_pr(pr))
            result.added += 1

    for tracked_pr in state.tracked_prs:
        pr = by_number.get(tracked_pr.number)
        if pr is not None:
            if pr.title and pr.title != tracked_pr.title:
                tracked_pr.title = pr.title
                result.synced = True
            label_branches = pr.cherry_pick_for
        else:
            # Not in the search results: its labels may have changed.
            try:
                label_branches = branches_from_labels(client.get_issue_labels(tracked_pr.number))
            except GitHubError as e:
                logger.warning("Failed to get labels of PR #%d: %s", tracked_pr.number, e)
                continue
        if sync_branches(tracked_pr, label_branches):
            result.synced = True

    result.removed = remove_empty_prs(state)
    if result.removed:
        logger.info("Removed %d PRs with no branches", result.removed)

    return bool(result.added or result.removed or result.synced)


def run_fetch(
    state: TrackerState,
    client: GitHubClient,
    save: SaveFn,
    detector: CherryPickDetector | None = None,
) -> FetchResult:
    """Run a full fetch cycle and persist after each stage.

    Args:
        state: Tracker state, updated in place.
        client: GitHub client bound to the tracked repository.
        save: Persists the state; its errors propagate.
        detector: Cherry-pick detector; one bound to the client by default.

    Returns:
        What changed during the cycle.
    """
    result = FetchResult()

    if discover_and_sync(state, client, result):
        save(state)

    if state.tracked_prs:
        logger.info("Updating %d tracked PRs", len(state.tracked_prs))
        result.statuses_updated = update_all_tracked_prs(state, client, detector)
        if result.statuses_updated:
            save(state)

        logger.info("Checking releases for merged cherry-picks")
        result.releases_updated = update_released_status(state, client)
        if result.releases_updated:
            save(state)

        result.tracker_issues_updated = update_tracker_issues(state, client)

    if result.changed:
        logger.info("Configuration updated, %d tracked PRs", len(state.tracked_prs))
    else:
        logger.info("No changes detected")

    state.last_fetch_date = datetime.now(timezone.utc)
    save(state)
    return result
