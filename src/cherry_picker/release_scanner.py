"""Mark merged cherry-picks as released once a tagged release contains them.

Each branch keeps a checkpoint of the newest release already examined, so
every release range is only compared once.
"""

import logging
from dataclasses import dataclass

from .cherry_pick_detector import is_cherry_pick_commit
from .github_client import GitHubClient, GitHubError
from .models import BranchStatusType, Release, TrackerState
from .versions import branch_version, parse_semver

logger = logging.getLogger(__name__)


def releases_for_branch(releases: list[Release], branch: str) -> list[Release]:
    """Select the published releases cut from a 'release-X.Y' branch.

    Args:
        releases: All releases of the repository.
        branch: Target branch name.

    Returns:
        Releases with a semver tag X.Y.*, newest first. Empty if the branch
        doesn't follow the release-X.Y convention.
    """
    version = branch_version(branch)
    if version is None:
        return []

    relevant = []
    for release in releases:
        if release.draft:
            continue
        semver = parse_semver(release.tag_name)
        if semver is not None and semver.major_minor == version:
            relevant.append((semver, release))

    relevant.sort(key=lambda pair: pair[0], reverse=True)
    return [release for _, release in relevant]


def unchecked_releases(releases: list[Release], last_checked: str | None) -> list[Release]:
    """Releases newer than the checkpoint.

    Args:
        releases: Relevant releases, newest first.
        last_checked: Tag of the newest release already examined.

    Returns:
        The unchecked releases, newest first.
    """
    if not last_checked:
        return list(releases)

    unchecked = []
    for release in releases:
        if release.tag_name == last_checked:
            return unchecked
        unchecked.append(release)

    # Checkpoint tag no longer listed: fall back to version order.
    checkpoint = parse_semver(last_checked)
    if checkpoint is None:
        return unchecked
    newer = []
    for release in releases:
        version = parse_semver(release.tag_name)
        if version is not None and version > checkpoint:
            newer.append(release)
    return newer


def _range_contains(
    client: GitHubClient,
    base: str | None,
    head: str,
    pr_number: int,
) -> bool:
    try:
        commits = client.get_commits_between(base, head)
    except GitHubError as e:
        logger.warning("Failed to get commits between %s and %s: %s", base or "start", head, e)
        return False

    for commit in commits:
        if is_cherry_pick_commit(commit.message, pr_number):
            logger.debug(
                "Found cherry-pick of #%d in %s (commit %s)", pr_number, head, commit.sha[:8]
            )
            return True
    return False


def tail_base(relevant: list[Release], unchecked: list[Release]) -> str | None:
    """Tag to compare the oldest unchecked release against.

    That is the newest relevant release older than every unchecked one, which
    is the checkpoint itself whenever its tag is still listed. None means the
    start of history.
    """
    if len(relevant) > len(unchecked):
        return relevant[len(unchecked)].tag_name
    return None


def find_in_releases(
    client: GitHubClient,
    releases: list[Release],
    base: str | None,
    pr_number: int,
) -> str | None:
    """Look for a cherry-pick of the PR in the given releases.

    Each release is compared against the next older one. The oldest release
    is compared against base, or against the start of history when base is
    None.

    Args:
        client: GitHub client.
        releases: Unchecked releases, newest first.
        base: Tag just before the oldest unchecked release, if any.
        pr_number: Original PR number.

    Returns:
        Tag of the release containing the cherry-pick, or None.
    """
    for current, previous in zip(releases, releases[1:]):
        if _range_contains(client, previous.tag_name, current.tag_name, pr_number):
            return current.tag_name

    if releases:
        oldest = releases[-1]
        if _range_contains(client, base, oldest.tag_name, pr_number):
            return oldest.tag_name

    return None


@dataclass
class BranchReleases:
    relevant: list[Release]
    unchecked: list[Release]
    last_checked: str | None
    base: str | None


def update_released_status(state: TrackerState, client: GitHubClient) -> bool:
    """Move merged cherry-picks to released when a release contains them.

    Args:
        state: Tracker state, updated in place.
        client: GitHub client.

    Returns:
        True if any branch status or checkpoint changed.
    """
    try:
        all_releases = client.list_releases()
    except GitHubError as e:
        logger.warning("Failed to fetch releases: %s", e)
        return False

    if not all_releases:
        logger.info("No releases found")
        return False

    logger.info("Fetched %d releases", len(all_releases))

    # Relevant and unchecked releases, computed once per branch
    per_branch: dict[str, BranchReleases] = {}
    for tracked_pr in state.tracked_prs:
        for branch, status in tracked_pr.branches.items():
            if status.status != BranchStatusType.MERGED or status.pr is None:
                continue
            if branch not in per_branch:
                relevant = releases_for_branch(all_releases, branch)
                last_checked = state.get_checkpoint(branch)
                unchecked = unchecked_releases(relevant, last_checked)
                per_branch[branch] = BranchReleases(
                    relevant=relevant,
                    unchecked=unchecked,
                    last_checked=last_checked,
                    base=tail_base(relevant, unchecked),
                )

    for branch, br in per_branch.items():
        if not br.relevant:
            logger.debug("No relevant releases for %s", branch)
        elif not br.unchecked:
            logger.debug("No new releases for %s since %s", branch, br.last_checked)
        else:
            logger.debug(
                "Checking %d new of %d releases for %s",
                len(br.unchecked),
                len(br.relevant),
                branch,
            )

    updated = False
    for tracked_pr in state.tracked_prs:
        for branch, status in tracked_pr.branches.items():
            if status.status != BranchStatusType.MERGED or status.pr is None:
                continue
            br = per_branch.get(branch)
            if br is None or not br.unchecked:
                continue

            tag = find_in_releases(client, br.unchecked, br.base, tracked_pr.number)
            if tag is not None and status.can_transition(BranchStatusType.RELEASED):
                logger.info(
                    "PR #%d released on %s in %s (cherry-pick PR #%d)",
                    tracked_pr.number,
                    branch,
                    tag,
                    status.pr.number,
                )
                status.status = BranchStatusType.RELEASED
                updated = True

    for branch, br in per_branch.items():
        if br.unchecked and state.advance_checkpoint(branch, br.unchecked[0].tag_name):
            logger.debug("Last checked release for %s: %s", branch, br.unchecked[0].tag_name)
            updated = True

    return updated
