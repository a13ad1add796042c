import logging
import re
from typing import Callable, Iterable

from .branch_detector import RELEASE_BRANCH_PREFIX
from .github_client import GitHubClient, GitHubError
from .models import CherryPickCandidate

logger = logging.getLogger(__name__)

# Bot comment on the original PR, e.g. "🍒 Cherry-pick PR created for 3.7: #14944"
BOT_SUCCESS_PATTERN = re.compile(r"Cherry-pick PR created for ([0-9.]+): #(\d+)")
# e.g. "❌ Cherry-pick failed for 3.7."
BOT_FAILURE_PATTERN = re.compile(r"Cherry-pick failed for ([0-9.]+)\.")

# Trailer added by 'git cherry-pick -x': "(cherry picked from commit abc123)"
CHERRY_PICKED_FROM_PATTERN = re.compile(r"\(cherry picked from commit ([a-f0-9]+)\)")
# Title of bot cherry-pick PRs once squash-merged: "(cherry-pick #15033 for 3.6)"
BOT_COMMIT_PATTERN = re.compile(r"\(cherry-pick #(\d+) for [\d.]+\)")
PR_REFERENCE_PATTERN = re.compile(r"#(\d+)")

# PR references in a commit message, most specific first
TITLE_SUFFIX_PATTERN = re.compile(r"\(#(\d+)\)$")
PR_NUMBER_PATTERNS = (
    re.compile(r"[Ff]ixes #(\d+)"),
    re.compile(r"[Cc]loses #(\d+)"),
    PR_REFERENCE_PATTERN,
)

CandidateProvider = Callable[[], list[CherryPickCandidate]]


def parse_bot_comment(body: str) -> list[tuple[str, int | None, bool]]:
    """Extract cherry-pick outcomes from a bot comment.

    Args:
        body: Comment body.

    Returns:
        (branch, cherry-pick PR number or None, failed) per marker, successes first.
    """
    if not body:
        return []

    results: list[tuple[str, int | None, bool]] = []
    for version, number in BOT_SUCCESS_PATTERN.findall(body):
        results.append((RELEASE_BRANCH_PREFIX + version, int(number), False))
    for version in BOT_FAILURE_PATTERN.findall(body):
        results.append((RELEASE_BRANCH_PREFIX + version, None, True))
    return results


def is_manual_cherry_pick_title(title: str, pr_number: int) -> bool:
    """Check if a PR title reads like 'cherry-pick #123' for the given PR."""
    pattern = re.compile(rf"cherry-pick\s+#?{pr_number}(?!\d)", re.IGNORECASE)
    return bool(pattern.search(title or ""))


def referenced_pr_numbers(message: str) -> list[int]:
    """PR numbers referenced by a commit message, in priority order.

    A '(#N)' suffix on the subject line comes first, then 'Fixes #N' and
    'Closes #N', then any bare '#N'. Each number appears once, at its
    highest-priority position.
    """
    if not message:
        return []

    numbers: list[int] = []
    subject = message.splitlines()[0].rstrip()
    match = TITLE_SUFFIX_PATTERN.search(subject)
    if match:
        numbers.append(int(match.group(1)))
    for pattern in PR_NUMBER_PATTERNS:
        for value in pattern.findall(message):
            if int(value) not in numbers:
                numbers.append(int(value))
    return numbers


def is_cherry_pick_commit(message: str, pr_number: int) -> bool:
    """Check if a commit message encodes a cherry-pick of the given PR.

    Matching is textual only: either the bot title form
    '(cherry-pick #N for X.Y)', or a '(cherry picked from commit <sha>)'
    trailer together with a '#N' reference anywhere in the message.

    Args:
        message: Full commit message.
        pr_number: Original PR number.

    Returns:
        True if the commit is a cherry-pick of that PR.
    """
    if not message:
        return False

    for number in BOT_COMMIT_PATTERN.findall(message):
        if int(number) == pr_number:
            return True

    if CHERRY_PICKED_FROM_PATTERN.search(message):
        return pr_number in referenced_pr_numbers(message)

    return False


def merge_candidates(
    groups: Iterable[tuple[str, list[CherryPickCandidate]]],
) -> dict[str, CherryPickCandidate]:
    """Merge candidate lists into one candidate per branch.

    Groups are applied in order and later entries replace earlier ones for
    the same branch, so providers listed later take precedence.

    Args:
        groups: (source name, candidates) pairs in precedence order, lowest first.

    Returns:
        Mapping of branch name to the winning candidate.
    """
    by_branch: dict[str, CherryPickCandidate] = {}
    for source, candidates in groups:
        for candidate in candidates:
            previous = by_branch.get(candidate.branch)
            if previous is not None and previous.source != source:
                logger.debug(
                    "%s candidate %s overrides %s candidate %s on %s",
                    source,
                    candidate.number,
                    previous.source,
                    previous.number,
                    candidate.branch,
                )
            by_branch[candidate.branch] = candidate
    return by_branch


class CherryPickDetector:
    """Finds cherry-pick PRs of a tracked PR from bot comments and PR titles."""

    def __init__(self, client: GitHubClient):
        self.client = client

    def from_comments(self, pr_number: int) -> list[CherryPickCandidate]:
        """Candidates reported by the cherry-pick bot in the PR's comments.

        Args:
            pr_number: Original PR number.

        Returns:
            Candidates in comment order.
        """
        logger.debug("Listing comments of PR #%d", pr_number)
        candidates = []
        for comment in self.client.list_issue_comments(pr_number):
            for branch, number, failed in parse_bot_comment(comment.body):
                candidates.append(
                    CherryPickCandidate(branch=branch, number=number, failed=failed, source="bot")
                )
        return candidates

    def from_manual_prs(self, pr_number: int, branches: list[str]) -> list[CherryPickCandidate]:
        """Candidates from PRs titled 'cherry-pick #N' that target a tracked branch.

        Args:
            pr_number: Original PR number.
            branches: Branches currently tracked for the PR.

        Returns:
            Candidates in search order.
        """
        candidates = []
        for pr in self.client.search_pull_requests(f"cherry-pick {pr_number} in:title"):
            if pr.number == pr_number:
                continue
            if not is_manual_cherry_pick_title(pr.title, pr_number):
                continue

            try:
                base_branch = self.client.get_pr(pr.number).base_branch
            except GitHubError as e:
                logger.debug("Skipping manual cherry-pick PR #%d: %s", pr.number, e)
                continue

            if base_branch in branches:
                candidates.append(
                    CherryPickCandidate(branch=base_branch, number=pr.number, source="manual")
                )
        return candidates

    def providers(self, pr_number: int, branches: list[str]) -> list[tuple[str, CandidateProvider]]:
        """Candidate sources in precedence order, lowest first.

        Manual PRs come last so a human-made cherry-pick wins over the bot's.
        """
        return [
            ("bot", lambda: self.from_comments(pr_number)),
            ("manual", lambda: self.from_manual_prs(pr_number, branches)),
        ]

    def find_candidates(self, pr_number: int, branches: list[str]) -> dict[str, CherryPickCandidate]:
        """Detect the cherry-pick candidate for each branch of a tracked PR.

        A source that fails contributes nothing this cycle.

        Args:
            pr_number: Original PR number.
            branches: Branches currently tracked for the PR.

        Returns:
            Mapping of branch name to candidate.
        """
        groups = []
        for source, provider in self.providers(pr_number, branches):
            try:
                groups.append((source, provider()))
            except GitHubError as e:
                logger.warning("Failed to get %s cherry-picks for PR #%d: %s", source, pr_number, e)
        return merge_candidates(groups)
