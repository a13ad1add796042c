import logging
import time
from datetime import datetime
from typing import Any, Generator

import httpx

from .branch_detector import branches_from_labels, is_cherry_pick_label
from .ci_status import aggregate_status, evaluate_check_runs, evaluate_statuses
from .models import (
    CIStatus,
    Comment,
    Commit,
    Issue,
    PRInfo,
    PRState,
    Release,
    WorkflowRun,
)

logger = logging.getLogger(__name__)

PER_PAGE = 100


class GitHubError(Exception):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GitHubError):
    """Raised when GitHub API rate limit is exceeded."""

    pass


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_pr_state(pr_data: dict) -> PRState:
    """Parse PR state from a pull or search-issue payload.

    Args:
        pr_data: Raw PR data from GitHub API.

    Returns:
        PRState enum value.
    """
    merged_at = (pr_data.get("pull_request") or {}).get("merged_at") or pr_data.get("merged_at")
    if merged_at or pr_data.get("merged"):
        return PRState.MERGED

    state = (pr_data.get("state") or "").lower()
    if state == "closed":
        return PRState.CLOSED
    return PRState.OPEN


def _parse_pr_info(pr_data: dict) -> PRInfo:
    """Parse a pull request or search-issue payload into PRInfo.

    Args:
        pr_data: Raw PR data from GitHub API.

    Returns:
        PRInfo model instance.
    """
    merged_at = (pr_data.get("pull_request") or {}).get("merged_at") or pr_data.get("merged_at")
    labels = [label["name"] for label in pr_data.get("labels") or []]

    return PRInfo(
        number=pr_data["number"],
        title=pr_data.get("title") or "",
        url=pr_data.get("html_url") or "",
        author=(pr_data.get("user") or {}).get("login", ""),
        state=_parse_pr_state(pr_data),
        created_at=_parse_datetime(pr_data.get("created_at")),
        merged_at=_parse_datetime(merged_at),
        base_branch=(pr_data.get("base") or {}).get("ref", ""),
        head_sha=(pr_data.get("head") or {}).get("sha", ""),
        merge_commit_sha=pr_data.get("merge_commit_sha") or "",
        cherry_pick_for=branches_from_labels(labels),
    )


def _parse_commit(commit_data: dict) -> Commit:
    commit = commit_data.get("commit") or {}
    author = commit.get("author") or {}
    return Commit(
        sha=commit_data["sha"],
        message=commit.get("message") or "",
        author=author.get("name") or "",
        date=_parse_datetime(author.get("date")),
    )


def _parse_comment(comment_data: dict) -> Comment:
    return Comment(
        id=comment_data["id"],
        body=comment_data.get("body") or "",
        user=(comment_data.get("user") or {}).get("login", ""),
        created_at=_parse_datetime(comment_data.get("created_at")),
        updated_at=_parse_datetime(comment_data.get("updated_at")),
    )


def build_merged_prs_query(repo: str, base_branch: str, labels: list[str]) -> str:
    """Build the search query for merged PRs carrying any of the given labels.

    Args:
        repo: Repository in format 'owner/repo'.
        base_branch: Branch the PRs were merged into.
        labels: Label names, OR-combined.

    Returns:
        GitHub search query string.
    """
    parts = [f"repo:{repo}", "is:pr", "is:merged", f"base:{base_branch}"]
    if labels:
        parts.append("label:" + ",".join(labels))
    return " ".join(parts)


class GitHubClient:
    """GitHub API client for one repository, with pagination and rate limit handling."""

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str,
        repo: str,
        auto_wait: bool = True,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client = httpx.Client(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=30.0,
            transport=transport,
        )
        self.repo = repo
        self.auto_wait = auto_wait

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Labels, search and issues

    def list_labels(self) -> list[str]:
        """Get all label names in the repository."""
        return [label["name"] for label in self._paginate(f"/repos/{self.repo}/labels")]

    def get_issue_labels(self, number: int) -> list[str]:
        """Get the label names currently on an issue or PR."""
        return [
            label["name"]
            for label in self._paginate(f"/repos/{self.repo}/issues/{number}/labels")
        ]

    def add_labels(self, number: int, labels: list[str]) -> list[str]:
        """Add labels to an issue or PR.

        Returns:
            All label names on the issue after the change.
        """
        response = self._request(
            "POST", f"/repos/{self.repo}/issues/{number}/labels", json={"labels": labels}
        )
        return [label["name"] for label in response.json()]

    def search_merged_prs(self, base_branch: str) -> list[PRInfo]:
        """Get merged PRs on a branch that carry at least one cherry-pick label.

        Args:
            base_branch: Source branch the PRs were merged into.

        Returns:
            PRInfo objects with cherry_pick_for filled from their labels.
        """
        labels = [name for name in self.list_labels() if is_cherry_pick_label(name)]
        if not labels:
            logger.debug("No cherry-pick labels defined in %s", self.repo)
            return []

        query = build_merged_prs_query(self.repo, base_branch, labels)
        prs = []
        for item in self._search_issues(query, sort="updated", order="desc"):
            if "pull_request" not in item:
                continue
            pr = _parse_pr_info(item)
            if not pr.cherry_pick_for:
                logger.debug("Skipping PR #%d without cherry-pick/X.Y labels", pr.number)
                continue
            prs.append(pr)
        return prs

    def search_pull_requests(self, query: str) -> list[PRInfo]:
        """Search PRs in the repository; the 'repo:' and 'is:pr' qualifiers are added."""
        full_query = f"repo:{self.repo} is:pr {query}"
        return [
            _parse_pr_info(item)
            for item in self._search_issues(full_query)
            if "pull_request" in item
        ]

    def search_open_issues(self, text: str) -> list[Issue]:
        """Search open issues (not PRs) whose title or body contains the text."""
        query = f'repo:{self.repo} is:issue is:open "{text}" in:title,body'
        issues = []
        for item in self._search_issues(query, sort="updated", order="desc"):
            if "pull_request" in item:
                continue
            issues.append(
                Issue(
                    number=item["number"],
                    title=item.get("title") or "",
                    body=item.get("body") or "",
                    url=item.get("html_url") or "",
                    state=item.get("state") or "open",
                )
            )
        return issues

    def list_issue_comments(self, number: int) -> list[Comment]:
        """Get all comments on an issue or PR."""
        return [
            _parse_comment(c)
            for c in self._paginate(f"/repos/{self.repo}/issues/{number}/comments")
        ]

    # Pull requests and CI

    def get_pr(self, number: int) -> PRInfo:
        """Get basic information about a specific PR, without CI status.

        Args:
            number: The PR number.

        Returns:
            PRInfo with base branch, head sha and merge state.
        """
        response = self._request("GET", f"/repos/{self.repo}/pulls/{number}")
        return _parse_pr_info(response.json())

    def get_pr_with_details(self, number: int) -> PRInfo:
        """Get a PR together with its head commit's CI status and run attempt.

        CI lookups never fail the call; they degrade to unknown / 0.

        Args:
            number: The PR number.

        Returns:
            PRInfo with ci_status and run_attempt filled in.
        """
        pr = self.get_pr(number)
        if not pr.head_sha:
            return pr

        pr.ci_status = self.get_ci_status(pr.head_sha)
        try:
            pr.run_attempt = self.get_run_attempt(pr.head_sha)
        except GitHubError as e:
            logger.debug("Could not get run attempt for %s: %s", pr.head_sha, e)
        return pr

    def get_ci_status(self, sha: str) -> CIStatus:
        """Get the aggregated CI status of a commit, ignoring DCO checks.

        Args:
            sha: Commit sha.

        Returns:
            Aggregate of the combined status and the check runs.
        """
        try:
            combined = self._get_combined_status(sha)
        except GitHubError as e:
            logger.debug("Could not get combined status for %s: %s", sha, e)
            return CIStatus.UNKNOWN

        try:
            check_runs = self._get_check_runs_status(sha)
        except GitHubError as e:
            logger.debug("Could not list check runs for %s: %s", sha, e)
            check_runs = CIStatus.UNKNOWN

        return aggregate_status(combined, check_runs)

    def _get_combined_status(self, sha: str) -> CIStatus:
        logger.debug("GitHub API: combined status %s@%s", self.repo, sha)
        response = self._request(
            "GET", f"/repos/{self.repo}/commits/{sha}/status", params={"per_page": PER_PAGE}
        )
        return evaluate_statuses(response.json().get("statuses") or [])

    def _get_check_runs_status(self, sha: str) -> CIStatus:
        logger.debug("GitHub API: check runs %s@%s", self.repo, sha)
        check_runs = list(
            self._paginate(f"/repos/{self.repo}/commits/{sha}/check-runs", items_key="check_runs")
        )
        if not check_runs:
            return CIStatus.UNKNOWN
        return evaluate_check_runs(check_runs)

    def get_run_attempt(self, sha: str) -> int:
        """Highest workflow run attempt for a commit (1 = first run, 0 = no runs)."""
        return max((run.run_attempt for run in self.list_workflow_runs(sha)), default=0)

    def merge_pr(self, number: int, method: str = "squash") -> None:
        """Merge a PR, titling the commit 'title (#number)'.

        Raises:
            GitHubError: If the PR is not mergeable or the merge fails.
        """
        pr_data = self._request("GET", f"/repos/{self.repo}/pulls/{number}").json()
        if pr_data.get("mergeable") is False:
            raise GitHubError(f"PR #{number} is not mergeable (conflicts may exist)")

        logger.debug("GitHub API: merging PR #%d with %s", number, method)
        response = self._request(
            "PUT",
            f"/repos/{self.repo}/pulls/{number}/merge",
            json={
                "commit_title": f"{pr_data.get('title', '')} (#{number})",
                "merge_method": method,
            },
        )
        result = response.json()
        if not result.get("merged"):
            raise GitHubError(
                f"PR #{number} merge was not successful: {result.get('message', '')}"
            )

    # Workflows

    def list_workflow_runs(self, sha: str) -> list[WorkflowRun]:
        """Get the workflow runs triggered for a commit."""
        response = self._request(
            "GET",
            f"/repos/{self.repo}/actions/runs",
            params={"head_sha": sha, "per_page": PER_PAGE},
        )
        return [
            WorkflowRun(
                id=run["id"],
                name=run.get("name") or "",
                status=run.get("status") or "",
                conclusion=run.get("conclusion"),
                run_attempt=run.get("run_attempt") or 1,
            )
            for run in response.json().get("workflow_runs") or []
        ]

    def rerun_workflow(self, run_id: int) -> None:
        """Re-run the failed jobs of a run, falling back to a full re-run."""
        try:
            self._request("POST", f"/repos/{self.repo}/actions/runs/{run_id}/rerun-failed-jobs")
        except GitHubError as e:
            logger.debug("Re-running failed jobs of run %d failed (%s), re-running all", run_id, e)
            self._request("POST", f"/repos/{self.repo}/actions/runs/{run_id}/rerun")

    def retry_failed_workflows(self, number: int) -> int:
        """Re-run every failed, cancelled or timed-out workflow run of a PR's head commit.

        Args:
            number: The PR number.

        Returns:
            Number of runs re-triggered.

        Raises:
            GitHubError: If nothing could be retried.
        """
        pr = self.get_pr(number)
        runs = self.list_workflow_runs(pr.head_sha)
        if not runs:
            raise GitHubError(f"No workflow runs found for PR #{number}")

        retried = 0
        errors = []
        for run in runs:
            if run.conclusion not in ("failure", "cancelled", "timed_out"):
                continue
            try:
                self.rerun_workflow(run.id)
                retried += 1
            except GitHubError as e:
                errors.append(f"run {run.id}: {e}")

        if retried == 0:
            if errors:
                raise GitHubError(f"No workflow runs were retried: {'; '.join(errors)}")
            raise GitHubError(f"No failed workflow runs found for PR #{number}")
        if errors:
            logger.warning("Retried %d runs, %d failed: %s", retried, len(errors), "; ".join(errors))
        return retried

    # Tags, releases and commits

    def list_releases(self) -> list[Release]:
        """Get all releases, newest first as returned by GitHub."""
        return [
            Release(
                tag_name=r["tag_name"],
                name=r.get("name") or "",
                draft=r.get("draft", False),
                prerelease=r.get("prerelease", False),
                published_at=_parse_datetime(r.get("published_at")),
            )
            for r in self._paginate(f"/repos/{self.repo}/releases")
        ]

    def compare_commits(self, base: str, head: str) -> list[Commit]:
        """Get commits reachable from head but not from base (base..head)."""
        logger.debug("GitHub API: compare %s...%s", base, head)
        return [
            _parse_commit(c)
            for c in self._paginate(
                f"/repos/{self.repo}/compare/{base}...{head}", items_key="commits"
            )
        ]

    def list_commits(self, ref: str) -> list[Commit]:
        """Get every commit reachable from a ref."""
        return [
            _parse_commit(c)
            for c in self._paginate(f"/repos/{self.repo}/commits", params={"sha": ref})
        ]

    def get_commits_between(self, base: str | None, head: str) -> list[Commit]:
        """Commits in base..head; a missing base means the beginning of history."""
        if not base:
            return self.list_commits(head)
        return self.compare_commits(base, head)

    # Transport

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, waiting out rate limits.

        Raises:
            GitHubError: On transport errors and non-2xx responses.
        """
        while True:
            try:
                response = self.client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise GitHubError(f"{method} {url} failed: {e}") from e
            if self._handle_rate_limit(response):
                continue  # Retry after waiting
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise GitHubError(
                    f"{method} {url} failed with status {response.status_code}",
                    status_code=response.status_code,
                ) from e
            return response

    def _search_issues(
        self, query: str, sort: str | None = None, order: str | None = None
    ) -> Generator[dict, None, None]:
        """Search issues/PRs using GitHub Search API.

        Args:
            query: Search query string.
            sort: Optional sort field.
            order: Optional sort order.

        Yields:
            Issue/PR data dictionaries.
        """
        logger.debug("GitHub API: search issues %r", query)
        params: dict[str, Any] = {"q": query}
        if sort:
            params["sort"] = sort
        if order:
            params["order"] = order
        yield from self._paginate("/search/issues", params=params, items_key="items")

    def _paginate(
        self,
        endpoint: str,
        params: dict | None = None,
        items_key: str | None = None,
    ) -> Generator[dict, None, None]:
        """Handle paginated API requests.

        Args:
            endpoint: API endpoint path.
            params: Optional query parameters.
            items_key: Key holding the items when the response is an object.

        Yields:
            Response items.
        """
        params = dict(params or {})
        params["per_page"] = PER_PAGE
        page = 1

        while True:
            params["page"] = page
            data = self._request("GET", endpoint, params=params).json()
            items = data.get(items_key, []) if items_key else data

            if not items:
                break

            yield from items

            if len(items) < PER_PAGE:
                break

            page += 1

    def _handle_rate_limit(self, response: httpx.Response) -> bool:
        """Check and handle rate limit from response headers.

        Args:
            response: HTTP response object.

        Returns:
            True if request should be retried after waiting.

        Raises:
            RateLimitError: If rate limit is exceeded and auto_wait is disabled.
        """
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset_timestamp = response.headers.get("X-RateLimit-Reset")

        if remaining is not None and int(remaining) == 0 and response.status_code in (403, 429):
            if reset_timestamp:
                reset_time = int(reset_timestamp)
                wait_seconds = max(0, reset_time - int(time.time())) + 1

                if self.auto_wait and wait_seconds <= 120:  # Max wait 2 minutes
                    logger.warning("Rate limit reached. Waiting %d seconds...", wait_seconds)
                    time.sleep(wait_seconds)
                    return True  # Signal to retry
                reset_dt = datetime.fromtimestamp(reset_time)
                raise RateLimitError(
                    f"GitHub API rate limit exceeded. Resets at: {reset_dt.strftime('%H:%M:%S')}\n"
                    f"Try again in {wait_seconds} seconds, or wait and re-run the command.",
                    status_code=response.status_code,
                )
            raise RateLimitError("GitHub API rate limit exceeded.", status_code=response.status_code)

        # Proactively slow down if remaining is low
        if remaining is not None and 0 < int(remaining) < 5:
            time.sleep(2)

        return False
