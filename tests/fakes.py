"""In-memory stand-in for GitHubClient used across the tests."""

from cherry_picker.github_client import GitHubError
from cherry_picker.models import (
    CIStatus,
    Comment,
    Commit,
    Issue,
    PRInfo,
    PRState,
    Release,
)


def make_pr(
    number: int,
    title: str = "",
    state: PRState = PRState.OPEN,
    base_branch: str = "main",
    ci_status: CIStatus = CIStatus.UNKNOWN,
    cherry_pick_for: list[str] | None = None,
    run_attempt: int = 0,
) -> PRInfo:
    return PRInfo(
        number=number,
        title=title or f"PR {number}",
        url=f"https://github.com/org/repo/pull/{number}",
        state=state,
        base_branch=base_branch,
        head_sha=f"sha{number}",
        ci_status=ci_status,
        run_attempt=run_attempt,
        cherry_pick_for=cherry_pick_for or [],
    )


def make_commit(message: str, sha: str = "abcdef0123456789") -> Commit:
    return Commit(sha=sha, message=message)


class FakeGitHubClient:
    """Serves canned GitHub data and records write calls.

    Any method listed in ``errors`` raises that error instead.
    """

    def __init__(self):
        self.merged_prs: list[PRInfo] = []
        self.labels: dict[int, list[str]] = {}
        self.comments: dict[int, list[str]] = {}
        self.pull_requests: dict[int, PRInfo] = {}
        self.releases: list[Release] = []
        self.ranges: dict[tuple[str | None, str], list[Commit]] = {}
        self.issues: dict[str, list[Issue]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.merged: list[int] = []
        self.retried: list[int] = []
        self.closed = False

    def _call(self, name: str, *args):
        self.calls.append((name, *args))
        error = self.errors.get(name)
        if error is not None:
            raise error

    def calls_to(self, name: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == name]

    def close(self):
        self.closed = True

    def search_merged_prs(self, base_branch: str) -> list[PRInfo]:
        self._call("search_merged_prs", base_branch)
        return [pr.model_copy(deep=True) for pr in self.merged_prs]

    def get_issue_labels(self, number: int) -> list[str]:
        self._call("get_issue_labels", number)
        return list(self.labels.get(number, []))

    def add_labels(self, number: int, labels: list[str]) -> list[str]:
        self._call("add_labels", number, labels)
        self.labels.setdefault(number, []).extend(labels)
        return list(self.labels[number])

    def list_issue_comments(self, number: int) -> list[Comment]:
        self._call("list_issue_comments", number)
        return [
            Comment(id=i + 1, body=body, user="bot")
            for i, body in enumerate(self.comments.get(number, []))
        ]

    def search_pull_requests(self, query: str) -> list[PRInfo]:
        self._call("search_pull_requests", query)
        return [
            pr.model_copy(deep=True)
            for pr in self.pull_requests.values()
            if "cherry-pick" in pr.title.lower()
        ]

    def search_open_issues(self, text: str) -> list[Issue]:
        self._call("search_open_issues", text)
        return list(self.issues.get(text, []))

    def get_pr(self, number: int) -> PRInfo:
        self._call("get_pr", number)
        if number not in self.pull_requests:
            raise GitHubError(f"GET /pulls/{number} failed with status 404", status_code=404)
        return self.pull_requests[number].model_copy(deep=True)

    def get_pr_with_details(self, number: int) -> PRInfo:
        self._call("get_pr_with_details", number)
        if number not in self.pull_requests:
            raise GitHubError(f"GET /pulls/{number} failed with status 404", status_code=404)
        return self.pull_requests[number].model_copy(deep=True)

    def merge_pr(self, number: int, method: str = "squash") -> None:
        self._call("merge_pr", number, method)
        self.merged.append(number)
        if number in self.pull_requests:
            self.pull_requests[number].state = PRState.MERGED

    def retry_failed_workflows(self, number: int) -> int:
        self._call("retry_failed_workflows", number)
        self.retried.append(number)
        return 1

    def list_releases(self) -> list[Release]:
        self._call("list_releases")
        return list(self.releases)

    def get_commits_between(self, base: str | None, head: str) -> list[Commit]:
        self._call("get_commits_between", base, head)
        return list(self.ranges.get((base, head), []))
