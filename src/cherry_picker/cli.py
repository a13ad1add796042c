import logging
import re
import subprocess

import click
from rich.console import Console
from rich.logging import RichHandler

from .actions import (
    ActionError,
    is_eligible_for_merge,
    is_eligible_for_retry,
    merge_targets,
    retry_targets,
    select_targets,
)
from .auth import AuthenticationError, get_github_token
from .branch_detector import CHERRY_PICK_LABEL_PREFIX, branches_from_labels
from .fetch import run_fetch
from .github_client import GitHubClient, GitHubError
from .models import BranchStatus, TrackedPR, TrackerState
from .output import print_status_table
from .store import DEFAULT_CONFIG_FILE, StateStore, StateStoreError
from .versions import branch_version

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error"]

SSH_REMOTE_PATTERN = re.compile(r"^git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$")
HTTPS_REMOTE_PATTERN = re.compile(r"^https://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$")


def setup_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Keep httpx request lines out of the way unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if level == "debug" else logging.WARNING)


def parse_remote_url(url: str) -> tuple[str, str] | None:
    """Extract (org, repo) from a GitHub SSH or HTTPS remote URL."""
    for pattern in (SSH_REMOTE_PATTERN, HTTPS_REMOTE_PATTERN):
        match = pattern.match(url.strip())
        if match:
            return match.group(1), match.group(2)
    return None


def _git(*args: str) -> str | None:
    try:
        result = subprocess.run(["git", *args], capture_output=True, text=True, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None
    return result.stdout.strip() or None


def detect_git_repo() -> tuple[str | None, str | None, str | None]:
    """Detect (org, repo, current branch) from the git checkout in the working directory."""
    org = repo = None
    remote = _git("remote", "get-url", "origin")
    if remote:
        parsed = parse_remote_url(remote)
        if parsed:
            org, repo = parsed
    branch = _git("rev-parse", "--abbrev-ref", "HEAD")
    if branch == "HEAD":
        branch = None
    return org, repo, branch


def _fail(console: Console, message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(1)


def _load_state(store: StateStore, console: Console) -> TrackerState:
    if not store.exists():
        _fail(console, f"Config file {store.path} not found. Run 'cherry-picker config' first.")
    try:
        state = store.load()
    except StateStoreError as e:
        _fail(console, str(e))
    if not state.org or not state.repo:
        _fail(console, f"Config file {store.path} has no org/repo. Run 'cherry-picker config'.")
    return state


def _save_state(store: StateStore, state: TrackerState, console: Console) -> None:
    try:
        store.save(state)
    except StateStoreError as e:
        _fail(console, str(e))


def _open_client(state: TrackerState) -> GitHubClient:
    return GitHubClient(get_github_token(), state.full_repo)


def _connect(state: TrackerState, console: Console) -> GitHubClient:
    try:
        return _open_client(state)
    except AuthenticationError as e:
        _fail(console, str(e))


def _do_fetch(store: StateStore, state: TrackerState, console: Console) -> None:
    client = _connect(state, console)
    try:
        result = run_fetch(state, client, store.save)
    except StateStoreError as e:
        _fail(console, str(e))
    finally:
        client.close()

    if result.added or result.removed:
        console.print(f"[green]{result.added} new, {result.removed} removed PR(s)[/green]")
    console.print(f"[bold]Tracking:[/bold] {len(state.tracked_prs)} PR(s) in {state.full_repo}")


def _report(console: Console, done: int, errors: list[str], verb: str) -> None:
    if done:
        console.print(f"[green]{verb} {done} cherry-pick PR(s)[/green]")
    for error in errors:
        console.print(f"[red]Error:[/red] {error}")
    if errors:
        raise SystemExit(1)


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    default=DEFAULT_CONFIG_FILE,
    envvar="CHERRY_PICKER_CONFIG",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path of the tracking state file.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="info",
    show_default=True,
    help="Logging verbosity.",
)
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx: click.Context, config_path: str, log_level: str) -> None:
    """Track cherry-picks of merged PRs onto release branches.

    PRs labelled cherry-pick/X.Y are tracked for branch release-X.Y from
    the moment they merge until a release containing the cherry-pick ships.

    Examples:

        cherry-picker config --org my-org --repo my-repo

        cherry-picker fetch

        cherry-picker status --show-released
    """
    setup_logging(log_level.lower())
    ctx.obj = StateStore(config_path)


@cli.command()
@click.option("-o", "--org", help="GitHub organization or user (auto-detected from git).")
@click.option("-r", "--repo", help="GitHub repository name (auto-detected from git).")
@click.option(
    "-s",
    "--source-branch",
    help="Branch PRs are merged into (auto-detected from git, default 'main').",
)
@click.pass_obj
def config(store: StateStore, org: str | None, repo: str | None, source_branch: str | None) -> None:
    """Create or update the tracking state file."""
    console = Console()
    try:
        existing = store.exists()
        state = store.load_or_default()
    except StateStoreError as e:
        _fail(console, str(e))

    org = org or state.org or None
    repo = repo or state.repo or None
    if not source_branch and existing:
        source_branch = state.source_branch

    if not org or not repo or not source_branch:
        git_org, git_repo, git_branch = detect_git_repo()
        if not org and git_org:
            org = git_org
            logger.info("Auto-detected organization: %s", org)
        if not repo and git_repo:
            repo = git_repo
            logger.info("Auto-detected repository: %s", repo)
        if not source_branch and git_branch:
            source_branch = git_branch
            logger.info("Auto-detected source branch: %s", source_branch)

    if not org:
        raise click.UsageError("organization is required (use --org or run inside a git checkout)")
    if not repo:
        raise click.UsageError("repository is required (use --repo or run inside a git checkout)")

    state.org = org
    state.repo = repo
    state.source_branch = source_branch or "main"
    _save_state(store, state, console)

    action = "Updated" if existing else "Initialized"
    console.print(f"[green]{action} {store.path}[/green]")
    console.print(f"[bold]Repo:[/bold] {state.full_repo}")
    console.print(f"[bold]Source branch:[/bold] {state.source_branch}")


@cli.command()
@click.pass_obj
def fetch(store: StateStore) -> None:
    """Reconcile the tracked PRs with GitHub.

    Discovers newly labelled PRs, follows their cherry-pick PRs and marks
    merged cherry-picks as released once a release contains them.
    """
    console = Console()
    state = _load_state(store, console)
    _do_fetch(store, state, console)


@cli.command()
@click.option("--show-released", is_flag=True, help="Include PRs released on every branch.")
@click.option("--show-ignored", is_flag=True, help="Include ignored PRs.")
@click.option("--fetch", "do_fetch", is_flag=True, help="Fetch from GitHub first.")
@click.pass_obj
def status(store: StateStore, show_released: bool, show_ignored: bool, do_fetch: bool) -> None:
    """Show the cherry-pick status of tracked PRs per branch."""
    console = Console()
    state = _load_state(store, console)
    if do_fetch:
        _do_fetch(store, state, console)
        console.print()
    print_status_table(
        state, show_released=show_released, show_ignored=show_ignored, console=console
    )


@cli.command()
@click.argument("pr_number", type=int)
@click.argument("branches", nargs=-1)
@click.pass_obj
def add(store: StateStore, pr_number: int, branches: tuple[str, ...]) -> None:
    """Start tracking PR_NUMBER for the given release branches.

    Without BRANCHES the PR's cherry-pick/X.Y labels decide. Given branches
    missing a label get one, so the next fetch keeps them.

    Examples:

        cherry-picker add 123

        cherry-picker add 123 release-1.4 release-1.5
    """
    console = Console()
    state = _load_state(store, console)
    if state.is_tracked(pr_number):
        _fail(console, f"PR #{pr_number} is already tracked")
    for branch in branches:
        version = branch_version(branch)
        if version is None or branch != "release-%d.%d" % version:
            raise click.BadParameter(
                f"'{branch}' is not a release-X.Y branch", param_hint="BRANCHES"
            )

    client = _connect(state, console)
    try:
        pr = client.get_pr(pr_number)
        label_branches = branches_from_labels(client.get_issue_labels(pr_number))
        wanted = list(dict.fromkeys(branches)) or label_branches
        if not wanted:
            _fail(console, f"PR #{pr_number} has no cherry-pick labels; name the branches to track")
        missing = [
            CHERRY_PICK_LABEL_PREFIX + "%d.%d" % branch_version(branch)
            for branch in wanted
            if branch not in label_branches
        ]
        if missing:
            client.add_labels(pr_number, missing)
            logger.info("Labelled PR #%d with %s", pr_number, ", ".join(missing))
    except GitHubError as e:
        _fail(console, f"Failed to add PR #{pr_number}: {e}")
    finally:
        client.close()

    state.tracked_prs.append(
        TrackedPR(
            number=pr_number,
            title=pr.title,
            branches={branch: BranchStatus() for branch in wanted},
        )
    )
    _save_state(store, state, console)
    console.print(f"[green]Tracking PR #{pr_number}[/green] {pr.title}")
    console.print(f"  Branches: {', '.join(wanted)} (pending)")


@cli.command()
@click.argument("pr_number", type=int)
@click.option("--undo", is_flag=True, help="Stop ignoring the PR.")
@click.pass_obj
def ignore(store: StateStore, pr_number: int, undo: bool) -> None:
    """Hide PR_NUMBER from status and exclude it from merge and retry."""
    console = Console()
    state = _load_state(store, console)
    tracked_pr = state.find_pr(pr_number)
    if tracked_pr is None:
        _fail(console, f"PR #{pr_number} is not tracked")

    tracked_pr.ignored = not undo
    _save_state(store, state, console)
    if undo:
        console.print(f"PR #{pr_number} is no longer ignored")
    else:
        console.print(f"PR #{pr_number} is now ignored")


@cli.command()
@click.argument("pr_number", type=int, required=False)
@click.argument("branch", required=False)
@click.pass_obj
def retry(store: StateStore, pr_number: int | None, branch: str | None) -> None:
    """Re-run failed CI of picked cherry-pick PRs.

    Without arguments every picked branch with failing CI is retried.

    Examples:

        cherry-picker retry

        cherry-picker retry 123 release-1.5
    """
    console = Console()
    state = _load_state(store, console)
    try:
        targets = select_targets(state, is_eligible_for_retry, "retry", pr_number, branch)
    except ActionError as e:
        _fail(console, str(e))
    if not targets:
        console.print("[yellow]No cherry-pick PRs with failing CI.[/yellow]")
        return

    client = _connect(state, console)
    try:
        retried, errors = retry_targets(client, targets)
    finally:
        client.close()
    _report(console, retried, errors, "Retried")


@cli.command()
@click.argument("pr_number", type=int, required=False)
@click.argument("branch", required=False)
@click.pass_obj
def merge(store: StateStore, pr_number: int | None, branch: str | None) -> None:
    """Squash-merge picked cherry-pick PRs whose CI passes.

    Without arguments every eligible branch is merged.

    Examples:

        cherry-picker merge

        cherry-picker merge 123 release-1.5
    """
    console = Console()
    state = _load_state(store, console)
    try:
        targets = select_targets(state, is_eligible_for_merge, "merge", pr_number, branch)
    except ActionError as e:
        _fail(console, str(e))
    if not targets:
        console.print("[yellow]No cherry-pick PRs ready to merge.[/yellow]")
        return

    client = _connect(state, console)
    try:
        merged, errors = merge_targets(state, client, targets, store.save)
    except StateStoreError as e:
        _fail(console, str(e))
    finally:
        client.close()
    _report(console, merged, errors, "Merged")
