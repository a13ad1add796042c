from dataclasses import dataclass

from rich.console import Console
from rich.table import Table

from .models import BranchStatus, BranchStatusType, CIStatus, TrackedPR, TrackerState
from .versions import branch_version

CI_STYLES = {
    CIStatus.PASSING: "[green]✓[/green]",
    CIStatus.FAILING: "[red]✗[/red]",
    CIStatus.PENDING: "[yellow]…[/yellow]",
    CIStatus.UNKNOWN: "[dim]?[/dim]",
}


@dataclass
class StatusSummary:
    prs: int = 0
    pending: int = 0
    failed: int = 0
    picked: int = 0
    merged: int = 0
    released: int = 0

    @property
    def completed(self) -> int:
        return self.picked + self.merged + self.released

    def format(self) -> str:
        return (
            f"{self.prs} PR(s), {self.pending} pending, {self.failed} failed, "
            f"{self.completed} completed ({self.picked} picked, {self.merged} merged, "
            f"{self.released} released)"
        )


def visible_prs(
    state: TrackerState,
    show_released: bool = False,
    show_ignored: bool = False,
) -> list[TrackedPR]:
    """Tracked PRs to display, newest PR first.

    Fully released PRs and ignored PRs are hidden unless asked for.
    """
    prs = []
    for tracked_pr in state.tracked_prs:
        if tracked_pr.ignored and not show_ignored:
            continue
        if tracked_pr.is_completely_released and not show_released:
            continue
        prs.append(tracked_pr)
    return sorted(prs, key=lambda pr: -pr.number)


def summarize(prs: list[TrackedPR]) -> StatusSummary:
    summary = StatusSummary(prs=len(prs))
    for tracked_pr in prs:
        for status in tracked_pr.branches.values():
            if status.status == BranchStatusType.PENDING:
                summary.pending += 1
            elif status.status == BranchStatusType.FAILED:
                summary.failed += 1
            elif status.status == BranchStatusType.PICKED:
                summary.picked += 1
            elif status.status == BranchStatusType.MERGED:
                summary.merged += 1
            elif status.status == BranchStatusType.RELEASED:
                summary.released += 1
    return summary


def _branch_sort_key(branch: str) -> tuple:
    version = branch_version(branch)
    if version is None:
        return (1, branch)
    return (0, -version[0], -version[1])


def _pr_url(full_repo: str, number: int) -> str:
    return f"https://github.com/{full_repo}/pull/{number}"


def _format_branch_cell(status: BranchStatus | None, full_repo: str) -> str:
    """Format one PR x branch cell.

    Args:
        status: Branch status, or None if the PR doesn't target the branch.
        full_repo: Repository in format 'owner/repo'.

    Returns:
        Rich markup for the cell.
    """
    if status is None:
        return "[dim]-[/dim]"

    if status.status == BranchStatusType.PENDING:
        return "[yellow]pending[/yellow]"
    if status.status == BranchStatusType.FAILED:
        return "[red]failed[/red]"

    if status.pr is None:
        return status.status.value

    link = f"[link={_pr_url(full_repo, status.pr.number)}]#{status.pr.number}[/link]"
    if status.status == BranchStatusType.PICKED:
        cell = f"[cyan]{link}[/cyan] {CI_STYLES[status.pr.ci_status]}"
        if status.pr.run_attempt > 1:
            cell += f" [dim](attempt {status.pr.run_attempt})[/dim]"
        return cell
    if status.status == BranchStatusType.MERGED:
        return f"[green]{link} merged[/green]"
    return f"[bold green]{link} released[/bold green]"


def print_status_table(
    state: TrackerState,
    show_released: bool = False,
    show_ignored: bool = False,
    console: Console | None = None,
) -> StatusSummary:
    """Print tracked PRs and their per-branch cherry-pick status as a table.

    Args:
        state: Tracker state.
        show_released: Include PRs released on every branch.
        show_ignored: Include ignored PRs.
        console: Rich console instance. If None, a new one is created.

    Returns:
        Counts over the displayed PRs.
    """
    if console is None:
        console = Console()

    prs = visible_prs(state, show_released=show_released, show_ignored=show_ignored)
    if not prs:
        console.print("[yellow]No tracked PRs.[/yellow]")
        return StatusSummary()

    branches = sorted({b for pr in prs for b in pr.branches}, key=_branch_sort_key)

    table = Table(title=f"Cherry-Pick Status: {state.full_repo}", show_lines=True)
    table.add_column("PR #", style="cyan", no_wrap=True)
    table.add_column("Title", max_width=40)
    for branch in branches:
        table.add_column(branch, justify="center")

    for tracked_pr in prs:
        pr_cell = f"[link={_pr_url(state.full_repo, tracked_pr.number)}]#{tracked_pr.number}[/link]"
        if tracked_pr.ignored:
            pr_cell += " [dim](ignored)[/dim]"
        row = [pr_cell, _truncate(tracked_pr.title, 40)]
        for branch in branches:
            row.append(_format_branch_cell(tracked_pr.branches.get(branch), state.full_repo))
        table.add_row(*row)

    console.print(table)

    summary = summarize(prs)
    console.print()
    console.print(f"[bold]Summary:[/bold] {summary.format()}")
    if state.last_fetch_date:
        console.print(f"[dim]Last fetch: {state.last_fetch_date.strftime('%Y-%m-%d %H:%M:%S %Z')}[/dim]")
    return summary


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
