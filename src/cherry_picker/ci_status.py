from .models import CIStatus

# Developer-Certificate-of-Origin checks say nothing about build health.
DCO_PATTERNS = (
    "dco",
    "DCO",
    "developer-certificate-of-origin",
    "signoff",
    "sign-off",
    "signed-off-by",
)

FAILED_CONCLUSIONS = ("failure", "cancelled", "timed_out")


def is_dco_check(name: str) -> bool:
    """Check whether a status context or check-run name is a DCO check.

    Args:
        name: Status context or check-run name.

    Returns:
        True if any DCO pattern is a case-insensitive substring of the name.
    """
    lower_name = name.lower()
    return any(pattern.lower() in lower_name for pattern in DCO_PATTERNS)


def evaluate_statuses(statuses: list[dict]) -> CIStatus:
    """Evaluate legacy commit statuses, ignoring DCO contexts.

    Args:
        statuses: 'statuses' entries of the combined-status API response.

    Returns:
        Pending over failing over passing; unknown when nothing relevant.
    """
    relevant = [s for s in statuses if not is_dco_check(s.get("context") or "")]
    if not relevant:
        return CIStatus.UNKNOWN

    states = {s.get("state") for s in relevant}
    if "pending" in states:
        return CIStatus.PENDING
    if "failure" in states or "error" in states:
        return CIStatus.FAILING
    if "success" in states:
        return CIStatus.PASSING
    return CIStatus.UNKNOWN


def evaluate_check_runs(check_runs: list[dict]) -> CIStatus:
    """Evaluate check runs (GitHub Actions and apps), ignoring DCO checks.

    Args:
        check_runs: 'check_runs' entries of the check-runs API response.

    Returns:
        Running over failed over completed; unknown when nothing relevant.
    """
    has_running = False
    has_failed = False
    has_completed = False

    for run in check_runs:
        if is_dco_check(run.get("name") or ""):
            continue
        status = run.get("status")
        if status in ("queued", "in_progress"):
            has_running = True
        elif status == "completed":
            has_completed = True
            if run.get("conclusion") in FAILED_CONCLUSIONS:
                has_failed = True

    if has_running:
        return CIStatus.PENDING
    if has_failed:
        return CIStatus.FAILING
    if has_completed:
        return CIStatus.PASSING
    return CIStatus.UNKNOWN


def aggregate_status(combined: CIStatus, check_runs: CIStatus) -> CIStatus:
    """Combine the legacy status and the check-run status of a commit.

    Pending wins over everything, failing wins over passing, and both
    passing gives passing. Any other pair falls back to the combined value.
    """
    if CIStatus.PENDING in (combined, check_runs):
        return CIStatus.PENDING
    if CIStatus.FAILING in (combined, check_runs):
        return CIStatus.FAILING
    if combined == CIStatus.PASSING and check_runs == CIStatus.PASSING:
        return CIStatus.PASSING
    return combined
