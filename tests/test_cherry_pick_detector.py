"""Tests for cherry_pick_detector module."""

from fakes import make_pr

from cherry_picker.cherry_pick_detector import (
    CherryPickDetector,
    is_cherry_pick_commit,
    is_manual_cherry_pick_title,
    merge_candidates,
    parse_bot_comment,
    referenced_pr_numbers,
)
from cherry_picker.github_client import GitHubError
from cherry_picker.models import CherryPickCandidate


def test_parse_bot_comment():
    """Test extraction of bot success and failure markers."""
    body = (
        "🍒 Cherry-pick PR created for 3.7: #14944\n"
        "❌ Cherry-pick failed for 3.6. Please resolve conflicts manually.\n"
    )
    assert parse_bot_comment(body) == [
        ("release-3.7", 14944, False),
        ("release-3.6", None, True),
    ]
    assert parse_bot_comment("LGTM") == []
    assert parse_bot_comment("") == []


def test_manual_title_matching():
    """Test manual cherry-pick titles, with and without '#'."""
    assert is_manual_cherry_pick_title("Cherry-pick #123 to 3.6", 123)
    assert is_manual_cherry_pick_title("[3.6] cherry-pick 123", 123)
    assert not is_manual_cherry_pick_title("cherry-pick #1234", 123)
    assert not is_manual_cherry_pick_title("Fix #123", 123)


def test_is_cherry_pick_commit_trailer():
    """Test the -x trailer combined with a PR reference."""
    message = "Fix crash (#500)\n\nFixes #123\n(cherry picked from commit abc123)"
    assert is_cherry_pick_commit(message, 123)
    assert is_cherry_pick_commit(message, 500)
    assert not is_cherry_pick_commit(message, 124)
    assert not is_cherry_pick_commit("Fix crash (#123)", 123)


def test_is_cherry_pick_commit_bot_title():
    """Test the bot's squash-merge title form."""
    message = "Fix crash (cherry-pick #15033 for 3.6) (#15040)"
    assert is_cherry_pick_commit(message, 15033)
    assert not is_cherry_pick_commit(message, 15034)


def test_referenced_pr_numbers_priority():
    """Test that PR references come back most specific first."""
    message = "Refactor #7 handling (#42)\n\nCloses #9\nFixes #8"
    assert referenced_pr_numbers(message) == [42, 8, 9, 7]
    assert referenced_pr_numbers("") == []


def test_merge_candidates_later_source_wins():
    """Test that a manual candidate beats a bot candidate on the same branch."""
    bot = CherryPickCandidate(branch="release-3.6", number=500, source="bot")
    bot_other = CherryPickCandidate(branch="release-3.7", number=501, source="bot")
    manual = CherryPickCandidate(branch="release-3.6", number=600, source="manual")

    merged = merge_candidates([("bot", [bot, bot_other]), ("manual", [manual])])
    assert merged["release-3.6"].number == 600
    assert merged["release-3.6"].source == "manual"
    assert merged["release-3.7"].number == 501


def test_find_candidates_from_comments(client):
    """Test detection from bot comments only."""
    client.comments[100] = ["Cherry-pick PR created for 3.6: #500"]
    candidates = CherryPickDetector(client).find_candidates(100, ["release-3.6"])
    assert candidates["release-3.6"].number == 500
    assert not candidates["release-3.6"].failed


def test_find_candidates_prefers_manual(client):
    """Test that a manually titled PR overrides the bot's report."""
    client.comments[100] = ["Cherry-pick failed for 3.6."]
    client.pull_requests[600] = make_pr(600, "cherry-pick #100 to 3.6", base_branch="release-3.6")
    client.pull_requests[601] = make_pr(601, "cherry-pick #100 to 3.5", base_branch="release-3.5")
    client.pull_requests[602] = make_pr(602, "cherry-pick #1000", base_branch="release-3.6")

    candidates = CherryPickDetector(client).find_candidates(100, ["release-3.6"])
    assert list(candidates) == ["release-3.6"]
    assert candidates["release-3.6"].number == 600
    assert candidates["release-3.6"].source == "manual"
    assert not candidates["release-3.6"].failed


def test_find_candidates_survives_provider_failure(client):
    """Test that a failing source contributes nothing."""
    client.errors["list_issue_comments"] = GitHubError("boom", status_code=500)
    client.pull_requests[600] = make_pr(600, "Cherry-pick #100", base_branch="release-3.6")

    candidates = CherryPickDetector(client).find_candidates(100, ["release-3.6"])
    assert candidates["release-3.6"].number == 600


def test_manual_search_skips_the_pr_itself(client):
    """Test that the original PR never counts as its own cherry-pick."""
    client.pull_requests[100] = make_pr(100, "cherry-pick #100 helper", base_branch="release-3.6")
    assert CherryPickDetector(client).from_manual_prs(100, ["release-3.6"]) == []
