import pytest
from fakes import FakeGitHubClient

from cherry_picker.models import TrackerState


@pytest.fixture
def client():
    return FakeGitHubClient()


@pytest.fixture
def state():
    return TrackerState(org="org", repo="repo", source_branch="main")
