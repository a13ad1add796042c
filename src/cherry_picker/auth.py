import logging
import os
import subprocess

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when no GitHub token is available."""

    pass


def get_github_token() -> str:
    """Get a GitHub token from the environment or the gh CLI.

    Returns:
        GitHub authentication token.

    Raises:
        AuthenticationError: If no token can be obtained.
    """
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if token:
        logger.debug("Using token from GITHUB_TOKEN")
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=True,
        )
        token = result.stdout.strip()
        if token:
            logger.debug("Using token from gh CLI")
            return token
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        logger.debug("gh auth token failed: %s", e)

    raise AuthenticationError(
        "No GitHub token found.\n\n"
        "The tracker needs read access to pull requests, issues, releases and\n"
        "commits; 'retry', 'merge' and 'add' also need write access.\n\n"
        "Either export a token:\n"
        "  export GITHUB_TOKEN=<token with 'repo' scope>\n\n"
        "or log in with the GitHub CLI (https://cli.github.com/):\n"
        "  gh auth login"
    )
