import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import TrackerState

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "cherry-picks.yaml"


class StateStoreError(Exception):
    """Raised when the tracking state can't be read or written."""

    pass


class StateStore:
    """Loads and saves the tracker state as a YAML file."""

    def __init__(self, path: str | Path = DEFAULT_CONFIG_FILE):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> TrackerState:
        """Read the state file.

        Returns:
            Parsed TrackerState.

        Raises:
            StateStoreError: If the file is missing, unreadable or invalid.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateStoreError(f"Failed to read config file {self.path}: {e}") from e

        try:
            data = yaml.safe_load(text) or {}
            return TrackerState.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            raise StateStoreError(f"Failed to parse config file {self.path}: {e}") from e

    def load_or_default(self) -> TrackerState:
        """Read the state file, or start from an empty state if it doesn't exist."""
        if not self.exists():
            return TrackerState()
        return self.load()

    def save(self, state: TrackerState) -> None:
        """Write the state file atomically, readable by the owner only.

        Raises:
            StateStoreError: If the file can't be written.
        """
        data = state.model_dump(mode="json", exclude_none=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateStoreError(f"Failed to write config file {self.path}: {e}") from e
        logger.debug("Saved %d tracked PRs to %s", len(state.tracked_prs), self.path)
