"""
Versions that may not be activated.

Persisted as a sorted JSON array in <root>/blocked.json. Membership is
independent of installation state.
"""

from __future__ import annotations

import json

from .common import atomic_write_text
from .config import Paths
from .constraints import parse_version, sort_version_names
from .errors import ClivmError, NotFoundError


class BlockList:
    """Persistent set of blocked versions."""

    def __init__(self, paths: Paths):
        self.paths = paths

    def load(self) -> set[str]:
        path = self.paths.blocked_file
        if not path.exists():
            return set()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ClivmError(
                f"blocked versions file is corrupt: {path}",
                remediation="Fix or delete the file",
            ) from e
        if not isinstance(data, list):
            raise ClivmError(f"blocked versions file must hold a list: {path}")
        return {str(item) for item in data}

    def _save(self, versions: set[str]) -> None:
        atomic_write_text(self.paths.blocked_file, json.dumps(sorted(versions), indent=2) + "\n")

    def is_blocked(self, version: str) -> bool:
        return version.strip() in self.load()

    def block(self, version: str) -> bool:
        """
        Block a version.

        Returns:
            False when the version was already blocked

        Raises:
            UserInputError: If the version is not major.minor.patch
        """
        version = version.strip()
        parse_version(version)
        blocked = self.load()
        if version in blocked:
            return False
        blocked.add(version)
        self._save(blocked)
        return True

    def unblock(self, version: str) -> None:
        """
        Remove a version from the block list.

        Raises:
            NotFoundError: If the version is not blocked
        """
        version = version.strip()
        blocked = self.load()
        if version not in blocked:
            raise NotFoundError(f"version {version} is not blocked")
        blocked.discard(version)
        self._save(blocked)

    def list(self) -> list[str]:
        return sort_version_names(self.load())
