"""
On-disk catalogue of installed versions.

Each version lives in <root>/versions/<version>/ and holds exactly one
managed binary. A directory without the binary is a partial install and
is treated as absent.
"""

from __future__ import annotations

import datetime
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .common import is_windows, vlog
from .config import Paths
from .constraints import sort_version_names
from .errors import ClivmError, NotFoundError, UserInputError


@dataclass(frozen=True)
class VersionInfo:
    """
    Details about one installed version.

    Attributes:
        name: Version directory name
        binary_path: Path to the managed binary
        size_bytes: Binary size
        modified: Binary modification time (UTC)
        linked: Whether the binary is a link to a local file
    """
    name: str
    binary_path: str
    size_bytes: int
    modified: datetime.datetime
    linked: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "binary_path": self.binary_path,
            "size_bytes": self.size_bytes,
            "modified": self.modified.replace(microsecond=0).isoformat(),
            "linked": self.linked,
        }


class VersionStore:
    """Installed versions under the versions root."""

    def __init__(self, paths: Paths, verbose: bool = False):
        self.paths = paths
        self.verbose = verbose

    def binary_path(self, version: str) -> Path:
        return self.paths.binary_path(version)

    def list_installed(self) -> list[str]:
        """
        List installed versions sorted ascending.

        Returns:
            Version names whose directory contains the managed binary
        """
        versions_dir = self.paths.versions_dir
        if not versions_dir.is_dir():
            return []

        names = [
            entry.name
            for entry in versions_dir.iterdir()
            if entry.is_dir() and self.paths.binary_path(entry.name).exists()
        ]
        return sort_version_names(names)

    def is_installed(self, version: str) -> bool:
        return self.paths.version_dir(version).is_dir() and self.binary_path(version).exists()

    def exists(self, version: str) -> None:
        """
        Ensure a version is fully installed.

        Raises:
            NotFoundError: If the version directory or its binary is missing
        """
        if not self.paths.version_dir(version).is_dir():
            raise NotFoundError(
                f"version {version} not found: version directory does not exist",
                remediation=f"Run 'clivm install {version}'",
            )
        if not self.binary_path(version).exists():
            raise NotFoundError(
                f"version {version} not found: binary not found in version directory",
                remediation=f"Run 'clivm install {version}' to repair the installation",
            )

    def version_info(self, version: str) -> VersionInfo:
        self.exists(version)
        binary = self.binary_path(version)
        stat = binary.stat()
        return VersionInfo(
            name=version,
            binary_path=str(binary),
            size_bytes=stat.st_size,
            modified=datetime.datetime.fromtimestamp(stat.st_mtime, tz=datetime.timezone.utc),
            linked=binary.is_symlink(),
        )

    def remove(self, version: str) -> None:
        """
        Delete a version directory.

        Raises:
            NotFoundError: If the version directory does not exist
        """
        version_dir = self.paths.version_dir(version)
        if not version_dir.is_dir():
            raise NotFoundError(f"version {version} is not installed")
        vlog(f"Removing {version_dir}", self.verbose)
        try:
            shutil.rmtree(version_dir)
        except OSError as e:
            raise ClivmError(
                f"failed to remove version {version}: {e}",
                remediation=f"Check permissions on {version_dir}",
            ) from e

    def clear(self) -> int:
        """
        Remove every child of the versions root.

        Root metadata (config, aliases, history) is left untouched.

        Returns:
            Number of entries removed
        """
        versions_dir = self.paths.versions_dir
        if not versions_dir.is_dir():
            return 0

        removed = 0
        for entry in versions_dir.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                raise ClivmError(
                    f"failed to remove {entry} after removing {removed} entries: {e}",
                    remediation=f"Check permissions on {versions_dir}",
                ) from e
            removed += 1
        return removed

    def link(self, name: str, source: str | Path, force: bool = False) -> Path:
        """
        Register a local binary as a pseudo-version.

        Args:
            name: Pseudo-version name (e.g., "dev")
            source: Path to an existing executable
            force: Replace an existing version of the same name

        Returns:
            Path of the registered binary

        Raises:
            UserInputError: If the name is reserved, invalid or already taken
            NotFoundError: If the source binary does not exist
        """
        if not name or name.lower() == "latest" or os.sep in name or "/" in name or name in (".", ".."):
            raise UserInputError(f"'{name}' cannot be used as a version name")

        source_path = Path(source).expanduser().resolve()
        if not source_path.is_file():
            raise NotFoundError(f"binary not found: {source}")

        version_dir = self.paths.version_dir(name)
        replacing = version_dir.exists()
        if replacing and not force:
            raise UserInputError(
                f"version {name} already exists",
                remediation="Pass --force to replace it",
            )

        target = self.binary_path(name)
        try:
            if replacing:
                shutil.rmtree(version_dir)
            version_dir.mkdir(parents=True)
            if is_windows():
                shutil.copy2(source_path, target)
            else:
                target.symlink_to(source_path)
        except OSError as e:
            raise ClivmError(
                f"failed to link {source_path} as version {name}: {e}",
                remediation=f"Check that {self.paths.versions_dir} is writable",
            ) from e
        vlog(f"Linked {source_path} as version {name}", self.verbose)
        return target
