"""
Version activation.

Activating a version makes it the target of the shim: the active-version
file is rewritten, the shim regenerated, and the shell profile updated so
the shim directory comes first on PATH. Profile and PATH problems are
reported as warnings because a child process cannot change the user's
running shell.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .common import atomic_write_text
from .config import Paths
from .errors import ClivmError, EnvironmentWarning
from .profile import ProfileUpdate, update_path, verify_path_priority
from .resolver import Resolver
from .shim import write_shim
from .versions import VersionStore

logger = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    """
    Outcome of an activation.

    Attributes:
        version: Activated version
        source: How the version was resolved
        shim_path: Regenerated shim
        installed: Whether the version was downloaded during activation
        profile: Profile update outcome, when it succeeded
        warnings: Non-fatal environment problems
    """
    version: str
    source: str
    shim_path: Path
    installed: bool = False
    profile: ProfileUpdate | None = None
    warnings: list[EnvironmentWarning] = field(default_factory=list)


class ActivationManager:
    """Owns the active-version pointer, the shim and the PATH block."""

    def __init__(
        self,
        paths: Paths,
        versions: VersionStore,
        resolver: Resolver,
        history_capture_bytes: int = 5000,
        env: dict[str, str] | None = None,
        home: str | Path | None = None,
        verbose: bool = False,
    ):
        self.paths = paths
        self.versions = versions
        self.resolver = resolver
        self.history_capture_bytes = history_capture_bytes
        self.env = env
        self.home = home
        self.verbose = verbose

    def active_version(self) -> str | None:
        """Active version, or None when inactive."""
        try:
            version = self.paths.config_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return version or None

    def _write_active(self, version: str) -> None:
        try:
            atomic_write_text(self.paths.config_file, version)
        except OSError as e:
            raise ClivmError(
                f"failed to write active version to {self.paths.config_file}: {e}",
                remediation=f"Check that {self.paths.root} is writable",
            ) from e

    def activate(self, token: str | None = None) -> ActivationResult:
        """
        Make a version the default target of the shim.

        Steps: resolve token (block check included), install on demand,
        write the active version, regenerate the shim, update the shell
        profile, verify PATH ordering.

        Raises:
            UserInputError, NotFoundError, BlockedVersionError, InstallError:
                when the version cannot be resolved or installed
        """
        resolution = self.resolver.resolve(token)
        version = resolution.version
        installed = resolution.installed

        if not self.versions.is_installed(version):
            if self.resolver.installer is None:
                self.versions.exists(version)
            logger.info(f"Version {version} not found locally. Installing...")
            self.resolver.installer.install(version)
            installed = True

        self.paths.ensure_directories()
        self._write_active(version)
        shim_path = write_shim(self.paths, capture_bytes=self.history_capture_bytes)
        result = ActivationResult(
            version=version,
            source=resolution.source,
            shim_path=shim_path,
            installed=installed,
        )

        try:
            result.profile = update_path(self.paths.shim_dir, env=self.env, home=self.home, verbose=self.verbose)
        except EnvironmentWarning as e:
            result.warnings.append(e)

        path_env = None if self.env is None else self.env.get("PATH", "")
        for issue in verify_path_priority(self.paths.shim_dir, self.paths.binary_name, path_env):
            result.warnings.append(EnvironmentWarning(
                issue,
                remediation="Restart your terminal or source your shell profile",
            ))

        for warning in result.warnings:
            logger.warning(warning.message)
        return result

    def switch_to(self, version: str) -> None:
        """
        Point the shim at a version without touching the shim or profile.

        Raises:
            NotFoundError: If the version is not installed
        """
        self.versions.exists(version)
        self._write_active(version)
