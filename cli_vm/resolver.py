"""
Turn a user-supplied token into a concrete version.

A token can be "latest", an alias, a literal version, or absent, in which
case the project marker file decides (a literal version or a constraint).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .aliases import AliasStore
from .blocklist import BlockList
from .constraints import (
    find_matching_version,
    is_version_constraint,
    validate_version_against_constraint,
)
from .errors import BlockedVersionError, UserInputError
from .installer import Installer
from .versions import VersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving a token.

    Attributes:
        version: Concrete version name
        source: How it was found ('latest', 'alias', 'literal', 'project', 'constraint')
        token: Original token (empty when read from the project file)
        installed: Whether resolution installed the version on demand
    """
    version: str
    source: str
    token: str = ""
    installed: bool = False


class Resolver:
    """Resolves version tokens against aliases, the project file and the block list."""

    def __init__(
        self,
        versions: VersionStore,
        aliases: AliasStore,
        blocklist: BlockList,
        installer: Installer | None = None,
        project_dir: str | Path | None = None,
    ):
        self.versions = versions
        self.aliases = aliases
        self.blocklist = blocklist
        self.installer = installer
        self.project_dir = project_dir

    def read_project_file(self) -> str | None:
        """Content of the project marker file, or None if there is none."""
        path = self.versions.paths.project_file_path(self.project_dir)
        try:
            return path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

    def resolve_alias_or_literal(self, token: str) -> tuple[str, str]:
        """Alias lookup first, silently falling back to the literal token."""
        token = token.strip()
        aliased = self.aliases.resolve(token)
        if aliased:
            return aliased, "alias"
        return token, "literal"

    def resolve(self, token: str | None = None) -> Resolution:
        """
        Resolve a token to a version that may be activated.

        Args:
            token: Version, alias or "latest"; None reads the project file

        Returns:
            Resolution with the concrete version

        Raises:
            UserInputError: Missing project file, bad constraint, or project mismatch
            NotFoundError: No installed version matches a project constraint
            BlockedVersionError: The resolved version is blocked
            InstallError: The latest lookup or on-demand install failed
        """
        installed = False
        if token is not None and token.strip():
            token = token.strip()
            if token.lower() == "latest":
                version = self._require_installer().latest_version()
                source = "latest"
                logger.info(f"Latest version: {version}")
                if not self.versions.is_installed(version):
                    self._check_blocked(version)
                    logger.info(f"Latest version {version} not found locally. Downloading...")
                    self._require_installer().install(version)
                    installed = True
            else:
                version, source = self.resolve_alias_or_literal(token)
                if source == "alias":
                    logger.info(f"Using alias '{token}' resolved to version: {version}")
            self._check_project_constraint(version)
        else:
            token = ""
            content = self.read_project_file()
            if not content:
                raise UserInputError(
                    f"No version provided and no {self.versions.paths.project_file} file found",
                    remediation="Pass a version or alias, or create a project version file",
                )
            if is_version_constraint(content):
                version = find_matching_version(content, self.versions.list_installed())
                source = "constraint"
                logger.info(f"Project constraint {content} resolved to version: {version}")
            else:
                version = content
                source = "project"
                logger.info(f"Using version from {self.versions.paths.project_file}: {version}")

        self._check_blocked(version)
        return Resolution(version=version, source=source, token=token, installed=installed)

    def resolve_for_execution(self, token: str) -> str:
        """
        Resolve a token for compare/benchmark: alias or literal, must be installed.

        Raises:
            NotFoundError: If the resolved version is not installed
        """
        version, _ = self.resolve_alias_or_literal(token)
        self.versions.exists(version)
        return version

    def _check_blocked(self, version: str) -> None:
        if self.blocklist.is_blocked(version):
            raise BlockedVersionError(version)

    def _check_project_constraint(self, version: str) -> None:
        """An explicit version must satisfy a constraint in the project file."""
        content = self.read_project_file()
        if content and is_version_constraint(content):
            validate_version_against_constraint(version, content)

    def _require_installer(self) -> Installer:
        if self.installer is None:
            raise UserInputError("resolving 'latest' requires network access to the release server")
        return self.installer
