"""
Named aliases for versions.

One file per alias under <root>/aliases/<name>. New files hold a JSON
object {"version": ..., "description": ...}; older files hold the bare
version string, and both forms are read.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

from .common import atomic_write_text
from .config import Paths
from .errors import NotFoundError, UserInputError


RESERVED_ALIASES = frozenset({"latest"})


@dataclass(frozen=True)
class Alias:
    """
    A name bound to a version.

    Attributes:
        name: Alias name
        version: Target version
        description: Optional free-text note about the alias purpose
    """
    name: str
    version: str
    description: str = ""

    def to_dict(self) -> dict:
        data = {"version": self.version}
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_text(cls, name: str, text: str) -> Alias:
        """Parse alias file content, accepting JSON or a legacy bare version."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and "version" in data:
            return cls(
                name=name,
                version=str(data["version"]).strip(),
                description=str(data.get("description") or ""),
            )
        return cls(name=name, version=text.strip())


def is_reserved_alias(name: str) -> bool:
    return name.strip().lower() in RESERVED_ALIASES


class AliasStore:
    """Alias files under <root>/aliases."""

    def __init__(self, paths: Paths):
        self.paths = paths

    def _alias_path(self, name: str):
        if not name or os.sep in name or "/" in name or name in (".", ".."):
            raise UserInputError(f"invalid alias name: {name!r}")
        return self.paths.aliases_dir / name

    def set(self, name: str, version: str, description: str = "") -> Alias:
        """
        Create or overwrite an alias.

        Raises:
            UserInputError: If the name is reserved or invalid, or the version is empty
        """
        if is_reserved_alias(name):
            raise UserInputError(f"'{name}' is a reserved keyword and cannot be used as an alias")
        if not version.strip():
            raise UserInputError("alias version must not be empty")

        alias = Alias(name=name, version=version.strip(), description=description)
        atomic_write_text(self._alias_path(name), json.dumps(alias.to_dict()))
        return alias

    def get(self, name: str) -> Alias:
        """
        Read an alias.

        Raises:
            NotFoundError: If no alias of that name exists
        """
        path = self._alias_path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(f"alias '{name}' not found") from None
        return Alias.from_text(name, text)

    def resolve(self, name: str) -> str | None:
        """Return the aliased version, or None when the name is not an alias."""
        try:
            alias = self.get(name)
        except (NotFoundError, UserInputError, OSError):
            return None
        return alias.version or None

    def remove(self, name: str) -> None:
        path = self._alias_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError(f"alias '{name}' not found") from None

    def list(self) -> list[Alias]:
        """All aliases sorted by name; temp files are skipped."""
        aliases_dir = self.paths.aliases_dir
        if not aliases_dir.is_dir():
            return []
        aliases = []
        for entry in sorted(aliases_dir.iterdir()):
            if entry.is_file() and not entry.name.startswith("."):
                aliases.append(Alias.from_text(entry.name, entry.read_text(encoding="utf-8")))
        return aliases
