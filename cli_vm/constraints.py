"""
Three-part versions and project version constraints.

A constraint such as ">=2.70.0" selects the highest installed version
that satisfies it.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Iterable

from .errors import NotFoundError, UserInputError


VERSION_RE = re.compile(r"^[vV]?(\d+)\.(\d+)\.(\d+)$", re.ASCII)
CONSTRAINT_RE = re.compile(r"^(>=|>|<=|<|=)?(\d+\.\d+\.\d+)$", re.ASCII)
CONSTRAINT_OPERATORS = (">=", ">", "<=", "<", "=")


@dataclass(frozen=True, order=True)
class Version:
    """A major.minor.patch version, ordered numerically."""
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_version(text: str) -> Version:
    """
    Parse a three-part numeric version.

    Args:
        text: Version string, optionally prefixed with "v" (e.g., "v2.74.0")

    Returns:
        Parsed Version

    Raises:
        UserInputError: If the string is not three dot-separated integers
    """
    match = VERSION_RE.match(text.strip())
    if not match:
        raise UserInputError(f"invalid version format: {text}")
    return Version(*(int(part) for part in match.groups()))


def compare_version_names(a: str, b: str) -> int:
    """
    Compare two version directory names.

    Numeric comparison when both parse, lexicographic otherwise.
    """
    try:
        va, vb = parse_version(a), parse_version(b)
    except UserInputError:
        return (a > b) - (a < b)
    return (va > vb) - (va < vb)


def sort_version_names(names: Iterable[str]) -> list[str]:
    """Sort version names ascending; non-numeric names never break the sort."""
    return sorted(names, key=functools.cmp_to_key(compare_version_names))


@dataclass(frozen=True)
class VersionConstraint:
    """
    An operator paired with a version.

    Attributes:
        operator: One of =, >, >=, <, <=
        version: Version the operator compares against
    """
    operator: str
    version: Version

    def matches(self, candidate: Version) -> bool:
        if self.operator == "=":
            return candidate == self.version
        if self.operator == ">":
            return candidate > self.version
        if self.operator == ">=":
            return candidate >= self.version
        if self.operator == "<":
            return candidate < self.version
        return candidate <= self.version

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


def parse_constraint(text: str) -> VersionConstraint:
    """
    Parse a constraint string; a missing operator means "=".

    Raises:
        UserInputError: If the string does not match the constraint grammar
    """
    match = CONSTRAINT_RE.match(text.strip())
    if not match:
        raise UserInputError(
            f"invalid version constraint format: {text}",
            remediation="Use an operator (=, >, >=, <, <=) followed by major.minor.patch, e.g. >=2.70.0",
        )
    operator = match.group(1) or "="
    return VersionConstraint(operator, parse_version(match.group(2)))


def is_version_constraint(text: str) -> bool:
    """True when the text starts with a constraint operator."""
    return text.strip().startswith(CONSTRAINT_OPERATORS)


def find_matching_version(constraint: str, available: Iterable[str]) -> str:
    """
    Select the highest available version satisfying a constraint.

    Args:
        constraint: Constraint string (e.g., ">=2.70.0")
        available: Installed version names; unparseable names are ignored

    Returns:
        The matching version name

    Raises:
        UserInputError: If the constraint is malformed
        NotFoundError: If no available version satisfies the constraint
    """
    parsed = parse_constraint(constraint)

    best_name: str | None = None
    best: Version | None = None
    for name in available:
        try:
            candidate = parse_version(name)
        except UserInputError:
            continue
        if parsed.matches(candidate) and (best is None or candidate > best):
            best, best_name = candidate, name

    if best_name is None:
        raise NotFoundError(
            f"please install the version {constraint} compatible with the project",
            remediation=f"Run 'clivm install <version>' with a version matching {constraint}",
        )
    return best_name


def validate_version_against_constraint(version: str, constraint: str) -> None:
    """
    Ensure a version satisfies a project constraint.

    Raises:
        UserInputError: If the constraint or version is invalid, or they don't match
    """
    try:
        parsed = parse_constraint(constraint)
    except UserInputError:
        raise UserInputError(f"invalid cli version '{constraint}' in project file") from None

    target = parse_version(version)
    if not parsed.matches(target):
        raise UserInputError(
            f"please use a version {constraint}",
            remediation="The project file pins a version range; pick a version inside it",
        )
