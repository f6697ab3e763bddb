"""
Error taxonomy for version management operations.

Every error carries a human-readable message, whether retrying could help,
and an optional remediation hint shown to the user.
"""

from __future__ import annotations


class ClivmError(Exception):
    """
    Base exception for clivm errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether this error can be retried
        remediation: Suggested fix for the error
    """
    def __init__(
        self,
        message: str,
        retryable: bool = False,
        remediation: str | None = None,
    ):
        self.message = message
        self.retryable = retryable
        self.remediation = remediation
        super().__init__(message)


class UserInputError(ClivmError):
    """Bad arguments: constraint syntax, missing '--' separator, reserved alias."""
    pass


class NotFoundError(ClivmError):
    """Unknown version, alias, history id, or unresolved constraint."""
    pass


class BlockedVersionError(ClivmError):
    """Activation refused because the version is on the block list."""

    def __init__(self, version: str):
        super().__init__(
            f"Version {version} is blocked and cannot be activated",
            remediation=f"Use another version, or run 'clivm unblock {version}'",
        )
        self.version = version


class InstallError(ClivmError):
    """Downloading or installing a version failed."""
    pass


class SubprocessError(ClivmError):
    """
    A managed binary could not be spawned or was killed on timeout.

    Carried as data on fan-out outcomes rather than raised, so one bad
    subprocess never aborts a comparison or benchmark.
    """
    pass


class EnvironmentWarning(ClivmError):
    """
    Shell environment problem (profile write, PATH ordering).

    Never fatal to the owning operation: the current shell session simply
    has not picked up the change yet.
    """
    pass
