"""
Common utilities shared across cli_vm modules.
"""

from __future__ import annotations

import os
from pathlib import Path


def is_windows() -> bool:
    """Return True when running on Windows."""
    return os.name == "nt"


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log a verbose message.

    Emitted when verbose is requested or CLIVM_DEBUG=1 is set.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("CLIVM_DEBUG", "0") == "1":
        from .logging_config import get_logger
        get_logger().info(msg)


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """
    Write text to a file atomically.

    Content goes to a sibling temp file which then replaces the target,
    so readers never observe a half-written file.

    Args:
        path: Destination file
        content: Text to write
        mode: Optional permission bits applied before the rename
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
