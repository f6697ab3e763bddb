"""
Output rendering and formatting helpers.
"""

import os
import re

from wcwidth import wcswidth, wcwidth


# Environment options
USE_COLOR = os.environ.get("CLIVM_COLOR", "1") == "1" and "NO_COLOR" not in os.environ

# ANSI color codes
GREEN = "\033[32m"
BOLD_GREEN = "\033[1;32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
RED = "\033[31m"
CYAN_BOLD = "\033[1;36m"
BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"

RULE = "═" * 83
THIN_RULE = "─" * 85

# CSI (color etc.): ESC [ ... cmd
CSI_RE = re.compile(r'\x1b\[[0-?]*[ -/]*[@-~]')


def set_color(enabled: bool) -> None:
    """Enable or disable colored output globally."""
    global USE_COLOR
    USE_COLOR = enabled


def colorize(text: str, color: str) -> str:
    """Apply color to text.

    Args:
        text: Text to colorize
        color: ANSI color code

    Returns:
        Colored text or plain text if colors disabled
    """
    if not USE_COLOR or not text:
        return text
    return f"{color}{text}{RESET}"


def strip_ansi(text: str) -> str:
    return CSI_RE.sub('', text)


def display_width(text: str) -> int:
    """Terminal column width of text, ignoring color codes."""
    width = wcswidth(strip_ansi(text))
    if width < 0:
        # Non-printable characters: count what can be measured
        width = sum(max(wcwidth(ch), 0) for ch in strip_ansi(text))
    return width


def truncate(text: str, width: int, ellipsis: str = "...") -> str:
    """Cut text to at most `width` columns, ending in an ellipsis when cut."""
    if display_width(text) <= width:
        return text
    limit = width - len(ellipsis)
    out = []
    used = 0
    for ch in text:
        w = max(wcwidth(ch), 0)
        if used + w > limit:
            break
        out.append(ch)
        used += w
    return "".join(out) + ellipsis


def pad(text: str, width: int) -> str:
    """Left-align text in a field of `width` columns."""
    return text + " " * max(0, width - display_width(text))


def format_duration(seconds: float) -> str:
    """Human-friendly duration: μs below a millisecond, ms below a second, else s."""
    if seconds < 0.001:
        return f"{seconds * 1e6:.2f}μs"
    if seconds < 1:
        return f"{seconds * 1e3:.2f}ms"
    return f"{seconds:.2f}s"


def format_duration_ms(ms: float) -> str:
    return format_duration(ms / 1000)


def format_size(size_bytes: int) -> str:
    """Human-friendly byte size."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
