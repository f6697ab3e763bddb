"""
Usage history of shim invocations.

Every call through the shim is recorded in <root>/history.json as a JSON
array. The store is rewritten whole on each append, keeps the newest
entries up to a cap, and renumbers ids densely after dropping the oldest.
Recorded entries can be replayed by id.
"""

from __future__ import annotations

import codecs
import datetime
import json
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Sequence

from .common import atomic_write_text, vlog
from .config import Paths
from .errors import ClivmError, NotFoundError
from .render import (
    BLUE,
    BOLD,
    GREEN,
    RED,
    RULE,
    colorize,
    format_duration_ms,
    pad,
    truncate,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000
DEFAULT_OUTPUT_BYTES = 5000
TRUNCATION_MARKER = "\n... (truncated)"
DEFAULT_DISPLAY_LIMIT = 50
COMMAND_DISPLAY_WIDTH = 50
# Commands issued to clivm itself
SKIP_PREFIX = "clivm "


@dataclass(frozen=True)
class HistoryEntry:
    """
    One recorded invocation.

    Attributes:
        id: Dense 1-based identifier
        version: Version that ran
        timestamp: When the entry was recorded
        command: Full command line, binary name included
        duration_ms: Wall-clock duration in milliseconds
        exit_code: Exit code of the binary
        stdout: Captured standard output (possibly truncated)
        stderr: Captured standard error (possibly truncated)
    """
    id: int
    version: str
    timestamp: datetime.datetime
    command: str = ""
    duration_ms: int = 0
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def failed(self) -> bool:
        return self.exit_code != 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "command": self.command,
            "duration_ms": self.duration_ms,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> HistoryEntry:
        """Create HistoryEntry from dictionary (missing fields take defaults)."""
        timestamp = data.get("timestamp")
        try:
            parsed = datetime.datetime.fromisoformat(timestamp) if timestamp else None
        except ValueError:
            parsed = None
        if parsed is not None and parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.timezone.utc)
        return HistoryEntry(
            id=int(data.get("id", 0)),
            version=str(data.get("version", "")),
            timestamp=parsed or datetime.datetime.fromtimestamp(0, tz=datetime.timezone.utc),
            command=data.get("command", "") or "",
            duration_ms=int(data.get("duration_ms", 0) or 0),
            exit_code=int(data.get("exit_code", 0) or 0),
            stdout=data.get("stdout", "") or "",
            stderr=data.get("stderr", "") or "",
        )


@dataclass
class VersionStats:
    """Aggregated usage of one version."""
    version: str
    count: int = 0
    total_duration_ms: int = 0
    first_used: datetime.datetime | None = None
    last_used: datetime.datetime | None = None
    commands: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "count": self.count,
            "total_duration_ms": self.total_duration_ms,
            "first_used": self.first_used.isoformat() if self.first_used else None,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "commands": dict(self.commands.most_common()),
        }


@dataclass
class HistoryStats:
    """
    Statistics over a set of history entries.

    Attributes:
        versions: Per-version usage, most used first
        commands: Command frequencies across all versions
        timeline: Entry counts per day (YYYY-MM-DD), oldest first
    """
    versions: list[VersionStats]
    commands: Counter
    timeline: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "versions": [stats.to_dict() for stats in self.versions],
            "commands": dict(self.commands.most_common()),
            "timeline": self.timeline,
        }


def truncate_output(text: str, max_bytes: int = DEFAULT_OUTPUT_BYTES) -> str:
    """
    Cut text to max_bytes of UTF-8, appending a truncation marker when cut.

    Captured output arrives through argv, so bytes that are not valid UTF-8
    show up as surrogate escapes. They are stored as U+FFFD; a character
    split by the cut is dropped.
    """
    data = text.encode("utf-8", errors="surrogateescape")
    if len(data) <= max_bytes:
        return data.decode("utf-8", errors="replace")
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    # final=False holds back an incomplete trailing sequence
    return decoder.decode(data[:max_bytes], final=False) + TRUNCATION_MARKER


def read_capture(path: str | Path, max_bytes: int = DEFAULT_OUTPUT_BYTES) -> str:
    """
    Read a captured output file written by the shim, then delete it.

    One byte beyond max_bytes is kept so truncate_output can tell the
    output was cut.
    """
    capture = Path(path)
    try:
        with open(capture, "rb") as f:
            data = f.read(max_bytes + 1)
    except OSError as e:
        logger.warning(f"Could not read captured output {capture}: {e}")
        return ""
    capture.unlink(missing_ok=True)
    return data.decode("utf-8", errors="surrogateescape")


class HistoryStore:
    """
    Append-only usage log with a size cap.

    Args:
        paths: On-disk layout
        limit: Maximum number of entries kept
        output_bytes: Byte budget for stored stdout/stderr
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        paths: Paths,
        limit: int = DEFAULT_LIMIT,
        output_bytes: int = DEFAULT_OUTPUT_BYTES,
        verbose: bool = False,
    ):
        self.paths = paths
        self.limit = limit
        self.output_bytes = output_bytes
        self.verbose = verbose

    def load(self) -> list[HistoryEntry]:
        """
        Load all entries in file order.

        Raises:
            ClivmError: If the history file is not a JSON array
        """
        history_file = self.paths.history_file
        try:
            with open(history_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise ClivmError(
                f"failed to read history: {e}",
                remediation=f"Run 'clivm history --clear' or remove {history_file}",
            ) from e

        if not isinstance(data, list):
            raise ClivmError(f"failed to read history: {history_file} does not hold a list")
        return [HistoryEntry.from_dict(item) for item in data if isinstance(item, dict)]

    def save(self, entries: Sequence[HistoryEntry]) -> None:
        content = json.dumps([entry.to_dict() for entry in entries], indent=2)
        atomic_write_text(self.paths.history_file, content + "\n")

    def append(
        self,
        version: str,
        command: str,
        duration_ms: int,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        timestamp: datetime.datetime | None = None,
    ) -> HistoryEntry | None:
        """
        Record one invocation.

        Commands issued to clivm itself are not recorded. Once the cap is
        exceeded, the oldest entries are dropped and the survivors are
        renumbered 1..N.

        Returns:
            The stored entry (with its final id), or None when skipped
        """
        if command.startswith(SKIP_PREFIX):
            return None

        entries = self.load()
        next_id = max((entry.id for entry in entries), default=0) + 1
        entry = HistoryEntry(
            id=next_id,
            version=version,
            timestamp=timestamp or datetime.datetime.now(datetime.timezone.utc),
            command=command.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace"),
            duration_ms=int(duration_ms),
            exit_code=int(exit_code),
            stdout=truncate_output(stdout, self.output_bytes),
            stderr=truncate_output(stderr, self.output_bytes),
        )
        entries.append(entry)

        if len(entries) > self.limit:
            entries = [
                replace(kept, id=i)
                for i, kept in enumerate(entries[-self.limit:], start=1)
            ]
            entry = entries[-1]
            vlog(f"History capped at {self.limit} entries", self.verbose)

        self.save(entries)
        return entry

    def clear(self) -> bool:
        """
        Delete the history file.

        Returns:
            True if a history file existed
        """
        history_file = self.paths.history_file
        if not history_file.exists():
            return False
        history_file.unlink()
        return True

    def get(self, entry_id: int) -> HistoryEntry:
        """
        Raises:
            NotFoundError: If no entry has this id
        """
        for entry in self.load():
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"history entry with ID {entry_id} not found")

    def query(
        self,
        version: str | None = None,
        command: str | None = None,
        failures_only: bool = False,
        limit: int | None = DEFAULT_DISPLAY_LIMIT,
    ) -> list[HistoryEntry]:
        """
        Filtered entries, newest first.

        Args:
            version: Keep only this version
            command: Keep commands containing this text (case-insensitive)
            failures_only: Keep only non-zero exit codes
            limit: Maximum number of entries (None or <= 0 for all)
        """
        entries = filter_entries(self.load(), version, command, failures_only)
        entries.sort(key=lambda entry: (entry.timestamp, entry.id), reverse=True)
        if limit and limit > 0:
            entries = entries[:limit]
        return entries


def filter_entries(
    entries: Sequence[HistoryEntry],
    version: str | None = None,
    command: str | None = None,
    failures_only: bool = False,
) -> list[HistoryEntry]:
    needle = command.lower() if command else None
    return [
        entry
        for entry in entries
        if (not version or entry.version == version)
        and (needle is None or needle in entry.command.lower())
        and (not failures_only or entry.failed)
    ]


def compute_stats(entries: Sequence[HistoryEntry]) -> HistoryStats:
    """Per-version usage, command frequencies and a per-day timeline."""
    per_version: dict[str, VersionStats] = {}
    commands: Counter = Counter()
    timeline: Counter = Counter()

    for entry in entries:
        stats = per_version.setdefault(entry.version, VersionStats(version=entry.version))
        stats.count += 1
        stats.total_duration_ms += entry.duration_ms
        if stats.first_used is None or entry.timestamp < stats.first_used:
            stats.first_used = entry.timestamp
        if stats.last_used is None or entry.timestamp > stats.last_used:
            stats.last_used = entry.timestamp
        if entry.command:
            stats.commands[entry.command] += 1
            commands[entry.command] += 1
        timeline[entry.timestamp.strftime("%Y-%m-%d")] += 1

    versions = sorted(per_version.values(), key=lambda s: (-s.count, s.version))
    return HistoryStats(
        versions=versions,
        commands=commands,
        timeline=dict(sorted(timeline.items())),
    )


def parse_replay_id(token: str) -> int:
    """
    Parse a '!<id>' replay token.

    Raises:
        NotFoundError: If the id is not a positive integer
    """
    raw = token[1:] if token.startswith("!") else token
    try:
        entry_id = int(raw)
    except ValueError:
        raise NotFoundError(f"history entry '{raw}' not found: ids are positive integers") from None
    if entry_id <= 0:
        raise NotFoundError(f"history entry with ID {entry_id} not found")
    return entry_id


def replay(token: str, store: HistoryStore, activation, engine, binary_name: str) -> int:
    """
    Re-run a recorded command.

    The recorded version becomes active, the leading binary name is
    stripped, and the remaining command runs in the foreground.

    Args:
        token: '!<id>' token
        store: History to look the entry up in
        activation: ActivationManager used to switch the active version
        engine: ExecutionEngine used to run the command
        binary_name: Managed binary name to strip from the recorded command

    Returns:
        Exit code of the replayed command
    """
    entry = store.get(parse_replay_id(token))
    logger.info(f"🔄 Executing history entry #{entry.id}: {entry.command}")
    logger.info(f"📋 Version: {entry.version}")

    activation.switch_to(entry.version)

    command = entry.command
    prefix = f"{binary_name} "
    if command.startswith(prefix):
        command = command[len(prefix):]
    return engine.run_foreground(entry.version, command.split())


def render_table(entries: Sequence[HistoryEntry], show_output: bool = False) -> str:
    if not entries:
        return "📭 No history entries found."

    lines = ["📊 clivm USAGE HISTORY", RULE, ""]
    header = (
        f"{pad('ID', 6)}{pad('TIME', 21)}{pad('VERSION', 14)}{pad('DURATION', 12)}"
        f"{pad('EXIT', 6)}COMMAND"
    )
    lines.append(colorize(header, BOLD))
    lines.append("─" * len(header))

    for i, entry in enumerate(entries):
        timestamp = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        version_color = BLUE if i == 0 else GREEN
        exit_text = str(entry.exit_code)
        if entry.failed:
            exit_text = colorize(exit_text, RED)
        command = entry.command if show_output else truncate(entry.command, COMMAND_DISPLAY_WIDTH)
        lines.append(
            f"{pad(str(entry.id), 6)}{pad(timestamp, 21)}{pad(colorize(entry.version, version_color), 14)}"
            f"{pad(format_duration_ms(entry.duration_ms), 12)}{pad(exit_text, 6)}{command}"
        )
        if show_output:
            if entry.stdout:
                lines.append(f"      📤 STDOUT: {entry.stdout.rstrip()}")
            if entry.stderr:
                lines.append(f"      📥 STDERR: {colorize(entry.stderr.rstrip(), RED)}")

    lines.append("")
    lines.append(f"📈 Total entries: {len(entries)}")
    return "\n".join(lines)


def render_json(entries: Sequence[HistoryEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in entries], indent=2)


def render_stats(stats: HistoryStats, top_commands: int = 10) -> str:
    """Human-readable statistics report."""
    if not stats.versions:
        return "📭 No history entries found."

    total = sum(version.count for version in stats.versions)
    lines = ["📊 clivm USAGE STATISTICS", RULE, "", colorize("Version usage", BOLD)]
    for version in stats.versions:
        share = version.count / total * 100
        bar = "█" * max(1, round(share / 5))
        lines.append(
            f"  {pad(colorize(version.version, BLUE), 14)}{pad(f'{version.count} uses', 12)}"
            f"{pad(f'{share:.1f}%', 8)}{colorize(bar, GREEN)}"
        )
        lines.append(
            f"  {' ' * 14}total {format_duration_ms(version.total_duration_ms)}, "
            f"first {version.first_used.strftime('%Y-%m-%d')}, last {version.last_used.strftime('%Y-%m-%d')}"
        )

    if stats.commands:
        lines.append("")
        lines.append(colorize("Top commands", BOLD))
        for command, count in stats.commands.most_common(top_commands):
            lines.append(f"  {pad(str(count), 6)}{truncate(command, COMMAND_DISPLAY_WIDTH)}")

    if stats.timeline:
        lines.append("")
        lines.append(colorize("Timeline", BOLD))
        for day, count in stats.timeline.items():
            lines.append(f"  {day}  {pad(str(count), 6)}{'▪' * min(count, 50)}")

    lines.append("")
    lines.append(f"📈 Total entries: {total}")
    return "\n".join(lines)
