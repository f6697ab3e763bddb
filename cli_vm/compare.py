"""
Comparison of two execution results.

Outputs are compared line by line by position. Two results are identical
only when output text, exit code and error text all match.
"""

from __future__ import annotations

from dataclasses import dataclass

from .execution import ExecutionResult
from .render import (
    BLUE,
    CYAN_BOLD,
    GREEN,
    RED,
    RULE,
    THIN_RULE,
    YELLOW,
    colorize,
    format_duration,
    pad,
    truncate,
)


TABLE_COLUMN_WIDTH = 48
LINE_COLUMN_WIDTH = 4
DEFAULT_CONTEXT_LINES = 3
SLOWER_FACTOR = 2


@dataclass(frozen=True)
class DiffRow:
    """
    One row of the side-by-side table.

    Attributes:
        line_number: 1-based line position
        left: Truncated line from the first output
        right: Truncated line from the second output
        kind: 'same', 'added', 'removed' or 'modified'
    """
    line_number: int
    left: str
    right: str
    kind: str


@dataclass(frozen=True)
class DiffLine:
    """One line of the unified diff: 'removed', 'added' or 'context'."""
    line_number: int
    kind: str
    text: str


def prepare_outputs(result1: ExecutionResult, result2: ExecutionResult) -> tuple[str, str]:
    """Stripped outputs, falling back to the error text when a result printed nothing."""
    def prepared(result: ExecutionResult) -> str:
        output = result.output.strip()
        if not output and result.error_message:
            output = result.error_message.strip()
        return output

    return prepared(result1), prepared(result2)


def are_outputs_identical(result1: ExecutionResult, result2: ExecutionResult) -> bool:
    """
    True only when output, exit code and error text all match.

    Differing exit codes are never identical, even with byte-identical output.
    """
    output1, output2 = prepare_outputs(result1, result2)
    return (
        output1 == output2
        and result1.exit_code == result2.exit_code
        and result1.error_message == result2.error_message
    )


def _line_pairs(output1: str, output2: str):
    lines1 = output1.split("\n")
    lines2 = output2.split("\n")
    for i in range(max(len(lines1), len(lines2))):
        line1 = lines1[i].strip() if i < len(lines1) else ""
        line2 = lines2[i].strip() if i < len(lines2) else ""
        yield i + 1, line1, line2


def table_rows(output1: str, output2: str, width: int = TABLE_COLUMN_WIDTH) -> list[DiffRow]:
    """
    Side-by-side rows; lines blank on both sides are skipped.
    """
    rows = []
    for line_number, line1, line2 in _line_pairs(output1, output2):
        if not line1 and not line2:
            continue
        if line1 == line2:
            kind = "same"
        elif line1 and not line2:
            kind = "removed"
        elif line2 and not line1:
            kind = "added"
        else:
            kind = "modified"
        rows.append(DiffRow(line_number, truncate(line1, width), truncate(line2, width), kind))
    return rows


def unified_lines(output1: str, output2: str, context: int = DEFAULT_CONTEXT_LINES) -> list[DiffLine]:
    """
    Positional diff lines, keeping context lines only near a change.

    A line present on both sides but different yields a removed line
    followed by an added line.
    """
    changes: list[DiffLine] = []
    for line_number, line1, line2 in _line_pairs(output1, output2):
        if line1 != line2:
            if line1:
                changes.append(DiffLine(line_number, "removed", line1))
            if line2:
                changes.append(DiffLine(line_number, "added", line2))
        elif line1:
            changes.append(DiffLine(line_number, "context", line1))

    visible = []
    for i, change in enumerate(changes):
        if change.kind != "context":
            visible.append(change)
            continue
        window = changes[max(0, i - context):i + context + 1]
        if any(other.kind != "context" for other in window):
            visible.append(change)
    return visible


def timing_summary(result1: ExecutionResult, result2: ExecutionResult) -> str | None:
    """Flag a result more than twice as slow as the other."""
    if result1.duration > result2.duration * SLOWER_FACTOR:
        return f"{result1.version} is significantly slower"
    if result2.duration > result1.duration * SLOWER_FACTOR:
        return f"{result2.version} is significantly slower"
    if result1.duration != result2.duration:
        return "Similar execution times"
    return None


def _exit_code_text(code: int) -> str:
    if code == 0:
        return colorize("✓ 0", GREEN)
    return colorize(f"✗ {code}", RED)


def render_table(output1: str, output2: str, version1: str, version2: str) -> list[str]:
    w = TABLE_COLUMN_WIDTH
    lines = [
        f"┌{'─' * (LINE_COLUMN_WIDTH + 2)}┬{'─' * (w + 2)}┬{'─' * (w + 2)}┐",
        "│ {} │ {} │ {} │".format(
            colorize(pad("Line", LINE_COLUMN_WIDTH), CYAN_BOLD),
            colorize(pad(truncate(version1, w), w), CYAN_BOLD),
            colorize(pad(truncate(version2, w), w), CYAN_BOLD),
        ),
        f"├{'─' * (LINE_COLUMN_WIDTH + 2)}┼{'─' * (w + 2)}┼{'─' * (w + 2)}┤",
    ]
    colors = {"same": "", "removed": RED, "added": GREEN, "modified": YELLOW}
    for row in table_rows(output1, output2, w):
        color = colors[row.kind]
        left = pad(row.left, w)
        right = pad(row.right, w)
        if color:
            left = colorize(left, color) if row.left else left
            right = colorize(right, color) if row.right else right
        lines.append(f"│ {pad(str(row.line_number), LINE_COLUMN_WIDTH)} │ {left} │ {right} │")
    lines.append(f"└{'─' * (LINE_COLUMN_WIDTH + 2)}┴{'─' * (w + 2)}┴{'─' * (w + 2)}┘")
    lines.append("")
    lines.append(
        f"📋 Legend: {colorize('Green', GREEN)} Added │ {colorize('Red', RED)} Removed │ "
        f"{colorize('Yellow', YELLOW)} Modified │ Normal = Same"
    )
    return lines


def render_unified(
    output1: str,
    output2: str,
    version1: str,
    version2: str,
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[str]:
    lines = [
        THIN_RULE,
        f"{colorize('---', RED)} {colorize(version1, CYAN_BOLD)}",
        f"{colorize('+++', GREEN)} {colorize(version2, CYAN_BOLD)}",
        THIN_RULE,
    ]
    for line in unified_lines(output1, output2, context):
        if line.kind == "removed":
            lines.append(colorize(f"- {line.text}", RED))
        elif line.kind == "added":
            lines.append(colorize(f"+ {line.text}", GREEN))
        else:
            lines.append(f"  {line.text}")
    return lines


def render_comparison(
    result1: ExecutionResult,
    result2: ExecutionResult,
    unified: bool = False,
    show_timing: bool = True,
    context: int = DEFAULT_CONTEXT_LINES,
) -> str:
    """
    Render a full comparison report.

    Args:
        result1: Result for the first version
        result2: Result for the second version
        unified: Unified diff instead of the side-by-side table
        show_timing: Include execution timing
        context: Context lines around unified diff changes

    Returns:
        Report text
    """
    lines = [RULE, "🔍 COMPARISON RESULTS", RULE, ""]

    if show_timing:
        lines.append("⏱️  EXECUTION TIMING:")
        lines.append(f"   Version {colorize(result1.version, BLUE)}: {format_duration(result1.duration)}")
        lines.append(f"   Version {colorize(result2.version, BLUE)}: {format_duration(result2.duration)}")
        summary = timing_summary(result1, result2)
        if summary:
            lines.append(f"   Performance: {summary}")
        lines.append("")

    if result1.exit_code != result2.exit_code:
        lines.append("🚨 EXIT CODE DIFFERENCE:")
        lines.append(f"   {result1.version}: {_exit_code_text(result1.exit_code)}")
        lines.append(f"   {result2.version}: {_exit_code_text(result2.exit_code)}")
        lines.append("")

    if result1.error_message or result2.error_message:
        lines.append("🚨 ERROR OUTPUT:")
        for result in (result1, result2):
            if result.error_message:
                lines.append(f"   {colorize(result.version, RED)} ERROR:")
                lines.append(result.error_message.rstrip("\n"))
        lines.append("")

    output1, output2 = prepare_outputs(result1, result2)
    if are_outputs_identical(result1, result2):
        lines.append("✅ OUTPUTS ARE IDENTICAL")
        if output1:
            line_count = len(output1.split("\n"))
            lines.append(f"📄 Output ({line_count} lines):")
            lines.append(THIN_RULE)
            lines.append(output1)
        return "\n".join(lines)

    lines.append("📊 OUTPUT DIFFERENCES:")
    if unified:
        lines.extend(render_unified(output1, output2, result1.version, result2.version, context))
    else:
        lines.extend(render_table(output1, output2, result1.version, result2.version))
    return "\n".join(lines)
