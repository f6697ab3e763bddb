"""
Benchmark aggregation and reporting.

Summarizes repeated executions per version and ranks versions by average
duration; the fastest version is the reference the others are measured
against.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from typing import Sequence

from .execution import ExecutionResult
from .render import (
    BLUE,
    BOLD_GREEN,
    GREEN,
    RED,
    RULE,
    YELLOW,
    colorize,
    format_duration,
    pad,
)


FORMATS = ("table", "json", "csv")


@dataclass(frozen=True)
class BenchmarkResult:
    """
    Aggregated timings for one version.

    Attributes:
        version: Benchmarked version
        iterations: Number of executions
        executions: Individual execution results
        total_time: Sum of durations (seconds)
        average_time: Mean duration (seconds)
        min_time: Fastest execution (seconds)
        max_time: Slowest execution (seconds)
        success_rate: successes / iterations * 100
    """
    version: str
    iterations: int
    executions: tuple[ExecutionResult, ...]
    total_time: float
    average_time: float
    min_time: float
    max_time: float
    success_rate: float

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "iterations": self.iterations,
            "total_time_ms": round(self.total_time * 1000, 2),
            "average_time_ms": round(self.average_time * 1000, 2),
            "min_time_ms": round(self.min_time * 1000, 2),
            "max_time_ms": round(self.max_time * 1000, 2),
            "success_rate": round(self.success_rate, 2),
        }


def aggregate(version: str, executions: Sequence[ExecutionResult]) -> BenchmarkResult:
    """Compute total/average/min/max duration and success rate."""
    durations = [execution.duration for execution in executions]
    iterations = len(executions)
    successes = sum(1 for execution in executions if execution.success)
    total = sum(durations)
    return BenchmarkResult(
        version=version,
        iterations=iterations,
        executions=tuple(executions),
        total_time=total,
        average_time=total / iterations if iterations else 0.0,
        min_time=min(durations, default=0.0),
        max_time=max(durations, default=0.0),
        success_rate=successes / iterations * 100 if iterations else 0.0,
    )


def rank(results: Sequence[BenchmarkResult]) -> list[BenchmarkResult]:
    """Sort by average duration, fastest first."""
    return sorted(results, key=lambda result: result.average_time)


def slowdown(result: BenchmarkResult, fastest: BenchmarkResult) -> float:
    """How many times slower than the fastest version."""
    if fastest.average_time <= 0:
        return 1.0
    return result.average_time / fastest.average_time


def render_table(results: Sequence[BenchmarkResult], detailed: bool = False) -> str:
    ranked = rank(results)
    lines = [RULE, "🏁 BENCHMARK RESULTS", RULE, ""]
    header = (
        f"{pad('RANK', 6)}{pad('VERSION', 16)}{pad('AVERAGE', 12)}{pad('MIN', 12)}"
        f"{pad('MAX', 12)}{pad('SUCCESS', 10)}RELATIVE"
    )
    lines.append(header)
    lines.append("─" * len(header))

    fastest = ranked[0] if ranked else None
    for position, result in enumerate(ranked, start=1):
        if result is fastest:
            relative = colorize("fastest", BOLD_GREEN)
        else:
            relative = colorize(f"{slowdown(result, fastest):.1f}x slower", YELLOW)
        success_color = GREEN if result.success_rate == 100 else RED
        lines.append(
            f"{pad(str(position), 6)}{pad(colorize(result.version, BLUE), 16)}"
            f"{pad(format_duration(result.average_time), 12)}{pad(format_duration(result.min_time), 12)}"
            f"{pad(format_duration(result.max_time), 12)}"
            f"{pad(colorize(f'{result.success_rate:.1f}%', success_color), 10)}{relative}"
        )

    if fastest is not None:
        lines.append("")
        lines.append("📈 PERFORMANCE SUMMARY")
        lines.append(f"🏆 Fastest Version: {fastest.version} ({format_duration(fastest.average_time)} average)")
        if len(ranked) > 1:
            slowest = ranked[-1]
            lines.append(
                f"🐌 Slowest Version: {slowest.version} ({format_duration(slowest.average_time)} average, "
                f"{slowdown(slowest, fastest):.1f}x slower)"
            )
        total_time = sum(result.total_time for result in ranked)
        total_iterations = sum(result.iterations for result in ranked)
        lines.append(
            f"📊 Total: {len(ranked)} versions tested • {total_iterations} total iterations • "
            f"{format_duration(total_time)} combined time"
        )

    if detailed:
        lines.append("")
        lines.append("📝 DETAILED EXECUTION LOGS")
        for result in ranked:
            lines.append(f"Version {result.version}:")
            for i, execution in enumerate(result.executions, start=1):
                status = colorize("✓", GREEN) if execution.success else colorize(f"✗ {execution.exit_code}", RED)
                line = f"  #{i:<3} {pad(format_duration(execution.duration), 12)}{status}"
                if execution.error:
                    line += f"  {execution.error}"
                lines.append(line)

    return "\n".join(lines)


def render_json(results: Sequence[BenchmarkResult]) -> str:
    return json.dumps({"benchmark_results": [result.to_dict() for result in rank(results)]}, indent=2)


def render_csv(results: Sequence[BenchmarkResult]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([
        "version", "iterations", "total_time_ms", "average_time_ms",
        "min_time_ms", "max_time_ms", "success_rate",
    ])
    for result in rank(results):
        data = result.to_dict()
        writer.writerow([
            data["version"],
            data["iterations"],
            f"{data['total_time_ms']:.2f}",
            f"{data['average_time_ms']:.2f}",
            f"{data['min_time_ms']:.2f}",
            f"{data['max_time_ms']:.2f}",
            f"{data['success_rate']:.2f}",
        ])
    return buffer.getvalue().rstrip("\n")


def render(results: Sequence[BenchmarkResult], fmt: str = "table", detailed: bool = False) -> str:
    """Render results as 'table', 'json' or 'csv'."""
    if fmt == "json":
        return render_json(results)
    if fmt == "csv":
        return render_csv(results)
    return render_table(results, detailed)
