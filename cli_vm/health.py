"""
Installation health check.

Inspects the root layout, the shim, PATH ordering, the shell profile and
the active version, and can repair the shim and profile block.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

from .activation import ActivationManager
from .config import Paths
from .errors import EnvironmentWarning
from .execution import ExecutionEngine
from .profile import detect_shell, profile_has_block, shell_profile, update_path, verify_path_priority
from .render import GREEN, RED, YELLOW, colorize
from .shim import write_shim
from .versions import VersionStore

logger = logging.getLogger(__name__)

PASS = "pass"
WARN = "warn"
FAIL = "fail"

BINARY_CHECK_TIMEOUT = 10

STATUS_ICONS = {
    PASS: ("✅", GREEN),
    WARN: ("⚠️ ", YELLOW),
    FAIL: ("❌", RED),
}


@dataclass(frozen=True)
class HealthCheck:
    """
    One health check outcome.

    Attributes:
        component: What was checked
        status: 'pass', 'warn' or 'fail'
        message: One-line summary
        details: Extra information
        fixable: Whether --fix can repair it
    """
    component: str
    status: str
    message: str
    details: str = ""
    fixable: bool = False

    def to_dict(self) -> dict:
        data = {"status": self.status, "component": self.component, "message": self.message}
        if self.details:
            data["details"] = self.details
        if self.fixable:
            data["fixable"] = True
        return data


@dataclass
class HealthReport:
    """All checks plus the fixes applied, if any."""
    checks: list[HealthCheck] = field(default_factory=list)
    fixes: list[str] = field(default_factory=list)
    timestamp: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    def add(self, check: HealthCheck) -> None:
        self.checks.append(check)

    @property
    def summary(self) -> dict[str, int]:
        counts = {PASS: 0, FAIL: 0, WARN: 0}
        for check in self.checks:
            counts[check.status] += 1
        return counts

    @property
    def overall(self) -> str:
        summary = self.summary
        if summary[FAIL]:
            return "FAILED"
        if summary[WARN]:
            return "WARNING"
        return "HEALTHY"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "platform": platform.system().lower(),
            "architecture": platform.machine().lower(),
            "overall": self.overall,
            "checks": [check.to_dict() for check in self.checks],
            "summary": self.summary,
            "fixes": self.fixes,
        }


class HealthChecker:
    """Runs health checks against one installation."""

    def __init__(
        self,
        paths: Paths,
        versions: VersionStore,
        activation: ActivationManager,
        engine: ExecutionEngine,
        env: dict[str, str] | None = None,
        home: str | Path | None = None,
        history_capture_bytes: int = 5000,
    ):
        self.paths = paths
        self.versions = versions
        self.activation = activation
        self.engine = engine
        self.env = env
        self.home = home
        self.history_capture_bytes = history_capture_bytes

    def run(self, fix: bool = False) -> HealthReport:
        """
        Run every check, then repair fixable failures when requested.

        Returns:
            HealthReport; after fixing, checks are run again
        """
        report = self._collect()
        if fix and any(check.fixable and check.status != PASS for check in report.checks):
            fixes = self.fix()
            report = self._collect()
            report.fixes = fixes
        return report

    def _collect(self) -> HealthReport:
        report = HealthReport()
        self._check_layout(report)
        self._check_shim(report)
        self._check_path(report)
        self._check_profile(report)
        active = self._check_active_version(report)
        if active is not None:
            self._check_binary(report, active)
        return report

    def _check_layout(self, report: HealthReport) -> None:
        for component, directory in (
            ("Root Directory", self.paths.root),
            ("Versions Directory", self.paths.versions_dir),
            ("Shim Directory", self.paths.shim_dir),
        ):
            if directory.is_dir():
                report.add(HealthCheck(component, PASS, f"{directory} exists"))
            else:
                report.add(HealthCheck(component, FAIL, f"{directory} is missing", fixable=True))

    def _check_shim(self, report: HealthReport) -> None:
        shim = self.paths.shim_path
        if not shim.is_file():
            report.add(HealthCheck("Shim", FAIL, "Shim not found", details=str(shim), fixable=True))
        elif os.name != "nt" and not os.access(shim, os.X_OK):
            report.add(HealthCheck("Shim", FAIL, "Shim is not executable", details=str(shim), fixable=True))
        else:
            report.add(HealthCheck("Shim", PASS, "Shim installed", details=str(shim)))

    def _check_path(self, report: HealthReport) -> None:
        path_env = None if self.env is None else self.env.get("PATH", "")
        issues = verify_path_priority(self.paths.shim_dir, self.paths.binary_name, path_env)
        if issues:
            report.add(HealthCheck("PATH Priority", WARN, "Shim directory does not take priority",
                                   details="\n".join(issues), fixable=True))
        else:
            report.add(HealthCheck("PATH Priority", PASS, "Shim directory comes first on PATH"))

    def _check_profile(self, report: HealthReport) -> None:
        shell = detect_shell(self.env)
        profile = shell_profile(shell, self.home)
        if profile is None:
            report.add(HealthCheck("Shell Profile", WARN, f"Unsupported shell: {shell}"))
        elif profile_has_block(self.paths.shim_dir, env=self.env, home=self.home):
            report.add(HealthCheck("Shell Profile", PASS, "PATH block present", details=str(profile)))
        else:
            report.add(HealthCheck("Shell Profile", FAIL, "PATH block missing or outdated",
                                   details=str(profile), fixable=True))

    def _check_active_version(self, report: HealthReport) -> str | None:
        installed = self.versions.list_installed()
        if installed:
            report.add(HealthCheck("Installed Versions", PASS, f"{len(installed)} version(s) installed",
                                   details=", ".join(installed)))
        else:
            report.add(HealthCheck("Installed Versions", WARN, "No versions installed"))

        active = self.activation.active_version()
        if active is None:
            report.add(HealthCheck("Active Version", WARN, "No active version set"))
            return None
        if not self.versions.is_installed(active):
            report.add(HealthCheck("Active Version", FAIL, f"Active version {active} binary missing",
                                   details=str(self.versions.binary_path(active))))
            return None
        report.add(HealthCheck("Active Version", PASS, f"Active version: {active}"))
        return active

    def _check_binary(self, report: HealthReport, version: str) -> None:
        result = self.engine.invoke(version, ["--version"], timeout=BINARY_CHECK_TIMEOUT)
        component = f"{self.paths.binary_name} Execution"
        if result.success:
            report.add(HealthCheck(component, PASS, f"{self.paths.binary_name} execution successful",
                                   details=result.output.strip()))
        else:
            report.add(HealthCheck(component, FAIL, f"{self.paths.binary_name} execution failed",
                                   details=result.error_message.strip() or f"exit code {result.exit_code}"))

    def fix(self) -> list[str]:
        """
        Recreate the layout, the shim and the profile PATH block.

        Returns:
            Descriptions of the fixes applied
        """
        fixes = []
        self.paths.ensure_directories()
        fixes.append("Created root directories")

        write_shim(self.paths, capture_bytes=self.history_capture_bytes)
        fixes.append("Regenerated shim")

        try:
            update = update_path(self.paths.shim_dir, env=self.env, home=self.home)
        except EnvironmentWarning as e:
            logger.warning(f"Could not update shell profile: {e.message}")
        else:
            if update.changed:
                fixes.append(f"Updated PATH block in {update.profile}")
        return fixes


def render_report(report: HealthReport) -> str:
    lines = ["🏥 clivm Health Check", "===================", ""]
    for check in report.checks:
        icon, color = STATUS_ICONS[check.status]
        lines.append(f"  {icon} {check.component}: {colorize(check.message, color)}")
        if check.details and check.status != PASS:
            for detail in check.details.splitlines():
                lines.append(f"      {detail}")

    if report.fixes:
        lines.append("")
        lines.append("🔧 Fixes applied:")
        lines.extend(f"  ✅ {fix}" for fix in report.fixes)
        lines.append("   Restart your terminal or source your shell profile to pick up PATH changes.")

    summary = report.summary
    lines.append("")
    lines.append("📊 Health Check Summary")
    lines.append("=======================")
    lines.append(f"✅ Passed: {summary[PASS]}")
    lines.append(f"❌ Failed: {summary[FAIL]}")
    lines.append(f"⚠️  Warnings: {summary[WARN]}")
    lines.append("")
    overall = report.overall
    if overall == "FAILED":
        lines.append(f"❌ Overall Status: FAILED - {summary[FAIL]} critical issues found")
    elif overall == "WARNING":
        lines.append(f"⚠️  Overall Status: WARNING - {summary[WARN]} non-critical issues found")
    else:
        lines.append("✅ Overall Status: HEALTHY - All checks passed")
    return "\n".join(lines)


def render_json(report: HealthReport) -> str:
    return json.dumps(report.to_dict(), indent=2)
