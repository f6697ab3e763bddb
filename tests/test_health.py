"""
Tests for the installation health check (cli_vm/health.py).
"""

import json
import os
import sys

import pytest

from cli_vm import render
from cli_vm.activation import ActivationManager
from cli_vm.aliases import AliasStore
from cli_vm.blocklist import BlockList
from cli_vm.execution import ExecutionEngine
from cli_vm.health import FAIL, PASS, WARN, HealthCheck, HealthChecker, HealthReport, render_json, render_report
from cli_vm.profile import update_path
from cli_vm.resolver import Resolver
from cli_vm.shim import write_shim
from cli_vm.versions import VersionStore


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake binaries are shell scripts")


@pytest.fixture(autouse=True)
def no_color():
    render.set_color(False)
    yield
    render.set_color(True)


@pytest.fixture
def home(tmp_path):
    directory = tmp_path / "home"
    directory.mkdir()
    return directory


@pytest.fixture
def env(paths):
    return {"SHELL": "/bin/bash", "PATH": os.pathsep.join([str(paths.shim_dir), "/usr/bin", "/bin"])}


def make_checker(paths, env, home):
    versions = VersionStore(paths)
    resolver = Resolver(versions, AliasStore(paths), BlockList(paths))
    activation = ActivationManager(paths, versions, resolver, env=env, home=home)
    return HealthChecker(paths, versions, activation, ExecutionEngine(versions), env=env, home=home)


def by_component(report):
    return {check.component: check for check in report.checks}


class TestHealthReport:
    """Tests for summary and overall status."""

    def test_overall(self):
        """Test FAILED outranks WARNING outranks HEALTHY."""
        report = HealthReport()
        report.add(HealthCheck("a", PASS, "ok"))
        assert report.overall == "HEALTHY"
        report.add(HealthCheck("b", WARN, "hmm"))
        assert report.overall == "WARNING"
        report.add(HealthCheck("c", FAIL, "bad"))
        assert report.overall == "FAILED"
        assert report.summary == {PASS: 1, FAIL: 1, WARN: 1}

    def test_to_dict(self):
        """Test the JSON shape."""
        report = HealthReport()
        report.add(HealthCheck("Shim", FAIL, "Shim not found", details="/x", fixable=True))
        data = report.to_dict()
        assert data["overall"] == "FAILED"
        assert data["checks"][0] == {
            "status": "fail", "component": "Shim", "message": "Shim not found",
            "details": "/x", "fixable": True,
        }


class TestHealthChecker:
    """Tests running checks against a temp installation."""

    def test_fresh_installation_fails(self, paths, env, home):
        """Test a root without shim or profile block fails."""
        report = make_checker(paths, env, home).run()
        checks = by_component(report)

        assert report.overall == "FAILED"
        assert checks["Shim"].status == FAIL
        assert checks["Shim"].fixable
        assert checks["Shell Profile"].status == FAIL
        assert checks["Active Version"].status == WARN

    def test_fix_repairs_shim_and_profile(self, paths, env, home):
        """Test --fix regenerates the shim and the profile block."""
        report = make_checker(paths, env, home).run(fix=True)
        checks = by_component(report)

        assert checks["Shim"].status == PASS
        assert checks["Shell Profile"].status == PASS
        assert "Regenerated shim" in report.fixes
        assert (home / ".bashrc").exists()
        assert report.overall == "WARNING"

    def test_healthy_installation(self, paths, env, home, fake_version):
        """Test a complete installation passes every check."""
        fake_version("2.74.0")
        paths.config_file.write_text("2.74.0")
        write_shim(paths, clivm_command="", windows=False)
        update_path(paths.shim_dir, env=env, home=home)

        report = make_checker(paths, env, home).run()
        checks = by_component(report)

        assert report.overall == "HEALTHY", render_report(report)
        assert checks["jf Execution"].details == "jf version 2.74.0"
        assert report.fixes == []

    def test_active_binary_missing(self, paths, env, home):
        """Test an active version without its binary fails."""
        paths.config_file.write_text("2.74.0")
        checks = by_component(make_checker(paths, env, home).run())
        assert checks["Active Version"].status == FAIL
        assert "jf Execution" not in checks

    def test_binary_execution_failure(self, paths, env, home, fake_version):
        """Test a failing --version is reported with its stderr."""
        fake_version("2.74.0", body='echo "broken" >&2\nexit 1')
        paths.config_file.write_text("2.74.0")
        checks = by_component(make_checker(paths, env, home).run())
        assert checks["jf Execution"].status == FAIL
        assert checks["jf Execution"].details == "broken"

    def test_unsupported_shell(self, paths, home):
        """Test an unknown shell is a warning, not a failure."""
        env = {"SHELL": "/bin/tcsh", "PATH": str(paths.shim_dir)}
        checks = by_component(make_checker(paths, env, home).run())
        assert checks["Shell Profile"].status == WARN

    def test_path_priority_warning(self, paths, home):
        """Test a system directory ahead of the shim directory warns."""
        env = {"SHELL": "/bin/bash", "PATH": os.pathsep.join(["/usr/bin", str(paths.shim_dir)])}
        checks = by_component(make_checker(paths, env, home).run())
        assert checks["PATH Priority"].status == WARN


class TestRendering:
    """Tests for report output."""

    def test_render_report(self):
        """Test the summary section."""
        report = HealthReport()
        report.add(HealthCheck("Shim", PASS, "Shim installed"))
        text = render_report(report)
        assert "✅ Passed: 1" in text
        assert "Overall Status: HEALTHY" in text

    def test_render_failed_details(self):
        """Test failure details are listed."""
        report = HealthReport()
        report.add(HealthCheck("Shim", FAIL, "Shim not found", details="/root/shim/jf"))
        text = render_report(report)
        assert "/root/shim/jf" in text
        assert "FAILED - 1 critical issues found" in text

    def test_render_json(self):
        """Test JSON output parses."""
        report = HealthReport()
        report.add(HealthCheck("Shim", WARN, "odd"))
        assert json.loads(render_json(report))["summary"]["warn"] == 1
