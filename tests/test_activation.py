"""
Tests for version activation (cli_vm/activation.py).
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest

from cli_vm.activation import ActivationManager
from cli_vm.aliases import AliasStore
from cli_vm.blocklist import BlockList
from cli_vm.errors import BlockedVersionError, ClivmError, NotFoundError
from cli_vm.profile import path_block
from cli_vm.resolver import Resolver
from cli_vm.versions import VersionStore


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake binaries are shell scripts")


@pytest.fixture
def home(tmp_path):
    directory = tmp_path / "home"
    directory.mkdir()
    return directory


def make_manager(paths, home, tmp_path, installer=None, path_first=True):
    project_dir = tmp_path / "project"
    project_dir.mkdir(exist_ok=True)
    versions = VersionStore(paths)
    resolver = Resolver(versions, AliasStore(paths), BlockList(paths), installer=installer, project_dir=project_dir)
    path_dirs = [str(paths.shim_dir), "/usr/bin"] if path_first else ["/usr/bin", str(paths.shim_dir)]
    env = {"SHELL": "/bin/bash", "PATH": os.pathsep.join(path_dirs)}
    return ActivationManager(paths, versions, resolver, env=env, home=home)


class TestActivate:
    """Tests for activate()."""

    def test_use_by_alias(self, paths, home, tmp_path, fake_version):
        """Test install, alias, activate: config written and shim executable."""
        fake_version("2.74.0")
        AliasStore(paths).set("prod", "2.74.0")
        manager = make_manager(paths, home, tmp_path)

        result = manager.activate("prod")

        assert result.version == "2.74.0"
        assert paths.config_file.read_text().strip() == "2.74.0"
        assert paths.shim_path.is_file()
        assert os.access(paths.shim_path, os.X_OK)
        assert manager.active_version() == "2.74.0"

    def test_profile_updated(self, paths, home, tmp_path, fake_version):
        """Test the bash profile receives the PATH block."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path)

        result = manager.activate("2.74.0")

        assert result.profile is not None
        content = (home / ".bashrc").read_text()
        assert path_block(paths.shim_dir, "bash").render() in content

    def test_installs_missing_version(self, paths, home, tmp_path, fake_version):
        """Test a missing version is installed on demand."""
        installer = MagicMock()
        installer.install.side_effect = lambda version: fake_version(version)
        manager = make_manager(paths, home, tmp_path, installer=installer)

        result = manager.activate("2.75.0")

        assert result.installed is True
        installer.install.assert_called_once_with("2.75.0")
        assert manager.active_version() == "2.75.0"

    def test_missing_version_without_installer(self, paths, home, tmp_path):
        """Test activation fails when a version is missing and cannot be installed."""
        manager = make_manager(paths, home, tmp_path)
        with pytest.raises(NotFoundError):
            manager.activate("2.75.0")
        assert manager.active_version() is None

    def test_blocked_version_untouched(self, paths, home, tmp_path, fake_version):
        """Test a blocked version never becomes active."""
        fake_version("2.74.0")
        fake_version("2.75.0")
        manager = make_manager(paths, home, tmp_path)
        manager.activate("2.74.0")
        BlockList(paths).block("2.75.0")

        with pytest.raises(BlockedVersionError):
            manager.activate("2.75.0")
        assert manager.active_version() == "2.74.0"

    def test_path_ordering_is_a_warning(self, paths, home, tmp_path, fake_version):
        """Test PATH problems are warnings and activation still succeeds."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path, path_first=False)

        result = manager.activate("2.74.0")

        assert manager.active_version() == "2.74.0"
        assert any("PATH ordering issue" in warning.message for warning in result.warnings)

    def test_unsupported_shell_is_a_warning(self, paths, home, tmp_path, fake_version):
        """Test an unsupported shell does not fail activation."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path)
        manager.env["SHELL"] = "/usr/bin/tcsh"

        result = manager.activate("2.74.0")

        assert result.profile is None
        assert any("unsupported shell" in warning.message for warning in result.warnings)

    def test_unwritable_root_is_a_clivm_error(self, paths, home, tmp_path, fake_version):
        """Test a failed write of the active version is reported through the error types."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path)

        with patch("cli_vm.activation.atomic_write_text", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(ClivmError, match="failed to write active version") as exc_info:
                manager.activate("2.74.0")

        assert str(paths.root) in exc_info.value.remediation
        assert manager.active_version() is None

    def test_unwritable_shim_dir_is_a_clivm_error(self, paths, home, tmp_path, fake_version):
        """Test a failed shim write is reported through the error types."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path)

        with patch("cli_vm.shim.atomic_write_text", side_effect=OSError(28, "No space left on device")):
            with pytest.raises(ClivmError, match="failed to write shim"):
                manager.activate("2.74.0")


class TestSwitchTo:
    """Tests for switch_to()."""

    def test_switch_writes_config_only(self, paths, home, tmp_path, fake_version):
        """Test switch_to updates the active version without a shim."""
        fake_version("2.74.0")
        manager = make_manager(paths, home, tmp_path)

        manager.switch_to("2.74.0")

        assert manager.active_version() == "2.74.0"
        assert not paths.shim_path.exists()

    def test_switch_missing(self, paths, home, tmp_path):
        """Test switch_to requires an installed version."""
        with pytest.raises(NotFoundError):
            make_manager(paths, home, tmp_path).switch_to("9.9.9")
