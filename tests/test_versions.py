"""
Tests for the installed-version catalogue (cli_vm/versions.py).
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from cli_vm.config import Paths
from cli_vm.errors import ClivmError, NotFoundError, UserInputError
from cli_vm.versions import VersionStore


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake binaries are shell scripts")


class TestListInstalled:
    """Tests for listing installed versions."""

    def test_empty_root(self, paths):
        """Test an empty versions directory lists nothing."""
        assert VersionStore(paths).list_installed() == []

    def test_missing_root(self, tmp_path):
        """Test a missing root lists nothing instead of failing."""
        assert VersionStore(Paths(root=tmp_path / "nope")).list_installed() == []

    def test_sorted_numerically(self, paths, fake_version):
        """Test versions are sorted by numeric order."""
        for version in ("2.10.0", "2.9.0", "2.74.1"):
            fake_version(version)
        assert VersionStore(paths).list_installed() == ["2.9.0", "2.10.0", "2.74.1"]

    def test_partial_install_is_absent(self, paths, fake_version):
        """Test a directory without the binary is not listed."""
        fake_version("2.74.0")
        paths.version_dir("2.75.0").mkdir(parents=True)
        store = VersionStore(paths)
        assert store.list_installed() == ["2.74.0"]
        assert not store.is_installed("2.75.0")


class TestExists:
    """Tests for the exists() check."""

    def test_installed_version(self, paths, fake_version):
        """Test exists() passes for a complete install."""
        fake_version("2.74.0")
        VersionStore(paths).exists("2.74.0")

    def test_missing_directory(self, paths):
        """Test missing version directory."""
        with pytest.raises(NotFoundError, match="version directory does not exist"):
            VersionStore(paths).exists("9.9.9")

    def test_missing_binary(self, paths):
        """Test version directory without the binary."""
        paths.version_dir("2.74.0").mkdir(parents=True)
        with pytest.raises(NotFoundError, match="binary not found in version directory"):
            VersionStore(paths).exists("2.74.0")


class TestRemoveAndClear:
    """Tests for removing versions."""

    def test_remove(self, paths, fake_version):
        """Test remove deletes the version directory."""
        fake_version("2.74.0")
        store = VersionStore(paths)
        store.remove("2.74.0")
        assert not paths.version_dir("2.74.0").exists()

    def test_remove_missing(self, paths):
        """Test removing an unknown version."""
        with pytest.raises(NotFoundError):
            VersionStore(paths).remove("1.0.0")

    def test_clear_keeps_metadata(self, paths, fake_version):
        """Test clear removes versions only, not root metadata."""
        fake_version("1.0.0")
        fake_version("2.0.0")
        paths.config_file.write_text("1.0.0")
        (paths.aliases_dir / "prod").write_text("1.0.0")

        removed = VersionStore(paths).clear()

        assert removed == 2
        assert list(paths.versions_dir.iterdir()) == []
        assert paths.config_file.read_text() == "1.0.0"
        assert (paths.aliases_dir / "prod").exists()

    def test_remove_failure_is_a_clivm_error(self, paths, fake_version):
        """Test a failed delete is reported through the error types."""
        fake_version("2.74.0")
        with patch("cli_vm.versions.shutil.rmtree", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(ClivmError, match="failed to remove version 2.74.0"):
                VersionStore(paths).remove("2.74.0")

    @pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores directory permissions")
    def test_remove_from_read_only_root(self, paths, fake_version):
        """Test removing from a read-only versions directory raises ClivmError."""
        fake_version("2.74.0")
        paths.versions_dir.chmod(0o555)
        try:
            with pytest.raises(ClivmError) as exc_info:
                VersionStore(paths).remove("2.74.0")
        finally:
            paths.versions_dir.chmod(0o755)
        assert exc_info.value.remediation

    def test_clear_failure_reports_progress(self, paths, fake_version):
        """Test a failed clear names how many entries were already removed."""
        fake_version("1.0.0")
        with patch("cli_vm.versions.shutil.rmtree", side_effect=OSError(16, "Device or resource busy")):
            with pytest.raises(ClivmError, match="after removing 0 entries"):
                VersionStore(paths).clear()


class TestLink:
    """Tests for registering local binaries."""

    def test_link_binary(self, paths, tmp_path):
        """Test a local binary becomes a pseudo-version."""
        source = tmp_path / "my-jf"
        source.write_text("#!/bin/sh\necho dev\n")
        source.chmod(0o755)

        store = VersionStore(paths)
        target = store.link("dev", source)

        assert target == paths.binary_path("dev")
        assert target.is_symlink()
        assert store.is_installed("dev")
        assert store.version_info("dev").linked is True

    def test_link_reserved_name(self, paths, tmp_path):
        """Test 'latest' cannot be used as a version name."""
        source = tmp_path / "jf"
        source.write_text("x")
        with pytest.raises(UserInputError):
            VersionStore(paths).link("Latest", source)

    def test_link_missing_source(self, paths, tmp_path):
        """Test a missing source binary."""
        with pytest.raises(NotFoundError):
            VersionStore(paths).link("dev", tmp_path / "missing")

    def test_link_existing_requires_force(self, paths, fake_version, tmp_path):
        """Test replacing an existing version needs force."""
        fake_version("dev")
        source = tmp_path / "jf"
        source.write_text("x")
        store = VersionStore(paths)

        with pytest.raises(UserInputError, match="already exists"):
            store.link("dev", source)

        store.link("dev", source, force=True)
        assert paths.binary_path("dev").resolve() == source.resolve()

    def test_link_failure_is_a_clivm_error(self, paths, tmp_path):
        """Test a failed symlink is reported through the error types."""
        source = tmp_path / "jf"
        source.write_text("x")
        with patch.object(Path, "symlink_to", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(ClivmError, match="failed to link"):
                VersionStore(paths).link("dev", source)


class TestVersionInfo:
    """Tests for version details."""

    def test_version_info(self, paths, fake_version):
        """Test size and serialization of version info."""
        binary = fake_version("2.74.0")
        info = VersionStore(paths).version_info("2.74.0")
        assert info.name == "2.74.0"
        assert info.size_bytes == binary.stat().st_size
        assert info.linked is False
        assert info.to_dict()["binary_path"] == str(binary)
