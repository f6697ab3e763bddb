"""
Tests for the block list (cli_vm/blocklist.py).
"""

import json

import pytest

from cli_vm.blocklist import BlockList
from cli_vm.errors import ClivmError, NotFoundError, UserInputError


class TestBlockList:
    """Tests for blocking and unblocking versions."""

    def test_block_and_query(self, paths):
        """Test a blocked version is reported as blocked."""
        blocklist = BlockList(paths)
        assert blocklist.block("2.74.0") is True
        assert blocklist.is_blocked("2.74.0")
        assert not blocklist.is_blocked("2.75.0")

    def test_block_twice(self, paths):
        """Test blocking an already blocked version is a no-op."""
        blocklist = BlockList(paths)
        blocklist.block("2.74.0")
        assert blocklist.block("2.74.0") is False
        assert blocklist.list() == ["2.74.0"]

    def test_block_validates_format(self, paths):
        """Test only major.minor.patch versions can be blocked."""
        with pytest.raises(UserInputError, match="invalid version format"):
            BlockList(paths).block("2.74")

    def test_unblock(self, paths):
        """Test unblocking removes the version."""
        blocklist = BlockList(paths)
        blocklist.block("2.74.0")
        blocklist.unblock("2.74.0")
        assert not blocklist.is_blocked("2.74.0")

    def test_unblock_not_blocked(self, paths):
        """Test unblocking an unknown version."""
        with pytest.raises(NotFoundError):
            BlockList(paths).unblock("2.74.0")

    def test_stored_sorted(self, paths):
        """Test the file holds a sorted JSON list."""
        blocklist = BlockList(paths)
        blocklist.block("2.75.0")
        blocklist.block("2.10.0")
        assert json.loads(paths.blocked_file.read_text()) == ["2.10.0", "2.75.0"]
        assert blocklist.list() == ["2.10.0", "2.75.0"]

    def test_corrupt_file(self, paths):
        """Test a corrupt block file is reported."""
        paths.blocked_file.write_text("{not json")
        with pytest.raises(ClivmError, match="corrupt"):
            BlockList(paths).load()
