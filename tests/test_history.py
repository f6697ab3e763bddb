"""
Tests for usage history (cli_vm/history.py).
"""

import datetime
import json
from unittest.mock import MagicMock

import pytest

from cli_vm import render
from cli_vm.errors import ClivmError, NotFoundError
from cli_vm.history import (
    TRUNCATION_MARKER,
    HistoryEntry,
    HistoryStore,
    compute_stats,
    parse_replay_id,
    read_capture,
    render_json,
    render_stats,
    render_table,
    replay,
    truncate_output,
)


UTC = datetime.timezone.utc


@pytest.fixture(autouse=True)
def no_color():
    render.set_color(False)
    yield
    render.set_color(True)


def at(day, hour=12):
    return datetime.datetime(2024, 5, day, hour, 0, tzinfo=UTC)


class TestTruncateOutput:
    """Tests for output truncation."""

    def test_short_output_unchanged(self):
        """Test output within budget is kept as is."""
        assert truncate_output("hello", 10) == "hello"

    def test_long_output_marked(self):
        """Test output over budget is cut and marked."""
        assert truncate_output("x" * 20, 10) == "x" * 10 + TRUNCATION_MARKER

    def test_multibyte_boundary(self):
        """Test a cut inside a multibyte character drops the partial character."""
        assert truncate_output("ééé", 3) == "é" + TRUNCATION_MARKER

    def test_undecodable_bytes_replaced(self):
        """Test bytes that were not valid UTF-8 are stored as replacement characters."""
        assert truncate_output("ok\udcc3") == "ok\ufffd"

    def test_capture_ending_mid_character(self):
        """Test a capture cut inside a character by the shim keeps whole characters only."""
        # what the shim hands over for "é" * 2501 read with one byte beyond the budget
        captured = ("é" * 2501).encode("utf-8")[:5001].decode("utf-8", errors="surrogateescape")
        assert truncate_output(captured, 5000) == "é" * 2500 + TRUNCATION_MARKER


class TestReadCapture:
    """Tests for reading the shim's capture files."""

    def test_reads_and_deletes(self, tmp_path):
        """Test the file is read up to one byte past the budget, then removed."""
        capture = tmp_path / "out.txt"
        capture.write_bytes(b"abcdefgh")
        assert read_capture(capture, max_bytes=4) == "abcde"
        assert not capture.exists()

    def test_invalid_utf8(self, tmp_path):
        """Test invalid bytes survive the read and become replacement characters."""
        capture = tmp_path / "out.txt"
        capture.write_bytes(b"ok\xc3")
        assert truncate_output(read_capture(capture)) == "ok\ufffd"

    def test_missing_file(self, tmp_path):
        """Test a missing capture yields empty output."""
        assert read_capture(tmp_path / "gone.txt") == ""


class TestHistoryEntry:
    """Tests for entry serialization."""

    def test_from_dict_naive_timestamp(self):
        """Test naive timestamps are read as UTC."""
        entry = HistoryEntry.from_dict({"id": 1, "version": "1.0.0", "timestamp": "2024-05-01T10:00:00"})
        assert entry.timestamp == datetime.datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

    def test_from_dict_bad_timestamp(self):
        """Test unreadable timestamps fall back to the epoch."""
        entry = HistoryEntry.from_dict({"id": 1, "version": "1.0.0", "timestamp": "yesterday"})
        assert entry.timestamp.year == 1970

    def test_to_dict(self):
        """Test field names in the stored form."""
        data = HistoryEntry(3, "2.74.0", at(1), "jf rt ping", 120, 1, "out", "err").to_dict()
        assert data["id"] == 3
        assert data["timestamp"] == "2024-05-01T12:00:00+00:00"
        assert data["exit_code"] == 1


class TestHistoryStore:
    """Tests for the on-disk history."""

    def test_append_assigns_ids(self, paths):
        """Test ids increase from 1."""
        store = HistoryStore(paths)
        first = store.append("1.0.0", "jf --version", 10, 0)
        second = store.append("1.0.0", "jf rt ping", 20, 1)
        assert (first.id, second.id) == (1, 2)
        assert [entry.id for entry in store.load()] == [1, 2]

    def test_clivm_commands_not_recorded(self, paths):
        """Test commands issued to clivm itself are skipped."""
        store = HistoryStore(paths)
        assert store.append("1.0.0", "clivm list", 5, 0) is None
        assert not paths.history_file.exists()

    def test_output_truncated(self, paths):
        """Test stored output respects the byte budget."""
        store = HistoryStore(paths, output_bytes=4)
        entry = store.append("1.0.0", "jf x", 1, 0, stdout="abcdefgh", stderr="ok")
        assert entry.stdout == "abcd" + TRUNCATION_MARKER
        assert entry.stderr == "ok"

    def test_undecodable_output_stored(self, paths):
        """Test output with undecodable bytes is recorded and the file reloads."""
        store = HistoryStore(paths)
        entry = store.append("1.0.0", "jf x \udcff", 1, 0, stdout="ok\udcc3")
        assert entry.stdout == "ok\ufffd"
        assert entry.command == "jf x \ufffd"
        assert store.load()[0].stdout == "ok\ufffd"

    def test_cap_renumbers(self, paths):
        """Test exceeding the cap drops the oldest and renumbers densely."""
        store = HistoryStore(paths, limit=10)
        for i in range(11):
            store.append("1.0.0", f"jf cmd {i}", i, 0)

        entries = store.load()
        assert len(entries) == 10
        assert [entry.id for entry in entries] == list(range(1, 11))
        assert entries[0].command == "jf cmd 1"
        assert entries[-1].command == "jf cmd 10"

    def test_default_cap(self, paths):
        """Test the 1001st entry leaves 1000 entries numbered 1..1000."""
        store = HistoryStore(paths)
        store.save([HistoryEntry(i, "1.0.0", at(1), f"jf cmd {i}") for i in range(1, 1001)])

        entry = store.append("1.0.0", "jf cmd 1001", 1, 0)

        entries = store.load()
        assert len(entries) == 1000
        assert [e.id for e in entries] == list(range(1, 1001))
        assert entries[0].command == "jf cmd 2"
        assert entry.id == 1000

    def test_corrupt_file(self, paths):
        """Test a corrupt history file is an error, not silently discarded."""
        paths.history_file.write_text("{not json")
        with pytest.raises(ClivmError, match="failed to read history"):
            HistoryStore(paths).load()

    def test_not_a_list(self, paths):
        """Test a JSON object is rejected."""
        paths.history_file.write_text(json.dumps({"id": 1}))
        with pytest.raises(ClivmError):
            HistoryStore(paths).load()

    def test_clear(self, paths):
        """Test clear removes the file and reports whether it existed."""
        store = HistoryStore(paths)
        store.append("1.0.0", "jf x", 1, 0)
        assert store.clear() is True
        assert store.load() == []
        assert store.clear() is False

    def test_get_missing(self, paths):
        """Test an unknown id."""
        with pytest.raises(NotFoundError, match="not found"):
            HistoryStore(paths).get(999999)


class TestQuery:
    """Tests for filtering and ordering."""

    @pytest.fixture
    def store(self, paths):
        store = HistoryStore(paths)
        store.append("1.0.0", "jf rt ping", 10, 0, timestamp=at(1))
        store.append("2.0.0", "jf RT Search", 20, 2, timestamp=at(2))
        store.append("1.0.0", "jf config show", 30, 0, timestamp=at(3))
        return store

    def test_newest_first(self, store):
        """Test entries are returned newest first."""
        assert [entry.id for entry in store.query()] == [3, 2, 1]

    def test_filter_version(self, store):
        """Test the version filter."""
        assert [entry.id for entry in store.query(version="1.0.0")] == [3, 1]

    def test_filter_command_case_insensitive(self, store):
        """Test the command filter ignores case."""
        assert [entry.id for entry in store.query(command="rt")] == [2, 1]

    def test_failures_only(self, store):
        """Test only non-zero exit codes are kept."""
        assert [entry.id for entry in store.query(failures_only=True)] == [2]

    def test_limit(self, store):
        """Test the display limit."""
        assert len(store.query(limit=2)) == 2
        assert len(store.query(limit=0)) == 3


class TestStats:
    """Tests for usage statistics."""

    def test_compute_stats(self):
        """Test per-version counts, command frequencies and timeline."""
        entries = [
            HistoryEntry(1, "1.0.0", at(1), "jf rt ping", 10),
            HistoryEntry(2, "1.0.0", at(2), "jf rt ping", 30),
            HistoryEntry(3, "2.0.0", at(2), "jf --version", 5),
        ]
        stats = compute_stats(entries)

        assert [s.version for s in stats.versions] == ["1.0.0", "2.0.0"]
        assert stats.versions[0].count == 2
        assert stats.versions[0].total_duration_ms == 40
        assert stats.versions[0].first_used == at(1)
        assert stats.versions[0].last_used == at(2)
        assert stats.commands["jf rt ping"] == 2
        assert stats.timeline == {"2024-05-01": 1, "2024-05-02": 2}

    def test_render_stats(self):
        """Test the stats report."""
        report = render_stats(compute_stats([HistoryEntry(1, "1.0.0", at(1), "jf rt ping", 10)]))
        assert "USAGE STATISTICS" in report
        assert "jf rt ping" in report
        assert "Total entries: 1" in report

    def test_render_stats_empty(self):
        """Test an empty history."""
        assert "No history entries" in render_stats(compute_stats([]))


class TestRendering:
    """Tests for history display."""

    def test_empty(self):
        """Test the empty message."""
        assert render_table([]) == "📭 No history entries found."

    def test_table(self):
        """Test the table lists entries and a total."""
        table = render_table([HistoryEntry(1, "1.0.0", at(1), "jf rt ping", 1500, 2)])
        assert "USAGE HISTORY" in table
        assert "jf rt ping" in table
        assert "Total entries: 1" in table

    def test_show_output(self):
        """Test captured output is shown on request."""
        entry = HistoryEntry(1, "1.0.0", at(1), "jf rt ping", 1, 0, stdout="OK", stderr="warn")
        table = render_table([entry], show_output=True)
        assert "STDOUT: OK" in table
        assert "STDERR: warn" in table

    def test_json(self):
        """Test JSON output."""
        data = json.loads(render_json([HistoryEntry(1, "1.0.0", at(1), "jf x")]))
        assert data[0]["command"] == "jf x"


class TestReplay:
    """Tests for replaying entries."""

    @pytest.mark.parametrize("token", ["!999999", "!0", "!-1", "!abc"])
    def test_invalid_ids(self, paths, token):
        """Test unknown, zero, negative and non-numeric ids all fail as not found."""
        store = HistoryStore(paths)
        store.append("1.0.0", "jf x", 1, 0)
        with pytest.raises(NotFoundError, match="not found"):
            replay(token, store, MagicMock(), MagicMock(), "jf")

    def test_parse(self):
        """Test a valid token."""
        assert parse_replay_id("!42") == 42

    def test_replay_switches_and_runs(self, paths):
        """Test replay activates the recorded version and runs without the binary name."""
        store = HistoryStore(paths)
        store.append("2.74.0", "jf rt ping --url x", 1, 0)
        activation = MagicMock()
        engine = MagicMock()
        engine.run_foreground.return_value = 0

        assert replay("!1", store, activation, engine, "jf") == 0

        activation.switch_to.assert_called_once_with("2.74.0")
        engine.run_foreground.assert_called_once_with("2.74.0", ["rt", "ping", "--url", "x"])

    def test_replay_propagates_exit_code(self, paths):
        """Test the replayed command's exit code is returned."""
        store = HistoryStore(paths)
        store.append("2.74.0", "jf bad", 1, 2)
        engine = MagicMock()
        engine.run_foreground.return_value = 2
        assert replay("!1", store, MagicMock(), engine, "jf") == 2
