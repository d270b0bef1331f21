"""Unit tests for JSON file helpers and quarantine copies."""

import pytest
import json
from unittest.mock import patch

from epictm.data.io import atomic_write, load_json_file
from epictm.data.backup import quarantine, list_quarantined
from epictm.recovery import CorruptionError, FatalError, FileOperationError


class TestAtomicWrite:
    """Test atomic JSON writes."""

    def test_writes_pretty_utf8(self, tmp_path):
        """Output is indented JSON with non-ASCII kept as is."""
        target = tmp_path / "out.json"
        atomic_write(target, {"name": "Überblick", "n": 1})

        text = target.read_text(encoding="utf-8")
        assert "Überblick" in text
        assert text.startswith("{\n  ")
        assert json.loads(text) == {"name": "Überblick", "n": 1}

    def test_create_dirs(self, tmp_path):
        """Missing parent directories are created on request."""
        target = tmp_path / "a" / "b" / "out.json"
        atomic_write(target, {}, create_dirs=True)
        assert target.exists()

    def test_missing_directory(self, tmp_path):
        """Writing into a missing directory is an I/O failure."""
        with pytest.raises(FileOperationError):
            atomic_write(tmp_path / "missing" / "out.json", {})

    def test_unserializable_data_leaves_target_alone(self, tmp_path):
        """A serialisation failure keeps the previous file intact."""
        target = tmp_path / "out.json"
        atomic_write(target, {"ok": True})

        with pytest.raises(FatalError):
            atomic_write(target, {"bad": object()})
        assert json.loads(target.read_text(encoding="utf-8")) == {"ok": True}
        assert list(tmp_path.glob("*.tmp")) == []

    def test_failed_replace_cleans_up(self, tmp_path):
        """The temp file is removed when the final rename fails."""
        target = tmp_path / "out.json"
        with patch("epictm.data.io.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(FileOperationError, match="disk full"):
                atomic_write(target, {"a": 1})
        assert not target.exists()
        assert list(tmp_path.iterdir()) == []


class TestLoadJsonFile:
    """Test reading JSON object files."""

    def test_missing_file(self, tmp_path):
        """An absent file loads as None."""
        assert load_json_file(tmp_path / "nope.json") is None

    def test_reads_object(self, tmp_path):
        """A JSON object loads as a dict."""
        target = tmp_path / "in.json"
        target.write_text('{"a": [1, 2]}', encoding="utf-8")
        assert load_json_file(target) == {"a": [1, 2]}

    @pytest.mark.parametrize("content", [b"{", b'"just a string"', b"\xc3\x28"])
    def test_corrupt_content(self, tmp_path, content):
        """Bad syntax, non-objects and invalid UTF-8 are corruption."""
        target = tmp_path / "in.json"
        target.write_bytes(content)
        with pytest.raises(CorruptionError):
            load_json_file(target)


class TestQuarantine:
    """Test quarantine copies of unreadable files."""

    def test_copies_are_unique(self, tmp_path):
        """Repeated quarantines never overwrite each other."""
        source = tmp_path / "epics.json"
        source.write_text("{ broken", encoding="utf-8")

        first = quarantine(source)
        second = quarantine(source)

        assert first != second
        assert source.exists()
        assert list_quarantined(tmp_path) == sorted([first, second])
        assert first.name.startswith("epics.json.")

    def test_missing_source(self, tmp_path):
        """Quarantining a missing file is an I/O failure."""
        with pytest.raises(FileOperationError):
            quarantine(tmp_path / "gone.json")

    def test_list_missing_directory(self, tmp_path):
        """A missing directory holds no quarantined copies."""
        assert list_quarantined(tmp_path / "nowhere") == []
