"""
Tests for Checkpoint Module

These tests validate load/save/clear semantics of the cursor file and that
checkpoint I/O problems never raise.
"""

import os
import pytest
from unittest.mock import patch

from dictionary_sync.checkpoint import CheckpointStore


@pytest.fixture
def store(tmp_path):
    return CheckpointStore(str(tmp_path / "lastId.txt"))


class TestLoad:
    """Test reading the checkpoint."""

    def test_missing_file_is_absent(self, store):
        assert store.load() is None
        assert store.exists is False

    def test_empty_file_is_absent(self, store):
        with open(store.path, 'w') as f:
            f.write("")
        assert store.load() is None

    def test_whitespace_is_stripped(self, store):
        with open(store.path, 'w') as f:
            f.write("  0000002a-0000-4000-8000-000000000000\n")
        assert store.load() == "0000002a-0000-4000-8000-000000000000"

    def test_unreadable_path_is_absent(self, tmp_path):
        """A directory where the file should be degrades to 'no checkpoint'."""
        path = tmp_path / "lastId.txt"
        path.mkdir()
        assert CheckpointStore(str(path)).load() is None

    def test_undecodable_content_is_absent(self, store):
        with open(store.path, 'wb') as f:
            f.write(b"\xff\xfe\xfa")
        assert store.load() is None


class TestSave:
    """Test writing the checkpoint."""

    def test_save_then_load(self, store):
        assert store.save("abc") is True
        assert store.load() == "abc"

    def test_save_overwrites(self, store):
        store.save("first-cursor-value")
        store.save("b")
        with open(store.path) as f:
            assert f.read() == "b"

    def test_save_leaves_no_temp_file(self, store):
        store.save("abc")
        assert not os.path.exists(store.path + ".tmp")

    def test_save_creates_parent_directory(self, tmp_path):
        store = CheckpointStore(str(tmp_path / "state" / "lastId.txt"))
        assert store.save("abc") is True
        assert store.load() == "abc"

    def test_save_failure_returns_false(self, tmp_path):
        """Saving below a regular file cannot succeed and must not raise."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        store = CheckpointStore(str(blocker / "lastId.txt"))

        assert store.save("abc") is False
        assert store.load() is None

    def test_failed_replace_keeps_previous_value(self, store):
        store.save("previous")
        with patch('dictionary_sync.checkpoint.os.replace', side_effect=OSError("disk full")):
            assert store.save("next") is False
        assert store.load() == "previous"
        assert not os.path.exists(store.path + ".tmp")


class TestClear:
    """Test removing the checkpoint."""

    def test_clear_removes_file(self, store):
        store.save("abc")
        assert store.clear() is True
        assert store.exists is False
        assert store.load() is None

    def test_clear_missing_file_is_ok(self, store):
        assert store.clear() is True

    def test_clear_failure_returns_false(self, store):
        store.save("abc")
        with patch('dictionary_sync.checkpoint.os.remove', side_effect=PermissionError("denied")):
            assert store.clear() is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
