"""Tests for the mode marker and the shared apply stamp."""

import pytest

from nightsync_core.modes import Mode
from nightsync_core.state import ApplyStamp, runtime_dir


class TestModeMarker:
    @pytest.mark.parametrize("mode", list(Mode))
    def test_write_then_read(self, marker, mode):
        marker.write(mode)

        assert marker.read() is mode
        assert marker.path.read_text() == f"{mode.value}\n"

    def test_missing_file(self, marker):
        assert marker.read() is None

    def test_garbage(self, marker):
        marker.path.write_text("twilight\n")

        assert marker.read() is None

    def test_no_temp_files_left_behind(self, marker, tmp_path):
        marker.write(Mode.DARK)
        marker.write(Mode.LIGHT)

        assert [p.name for p in tmp_path.iterdir()] == [marker.path.name]


class TestApplyStamp:
    def test_record_uses_clock(self, tmp_path):
        stamp = ApplyStamp(tmp_path / "stamp", clock=lambda: 1234.9)

        stamp.record()

        assert stamp.read() == 1234.0

    def test_explicit_time(self, stamp):
        stamp.record(99)

        assert stamp.read() == 99.0

    def test_missing_or_unreadable_is_zero(self, stamp):
        assert stamp.read() == 0.0

        stamp.path.write_text("yesterday")
        assert stamp.read() == 0.0

    def test_unwritable_location_is_logged_not_raised(self, tmp_path, caplog):
        blocked = tmp_path / "stamp"
        blocked.mkdir()
        stamp = ApplyStamp(blocked)

        stamp.record(5)

        assert stamp.read() == 0.0
        assert "Could not record apply time" in caplog.text


def test_runtime_dir_prefers_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))

    assert runtime_dir() == tmp_path
