# tests/test_config.py
import pytest
from pod_queue.config import LibrarySettings, default_db_path


def test_settings_validate_on_import():
    """Test that validate() is called and works"""
    assert LibrarySettings.validate() is True


def test_invalid_threshold_raises_error():
    """Test that a played threshold outside (0, 1] raises error"""
    original = LibrarySettings.PLAYED_THRESHOLD
    LibrarySettings.PLAYED_THRESHOLD = 1.5

    try:
        with pytest.raises(AssertionError, match="PLAYED_THRESHOLD"):
            LibrarySettings.validate()
    finally:
        LibrarySettings.PLAYED_THRESHOLD = original


def test_invalid_purge_age_raises_error():
    original = LibrarySettings.PURGE_AGE_DAYS
    LibrarySettings.PURGE_AGE_DAYS = 0

    try:
        with pytest.raises(AssertionError, match="PURGE_AGE_DAYS"):
            LibrarySettings.validate()
    finally:
        LibrarySettings.PURGE_AGE_DAYS = original


def test_default_db_path_from_env(monkeypatch, tmp_path):
    target = str(tmp_path / "custom.db")
    monkeypatch.setenv("POD_QUEUE_DB", target)
    assert default_db_path() == target
