"""Pytest configuration for templar tests.

CRITICAL: Keeps tests away from the real ~/.templar directory.
"""

import pytest


@pytest.fixture(autouse=True)
def isolate_templar_home(tmp_path, monkeypatch):
    """Point HOME and TEMPLAR_CONFIG at a temporary directory.

    Tests must never read or write the user's real configuration or data.
    """
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("TEMPLAR_CONFIG", str(home_dir / ".templar" / "config.toml"))

    from templar.config_manager import ConfigManager

    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", home_dir / ".templar")
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", home_dir / ".templar" / "config.toml")
    yield home_dir
