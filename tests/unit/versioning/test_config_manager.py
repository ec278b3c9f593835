"""Unit tests for engine configuration loading and saving."""

import stat
from pathlib import Path

import pytest


class TestEngineConfig:
    """Test the configuration dataclass."""

    def test_defaults(self):
        from templar.config_manager import EngineConfig

        config = EngineConfig()

        assert config.lock_timeout_seconds == 5.0
        assert config.max_resolution_depth == 32
        assert config.max_dependency_fanout == 64
        assert config.audit_log is None
        assert config.audit_log_path is None

    def test_paths_expand_user(self, isolate_templar_home):
        from templar.config_manager import EngineConfig

        config = EngineConfig(data_dir="~/versions", audit_log="~/audit.jsonl")

        assert config.data_path == isolate_templar_home / "versions"
        assert config.audit_log_path == isolate_templar_home / "audit.jsonl"

    def test_to_dict_drops_none(self):
        from templar.config_manager import EngineConfig

        assert "audit_log" not in EngineConfig().to_dict()

    @pytest.mark.parametrize(
        "values",
        [
            {"lock_timeout_seconds": 0},
            {"max_resolution_depth": -1},
            {"max_dependency_fanout": 0},
            {"max_resolution_depth": "deep"},
        ],
    )
    def test_invalid_values(self, values):
        from templar.config_manager import ConfigError, EngineConfig

        with pytest.raises(ConfigError):
            EngineConfig.from_dict(values)


class TestConfigManager:
    """Test TOML load/save."""

    def test_missing_file_gives_defaults(self):
        """Test defaults when no config file exists."""
        from templar.config_manager import ConfigManager, EngineConfig

        assert ConfigManager.load_config() == EngineConfig()

    def test_load_from_custom_path(self, tmp_path):
        from templar.config_manager import ConfigManager

        config_file = tmp_path / "engine.toml"
        config_file.write_text('data_dir = "/srv/templar"\nmax_resolution_depth = 4\n')
        config_file.chmod(0o600)

        config = ConfigManager.load_config(config_file)

        assert config.data_dir == "/srv/templar"
        assert config.max_resolution_depth == 4
        assert config.max_dependency_fanout == 64

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        from templar.config_manager import ConfigManager

        config_file = tmp_path / "from-env.toml"
        config_file.write_text("lock_timeout_seconds = 1.5\n")
        monkeypatch.setenv("TEMPLAR_CONFIG", str(config_file))

        assert ConfigManager.load_config().lock_timeout_seconds == 1.5

    def test_missing_custom_path_raises(self, tmp_path):
        from templar.config_manager import ConfigError, ConfigManager

        with pytest.raises(ConfigError, match="not found"):
            ConfigManager.load_config(tmp_path / "nope.toml")

    def test_invalid_toml_raises(self, tmp_path):
        from templar.config_manager import ConfigError, ConfigManager

        config_file = tmp_path / "broken.toml"
        config_file.write_text("data_dir = \n")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config(config_file)

    def test_insecure_permissions_fixed(self, tmp_path):
        from templar.config_manager import ConfigManager

        config_file = tmp_path / "open.toml"
        config_file.write_text("max_dependency_fanout = 8\n")
        config_file.chmod(0o644)

        ConfigManager.load_config(config_file)

        assert stat.S_IMODE(config_file.stat().st_mode) == 0o600

    def test_save_then_load(self, tmp_path):
        """Test saved config round-trips with secure permissions."""
        from templar.config_manager import ConfigManager, EngineConfig

        config_file = tmp_path / "saved.toml"
        config = EngineConfig(data_dir=str(tmp_path / "data"), audit_log=str(tmp_path / "a.jsonl"))

        written = ConfigManager.save_config(config, config_file)

        assert written == config_file.resolve()
        assert stat.S_IMODE(config_file.stat().st_mode) == 0o600
        assert ConfigManager.load_config(config_file) == config

    def test_save_preserves_comments(self, tmp_path):
        from templar.config_manager import ConfigManager, EngineConfig

        config_file = tmp_path / "commented.toml"
        config_file.write_text("# engine settings\nmax_resolution_depth = 3\n")

        ConfigManager.save_config(EngineConfig(max_resolution_depth=5), config_file)

        text = config_file.read_text()
        assert "# engine settings" in text
        assert "max_resolution_depth = 5" in text

    def test_save_default_location(self, isolate_templar_home):
        """Test saving without a path writes under the isolated home."""
        from templar.config_manager import ConfigManager, EngineConfig

        written = ConfigManager.save_config(EngineConfig())

        assert written == Path(isolate_templar_home) / ".templar" / "config.toml"
        assert written.exists()
