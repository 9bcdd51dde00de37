"""Tests for config module."""

import tomllib
from pathlib import Path

import pytest

from atlas_orchestrator.config import (
    CONFIG_ENV_VAR,
    Config,
    create_default_config,
    get_config_path,
    load_config,
)
from atlas_orchestrator.constants import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT


class TestConfig:
    """Tests for Config model."""

    def test_config_creation_with_defaults(self, tmp_path: Path) -> None:
        """Test creating Config with only the required paths."""
        config = Config.model_validate({"global": {"paths": {"state_file": str(tmp_path / "state.json")}}})

        assert config.state_file == tmp_path / "state.json"
        assert config.executor_binary == "atlas"
        assert config.executor_search_dir is None
        assert config.env_name == "tf"
        assert config.poll_interval == DEFAULT_POLL_INTERVAL
        assert config.timeout == DEFAULT_TIMEOUT
        assert config.dev_url == ""
        assert config.cloud.token == ""

    def test_config_path_expansion(self) -> None:
        """Test that ~ is expanded in path fields."""
        config = Config.model_validate(
            {
                "global": {
                    "paths": {"state_file": "~/state.json"},
                    "executor": {"search_dir": "~/bin"},
                }
            }
        )

        assert "~" not in str(config.state_file)
        assert config.state_file.is_absolute()
        assert config.executor_search_dir.is_absolute()

    def test_empty_search_dir_is_unset(self, tmp_path: Path) -> None:
        """Test that an empty search_dir means PATH only."""
        config = Config.model_validate(
            {"global": {"paths": {"state_file": str(tmp_path / "s.json")}, "executor": {"search_dir": ""}}}
        )

        assert config.executor_search_dir is None

    def test_config_validation_poll_interval_positive(self, tmp_path: Path) -> None:
        """Test that poll_interval must be > 0."""
        with pytest.raises(ValueError):
            Config.model_validate(
                {
                    "global": {
                        "paths": {"state_file": str(tmp_path / "s.json")},
                        "migrate": {"poll_interval": 0},
                    }
                }
            )

    def test_config_save_and_load_roundtrip(self, tmp_path: Path) -> None:
        """Test that config can be saved and loaded correctly."""
        config_file = tmp_path / "config.toml"
        original_config = create_default_config()
        original_config.global_config.paths.state_file = tmp_path / "state.json"
        original_config.global_config.migrate.env_name = "prod"
        original_config.global_config.migrate.timeout = 30.0
        original_config.cloud.repo = "app"

        original_config.save(config_file)
        loaded_config = load_config(config_file)

        assert loaded_config.state_file == tmp_path / "state.json"
        assert loaded_config.env_name == "prod"
        assert loaded_config.timeout == 30.0
        assert loaded_config.cloud.repo == "app"
        assert loaded_config.executor_search_dir is None

    def test_config_save_writes_sections(self, tmp_path: Path) -> None:
        """Test that saved settings use the global section names."""
        config_file = tmp_path / "nested" / "config.toml"

        create_default_config().save(config_file)

        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        assert set(data["global"]) == {"paths", "executor", "migrate"}
        assert data["global"]["executor"]["search_dir"] == ""


class TestGetConfigPath:
    """Tests for get_config_path function."""

    def test_get_config_path_default(self, monkeypatch) -> None:
        """Test default config path when no env var is set."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        path = get_config_path()

        assert path.is_absolute()
        assert str(path).endswith(".config/atlas-orchestrator/config.toml")
        assert "~" not in str(path)

    def test_get_config_path_from_env(self, monkeypatch, tmp_path: Path) -> None:
        """Test that ATLAS_ORCHESTRATOR_CONFIG takes priority."""
        custom_path = tmp_path / "custom-config.toml"
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom_path))

        assert get_config_path() == custom_path


class TestCreateDefaultConfig:
    """Tests for create_default_config function."""

    def test_create_default_config(self) -> None:
        """Test that create_default_config returns the packaged defaults."""
        config = create_default_config()

        assert isinstance(config, Config)
        assert config.env_name == "tf"
        assert config.poll_interval == 1.0
        assert config.timeout == 1200.0
        assert config.state_file.is_absolute()
        assert "~" not in str(config.state_file)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_config_from_file(self, tmp_path: Path) -> None:
        """Test loading config from existing TOML file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            f"""
[global.paths]
state_file = "{(tmp_path / "state.json").as_posix()}"

[global.executor]
binary = "atlas-ee"

[global.migrate]
env_name = "ci"
poll_interval = 0.5
dev_url = "docker://postgres/16/dev"

[cloud]
token = "aci_token"
""",
            encoding="utf-8",
        )

        config = load_config(config_file)

        assert config.state_file == tmp_path / "state.json"
        assert config.executor_binary == "atlas-ee"
        assert config.env_name == "ci"
        assert config.poll_interval == 0.5
        assert config.dev_url == "docker://postgres/16/dev"
        assert config.cloud.token == "aci_token"

    def test_load_config_handles_partial_config(self, tmp_path: Path) -> None:
        """Test that missing fields use default values."""
        config_file = tmp_path / "partial.toml"
        config_file.write_text('[global.migrate]\nenv_name = "ci"\n', encoding="utf-8")

        config = load_config(config_file)

        assert config.env_name == "ci"
        assert config.timeout == 1200.0
        assert config.executor_binary == "atlas"
        assert config.state_file.name == "state.json"

    def test_load_config_creates_default_if_missing(self, tmp_path: Path) -> None:
        """Test that the packaged template is copied to a missing path."""
        config_file = tmp_path / "nonexistent.toml"

        config = load_config(config_file)

        assert config_file.exists()
        assert config.env_name == "tf"

    def test_load_config_invalid_toml(self, tmp_path: Path) -> None:
        """Test that invalid TOML raises a ValueError."""
        config_file = tmp_path / "invalid.toml"
        config_file.write_text("this is not valid TOML [[[", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(config_file)

    def test_load_config_handles_copy_error(self, tmp_path: Path, monkeypatch) -> None:
        """Test graceful handling when the template cannot be copied."""
        config_file = tmp_path / "readonly.toml"

        def fail_copy(path: Path) -> None:
            raise PermissionError("Read-only filesystem")

        monkeypatch.setattr("atlas_orchestrator.config._copy_default_config", fail_copy)

        config = load_config(config_file)

        assert isinstance(config, Config)
        assert not config_file.exists()
