"""Unit tests for mirror configuration with pydantic-settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mirror.config import MirrorConfig, get_config, reset_config

MIRROR_ENV_VARS = [
    "MIRROR_ROOT",
    "MIRROR_KEY_ROOT",
    "DATABASE_URL",
    "GITHUB_API_URL",
    "GITHUB_TOKEN",
    "INCREMENTAL_FAN_OUT",
    "DELETE_PAGE_SIZE",
    "REINDEX_ENABLED",
    "REINDEX_ACCOUNT_ID",
    "REINDEX_API_TOKEN",
    "MIRROR_LOG_LEVEL",
    "MIRROR_LOG_FORMAT",
    "FILTER_ALLOWED_EXTENSIONS",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No mirror variables in the environment and no .env file in cwd."""
    for key in MIRROR_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestMirrorConfig:
    def test_defaults(self, clean_env):
        config = MirrorConfig()

        assert config.mirror_root == Path("mirror-data")
        assert config.mirror_key_root == "brains"
        assert config.database_url == "sqlite+aiosqlite:///mirror.db"
        assert config.github_api_url == "https://api.github.com"
        assert config.github_token.get_secret_value() == ""
        assert config.incremental_fan_out == 1
        assert config.delete_page_size == 1000
        assert config.summary_topic_limit == 15
        assert config.summary_recent_limit == 10
        assert config.reindex_enabled is False
        assert config.mirror_log_level == "INFO"
        assert config.allowed_extensions == frozenset(
            {"md", "txt", "json", "yaml", "yml", "toml", "rst", "adoc"}
        )
        assert ".env" in config.denied_filenames
        assert "node_modules" in config.denied_directories

    def test_environment_override(self, clean_env):
        clean_env.setenv("MIRROR_ROOT", "/srv/mirror")
        clean_env.setenv("INCREMENTAL_FAN_OUT", "4")
        clean_env.setenv("GITHUB_API_URL", "https://ghe.example.test/api/v3/")

        config = MirrorConfig()

        assert config.mirror_root == Path("/srv/mirror")
        assert config.incremental_fan_out == 4
        assert config.github_api_url == "https://ghe.example.test/api/v3"

    def test_dotenv_file_loaded(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("DELETE_PAGE_SIZE=250\nMIRROR_LOG_LEVEL=debug\n")

        config = MirrorConfig()

        assert config.delete_page_size == 250
        assert config.mirror_log_level == "DEBUG"

    def test_secret_not_in_repr(self, clean_env):
        clean_env.setenv("GITHUB_TOKEN", "ghs_supersecret")

        config = MirrorConfig()

        assert "ghs_supersecret" not in repr(config)
        assert config.github_token.get_secret_value() == "ghs_supersecret"

    def test_frozen(self, clean_env):
        config = MirrorConfig()

        with pytest.raises(ValidationError):
            config.delete_page_size = 5

    @pytest.mark.parametrize(
        "key,value",
        [
            ("MIRROR_LOG_LEVEL", "verbose"),
            ("INCREMENTAL_FAN_OUT", "0"),
            ("DELETE_PAGE_SIZE", "0"),
        ],
    )
    def test_invalid_values_rejected(self, clean_env, key, value):
        clean_env.setenv(key, value)

        with pytest.raises(ValidationError):
            MirrorConfig()

    def test_reindex_requires_credentials(self, clean_env):
        clean_env.setenv("REINDEX_ENABLED", "true")

        with pytest.raises(ValidationError, match="REINDEX_ACCOUNT_ID"):
            MirrorConfig()

        clean_env.setenv("REINDEX_ACCOUNT_ID", "acc")
        with pytest.raises(ValidationError, match="REINDEX_API_TOKEN"):
            MirrorConfig()

        clean_env.setenv("REINDEX_API_TOKEN", "tok")
        assert MirrorConfig().reindex_enabled is True


class TestConfigSingleton:
    def test_cached(self, clean_env):
        assert get_config() is get_config()

    def test_reset(self, clean_env):
        first = get_config()
        reset_config()

        assert get_config() is not first
