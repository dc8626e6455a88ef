"""Configuration management with pydantic-settings for the repository mirror.

- pydantic-settings v2 for type-safe configuration
- Automatic .env file loading with proper precedence
- SecretStr for credentials (GitHub token, reindex API token)
- Frozen config (immutable after load)

References:
- Pydantic Settings: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("repo_mirror.config")

__all__ = [
    "DEFAULT_ALLOWED_EXTENSIONS",
    "DEFAULT_DENIED_DIRECTORIES",
    "DEFAULT_DENIED_FILENAMES",
    "SUMMARY_FILENAME",
    "MirrorConfig",
    "get_config",
    "reset_config",
]

# Filter policy defaults
DEFAULT_ALLOWED_EXTENSIONS = "md,txt,json,yaml,yml,toml,rst,adoc"
DEFAULT_DENIED_FILENAMES = (
    ".env,.env.local,.env.production,.mcp.json,credentials.json,"
    "secrets.json,.npmrc,.pypirc"
)
DEFAULT_DENIED_DIRECTORIES = "node_modules,.git,.github,dist,build,__pycache__"

# Reserved per-tenant key holding the JSON-encoded summary
SUMMARY_FILENAME = "_summary.json"


class MirrorConfig(BaseSettings):
    """Configuration for the repository mirror.

    Loads from (in order of precedence):
    1. Environment variables (highest priority)
    2. .env file in working directory
    3. Default values (lowest priority)

    Attributes:
        mirror_root: Filesystem directory backing the blob mirror
        mirror_key_root: First key segment of every tenant prefix
        database_url: SQLAlchemy async URL for installation records
        github_api_url: Source hosting API base URL
        github_token: Token used for archive and contents requests
        incremental_fan_out: Concurrent per-file fetches during a push sync
        delete_page_size: Keys listed and deleted per page on tenant purge
        reindex_enabled: Trigger the external semantic index after mutations
        filter_allowed_extensions: Comma-separated extension allow-list
        filter_denied_filenames: Comma-separated sensitive filename deny-list
        filter_denied_directories: Comma-separated directory deny-list
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        validate_default=True,
        frozen=True,
        extra="ignore",
    )

    # --- Storage ---
    mirror_root: Path = Field(
        default=Path("mirror-data"),
        description="Directory backing the blob mirror",
    )
    mirror_key_root: str = Field(
        default="brains",
        min_length=1,
        description="First key segment of every tenant prefix ({root}/{tenant_id})",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///mirror.db",
        description="SQLAlchemy async database URL for installation records",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # --- Source hosting API ---
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )
    github_token: SecretStr = Field(
        default=SecretStr(""),
        description="Installation or personal access token for repository reads",
    )
    github_connect_timeout: float = Field(default=5.0, gt=0, le=60)
    github_read_timeout: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Read timeout (seconds); covers the full archive download",
    )
    github_max_retries: int = Field(default=3, ge=0, le=10)

    # --- Sync ---
    incremental_fan_out: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Per-file fetches in flight during a push sync (1 = sequential)",
    )
    delete_page_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Keys listed and bulk-deleted per page when purging a tenant",
    )
    summary_topic_limit: int = Field(default=15, ge=1, le=100)
    summary_recent_limit: int = Field(default=10, ge=1, le=100)

    # --- Reindex trigger ---
    reindex_enabled: bool = Field(
        default=False,
        description="Trigger the external semantic index after every mutating sync",
    )
    reindex_api_url: str = Field(default="https://api.cloudflare.com/client/v4")
    reindex_account_id: str = Field(default="")
    reindex_api_token: SecretStr = Field(default=SecretStr(""))
    reindex_instance_name: str = Field(default="repo-mirror")
    reindex_timeout: float = Field(default=10.0, gt=0, le=120)

    # --- Filter policy ---
    filter_allowed_extensions: str = Field(
        default=DEFAULT_ALLOWED_EXTENSIONS,
        description="Comma-separated extensions mirrored (case-insensitive, no dot)",
    )
    filter_denied_filenames: str = Field(
        default=DEFAULT_DENIED_FILENAMES,
        description="Comma-separated filenames never mirrored (case-insensitive)",
    )
    filter_denied_directories: str = Field(
        default=DEFAULT_DENIED_DIRECTORIES,
        description="Comma-separated directory names excluded at any depth",
    )

    # --- Logging ---
    mirror_log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    mirror_log_format: str = Field(default="json", description="json or text")

    @property
    def allowed_extensions(self) -> frozenset[str]:
        return frozenset(
            p.strip().lower().lstrip(".")
            for p in self.filter_allowed_extensions.split(",")
            if p.strip()
        )

    @property
    def denied_filenames(self) -> frozenset[str]:
        return frozenset(
            p.strip().lower() for p in self.filter_denied_filenames.split(",") if p.strip()
        )

    @property
    def denied_directories(self) -> frozenset[str]:
        return frozenset(
            p.strip() for p in self.filter_denied_directories.split(",") if p.strip()
        )

    @field_validator("github_api_url", "reindex_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("mirror_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_reindex_config(self) -> "MirrorConfig":
        """Validate reindex credentials are present when enabled."""
        if self.reindex_enabled:
            if not self.reindex_account_id:
                raise ValueError("REINDEX_ACCOUNT_ID required when REINDEX_ENABLED=true")
            if not self.reindex_api_token.get_secret_value():
                raise ValueError("REINDEX_API_TOKEN required when REINDEX_ENABLED=true")
        return self


@lru_cache(maxsize=1)
def get_config() -> MirrorConfig:
    """Get global configuration singleton.

    First call loads from environment + .env file, subsequent calls return
    the cached instance.

    Raises:
        ValidationError: If configuration values are invalid.
    """
    return MirrorConfig()


def reset_config() -> None:
    """Reset configuration singleton for testing."""
    get_config.cache_clear()
