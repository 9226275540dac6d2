"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TMDBConfig(BaseSettings):
    """Metadata provider client configuration."""

    api_token: str = ""
    base_url: str = "https://api.themoviedb.org"
    api_version: str = "3"
    timeout: float = 30.0
    # 40 requests per 10 seconds
    rate_limit: float = 4.0
    burst: int = 5
    max_retries: int = 3
    base_backoff: float = 1.0

    @field_validator("rate_limit")
    @classmethod
    def validate_rate_limit(cls, v: float) -> float:
        """Validate the request rate is positive."""
        if not v > 0:
            raise ValueError("rate_limit must be positive")
        return v

    @field_validator("burst", "max_retries")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


# Smallest cast cap that still yields a costar edge
MIN_CAST = 2


class PipelineConfig(BaseSettings):
    """Ingestion pipeline configuration."""

    max_pages: int = 100
    max_cast: int = 20
    max_workers: int = 4

    @field_validator("max_cast")
    @classmethod
    def validate_max_cast(cls, v: int) -> int:
        """The cast cap bounds edge growth and must be set."""
        if v < MIN_CAST:
            raise ValueError(f"max_cast must be at least {MIN_CAST} to produce any edge")
        return v


class RetrievalConfig(BaseSettings):
    """Query-side configuration."""

    search_limit: int = 10
    client_rate_limit: float = 0.5
    client_burst: int = 5
    idle_ttl: float = 600.0
    cleanup_interval: float = 300.0
    enable_client_limits: bool = True


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "logs/degrees.log"
    rotation: str = "10 MB"
    retention: str = "1 week"


class DatabaseConfig(BaseSettings):
    """Database configuration from environment variables."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # "memory" keeps the graph in-process (networkx) and needs no server.
    graph_backend: Literal["neo4j", "memory"] = Field(default="neo4j")

    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="degrees2024")
    neo4j_database: str = Field(default="neo4j")
    neo4j_max_pool_size: int = Field(default=50)

    # Pickle snapshot for the memory backend; empty keeps it purely in-process.
    memory_snapshot_path: str = Field(default="")


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    tmdb: TMDBConfig = Field(default_factory=TMDBConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Environment variables
    tmdb_api_token: str = ""

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win)."""
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If the YAML root is not a mapping
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Nested BaseSettings don't see flat env vars (NEO4J_PASSWORD) through the
        # parent model, so DatabaseConfig overrides are computed separately.
        env_overrides = cls().model_dump(exclude_defaults=True)

        db_env_overrides = DatabaseConfig().model_dump(exclude_defaults=True)
        if db_env_overrides:
            yaml_database = yaml_config.get("database", {})
            env_overrides["database"] = cls._deep_merge_dict(
                yaml_database if isinstance(yaml_database, dict) else {},
                db_env_overrides,
            )

        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    @property
    def api_token(self) -> str:
        """Provider bearer token; the flat TMDB_API_TOKEN env var wins."""
        return self.tmdb_api_token or self.tmdb.api_token

    def validate_config(self, *, require_api_token: bool = False) -> None:
        """Validate configuration settings.

        Args:
            require_api_token: Whether a provider token must be present (ingestion only)

        Raises:
            ValueError: If configuration is invalid
        """
        if require_api_token and not self.api_token:
            raise ValueError("TMDB API token required for ingestion (set TMDB_API_TOKEN)")

        if self.pipeline.max_workers < 1:
            raise ValueError("pipeline.max_workers must be at least 1")

        if not self.retrieval.client_rate_limit > 0:
            raise ValueError("retrieval.client_rate_limit must be positive")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(
    yaml_path: str | Path = "config/config.yaml", *, require_api_token: bool = False
) -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file
        require_api_token: Whether validation should insist on a provider token

    Returns:
        Loaded and validated Config instance
    """
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config(require_api_token=require_api_token)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
