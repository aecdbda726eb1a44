"""
Configuration management for translate-mirror.

Handles loading configuration from YAML files and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if present (before Settings initialization)
load_dotenv()


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    database_path: Path = Field(default=Path("./translate_mirror.duckdb"))
    logs: Path = Field(default=Path("./logs"))
    # Web root used to detect requests for real files; None disables the check
    document_root: Path | None = Field(default=None)

    @field_validator("database_path", "logs", "document_root")
    @classmethod
    def expand_path(cls, v: Path | None) -> Path | None:
        """Expand user home directory and make path absolute."""
        if v is None:
            return None
        return Path(v).expanduser().resolve()


class LanguageConfig(BaseModel):
    """A language entry used to seed the registry."""

    name: str
    prefix: str
    path: str = Field(default="")
    description: str = Field(default="")


class RoutingConfig(BaseModel):
    """Request paths that never carry language semantics."""

    system_prefixes: list[str] = Field(
        default_factory=lambda: ["admin", "api", "static", "media", "cron"]
    )
    feed_segments: list[str] = Field(default_factory=lambda: ["feed", "rdf", "rss", "rss2", "atom"])
    asset_extensions: list[str] = Field(
        default_factory=lambda: [
            "css", "js", "jpg", "jpeg", "png", "gif", "svg", "ico",
            "woff", "woff2", "ttf", "eot", "pdf", "zip", "map",
        ]
    )
    # Operator-managed paths excluded from language handling
    exclude_paths: list[str] = Field(default_factory=list)


class PipelineConfig(BaseModel):
    """Configuration for the translation job pipeline."""

    staleness_minutes: int = Field(default=5, ge=1, le=1440)
    # NEW jobs are only claimable once they are at least this old
    processing_delay_minutes: int = Field(default=0, ge=0, le=1440)
    watched_fields: list[str] = Field(default_factory=lambda: ["title", "body", "excerpt"])
    # Also watch every custom field found on the entity
    watch_custom_fields: bool = Field(default=True)
    edit_debounce_seconds: float = Field(default=1.0, ge=0.0, le=3600.0)
    analyze_batch_size: int = Field(default=50, ge=1, le=1000)
    default_kinds: list[str] = Field(default_factory=lambda: ["post"])


class ResolutionConfig(BaseModel):
    """Configuration for request-time resolution."""

    max_depth: int = Field(default=10, ge=1, le=50)


class TranslationConfig(BaseModel):
    """Configuration for the LLM translation executor."""

    default_model: str = Field(default="anthropic/claude-3.5-sonnet")
    base_url: str = Field(default="https://openrouter.ai/api/v1")
    source_language: str = Field(default="English")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens_per_request: int = Field(default=4096, ge=256, le=32000)
    timeout_seconds: float = Field(default=120.0, ge=5.0, le=600.0)
    max_retries: int = Field(default=3, ge=1, le=10)
    brand_tone: str = Field(default="")
    glossary_terms: list[str] = Field(default_factory=list)
    # OpenRouter API key (falls back to OPENROUTER_API_KEY)
    openrouter_api_key: str = Field(default="")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO")
    file: Path | None = Field(default=Path("./logs/translate_mirror.log"))
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    max_file_size_mb: int = Field(default=10, ge=1, le=100)
    backup_count: int = Field(default=5, ge=1, le=20)


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = Field(default="translate-mirror")
    description: str = Field(default="")


class Settings(BaseSettings):
    """Main settings class that combines all configurations."""

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix for simpler env vars
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Configuration sections
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    languages: list[LanguageConfig] = Field(default_factory=list)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable fallbacks for API keys."""
        super().__init__(**data)
        if not self.translation.openrouter_api_key:
            self.translation.openrouter_api_key = os.getenv("OPENROUTER_API_KEY", "")

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load settings from a YAML file, with environment variable overrides."""
        path = Path(path)
        if not path.exists():
            # Return defaults if file doesn't exist
            return cls()

        with open(path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        # Process environment variable substitutions in YAML values
        yaml_config = _substitute_env_vars(yaml_config)

        return cls(**yaml_config)


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            result[key] = os.getenv(env_var, "")
        elif isinstance(value, list):
            result[key] = [
                _substitute_env_vars(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


def load_config(path: Path | str | None = None) -> Settings:
    """
    Load configuration from YAML file or return defaults.

    Args:
        path: Path to YAML config file. If None, looks for config.yaml in current directory.

    Returns:
        Settings instance with merged YAML and environment configurations.
    """
    if path is None:
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(".translate-mirror.yaml"),
        ]
        for p in default_paths:
            if p.exists():
                path = p
                break

    if path is not None:
        return Settings.from_yaml(path)

    return Settings()


DEFAULT_CONFIG = """# translate-mirror configuration
project:
  name: "my-site"
  description: "Multilingual mirrors for site content"

paths:
  database_path: "./translate_mirror.duckdb"
  logs: "./logs"
  # Web root; requests that hit a real file there never get a language
  # document_root: "/var/www/html"

# Seed languages (used by `translate-mirror init` when the registry is empty)
languages:
  - name: "French"
    prefix: "fr"
    path: "fr"
  - name: "Spanish"
    prefix: "es"

routing:
  system_prefixes: ["admin", "api", "static", "media", "cron"]
  feed_segments: ["feed", "rdf", "rss", "rss2", "atom"]
  exclude_paths: []

pipeline:
  # Minutes before a processing job counts as stuck
  staleness_minutes: 5
  # Minutes a NEW job waits before it can be claimed
  processing_delay_minutes: 0
  watched_fields: ["title", "body", "excerpt"]
  watch_custom_fields: true
  edit_debounce_seconds: 1
  analyze_batch_size: 50
  default_kinds: ["post"]

resolution:
  max_depth: 10

translation:
  default_model: "anthropic/claude-3.5-sonnet"
  source_language: "English"
  temperature: 0.3
  # openrouter_api_key: ${OPENROUTER_API_KEY}

logging:
  level: "INFO"
  file: "./logs/translate_mirror.log"
"""


def create_default_config(path: Path | str = "config.yaml") -> None:
    """Create a default configuration file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
