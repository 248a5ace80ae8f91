"""Configuration: environment settings plus the per-project JSON config."""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from doctype.exceptions import ConfigurationError
from doctype.injector import atomic_write_text
from doctype.map_store import DEFAULT_MAP_FILE

logger = logging.getLogger("doctype.config")

DEFAULT_CONFIG_FILE = "doctype.config.json"


class Settings(BaseSettings):
    """
    Process-wide settings read from the environment and ``.env``.

    Nothing here is required: without a writer model, fixes use
    placeholder content.
    """

    # Writer endpoint
    llm_base_url: str = Field(
        default="",
        description="OpenAI-compatible base URL for the writer model"
    )
    llm_api_key: str = Field(
        default="",
        description="API key for the writer endpoint"
    )
    # Fallback key name shared with OpenRouter setups
    openrouter_api_key: str = Field(default="")
    writer_model: str = Field(
        default="",
        description="Model used to regenerate documentation (empty = placeholders only)"
    )
    llm_timeout: int = Field(
        default=120,
        description="Seconds allowed for one completion call"
    )

    # Fix pipeline
    doctype_concurrency: int = Field(
        default=5,
        ge=1,
        description="Worker pool width for generation and injection"
    )
    doctype_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Generation attempts per drifted symbol"
    )
    doctype_retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Seconds between generation attempts"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="text",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @property
    def resolved_api_key(self) -> Optional[str]:
        """LLM_API_KEY, then OPENROUTER_API_KEY, then a Docker secret file."""
        key = self.llm_api_key or self.openrouter_api_key
        if not key:
            key_file = os.getenv("OPENROUTER_API_KEY_FILE")
            if key_file and os.path.exists(key_file):
                with open(key_file) as f:
                    key = f.read().strip()
        return key or None

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ('text', 'json'):
            raise ValueError("Invalid log format. Must be 'text' or 'json'")
        return v_lower

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# ---------------------------------------------------------------------------
# Project config file (doctype.config.json)
# ---------------------------------------------------------------------------

class ProjectConfig(BaseModel):
    """Contents of ``doctype.config.json``. Paths are relative to the file."""

    project_name: str = Field(default="", alias="projectName")
    project_root: str = Field(default=".", alias="projectRoot")
    docs_folder: str = Field(default="docs", alias="docsFolder")
    map_file: str = Field(default=DEFAULT_MAP_FILE, alias="mapFile")

    class Config:
        populate_by_name = True

    @field_validator('project_root', 'docs_folder', 'map_file')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


def load_project_config(path: Path | str) -> ProjectConfig:
    """Read and validate a project config file.

    Raises:
        ConfigurationError: if the file is missing, not JSON, or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", path=str(path))
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}", path=str(path))
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config file {path}: expected a JSON object", path=str(path))
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}", path=str(path))


def save_project_config(config: ProjectConfig, path: Path | str) -> None:
    payload = json.dumps(config.model_dump(by_alias=True), indent=2) + "\n"
    atomic_write_text(path, payload)
    logger.debug("Wrote project config to %s", path)


def resolve_project(
    config_path: Optional[Path | str] = None,
) -> tuple[ProjectConfig, Path]:
    """Load the project config if present, else defaults rooted at the cwd.

    Returns:
        ``(config, config_dir)`` where *config_dir* anchors relative paths.
    """
    path = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_FILE
    if path.exists():
        return load_project_config(path), path.resolve().parent
    if config_path:
        raise ConfigurationError(f"Config file not found: {path}", path=str(path))
    logger.debug("No %s found, using defaults", DEFAULT_CONFIG_FILE)
    return ProjectConfig(), Path.cwd()


def resolve_map_path(
    config: ProjectConfig,
    config_dir: Path,
    override: Optional[Path | str] = None,
) -> Path:
    """``--map`` wins (relative to the cwd); otherwise ``mapFile`` under *config_dir*."""
    if override:
        return Path(override).resolve()
    return (config_dir / config.map_file).resolve()


def resolve_base_dir(config: ProjectConfig, config_dir: Path) -> Path:
    """Directory that code refs and doc paths in the map are relative to."""
    return (config_dir / config.project_root).resolve()
