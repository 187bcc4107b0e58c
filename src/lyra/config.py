"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_WEBHOOK_URL = "https://zuefer-kilincarslan-n8n.zk-ai.agency/webhook/lyra"


class RelayConfig(BaseModel):
    webhook_url: str = DEFAULT_WEBHOOK_URL
    auth_token: Optional[str] = None  # shared secret, never sent to clients
    auth_header: str = "WEBHOOK_AUTH_TOKEN"
    timeout: float = 60.0

    @field_validator("auth_token", mode="before")
    @classmethod
    def _blank_token_is_unset(cls, value: object) -> object:
        # "${WEBHOOK_AUTH_TOKEN}" survives interpolation when the variable is unset
        if isinstance(value, str) and (not value.strip() or _ENV_VAR_PATTERN.fullmatch(value)):
            return None
        return value


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8787


class ClientConfig(BaseModel):
    relay_url: str = "http://localhost:8787/"
    api_key: Optional[str] = None
    timeout: float = 120.0

    @field_validator("api_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and (not value.strip() or _ENV_VAR_PATTERN.fullmatch(value)):
            return None
        return value


class StorageConfig(BaseModel):
    db_path: str = "./data/lyra.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    relay: RelayConfig = Field(default_factory=RelayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
