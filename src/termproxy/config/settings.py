"""Configuration management for termproxy.

Loads settings from a YAML configuration file with environment variable
overrides for deployment values (listen address, default key path).
Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/termproxy.yaml")


class TargetConfig(BaseModel):
    id: str = Field(min_length=1, description="Logical target identifier used by clients")
    host: str = Field(default="", description="Address of the remote machine")
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(default="student")
    private_key_path: str | None = Field(
        default=None, description="Private key file; falls back to ssh.default_private_key_path"
    )
    display_name: str | None = Field(default=None)
    known_hosts: str | None = Field(
        default=None, description="known_hosts file pinning this target's host key"
    )


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001, ge=1, le=65535)
    websocket_path: str = Field(default="/ws/terminal")


class SSHConfig(BaseModel):
    connect_timeout: float = Field(default=30.0, gt=0)
    keepalive_interval: float = Field(default=10.0, gt=0)
    keepalive_count_max: int = Field(default=3, gt=0)
    term_type: str = Field(default="xterm-256color")
    default_rows: int = Field(default=24, gt=0)
    default_cols: int = Field(default=80, gt=0)
    default_private_key_path: str | None = Field(default=None)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the termproxy server.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "TERMPROXY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    targets: list[TargetConfig] = Field(default_factory=list)
    server: ServerConfig = Field(default_factory=ServerConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Unprefixed PORT / HOST / SSH_PRIVATE_KEY_PATH take precedence over
    the YAML file when set.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply overrides from the unprefixed deployment variables."""
    port = os.environ.get("PORT", "")
    host = os.environ.get("HOST", "")
    key_path = os.environ.get("SSH_PRIVATE_KEY_PATH", "")

    if port or host:
        server = yaml_data.setdefault("server", {})
        if port:
            server["port"] = port
        if host:
            server["host"] = host

    if key_path:
        yaml_data.setdefault("ssh", {})["default_private_key_path"] = key_path
