"""
Configuration management for dockview.

Settings are resolved once at startup, lowest priority first:
  1. Defaults (the Config dataclass)
  2. YAML file at ~/.config/dockview/config.yaml (or --config PATH)
  3. Environment: DOCKER_HOST, DOCKVIEW_RUNTIME=container
  4. Command line flags

Architecture:
- Config: flat, typed settings consumed by main/workers
- ConfigManager: loads and merges the YAML file, tolerates a missing or
  unreadable file (defaults with a logged warning)
- build_parser / load_config: argparse front end and the full resolution
"""

import argparse
import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DOCKER_HOST_ENV = "DOCKER_HOST"
RUNTIME_ENV = "DOCKVIEW_RUNTIME"
RUNTIME_CONTAINER = "container"
MIN_DOCKER_INTERVAL_MS = 100


@dataclass
class Config:
    """Resolved application configuration."""
    host: Optional[str] = None
    docker_interval_ms: int = 1000
    gui: bool = True
    in_container: bool = False
    timeout: int = 120
    status_capacity: int = 5
    status_ttl: float = 4.0
    log_tail: int = 200
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def docker_interval(self) -> float:
        """Polling interval in seconds."""
        return self.docker_interval_ms / 1000.0

    def validate(self) -> "Config":
        if self.docker_interval_ms < MIN_DOCKER_INTERVAL_MS:
            raise ConfigError(f"docker_interval_ms must be at least {MIN_DOCKER_INTERVAL_MS}, got {self.docker_interval_ms}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.status_capacity < 1:
            raise ConfigError(f"status_capacity must be at least 1, got {self.status_capacity}")
        if self.log_tail < 1:
            raise ConfigError(f"log_tail must be at least 1, got {self.log_tail}")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ConfigError(f"Unknown log level: {self.log_level}")
        self.log_level = self.log_level.upper()
        return self


class ConfigManager:
    """YAML configuration file loader."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path.home() / ".config" / "dockview" / "config.yaml"

    def load(self) -> Dict[str, Any]:
        """Read the YAML file; a missing file yields an empty mapping."""
        if not self.config_file.exists():
            logger.debug(f"No configuration file at {self.config_file}")
            return {}
        try:
            with open(self.config_file, 'r') as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config {self.config_file}: {e}, using defaults")
            return {}
        if not isinstance(user_config, dict):
            logger.warning(f"Ignoring {self.config_file}: top level is not a mapping")
            return {}
        logger.debug(f"Loaded configuration from {self.config_file}")
        return user_config

    def merge(self, config: Config, updates: Mapping[str, Any]) -> Config:
        """Merge known keys into config, coercing to the field's type."""
        known = {f.name: f for f in dataclasses.fields(config)}
        for key, value in updates.items():
            if key not in known:
                logger.warning(f"Unknown configuration key '{key}' ignored")
                continue
            setattr(config, key, _coerce(key, value, getattr(Config(), key)))
        return config


def _coerce(key: str, value: Any, default: Any) -> Any:
    if value is None:
        return None
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e
    return str(value)


def read_docker_host(cli_host: Optional[str], environ: Mapping[str, str]) -> Optional[str]:
    """The --host flag takes priority over DOCKER_HOST."""
    if cli_host:
        return cli_host
    return environ.get(DOCKER_HOST_ENV) or None


def check_if_containerised(environ: Mapping[str, str]) -> bool:
    return environ.get(RUNTIME_ENV) == RUNTIME_CONTAINER


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockview",
        description="Terminal dashboard to view and control Docker containers",
    )
    parser.add_argument("--host", help="Docker host, e.g. unix:///var/run/docker.sock or tcp://10.0.0.2:2375")
    parser.add_argument("-d", "--docker-interval", dest="docker_interval_ms", type=int,
                        help="Docker update interval in ms (default 1000, minimum 100)")
    parser.add_argument("-g", "--no-gui", dest="gui", action="store_false", default=None,
                        help="Run headless, only logging errors (debug mode)")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--config", type=Path, help="Path to YAML configuration file")
    return parser


def load_config(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Resolve defaults, YAML file, environment and command line into a Config."""
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)

    manager = ConfigManager(args.config)
    resolved = manager.merge(Config(), manager.load())

    resolved.host = read_docker_host(args.host, environ) or resolved.host
    if check_if_containerised(environ):
        resolved.in_container = True

    if args.docker_interval_ms is not None:
        resolved.docker_interval_ms = args.docker_interval_ms
    if args.gui is not None:
        resolved.gui = args.gui
    if args.log_level:
        resolved.log_level = args.log_level

    return resolved.validate()
