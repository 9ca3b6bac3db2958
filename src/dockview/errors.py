"""
Error types for dockview.

Two families live here:
  - Exceptions raised by the backend and config layers (DockviewError tree)
  - AppError: the fatal conditions that latch AppData and end the process

Only connection-level failures ever become an AppError. Everything else is
caught by the worker that hit it and turned into a transient status message.
"""

from enum import Enum


class DockviewError(Exception):
    """Base class for all dockview errors."""


class ConfigError(DockviewError):
    """Invalid configuration value (CLI flag, env var or YAML file)."""


class DockerError(DockviewError):
    """Base class for errors talking to the Docker daemon."""


class DockerConnectionError(DockerError):
    """The daemon could not be reached."""


class DockerCommandError(DockerError):
    """A single API call failed while the connection itself looks healthy."""


class AppError(Enum):
    DOCKER_CONNECT = "docker_connect"
    DOCKER_CONNECTION_LOST = "docker_connection_lost"

    def __str__(self) -> str:
        if self is AppError.DOCKER_CONNECT:
            return "Unable to access docker daemon"
        return "Lost connection to docker daemon"
