"""
Docker API wrapper.

Thin layer over the docker-py SDK used exclusively by the DockerWorker once the
supervisor has handed the connection over. It provides:
  - connect/ping for the startup health check
  - container listing (one call, including stopped containers)
  - per-container CPU/memory statistics
  - lifecycle actions (start, stop, pause, unpause, restart, remove)
  - log retrieval

Error Handling:
  - Transport failures (socket unreachable, timeouts, broken responses) → DockerConnectionError
  - API errors (404, 409, 500 from the daemon) → DockerCommandError
  - Stats failures are never fatal: @docker_safe logs and returns a default

Dependencies:
  - docker>=7.0.0 (docker-py client)
  - requests (transport errors raised by docker-py)
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import docker
import requests

from .errors import DockerCommandError, DockerConnectionError
from .model import ContainerAction, ContainerInfo, ContainerStatus, PortBinding

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120


def docker_safe(default_return: Any = None) -> Callable:
    """
    Decorator for best-effort Docker calls (stats).

    Catches exceptions, logs them, and returns a default value so a single
    misbehaving container cannot break a reconciliation pass.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Docker operation failed in {func.__name__}: {e}")
                return default_return
        return wrapper
    return decorator


def translate_errors(func: Callable) -> Callable:
    """Re-raise docker-py and transport exceptions as dockview DockerErrors."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except docker.errors.APIError as e:
            raise DockerCommandError(e.explanation or str(e)) from e
        except requests.exceptions.RequestException as e:
            # Any transport failure; the caller pings to decide if it is fatal
            raise DockerConnectionError(str(e)) from e
        except docker.errors.DockerException as e:
            raise DockerCommandError(str(e)) from e
    return wrapper


def normalize_host(host: str) -> str:
    """Bare socket paths are accepted and turned into unix:// URLs."""
    if host.startswith("/"):
        return f"unix://{host}"
    return host


def parse_ports(raw_ports: Optional[List[Dict[str, Any]]]) -> List[PortBinding]:
    res = []
    for p in raw_ports or []:
        if "PrivatePort" not in p:
            continue
        res.append(PortBinding(
            private=int(p["PrivatePort"]),
            protocol=p.get("Type", "tcp"),
            public=int(p["PublicPort"]) if p.get("PublicPort") else None,
            ip=p.get("IP", ""),
        ))
    # Docker lists IPv4 and IPv6 bindings separately, in no particular order
    return sorted(set(res), key=lambda b: (b.private, b.protocol, b.public or 0, b.ip))


def parse_created(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value:
        try:
            dt = datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
            return int(dt.replace(tzinfo=timezone.utc).timestamp())
        except ValueError:
            return 0
    return 0


def calculate_cpu_percent(stats: Dict[str, Any]) -> float:
    cpu_stats = stats.get('cpu_stats', {})
    precpu_stats = stats.get('precpu_stats', {})
    cpu_usage = cpu_stats.get('cpu_usage', {}).get('total_usage', 0)
    precpu_usage = precpu_stats.get('cpu_usage', {}).get('total_usage', 0)
    system_cpu_usage = cpu_stats.get('system_cpu_usage', 0)
    presystem_cpu_usage = precpu_stats.get('system_cpu_usage', 0)
    online_cpus = cpu_stats.get('online_cpus') or len(cpu_stats.get('cpu_usage', {}).get('percpu_usage') or []) or 1
    cpu_delta = cpu_usage - precpu_usage
    system_delta = system_cpu_usage - presystem_cpu_usage
    if system_delta > 0 and cpu_delta > 0:
        return (cpu_delta / system_delta) * online_cpus * 100.0
    return 0.0


class DockerBackend:
    def __init__(self, client: "docker.DockerClient"):
        self.client = client

    @classmethod
    def connect(cls, host: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT) -> "DockerBackend":
        """
        Open a client for the given host, or the local default socket.

        Raises DockerConnectionError if the client cannot be created.
        """
        try:
            if host:
                client = docker.DockerClient(base_url=normalize_host(host), timeout=timeout)
            else:
                client = docker.from_env(timeout=timeout)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise DockerConnectionError(f"Cannot connect to docker at {host or 'default socket'}: {e}") from e
        logger.info(f"Docker client created for {host or 'default socket'}")
        return cls(client)

    def ping(self) -> None:
        """Raises DockerConnectionError unless the daemon answers."""
        try:
            ok = self.client.ping()
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise DockerConnectionError(f"Docker ping failed: {e}") from e
        if not ok:
            raise DockerConnectionError("Docker ping returned a non-OK response")

    @translate_errors
    def list_containers(self) -> List[ContainerInfo]:
        raw = self.client.api.containers(all=True)
        res = []
        for c in raw:
            names = c.get("Names") or []
            name = names[0].lstrip("/") if names else c["Id"][:12]
            res.append(ContainerInfo(
                id=c["Id"],
                short_id=c["Id"][:12],
                name=name,
                image=c.get("Image", "unknown"),
                status=ContainerStatus.parse(c.get("State")),
                state_text=c.get("Status", ""),
                created=parse_created(c.get("Created")),
                ports=parse_ports(c.get("Ports")),
                command=c.get("Command") or "",
            ))
        return res

    @docker_safe(default_return=(None, None, None))
    def get_container_stats(self, container_id: str) -> Tuple[Optional[float], Optional[int], Optional[int]]:
        stats = self.client.api.stats(container_id, stream=False)
        mem = stats.get('memory_stats', {})
        usage = mem.get('usage')
        if usage is not None:
            # cgroup v1 reports page cache under 'cache', v2 under 'inactive_file'
            cache = mem.get('stats', {}).get('inactive_file', mem.get('stats', {}).get('cache', 0))
            usage = max(0, usage - cache)
        return calculate_cpu_percent(stats), usage, mem.get('limit')

    @translate_errors
    def container_action(self, container_id: str, action: ContainerAction) -> None:
        container = self.client.containers.get(container_id)
        if action is ContainerAction.START:
            container.start()
        elif action is ContainerAction.STOP:
            container.stop()
        elif action is ContainerAction.PAUSE:
            container.pause()
        elif action is ContainerAction.UNPAUSE:
            container.unpause()
        elif action is ContainerAction.RESTART:
            container.restart()
        elif action is ContainerAction.REMOVE:
            container.remove(force=True)
        else:
            raise TypeError(f"Unhandled container action: {action!r}")
        logger.info(f"{action.value} {container_id[:12]}")

    @translate_errors
    def get_logs(self, container_id: str, tail: int = 200) -> List[str]:
        container = self.client.containers.get(container_id)
        logs_bytes = container.logs(tail=tail)
        return logs_bytes.decode('utf-8', errors='replace').splitlines()

    def close(self) -> None:
        try:
            self.client.close()
        except Exception as e:
            logger.debug(f"Error closing docker client: {e}")
