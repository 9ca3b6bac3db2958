"""
Data models shared by the workers, the state managers and the UI.

Data Classes:
  - ContainerInfo: one container as last seen by the DockerWorker
  - PortBinding: one published (or exposed) port of a container
  - StatusMessage: transient footer message with a severity and an expiry
  - AppData / GuiState: read-only snapshots handed to the renderer

Enums:
  - ContainerStatus: daemon container states ("unknown" for anything else)
  - ContainerAction: lifecycle operations the operator can request
  - Modal: which overlay, if any, is drawn over the container table
  - StatusLevel: severity of a StatusMessage
  - InputEvent: decoded keyboard intents

Command envelopes (sent to the DockerWorker over its queue):
  - UpdateCommand, ContainerCommand, LogsCommand, QuitCommand

Key Fields:
  - ContainerInfo stats are None until the first stats sample arrives
  - GuiState.selected_index is None when nothing can be selected
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import AppError


class ContainerStatus(Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ContainerStatus":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class ContainerAction(Enum):
    START = "start"
    STOP = "stop"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    RESTART = "restart"
    REMOVE = "remove"

    @property
    def past_tense(self) -> str:
        if self is ContainerAction.STOP:
            return "stopped"
        if self.value.endswith("e"):
            return f"{self.value}d"
        return f"{self.value}ed"

    @property
    def needs_confirmation(self) -> bool:
        return self in (ContainerAction.STOP, ContainerAction.REMOVE)

    @classmethod
    def available_for(cls, status: ContainerStatus) -> List["ContainerAction"]:
        """Actions that make sense for a container in the given state."""
        if status is ContainerStatus.PAUSED:
            return [cls.UNPAUSE, cls.STOP, cls.REMOVE]
        if status in (ContainerStatus.RUNNING, ContainerStatus.RESTARTING):
            return [cls.PAUSE, cls.RESTART, cls.STOP, cls.REMOVE]
        return [cls.START, cls.RESTART, cls.REMOVE]


@dataclass(frozen=True)
class PortBinding:
    private: int
    protocol: str = "tcp"
    public: Optional[int] = None
    ip: str = ""

    def __str__(self) -> str:
        if self.public is None:
            return f"{self.private}/{self.protocol}"
        host = f"{self.ip}:" if self.ip else ""
        return f"{host}{self.public}->{self.private}/{self.protocol}"


@dataclass
class ContainerInfo:
    id: str
    short_id: str
    name: str
    image: str
    status: ContainerStatus = ContainerStatus.UNKNOWN
    state_text: str = ""
    created: int = 0
    ports: List[PortBinding] = field(default_factory=list)
    command: str = ""
    cpu_percent: Optional[float] = None
    mem_usage: Optional[int] = None
    mem_limit: Optional[int] = None

    def cpu_text(self) -> str:
        if self.cpu_percent is None:
            return "--"
        return f"{self.cpu_percent:.1f}%"

    def mem_text(self) -> str:
        if self.mem_usage is None:
            return "--"
        text = format_bytes(self.mem_usage)
        if self.mem_limit:
            text += f" / {format_bytes(self.mem_limit)}"
        return text

    def ports_text(self) -> str:
        return ", ".join(str(p) for p in self.ports)

    def created_text(self) -> str:
        if not self.created:
            return "--"
        return time.strftime("%Y-%m-%d %H:%M", time.localtime(self.created))


def format_bytes(num_bytes: float) -> str:
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(num_bytes) < 1024.0:
            return f"{num_bytes:.1f}{unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f}PB"


class Modal(Enum):
    NONE = "none"
    CONFIRM = "confirm"
    LOGS = "logs"
    ERROR = "error"
    HELP = "help"


class StatusLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusMessage:
    text: str
    level: StatusLevel = StatusLevel.INFO
    expires_at: float = 0.0

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.monotonic()) >= self.expires_at


class InputEvent(Enum):
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    SELECT = "select"
    FILTER = "filter"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    QUIT = "quit"
    UPDATE = "update"
    HELP = "help"
    START = "start"
    STOP = "stop"
    PAUSE = "pause"
    RESTART = "restart"
    REMOVE = "remove"
    LOGS = "logs"


# --- Command envelopes ---

@dataclass(frozen=True)
class UpdateCommand:
    pass


@dataclass(frozen=True)
class ContainerCommand:
    container_id: str
    action: ContainerAction


@dataclass(frozen=True)
class LogsCommand:
    container_id: str
    tail: int = 200


@dataclass(frozen=True)
class QuitCommand:
    pass


DockerMessage = Union[UpdateCommand, ContainerCommand, LogsCommand, QuitCommand]


# --- Snapshots ---

@dataclass
class AppData:
    containers: List[ContainerInfo] = field(default_factory=list)
    error: Optional[AppError] = None
    logs: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class GuiState:
    selected_index: Optional[int] = None
    modal: Modal = Modal.NONE
    messages: List[StatusMessage] = field(default_factory=list)
    filter_text: str = ""
    is_filtering: bool = False
    pending: Optional[ContainerCommand] = None
    logs_container_id: Optional[str] = None
    logs_scroll_offset: int = 0

    def selected_container(self, containers: List[ContainerInfo]) -> Optional[ContainerInfo]:
        visible = filter_containers(containers, self.filter_text)
        if self.selected_index is None or self.selected_index >= len(visible):
            return None
        return visible[self.selected_index]


def filter_containers(containers: List[ContainerInfo], filter_text: str) -> List[ContainerInfo]:
    """Containers whose name or image contains filter_text (case-insensitive)."""
    if not filter_text:
        return list(containers)
    ft = filter_text.lower()
    return [c for c in containers if ft in c.name.lower() or ft in c.image.lower()]

