"""
Thread-safe shared state for dockview.

Two independent managers, each wrapping a mutable dataclass with its own RLock:
  - AppDataManager: domain state (containers, fatal error, fetched logs).
    Written by the DockerWorker and the supervisor, read by everyone.
  - GuiStateManager: UI-only state (cursor, modal, status queue, filter).
    Written by the InputWorker (and status pushes from the DockerWorker),
    read by the renderer.

Keeping them apart means a long reconciliation never makes a keypress wait,
and navigation never makes the poller wait.

Locking Rules:
  - Every public method takes the manager's lock for its whole body
  - Nothing is held across a Docker API call
  - A caller never holds one manager's lock while calling into the other

Versioning:
  - Each manager keeps a version counter bumped on every visible change;
    the renderer redraws when either counter moves (differential rendering)

State Update Pattern:
  1. Worker computes new data without any lock held
  2. Worker calls a manager method, which mutates under the lock
  3. Renderer calls get_snapshot(), which copies under the lock
"""

import dataclasses
import logging
import threading
import time
from collections import deque
from typing import Iterable, List, Optional

from .errors import AppError
from .model import (
    AppData,
    ContainerCommand,
    ContainerInfo,
    ContainerStatus,
    GuiState,
    Modal,
    StatusLevel,
    StatusMessage,
    filter_containers,
)

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CAPACITY = 5
DEFAULT_STATUS_TTL = 4.0


def _copy_container(c: ContainerInfo) -> ContainerInfo:
    return dataclasses.replace(c, ports=list(c.ports))


class AppDataManager:
    """Thread-safe owner of the container collection and the fatal error latch."""

    def __init__(self):
        self._state = AppData()
        self._lock = threading.RLock()
        self._version = 0

    def get_version(self) -> int:
        with self._lock:
            return self._version

    def _inc_version(self):
        # Assumes lock is held
        self._version += 1

    def reconcile(self, containers: Iterable[ContainerInfo]) -> bool:
        """
        Merge a fresh listing into the collection.

        Existing entries keep their position and are overwritten field by
        field, entries missing from the listing are dropped, and new ones are
        appended in listing order. Returns True if anything changed.

        Once a fatal error is latched the collection is frozen.
        """
        with self._lock:
            if self._state.error is not None:
                return False

            incoming = {}
            order = []
            for c in containers:
                if c.id not in incoming:
                    order.append(c.id)
                incoming[c.id] = c

            changed = False
            kept: List[ContainerInfo] = []
            for current in self._state.containers:
                fresh = incoming.pop(current.id, None)
                if fresh is None:
                    changed = True
                    continue
                if fresh != current:
                    for f in dataclasses.fields(current):
                        setattr(current, f.name, getattr(fresh, f.name))
                    current.ports = list(fresh.ports)
                    changed = True
                kept.append(current)

            for cid in order:
                if cid in incoming:
                    kept.append(_copy_container(incoming[cid]))
                    changed = True

            if changed:
                self._state.containers = kept
                live_ids = {c.id for c in kept}
                for cid in list(self._state.logs):
                    if cid not in live_ids:
                        del self._state.logs[cid]
                self._inc_version()
            return changed

    def get_containers(self) -> List[ContainerInfo]:
        with self._lock:
            return [_copy_container(c) for c in self._state.containers]

    def get_container(self, container_id: str) -> Optional[ContainerInfo]:
        with self._lock:
            for c in self._state.containers:
                if c.id == container_id:
                    return _copy_container(c)
        return None

    def container_status(self, container_id: str) -> ContainerStatus:
        c = self.get_container(container_id)
        return c.status if c else ContainerStatus.UNKNOWN

    def set_error(self, error: AppError) -> bool:
        """Latch a fatal error. Only the first one sticks."""
        with self._lock:
            if self._state.error is not None:
                logger.debug(f"Ignoring {error.name}, already latched {self._state.error.name}")
                return False
            logger.error(f"Fatal error latched: {error}")
            self._state.error = error
            self._inc_version()
            return True

    def get_error(self) -> Optional[AppError]:
        with self._lock:
            return self._state.error

    def set_logs(self, container_id: str, lines: List[str]) -> None:
        with self._lock:
            self._state.logs[container_id] = list(lines)
            self._inc_version()

    def get_logs(self, container_id: str) -> List[str]:
        with self._lock:
            return list(self._state.logs.get(container_id, []))

    def get_snapshot(self) -> AppData:
        with self._lock:
            return AppData(
                containers=[_copy_container(c) for c in self._state.containers],
                error=self._state.error,
                logs={cid: list(lines) for cid, lines in self._state.logs.items()},
            )


class GuiStateManager:
    """Thread-safe owner of UI-only state."""

    def __init__(self, status_capacity: int = DEFAULT_STATUS_CAPACITY,
                 status_ttl: float = DEFAULT_STATUS_TTL):
        self._state = GuiState()
        self._messages = deque(maxlen=max(1, status_capacity))
        self._status_ttl = status_ttl
        self._lock = threading.RLock()
        self._version = 0

    def get_version(self) -> int:
        with self._lock:
            return self._version

    def _inc_version(self):
        # Assumes lock is held
        self._version += 1

    def request_redraw(self) -> None:
        with self._lock:
            self._inc_version()

    # --- Status messages ---

    @property
    def status_capacity(self) -> int:
        return self._messages.maxlen

    def push_status(self, text: str, level: StatusLevel = StatusLevel.INFO,
                    ttl: Optional[float] = None) -> None:
        expires_at = time.monotonic() + (self._status_ttl if ttl is None else ttl)
        with self._lock:
            # deque(maxlen) drops the oldest entry on overflow
            self._messages.append(StatusMessage(text, level, expires_at))
            self._inc_version()

    def get_messages(self, now: Optional[float] = None) -> List[StatusMessage]:
        now = time.monotonic() if now is None else now
        with self._lock:
            self._prune_expired_unlocked(now)
            return list(self._messages)

    def prune_expired(self) -> None:
        with self._lock:
            self._prune_expired_unlocked(time.monotonic())

    def _prune_expired_unlocked(self, now: float) -> None:
        before = len(self._messages)
        live = [m for m in self._messages if not m.is_expired(now)]
        if len(live) != before:
            self._messages.clear()
            self._messages.extend(live)
            self._inc_version()

    # --- Selection ---

    def _clamp_unlocked(self, visible_count: int) -> None:
        if visible_count <= 0:
            new_idx = None
        elif self._state.selected_index is None:
            new_idx = 0
        else:
            new_idx = max(0, min(self._state.selected_index, visible_count - 1))
        if new_idx != self._state.selected_index:
            self._state.selected_index = new_idx
            self._inc_version()

    def reconcile_selection(self, containers: List[ContainerInfo]) -> None:
        """Re-clamp the cursor against the current container collection."""
        with self._lock:
            visible = filter_containers(containers, self._state.filter_text)
            self._clamp_unlocked(len(visible))

    def move_selection(self, delta: int, containers: List[ContainerInfo]) -> None:
        """Move the cursor by delta rows, counting rows under the current filter."""
        with self._lock:
            visible_count = len(filter_containers(containers, self._state.filter_text))
            if visible_count <= 0:
                self._clamp_unlocked(0)
                return
            current = self._state.selected_index or 0
            new_idx = max(0, min(current + delta, visible_count - 1))
            if new_idx != self._state.selected_index:
                self._state.selected_index = new_idx
                self._inc_version()

    def get_selected_index(self) -> Optional[int]:
        with self._lock:
            return self._state.selected_index

    def selected_container(self, containers: List[ContainerInfo]) -> Optional[ContainerInfo]:
        with self._lock:
            return self._state.selected_container(containers)

    # --- Filtering ---

    def set_filtering(self, active: bool) -> None:
        with self._lock:
            self._state.is_filtering = active
            self._inc_version()

    def is_filtering(self) -> bool:
        with self._lock:
            return self._state.is_filtering

    def get_filter_text(self) -> str:
        with self._lock:
            return self._state.filter_text

    def set_filter_text(self, text: str, containers: List[ContainerInfo]) -> None:
        with self._lock:
            self._state.filter_text = text
            self._inc_version()
            self._clamp_unlocked(len(filter_containers(containers, text)))

    # --- Modals ---

    def get_modal(self) -> Modal:
        with self._lock:
            return self._state.modal

    def set_modal(self, modal: Modal) -> None:
        with self._lock:
            if self._state.modal is not modal:
                self._state.modal = modal
                if modal is not Modal.CONFIRM:
                    self._state.pending = None
                self._inc_version()

    def request_confirmation(self, command: ContainerCommand) -> None:
        with self._lock:
            self._state.pending = command
            self._state.modal = Modal.CONFIRM
            self._inc_version()

    def take_pending(self) -> Optional[ContainerCommand]:
        """Pop the command awaiting confirmation and close the modal."""
        with self._lock:
            pending = self._state.pending
            self._state.pending = None
            if self._state.modal is Modal.CONFIRM:
                self._state.modal = Modal.NONE
            self._inc_version()
            return pending

    def show_logs(self, container_id: str) -> None:
        with self._lock:
            self._state.logs_container_id = container_id
            self._state.logs_scroll_offset = 0
            self._state.modal = Modal.LOGS
            self._inc_version()

    def scroll_logs(self, delta: int, total_lines: int, page_height: int) -> None:
        with self._lock:
            max_offset = max(0, total_lines - page_height)
            new_offset = max(0, min(self._state.logs_scroll_offset + delta, max_offset))
            if new_offset != self._state.logs_scroll_offset:
                self._state.logs_scroll_offset = new_offset
                self._inc_version()

    def get_logs_container_id(self) -> Optional[str]:
        with self._lock:
            return self._state.logs_container_id

    def get_snapshot(self) -> GuiState:
        now = time.monotonic()
        with self._lock:
            self._prune_expired_unlocked(now)
            return GuiState(
                selected_index=self._state.selected_index,
                modal=self._state.modal,
                messages=list(self._messages),
                filter_text=self._state.filter_text,
                is_filtering=self._state.is_filtering,
                pending=self._state.pending,
                logs_container_id=self._state.logs_container_id,
                logs_scroll_offset=self._state.logs_scroll_offset,
            )
