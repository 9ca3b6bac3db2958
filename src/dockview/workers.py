"""
Background actors for dockview.

Workers:
  - DockerWorker: the only thread that talks to Docker after startup.
    Reconciles container state on a timer and executes queued commands.
  - InputWorker: decodes raw key codes (forwarded by the renderer, which owns
    the terminal) into InputEvents, updates UI state, and queues commands for
    the DockerWorker.

Channels:
  - docker queue: bounded queue.Queue of command envelopes, FIFO
  - input queue: bounded queue.Queue of raw curses key codes

Shutdown:
  - Every worker checks the shared shutdown Event at the top of its loop.
    A Docker call already in flight is not interrupted; the client timeout
    bounds it.
"""

import curses
import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Tuple

from .backend import DockerBackend
from .errors import AppError, DockerCommandError, DockerConnectionError
from .model import (
    ContainerAction,
    ContainerCommand,
    ContainerInfo,
    ContainerStatus,
    DockerMessage,
    InputEvent,
    LogsCommand,
    Modal,
    QuitCommand,
    StatusLevel,
    UpdateCommand,
)
from .state import AppDataManager, GuiStateManager

logger = logging.getLogger(__name__)

# Entry point of the official image; hidden when running containerised
ENTRY_POINT = "/app/dockview"
CONTAINERISED_STARTUP_DELAY = 0.25
CHANNEL_CAPACITY = 32
POLL_INTERVAL = 0.1
PAGE_SIZE = 10
MAX_STATS_WORKERS = 8
# Longest a reconciliation waits for stats; slower samples land on a later pass
STATS_WAIT = 0.5

StatsSample = Tuple[Optional[float], Optional[int], Optional[int]]


class DockerWorker(threading.Thread):
    """
    Poller/command actor.

    With timer=True the worker reconciles every interval on its own. Headless
    mode turns the timer off because the main loop already sends UpdateCommand
    at that cadence.
    """

    def __init__(self, app_data: AppDataManager, gui_state: GuiStateManager,
                 backend: DockerBackend, docker_rx: "queue.Queue[DockerMessage]",
                 shutdown: threading.Event, interval: float = 1.0,
                 in_container: bool = False, timer: bool = True):
        super().__init__(name="docker-worker", daemon=True)
        self.app_data = app_data
        self.gui_state = gui_state
        self.backend = backend
        self.docker_rx = docker_rx
        self.shutdown = shutdown
        self.interval = interval
        self.in_container = in_container
        self.timer = timer
        self.fatal = False
        self._executor = ThreadPoolExecutor(max_workers=MAX_STATS_WORKERS, thread_name_prefix="docker-stats")
        self._stats: Dict[str, StatsSample] = {}
        self._stats_pending: Dict[str, Future] = {}

    def run(self) -> None:
        logger.info("DockerWorker started")
        try:
            if self.in_container:
                # Daemon socket may not accept connections yet when started alongside us
                time.sleep(CONTAINERISED_STARTUP_DELAY)
            self.dispatch(UpdateCommand())
            next_tick = time.monotonic() + self.interval

            while not self.shutdown.is_set() and not self.fatal:
                if self.timer:
                    timeout = max(0.0, next_tick - time.monotonic())
                else:
                    timeout = POLL_INTERVAL
                try:
                    message = self.docker_rx.get(timeout=timeout)
                except queue.Empty:
                    if not self.timer:
                        continue
                    message = UpdateCommand()
                    next_tick = time.monotonic() + self.interval

                if not self.dispatch(message):
                    break
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self.backend.close()
            logger.info("DockerWorker stopped")

    def dispatch(self, message: DockerMessage) -> bool:
        """handle() that never lets an unexpected exception end the thread."""
        try:
            return self.handle(message)
        except Exception as e:
            logger.exception(f"Unexpected error handling {message!r}")
            self._connection_failed(e, "Docker error")
            return not self.fatal

    def handle(self, message: DockerMessage) -> bool:
        """Execute one message. Returns False when the loop should exit."""
        if isinstance(message, UpdateCommand):
            self.update()
        elif isinstance(message, ContainerCommand):
            self.execute(message)
        elif isinstance(message, LogsCommand):
            self.fetch_logs(message)
        elif isinstance(message, QuitCommand):
            logger.info("DockerWorker received quit")
            return False
        else:
            raise TypeError(f"Unhandled docker message: {message!r}")
        return not self.fatal

    def update(self) -> None:
        if self.fatal:
            return
        try:
            containers = self.backend.list_containers()
        except DockerConnectionError as e:
            self._connection_failed(e, "Unable to list containers")
            return
        except DockerCommandError as e:
            logger.warning(f"Listing containers failed: {e}")
            self.gui_state.push_status(f"Unable to list containers: {e}", StatusLevel.ERROR)
            return

        if self.in_container:
            containers = [c for c in containers if c.command.split(" ")[0] != ENTRY_POINT]

        self._attach_stats(containers)
        self.app_data.reconcile(containers)
        # The cursor may have been moved against an older listing
        self.gui_state.reconcile_selection(self.app_data.get_containers())

    def _attach_stats(self, containers: List[ContainerInfo]) -> None:
        running = [c for c in containers if c.status is ContainerStatus.RUNNING]
        live_ids = {c.id for c in running}
        for c in running:
            if c.id not in self._stats_pending:
                self._stats_pending[c.id] = self._executor.submit(self.backend.get_container_stats, c.id)
        if self._stats_pending:
            wait(list(self._stats_pending.values()), timeout=STATS_WAIT)

        for cid, future in list(self._stats_pending.items()):
            if future.done():
                del self._stats_pending[cid]
                if cid in live_ids:
                    self._stats[cid] = future.result()
        for cid in list(self._stats):
            if cid not in live_ids:
                del self._stats[cid]

        for c in running:
            c.cpu_percent, c.mem_usage, c.mem_limit = self._stats.get(c.id, (None, None, None))

    def execute(self, command: ContainerCommand) -> None:
        name = self._display_name(command.container_id)
        action = command.action
        try:
            self.backend.container_action(command.container_id, action)
        except DockerConnectionError as e:
            self._connection_failed(e, f"Unable to {action.value} {name}")
            return
        except DockerCommandError as e:
            logger.warning(f"{action.value} {name} failed: {e}")
            self.gui_state.push_status(f"Unable to {action.value} {name}: {e}", StatusLevel.ERROR)
            return

        self.gui_state.push_status(f"{name} {action.past_tense}", StatusLevel.SUCCESS)
        self.update()

    def fetch_logs(self, command: LogsCommand) -> None:
        name = self._display_name(command.container_id)
        try:
            lines = self.backend.get_logs(command.container_id, tail=command.tail)
        except DockerConnectionError as e:
            self._connection_failed(e, f"Unable to fetch logs for {name}")
            return
        except DockerCommandError as e:
            logger.warning(f"logs {name} failed: {e}")
            self.gui_state.push_status(f"Unable to fetch logs for {name}: {e}", StatusLevel.ERROR)
            return
        self.app_data.set_logs(command.container_id, lines)
        self.gui_state.show_logs(command.container_id)

    def _display_name(self, container_id: str) -> str:
        c = self.app_data.get_container(container_id)
        return c.name if c else container_id[:12]

    def _connection_failed(self, error: Exception, context: str) -> None:
        """Fatal only if the daemon no longer answers a ping."""
        try:
            self.backend.ping()
        except DockerConnectionError:
            logger.error(f"{context}: {error}; docker daemon unreachable")
            self.fatal = True
            if self.app_data.set_error(AppError.DOCKER_CONNECTION_LOST):
                self.gui_state.push_status(str(AppError.DOCKER_CONNECTION_LOST), StatusLevel.ERROR)
            return
        logger.warning(f"{context}: {error}")
        self.gui_state.push_status(f"{context}: {error}", StatusLevel.ERROR)


_KEY_EVENTS = {
    curses.KEY_UP: InputEvent.UP,
    ord('k'): InputEvent.UP,
    curses.KEY_DOWN: InputEvent.DOWN,
    ord('j'): InputEvent.DOWN,
    curses.KEY_PPAGE: InputEvent.PAGE_UP,
    curses.KEY_NPAGE: InputEvent.PAGE_DOWN,
    curses.KEY_HOME: InputEvent.HOME,
    ord('g'): InputEvent.HOME,
    curses.KEY_END: InputEvent.END,
    ord('G'): InputEvent.END,
    curses.KEY_ENTER: InputEvent.SELECT,
    10: InputEvent.SELECT,
    13: InputEvent.SELECT,
    ord('/'): InputEvent.FILTER,
    ord('y'): InputEvent.CONFIRM,
    ord('Y'): InputEvent.CONFIRM,
    27: InputEvent.CANCEL,
    ord('n'): InputEvent.CANCEL,
    ord('N'): InputEvent.CANCEL,
    ord('q'): InputEvent.QUIT,
    ord('Q'): InputEvent.QUIT,
    ord('u'): InputEvent.UPDATE,
    ord('h'): InputEvent.HELP,
    ord('?'): InputEvent.HELP,
    ord('s'): InputEvent.START,
    ord('t'): InputEvent.STOP,
    ord('z'): InputEvent.PAUSE,
    ord('r'): InputEvent.RESTART,
    ord('d'): InputEvent.REMOVE,
    ord('l'): InputEvent.LOGS,
}

_ACTION_EVENTS = {
    InputEvent.START: ContainerAction.START,
    InputEvent.STOP: ContainerAction.STOP,
    InputEvent.PAUSE: ContainerAction.PAUSE,
    InputEvent.RESTART: ContainerAction.RESTART,
    InputEvent.REMOVE: ContainerAction.REMOVE,
}


def decode_key(key: int) -> Optional[InputEvent]:
    """Map a raw curses key code to an InputEvent; unknown keys yield None."""
    return _KEY_EVENTS.get(key)


class InputWorker(threading.Thread):
    def __init__(self, app_data: AppDataManager, gui_state: GuiStateManager,
                 input_rx: "queue.Queue[int]", docker_tx: "queue.Queue[DockerMessage]",
                 shutdown: threading.Event, log_tail: int = 200):
        super().__init__(name="input-worker", daemon=True)
        self.app_data = app_data
        self.gui_state = gui_state
        self.input_rx = input_rx
        self.docker_tx = docker_tx
        self.shutdown = shutdown
        self.log_tail = log_tail

    def run(self) -> None:
        logger.info("InputWorker started")
        while not self.shutdown.is_set():
            try:
                key = self.input_rx.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                self.handle_key(key)
            except (TypeError, ValueError) as e:
                # Malformed input never takes the worker down
                logger.debug(f"Ignoring key {key!r}: {e}")
        logger.info("InputWorker stopped")

    def handle_key(self, key: int) -> None:
        if self.gui_state.is_filtering():
            self._handle_filter_key(key)
            return
        event = decode_key(key)
        if event is not None:
            self.handle_event(event)

    def _handle_filter_key(self, key: int) -> None:
        text = self.gui_state.get_filter_text()
        if key == 27:
            self.gui_state.set_filter_text("", self.app_data.get_containers())
            self.gui_state.set_filtering(False)
        elif key in (10, 13, curses.KEY_ENTER):
            self.gui_state.set_filtering(False)
        elif key in (curses.KEY_BACKSPACE, 127, 8):
            self.gui_state.set_filter_text(text[:-1], self.app_data.get_containers())
        elif 32 <= key <= 126:
            self.gui_state.set_filter_text(text + chr(key), self.app_data.get_containers())

    def handle_event(self, event: InputEvent) -> None:
        if event is InputEvent.QUIT:
            self.quit()
            return

        modal = self.gui_state.get_modal()
        if modal is Modal.CONFIRM:
            self._handle_confirm(event)
        elif modal is Modal.LOGS:
            self._handle_logs(event)
        elif modal in (Modal.HELP, Modal.ERROR):
            if event in (InputEvent.CANCEL, InputEvent.SELECT, InputEvent.CONFIRM, InputEvent.HELP):
                self.gui_state.set_modal(Modal.NONE)
        else:
            self._handle_list(event)

    def _handle_confirm(self, event: InputEvent) -> None:
        if event in (InputEvent.CONFIRM, InputEvent.SELECT):
            pending = self.gui_state.take_pending()
            if pending is not None:
                self.send(pending)
        elif event is InputEvent.CANCEL:
            self.gui_state.take_pending()

    def _handle_logs(self, event: InputEvent) -> None:
        if event in (InputEvent.CANCEL, InputEvent.SELECT, InputEvent.LOGS):
            self.gui_state.set_modal(Modal.NONE)
            return
        delta = {
            InputEvent.UP: -1,
            InputEvent.DOWN: 1,
            InputEvent.PAGE_UP: -PAGE_SIZE,
            InputEvent.PAGE_DOWN: PAGE_SIZE,
        }.get(event)
        container_id = self.gui_state.get_logs_container_id()
        if delta is not None and container_id:
            total = len(self.app_data.get_logs(container_id))
            self.gui_state.scroll_logs(delta, total, PAGE_SIZE)

    def _handle_list(self, event: InputEvent) -> None:
        containers = self.app_data.get_containers()

        if event in (InputEvent.UP, InputEvent.DOWN, InputEvent.PAGE_UP,
                     InputEvent.PAGE_DOWN, InputEvent.HOME, InputEvent.END):
            delta = {
                InputEvent.UP: -1,
                InputEvent.DOWN: 1,
                InputEvent.PAGE_UP: -PAGE_SIZE,
                InputEvent.PAGE_DOWN: PAGE_SIZE,
                InputEvent.HOME: -len(containers),
                InputEvent.END: len(containers),
            }[event]
            self.gui_state.move_selection(delta, containers)
        elif event is InputEvent.FILTER:
            self.gui_state.set_filtering(True)
        elif event is InputEvent.CANCEL:
            if self.gui_state.get_filter_text():
                self.gui_state.set_filter_text("", containers)
        elif event is InputEvent.UPDATE:
            self.send(UpdateCommand())
            self.gui_state.request_redraw()
        elif event is InputEvent.HELP:
            self.gui_state.set_modal(Modal.HELP)
        elif event in (InputEvent.LOGS, InputEvent.SELECT):
            selected = self.gui_state.selected_container(containers)
            if selected is not None:
                self.send(LogsCommand(selected.id, tail=self.log_tail))
        elif event in _ACTION_EVENTS:
            selected = self.gui_state.selected_container(containers)
            if selected is None:
                return
            action = _ACTION_EVENTS[event]
            if action is ContainerAction.PAUSE and selected.status is ContainerStatus.PAUSED:
                action = ContainerAction.UNPAUSE
            if action not in ContainerAction.available_for(selected.status):
                self.gui_state.push_status(
                    f"Cannot {action.value} {selected.name} while {selected.status.value}", StatusLevel.WARNING)
                return
            command = ContainerCommand(selected.id, action)
            if action.needs_confirmation:
                self.gui_state.request_confirmation(command)
            else:
                self.send(command)

    def send(self, message: DockerMessage) -> bool:
        """Blocking put onto the docker queue; gives up only on shutdown."""
        while True:
            try:
                self.docker_tx.put(message, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                if self.shutdown.is_set():
                    logger.debug(f"Dropping {message!r}, shutting down")
                    return False

    def quit(self) -> None:
        logger.info("Quit requested")
        self.shutdown.set()
        self.send(QuitCommand())
