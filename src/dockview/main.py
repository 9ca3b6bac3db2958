"""
Process entry point and actor wiring for dockview.

Architecture:
  1. Resolve configuration (CLI > env > YAML > defaults) and set up logging
  2. docker_init(): connect + ping once; spawn the DockerWorker only if both
     succeed, otherwise latch AppError.DOCKER_CONNECT
  3. handler_init(): spawn the InputWorker
  4. Either the curses Renderer (main thread) or the headless loop runs until
     the shutdown Event is set or a fatal error is latched
  5. Workers are asked to stop and joined; the exit code reflects the fatal
     error latch

Exit Codes:
  - 0: clean quit
  - 1: fatal docker error (startup or mid-run)
  - 2: invalid configuration
"""

import logging
import queue
import sys
import threading
from typing import Callable, List, Optional

from . import setup_logging
from .backend import DockerBackend
from .config import Config, load_config
from .errors import AppError, ConfigError, DockerConnectionError
from .model import DockerMessage, QuitCommand, StatusLevel, UpdateCommand
from .state import AppDataManager, GuiStateManager
from .ui import Renderer
from .workers import CHANNEL_CAPACITY, DockerWorker, InputWorker

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
JOIN_TIMEOUT = 2.0


def docker_init(config: Config, app_data: AppDataManager, gui_state: GuiStateManager,
                docker_rx: "queue.Queue[DockerMessage]", shutdown: threading.Event,
                connect: Callable[..., DockerBackend] = DockerBackend.connect) -> Optional[DockerWorker]:
    """
    Connect to the daemon and start the DockerWorker if it answers a ping.

    Exactly one connect and one ping; no retries. Returns the started worker,
    or None after latching AppError.DOCKER_CONNECT.
    """
    backend = None
    try:
        backend = connect(config.host, timeout=config.timeout)
        backend.ping()
    except DockerConnectionError as e:
        logger.error(f"Docker connection failed: {e}")
        if backend is not None:
            backend.close()
        app_data.set_error(AppError.DOCKER_CONNECT)
        gui_state.push_status(str(AppError.DOCKER_CONNECT), StatusLevel.ERROR)
        return None

    worker = DockerWorker(
        app_data,
        gui_state,
        backend,
        docker_rx,
        shutdown,
        interval=config.docker_interval,
        in_container=config.in_container,
        timer=config.gui,
    )
    worker.start()
    logger.info("Docker connection established, DockerWorker spawned")
    return worker


def handler_init(config: Config, app_data: AppDataManager, gui_state: GuiStateManager,
                 input_rx: "queue.Queue[int]", docker_tx: "queue.Queue[DockerMessage]",
                 shutdown: threading.Event) -> InputWorker:
    worker = InputWorker(app_data, gui_state, input_rx, docker_tx, shutdown, log_tail=config.log_tail)
    worker.start()
    return worker


def run_headless(config: Config, app_data: AppDataManager,
                 docker_tx: "queue.Queue[DockerMessage]", shutdown: threading.Event) -> int:
    """Debug loop without a terminal: drive the DockerWorker's updates, exit 1 on a fatal error."""
    logger.info("Running headless")
    try:
        while not shutdown.is_set():
            error = app_data.get_error()
            if error is not None:
                logger.error(str(error))
                return EXIT_FATAL
            try:
                docker_tx.put(UpdateCommand(), timeout=config.docker_interval)
            except queue.Full:
                logger.debug("Docker queue full, skipping update")
            shutdown.wait(config.docker_interval)
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt caught, exiting...")
    return EXIT_FATAL if app_data.get_error() is not None else EXIT_OK


def run_gui(app_data: AppDataManager, gui_state: GuiStateManager,
            input_tx: "queue.Queue[int]", shutdown: threading.Event) -> int:
    Renderer(app_data, gui_state, input_tx, shutdown).run()
    error = app_data.get_error()
    if error is not None:
        logger.error(f"Exiting after fatal error: {error}")
        return EXIT_FATAL
    return EXIT_OK


def stop_workers(workers: List[threading.Thread], docker_tx: "queue.Queue[DockerMessage]",
                 shutdown: threading.Event) -> None:
    shutdown.set()
    try:
        docker_tx.put_nowait(QuitCommand())
    except queue.Full:
        pass
    for worker in workers:
        worker.join(timeout=JOIN_TIMEOUT)
        if worker.is_alive():
            logger.warning(f"{worker.name} still busy at exit")


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as e:
        print(f"dockview: {e}", file=sys.stderr)
        return EXIT_CONFIG

    log_path = setup_logging(config.log_level, config.log_file, console=not config.gui)
    logging.info(f"dockview starting, logging to {log_path}")

    app_data = AppDataManager()
    gui_state = GuiStateManager(config.status_capacity, config.status_ttl)
    shutdown = threading.Event()
    docker_queue: "queue.Queue[DockerMessage]" = queue.Queue(maxsize=CHANNEL_CAPACITY)
    input_queue: "queue.Queue[int]" = queue.Queue(maxsize=CHANNEL_CAPACITY)

    workers: List[threading.Thread] = []
    docker_worker = docker_init(config, app_data, gui_state, docker_queue, shutdown)
    if docker_worker is not None:
        workers.append(docker_worker)
    workers.append(handler_init(config, app_data, gui_state, input_queue, docker_queue, shutdown))

    try:
        if config.gui:
            code = run_gui(app_data, gui_state, input_queue, shutdown)
        else:
            code = run_headless(config, app_data, docker_queue, shutdown)
    finally:
        stop_workers(workers, docker_queue, shutdown)

    if code != EXIT_OK and config.gui:
        print(f"dockview: {app_data.get_error()}", file=sys.stderr)
    logging.info(f"dockview exiting with status {code}")
    return code


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
