"""
dockview - A terminal dashboard to view and control Docker containers.

Features:
  - Live container table (state, CPU, memory, ports, image, created)
  - Start/stop/restart/pause/remove with confirmation for destructive actions
  - Log viewer overlay
  - Instant filtering by name or image
  - Headless debug mode (no terminal takeover)
  - Self-monitoring mode when running inside a container

Main Components:
  - main.py: Supervisor (docker_init) and process entry point
  - workers.py: DockerWorker (poll + commands) and InputWorker threads
  - state.py: Thread-safe AppData / GuiState managers
  - ui.py: Curses renderer and scoped terminal handling
  - backend.py: Docker API wrapper
  - model.py: Data structures and command envelopes
  - config.py: CLI / env / YAML configuration

Usage:
  python -m dockview [--host HOST] [-d MS] [-g]

Dependencies:
  - docker>=7.0.0
  - PyYAML
  - Python 3.9+
  - curses (built-in, not available on Windows natively)
"""

import logging
import os
from pathlib import Path
from typing import Optional

__version__ = "0.1.0"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def get_log_path() -> str:
    """
    Get the log file path following XDG Base Directory spec.

    Returns XDG_DATA_HOME/dockview/logs/dockview.log with fallback to /tmp.
    Creates directory if it doesn't exist.
    """
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        xdg_data_home = Path.home() / '.local' / 'share'
    else:
        xdg_data_home = Path(xdg_data_home)

    log_dir = xdg_data_home / 'dockview' / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'dockview.log')
    except OSError:
        return '/tmp/dockview.log'


def setup_logging(level: str = "INFO", path: Optional[str] = None, console: bool = False) -> str:
    """
    Send all log records to a file, and to stderr when console is set.

    console must stay off while curses owns the terminal.
    Returns the log file path in use.
    """
    path = path or get_log_path()
    logging.basicConfig(filename=path, level=getattr(logging, level.upper(), logging.INFO),
                        format=LOG_FORMAT, force=True)
    if console:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.WARNING)
    return path
