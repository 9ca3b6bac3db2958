"""
Curses-based terminal rendering for dockview.

This module owns the terminal. It provides:
  - terminal(): scoped acquisition of the curses screen, always restored
  - Renderer: main-thread loop that draws snapshots and forwards raw keys
  - draw_*(): header, container table, status footer and overlays

Rendering Strategy:
  - Single curses window (stdscr) with regions:
    - Header: title + container counts + filter indicator
    - Main: container table
    - Footer: newest status message or key hints
  - Overlays (help, confirm, logs, error) drawn in centred sub-windows
  - Differential rendering: only redraw when a state version changes or the
    terminal is resized
  - The renderer never mutates domain state; key codes go to the InputWorker

Color Pairs (initialized in init_colors):
  1: White (default text)
  2: Green (running/success)
  3: Red (error/stopped)
  4: Cyan (headers/borders)
  5: Magenta (column headers)
  6: Yellow (paused/warning)
  7: Black on cyan (selected row / title)
"""

import curses
import logging
import queue
import threading
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from .model import AppData, ContainerInfo, ContainerStatus, GuiState, Modal, StatusLevel, filter_containers
from .state import AppDataManager, GuiStateManager

logger = logging.getLogger(__name__)

FRAME_INTERVAL_MS = 100
FATAL_GRACE_SECONDS = 10.0
MIN_HEIGHT = 8
MIN_WIDTH = 40

# Column width constants
COL_NAME = 24
COL_STATE = 11
COL_STATUS = 22
COL_CPU = 8
COL_MEMORY = 20
COL_ID = 13
COL_IMAGE = 24

HELP_LINES = [
    " dockview HELP ",
    "------------------",
    " Navigation:",
    "  Up/Down j/k  : Select container",
    "  PgUp/PgDn    : Page",
    "  g/G          : First/Last",
    "  /            : Filter (Enter keeps, Esc clears)",
    "  u            : Refresh now",
    "  q            : Quit",
    "",
    " Container Actions:",
    "  s/t/r        : Start/Stop/Restart",
    "  z            : Pause/Unpause",
    "  d            : Remove (Confirm)",
    "  l / Enter    : Logs",
    "",
    " Press Esc to close ",
]


def init_colors():
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(1, curses.COLOR_WHITE, -1)    # Default
    curses.init_pair(2, curses.COLOR_GREEN, -1)    # Success / Running
    curses.init_pair(3, curses.COLOR_RED, -1)      # Error / Stopped
    curses.init_pair(4, curses.COLOR_CYAN, -1)     # Highlight / Secondary
    curses.init_pair(5, curses.COLOR_MAGENTA, -1)  # Column headers
    curses.init_pair(6, curses.COLOR_YELLOW, -1)   # Warning / Paused
    curses.init_pair(7, curses.COLOR_BLACK, curses.COLOR_CYAN)  # Inverse Highlight


def _addstr(win, y: int, x: int, text: str, attr: int = 0) -> None:
    """addstr that ignores writes outside the window (curses raises on the last cell)."""
    try:
        win.addstr(y, x, text, attr)
    except curses.error:
        pass


def status_color(status: ContainerStatus) -> int:
    if status is ContainerStatus.RUNNING:
        return curses.color_pair(2)
    if status in (ContainerStatus.PAUSED, ContainerStatus.RESTARTING, ContainerStatus.CREATED):
        return curses.color_pair(6)
    return curses.color_pair(3)


def level_color(level: StatusLevel) -> int:
    return {
        StatusLevel.INFO: curses.color_pair(4),
        StatusLevel.SUCCESS: curses.color_pair(2),
        StatusLevel.WARNING: curses.color_pair(6),
        StatusLevel.ERROR: curses.color_pair(3),
    }[level]


def scroll_offset(selected: Optional[int], rows: int) -> int:
    """First visible row so that the selected row is on screen."""
    if selected is None or rows <= 0:
        return 0
    return max(0, selected - rows + 1)


def _column_widths(term_width: int) -> Tuple[int, int]:
    fixed = COL_NAME + COL_STATE + COL_STATUS + COL_CPU + COL_MEMORY + COL_ID + 8
    rem = max(10, term_width - fixed)
    w_image = min(COL_IMAGE, max(10, rem // 2))
    w_ports = max(5, rem - w_image - 1)
    return w_image, w_ports


def format_header(term_width: int) -> str:
    w_image, w_ports = _column_widths(term_width)
    return (f"  {'NAME':<{COL_NAME}} {'STATE':<{COL_STATE}} {'STATUS':<{COL_STATUS}} "
            f"{'CPU':<{COL_CPU}} {'MEMORY':<{COL_MEMORY}} {'ID':<{COL_ID}} "
            f"{'IMAGE':<{w_image}} {'PORTS':<{w_ports}}")


def format_row(c: ContainerInfo, term_width: int) -> str:
    w_image, w_ports = _column_widths(term_width)
    return (f"  {c.name[:COL_NAME-1]:<{COL_NAME}} {c.status.value[:COL_STATE-1]:<{COL_STATE}} "
            f"{c.state_text[:COL_STATUS-1]:<{COL_STATUS}} {c.cpu_text():<{COL_CPU}} "
            f"{c.mem_text()[:COL_MEMORY-1]:<{COL_MEMORY}} {c.short_id:<{COL_ID}} "
            f"{c.image[:w_image-1]:<{w_image}} {c.ports_text()[:w_ports]}")


def draw_header(stdscr, width: int, app: AppData, gui: GuiState, visible: int):
    running = sum(1 for c in app.containers if c.status is ContainerStatus.RUNNING)
    title = f" dockview   {running}/{len(app.containers)} running "
    if gui.filter_text or gui.is_filtering:
        title += f"  filter: '{gui.filter_text}' ({visible} shown) "
    _addstr(stdscr, 0, 0, title[:width].ljust(width), curses.color_pair(7) | curses.A_BOLD)


def draw_list(stdscr, top: int, height: int, width: int, containers: List[ContainerInfo], selected: Optional[int]):
    """Render the container table in rows [top, top + height)."""
    _addstr(stdscr, top, 0, format_header(width)[:width - 1], curses.color_pair(5) | curses.A_BOLD)
    rows = height - 1
    if not containers:
        _addstr(stdscr, top + 1, 2, "No containers", curses.A_DIM)
        return

    offset = scroll_offset(selected, rows)
    for i, c in enumerate(containers[offset:offset + rows]):
        actual_index = offset + i
        is_selected = (actual_index == selected)
        row_style = curses.color_pair(7) if is_selected else curses.A_NORMAL
        y = top + 1 + i
        _addstr(stdscr, y, 0, " * ", status_color(c.status) | (curses.A_REVERSE if is_selected else 0))
        _addstr(stdscr, y, 3, format_row(c, width)[:width - 4].ljust(width - 4), row_style)


def draw_footer(stdscr, width: int, height: int, gui: GuiState):
    bar_y = height - 1
    if gui.is_filtering:
        label = " FILTER: "
        _addstr(stdscr, bar_y, 0, label, curses.color_pair(7) | curses.A_BOLD)
        _addstr(stdscr, bar_y, len(label), f" {gui.filter_text}_ "[:max(0, width - len(label) - 1)], curses.A_BOLD)
        return
    if gui.messages:
        msg = gui.messages[-1]
        _addstr(stdscr, bar_y, 0, f" {msg.text} "[:width - 1], level_color(msg.level) | curses.A_BOLD)
        return
    help_txt = " s: Start | t: Stop | r: Restart | z: Pause | d: Remove | l: Logs | /: Filter | ?: Help | q: Quit "
    _addstr(stdscr, bar_y, 0, help_txt[:width - 1], curses.A_DIM)


def _modal_window(stdscr, lines: int, cols: int, border_pair: int):
    max_h, max_w = stdscr.getmaxyx()
    width = max(10, min(cols, max_w - 2))
    height = max(3, min(lines, max_h - 2))
    start_y = max(0, (max_h - height) // 2)
    start_x = max(0, (max_w - width) // 2)
    win = curses.newwin(height, width, start_y, start_x)
    win.erase()
    win.attron(curses.color_pair(border_pair))
    win.box()
    win.attroff(curses.color_pair(border_pair))
    return win, height, width


def draw_help_modal(stdscr):
    win, height, width = _modal_window(stdscr, len(HELP_LINES) + 2, 54, 4)
    for i, line in enumerate(HELP_LINES[:height - 2]):
        if i == 0:
            _addstr(win, 1 + i, max(1, (width - len(line)) // 2), line[:width - 2], curses.A_BOLD | curses.color_pair(4))
        else:
            _addstr(win, 1 + i, 2, line[:width - 4])
    win.noutrefresh()


def draw_confirm_modal(stdscr, gui: GuiState, app: AppData):
    pending = gui.pending
    if pending is None:
        return
    target = next((c.name for c in app.containers if c.id == pending.container_id), pending.container_id[:12])
    msg = f" {pending.action.value.capitalize()} {target}? "
    win, height, width = _modal_window(stdscr, 5, max(30, len(msg) + 4), 3)
    _addstr(win, 1, max(1, (width - len(msg)) // 2), msg[:width - 2], curses.A_BOLD)
    buttons = " [Y]es    [N]o "
    _addstr(win, 3, max(1, (width - len(buttons)) // 2), buttons[:width - 2])
    win.noutrefresh()


def draw_logs_modal(stdscr, gui: GuiState, app: AppData):
    max_h, max_w = stdscr.getmaxyx()
    cid = gui.logs_container_id or ""
    lines = app.logs.get(cid, [])
    name = next((c.name for c in app.containers if c.id == cid), cid[:12])
    win, height, width = _modal_window(stdscr, max_h - 2, max_w - 2, 4)
    _addstr(win, 0, 2, f" Logs: {name} ({len(lines)} lines) ", curses.A_BOLD | curses.color_pair(4))
    rows = height - 2
    offset = gui.logs_scroll_offset
    if offset >= len(lines):
        offset = max(0, len(lines) - rows)
    for i, line in enumerate(lines[offset:offset + rows]):
        _addstr(win, 1 + i, 1, line.replace("\t", "    ")[:width - 2])
    win.noutrefresh()


def draw_error_modal(stdscr, message: str):
    lines = [" ERROR ", "", f" {message} ", "", " dockview will now exit ", " Press any key "]
    win, height, width = _modal_window(stdscr, len(lines) + 2, max(40, len(message) + 6), 3)
    for i, line in enumerate(lines[:height - 2]):
        attr = curses.A_BOLD | curses.color_pair(3) if i == 0 else curses.A_NORMAL
        _addstr(win, 1 + i, max(1, (width - len(line)) // 2), line[:width - 2], attr)
    win.noutrefresh()


def draw(stdscr, app: AppData, gui: GuiState) -> None:
    """Draw one full frame from the two snapshots."""
    h, w = stdscr.getmaxyx()
    stdscr.erase()
    if h < MIN_HEIGHT or w < MIN_WIDTH:
        _addstr(stdscr, 0, 0, "Terminal too small!")
        stdscr.noutrefresh()
        curses.doupdate()
        return

    visible = filter_containers(app.containers, gui.filter_text)
    draw_header(stdscr, w, app, gui, len(visible))
    draw_list(stdscr, 2, h - 3, w, visible, gui.selected_index)
    draw_footer(stdscr, w, h, gui)
    stdscr.noutrefresh()

    if app.error is not None:
        draw_error_modal(stdscr, str(app.error))
    elif gui.modal is Modal.HELP:
        draw_help_modal(stdscr)
    elif gui.modal is Modal.CONFIRM:
        draw_confirm_modal(stdscr, gui, app)
    elif gui.modal is Modal.LOGS:
        draw_logs_modal(stdscr, gui, app)
    curses.doupdate()


def restore_terminal(stdscr) -> None:
    """Best effort: failures are logged, never raised."""
    try:
        stdscr.keypad(False)
        curses.nocbreak()
        curses.echo()
        curses.endwin()
    except curses.error as e:
        logger.error(f"Failed to restore terminal: {e}")


@contextmanager
def terminal() -> Iterator["curses._CursesWindow"]:
    """Put the terminal in curses mode for the duration of the block."""
    stdscr = curses.initscr()
    try:
        curses.noecho()
        curses.cbreak()
        stdscr.keypad(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        init_colors()
        yield stdscr
    finally:
        restore_terminal(stdscr)
        logger.info("Terminal restored")


class Renderer:
    """Owns the terminal; draws snapshots and forwards key codes to the InputWorker."""

    def __init__(self, app_data: AppDataManager, gui_state: GuiStateManager,
                 input_tx: "queue.Queue[int]", shutdown: threading.Event,
                 frame_interval_ms: int = FRAME_INTERVAL_MS):
        self.app_data = app_data
        self.gui_state = gui_state
        self.input_tx = input_tx
        self.shutdown = shutdown
        self.frame_interval_ms = frame_interval_ms

    def run(self) -> None:
        try:
            with terminal() as stdscr:
                stdscr.timeout(self.frame_interval_ms)
                self.loop(stdscr)
        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt caught, exiting...")
        finally:
            self.shutdown.set()

    def loop(self, stdscr) -> None:
        last_versions = None
        last_size = None
        while not self.shutdown.is_set():
            self.gui_state.prune_expired()
            versions = (self.app_data.get_version(), self.gui_state.get_version())
            size = stdscr.getmaxyx()
            if versions != last_versions or size != last_size:
                if size != last_size:
                    stdscr.clear()
                draw(stdscr, self.app_data.get_snapshot(), self.gui_state.get_snapshot())
                last_versions, last_size = versions, size

            if self.app_data.get_error() is not None:
                self.wait_for_dismiss(stdscr)
                return

            key = stdscr.getch()
            if key == curses.ERR or key == curses.KEY_RESIZE:
                continue
            try:
                self.input_tx.put_nowait(key)
            except queue.Full:
                logger.debug(f"Input queue full, dropping key {key}")

    def wait_for_dismiss(self, stdscr) -> None:
        """Keep the fatal error on screen until a key press or the grace period ends."""
        deadline = time.monotonic() + FATAL_GRACE_SECONDS
        while time.monotonic() < deadline:
            if stdscr.getch() not in (curses.ERR, curses.KEY_RESIZE):
                break
        self.shutdown.set()
