import curses
import queue
import threading

import pytest
from unittest.mock import MagicMock
from dockview.errors import AppError
from dockview.model import ContainerInfo, ContainerStatus, Modal, PortBinding, StatusLevel
from dockview.state import AppDataManager, GuiStateManager
from dockview.ui import Renderer, draw, format_row, scroll_offset, terminal


# Mock curses functions that need an initialised screen
@pytest.fixture(autouse=True)
def mock_curses(mocker):
    mocker.patch('curses.color_pair', return_value=0)
    mocker.patch('curses.init_pair')
    mocker.patch('curses.start_color')
    mocker.patch('curses.use_default_colors')
    mocker.patch('curses.doupdate')
    mocker.patch('curses.newwin', return_value=MagicMock())
    return mocker


@pytest.fixture
def fake_screen(mocker):
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (24, 100)
    mocker.patch('curses.initscr', return_value=stdscr)
    mocker.patch('curses.noecho')
    mocker.patch('curses.cbreak')
    mocker.patch('curses.curs_set')
    mocker.patch('curses.nocbreak')
    mocker.patch('curses.echo')
    endwin = mocker.patch('curses.endwin')
    return stdscr, endwin


def screen_text(stdscr):
    return " ".join(str(call.args[2]) for call in stdscr.addstr.call_args_list)


def make_container(cid, name, status=ContainerStatus.RUNNING):
    return ContainerInfo(id=cid, short_id=cid[:12], name=name, image="nginx:latest", status=status,
                         state_text="Up 3 hours", ports=[PortBinding(80, "tcp", 8080, "0.0.0.0")])


def test_scroll_offset():
    assert scroll_offset(None, 10) == 0
    assert scroll_offset(5, 10) == 0
    assert scroll_offset(15, 10) == 6


def test_format_row_contents():
    row = format_row(make_container("abcdef1234567890", "web"), 160)
    assert "web" in row
    assert "running" in row
    assert "abcdef123456" in row
    assert "0.0.0.0:8080->80/tcp" in row


def test_terminal_restored_once_on_error(fake_screen):
    stdscr, endwin = fake_screen
    with pytest.raises(RuntimeError):
        with terminal():
            raise RuntimeError("draw failed")
    endwin.assert_called_once_with()
    stdscr.keypad.assert_called_with(False)


def test_terminal_restore_failure_is_logged(fake_screen, mocker):
    stdscr, endwin = fake_screen
    endwin.side_effect = curses.error("endwin failed")
    with terminal():
        pass
    endwin.assert_called_once_with()


def test_draw_small_terminal():
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (5, 20)
    draw(stdscr, AppDataManager().get_snapshot(), GuiStateManager().get_snapshot())
    assert "Terminal too small!" in screen_text(stdscr)


def test_draw_table_and_status():
    app = AppDataManager()
    gui = GuiStateManager()
    app.reconcile([make_container("a1", "web"), make_container("b2", "db", ContainerStatus.EXITED)])
    gui.reconcile_selection(app.get_containers())
    gui.push_status("web restarted", StatusLevel.SUCCESS)
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (24, 120)

    draw(stdscr, app.get_snapshot(), gui.get_snapshot())

    text = screen_text(stdscr)
    assert "1/2 running" in text
    assert "web" in text
    assert "db" in text
    assert "web restarted" in text


def test_error_overlay_takes_priority():
    app = AppDataManager()
    gui = GuiStateManager()
    gui.set_modal(Modal.HELP)
    app.set_error(AppError.DOCKER_CONNECT)
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (24, 120)

    draw(stdscr, app.get_snapshot(), gui.get_snapshot())

    win = curses.newwin.return_value
    drawn = " ".join(str(call.args[2]) for call in win.addstr.call_args_list)
    assert "Unable to access docker daemon" in drawn
    assert "HELP" not in drawn


def test_renderer_forwards_keys(fake_screen):
    stdscr, endwin = fake_screen
    shutdown = threading.Event()
    input_tx = queue.Queue()
    keys = [ord('j'), curses.ERR, curses.KEY_RESIZE, ord('q')]

    def getch():
        if keys:
            return keys.pop(0)
        shutdown.set()
        return curses.ERR
    stdscr.getch.side_effect = getch

    Renderer(AppDataManager(), GuiStateManager(), input_tx, shutdown).run()

    assert [input_tx.get_nowait(), input_tx.get_nowait()] == [ord('j'), ord('q')]
    assert input_tx.empty()
    endwin.assert_called_once_with()


def test_renderer_drops_keys_when_queue_full(fake_screen):
    stdscr, _ = fake_screen
    shutdown = threading.Event()
    input_tx = queue.Queue(maxsize=1)
    keys = [ord('j'), ord('k')]

    def getch():
        if keys:
            return keys.pop(0)
        shutdown.set()
        return curses.ERR
    stdscr.getch.side_effect = getch

    Renderer(AppDataManager(), GuiStateManager(), input_tx, shutdown).run()

    assert input_tx.get_nowait() == ord('j')


def test_renderer_exits_after_fatal_error_dismissed(fake_screen):
    stdscr, endwin = fake_screen
    stdscr.getch.return_value = ord('x')
    app = AppDataManager()
    app.set_error(AppError.DOCKER_CONNECTION_LOST)
    shutdown = threading.Event()

    Renderer(app, GuiStateManager(), queue.Queue(), shutdown).run()

    assert shutdown.is_set()
    endwin.assert_called_once_with()


def test_renderer_restores_terminal_on_crash(fake_screen):
    stdscr, endwin = fake_screen
    stdscr.getch.side_effect = RuntimeError("boom")
    shutdown = threading.Event()

    with pytest.raises(RuntimeError):
        Renderer(AppDataManager(), GuiStateManager(), queue.Queue(), shutdown).run()

    assert shutdown.is_set()
    endwin.assert_called_once_with()
