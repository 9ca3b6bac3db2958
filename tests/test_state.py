import pytest
from dockview.errors import AppError
from dockview.model import (
    ContainerAction,
    ContainerCommand,
    ContainerInfo,
    ContainerStatus,
    Modal,
    StatusLevel,
)
from dockview.state import AppDataManager, GuiStateManager


def make_container(cid, name=None, status=ContainerStatus.RUNNING, image="nginx:latest"):
    return ContainerInfo(
        id=cid,
        short_id=cid[:12],
        name=name or f"c_{cid}",
        image=image,
        status=status,
        state_text="Up 2 minutes",
    )


def ids(containers):
    return [c.id for c in containers]


def test_reconcile_keeps_order_of_survivors_and_appends_new():
    app = AppDataManager()
    app.reconcile([make_container("A"), make_container("B"), make_container("C")])

    changed = app.reconcile([make_container("D"), make_container("C"), make_container("B")])

    assert changed
    assert ids(app.get_containers()) == ["B", "C", "D"]


def test_reconcile_overwrites_changed_fields_in_place():
    app = AppDataManager()
    app.reconcile([make_container("A"), make_container("B")])

    app.reconcile([make_container("A", status=ContainerStatus.EXITED), make_container("B")])

    a = app.get_container("A")
    assert a.status is ContainerStatus.EXITED
    assert ids(app.get_containers()) == ["A", "B"]


def test_reconcile_same_listing_is_idempotent():
    app = AppDataManager()
    listing = [make_container("A"), make_container("B")]
    assert app.reconcile(listing)
    version = app.get_version()

    assert not app.reconcile([make_container("A"), make_container("B")])
    assert app.get_version() == version


def test_reconcile_ignores_duplicate_ids():
    app = AppDataManager()
    app.reconcile([make_container("A"), make_container("A", name="again")])

    containers = app.get_containers()
    assert ids(containers) == ["A"]
    assert containers[0].name == "again"


def test_get_containers_returns_copies():
    app = AppDataManager()
    app.reconcile([make_container("A")])

    copy = app.get_containers()
    copy[0].name = "mutated"

    assert app.get_container("A").name == "c_A"


def test_error_latch_freezes_collection():
    app = AppDataManager()
    app.reconcile([make_container("A")])

    assert app.set_error(AppError.DOCKER_CONNECTION_LOST)
    assert not app.reconcile([make_container("B")])

    assert ids(app.get_containers()) == ["A"]
    assert app.get_error() is AppError.DOCKER_CONNECTION_LOST


def test_only_first_error_is_latched():
    app = AppDataManager()
    assert app.set_error(AppError.DOCKER_CONNECT)
    assert not app.set_error(AppError.DOCKER_CONNECTION_LOST)
    assert app.get_error() is AppError.DOCKER_CONNECT


def test_logs_dropped_with_container():
    app = AppDataManager()
    app.reconcile([make_container("A"), make_container("B")])
    app.set_logs("A", ["line 1", "line 2"])

    assert app.get_logs("A") == ["line 1", "line 2"]
    app.reconcile([make_container("B")])
    assert app.get_logs("A") == []


def test_container_status_unknown_for_missing_id():
    app = AppDataManager()
    assert app.container_status("nope") is ContainerStatus.UNKNOWN


# --- GuiStateManager ---

def test_status_queue_is_bounded_and_drops_oldest():
    gui = GuiStateManager(status_capacity=3, status_ttl=60)
    for i in range(5):
        gui.push_status(f"msg {i}")

    messages = gui.get_messages()
    assert [m.text for m in messages] == ["msg 2", "msg 3", "msg 4"]
    assert gui.status_capacity == 3


def test_status_messages_expire():
    gui = GuiStateManager(status_capacity=5, status_ttl=60)
    gui.push_status("short", StatusLevel.ERROR, ttl=0)
    gui.push_status("long", StatusLevel.SUCCESS)

    messages = gui.get_messages()
    assert [m.text for m in messages] == ["long"]
    assert messages[0].level is StatusLevel.SUCCESS


def test_prune_expired_bumps_version():
    gui = GuiStateManager()
    gui.push_status("gone", ttl=0)
    version = gui.get_version()

    gui.prune_expired()

    assert gui.get_version() > version
    assert gui.get_messages() == []


def test_selection_none_when_nothing_visible():
    gui = GuiStateManager()
    assert gui.get_selected_index() is None

    gui.reconcile_selection([make_container(c) for c in "ABC"])
    assert gui.get_selected_index() == 0

    gui.reconcile_selection([])
    assert gui.get_selected_index() is None


def test_move_selection_clamps():
    gui = GuiStateManager()
    containers = [make_container(c) for c in "ABCDE"]
    gui.reconcile_selection(containers)

    gui.move_selection(1, containers)
    assert gui.get_selected_index() == 1

    gui.move_selection(100, containers)
    assert gui.get_selected_index() == 4

    gui.move_selection(-100, containers)
    assert gui.get_selected_index() == 0


def test_move_selection_counts_filtered_rows():
    gui = GuiStateManager()
    containers = [
        make_container("A", name="web-1"),
        make_container("B", name="db"),
        make_container("C", name="web-2"),
    ]
    gui.set_filter_text("web", containers)

    gui.move_selection(10, containers)

    assert gui.get_selected_index() == 1
    assert gui.selected_container(containers).id == "C"


def test_move_selection_against_shrunk_collection():
    gui = GuiStateManager()
    containers = [make_container(c) for c in "ABC"]
    gui.reconcile_selection(containers)
    gui.move_selection(2, containers)

    gui.move_selection(1, containers[:1])

    assert gui.get_selected_index() == 0

    gui.move_selection(1, [])
    assert gui.get_selected_index() is None


def test_reconcile_selection_after_removal():
    gui = GuiStateManager()
    containers = [make_container(c) for c in "ABC"]
    gui.reconcile_selection(containers)
    gui.move_selection(2, containers)

    gui.reconcile_selection(containers[:1])
    assert gui.get_selected_index() == 0

    gui.reconcile_selection([])
    assert gui.get_selected_index() is None


def test_filter_reclamps_selection():
    gui = GuiStateManager()
    containers = [
        make_container("A", name="web"),
        make_container("B", name="db", image="postgres:16"),
        make_container("C", name="cache", image="redis:7"),
    ]
    gui.reconcile_selection(containers)
    gui.move_selection(2, containers)

    gui.set_filter_text("POSTGRES", containers)

    assert gui.get_selected_index() == 0
    assert gui.selected_container(containers).id == "B"

    gui.set_filter_text("nothing-matches", containers)
    assert gui.get_selected_index() is None
    assert gui.selected_container(containers) is None


def test_confirmation_flow():
    gui = GuiStateManager()
    command = ContainerCommand("A", ContainerAction.REMOVE)

    gui.request_confirmation(command)
    snap = gui.get_snapshot()
    assert snap.modal is Modal.CONFIRM
    assert snap.pending == command

    assert gui.take_pending() == command
    assert gui.get_modal() is Modal.NONE
    assert gui.take_pending() is None


def test_closing_confirm_modal_discards_pending():
    gui = GuiStateManager()
    gui.request_confirmation(ContainerCommand("A", ContainerAction.STOP))

    gui.set_modal(Modal.NONE)

    assert gui.get_snapshot().pending is None


def test_scroll_logs_bounds():
    gui = GuiStateManager()
    gui.show_logs("A")
    assert gui.get_modal() is Modal.LOGS

    gui.scroll_logs(50, total_lines=30, page_height=10)
    assert gui.get_snapshot().logs_scroll_offset == 20

    gui.scroll_logs(-100, total_lines=30, page_height=10)
    assert gui.get_snapshot().logs_scroll_offset == 0


@pytest.mark.parametrize("modal", [Modal.HELP, Modal.LOGS])
def test_set_modal_bumps_version(modal):
    gui = GuiStateManager()
    version = gui.get_version()
    gui.set_modal(modal)
    assert gui.get_version() == version + 1
    gui.set_modal(modal)
    assert gui.get_version() == version + 1
