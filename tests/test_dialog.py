import asyncio
import json

from client.dialog import ProgressDialog
from core.progress.state import COMPLETED, FAILED, ProgressState

from fakes import FakeConnection, completed_frame, connector, progress_frame


async def _until(predicate, tries=100):
    for _ in range(tries):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


def test_close_always_closes_socket_and_resets_state():
    conn = FakeConnection([progress_frame("job-1", 1, points=10)], hold_open=True)
    dialog = ProgressDialog("job-1", url="ws://test/ws", connect=connector(conn), max_retries=0)

    async def run_test():
        await dialog.show()
        assert await _until(lambda: dialog.state is not None)
        assert dialog.state.current_page == 1
        assert dialog.connected is True

        await dialog.close()

        assert conn.closed is True
        assert dialog.state is None
        assert dialog.connected is False
        assert dialog.visible is False
        assert dialog.render() == []

    asyncio.run(run_test())


def test_wait_terminal_returns_completed_state_and_ignores_later_frames():
    changes = []
    conn = FakeConnection(
        [
            progress_frame("job-1", 1, points=4),
            progress_frame("job-1", 2, points=9),
            completed_frame("job-1"),
            progress_frame("job-1", 3, points=99),
        ],
        hold_open=True,
    )
    dialog = ProgressDialog(
        "job-1",
        url="ws://test/ws",
        on_change=lambda d: changes.append(d.state),
        connect=connector(conn),
        max_retries=0,
    )

    async def run_test():
        await dialog.show()
        state = await dialog.wait_terminal(timeout=1)
        assert state.status == COMPLETED
        # let the trailing progress frame reach the dialog
        for _ in range(10):
            await asyncio.sleep(0)
        assert dialog.state.status == COMPLETED
        assert dialog.state.current_page == 2
        assert dialog.state.data_points == 9
        await dialog.close()
        assert conn.closed is True

    asyncio.run(run_test())

    assert [s.status for s in changes] == ["running", "running", "completed"]


def test_connection_lost_marks_running_job_failed():
    conn = FakeConnection([progress_frame("job-1", 2, points=6)])
    dialog = ProgressDialog("job-1", url="ws://test/ws", connect=connector(conn), max_retries=0)

    async def run_test():
        await dialog.show()
        state = await dialog.wait_terminal(timeout=1)
        assert state.status == FAILED
        assert state.error == "Connection lost"
        assert state.data_points == 6
        assert dialog.render() == [
            "Scraping failed (Disconnected)",
            "6 data points collected",
            "Error: Connection lost",
        ]
        await dialog.close()

    asyncio.run(run_test())


def test_show_without_job_id_is_noop():
    connect = connector()
    dialog = ProgressDialog("", url="ws://test/ws", connect=connect)

    async def run_test():
        await dialog.show()
        assert dialog.visible is False
        assert await dialog.wait_terminal(timeout=0) is None

    asyncio.run(run_test())
    assert connect.calls == []


def test_render_running_state():
    dialog = ProgressDialog("job-1")
    dialog.visible = True
    dialog.state = ProgressState(current_page=2, max_pages=5, data_points=40)

    assert dialog.render() == [
        "Scraping in progress... (Disconnected)",
        "Page 2 of 5 - 40%",
        "40 data points collected",
    ]


def test_set_visible_toggles_channel():
    conn = FakeConnection([json.dumps({"type": "ping"})], hold_open=True)
    dialog = ProgressDialog("job-1", url="ws://test/ws", connect=connector(conn), max_retries=0)

    async def run_test():
        await dialog.set_visible(True)
        assert await _until(lambda: dialog.connected)
        await dialog.set_visible(False)
        assert conn.closed is True

    asyncio.run(run_test())
