"""Tests for the reconnecting pod watch."""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import urllib3
from kubernetes.client import ApiException

from kubevigil.exceptions import TerminalWatchError, TransientWatchError
from kubevigil.models import PodIdentity
from kubevigil.watcher import PodWatcher, as_watch_error, classify_api_error

NAMESPACE = "application"
SELECTOR = "app.kubernetes.io/instance=checkout-svc"


async def collect(watcher: PodWatcher, count: int):
    """Consume ``count`` applied events (or until the watch ends)."""
    events = []
    stream = watcher.applied_events()
    try:
        async for event in stream:
            events.append(event)
            if len(events) == count:
                break
    finally:
        await stream.aclose()
    return events


def names_and_phases(events):
    return [(e.pod.metadata.name, e.pod.status.phase) for e in events]


@pytest.fixture
def core():
    return MagicMock()


@pytest.fixture
def list_pods():
    with patch("kubevigil.watcher.list_pods", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture
def open_watch():
    with patch("kubevigil.watcher.open_pod_watch", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture(autouse=True)
def fake_lines():
    with patch("kubevigil.watcher.iter_resp_lines", side_effect=lambda resp: iter(resp.lines)) as mock:
        yield mock


def make_watcher(core, **kwargs) -> PodWatcher:
    kwargs.setdefault("backoff_initial", 0)
    return PodWatcher(core, NAMESPACE, SELECTOR, **kwargs)


class TestClassifyApiError:
    """Tests for classify_api_error and as_watch_error."""

    @pytest.mark.parametrize("status", [None, 0, 410, 429, 500, 503])
    def test_transient_statuses(self, status):
        assert isinstance(classify_api_error(status, "x"), TransientWatchError)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_terminal_statuses(self, status):
        error = classify_api_error(status, "x")

        assert isinstance(error, TerminalWatchError)
        assert error.status == status

    def test_api_exception(self):
        error = as_watch_error(ApiException(status=403, reason="Forbidden"))

        assert isinstance(error, TerminalWatchError)
        assert "Forbidden" in str(error)

    def test_transport_errors_are_transient(self):
        assert isinstance(as_watch_error(urllib3.exceptions.ProtocolError("reset")), TransientWatchError)
        assert isinstance(as_watch_error(ConnectionResetError()), TransientWatchError)


class TestInitialSync:

    async def test_lists_then_watches_from_list_version(
        self, core, list_pods, open_watch, make_pod, make_pod_list, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list(
            [make_pod("web-0", resource_version="3"), make_pod("web-1", resource_version="4")],
            resource_version="10",
        )
        open_watch.return_value = watch_response([event_line("MODIFIED", "web-1", "Pending", resource_version="11")])
        watcher = make_watcher(core)

        events = await collect(watcher, 3)

        assert names_and_phases(events) == [("web-0", "Running"), ("web-1", "Running"), ("web-1", "Pending")]
        list_pods.assert_awaited_once_with(core, NAMESPACE, SELECTOR)
        open_watch.assert_awaited_once_with(core, NAMESPACE, SELECTOR, "10", 9)
        assert watcher.resource_version == "11"

    async def test_added_and_modified_are_both_applied(
        self, core, list_pods, open_watch, make_pod_list, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        open_watch.return_value = watch_response([
            event_line("ADDED", "web-0", "Pending", resource_version="2"),
            event_line("MODIFIED", "web-0", "Running", resource_version="3"),
        ])

        events = await collect(make_watcher(core), 2)

        assert names_and_phases(events) == [("web-0", "Pending"), ("web-0", "Running")]
        assert events[0].identity == PodIdentity(NAMESPACE, "web-0")


class TestEventNormalization:

    async def test_deleted_is_not_applied(
        self, core, list_pods, open_watch, make_pod, make_pod_list, event_line, watch_response
    ):
        deleted = []
        list_pods.return_value = make_pod_list([make_pod("web-0")], resource_version="1")
        open_watch.return_value = watch_response([
            event_line("DELETED", "web-0", "Running", resource_version="2"),
            event_line("ADDED", "web-1", "Pending", resource_version="3"),
        ])

        events = await collect(make_watcher(core, on_deleted=deleted.append), 2)

        assert names_and_phases(events) == [("web-0", "Running"), ("web-1", "Pending")]
        assert deleted == [PodIdentity(NAMESPACE, "web-0")]

    async def test_bookmark_only_moves_cursor(
        self, core, list_pods, open_watch, make_pod_list, bookmark_line, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        open_watch.side_effect = [
            watch_response([bookmark_line("50")]),
            watch_response([event_line("MODIFIED", "web-0", "Failed", resource_version="51")]),
        ]
        watcher = make_watcher(core)

        events = await collect(watcher, 1)

        assert names_and_phases(events) == [("web-0", "Failed")]
        assert open_watch.call_args_list[1].args[3] == "50"

    async def test_blank_and_unknown_lines_are_skipped(
        self, core, list_pods, open_watch, make_pod_list, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        open_watch.return_value = watch_response([
            "",
            '{"type": "SOMETHING", "object": {"metadata": {"name": "x", "resourceVersion": "2"}}}',
            event_line("MODIFIED", "web-0", "Pending", resource_version="2"),
        ])

        events = await collect(make_watcher(core), 1)

        assert names_and_phases(events) == [("web-0", "Pending")]


class TestReconnect:
    """Session timeouts, expired cursors and transient faults."""

    async def test_session_timeout_resumes_from_last_version(
        self, core, list_pods, open_watch, make_pod, make_pod_list, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list([make_pod("web-0", resource_version="10")], resource_version="10")
        first = watch_response([event_line("MODIFIED", "web-0", "Pending", resource_version="11")])
        second = watch_response([event_line("MODIFIED", "web-0", "Running", resource_version="12")])
        open_watch.side_effect = [first, second]
        watcher = make_watcher(core)

        events = await collect(watcher, 3)

        assert names_and_phases(events) == [("web-0", "Running"), ("web-0", "Pending"), ("web-0", "Running")]
        list_pods.assert_awaited_once()
        assert [c.args[2] for c in open_watch.call_args_list] == [SELECTOR, SELECTOR]
        assert [c.args[3] for c in open_watch.call_args_list] == ["10", "11"]
        assert first.closed and first.released
        assert watcher.sessions == 2

    async def test_expired_cursor_resyncs(
        self, core, list_pods, open_watch, make_pod, make_pod_list, error_line, watch_response
    ):
        """A 410 relists: pods changed during the gap are delivered, vanished ones reported."""
        deleted = []
        list_pods.side_effect = [
            make_pod_list([make_pod("web-0", resource_version="5"), make_pod("web-1", resource_version="6")],
                          resource_version="6"),
            make_pod_list([make_pod("web-0", phase="Failed", reason="Evicted", resource_version="20")],
                          resource_version="20"),
        ]
        open_watch.return_value = watch_response([error_line(410)])
        watcher = make_watcher(core, on_deleted=deleted.append)

        events = await collect(watcher, 3)

        assert names_and_phases(events) == [("web-0", "Running"), ("web-1", "Running"), ("web-0", "Failed")]
        assert list_pods.await_count == 2
        assert deleted == [PodIdentity(NAMESPACE, "web-1")]
        assert watcher.resource_version == "20"

    async def test_gone_api_exception_resyncs(
        self, core, list_pods, open_watch, make_pod, make_pod_list, event_line, watch_response
    ):
        list_pods.side_effect = [
            make_pod_list([], resource_version="6"),
            make_pod_list([make_pod("web-0", phase="Pending", resource_version="30")], resource_version="30"),
        ]
        open_watch.side_effect = [ApiException(status=410, reason="Gone"), watch_response([])]

        events = await collect(make_watcher(core), 1)

        assert names_and_phases(events) == [("web-0", "Pending")]
        assert list_pods.await_count == 2

    @pytest.mark.parametrize("fault", [
        urllib3.exceptions.ProtocolError("Connection broken"),
        ApiException(status=500, reason="Internal Server Error"),
        ApiException(status=429, reason="Too Many Requests"),
        ConnectionResetError("reset by peer"),
    ])
    async def test_transient_fault_reconnects(
        self, core, list_pods, open_watch, make_pod_list, event_line, watch_response, fault
    ):
        list_pods.return_value = make_pod_list([], resource_version="7")
        open_watch.side_effect = [fault, watch_response([event_line("MODIFIED", "web-0", "Pending", resource_version="8")])]

        events = await collect(make_watcher(core), 1)

        assert names_and_phases(events) == [("web-0", "Pending")]
        assert [c.args[3] for c in open_watch.call_args_list] == ["7", "7"]
        list_pods.assert_awaited_once()

    async def test_transient_error_event_reconnects(
        self, core, list_pods, open_watch, make_pod_list, error_line, event_line, watch_response
    ):
        list_pods.return_value = make_pod_list([], resource_version="7")
        open_watch.side_effect = [
            watch_response([error_line(500, reason="InternalError", message="etcd unavailable")]),
            watch_response([event_line("MODIFIED", "web-0", "Pending", resource_version="8")]),
        ]

        events = await collect(make_watcher(core), 1)

        assert names_and_phases(events) == [("web-0", "Pending")]
        assert open_watch.await_count == 2

    async def test_backoff_grows_and_is_capped(self, core, list_pods, open_watch, make_pod_list, watch_response):
        list_pods.return_value = make_pod_list([], resource_version="7")
        open_watch.side_effect = [ApiException(status=503, reason="Unavailable")] * 4 + [watch_response([])]
        stop = asyncio.Event()
        watcher = make_watcher(core, stop_event=stop, backoff_initial=1.0, backoff_max=3.0)
        delays = []

        async def fake_wait(delay):
            delays.append(delay)
            if len(delays) == 4:
                stop.set()
                return True
            return False

        watcher._wait = fake_wait
        events = await collect(watcher, 1)

        assert events == []
        assert delays == [1.0, 2.0, 3.0, 3.0]

    async def test_repeated_expiry_backs_off(self, core, list_pods, open_watch, make_pod_list):
        list_pods.return_value = make_pod_list([], resource_version="7")
        open_watch.side_effect = ApiException(status=410, reason="Gone")
        stop = asyncio.Event()
        watcher = make_watcher(core, stop_event=stop, backoff_initial=1.0, backoff_max=30.0)
        delays = []

        async def fake_wait(delay):
            delays.append(delay)
            if len(delays) == 3:
                stop.set()
                return True
            return False

        watcher._wait = fake_wait
        events = await collect(watcher, 1)

        assert events == []
        # first expiry relists at once, later ones wait before relisting
        assert delays == [1.0, 2.0, 4.0]
        assert list_pods.await_count == 4
        assert watcher.resource_version is None

    async def test_expiry_after_healthy_session_relists_at_once(
        self, core, list_pods, open_watch, make_pod_list, event_line, error_line, watch_response
    ):
        list_pods.side_effect = [make_pod_list([], resource_version="1"), make_pod_list([], resource_version="9")]
        open_watch.side_effect = [
            watch_response([event_line("MODIFIED", "web-0", "Pending", resource_version="2"), error_line(410)]),
            watch_response([event_line("MODIFIED", "web-0", "Failed", resource_version="10")]),
        ]
        watcher = make_watcher(core)
        watcher._wait = AsyncMock(return_value=False)

        events = await collect(watcher, 2)

        assert names_and_phases(events) == [("web-0", "Pending"), ("web-0", "Failed")]
        watcher._wait.assert_not_awaited()

    async def test_stalled_stream_reconnects(
        self, core, list_pods, open_watch, make_pod_list, event_line, watch_response
    ):
        def stalled():
            yield event_line("MODIFIED", "web-0", "Pending", resource_version="8")
            raise urllib3.exceptions.ReadTimeoutError(None, "/api/v1/namespaces/application/pods", "Read timed out.")

        list_pods.return_value = make_pod_list([], resource_version="7")
        first = watch_response(stalled())
        open_watch.side_effect = [
            first,
            watch_response([event_line("MODIFIED", "web-0", "Failed", resource_version="9")]),
        ]

        events = await collect(make_watcher(core), 2)

        assert names_and_phases(events) == [("web-0", "Pending"), ("web-0", "Failed")]
        assert [c.args[3] for c in open_watch.call_args_list] == ["7", "8"]
        assert first.closed
        list_pods.assert_awaited_once()


class TestTerminalFaults:
    """Faults that reconnecting cannot fix reach the caller."""

    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_terminal_api_exception_propagates(self, core, list_pods, open_watch, make_pod_list, status):
        list_pods.return_value = make_pod_list([], resource_version="1")
        open_watch.side_effect = ApiException(status=status, reason="Nope")

        with pytest.raises(TerminalWatchError) as exc_info:
            await collect(make_watcher(core), 1)

        assert exc_info.value.status == status
        assert open_watch.await_count == 1

    async def test_terminal_list_failure_propagates(self, core, list_pods, open_watch):
        list_pods.side_effect = ApiException(status=400, reason="Bad Request")

        with pytest.raises(TerminalWatchError):
            await collect(make_watcher(core), 1)

        open_watch.assert_not_awaited()

    async def test_terminal_error_event_propagates(
        self, core, list_pods, open_watch, make_pod_list, error_line, watch_response
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        response = watch_response([error_line(403, reason="Forbidden", message="pods is forbidden")])
        open_watch.return_value = response

        with pytest.raises(TerminalWatchError, match="Forbidden"):
            await collect(make_watcher(core), 1)

        assert response.closed


class TestStopAndCancel:

    @pytest.fixture
    def blocking_lines(self, fake_lines):
        release = threading.Event()
        fake_lines.side_effect = lambda resp: iter(_BlockingLines(release))
        yield release
        release.set()

    async def test_stop_before_start_yields_nothing(self, core, list_pods, open_watch):
        stop = asyncio.Event()
        stop.set()

        events = await collect(make_watcher(core, stop_event=stop), 1)

        assert events == []
        list_pods.assert_not_awaited()

    async def test_stop_while_waiting_for_event(
        self, core, list_pods, open_watch, make_pod_list, watch_response, blocking_lines
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        response = watch_response([])
        open_watch.return_value = response
        stop = asyncio.Event()

        task = asyncio.ensure_future(collect(make_watcher(core, stop_event=stop), 1))
        await asyncio.sleep(0.05)
        stop.set()
        events = await asyncio.wait_for(task, timeout=2)

        assert events == []
        assert response.closed

    async def test_cancel_while_waiting_for_event(
        self, core, list_pods, open_watch, make_pod_list, watch_response, blocking_lines
    ):
        list_pods.return_value = make_pod_list([], resource_version="1")
        response = watch_response([])
        open_watch.return_value = response

        task = asyncio.ensure_future(collect(make_watcher(core), 1))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert response.closed


class _BlockingLines:
    """Line iterator whose first read blocks until released, then ends."""

    def __init__(self, release: threading.Event):
        self.release = release

    def __iter__(self):
        return self

    def __next__(self):
        self.release.wait(5)
        raise StopIteration
