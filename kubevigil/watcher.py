"""
Resumable pod watch.

This module keeps a watch open over every pod matching a label selector and
turns the raw Kubernetes watch protocol into a plain stream of AppliedEvent
objects ("this pod now looks like this").

Watch sessions are bounded by a server-side timeout. When one ends, normally or
because of a recoverable fault, a new session is opened from the last observed
resourceVersion. When that cursor has expired (410 Gone) the pods are listed
again and every current pod is delivered before watching resumes. Faults that a
new session cannot fix (bad selector, missing permissions) are raised as
TerminalWatchError.

Key Components:
- PodWatcher: Reconnecting watch over the pods of a label selector
- classify_api_error: Split API failures into transient and terminal ones
- as_watch_error: Translate client/transport exceptions into WatchSessionErrors

Example:
    ```python
    watcher = PodWatcher(kube.core, "application", "app.kubernetes.io/instance=checkout-svc")
    async for event in watcher.applied_events():
        print(event.identity, event.pod.status.phase)
    ```
"""

import asyncio
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, Iterator, Optional, Set

import urllib3
from kubernetes import client, watch
from kubernetes.client import ApiException
from kubernetes.watch.watch import iter_resp_lines

from .constants import (
    DEFAULT_BACKOFF_INITIAL_SECONDS, DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_WATCH_TIMEOUT_SECONDS, HTTP_GONE, HTTP_TOO_MANY_REQUESTS,
)
from .exceptions import TerminalWatchError, TransientWatchError, WatchSessionError
from .kube import list_pods, open_pod_watch
from .logs import log, log_exception
from .models import AppliedEvent, PodIdentity, WatchEventType


def classify_api_error(status: Optional[int], message: str) -> WatchSessionError:
    """
    Classify an API failure by HTTP status.

    Expired cursors (410), throttling (429), server errors (5xx) and failures
    without a status are transient. Every other status means the request itself
    is wrong or not allowed, which no reconnect will change.
    """
    if not status or status in (HTTP_GONE, HTTP_TOO_MANY_REQUESTS) or status >= 500:
        return TransientWatchError(message, status)
    return TerminalWatchError(message, status)


def as_watch_error(exc: Exception) -> WatchSessionError:
    """Translate a client or transport exception into a WatchSessionError."""
    if isinstance(exc, ApiException):
        return classify_api_error(exc.status, f"{exc.status} {exc.reason}")
    return TransientWatchError(f"{exc.__class__.__name__}: {exc}")


def _resource_version(pod: Any) -> Optional[str]:
    return getattr(getattr(pod, 'metadata', None), 'resource_version', None)


def _raw_resource_version(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    return (raw.get('metadata') or {}).get('resourceVersion')


class PodWatcher:
    """
    Reconnecting watch over the pods matching a label selector.

    ``applied_events()`` is an endless async iterator. It ends only when
    ``stop_event`` is set, when the consuming task is cancelled, or by raising
    TerminalWatchError. Transient faults never reach the consumer.

    Attributes:
        core: CoreV1Api client
        namespace: Namespace to watch
        label_selector: Label selector scoping the watch
        timeout_seconds: Server-side duration of a single watch session
        stop_event: Event that ends the watch when set (optional)
        on_deleted: Called with the identity of every pod that disappears (optional)
        resource_version: Resume cursor of the next session (None forces a resync)
        sessions: Number of watch sessions opened so far
    """

    def __init__(
        self,
        core: client.CoreV1Api,
        namespace: str,
        label_selector: str,
        timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS,
        stop_event: Optional[asyncio.Event] = None,
        on_deleted: Optional[Callable[[PodIdentity], None]] = None,
        backoff_initial: float = DEFAULT_BACKOFF_INITIAL_SECONDS,
        backoff_max: float = DEFAULT_BACKOFF_MAX_SECONDS,
    ):
        self.core = core
        self.namespace = namespace
        self.label_selector = label_selector
        self.timeout_seconds = timeout_seconds
        self.stop_event = stop_event
        self.on_deleted = on_deleted
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.resource_version: Optional[str] = None
        self.sessions = 0
        self._known: Set[PodIdentity] = set()
        self._decoder = watch.Watch()

    def stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def applied_events(self) -> AsyncIterator[AppliedEvent]:
        """Yield an AppliedEvent for every observed pod state, reconnecting as needed."""
        delay = self.backoff_initial
        relisted = False
        log.info(f"[watch] watching pods in '{self.namespace}' with selector '{self.label_selector}'")
        while not self.stopped():
            try:
                if self.resource_version is None:
                    async with aclosing(self._resync()) as resync:
                        async for event in resync:
                            yield event
                async with aclosing(self._session()) as session:
                    async for event in session:
                        delay = self.backoff_initial
                        relisted = False
                        yield event
                delay = self.backoff_initial
                relisted = False
                continue
            except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
                error = as_watch_error(e)
                if isinstance(error, TerminalWatchError):
                    raise error from e
            except TransientWatchError as e:
                error = e

            if error.status == HTTP_GONE:
                self.resource_version = None
                # Only the first expiry after a healthy session relists at once.
                if not relisted:
                    log.info("[watch] resume cursor expired, resyncing")
                    relisted = True
                    continue

            log_exception(f"[watch] session failed, reconnecting in {delay:.1f}s", error)
            if await self._wait(delay):
                break
            delay = min(delay * 2, self.backoff_max)
        log.info("[watch] stopped")

    async def _resync(self) -> AsyncIterator[AppliedEvent]:
        """List current pods, report vanished ones and restart from the list's cursor."""
        pods = await list_pods(self.core, self.namespace, self.label_selector)
        items = list(pods.items or [])
        current = {PodIdentity.of(p) for p in items}
        for identity in self._known - current:
            self._deleted(identity)
        self._known = current
        self.resource_version = getattr(pods.metadata, 'resource_version', None)
        log.debug(f"[watch] resynced {len(items)} pods at resourceVersion={self.resource_version}")
        for pod in items:
            yield AppliedEvent(pod)

    async def _session(self) -> AsyncIterator[AppliedEvent]:
        """Run one watch session until the server closes it."""
        resp = await open_pod_watch(
            self.core, self.namespace, self.label_selector,
            self.resource_version, self.timeout_seconds,
        )
        self.sessions += 1
        log.debug(f"[watch] session {self.sessions} opened at resourceVersion={self.resource_version}")
        lines = iter_resp_lines(resp)
        try:
            while True:
                line = await self._next_line(lines)
                if line is None:
                    break
                if not line.strip():
                    continue
                try:
                    event = self._decoder.unmarshal_event(line, 'V1Pod')
                except ValueError as e:
                    log_exception("[watch] skipping undecodable event", e)
                    continue
                if event is None:
                    continue
                applied = self._dispatch(event)
                if applied is not None:
                    yield applied
        finally:
            resp.close()
            resp.release_conn()
        log.debug(f"[watch] session {self.sessions} closed")

    async def _next_line(self, lines: Iterator[str]) -> Optional[str]:
        """Read the next line of a session; None when it ended or the watch was stopped."""
        loop = asyncio.get_event_loop()
        read = loop.run_in_executor(None, next, lines, None)
        if self.stop_event is None:
            return await read

        stop = asyncio.ensure_future(self.stop_event.wait())
        try:
            done, _ = await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (read, stop):
                if not fut.done():
                    fut.cancel()
        if read in done:
            return read.result()
        return None

    def _dispatch(self, event: Dict[str, Any]) -> Optional[AppliedEvent]:
        """Normalize one decoded watch event; only ADDED and MODIFIED produce an AppliedEvent."""
        try:
            kind = WatchEventType(event.get('type'))
        except ValueError:
            log.warning(f"[watch] ignoring unknown event type {event.get('type')!r}")
            return None

        if kind is WatchEventType.ERROR:
            raw = event.get('raw_object') or {}
            code = raw.get('code')
            raise classify_api_error(
                code if isinstance(code, int) else None,
                f"{raw.get('reason')}: {raw.get('message')}",
            )

        if kind is WatchEventType.BOOKMARK:
            cursor = _raw_resource_version(event.get('raw_object'))
            if cursor:
                self.resource_version = cursor
            return None

        pod = event.get('object')
        cursor = _resource_version(pod)
        if cursor:
            self.resource_version = cursor
        identity = PodIdentity.of(pod)

        if kind is WatchEventType.DELETED:
            self._known.discard(identity)
            self._deleted(identity)
            return None

        self._known.add(identity)
        return AppliedEvent(pod)

    def _deleted(self, identity: PodIdentity) -> None:
        log.info(f"[watch] pod {identity} deleted")
        if self.on_deleted is not None:
            self.on_deleted(identity)

    async def _wait(self, delay: float) -> bool:
        """Sleep ``delay`` seconds; True if the watch was stopped meanwhile."""
        if self.stop_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
