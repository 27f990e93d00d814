"""Shared fixtures for the kubevigil test suite."""

import json
from typing import List, Optional

import pytest
from kubernetes.client import V1ListMeta, V1ObjectMeta, V1Pod, V1PodList, V1PodStatus

NAMESPACE = "application"


class FakeWatchResponse:
    """Stand-in for the streaming urllib3 response of a watch request."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        self.closed = False
        self.released = False

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True


def _pod(name: str, phase: Optional[str] = "Running", reason: Optional[str] = None,
         resource_version: str = "1", namespace: str = NAMESPACE, with_status: bool = True) -> V1Pod:
    status = V1PodStatus(phase=phase, reason=reason) if with_status else None
    return V1Pod(
        metadata=V1ObjectMeta(name=name, namespace=namespace, resource_version=resource_version),
        status=status,
    )


def _event_line(event_type: str, name: str, phase: str = "Running", reason: Optional[str] = None,
                resource_version: str = "1", namespace: str = NAMESPACE) -> str:
    status = {"phase": phase}
    if reason:
        status["reason"] = reason
    return json.dumps({
        "type": event_type,
        "object": {
            "kind": "Pod",
            "apiVersion": "v1",
            "metadata": {"name": name, "namespace": namespace, "resourceVersion": resource_version},
            "status": status,
        },
    })


@pytest.fixture
def make_pod():
    return _pod


@pytest.fixture
def make_pod_list():
    def _make(pods: List[V1Pod], resource_version: str = "1") -> V1PodList:
        return V1PodList(items=pods, metadata=V1ListMeta(resource_version=resource_version))
    return _make


@pytest.fixture
def event_line():
    return _event_line


@pytest.fixture
def bookmark_line():
    def _make(resource_version: str) -> str:
        return json.dumps({
            "type": "BOOKMARK",
            "object": {"kind": "Pod", "apiVersion": "v1", "metadata": {"resourceVersion": resource_version}},
        })
    return _make


@pytest.fixture
def error_line():
    def _make(code: int, reason: str = "Expired", message: str = "too old resource version") -> str:
        return json.dumps({
            "type": "ERROR",
            "object": {"kind": "Status", "apiVersion": "v1", "status": "Failure",
                       "code": code, "reason": reason, "message": message},
        })
    return _make


@pytest.fixture
def watch_response():
    return FakeWatchResponse
