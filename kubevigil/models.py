"""
Data models for Kubevigil.

This module defines the data structures shared by the resolver, the watcher and
the notifier.

Key Models:
- PodIdentity: Namespace and name of a single pod
- FlatStatus: Minimal, comparable projection of a pod status
- WatchEventType: Closed set of Kubernetes watch event types
- AppliedEvent: Normalized "this pod now looks like this" event
- Notification: Title and body of an operator alert
- NotifyPolicy: When the notifier raises alerts
- MonitorConfig: Validated runtime configuration

Example:
    ```python
    status = FlatStatus(phase="Failed", reason="OOMKilled")
    print(status)  # "Failed" ("OOMKilled")
    ```
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .constants import (
    DEFAULT_BACKOFF_INITIAL_SECONDS, DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_NAMESPACE, DEFAULT_NOTIFICATION_SOUND, DEFAULT_WATCH_TIMEOUT_SECONDS,
    RELEASE_LABEL,
)


def _quoted(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class PodIdentity:
    """
    Identity of a single pod.

    Attributes:
        namespace: Kubernetes namespace of the pod
        name: Pod name

    Example:
        ```python
        identity = PodIdentity(namespace="application", name="checkout-svc-0")
        ```
    """
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def of(cls, pod: Any) -> "PodIdentity":
        """Build the identity of a V1Pod-like object."""
        metadata = getattr(pod, 'metadata', None)
        return cls(
            namespace=getattr(metadata, 'namespace', None) or "",
            name=getattr(metadata, 'name', None) or "",
        )


@dataclass(frozen=True)
class FlatStatus:
    """
    Lossy, comparable projection of a pod status.

    Two statuses compare equal when both phase and reason match, which is what
    the change-only notification policy relies on.

    Attributes:
        phase: Pod phase (Running, Pending, Succeeded, Failed, Unknown)
        reason: Optional machine-readable reason (e.g. Evicted)

    Example:
        ```python
        str(FlatStatus("Failed", "OOMKilled"))  # '"Failed" ("OOMKilled")'
        str(FlatStatus("Pending"))              # '"Pending"'
        ```
    """
    phase: str
    reason: Optional[str] = None

    def __str__(self) -> str:
        if self.reason is not None:
            return f"{_quoted(self.phase)} ({_quoted(self.reason)})"
        return _quoted(self.phase)


class WatchEventType(Enum):
    """Event types of the Kubernetes watch protocol."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class AppliedEvent:
    """A pod exists and ``pod`` is its current state."""
    pod: Any

    @property
    def identity(self) -> PodIdentity:
        return PodIdentity.of(self.pod)


@dataclass(frozen=True)
class Notification:
    title: str
    body: str


class NotifyPolicy(Enum):
    """
    When the transition notifier raises an alert.

    EVERY alerts on every non-Running observation. CHANGE alerts on a
    non-Running observation only when it differs from the previous observation
    of the same pod.
    """
    EVERY = "every"
    CHANGE = "change"


@dataclass
class MonitorConfig:
    """
    Runtime configuration of a monitoring run.

    Exactly one of ``pod`` and ``release`` is expected to be set; when only
    ``pod`` is given the release is resolved from its labels.

    Attributes:
        namespace: Namespace holding the release
        pod: Pod used to look up the release (optional)
        release: Release identifier (optional)
        kubeconfig: Path to kubeconfig (optional)
        context: Kubecontext override (optional)
        watch_timeout: Per-session watch timeout in seconds
        policy: Notification policy
        sound: macOS notification sound name
        desktop: Raise desktop notifications (False only logs them)
        backoff_initial: First reconnect delay in seconds
        backoff_max: Upper bound of the reconnect delay in seconds

    Example:
        ```python
        config = MonitorConfig(namespace="prod", release="checkout-svc")
        ```
    """
    namespace: str = DEFAULT_NAMESPACE
    pod: Optional[str] = None
    release: Optional[str] = None
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    watch_timeout: int = DEFAULT_WATCH_TIMEOUT_SECONDS
    policy: NotifyPolicy = NotifyPolicy.EVERY
    sound: Optional[str] = DEFAULT_NOTIFICATION_SOUND
    desktop: bool = True
    backoff_initial: float = DEFAULT_BACKOFF_INITIAL_SECONDS
    backoff_max: float = DEFAULT_BACKOFF_MAX_SECONDS


def label_selector_for(release: str) -> str:
    """Label selector matching every pod of ``release``."""
    return f"{RELEASE_LABEL}={release}"
