"""
Pod status projection.

This module reduces a Kubernetes pod object to the ``FlatStatus`` the notifier
reasons about. The projection only reads ``status.phase`` and ``status.reason``
and never fails, whatever shape the object has.

Key Functions:
- project_status: Convert a pod object to a FlatStatus
- is_running: Whether a FlatStatus is in the Running phase

Example:
    ```python
    status = project_status(v1_pod)
    if not is_running(status):
        print(f"{v1_pod.metadata.name} is {status}")
    ```
"""

from typing import Any

from .constants import RUNNING_PHASE, UNKNOWN_PHASE
from .models import FlatStatus


def project_status(pod: Any) -> FlatStatus:
    """Convert a Kubernetes pod object to a FlatStatus."""
    status = getattr(pod, 'status', None)
    if status is None:
        return FlatStatus(phase=UNKNOWN_PHASE)

    phase = getattr(status, 'phase', None) or UNKNOWN_PHASE
    reason = getattr(status, 'reason', None)
    return FlatStatus(phase=phase, reason=reason)


def is_running(status: FlatStatus) -> bool:
    return status.phase == RUNNING_PHASE
