"""
Custom exceptions for Kubevigil.

This module defines the exception classes used throughout Kubevigil so that the
command line can tell user errors apart from infrastructure failures.

Exception Hierarchy:
- KubevigilError: Base exception for all Kubevigil-specific errors
  - ConfigurationError: Raised when there's a configuration issue
  - KubernetesConnectionError: Raised when the Kubernetes client cannot be configured
  - ReleaseResolutionError: Raised when no release can be determined for a pod
    - PodNotFoundError: The pod does not exist
    - ReleaseLabelMissingError: The pod carries no release label
    - ResolutionFetchError: The pod metadata could not be fetched
  - WatchSessionError: Raised when a watch session fails
    - TransientWatchError: Recoverable; the watch loop reconnects
    - TerminalWatchError: Unrecoverable; propagated to the caller
  - NotificationDeliveryError: Raised when a desktop notification cannot be sent

Example:
    ```python
    try:
        release = await resolver.resolve("application", "my-pod")
    except ReleaseResolutionError as e:
        print(f"No release for pod: {e}")
    ```
"""

from typing import Optional


class KubevigilError(Exception):
    """Base exception for Kubevigil errors."""
    pass


class ConfigurationError(KubevigilError):
    """Raised when there's a configuration issue."""
    pass


class KubernetesConnectionError(KubevigilError):
    """Raised when unable to configure the Kubernetes client."""
    pass


class ReleaseResolutionError(KubevigilError):
    """Raised when the release of a pod cannot be determined."""
    pass


class PodNotFoundError(ReleaseResolutionError):
    """Raised when a requested pod is not found."""
    pass


class ReleaseLabelMissingError(ReleaseResolutionError):
    """Raised when a pod carries no release label."""
    pass


class ResolutionFetchError(ReleaseResolutionError):
    """Raised when pod metadata cannot be fetched from the API."""
    pass


class WatchSessionError(KubevigilError):
    """Base class for watch session failures."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientWatchError(WatchSessionError):
    """Raised for watch failures that a new session can recover from."""
    pass


class TerminalWatchError(WatchSessionError):
    """Raised for watch failures that reconnecting cannot fix."""
    pass


class NotificationDeliveryError(KubevigilError):
    """Raised when a notification cannot be delivered."""
    pass
