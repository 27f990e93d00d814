"""
Input validation for Kubevigil.

This module validates every user-supplied value before the monitor talks to the
cluster, so malformed names fail fast with a readable message instead of an API
error mid-watch.

Key Functions:
- validate_namespace: Validates namespace names (DNS-1123 label)
- validate_pod_name: Validates pod names (DNS-1123 subdomain)
- validate_release: Validates release identifiers (label values)
- validate_watch_timeout: Validates the per-session watch timeout

All validation functions raise ConfigurationError with a descriptive message
when validation fails.

Example:
    ```python
    try:
        namespace = validate_namespace("prod")
        release = validate_release("checkout-svc")
    except ConfigurationError as e:
        print(f"Validation failed: {e}")
    ```
"""

import re

from .constants import MAX_WATCH_TIMEOUT_SECONDS
from .exceptions import ConfigurationError

_DNS_LABEL = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$')
_DNS_SUBDOMAIN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
_LABEL_VALUE = re.compile(r'^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$')


def validate_namespace(namespace: str) -> str:
    """
    Validate a Kubernetes namespace name.

    Namespaces must be DNS-1123 labels: lowercase alphanumerics and '-',
    starting and ending with an alphanumeric, at most 63 characters.

    Args:
        namespace: Namespace name to validate

    Returns:
        str: The trimmed namespace name

    Raises:
        ConfigurationError: If the namespace is empty or malformed
    """
    if not namespace or not namespace.strip():
        raise ConfigurationError("Namespace cannot be empty")

    namespace = namespace.strip()
    if len(namespace) > 63 or not _DNS_LABEL.match(namespace):
        raise ConfigurationError(f"Invalid namespace name: {namespace!r}")
    return namespace


def validate_pod_name(name: str) -> str:
    """
    Validate a pod name.

    Pod names must be DNS-1123 subdomains of at most 253 characters.

    Raises:
        ConfigurationError: If the name is empty or malformed
    """
    if not name or not name.strip():
        raise ConfigurationError("Pod name cannot be empty")

    name = name.strip()
    if len(name) > 253 or not _DNS_SUBDOMAIN.match(name):
        raise ConfigurationError(f"Invalid pod name: {name!r}")
    return name


def validate_release(release: str) -> str:
    """
    Validate a release identifier.

    The release ends up as the value of a label selector, so it must be a
    valid label value: at most 63 characters, alphanumerics at both ends and
    '-', '_' or '.' in between.

    Raises:
        ConfigurationError: If the release is empty or not a valid label value
    """
    if not release or not release.strip():
        raise ConfigurationError("Release cannot be empty")

    release = release.strip()
    if len(release) > 63 or not _LABEL_VALUE.match(release):
        raise ConfigurationError(f"Invalid release name: {release!r}")
    return release


def validate_watch_timeout(timeout: int) -> int:
    """
    Validate the per-session watch timeout.

    Args:
        timeout: Timeout in seconds

    Returns:
        int: The validated timeout

    Raises:
        ConfigurationError: If timeout is not an integer between 1 and 3600

    Example:
        ```python
        validate_watch_timeout(9)   # Returns 9
        validate_watch_timeout(0)   # Raises ConfigurationError
        ```
    """
    if isinstance(timeout, bool) or not isinstance(timeout, int):
        raise ConfigurationError(f"Watch timeout must be an integer, got: {timeout!r}")

    if timeout < 1 or timeout > MAX_WATCH_TIMEOUT_SECONDS:
        raise ConfigurationError(
            f"Watch timeout must be between 1 and {MAX_WATCH_TIMEOUT_SECONDS} seconds, got: {timeout}"
        )
    return timeout
