"""
Kubernetes client and API interactions for Kubevigil.

This module provides the interface between Kubevigil and the Kubernetes API.
The official client is synchronous, so every call is pushed to the event loop's
default executor and exposed as a coroutine.

Key Components:
- KubeContext: Container for the Kubernetes API client
- load_kube: Initialize the Kubernetes client with config loading
- fetch_pod_metadata: Retrieve the metadata-only representation of a pod
- list_pods: List the pods matching a label selector
- open_pod_watch: Open one watch session over the pods matching a label selector

The module supports both external kubeconfig files and in-cluster configuration,
with automatic fallback between them.

Example:
    ```python
    kube = await load_kube(kubeconfig=None, context=None)
    meta = await fetch_pod_metadata(kube.core, "application", "my-pod")
    ```
"""

from __future__ import annotations
import asyncio
from typing import Any, Dict, Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from .constants import PARTIAL_METADATA_ACCEPT, WATCH_CONNECT_TIMEOUT_SECONDS, WATCH_READ_TIMEOUT_MARGIN_SECONDS


class KubeContext:
    """
    Container for Kubernetes API clients.

    Built once per process and handed explicitly to the resolver and the
    watcher; the client itself is only read from, so sharing it is safe.

    Attributes:
        core: CoreV1Api client for pod operations
    """

    def __init__(self, core: client.CoreV1Api):
        self.core = core


async def load_kube(kubeconfig: Optional[str], context: Optional[str]) -> KubeContext:
    """
    Load Kubernetes configuration and create the API client.

    When neither a kubeconfig nor a context is given the default kubeconfig is
    tried first, falling back to the in-cluster service account.

    Args:
        kubeconfig: Path to kubeconfig file (optional, uses default if None)
        context: Kubernetes context name (optional, uses current context if None)

    Returns:
        KubeContext: Initialized context

    Raises:
        Exception: If no Kubernetes configuration can be loaded
    """
    def _load():
        if kubeconfig or context:
            config.load_kube_config(config_file=kubeconfig, context=context)
        else:
            try:
                config.load_kube_config()
            except Exception:
                config.load_incluster_config()
        return client.CoreV1Api()
    loop = asyncio.get_event_loop()
    core = await loop.run_in_executor(None, _load)
    return KubeContext(core)


async def fetch_pod_metadata(core: client.CoreV1Api, namespace: str, name: str) -> Optional[Dict[str, Any]]:
    """
    Fetch the metadata-only representation of a pod.

    Asks the API server for a ``PartialObjectMetadata`` rendering of the pod,
    so only metadata (labels, annotations, owner references) travels over the
    wire. Returns None if the pod is not found, but raises other API exceptions.

    Args:
        core: CoreV1Api client for Kubernetes operations
        namespace: Namespace containing the pod
        name: Name of the pod to fetch

    Returns:
        Optional[Dict[str, Any]]: PartialObjectMetadata as a dictionary, or None if not found

    Raises:
        ApiException: For API errors other than 404 (pod not found)

    Example:
        ```python
        meta = await fetch_pod_metadata(kube.core, "application", "my-pod")
        if meta:
            print(meta["metadata"].get("labels", {}))
        ```
    """
    loop = asyncio.get_event_loop()
    def _get():
        try:
            return core.api_client.call_api(
                '/api/v1/namespaces/{namespace}/pods/{name}', 'GET',
                path_params={'namespace': namespace, 'name': name},
                query_params=[],
                header_params={'Accept': PARTIAL_METADATA_ACCEPT},
                response_type='object',
                auth_settings=['BearerToken'],
                _return_http_data_only=True,
                _preload_content=True,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
    return await loop.run_in_executor(None, _get)


async def list_pods(core: client.CoreV1Api, namespace: str, label_selector: str) -> client.V1PodList:
    """List the pods of ``namespace`` matching ``label_selector``."""
    loop = asyncio.get_event_loop()
    def _list():
        return core.list_namespaced_pod(namespace=namespace, label_selector=label_selector)
    return await loop.run_in_executor(None, _list)


async def open_pod_watch(
    core: client.CoreV1Api,
    namespace: str,
    label_selector: str,
    resource_version: Optional[str],
    timeout_seconds: int,
) -> Any:
    """
    Open a single watch session over the pods matching ``label_selector``.

    The session is requested with bookmarks enabled and a server-side timeout,
    after which the server closes the stream normally. The client-side read
    timeout is slightly longer, so a silently dropped connection surfaces as a
    urllib3 ReadTimeoutError instead of blocking forever. The raw, unread HTTP
    response is returned; the caller owns it and must close it.

    Args:
        core: CoreV1Api client for Kubernetes operations
        namespace: Namespace to watch
        label_selector: Label selector scoping the watch
        resource_version: Resume cursor (None to start from the current state)
        timeout_seconds: Server-side session timeout

    Returns:
        urllib3.HTTPResponse: The streaming watch response
    """
    loop = asyncio.get_event_loop()
    def _open():
        kwargs: Dict[str, Any] = {}
        if resource_version:
            kwargs['resource_version'] = resource_version
        return core.list_namespaced_pod(
            namespace=namespace,
            label_selector=label_selector,
            watch=True,
            allow_watch_bookmarks=True,
            timeout_seconds=timeout_seconds,
            _preload_content=False,
            _request_timeout=(WATCH_CONNECT_TIMEOUT_SECONDS, timeout_seconds + WATCH_READ_TIMEOUT_MARGIN_SECONDS),
            **kwargs,
        )
    return await loop.run_in_executor(None, _open)
