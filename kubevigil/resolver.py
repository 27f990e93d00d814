"""
Release resolution.

A release is identified by the ``app.kubernetes.io/instance`` label its pods
carry. When the operator only knows one pod, the resolver reads that pod's
metadata and returns the label value.

Example:
    ```python
    resolver = ReleaseResolver(kube.core)
    release = await resolver.resolve("application", "checkout-svc-7d9f8c6b5-x2x7q")
    ```
"""

from typing import Any, Dict, Mapping, Optional

import urllib3
from kubernetes import client
from kubernetes.client import ApiException

from .constants import RELEASE_LABEL
from .exceptions import PodNotFoundError, ReleaseLabelMissingError, ResolutionFetchError
from .kube import fetch_pod_metadata
from .logs import log


def get_instance_label(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return the release label of a PartialObjectMetadata dict, if any."""
    labels = ((metadata or {}).get('metadata') or {}).get('labels') or {}
    return labels.get(RELEASE_LABEL) or None


class ReleaseResolver:
    """
    Resolves the release a pod belongs to.

    Every failure raises a subclass of ReleaseResolutionError, so callers that
    only need "no release available" can catch the base class while the
    command line still tells a missing pod from an unreachable cluster.

    Attributes:
        core: CoreV1Api client used for the metadata read
    """

    def __init__(self, core: client.CoreV1Api):
        self.core = core

    async def resolve(self, namespace: str, pod_name: str) -> str:
        """
        Return the release identifier of ``namespace/pod_name``.

        Raises:
            PodNotFoundError: If the pod does not exist
            ReleaseLabelMissingError: If the pod has no release label
            ResolutionFetchError: If the metadata read fails
        """
        try:
            metadata: Optional[Dict[str, Any]] = await fetch_pod_metadata(self.core, namespace, pod_name)
        except ApiException as e:
            raise ResolutionFetchError(
                f"Failed to read pod {namespace}/{pod_name}: {e.status} {e.reason}"
            ) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ResolutionFetchError(f"Failed to read pod {namespace}/{pod_name}: {e}") from e

        if metadata is None:
            raise PodNotFoundError(f"Pod {namespace}/{pod_name} not found")

        release = get_instance_label(metadata)
        if release is None:
            raise ReleaseLabelMissingError(
                f"Pod {namespace}/{pod_name} has no {RELEASE_LABEL} label"
            )

        log.info(f"[resolver] pod {namespace}/{pod_name} belongs to release '{release}'")
        return release
