"""
Kubevigil - Kubernetes release health watcher.

Kubevigil watches every pod of a release (the pods labelled
``app.kubernetes.io/instance=<release>``) and raises a desktop notification
whenever one of them is observed outside the ``Running`` phase.

Key Features:
- Release resolution from a single pod name (metadata-only lookup)
- Resumable watch sessions with automatic reconnect and resync
- Minimal phase/reason status projection
- Configurable notification policy (every observation or changes only)
- macOS and Linux desktop notifications

Example:
    Watch the release a pod belongs to:
    ```bash
    kubevigil --pod checkout-svc-7d9f8c6b5-x2x7q
    ```

    Watch a release directly in another namespace:
    ```bash
    kubevigil --release checkout-svc --namespace prod
    ```
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
