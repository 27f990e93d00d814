"""
Monitoring pipeline for Kubevigil.

This module wires the pieces together: it loads the Kubernetes client,
resolves the release when only a pod was given, and feeds the watcher's applied
events into the transition notifier one at a time until the watch is stopped.

Key Functions:
- resolve_release: Determine the release to watch from the configuration
- run_monitor: Run the whole pipeline
- install_signal_handlers: Stop the pipeline on SIGINT/SIGTERM

Example:
    ```python
    await run_monitor(MonitorConfig(namespace="prod", release="checkout-svc"))
    ```
"""

import asyncio
import signal
from typing import Optional

from .exceptions import ConfigurationError, KubernetesConnectionError
from .kube import KubeContext, load_kube
from .logs import log, log_exception
from .models import MonitorConfig, NotifyPolicy, label_selector_for
from .notifier import Deliverer, DesktopNotifier, LogNotifier, TransitionNotifier
from .resolver import ReleaseResolver
from .watcher import PodWatcher


def build_deliverer(config: MonitorConfig) -> Deliverer:
    if not config.desktop:
        return LogNotifier()
    return DesktopNotifier(sound=config.sound)


async def resolve_release(kube: KubeContext, config: MonitorConfig) -> str:
    """
    Determine the release to watch.

    Raises:
        ConfigurationError: If neither a release nor a pod was configured
        ReleaseResolutionError: If the pod's release cannot be resolved
    """
    if config.release:
        return config.release
    if not config.pod:
        raise ConfigurationError("Missing pod/release name")
    return await ReleaseResolver(kube.core).resolve(config.namespace, config.pod)


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGINT and SIGTERM."""
    loop = asyncio.get_event_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            log.debug(f"[monitor] cannot install handler for {sig.name}")


async def run_monitor(
    config: MonitorConfig,
    stop_event: Optional[asyncio.Event] = None,
    kube: Optional[KubeContext] = None,
    deliverer: Optional[Deliverer] = None,
) -> TransitionNotifier:
    """
    Run the monitoring pipeline until the watch is stopped.

    Args:
        config: Validated configuration
        stop_event: Ends the watch when set (optional)
        kube: Preloaded Kubernetes context (optional, loaded from config if None)
        deliverer: Notification backend (optional, derived from config if None)

    Returns:
        TransitionNotifier: The notifier, for its delivery counters

    Raises:
        KubernetesConnectionError: If the Kubernetes configuration cannot be loaded
        ConfigurationError: If neither a release nor a pod was configured
        ReleaseResolutionError: If the pod's release cannot be resolved
        TerminalWatchError: If the watch fails in a way reconnecting cannot fix
    """
    if kube is None:
        try:
            kube = await load_kube(config.kubeconfig, config.context)
        except Exception as e:
            log_exception("[monitor] Failed to load Kubernetes configuration", e)
            raise KubernetesConnectionError(f"Failed to connect to Kubernetes: {e}") from e

    release = await resolve_release(kube, config)
    selector = label_selector_for(release)

    notifier = TransitionNotifier(deliverer or build_deliverer(config), policy=config.policy)
    watcher = PodWatcher(
        kube.core,
        config.namespace,
        selector,
        timeout_seconds=config.watch_timeout,
        stop_event=stop_event,
        on_deleted=notifier.forget if config.policy is NotifyPolicy.CHANGE else None,
        backoff_initial=config.backoff_initial,
        backoff_max=config.backoff_max,
    )

    log.info(f"[monitor] release='{release}' namespace='{config.namespace}' policy={config.policy.value}")
    async for event in watcher.applied_events():
        await notifier.handle(event)
    log.info(f"[monitor] notifications sent={notifier.sent} failed={notifier.failed}")
    return notifier
