"""
Command-line interface for Kubevigil.

This module parses and validates the command line, runs the monitoring pipeline
and maps its outcome to an exit status:

- 0: the watch was stopped (Ctrl-C, SIGTERM)
- 1: infrastructure failure (cluster unreachable, metadata read failed, watch
  failed permanently)
- 2: usage error (invalid option, no pod/release given, pod missing or not part
  of a release)

Example:
    ```bash
    kubevigil --pod checkout-svc-7d9f8c6b5-x2x7q
    kubevigil --release checkout-svc --namespace prod --notify-on change
    ```
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from .constants import (
    DEFAULT_NAMESPACE, DEFAULT_NOTIFICATION_SOUND, DEFAULT_WATCH_TIMEOUT_SECONDS,
    ENV_NAMESPACE, ENV_WATCH_TIMEOUT, EXIT_FAILURE, EXIT_USAGE,
)
from .exceptions import (
    ConfigurationError, KubernetesConnectionError, PodNotFoundError,
    ReleaseLabelMissingError, ResolutionFetchError, TerminalWatchError,
)
from .logs import configure_logging, log
from .models import MonitorConfig, NotifyPolicy
from .monitor import install_signal_handlers, run_monitor
from .validation import validate_namespace, validate_pod_name, validate_release, validate_watch_timeout


def _env_timeout() -> int:
    try:
        return int(os.getenv(ENV_WATCH_TIMEOUT, str(DEFAULT_WATCH_TIMEOUT_SECONDS)))
    except ValueError:
        log.warning(f"[config] Invalid {ENV_WATCH_TIMEOUT}, using default: {DEFAULT_WATCH_TIMEOUT_SECONDS}")
        return DEFAULT_WATCH_TIMEOUT_SECONDS


def build_parser() -> argparse.ArgumentParser:
    """
    Build and configure the command-line argument parser.

    Environment variables are used as defaults where appropriate.

    Returns:
        argparse.ArgumentParser: Configured argument parser with all options

    Environment Variables:
        KUBEVIGIL_NAMESPACE: Default namespace (default: application)
        KUBEVIGIL_WATCH_TIMEOUT: Default watch session timeout in seconds (default: 9)
    """
    p = argparse.ArgumentParser("kubevigil", description="Desktop alerts for pods of a Kubernetes release leaving the Running phase")
    target = p.add_mutually_exclusive_group()
    target.add_argument("-p", "--pod", help="Pod whose release should be watched")
    target.add_argument("-r", "--release", help="Release to watch (value of app.kubernetes.io/instance)")
    p.add_argument("-n", "--namespace", default=os.getenv(ENV_NAMESPACE, DEFAULT_NAMESPACE), help="Namespace of the release (env: KUBEVIGIL_NAMESPACE)")
    p.add_argument("--kubeconfig", default=None, help="Path to kubeconfig (defaults to kube rules)")
    p.add_argument("--context", default=None, help="Kubecontext override")
    p.add_argument("--timeout", type=int, default=_env_timeout(), help="Watch session timeout in seconds (env: KUBEVIGIL_WATCH_TIMEOUT)")
    p.add_argument("--notify-on", choices=[policy.value for policy in NotifyPolicy], default=NotifyPolicy.EVERY.value,
                   help="Notify on every non-Running observation or only when a pod's status changes")
    p.add_argument("--sound", default=DEFAULT_NOTIFICATION_SOUND, help="macOS notification sound ('' for silent)")
    p.add_argument("--no-desktop", action="store_true", help="Log notifications instead of showing desktop alerts")
    return p


def config_from_args(args: argparse.Namespace) -> MonitorConfig:
    """
    Validate parsed arguments into a MonitorConfig.

    Raises:
        ConfigurationError: If any value is invalid or neither --pod nor --release is given
    """
    if not args.pod and not args.release:
        raise ConfigurationError("Missing pod/release name")

    return MonitorConfig(
        namespace=validate_namespace(args.namespace),
        pod=validate_pod_name(args.pod) if args.pod else None,
        release=validate_release(args.release) if args.release else None,
        kubeconfig=args.kubeconfig,
        context=args.context,
        watch_timeout=validate_watch_timeout(args.timeout),
        policy=NotifyPolicy(args.notify_on),
        sound=args.sound or None,
        desktop=not args.no_desktop,
    )


async def _run(config: MonitorConfig) -> None:
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    await run_monitor(config, stop_event=stop_event)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the Kubevigil CLI application.

    Raises:
        SystemExit: With the exit status of the run (see module docstring)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        config = config_from_args(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
    except (PodNotFoundError, ReleaseLabelMissingError) as e:
        print(f"Missing pod/release name: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except (ResolutionFetchError, KubernetesConnectionError) as e:
        print(f"Cluster error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except TerminalWatchError as e:
        print(f"Watch failed: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    print("Done.")


if __name__ == "__main__":  # pragma: no cover
    main()
