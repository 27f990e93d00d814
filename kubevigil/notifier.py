"""
Transition notifier and notification delivery.

The TransitionNotifier looks at every applied pod state, projects it to a
FlatStatus and raises a notification when the pod is not Running. Delivery is
delegated to a backend:

- DesktopNotifier: macOS (osascript) or Linux (notify-send) desktop notifications
- LogNotifier: Writes notifications to the log only

A failed delivery is logged and never interrupts the watch.

Example:
    ```python
    notifier = TransitionNotifier(DesktopNotifier(sound="Funk"), policy=NotifyPolicy.CHANGE)
    async for event in watcher.applied_events():
        await notifier.handle(event)
    ```
"""

import asyncio
import logging
import subprocess
import sys
from typing import Dict, List, Optional, Protocol

from .constants import DEFAULT_NOTIFICATION_SOUND, NOTIFICATION_TIMEOUT_SECONDS, RUNNING_PHASE
from .exceptions import NotificationDeliveryError
from .logs import log, log_exception
from .models import AppliedEvent, FlatStatus, Notification, NotifyPolicy, PodIdentity
from .status import is_running, project_status


class Deliverer(Protocol):
    def deliver(self, notification: Notification) -> None: ...


def _escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


class DesktopNotifier:
    """
    Sends desktop notifications through the operating system.

    macOS notifications go through ``osascript`` and play ``sound`` (None for a
    silent notification); elsewhere ``notify-send`` is used.

    Attributes:
        sound: macOS sound name (optional)
        platform: Platform string deciding the backend (defaults to sys.platform)
        timeout: Seconds to wait for the notifier process
    """

    def __init__(
        self,
        sound: Optional[str] = DEFAULT_NOTIFICATION_SOUND,
        platform: Optional[str] = None,
        timeout: float = NOTIFICATION_TIMEOUT_SECONDS,
    ):
        self.sound = sound
        self.platform = platform or sys.platform
        self.timeout = timeout

    def command(self, notification: Notification) -> List[str]:
        """Build the notifier command line for ``notification``."""
        if self.platform == "darwin":
            script = (
                f'display notification "{_escape(notification.body)}" '
                f'with title "{_escape(notification.title)}"'
            )
            if self.sound:
                script += f' sound name "{_escape(self.sound)}"'
            return ["osascript", "-e", script]
        return ["notify-send", "--app-name=kubevigil", notification.title, notification.body]

    def deliver(self, notification: Notification) -> None:
        """
        Show ``notification`` on the desktop.

        Raises:
            NotificationDeliveryError: If the notifier is missing, cannot be started, fails or hangs
        """
        cmd = self.command(notification)
        try:
            subprocess.run(cmd, capture_output=True, timeout=self.timeout, check=True)
        except FileNotFoundError as e:
            raise NotificationDeliveryError(f"{cmd[0]} not found") from e
        except subprocess.TimeoutExpired as e:
            raise NotificationDeliveryError(f"{cmd[0]} timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
            raise NotificationDeliveryError(f"{cmd[0]} exited with {e.returncode}: {stderr}") from e
        except OSError as e:
            raise NotificationDeliveryError(f"{cmd[0]} could not be started: {e}") from e


class LogNotifier:
    """Writes notifications to the log instead of the desktop."""

    def deliver(self, notification: Notification) -> None:
        log.warning(f"[notify] {notification.title}: {notification.body}")


def build_notification(identity: PodIdentity, status: FlatStatus) -> Notification:
    return Notification(
        title=f"Pod {identity.name}",
        body=f"Is in non '{RUNNING_PHASE}' phase: {status}",
    )


class TransitionNotifier:
    """
    Decides which pod states deserve an operator alert.

    With NotifyPolicy.EVERY each non-Running observation produces a
    notification. With NotifyPolicy.CHANGE the last observed status of every
    pod is remembered and a non-Running status only notifies when it differs
    from the previous observation of that pod.

    Attributes:
        deliverer: Notification backend
        policy: Notification policy
        last_seen: Last observed status per pod (CHANGE policy only)
        sent: Number of notifications delivered
        failed: Number of notifications that could not be delivered
    """

    def __init__(self, deliverer: Deliverer, policy: NotifyPolicy = NotifyPolicy.EVERY):
        self.deliverer = deliverer
        self.policy = policy
        self.last_seen: Dict[PodIdentity, FlatStatus] = {}
        self.sent = 0
        self.failed = 0

    def should_notify(self, identity: PodIdentity, status: FlatStatus) -> bool:
        """Apply the policy to one observation and update the last-seen cache."""
        if self.policy is NotifyPolicy.CHANGE:
            previous = self.last_seen.get(identity)
            self.last_seen[identity] = status
            if previous == status:
                return False
        return not is_running(status)

    def forget(self, identity: PodIdentity) -> None:
        """Drop a deleted pod from the last-seen cache."""
        self.last_seen.pop(identity, None)

    async def handle(self, event: AppliedEvent) -> Optional[Notification]:
        """
        Evaluate one applied pod state.

        Returns:
            Optional[Notification]: The notification raised for this event, or None.
            A notification is returned even when its delivery failed; delivery
            failures are logged and counted, never raised.
        """
        identity = event.identity
        status = project_status(event.pod)
        log.info(f"POD: {identity.name}, status: {status}")

        if not self.should_notify(identity, status):
            return None

        notification = build_notification(identity, status)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self.deliverer.deliver, notification)
        except Exception as e:
            self.failed += 1
            log_exception(f"[notify] Failed to notify about pod {identity}", e, logging.ERROR)
        else:
            self.sent += 1
        return notification
