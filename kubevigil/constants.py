"""
Constants and configuration defaults for Kubevigil.

Constants are organized by category:
- Labels: Well-known Kubernetes label keys
- Phases: Pod phase names the watcher reasons about
- Watch sessions: Session timeout and reconnect backoff
- Notifications: Desktop notification settings
- Logging: Default log levels
- CLI defaults: Default namespace and environment variable names
"""

# Labels
RELEASE_LABEL = "app.kubernetes.io/instance"

# Phases
RUNNING_PHASE = "Running"
UNKNOWN_PHASE = "Unknown"

# Watch sessions (in seconds)
DEFAULT_WATCH_TIMEOUT_SECONDS = 9
MAX_WATCH_TIMEOUT_SECONDS = 3600
DEFAULT_BACKOFF_INITIAL_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 30.0
# Client-side limits of a watch request: connect timeout, and how long a read may
# outlast the server-side session timeout before the stream counts as stalled
WATCH_CONNECT_TIMEOUT_SECONDS = 10
WATCH_READ_TIMEOUT_MARGIN_SECONDS = 5

# HTTP statuses the watch loop treats specially
HTTP_GONE = 410
HTTP_TOO_MANY_REQUESTS = 429

# Accept header for metadata-only reads
PARTIAL_METADATA_ACCEPT = "application/json;as=PartialObjectMetadata;g=meta.k8s.io;v=v1"

# Notifications
DEFAULT_NOTIFICATION_SOUND = "Funk"
NOTIFICATION_TIMEOUT_SECONDS = 10

# Logging
DEFAULT_LOG_LEVEL = "INFO"

# CLI defaults
DEFAULT_NAMESPACE = "application"
ENV_NAMESPACE = "KUBEVIGIL_NAMESPACE"
ENV_WATCH_TIMEOUT = "KUBEVIGIL_WATCH_TIMEOUT"
ENV_LOG_LEVEL = "KUBEVIGIL_LOG_LEVEL"

# Exit statuses
EXIT_FAILURE = 1
EXIT_USAGE = 2
