"""
Logging setup for Kubevigil.

All modules log through the ``kubevigil`` logger. Messages carry a bracketed
component tag (``[watch]``, ``[notify]``...) so a single stream stays readable.
The level comes from the KUBEVIGIL_LOG_LEVEL environment variable.
"""

import logging
import os
from typing import Optional

from .constants import DEFAULT_LOG_LEVEL, ENV_LOG_LEVEL

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(message)s'

log = logging.getLogger('kubevigil')


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging (level via KUBEVIGIL_LOG_LEVEL env or default INFO)."""
    name = (level or os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)


def log_exception(msg: str, exc: BaseException, level: int = logging.WARNING) -> None:
    """Log an exception with proper formatting."""
    log.log(level, f"{msg}: {exc.__class__.__name__}: {exc}")
