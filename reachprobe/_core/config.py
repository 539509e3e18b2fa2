"""
Runtime configuration for reachprobe.

Values are read from the environment once at import time. Each attribute
may be reassigned afterwards (tests shorten the timeouts this way); the
probes look them up on every call.

Environment Variables:
    REACHPROBE_PING_TIMEOUT: Seconds to wait for an echo reply
    REACHPROBE_CONNECT_TIMEOUT: Seconds allowed for each dial/upgrade/handshake step
    REACHPROBE_HTTP_TIMEOUT: Default request timeout of the cached HTTP clients
    REACHPROBE_EHLO_NAME: Name announced in the SMTP EHLO command
"""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


DEFAULT_PING_TIMEOUT = 10.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_EHLO_NAME = "localhost"


def env_seconds(name: str, default: float) -> float:
    """
    Read a positive number of seconds from an environment variable.
    
    Args:
        name: Environment variable name
        default: Value used when the variable is unset or invalid
        
    Returns:
        The configured number of seconds
    """
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, using {default}s")
        return default
    
    if value <= 0:
        logger.warning(f"Ignoring {name}={raw!r}: must be positive, using {default}s")
        return default
    
    return value


PING_TIMEOUT = env_seconds("REACHPROBE_PING_TIMEOUT", DEFAULT_PING_TIMEOUT)
CONNECT_TIMEOUT = env_seconds("REACHPROBE_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)
HTTP_TIMEOUT = env_seconds("REACHPROBE_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)
EHLO_NAME = os.environ.get("REACHPROBE_EHLO_NAME") or DEFAULT_EHLO_NAME


def resolve_timeout(timeout: Optional[float], default: float) -> float:
    """
    Pick the timeout for one probe call.
    
    None means "use the configured default". An explicit value must be
    positive; zero would turn the blocking calls non-blocking.
    
    Raises:
        ValueError: If an explicit timeout is zero or negative
    """
    if timeout is None:
        return default
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    return timeout
