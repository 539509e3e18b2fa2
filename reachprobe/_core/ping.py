"""
Reachability probing through the platform ping executable.

Handles:
- Platform detection
- Building a single-echo ping command with a bounded wait
- Extracting the round-trip time from the reply

Every failure (bad host, missing binary or privilege, no reply before the
timeout) collapses to PingResult(False, 0.0).
"""

from __future__ import annotations

import asyncio
import logging
import math
import platform
import re
import subprocess
import time
from typing import List, Optional

from reachprobe._core import config
from reachprobe.types import PingResult

logger = logging.getLogger(__name__)


# Matches "time=0.045 ms", "time=12ms" and Windows' "time<1ms"
_RTT_PATTERN = re.compile(r"time[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)


def get_os_name() -> str:
    """
    Determine the normalized OS name.
    
    Returns:
        One of "linux", "darwin", "windows"
        
    Raises:
        RuntimeError: If the operating system is unsupported
    """
    system = platform.system().lower()
    if system in ("linux", "darwin", "windows"):
        return system
    if system.endswith("bsd"):
        # BSD ping takes the same flags as macOS
        return "darwin"
    raise RuntimeError(f"Unsupported operating system: {system}")


def build_ping_command(host: str, timeout: float, os_name: str) -> List[str]:
    """
    Build the command line for exactly one echo request.
    
    Args:
        host: Host name or IP address
        timeout: Seconds to wait for the reply
        os_name: Normalized OS name from get_os_name()
        
    Returns:
        The argv list to execute
    """
    if os_name == "windows":
        return ["ping", "-n", "1", "-w", str(max(1, int(timeout * 1000))), host]
    if os_name == "darwin":
        # -W is in milliseconds on macOS and the BSDs
        return ["ping", "-n", "-c", "1", "-W", str(max(1, int(timeout * 1000))), host]
    # iputils only accepts whole seconds on older releases; the subprocess
    # timeout enforces the exact bound
    return ["ping", "-n", "-c", "1", "-W", str(max(1, math.ceil(timeout))), host]


def parse_rtt(output: str) -> Optional[float]:
    """
    Extract the round-trip time from ping output.
    
    Returns:
        Seconds, or None if no positive figure is present
    """
    match = _RTT_PATTERN.search(output)
    if not match:
        return None
    rtt = float(match.group(1)) / 1000.0
    return rtt if rtt > 0 else None


def _is_valid_host(host: str) -> bool:
    # Leading dashes would be parsed as ping options
    return bool(host) and not host.startswith("-") and not any(c.isspace() for c in host)


def ping(host: str, timeout: Optional[float] = None) -> PingResult:
    """
    Send one echo request to a host and wait for the reply.
    
    Args:
        host: Host name or IP address
        timeout: Seconds to wait (default: config.PING_TIMEOUT)
        
    Returns:
        PingResult(True, rtt) on a reply, PingResult(False, 0.0) otherwise
        
    Raises:
        ValueError: If an explicit timeout is not positive
    """
    timeout = config.resolve_timeout(timeout, config.PING_TIMEOUT)
    
    if not _is_valid_host(host):
        logger.debug(f"Refusing to ping invalid host {host!r}")
        return PingResult.failed()
    
    try:
        os_name = get_os_name()
    except RuntimeError as e:
        logger.debug(f"Cannot ping {host}: {e}")
        return PingResult.failed()
    
    cmd = build_ping_command(host, timeout, os_name)
    logger.debug(f"Running {' '.join(cmd)}")
    
    start = time.monotonic()
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"No echo reply from {host} within {timeout}s")
        return PingResult.failed()
    except OSError as e:
        # Missing binary or insufficient privilege: environmental, not the host's fault
        logger.debug(f"Could not run ping for {host}: {e}")
        return PingResult.failed()
    elapsed = time.monotonic() - start
    
    if completed.returncode != 0:
        logger.debug(f"ping {host} exited with code {completed.returncode}")
        return PingResult.failed()
    
    # Windows exits 0 for "Destination host unreachable" relayed by a gateway
    if os_name == "windows" and "TTL=" not in completed.stdout.upper():
        return PingResult.failed()
    
    rtt = parse_rtt(completed.stdout) or elapsed
    return PingResult(success=True, rtt=rtt)


async def ping_async(host: str, timeout: Optional[float] = None) -> PingResult:
    """
    Async wrapper around ping().
    
    Runs the blocking probe in the default executor.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, ping, host, timeout)
