"""
Version constants for reachprobe.

- PROBE_VERSION: User-facing package version (semver)
- USER_AGENT: Sent by the cached HTTP clients, derived from PROBE_VERSION
"""

from __future__ import annotations

import re
from typing import Tuple

# reachprobe version (user-facing, semver)
PROBE_VERSION = "0.1.0"

PROJECT_NAME = "reachprobe"

_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Split a release string into its numeric (major, minor, patch) parts.
    
    Pre-release and build suffixes ("1.2.3-rc.1") are ignored.
    
    Raises:
        ValueError: If the string does not start with three dotted numbers
    """
    match = _VERSION_PATTERN.match(version)
    if match is None:
        raise ValueError(f"Invalid version string: {version}")
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def get_user_agent(version: str = PROBE_VERSION) -> str:
    """Build the User-Agent header value for a given package version."""
    major, minor, patch = parse_version(version)
    return f"{PROJECT_NAME}/{major}.{minor}.{patch}"


USER_AGENT = get_user_agent()
