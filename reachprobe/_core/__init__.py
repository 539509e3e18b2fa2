"""
Probing core for reachprobe.

This module handles:
- Cached HTTP clients per certificate-verification mode
- Reachability probing (ping)
- StartTLS upgrade handshakes and capability probing
- Peer certificate extraction
"""

from reachprobe._core.version import (
    PROBE_VERSION,
    USER_AGENT,
    parse_version,
)
from reachprobe._core.certificate import (
    get_peer_certificate,
    certificate_expires_in,
)
from reachprobe._core.client import (
    HTTPClientCache,
    get_http_client,
)
from reachprobe._core.ping import (
    ping,
    ping_async,
)
from reachprobe._core.upgrade import (
    PORT_PROTOCOLS,
    UPGRADERS,
    protocol_for_port,
)
from reachprobe._core.starttls import (
    can_perform_starttls,
    can_perform_starttls_async,
    parse_address,
)

__all__ = [
    # Version
    "PROBE_VERSION",
    "USER_AGENT",
    "parse_version",
    # Certificate
    "get_peer_certificate",
    "certificate_expires_in",
    # HTTP clients
    "HTTPClientCache",
    "get_http_client",
    # Ping
    "ping",
    "ping_async",
    # StartTLS
    "PORT_PROTOCOLS",
    "UPGRADERS",
    "protocol_for_port",
    "can_perform_starttls",
    "can_perform_starttls_async",
    "parse_address",
]
