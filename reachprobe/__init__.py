"""
reachprobe: Connectivity probes for health-check engines.

This package provides:
- Cached HTTP clients, one per certificate-verification mode
- ping() reachability probe with bounded wait and round-trip time
- can_perform_starttls() probe that upgrades SMTP/POP3/IMAP/FTP/LDAP
  connections to TLS and returns the peer's leaf certificate
- Prometheus publishing of finished probe results

Installation:
    pip install reachprobe

Quickstart:
    from reachprobe import can_perform_starttls, get_http_client, ping

    success, rtt = ping("192.0.2.10")

    result = can_perform_starttls("smtp.example.org:587")
    if result.connected:
        print(f"Certificate expires in {result.certificate_expiration:.0f}s")
    else:
        print(f"StartTLS failed: {result.error}")

    session = get_http_client(skip_verify=False)
    response = session.get("https://example.org/health")
"""

from reachprobe.types import (
    PingResult,
    StartTlsResult,
    UpgradeProtocol,
)
from reachprobe.errors import (
    ReachProbeError,
    StartTlsError,
    AddressFormatError,
    DialError,
    TlsHandshakeError,
)
from reachprobe._core.version import PROBE_VERSION
from reachprobe._core.certificate import (
    get_peer_certificate,
    certificate_expires_in,
)
from reachprobe._core.client import get_http_client
from reachprobe._core.ping import ping, ping_async
from reachprobe._core.starttls import (
    can_perform_starttls,
    can_perform_starttls_async,
    parse_address,
)

__version__ = PROBE_VERSION

__all__ = [
    # Version
    "__version__",
    "PROBE_VERSION",
    # Types
    "PingResult",
    "StartTlsResult",
    "UpgradeProtocol",
    # Errors
    "ReachProbeError",
    "StartTlsError",
    "AddressFormatError",
    "DialError",
    "TlsHandshakeError",
    # Certificate
    "get_peer_certificate",
    "certificate_expires_in",
    # HTTP clients
    "get_http_client",
    # Probes
    "ping",
    "ping_async",
    "can_perform_starttls",
    "can_perform_starttls_async",
    "parse_address",
]
