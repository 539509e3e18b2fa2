"""
Exception types for reachprobe.

Provides typed exceptions for:
- StartTLS capability probing (address, dial and handshake failures)

Ping failures are deliberately not classified: a failed ping is always
reported as PingResult(False, 0.0).
"""

from __future__ import annotations

from typing import Optional


class ReachProbeError(Exception):
    """Base exception for all reachprobe errors."""
    pass


# =============================================================================
# StartTLS Errors
# =============================================================================


class StartTlsError(ReachProbeError):
    """
    Base class for failures reported by can_perform_starttls().
    
    These are returned inside a StartTlsResult rather than raised, so a
    caller can inspect them without a try/except. The probed address is
    kept for reporting.
    """
    
    def __init__(self, message: str, address: Optional[str] = None):
        self.address = address
        super().__init__(message)
    
    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, address={self.address!r})"


class AddressFormatError(StartTlsError):
    """
    Raised when an address is not a valid host:port pair.
    
    No network I/O is attempted for such an address.
    """
    pass


class DialError(StartTlsError):
    """
    Raised when the TCP connection could not be established.
    
    This includes:
    - Host name resolution failures
    - Refused connections
    - Connect timeouts
    """
    pass


class TlsHandshakeError(StartTlsError):
    """
    Raised when the connection was established but TLS could not be.
    
    This includes:
    - Plaintext upgrade commands rejected or left unanswered
    - Peer closing the connection mid-upgrade
    - TLS handshake or certificate verification failures
    """
    pass
