"""
Type definitions for reachprobe.

Defines enums and dataclasses used across the package for:
- Reachability (ping) results
- StartTLS capability results and upgrade protocols
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from cryptography import x509

    from reachprobe.errors import StartTlsError


# =============================================================================
# Enums
# =============================================================================


class UpgradeProtocol(str, Enum):
    """
    Plaintext-to-TLS upgrade sequence performed before the TLS handshake.
    
    - NONE: TLS-native or unrecognized service, handshake immediately
    - SMTP: EHLO followed by STARTTLS (RFC 3207)
    - POP3: STLS (RFC 2595)
    - IMAP: tagged STARTTLS (RFC 3501)
    - FTP: AUTH TLS (RFC 4217)
    - LDAP: StartTLS extended operation (RFC 4511)
    """
    NONE = "none"
    SMTP = "smtp"
    POP3 = "pop3"
    IMAP = "imap"
    FTP = "ftp"
    LDAP = "ldap"


# =============================================================================
# Dataclasses
# =============================================================================


@dataclass(frozen=True)
class PingResult:
    """
    Result of a single reachability probe.
    
    Unpacks like a pair, so ``success, rtt = ping(host)`` works.
    
    Attributes:
        success: Whether an echo reply arrived before the timeout
        rtt: Round-trip time in seconds; > 0 on success, exactly 0.0 on failure
    """
    success: bool
    rtt: float = 0.0
    
    def __post_init__(self) -> None:
        if self.success and self.rtt <= 0:
            raise ValueError("A successful ping must carry a positive round-trip time")
        if not self.success and self.rtt != 0:
            raise ValueError("A failed ping must carry a round-trip time of 0")
    
    @classmethod
    def failed(cls) -> "PingResult":
        return cls(success=False, rtt=0.0)
    
    def __iter__(self) -> Iterator[Union[bool, float]]:
        yield self.success
        yield self.rtt


@dataclass(frozen=True)
class StartTlsResult:
    """
    Result of a StartTLS capability probe.
    
    Unpacks like a triple, so ``connected, cert, err = can_perform_starttls(...)``
    works.
    
    Attributes:
        connected: Dial, upgrade and TLS handshake all completed
        certificate: Leaf certificate presented by the peer, if connected
        error: Why the probe failed, if it did
    """
    connected: bool
    certificate: Optional["x509.Certificate"] = None
    error: Optional["StartTlsError"] = None
    
    def __post_init__(self) -> None:
        if self.error is not None and (self.connected or self.certificate is not None):
            raise ValueError("A failed StartTLS probe cannot be connected or carry a certificate")
    
    @classmethod
    def failed(cls, error: "StartTlsError") -> "StartTlsResult":
        return cls(connected=False, certificate=None, error=error)
    
    @property
    def ok(self) -> bool:
        """Check if the probe connected without error."""
        return self.connected and self.error is None
    
    @property
    def certificate_expiration(self) -> Optional[float]:
        """Seconds until the leaf certificate expires, or None without one."""
        if self.certificate is None:
            return None
        from reachprobe._core.certificate import certificate_expires_in
        return certificate_expires_in(self.certificate)
    
    def __iter__(self) -> Iterator[object]:
        yield self.connected
        yield self.certificate
        yield self.error
