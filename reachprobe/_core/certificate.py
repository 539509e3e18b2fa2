"""
Peer certificate extraction.

Turns the leaf certificate of a completed TLS handshake into a
cryptography ``x509.Certificate``. No chain validation happens here beyond
what the handshake itself performed under its verification policy.
"""

from __future__ import annotations

import ssl
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509


def get_peer_certificate(tls_socket: ssl.SSLSocket) -> Optional[x509.Certificate]:
    """
    Return the leaf certificate presented by the peer.
    
    The DER form is used so the certificate is available even when the
    handshake ran with CERT_NONE, where ``getpeercert()`` returns an empty
    dict.
    
    Args:
        tls_socket: Socket whose TLS handshake has completed
        
    Returns:
        The parsed leaf certificate, or None if the peer sent none
    """
    der = tls_socket.getpeercert(binary_form=True)
    if not der:
        return None
    return x509.load_der_x509_certificate(der)


def certificate_expires_in(
    certificate: x509.Certificate,
    now: Optional[datetime] = None,
) -> float:
    """
    Seconds remaining until the certificate's notAfter date.
    
    Negative once the certificate has expired.
    """
    now = now or datetime.now(timezone.utc)
    return (certificate.not_valid_after_utc - now).total_seconds()
