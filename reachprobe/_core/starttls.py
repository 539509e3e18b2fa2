"""
StartTLS capability probing.

Answers "can this endpoint establish TLS?" for a host:port address:
1. Parse the address (no I/O on failure)
2. Dial TCP with a bounded timeout
3. Run the plaintext upgrade selected by the port, if any
4. Perform the TLS handshake and capture the leaf certificate

Usage:
    connected, certificate, error = can_perform_starttls("smtp.example.org:587")
    if connected:
        print(certificate.not_valid_after_utc)
"""

from __future__ import annotations

import asyncio
import socket
import ssl
from typing import Optional, Tuple

from reachprobe._core import config
from reachprobe._core.certificate import get_peer_certificate
from reachprobe._core.upgrade import perform_upgrade, protocol_for_port
from reachprobe.errors import (
    AddressFormatError,
    DialError,
    StartTlsError,
    TlsHandshakeError,
)
from reachprobe.types import StartTlsResult, UpgradeProtocol


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a host:port address.
    
    IPv6 hosts must be bracketed, e.g. "[::1]:443".
    
    Args:
        address: Address to parse
        
    Returns:
        Tuple of (host, port)
        
    Raises:
        AddressFormatError: If the host is empty or the port is not a number in 1..65535
    """
    if address.startswith("["):
        end = address.find("]")
        if end == -1 or address[end + 1:end + 2] != ":":
            raise AddressFormatError(f"invalid address {address!r}: expected [host]:port", address=address)
        host, port_str = address[1:end], address[end + 2:]
    else:
        host, sep, port_str = address.rpartition(":")
        if not sep:
            raise AddressFormatError(f"invalid address {address!r}: missing port", address=address)
        if ":" in host:
            raise AddressFormatError(f"invalid address {address!r}: too many colons", address=address)
    
    if not host:
        raise AddressFormatError(f"invalid address {address!r}: missing host", address=address)
    if not (port_str.isascii() and port_str.isdigit()):
        raise AddressFormatError(f"invalid address {address!r}: port must be numeric", address=address)
    
    port = int(port_str)
    if not 1 <= port <= 65535:
        raise AddressFormatError(f"invalid address {address!r}: port out of range", address=address)
    return host, port


def build_ssl_context(insecure: bool) -> ssl.SSLContext:
    """
    Build a client TLS context.
    
    Mirrors the two HTTP client modes: verify chain and hostname, or
    accept any certificate.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _failed(error: StartTlsError, cause: Optional[BaseException] = None) -> StartTlsResult:
    if cause is not None:
        error.__cause__ = cause
    return StartTlsResult.failed(error)


def can_perform_starttls(
    address: str,
    insecure: bool = False,
    protocol: Optional[UpgradeProtocol] = None,
    timeout: Optional[float] = None,
) -> StartTlsResult:
    """
    Check whether an endpoint can establish TLS, upgrading if its service needs it.
    
    Probe failures are returned in the result, never raised:
    - AddressFormatError: address is not host:port (nothing was dialed)
    - DialError: TCP connection failed
    - TlsHandshakeError: upgrade or TLS handshake failed
    
    Args:
        address: Target as host:port
        insecure: Skip certificate verification
        protocol: Force an upgrade protocol instead of deriving it from the port
        timeout: Seconds allowed for each network step (default: config.CONNECT_TIMEOUT)
        
    Returns:
        StartTlsResult(connected, certificate, error)
        
    Raises:
        ValueError: If an explicit timeout is not positive
    """
    timeout = config.resolve_timeout(timeout, config.CONNECT_TIMEOUT)
    
    try:
        host, port = parse_address(address)
    except AddressFormatError as e:
        return _failed(e)
    
    protocol = protocol or protocol_for_port(port)
    
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except (OSError, ValueError) as e:
        return _failed(DialError(f"could not connect to {address}: {e}", address=address), e)
    
    with sock:
        try:
            perform_upgrade(sock, host, protocol)
            context = build_ssl_context(insecure)
            with context.wrap_socket(sock, server_hostname=host) as tls_sock:
                certificate = get_peer_certificate(tls_sock)
        except TlsHandshakeError as e:
            e.address = address
            return _failed(e)
        except (OSError, ValueError) as e:
            return _failed(
                TlsHandshakeError(f"TLS handshake with {address} failed: {e}", address=address),
                e,
            )
    
    return StartTlsResult(connected=True, certificate=certificate, error=None)


async def can_perform_starttls_async(
    address: str,
    insecure: bool = False,
    protocol: Optional[UpgradeProtocol] = None,
    timeout: Optional[float] = None,
) -> StartTlsResult:
    """
    Async wrapper around can_perform_starttls().
    
    Runs the blocking probe in the default executor.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, can_perform_starttls, address, insecure, protocol, timeout
    )
