"""
Plaintext-to-TLS upgrade handshakes.

Each supported service has an upgrade function with the same signature,
``upgrade(sock, host) -> None``. It runs the service's textual StartTLS
exchange over an open plain socket and returns once the server has agreed
to switch to TLS, or raises TlsHandshakeError.

The service is picked from the destination port through PORT_PROTOCOLS;
adding a protocol means adding an upgrade function and table entries.
"""

from __future__ import annotations

import logging
import socket
from typing import Callable, Dict, Tuple

from reachprobe._core import config
from reachprobe.errors import TlsHandshakeError
from reachprobe.types import UpgradeProtocol

logger = logging.getLogger(__name__)


MAX_LINE_LENGTH = 8192
MAX_LDAP_RESPONSE_LENGTH = 65536

IMAP_TAG = "a001"

# RFC 4511 StartTLS: LDAPMessage { messageID 1, ExtendedRequest { requestName } }
LDAP_STARTTLS_OID = b"1.3.6.1.4.1.1466.20037"
LDAP_STARTTLS_REQUEST = (
    b"\x30\x1d"                 # LDAPMessage SEQUENCE
    b"\x02\x01\x01"             # messageID 1
    b"\x77\x18"                 # [APPLICATION 23] ExtendedRequest
    b"\x80\x16" + LDAP_STARTTLS_OID  # [0] requestName
)
_LDAP_EXTENDED_RESPONSE_TAG = 0x78
_BER_SEQUENCE = 0x30
_BER_INTEGER = 0x02
_BER_ENUMERATED = 0x0A


class _Conversation:
    """Line-oriented exchange over a plain socket."""
    
    def __init__(self, sock: socket.socket, protocol: UpgradeProtocol):
        self.sock = sock
        self.protocol = protocol
        # Unbuffered so no bytes meant for the TLS layer are swallowed
        self._reader = sock.makefile("rb", buffering=0)
    
    def __enter__(self) -> "_Conversation":
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._reader.close()
    
    def fail(self, detail: str) -> TlsHandshakeError:
        return TlsHandshakeError(f"{self.protocol.value} upgrade failed: {detail}")
    
    def send(self, command: str) -> None:
        self.sock.sendall(command.encode("ascii") + b"\r\n")
    
    def read_line(self) -> str:
        raw = self._reader.readline(MAX_LINE_LENGTH + 1)
        if not raw:
            raise self.fail("connection closed by server")
        if len(raw) > MAX_LINE_LENGTH:
            raise self.fail("reply line too long")
        return raw.decode("latin-1").rstrip("\r\n")
    
    def read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._reader.read(remaining)
            if not chunk:
                raise self.fail("connection closed by server")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)
    
    def expect_code(self, code: str) -> str:
        """
        Read a (possibly multi-line) SMTP/FTP style reply.
        
        Continuation lines look like "250-PIPELINING"; the last line has a
        space after the code.
        
        Returns:
            The final reply line
        """
        while True:
            line = self.read_line()
            if len(line) >= 4 and line[3] == "-":
                if line[:3] != code:
                    raise self.fail(f"expected {code}, got {line!r}")
                continue
            if line[:3] != code:
                raise self.fail(f"expected {code}, got {line!r}")
            return line
    
    def expect_prefix(self, prefix: str) -> str:
        line = self.read_line()
        if not line.startswith(prefix):
            raise self.fail(f"expected {prefix!r}, got {line!r}")
        return line


# =============================================================================
# Upgrade sequences
# =============================================================================


def upgrade_none(sock: socket.socket, host: str) -> None:
    """TLS-native or unrecognized service: nothing to negotiate."""
    return None


def upgrade_smtp(sock: socket.socket, host: str) -> None:
    """
    SMTP STARTTLS (RFC 3207).
    
    Greeting 220, EHLO -> 250, STARTTLS -> 220.
    """
    with _Conversation(sock, UpgradeProtocol.SMTP) as conv:
        conv.expect_code("220")
        conv.send(f"EHLO {config.EHLO_NAME}")
        conv.expect_code("250")
        conv.send("STARTTLS")
        conv.expect_code("220")


def upgrade_pop3(sock: socket.socket, host: str) -> None:
    """POP3 STLS (RFC 2595)."""
    with _Conversation(sock, UpgradeProtocol.POP3) as conv:
        conv.expect_prefix("+OK")
        conv.send("STLS")
        conv.expect_prefix("+OK")


def upgrade_imap(sock: socket.socket, host: str) -> None:
    """
    IMAP STARTTLS (RFC 3501).
    
    Untagged responses sent before the tagged completion are skipped.
    """
    with _Conversation(sock, UpgradeProtocol.IMAP) as conv:
        greeting = conv.read_line()
        if not (greeting.startswith("* OK") or greeting.startswith("* PREAUTH")):
            raise conv.fail(f"unexpected greeting {greeting!r}")
        conv.send(f"{IMAP_TAG} STARTTLS")
        while True:
            line = conv.read_line()
            if line.startswith("* "):
                continue
            if not line.startswith(f"{IMAP_TAG} "):
                raise conv.fail(f"unexpected response {line!r}")
            if line[len(IMAP_TAG) + 1:].upper().startswith("OK"):
                return
            raise conv.fail(f"server refused STARTTLS: {line!r}")


def upgrade_ftp(sock: socket.socket, host: str) -> None:
    """FTP AUTH TLS (RFC 4217)."""
    with _Conversation(sock, UpgradeProtocol.FTP) as conv:
        conv.expect_code("220")
        conv.send("AUTH TLS")
        conv.expect_code("234")


def _read_ber_header(data: bytes, offset: int) -> Tuple[int, int, int]:
    """
    Decode the tag and definite length of a BER element.
    
    Returns:
        (tag, length, offset of the value)
        
    Raises:
        ValueError: If the element is truncated or uses an unsupported length form
    """
    if offset + 2 > len(data):
        raise ValueError("truncated element")
    tag = data[offset]
    length = data[offset + 1]
    offset += 2
    if length & 0x80:
        num_octets = length & 0x7F
        if num_octets == 0 or num_octets > 4 or offset + num_octets > len(data):
            raise ValueError("unsupported length encoding")
        length = int.from_bytes(data[offset:offset + num_octets], "big")
        offset += num_octets
    if offset + length > len(data):
        raise ValueError("truncated element")
    return tag, length, offset


def parse_ldap_starttls_response(message: bytes) -> int:
    """
    Extract the resultCode from an LDAP ExtendedResponse message.
    
    Args:
        message: Complete LDAPMessage bytes, starting with the SEQUENCE tag
        
    Returns:
        The LDAP resultCode (0 means success)
        
    Raises:
        ValueError: If the message is not an ExtendedResponse
    """
    tag, length, offset = _read_ber_header(message, 0)
    if tag != _BER_SEQUENCE:
        raise ValueError(f"expected LDAPMessage, got tag 0x{tag:02x}")
    
    tag, length, offset = _read_ber_header(message, offset)
    if tag != _BER_INTEGER:
        raise ValueError("missing messageID")
    offset += length
    
    tag, length, offset = _read_ber_header(message, offset)
    if tag != _LDAP_EXTENDED_RESPONSE_TAG:
        raise ValueError(f"expected ExtendedResponse, got tag 0x{tag:02x}")
    
    tag, length, offset = _read_ber_header(message, offset)
    if tag != _BER_ENUMERATED or length < 1:
        raise ValueError("missing resultCode")
    return int.from_bytes(message[offset:offset + length], "big")


def upgrade_ldap(sock: socket.socket, host: str) -> None:
    """LDAP StartTLS extended operation (RFC 4511 section 4.14)."""
    with _Conversation(sock, UpgradeProtocol.LDAP) as conv:
        sock.sendall(LDAP_STARTTLS_REQUEST)
        
        header = conv.read_exact(2)
        if header[0] != _BER_SEQUENCE:
            raise conv.fail(f"unexpected response tag 0x{header[0]:02x}")
        length_bytes = b""
        length = header[1]
        if length & 0x80:
            num_octets = length & 0x7F
            if num_octets == 0 or num_octets > 4:
                raise conv.fail("unsupported length encoding")
            length_bytes = conv.read_exact(num_octets)
            length = int.from_bytes(length_bytes, "big")
        if length > MAX_LDAP_RESPONSE_LENGTH:
            raise conv.fail("response too large")
        
        message = header + length_bytes + conv.read_exact(length)
        try:
            result_code = parse_ldap_starttls_response(message)
        except ValueError as e:
            raise conv.fail(str(e)) from e
        if result_code != 0:
            raise conv.fail(f"server returned resultCode {result_code}")


# =============================================================================
# Dispatch
# =============================================================================


UpgradeFunc = Callable[[socket.socket, str], None]

UPGRADERS: Dict[UpgradeProtocol, UpgradeFunc] = {
    UpgradeProtocol.NONE: upgrade_none,
    UpgradeProtocol.SMTP: upgrade_smtp,
    UpgradeProtocol.POP3: upgrade_pop3,
    UpgradeProtocol.IMAP: upgrade_imap,
    UpgradeProtocol.FTP: upgrade_ftp,
    UpgradeProtocol.LDAP: upgrade_ldap,
}

PORT_PROTOCOLS: Dict[int, UpgradeProtocol] = {
    21: UpgradeProtocol.FTP,
    25: UpgradeProtocol.SMTP,
    110: UpgradeProtocol.POP3,
    143: UpgradeProtocol.IMAP,
    389: UpgradeProtocol.LDAP,
    587: UpgradeProtocol.SMTP,
    2525: UpgradeProtocol.SMTP,
    # TLS-native
    443: UpgradeProtocol.NONE,
    465: UpgradeProtocol.NONE,
    636: UpgradeProtocol.NONE,
    853: UpgradeProtocol.NONE,
    993: UpgradeProtocol.NONE,
    995: UpgradeProtocol.NONE,
}


def protocol_for_port(port: int) -> UpgradeProtocol:
    """Pick the upgrade protocol for a port; unknown ports get NONE."""
    return PORT_PROTOCOLS.get(port, UpgradeProtocol.NONE)


def perform_upgrade(sock: socket.socket, host: str, protocol: UpgradeProtocol) -> None:
    """
    Run the upgrade sequence for a protocol over an open socket.
    
    Raises:
        TlsHandshakeError: If the server does not agree to switch to TLS
        OSError: If the socket fails or times out mid-exchange
    """
    logger.debug(f"Performing {protocol.value} upgrade with {host}")
    UPGRADERS[protocol](sock, host)
