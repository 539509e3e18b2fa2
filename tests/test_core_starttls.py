"""Tests for reachprobe._core.starttls module."""

import socket
import ssl
from unittest.mock import MagicMock, patch

import pytest

from reachprobe._core import starttls
from reachprobe._core.starttls import (
    build_ssl_context,
    can_perform_starttls,
    can_perform_starttls_async,
    parse_address,
)
from reachprobe._core.upgrade import LDAP_STARTTLS_REQUEST
from reachprobe.errors import AddressFormatError, DialError, TlsHandshakeError
from reachprobe.types import StartTlsResult, UpgradeProtocol


def read_line(conn):
    data = b""
    while not data.endswith(b"\n"):
        chunk = conn.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def smtp_script(conn):
    conn.sendall(b"220 mx.test ESMTP\r\n")
    read_line(conn)
    conn.sendall(b"250-mx.test\r\n250 STARTTLS\r\n")
    if read_line(conn) != b"STARTTLS\r\n":
        return False
    conn.sendall(b"220 Ready to start TLS\r\n")
    return True


def smtp_refusing_script(conn):
    conn.sendall(b"220 mx.test ESMTP\r\n")
    read_line(conn)
    conn.sendall(b"250 mx.test\r\n")
    read_line(conn)
    conn.sendall(b"502 5.5.1 Unrecognized command\r\n")
    return False


def pop3_script(conn):
    conn.sendall(b"+OK ready\r\n")
    read_line(conn)
    conn.sendall(b"+OK begin TLS\r\n")
    return True


def imap_script(conn):
    conn.sendall(b"* OK IMAP4rev1 ready\r\n")
    read_line(conn)
    conn.sendall(b"a001 OK Begin TLS negotiation now\r\n")
    return True


def ftp_script(conn):
    conn.sendall(b"220 FTP ready\r\n")
    read_line(conn)
    conn.sendall(b"234 AUTH TLS ok\r\n")
    return True


def ldap_script(conn):
    received = b""
    while len(received) < len(LDAP_STARTTLS_REQUEST):
        chunk = conn.recv(len(LDAP_STARTTLS_REQUEST) - len(received))
        if not chunk:
            return False
        received += chunk
    conn.sendall(b"\x30\x0c\x02\x01\x01\x78\x07\x0a\x01\x00\x04\x00\x04\x00")
    return True


def tls_native_script(conn):
    return True


def closing_script(conn):
    conn.sendall(b"220 mx.test ESMTP\r\n")
    return False


def silent_script(conn):
    read_line(conn)
    return False


class TestParseAddress:
    """Tests for parse_address function."""
    
    @pytest.mark.parametrize("address,expected", [
        ("smtp.gmail.com:587", ("smtp.gmail.com", 587)),
        ("127.0.0.1:25", ("127.0.0.1", 25)),
        ("[::1]:993", ("::1", 993)),
        ("localhost:65535", ("localhost", 65535)),
    ])
    def test_valid(self, address, expected):
        assert parse_address(address) == expected
    
    @pytest.mark.parametrize("address", [
        "test",
        "",
        ":25",
        "host:",
        "host:smtp",
        "host:0",
        "host:70000",
        "host:-1",
        "::1:443",
        "[::1]443",
        "[::1",
    ])
    def test_invalid(self, address):
        with pytest.raises(AddressFormatError) as exc_info:
            parse_address(address)
        
        assert exc_info.value.address == address


class TestBuildSslContext:
    """Tests for build_ssl_context function."""
    
    def test_secure(self):
        context = build_ssl_context(insecure=False)
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True
    
    def test_insecure(self):
        context = build_ssl_context(insecure=True)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False


class TestAddressAndDialErrors:
    """Tests for failures before any upgrade happens."""
    
    def test_invalid_address(self):
        with patch("reachprobe._core.starttls.socket.create_connection") as mock_dial:
            connected, certificate, error = can_perform_starttls("test", False)
        
        assert connected is False
        assert certificate is None
        assert isinstance(error, AddressFormatError)
        mock_dial.assert_not_called()
    
    def test_unresolvable_host(self):
        connected, certificate, error = can_perform_starttls("test:1234", False)
        
        assert connected is False
        assert certificate is None
        assert isinstance(error, DialError)
        assert error.address == "test:1234"
    
    def test_connection_refused(self, closed_port):
        result = can_perform_starttls(f"127.0.0.1:{closed_port}")
        
        assert result.connected is False
        assert isinstance(result.error, DialError)
        assert isinstance(result.error.__cause__, ConnectionRefusedError)
    
    def test_dial_timeout(self):
        with patch(
            "reachprobe._core.starttls.socket.create_connection",
            side_effect=socket.timeout("timed out"),
        ):
            result = can_perform_starttls("mx.example.org:25", timeout=0.1)
        
        assert isinstance(result.error, DialError)
    
    def test_uses_timeout(self):
        with patch(
            "reachprobe._core.starttls.socket.create_connection",
            side_effect=ConnectionRefusedError(),
        ) as mock_dial:
            can_perform_starttls("mx.example.org:25", timeout=2.5)
        
        mock_dial.assert_called_once_with(("mx.example.org", 25), timeout=2.5)
    
    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout):
        with patch("reachprobe._core.starttls.socket.create_connection") as mock_dial:
            with pytest.raises(ValueError):
                can_perform_starttls("mx.example.org:25", timeout=timeout)
        
        mock_dial.assert_not_called()
    
    def test_same_classification_twice(self, closed_port):
        first = can_perform_starttls(f"127.0.0.1:{closed_port}")
        second = can_perform_starttls(f"127.0.0.1:{closed_port}")
        
        assert first.connected == second.connected
        assert type(first.error) is type(second.error)


class TestUpgradeAndHandshake:
    """End-to-end probes against local fake servers."""
    
    @pytest.mark.parametrize("protocol,script", [
        (UpgradeProtocol.SMTP, smtp_script),
        (UpgradeProtocol.POP3, pop3_script),
        (UpgradeProtocol.IMAP, imap_script),
        (UpgradeProtocol.FTP, ftp_script),
        (UpgradeProtocol.LDAP, ldap_script),
    ])
    def test_upgrade_then_handshake(self, fake_server, self_signed_cert, protocol, script):
        expected_certificate, _, _ = self_signed_cert
        with fake_server(script) as server:
            result = can_perform_starttls(server.address, insecure=True, protocol=protocol)
        
        assert result == StartTlsResult(connected=True, certificate=expected_certificate, error=None)
    
    def test_tls_native_on_unknown_port(self, fake_server, self_signed_cert):
        expected_certificate, _, _ = self_signed_cert
        with fake_server(tls_native_script) as server:
            connected, certificate, error = can_perform_starttls(server.address, insecure=True)
        
        assert connected is True
        assert error is None
        assert certificate == expected_certificate
    
    def test_untrusted_certificate_fails_secure_probe(self, fake_server):
        with fake_server(smtp_script) as server:
            result = can_perform_starttls(server.address, insecure=False, protocol=UpgradeProtocol.SMTP)
        
        assert result.connected is False
        assert result.certificate is None
        assert isinstance(result.error, TlsHandshakeError)
        assert isinstance(result.error.__cause__, ssl.SSLError)
    
    def test_trusted_certificate_passes_secure_probe(self, fake_server, self_signed_cert):
        expected_certificate, cert_path, _ = self_signed_cert
        
        def trusting_context(insecure):
            context = ssl.create_default_context(cafile=str(cert_path))
            # The test certificate is its own issuer
            context.verify_flags &= ~ssl.VERIFY_X509_STRICT
            return context
        
        with patch.object(starttls, "build_ssl_context", side_effect=trusting_context):
            with fake_server(smtp_script) as server:
                result = can_perform_starttls(server.address, insecure=False, protocol=UpgradeProtocol.SMTP)
        
        assert result.ok is True
        assert result.certificate == expected_certificate
    
    def test_upgrade_refused(self, fake_server):
        with fake_server(smtp_refusing_script) as server:
            result = can_perform_starttls(server.address, protocol=UpgradeProtocol.SMTP)
        
        assert result.connected is False
        assert isinstance(result.error, TlsHandshakeError)
        assert result.error.address == server.address
        assert server.handshake_completed is False
    
    def test_closed_mid_upgrade_is_handshake_error(self, fake_server):
        with fake_server(closing_script) as server:
            result = can_perform_starttls(server.address, protocol=UpgradeProtocol.SMTP)
        
        assert isinstance(result.error, TlsHandshakeError)
    
    def test_unanswered_upgrade_is_handshake_error(self, fake_server):
        with fake_server(silent_script) as server:
            result = can_perform_starttls(server.address, protocol=UpgradeProtocol.SMTP, timeout=0.3)
        
        assert result.connected is False
        assert isinstance(result.error, TlsHandshakeError)
        assert isinstance(result.error.__cause__, socket.timeout)


class TestConnectionRelease:
    """The dialed socket is closed on every exit path."""
    
    def test_closed_after_upgrade_failure(self):
        mock_sock = MagicMock()
        mock_sock.__enter__.return_value = mock_sock
        with patch("reachprobe._core.starttls.socket.create_connection", return_value=mock_sock):
            with patch(
                "reachprobe._core.starttls.perform_upgrade",
                side_effect=TlsHandshakeError("smtp upgrade failed"),
            ):
                result = can_perform_starttls("mx.example.org:25")
        
        assert isinstance(result.error, TlsHandshakeError)
        assert result.error.address == "mx.example.org:25"
        mock_sock.__exit__.assert_called_once()
    
    def test_closed_after_handshake_failure(self):
        mock_sock = MagicMock()
        mock_context = MagicMock()
        mock_context.wrap_socket.side_effect = ssl.SSLError("handshake failure")
        with patch("reachprobe._core.starttls.socket.create_connection", return_value=mock_sock):
            with patch("reachprobe._core.starttls.perform_upgrade"):
                with patch.object(starttls, "build_ssl_context", return_value=mock_context):
                    result = can_perform_starttls("mx.example.org:465")
        
        assert isinstance(result.error, TlsHandshakeError)
        mock_sock.__exit__.assert_called_once()


class TestAsync:
    """Tests for can_perform_starttls_async."""
    
    @pytest.mark.asyncio
    async def test_runs_probe(self, closed_port):
        result = await can_perform_starttls_async(f"127.0.0.1:{closed_port}")
        
        assert result.connected is False
        assert isinstance(result.error, DialError)
    
    @pytest.mark.asyncio
    async def test_invalid_address(self):
        result = await can_perform_starttls_async("test")
        assert isinstance(result.error, AddressFormatError)


def _resolves(host):
    try:
        socket.getaddrinfo(host, 587)
    except OSError:
        return False
    return True


class TestPublicEndpoint:
    """Probes against a real mail server; skipped without network access."""
    
    def test_gmail_starttls(self):
        if not _resolves("smtp.gmail.com"):
            pytest.skip("smtp.gmail.com does not resolve")
        
        connected, certificate, error = can_perform_starttls("smtp.gmail.com:587", False)
        
        assert error is None
        assert connected is True
        assert certificate is not None
    
    def test_gmail_classification_is_stable(self):
        if not _resolves("smtp.gmail.com"):
            pytest.skip("smtp.gmail.com does not resolve")
        
        first = can_perform_starttls("smtp.gmail.com:587")
        second = can_perform_starttls("smtp.gmail.com:587")
        
        assert first.connected == second.connected
        assert type(first.error) is type(second.error)
