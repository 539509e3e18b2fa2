"""
Pytest configuration for reachprobe tests.
"""

import datetime
import ipaddress
import socket
import ssl
import threading
from contextlib import contextmanager
from typing import Callable, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from reachprobe._core.client import HTTPClientCache

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


@pytest.fixture(autouse=True)
def reset_http_clients():
    """Reset the HTTP client cache before and after each test."""
    HTTPClientCache.reset()
    yield
    HTTPClientCache.reset()


@pytest.fixture(scope="session")
def self_signed_cert(tmp_path_factory):
    """Self-signed localhost certificate; returns (certificate, cert_path, key_path)."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    
    directory = tmp_path_factory.mktemp("tls")
    cert_path = directory / "cert.pem"
    key_path = directory / "key.pem"
    cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return certificate, cert_path, key_path


class FakeUpgradeServer:
    """
    One-shot TCP server on a background thread.
    
    Runs ``script(conn)`` over the plain connection; when the script returns
    True the server then performs a server-side TLS handshake with the test
    certificate.
    """
    
    def __init__(self, script: Callable[[socket.socket], bool], cert_path, key_path):
        self.script = script
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(str(cert_path), str(key_path))
        self.handshake_completed = False
        self.error: Optional[BaseException] = None
        
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(5.0)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
    
    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"
    
    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
        except OSError as e:
            self.error = e
            return
        with conn:
            conn.settimeout(5.0)
            try:
                if not self.script(conn):
                    return
                with self.context.wrap_socket(conn, server_side=True) as tls_conn:
                    self.handshake_completed = True
                    # Hold the session open until the client hangs up
                    while tls_conn.recv(1024):
                        pass
            except (OSError, ValueError) as e:
                self.error = e
    
    def __enter__(self) -> "FakeUpgradeServer":
        self._thread.start()
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._thread.join(timeout=5.0)
        self._listener.close()


@pytest.fixture
def fake_server(self_signed_cert):
    """Factory fixture: ``with fake_server(script) as server: ...``."""
    _, cert_path, key_path = self_signed_cert
    
    @contextmanager
    def factory(script: Callable[[socket.socket], bool]):
        with FakeUpgradeServer(script, cert_path, key_path) as server:
            yield server
    
    return factory


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
