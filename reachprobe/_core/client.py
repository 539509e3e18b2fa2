"""
Cached HTTP clients for reachprobe.

Two process-wide ``requests.Session`` objects are built lazily, one per
certificate-verification mode:
- Secure: verifies the certificate chain and hostname
- Insecure: accepts any certificate

Usage:
    # Singleton pattern (recommended)
    session = get_http_client(skip_verify=False)
    response = session.get("https://example.org/health")
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from reachprobe._core import config
from reachprobe._core.version import USER_AGENT

logger = logging.getLogger(__name__)


class TimeoutHTTPAdapter(HTTPAdapter):
    """
    HTTPAdapter that applies a default timeout to every request.
    
    An explicit ``timeout=`` passed to the session still wins.
    """
    
    def __init__(self, timeout: float, *args, **kwargs):
        self.timeout = timeout
        super().__init__(*args, **kwargs)
    
    def send(self, request, **kwargs):
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def build_session(skip_verify: bool, timeout: Optional[float] = None) -> requests.Session:
    """
    Build a session with the requested certificate-verification policy.
    
    Pure configuration: no network I/O happens here.
    
    Args:
        skip_verify: Accept any certificate instead of verifying it
        timeout: Default request timeout (default: config.HTTP_TIMEOUT)
        
    Returns:
        A configured requests.Session
    """
    session = requests.Session()
    session.verify = not skip_verify
    session.headers["User-Agent"] = USER_AGENT
    
    adapter = TimeoutHTTPAdapter(config.resolve_timeout(timeout, config.HTTP_TIMEOUT), max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HTTPClientCache:
    """
    Process-wide cache of the two HTTP clients.
    
    Each verification mode gets its own instance, built on first use and
    reused afterwards. Construction is guarded by a lock so concurrent first
    use from several threads still produces a single instance per mode.
    Building one mode never builds the other.
    """
    
    # Instances keyed by skip_verify: {False: secure, True: insecure}
    _instances: Dict[bool, requests.Session] = {}
    _lock = threading.Lock()
    
    @classmethod
    def get_instance(cls, skip_verify: bool) -> requests.Session:
        """
        Get or create the client for a verification mode.
        
        Args:
            skip_verify: Whether the client should skip certificate verification
            
        Returns:
            The cached requests.Session for that mode
        """
        skip_verify = bool(skip_verify)
        
        instance = cls._instances.get(skip_verify)
        if instance is not None:
            return instance
        
        with cls._lock:
            # Another thread may have built it while we waited
            instance = cls._instances.get(skip_verify)
            if instance is None:
                logger.debug(f"Building HTTP client (skip_verify={skip_verify})")
                instance = build_session(skip_verify)
                cls._instances[skip_verify] = instance
            return instance
    
    @classmethod
    def peek(cls, skip_verify: bool) -> Optional[requests.Session]:
        """Return the cached client for a mode without building it."""
        return cls._instances.get(bool(skip_verify))
    
    @classmethod
    def reset(cls) -> None:
        """
        Drop both cached clients (for testing/cleanup).
        
        Normal operation never clears the cache.
        """
        with cls._lock:
            for session in cls._instances.values():
                session.close()
            cls._instances.clear()


def get_http_client(skip_verify: bool) -> requests.Session:
    """
    Get the shared HTTP client for a certificate-verification mode.
    
    Args:
        skip_verify: True to accept any certificate, False to verify
        
    Returns:
        The same requests.Session on every call with the same flag
    """
    return HTTPClientCache.get_instance(skip_verify)
