"""
Prometheus metrics for probe results.

Publishing is a consumer of finished probes: a health-check engine builds a
ProbeReport for an endpoint and hands both to publish_metrics_for_endpoint().
Nothing in here probes anything.

Usage:
    endpoint = ProbeEndpoint(name="smtp", group="mail", url="starttls://smtp.example.org:587")
    result = can_perform_starttls("smtp.example.org:587")
    publish_metrics_for_endpoint(endpoint, ProbeReport.from_starttls(result, duration=0.42))
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional
from urllib.parse import urlsplit, urlunsplit

from prometheus_client import Counter, Gauge

from reachprobe.types import PingResult, StartTlsResult

NAMESPACE: Final[str] = "reachprobe"


class EndpointType(str, Enum):
    """Kind of endpoint, derived from its URL scheme."""
    DNS = "DNS"
    HTTP = "HTTP"
    ICMP = "ICMP"
    STARTTLS = "STARTTLS"
    TLS = "TLS"
    TCP = "TCP"
    UDP = "UDP"
    UNKNOWN = "UNKNOWN"


_SCHEME_TYPES = {
    "icmp": EndpointType.ICMP,
    "starttls": EndpointType.STARTTLS,
    "tls": EndpointType.TLS,
    "tcp": EndpointType.TCP,
    "udp": EndpointType.UDP,
    "http": EndpointType.HTTP,
    "https": EndpointType.HTTP,
}

_KEY_SEPARATORS = re.compile(r"[/_,.# ]")


def sanitize_key_part(value: str) -> str:
    """Lowercase a group or endpoint name and replace separators with dashes."""
    return _KEY_SEPARATORS.sub("-", value.strip().lower())


@dataclass
class ProbeEndpoint:
    """
    Identity of a monitored endpoint.
    
    Attributes:
        name: Endpoint name
        url: Probed URL, e.g. "starttls://smtp.example.org:587"
        group: Optional group name
        dns_query_name: Query name for DNS endpoints
    """
    name: str
    url: str
    group: str = ""
    dns_query_name: Optional[str] = None
    
    @property
    def key(self) -> str:
        """Stable identifier built from group and name."""
        return f"{sanitize_key_part(self.group)}_{sanitize_key_part(self.name)}"
    
    @property
    def type(self) -> EndpointType:
        if self.dns_query_name:
            return EndpointType.DNS
        scheme = self.url.split("://", 1)[0].lower() if "://" in self.url else ""
        return _SCHEME_TYPES.get(scheme, EndpointType.UNKNOWN)


@dataclass
class ProbeReport:
    """
    Evaluated outcome of one probe, as consumed by the metrics layer.
    
    Attributes:
        success: Whether the endpoint passed its checks
        duration: Time the probe took, in seconds
        connected: Whether a connection was established
        http_status: HTTP status code, 0 when not applicable
        dns_rcode: DNS response code name, empty when not applicable
        certificate_expiration: Seconds until the certificate expires, 0 when unknown
    """
    success: bool
    duration: float = 0.0
    connected: bool = False
    http_status: int = 0
    dns_rcode: str = ""
    certificate_expiration: float = 0.0
    
    @classmethod
    def from_ping(cls, result: PingResult) -> "ProbeReport":
        return cls(success=result.success, duration=result.rtt, connected=result.success)
    
    @classmethod
    def from_starttls(cls, result: StartTlsResult, duration: float = 0.0) -> "ProbeReport":
        return cls(
            success=result.ok,
            duration=duration,
            connected=result.connected,
            certificate_expiration=result.certificate_expiration or 0.0,
        )


RESULTS_TOTAL: Final[Counter] = Counter(
    "results_total",
    "Number of results per endpoint",
    labelnames=("key", "group", "name", "type", "success", "url"),
    namespace=NAMESPACE,
)

RESULTS_DURATION_SECONDS: Final[Gauge] = Gauge(
    "results_duration_seconds",
    "Duration of the request in seconds",
    labelnames=("key", "group", "name", "type", "url"),
    namespace=NAMESPACE,
)

RESULTS_CONNECTED_TOTAL: Final[Counter] = Counter(
    "results_connected_total",
    "Total number of results in which a connection was successfully established",
    labelnames=("key", "group", "name", "type", "url"),
    namespace=NAMESPACE,
)

RESULTS_CODE_TOTAL: Final[Counter] = Counter(
    "results_code_total",
    "Total number of results by code",
    labelnames=("key", "group", "name", "type", "code", "url"),
    namespace=NAMESPACE,
)

RESULTS_CERTIFICATE_EXPIRATION_SECONDS: Final[Gauge] = Gauge(
    "results_certificate_expiration_seconds",
    "Number of seconds until the certificate expires",
    labelnames=("key", "group", "name", "type", "url"),
    namespace=NAMESPACE,
)


def strip_query(url: str) -> str:
    """
    Remove the query string from a URL so secrets don't leak into labels.
    
    Returns "-" if the URL cannot be parsed.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return "-"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", parts.fragment))


def publish_metrics_for_endpoint(endpoint: ProbeEndpoint, report: ProbeReport) -> None:
    """
    Publish metrics for an endpoint and the report of its latest probe.
    
    Args:
        endpoint: Endpoint identity
        report: Outcome of the probe
    """
    endpoint_type = endpoint.type.value
    base_url = strip_query(endpoint.url)
    key, group, name = endpoint.key, endpoint.group, endpoint.name
    
    RESULTS_TOTAL.labels(key, group, name, endpoint_type, str(report.success).lower(), base_url).inc()
    RESULTS_DURATION_SECONDS.labels(key, group, name, endpoint_type, base_url).set(report.duration)
    
    if report.connected:
        if endpoint.type == EndpointType.DNS:
            connected_url = endpoint.dns_query_name or ""
        else:
            connected_url = base_url
        RESULTS_CONNECTED_TOTAL.labels(key, group, name, endpoint_type, connected_url).inc()
    
    if report.dns_rcode:
        RESULTS_CODE_TOTAL.labels(
            key, group, name, endpoint_type, report.dns_rcode, endpoint.dns_query_name or ""
        ).inc()
    
    if report.http_status:
        RESULTS_CODE_TOTAL.labels(
            key, group, name, endpoint_type, str(report.http_status), base_url
        ).inc()
    
    if report.certificate_expiration:
        RESULTS_CERTIFICATE_EXPIRATION_SECONDS.labels(
            key, group, name, endpoint_type, base_url
        ).set(report.certificate_expiration)
