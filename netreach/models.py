"""Data models for probe outcomes and network reports."""

from dataclasses import dataclass, field
from enum import Enum


class ProbeErrorKind(Enum):
    """Classification of a failed probe."""

    DNS_RESOLUTION = "dns_resolution"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


_ERROR_TITLES = {
    ProbeErrorKind.DNS_RESOLUTION: "DNS Resolution Error",
    ProbeErrorKind.CONNECTION: "Connection Error",
    ProbeErrorKind.TIMEOUT: "Timeout Error",
    ProbeErrorKind.UNKNOWN: "Unknown Error",
}


@dataclass(frozen=True)
class ProbeError:
    """Why a probe failed.

    Attributes:
        kind: Error classification.
        message: Underlying error text (empty for timeouts).
    """

    kind: ProbeErrorKind
    message: str = ""

    def __str__(self) -> str:
        title = _ERROR_TITLES[self.kind]
        if self.kind is ProbeErrorKind.TIMEOUT or not self.message:
            return title
        return f"{title}: {self.message}"


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one target once.

    Attributes:
        label: Label of the probed target.
        success: Whether the connection (TCP) or send (UDP) succeeded.
        latency_ms: Elapsed time in milliseconds, only set on success.
        error: Failure classification, only set on failure.
        is_essential: Copied from the target.
    """

    label: str
    success: bool
    latency_ms: int | None = None
    error: ProbeError | None = None
    is_essential: bool = False


class ConnectionQuality(Enum):
    """Perceived quality of the connection, best first."""

    EXCELLENT = "excellent"
    GREAT = "great"
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"
    UNSTABLE = "unstable"
    OFFLINE = "offline"

    @property
    def rank(self) -> int:
        """Position in the ordering; lower is better."""
        return _QUALITY_ORDER.index(self)


_QUALITY_ORDER = list(ConnectionQuality)


class ConnectionType(Enum):
    """Physical or logical type of the active interface."""

    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    VPN = "vpn"
    BLUETOOTH = "bluetooth"
    UNKNOWN = "unknown"


class SecurityAlert(Enum):
    """Security conditions that NetworkReachability.guard() can reject."""

    VPN_DETECTED = "vpn_detected"
    DNS_HIJACK_DETECTED = "dns_hijack_detected"
    PROXY_DETECTED = "proxy_detected"
    UNALLOWED_INTERFACE = "unallowed_interface"


@dataclass(frozen=True)
class LatencyStats:
    """Statistics over the winning latencies of the successful rounds.

    Attributes:
        latency_ms: Representative latency (integer mean), 0 without samples.
        jitter_ms: Standard deviation truncated to whole ms, 0 when undefined.
        packet_loss_percent: Share of rounds that were not connected (0.0-100.0).
        min_latency_ms: Minimum latency, or None without samples.
        max_latency_ms: Maximum latency, or None without samples.
        avg_latency_ms: Integer mean latency, or None without samples.
        stddev_ms: Sample standard deviation, or None with fewer than 2 samples.
        stability_score: Composite stability score (0-100).
    """

    latency_ms: int
    jitter_ms: int
    packet_loss_percent: float
    min_latency_ms: int | None
    max_latency_ms: int | None
    avg_latency_ms: int | None
    stddev_ms: float | None
    stability_score: int


@dataclass(frozen=True)
class SecurityFlags:
    """Security attributes of the current connection.

    Attributes:
        is_vpn_detected: A tunnel/VPN interface is up.
        is_dns_spoofed: System DNS disagreed with the trusted resolver.
        is_proxy_detected: Reserved, always False.
        interface_name: Name of the interface that decided the connection type.
    """

    is_vpn_detected: bool = False
    is_dns_spoofed: bool = False
    is_proxy_detected: bool = False
    interface_name: str = "unknown"


@dataclass(frozen=True)
class NetworkStatus:
    """High-level summary of one check."""

    is_connected: bool
    quality: ConnectionQuality
    latency_stats: LatencyStats
    winner_target: str


@dataclass(frozen=True)
class NetworkReport:
    """Complete, immutable result of one check_network() call.

    Attributes:
        timestamp_ms: Epoch milliseconds when the check started.
        status: Connectivity, quality and latency summary.
        connection_type: Detected type of the active interface.
        security_flags: VPN / DNS tampering flags.
        target_reports: Per-target outcomes of the final sampling round.
    """

    timestamp_ms: int
    status: NetworkStatus
    connection_type: ConnectionType
    security_flags: SecurityFlags
    target_reports: tuple[ProbeOutcome, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TraceHop:
    """One hop of a traceroute. ip_address is "*" when the hop timed out."""

    hop_number: int
    ip_address: str
    hostname: str | None = None
    latency_ms: int | None = None

    @property
    def is_wildcard(self) -> bool:
        return self.ip_address == "*"


@dataclass(frozen=True)
class CaptivePortalStatus:
    """Result of a captive portal check."""

    is_captive_portal: bool
    redirect_url: str | None = None


@dataclass(frozen=True)
class LocalDevice:
    """A host that answered the local subnet scan."""

    ip_address: str
    hostname: str | None = None
    mac_address: str | None = None
