"""Tests for the single-target probe."""

import asyncio
import socket
from unittest.mock import patch

import pytest

from netreach.config import Target, TargetProtocol
from netreach.models import ProbeErrorKind
from netreach.probe import check_target


@pytest.fixture
def tcp_listener():
    """A listening TCP socket on loopback."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(5)
    yield sock
    sock.close()


@pytest.fixture
def closed_tcp_port():
    """A loopback port that is bound but not listening, so connects are refused."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def udp_receiver():
    """A bound UDP socket on loopback."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


class TestCheckTargetTcp:
    """Tests for TCP probes."""

    def test_success_against_listener(self, tcp_listener: socket.socket) -> None:
        """Established connection reports success with a latency."""
        port = tcp_listener.getsockname()[1]
        target = Target(label="local", host="127.0.0.1", port=port, is_essential=True)

        outcome = asyncio.run(check_target(target))

        assert outcome.success is True
        assert outcome.error is None
        assert outcome.latency_ms is not None
        assert outcome.latency_ms >= 0
        assert outcome.label == "local"
        assert outcome.is_essential is True

    def test_refused_is_connection_error(self, closed_tcp_port: int) -> None:
        """A refused connection is a CONNECTION error, not a timeout."""
        target = Target(label="closed", host="127.0.0.1", port=closed_tcp_port, timeout_ms=2000)

        outcome = asyncio.run(check_target(target))

        assert outcome.success is False
        assert outcome.latency_ms is None
        assert outcome.error.kind is ProbeErrorKind.CONNECTION
        assert str(outcome.error).startswith("Connection Error: ")

    def test_failure_log_names_address(self, closed_tcp_port: int, caplog) -> None:
        """Failed probes log the target's protocol, host and port."""
        target = Target(label="closed", host="127.0.0.1", port=closed_tcp_port, timeout_ms=2000)

        with caplog.at_level("DEBUG", logger="netreach.probe"):
            asyncio.run(check_target(target))

        assert f"closed (tcp://127.0.0.1:{closed_tcp_port}): DOWN" in caplog.text

    def test_dns_failure(self) -> None:
        """Resolution failures are DNS_RESOLUTION errors."""
        target = Target(label="nx", host="does-not-exist.invalid", port=443)

        with patch("socket.getaddrinfo", side_effect=socket.gaierror(-2, "Name or service not known")):
            outcome = asyncio.run(check_target(target))

        assert outcome.success is False
        assert outcome.error.kind is ProbeErrorKind.DNS_RESOLUTION
        assert "Name or service not known" in str(outcome.error)

    def test_empty_resolution_is_dns_error(self) -> None:
        """An empty address list is treated as a resolution failure."""
        target = Target(label="empty", host="empty.example", port=443)

        with patch("socket.getaddrinfo", return_value=[]):
            outcome = asyncio.run(check_target(target))

        assert outcome.error.kind is ProbeErrorKind.DNS_RESOLUTION

    def test_timeout(self) -> None:
        """Exceeding timeout_ms is a TIMEOUT error."""
        target = Target(label="slow", host="slow.example", port=443, timeout_ms=50)

        async def slow_resolve(*args, **kwargs):
            await asyncio.sleep(5)

        with patch("netreach.probe._resolve", side_effect=slow_resolve):
            outcome = asyncio.run(check_target(target))

        assert outcome.success is False
        assert outcome.error.kind is ProbeErrorKind.TIMEOUT
        assert str(outcome.error) == "Timeout Error"

    def test_unexpected_error_is_unknown(self) -> None:
        """Errors outside the taxonomy are UNKNOWN and never raised."""
        target = Target(label="odd", host="odd.example", port=443)

        with patch("netreach.probe._resolve", side_effect=RuntimeError("unexpected")):
            outcome = asyncio.run(check_target(target))

        assert outcome.error.kind is ProbeErrorKind.UNKNOWN
        assert str(outcome.error) == "Unknown Error: unexpected"

    def test_unencodable_host_is_dns_error(self) -> None:
        """A hostname the IDNA codec rejects is a DNS resolution failure."""
        target = Target(label="long", host="a" * 70 + ".example.com", port=443)

        outcome = asyncio.run(check_target(target))

        assert outcome.success is False
        assert outcome.error.kind is ProbeErrorKind.DNS_RESOLUTION


class TestCheckTargetUdp:
    """Tests for UDP probes."""

    def test_send_counts_as_success(self, udp_receiver: socket.socket) -> None:
        """A completed UDP send is reported as reachable."""
        port = udp_receiver.getsockname()[1]
        target = Target(label="udp", host="127.0.0.1", port=port, protocol=TargetProtocol.UDP)

        outcome = asyncio.run(check_target(target))

        assert outcome.success is True
        assert outcome.latency_ms is not None
        udp_receiver.settimeout(1.0)
        data, _ = udp_receiver.recvfrom(16)
        assert data == b"\x00"
