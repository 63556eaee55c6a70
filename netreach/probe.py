"""Single-target reachability probe over TCP or UDP."""

import asyncio
import logging
import socket
import time

from .config import Target, TargetProtocol
from .models import ProbeError, ProbeErrorKind, ProbeOutcome

logger = logging.getLogger(__name__)

# Payload sent by UDP probes. A completed send counts as reachable; no reply
# is awaited.
UDP_PAYLOAD = b"\x00"


class DnsResolutionError(Exception):
    """Raised when a target host cannot be resolved."""

    pass


async def _resolve(host: str, port: int, sock_type: int) -> tuple[int, tuple]:
    """Resolve host:port with the system resolver.

    Returns:
        (address family, socket address) of the first record returned.

    Raises:
        DnsResolutionError: If resolution fails or returns no addresses.
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=sock_type)
    except (socket.gaierror, ValueError) as e:
        # ValueError covers names the IDNA codec rejects
        raise DnsResolutionError(str(e)) from e
    if not infos:
        raise DnsResolutionError("DNS resolution failed to return any addresses.")
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


async def _connect_tcp(family: int, sockaddr: tuple) -> None:
    loop = asyncio.get_running_loop()
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setblocking(False)
        await loop.sock_connect(sock, sockaddr)


async def _send_udp(family: int, sockaddr: tuple) -> None:
    loop = asyncio.get_running_loop()
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.setblocking(False)
        sock.bind(("::", 0) if family == socket.AF_INET6 else ("0.0.0.0", 0))
        await loop.sock_connect(sock, sockaddr)
        await loop.sock_sendall(sock, UDP_PAYLOAD)


def _failure(target: Target, kind: ProbeErrorKind, message: str = "") -> ProbeOutcome:
    error = ProbeError(kind=kind, message=message)
    logger.debug("%s (%s): DOWN (%s)", target.label, target.address, error)
    return ProbeOutcome(
        label=target.label,
        success=False,
        latency_ms=None,
        error=error,
        is_essential=target.is_essential,
    )


async def check_target(target: Target) -> ProbeOutcome:
    """Probe a single target once.

    Resolution and connection share one deadline of target.timeout_ms.
    TCP succeeds once the connection is established. UDP succeeds once one
    payload byte has been sent on a connected socket; no reply is awaited,
    so an unreachable UDP service can still be reported as up.

    Never raises: every failure is classified into the returned outcome.

    Args:
        target: Target to probe.

    Returns:
        ProbeOutcome with latency on success, or the error classification.
    """
    start = time.monotonic()
    sock_type = socket.SOCK_STREAM if target.protocol is TargetProtocol.TCP else socket.SOCK_DGRAM

    try:
        async with asyncio.timeout(target.timeout_ms / 1000):
            family, sockaddr = await _resolve(target.host, target.port, sock_type)
            match target.protocol:
                case TargetProtocol.TCP:
                    await _connect_tcp(family, sockaddr)
                case TargetProtocol.UDP:
                    await _send_udp(family, sockaddr)

    except TimeoutError:
        return _failure(target, ProbeErrorKind.TIMEOUT)

    except DnsResolutionError as e:
        return _failure(target, ProbeErrorKind.DNS_RESOLUTION, str(e))

    except OSError as e:
        return _failure(target, ProbeErrorKind.CONNECTION, str(e))

    except Exception as e:
        return _failure(target, ProbeErrorKind.UNKNOWN, str(e))

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.debug("%s (%s): UP (%dms)", target.label, target.address, elapsed_ms)
    return ProbeOutcome(
        label=target.label,
        success=True,
        latency_ms=elapsed_ms,
        error=None,
        is_essential=target.is_essential,
    )
