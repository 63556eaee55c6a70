"""TTL-escalating UDP traceroute."""

import asyncio
import logging
import socket
import time

from .models import TraceHop
from .resolver import resolve_system, reverse_lookup

logger = logging.getLogger(__name__)

# Classic traceroute destination port and a one byte probe.
TRACE_PORT = 33434
TRACE_PAYLOAD = b"\x00"

DEFAULT_MAX_HOPS = 30
DEFAULT_HOP_TIMEOUT_MS = 1000

# Largest datagram read while waiting for a hop reply.
RECV_BUFFER_SIZE = 512


def _open_probe_socket(family: int, ttl: int) -> socket.socket:
    """Create a non-blocking UDP socket whose outgoing packets carry ttl."""
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.setblocking(False)
        if family == socket.AF_INET6:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, ttl)
        else:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)
    except OSError:
        sock.close()
        raise
    return sock


async def _probe_hop(sock: socket.socket, destination: tuple, timeout_ms: int) -> tuple[str, int] | None:
    """Send one probe and wait for any reply.

    Returns:
        (source address, latency in ms), or None when nothing arrived in time.
    """
    loop = asyncio.get_running_loop()
    start = time.monotonic()
    try:
        await loop.sock_sendto(sock, TRACE_PAYLOAD, destination)
    except OSError as e:
        logger.debug("Probe send to %s failed: %s", destination[0], e)
        return None

    try:
        async with asyncio.timeout(timeout_ms / 1000):
            _, source = await loop.sock_recvfrom(sock, RECV_BUFFER_SIZE)
    except (TimeoutError, OSError):
        return None

    return source[0], int((time.monotonic() - start) * 1000)


async def trace_route(
    host: str,
    max_hops: int = DEFAULT_MAX_HOPS,
    timeout_per_hop_ms: int = DEFAULT_HOP_TIMEOUT_MS,
    resolve_hostnames: bool = False,
) -> list[TraceHop]:
    """Trace the route to host by raising the TTL one hop at a time.

    Each hop gets a fresh UDP socket and a single probe. Hops that do not
    answer within timeout_per_hop_ms are recorded as "*" and the trace
    continues. The trace stops when the target itself answers or after
    max_hops probes.

    Args:
        host: Hostname or IP address to trace.
        max_hops: Highest TTL probed.
        timeout_per_hop_ms: Wait for a reply at each hop.
        resolve_hostnames: Reverse-resolve responding hop addresses.

    Returns:
        Hops in TTL order. Empty when host cannot be resolved; truncated if
        a probe socket cannot be prepared.
    """
    try:
        addresses = await resolve_system(host)
    except (OSError, TimeoutError) as e:
        logger.warning("Cannot resolve %s for traceroute: %s", host, e)
        return []
    if not addresses:
        logger.warning("Cannot resolve %s for traceroute: no addresses", host)
        return []

    target_ip = addresses[0]
    family = socket.AF_INET6 if target_ip.version == 6 else socket.AF_INET
    destination = (str(target_ip), TRACE_PORT)
    logger.debug("Tracing route to %s (%s), max %d hops", host, target_ip, max_hops)

    hops: list[TraceHop] = []
    for ttl in range(1, max_hops + 1):
        try:
            sock = _open_probe_socket(family, ttl)
        except OSError as e:
            logger.warning("Traceroute aborted at hop %d: %s", ttl, e)
            break

        with sock:
            reply = await _probe_hop(sock, destination, timeout_per_hop_ms)

        if reply is None:
            hops.append(TraceHop(hop_number=ttl, ip_address="*"))
            continue

        source_ip, latency_ms = reply
        hostname = await reverse_lookup(source_ip) if resolve_hostnames else None
        hops.append(TraceHop(hop_number=ttl, ip_address=source_ip, hostname=hostname, latency_ms=latency_ms))

        if source_ip == str(target_ip):
            break

    return hops
