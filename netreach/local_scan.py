"""TCP connect scan of a local subnet."""

import asyncio
import ipaddress
import logging
from itertools import islice

from .models import LocalDevice

logger = logging.getLogger(__name__)

# Upper bound on simultaneous connection attempts.
MAX_CONCURRENT_CONNECTS = 256


async def _is_listening(ip: str, port: int, timeout_ms: int) -> bool:
    try:
        async with asyncio.timeout(timeout_ms / 1000):
            _, writer = await asyncio.open_connection(ip, port)
    except (TimeoutError, OSError):
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def scan_local_network(
    subnet: str,
    port: int,
    timeout_ms: int,
    max_concurrency: int = MAX_CONCURRENT_CONNECTS,
) -> list[LocalDevice]:
    """Find hosts in subnet that accept TCP connections on port.

    Host addresses are probed in batches of max_concurrency, so at most
    that many connection attempts (and tasks) exist at once however large
    the subnet is. Hostname and MAC address are not resolved.

    Args:
        subnet: Network in CIDR notation (e.g. "192.168.1.0/24"). Host bits
            are ignored.
        port: TCP port to connect to.
        timeout_ms: Timeout of each connection attempt.
        max_concurrency: Maximum simultaneous connection attempts.

    Returns:
        Responding devices ordered by address. Empty when subnet is invalid.
    """
    try:
        network = ipaddress.ip_network(subnet, strict=False)
    except ValueError:
        logger.warning("Invalid subnet format: %s", subnet)
        return []

    batch_size = max(1, max_concurrency)
    logger.debug("Scanning %s on port %d, %d connections at a time", network, port, batch_size)

    devices: list[LocalDevice] = []
    hosts = network.hosts()
    while batch := list(islice(hosts, batch_size)):
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(_is_listening(str(ip), port, timeout_ms)) for ip in batch]
        devices.extend(LocalDevice(ip_address=str(ip)) for ip, task in zip(batch, tasks) if task.result())

    logger.info("Local scan of %s found %d device(s)", network, len(devices))
    return devices
