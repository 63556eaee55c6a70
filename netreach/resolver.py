"""System, trusted and reverse DNS lookups.

Blocking resolver calls (dnspython, gethostbyaddr) run on RESOLVER_POOL so
they never stall the event loop.
"""

import asyncio
import ipaddress
import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from functools import partial

import dns.resolver

from .config import DEFAULTS

logger = logging.getLogger(__name__)

# Worker threads for blocking resolver calls.
MAX_RESOLVER_WORKERS = 4

RESOLVER_POOL = ThreadPoolExecutor(max_workers=MAX_RESOLVER_WORKERS, thread_name_prefix="netreach-resolver")

# Record types queried on the trusted resolver.
TRUSTED_RECORD_TYPES = ("A", "AAAA")

DEFAULT_LOOKUP_TIMEOUT_MS = 2000

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _parse_ip(address: str) -> IPAddress:
    # getaddrinfo may append an IPv6 zone index (fe80::1%eth0)
    return ipaddress.ip_address(address.split("%", 1)[0])


async def resolve_system(host: str, timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS) -> list[IPAddress]:
    """Resolve host with the operating system resolver.

    Returns:
        Addresses in the order returned, without duplicates.

    Raises:
        socket.gaierror: If resolution fails.
        TimeoutError: If resolution exceeds timeout_ms.
    """
    loop = asyncio.get_running_loop()
    async with asyncio.timeout(timeout_ms / 1000):
        try:
            infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        except ValueError as e:
            # Names the IDNA codec rejects (over-long labels, embedded NUL)
            raise socket.gaierror(socket.EAI_NONAME, str(e)) from e

    addresses: list[IPAddress] = []
    for _, _, _, _, sockaddr in infos:
        ip = _parse_ip(sockaddr[0])
        if ip not in addresses:
            addresses.append(ip)
    return addresses


def _trusted_lookup(domain: str, nameservers: list[str], timeout: float) -> set[IPAddress]:
    """Blocking A/AAAA lookup against fixed nameservers (not the system's)."""
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = nameservers
    resolver.lifetime = timeout

    addresses: set[IPAddress] = set()
    for record_type in TRUSTED_RECORD_TYPES:
        try:
            answer = resolver.resolve(domain, record_type, lifetime=timeout)
        except dns.resolver.NoAnswer:
            continue
        addresses.update(_parse_ip(rdata.to_text()) for rdata in answer)
    logger.debug("Trusted lookup for %s via %s: %s", domain, nameservers, sorted(map(str, addresses)))
    return addresses


async def resolve_trusted(
    domain: str,
    nameservers: list[str] | None = None,
    timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS,
) -> set[IPAddress]:
    """Resolve domain through the trusted resolvers on the worker pool.

    Raises:
        dns.exception.DNSException: If the lookup fails (NXDOMAIN, timeout, ...).
    """
    loop = asyncio.get_running_loop()
    servers = list(nameservers or DEFAULTS.trusted_resolvers)
    return await loop.run_in_executor(
        RESOLVER_POOL,
        partial(_trusted_lookup, domain, servers, timeout_ms / 1000),
    )


def _reverse_lookup(ip: str) -> str | None:
    try:
        hostname, _, _ = socket.gethostbyaddr(ip)
    except OSError:
        return None
    return hostname


async def reverse_lookup(ip: str) -> str | None:
    """Return the PTR hostname for ip, or None when it has none."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(RESOLVER_POOL, _reverse_lookup, ip)
