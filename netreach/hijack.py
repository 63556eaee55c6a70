"""DNS hijack detection by comparing system and trusted resolvers."""

import logging

import dns.exception

from .resolver import DEFAULT_LOOKUP_TIMEOUT_MS, resolve_system, resolve_trusted

logger = logging.getLogger(__name__)


async def detect_dns_hijacking(
    domain: str,
    nameservers: list[str] | None = None,
    timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS,
) -> bool:
    """Check whether the system resolver answers differently from a trusted one.

    The domain is resolved by the operating system and by fixed trusted
    nameservers (Cloudflare by default). The result is clean when every
    system address also appears in the trusted answer; the trusted side may
    return more addresses.

    Fail-open: if either lookup fails or returns nothing, no hijack is
    reported.

    Args:
        domain: Domain name to compare (e.g. "www.google.com").
        nameservers: Trusted nameserver IPs, defaults to Cloudflare.
        timeout_ms: Timeout for each lookup.

    Returns:
        True if a system address is missing from the trusted answer.
    """
    try:
        system_ips = await resolve_system(domain, timeout_ms)
    except (OSError, TimeoutError) as e:
        logger.debug("System DNS lookup failed for %s: %s", domain, e)
        return False
    if not system_ips:
        return False

    try:
        trusted_ips = await resolve_trusted(domain, nameservers, timeout_ms)
    except dns.exception.DNSException as e:
        logger.debug("Trusted DNS lookup failed for %s: %s", domain, e)
        return False
    if not trusted_ips:
        return False

    unexpected = [ip for ip in system_ips if ip not in trusted_ips]
    if unexpected:
        logger.debug(
            "System DNS returned addresses unknown to the trusted resolver for %s: %s",
            domain,
            ", ".join(str(ip) for ip in unexpected),
        )
        return True
    return False
