"""Connection type and VPN detection from local network interfaces."""

import ipaddress
import logging
import socket

import psutil

from .models import ConnectionType, SecurityFlags

logger = logging.getLogger(__name__)

# Checked in order against the lowercased interface name. VPN must stay
# first: a VPN match ends the scan.
INTERFACE_KEYWORDS: tuple[tuple[tuple[str, ...], ConnectionType], ...] = (
    (("tun", "tap", "ppp", "vpn", "wg", "ipsec"), ConnectionType.VPN),
    (("wlan", "wifi", "wl"), ConnectionType.WIFI),
    (("eth", "en"), ConnectionType.ETHERNET),
    (("rmnet", "wwan", "ccmni", "pdp_ip"), ConnectionType.CELLULAR),
)

LOOPBACK_NAMES = ("lo", "lo0")

IP_FAMILIES = (socket.AF_INET, socket.AF_INET6)


def list_interfaces() -> list[tuple[str, list[str]]]:
    """List interfaces as (name, IP addresses) in enumeration order.

    Returns an empty list when the interfaces cannot be enumerated.
    """
    try:
        if_addrs = psutil.net_if_addrs()
    except Exception as e:
        logger.debug("Interface enumeration failed: %s", e)
        return []

    interfaces = []
    for name, addrs in if_addrs.items():
        # Link-layer entries (AF_PACKET / AF_LINK) exist on every interface
        addresses = [a.address for a in addrs if a.family in IP_FAMILIES and a.address]
        interfaces.append((name, addresses))
    return interfaces


def _is_loopback(name: str, addresses: list[str]) -> bool:
    if name.lower() in LOOPBACK_NAMES:
        return True
    ips = []
    for address in addresses:
        try:
            # Strip IPv6 zone index (fe80::1%eth0)
            ips.append(ipaddress.ip_address(address.split("%", 1)[0]))
        except ValueError:
            continue
    return bool(ips) and all(ip.is_loopback for ip in ips)


def classify_interface(name: str) -> ConnectionType | None:
    """Return the connection type whose keywords match name, or None."""
    name_lower = name.lower()
    for keywords, connection_type in INTERFACE_KEYWORDS:
        if any(keyword in name_lower for keyword in keywords):
            return connection_type
    return None


def detect_security_and_network_type() -> tuple[SecurityFlags, ConnectionType]:
    """Detect the connection type and VPN presence from interface names.

    Loopback and address-less interfaces are skipped. The first interface
    matching any category decides the connection type and interface name;
    a VPN interface anywhere takes precedence and stops the scan.
    Enumeration failures are treated as no interfaces.

    Returns:
        (SecurityFlags with is_vpn_detected and interface_name, ConnectionType)
    """
    connection_type = ConnectionType.UNKNOWN
    interface_name = "unknown"

    for name, addresses in list_interfaces():
        if not addresses or _is_loopback(name, addresses):
            continue

        matched = classify_interface(name)
        if matched is None:
            continue

        if matched is ConnectionType.VPN:
            logger.debug("VPN interface detected: %s", name)
            return SecurityFlags(is_vpn_detected=True, interface_name=name), ConnectionType.VPN

        if connection_type is ConnectionType.UNKNOWN:
            connection_type = matched
            interface_name = name

    return SecurityFlags(is_vpn_detected=False, interface_name=interface_name), connection_type
