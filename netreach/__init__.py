"""netreach - Internet reachability and connection quality checks."""

import argparse
import asyncio
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _load(path: Optional[str]):
    """Load the configuration file, or the built-in defaults without one."""
    from .config import ConfigError, default_config, load_config

    if path is None:
        return default_config()
    try:
        return load_config(path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _format_ms(value: Optional[int]) -> str:
    return "-" if value is None else f"{value}ms"


def _cmd_check(args: argparse.Namespace) -> None:
    """Execute the check command - run one network check and print the report."""
    _setup_logging(args.verbose)

    from .engine import check_network

    config = _load(args.config)
    report = asyncio.run(check_network(config))
    status = report.status
    stats = status.latency_stats

    print(f"Connected:   {'yes' if status.is_connected else 'no'}")
    print(f"Quality:     {status.quality.value}")
    print(f"Connection:  {report.connection_type.value} ({report.security_flags.interface_name})")
    print(f"Latency:     {stats.latency_ms}ms (min {_format_ms(stats.min_latency_ms)}, max {_format_ms(stats.max_latency_ms)})")
    print(f"Jitter:      {stats.jitter_ms}ms")
    print(f"Packet loss: {stats.packet_loss_percent:.1f}%")
    print(f"Stability:   {stats.stability_score}/100")
    if status.winner_target:
        print(f"Winner:      {status.winner_target}")
    if report.security_flags.is_vpn_detected:
        print("Warning: VPN interface detected")
    if report.security_flags.is_dns_spoofed:
        print("Warning: DNS answers differ from the trusted resolver")

    print()
    for outcome in report.target_reports:
        state = f"UP   {_format_ms(outcome.latency_ms)}" if outcome.success else f"DOWN {outcome.error}"
        essential = " [essential]" if outcome.is_essential else ""
        print(f"  {outcome.label}{essential}: {state}")

    if not status.is_connected:
        sys.exit(1)


def _cmd_trace(args: argparse.Namespace) -> None:
    """Execute the trace command - print the route to a host."""
    _setup_logging(args.verbose)

    from .traceroute import trace_route

    hops = asyncio.run(
        trace_route(
            args.host,
            max_hops=args.max_hops,
            timeout_per_hop_ms=args.timeout,
            resolve_hostnames=args.resolve,
        )
    )
    if not hops:
        print(f"Error: Could not trace route to {args.host}")
        sys.exit(1)

    for hop in hops:
        if hop.is_wildcard:
            print(f"{hop.hop_number:3d}  *")
            continue
        name = f" ({hop.hostname})" if hop.hostname else ""
        print(f"{hop.hop_number:3d}  {hop.ip_address}{name}  {_format_ms(hop.latency_ms)}")


def _cmd_portal(args: argparse.Namespace) -> None:
    """Execute the portal command - check for a captive portal."""
    _setup_logging(args.verbose)

    from .captive_portal import check_for_captive_portal

    result = check_for_captive_portal(timeout_ms=args.timeout)
    if result.is_captive_portal:
        print(f"Captive portal detected: {result.redirect_url}")
    else:
        print("No captive portal detected")


def _cmd_scan(args: argparse.Namespace) -> None:
    """Execute the scan command - find hosts listening on a port in a subnet."""
    _setup_logging(args.verbose)

    from .local_scan import scan_local_network

    devices = asyncio.run(scan_local_network(args.subnet, args.port, args.timeout))
    for device in devices:
        print(device.ip_address)
    print(f"\n{len(devices)} device(s) found")


def _cmd_watch(args: argparse.Namespace) -> None:
    """Execute the watch command - log the network status periodically."""
    global _shutdown_event

    _setup_logging(args.verbose)

    from .reachability import NetworkReachability

    config = _load(args.config)
    if config.check_interval_ms <= 0:
        print("Error: check_interval_ms must be greater than 0 to watch")
        sys.exit(1)

    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    def on_status(status) -> None:
        logger.info(
            "%s, quality=%s, latency=%dms",
            "Connected" if status.is_connected else "Disconnected",
            status.quality.value,
            status.latency_stats.latency_ms,
        )

    reachability = NetworkReachability(config)
    try:
        reachability.start(on_status=on_status)
        _shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        reachability.stop()
        logger.info("Shutdown complete")


def main() -> None:
    """Main entry point for the netreach command."""
    parser = argparse.ArgumentParser(
        description="netreach - Internet reachability and connection quality checks"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"netreach {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Check subcommand (default behavior)
    check_parser = subparsers.add_parser(
        "check",
        help="Run one network check and print the report (default)",
    )
    check_parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: built-in targets)",
    )
    check_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    check_parser.set_defaults(func=_cmd_check)

    # Trace subcommand
    trace_parser = subparsers.add_parser(
        "trace",
        help="Trace the route to a host",
    )
    trace_parser.add_argument("host", help="Hostname or IP address")
    trace_parser.add_argument(
        "--max-hops",
        type=int,
        default=30,
        help="Maximum number of hops (default: 30)",
    )
    trace_parser.add_argument(
        "--timeout",
        type=int,
        default=1000,
        help="Timeout per hop in milliseconds (default: 1000)",
    )
    trace_parser.add_argument(
        "--resolve",
        action="store_true",
        help="Resolve hop addresses to hostnames",
    )
    trace_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    trace_parser.set_defaults(func=_cmd_trace)

    # Portal subcommand
    portal_parser = subparsers.add_parser(
        "portal",
        help="Check for a captive portal",
    )
    portal_parser.add_argument(
        "--timeout",
        type=int,
        default=5000,
        help="Request timeout in milliseconds (default: 5000)",
    )
    portal_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    portal_parser.set_defaults(func=_cmd_portal)

    # Scan subcommand
    scan_parser = subparsers.add_parser(
        "scan",
        help="Find hosts accepting TCP connections in a local subnet",
    )
    scan_parser.add_argument("subnet", help="Subnet in CIDR notation (e.g. 192.168.1.0/24)")
    scan_parser.add_argument(
        "-p", "--port",
        type=int,
        default=80,
        help="TCP port to probe (default: 80)",
    )
    scan_parser.add_argument(
        "--timeout",
        type=int,
        default=500,
        help="Connection timeout in milliseconds (default: 500)",
    )
    scan_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    scan_parser.set_defaults(func=_cmd_scan)

    # Watch subcommand
    watch_parser = subparsers.add_parser(
        "watch",
        help="Check the network periodically until interrupted",
    )
    watch_parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: built-in targets)",
    )
    watch_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    watch_parser.set_defaults(func=_cmd_watch)

    args = parser.parse_args()

    # Default to 'check' if no command specified
    if args.command is None:
        args.config = None
        args.verbose = False
        args.func = _cmd_check

    args.func(args)
