"""Caller-facing reachability API: guarded actions, circuit breaker and monitoring."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from threading import Event, Lock, Thread
from typing import TypeVar

from .config import NetworkConfig, default_config
from .engine import check_network
from .models import ConnectionQuality, NetworkReport, NetworkStatus, SecurityAlert

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How long the breaker stays open once the failure threshold is reached.
CIRCUIT_BREAKER_OPEN_SECONDS = 60.0


class NetworkReachabilityError(Exception):
    """Base class for errors raised by NetworkReachability.guard()."""

    pass


class PoorConnectionError(NetworkReachabilityError):
    """The connection is down or below the required quality."""

    pass


class SecurityError(NetworkReachabilityError):
    """A security requirement of the configuration is not met.

    Attributes:
        reason: The SecurityAlert that triggered the error.
    """

    def __init__(self, reason: SecurityAlert, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class CircuitBreakerOpenError(NetworkReachabilityError):
    """Essential targets failed repeatedly; calls are rejected for a while."""

    pass


class NetworkReachability:
    """Runs network checks and gates actions on their outcome.

    Example:
        reachability = NetworkReachability(config)
        data = await reachability.guard(fetch_data, min_quality=ConnectionQuality.MODERATE)

        reachability.start(on_status=print)
        # ... later ...
        reachability.stop()
    """

    def __init__(self, config: NetworkConfig | None = None) -> None:
        self._config = config or default_config()
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Thread | None = None
        self._on_status: Callable[[NetworkStatus], None] | None = None

        # Circuit breaker state
        self._consecutive_failures = 0
        self._breaker_open_until: float | None = None

    @property
    def config(self) -> NetworkConfig:
        return self._config

    @property
    def is_circuit_open(self) -> bool:
        """True while the breaker rejects guarded calls."""
        with self._lock:
            return self._breaker_open_until is not None and time.monotonic() < self._breaker_open_until

    async def check(self) -> NetworkReport:
        """Run a network check and update the circuit breaker.

        With circuit_breaker_threshold > 0, every report with a failed
        essential target counts as a consecutive failure; reaching the
        threshold opens the breaker. A report without essential failures
        closes it again.
        """
        report = await check_network(self._config)
        self._record(report)
        return report

    def _record(self, report: NetworkReport) -> None:
        threshold = self._config.resilience.circuit_breaker_threshold
        if threshold <= 0:
            return

        essential_failed = any(r.is_essential and not r.success for r in report.target_reports)
        with self._lock:
            if not essential_failed:
                self._consecutive_failures = 0
                self._breaker_open_until = None
                return

            self._consecutive_failures += 1
            if self._consecutive_failures >= threshold:
                if self._breaker_open_until is None:
                    logger.warning(
                        "Circuit breaker opened after %d consecutive essential failures",
                        self._consecutive_failures,
                    )
                self._breaker_open_until = time.monotonic() + CIRCUIT_BREAKER_OPEN_SECONDS

    def _check_breaker(self) -> None:
        with self._lock:
            if self._breaker_open_until is None:
                return
            if time.monotonic() < self._breaker_open_until:
                raise CircuitBreakerOpenError(
                    "Circuit breaker is open due to recent essential target failures. Try again later."
                )
            # Expired: close and start counting again
            logger.info("Circuit breaker closed")
            self._breaker_open_until = None
            self._consecutive_failures = 0

    def _check_security(self, report: NetworkReport) -> None:
        security = self._config.security
        flags = report.security_flags

        if security.block_vpn and flags.is_vpn_detected:
            raise SecurityError(SecurityAlert.VPN_DETECTED, "VPN connection is not allowed.")

        if security.detect_dns_hijack and flags.is_dns_spoofed:
            raise SecurityError(SecurityAlert.DNS_HIJACK_DETECTED, "DNS responses do not match the trusted resolver.")

        prefixes = security.allowed_interface_prefixes
        if prefixes and not any(flags.interface_name.startswith(p) for p in prefixes):
            raise SecurityError(
                SecurityAlert.UNALLOWED_INTERFACE,
                f"Interface {flags.interface_name!r} is not in the allowed list.",
            )

    async def guard(
        self,
        action: Callable[[], Awaitable[T]],
        min_quality: ConnectionQuality = ConnectionQuality.GOOD,
    ) -> T:
        """Run action only if the network currently satisfies the configuration.

        Args:
            action: Zero-argument coroutine function to run.
            min_quality: Worst acceptable connection quality.

        Returns:
            Whatever action returns.

        Raises:
            CircuitBreakerOpenError: The breaker is open.
            SecurityError: A VPN, DNS hijack or unallowed interface was detected.
            PoorConnectionError: Disconnected or quality worse than min_quality.
        """
        self._check_breaker()

        report = await self.check()
        self._check_security(report)

        status = report.status
        if not status.is_connected or status.quality.rank > min_quality.rank:
            raise PoorConnectionError(
                f"Connection quality is below the required minimum ({min_quality.value}), "
                f"got {status.quality.value}."
            )

        return await action()

    def start(self, on_status: Callable[[NetworkStatus], None] | None = None) -> None:
        """Start periodic checks in a background thread.

        Does nothing when check_interval_ms is 0.

        Args:
            on_status: Optional callback invoked with each NetworkStatus.
        """
        interval_ms = self._config.check_interval_ms
        if interval_ms <= 0:
            logger.info("Periodic checks disabled (check_interval_ms=0)")
            return

        if self._thread is not None and self._thread.is_alive():
            logger.warning("Reachability monitor already running")
            return

        self._on_status = on_status
        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True, name="netreach-monitor")
        self._thread.start()
        logger.info("Reachability monitor started (interval %dms)", interval_ms)

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the background thread.

        Args:
            timeout: Maximum seconds to wait for the thread to stop.
        """
        if self._thread is None or not self._thread.is_alive():
            return

        logger.info("Stopping reachability monitor...")
        self._stop_event.set()
        self._thread.join(timeout=timeout)

        if self._thread.is_alive():
            logger.warning("Reachability monitor did not stop within timeout")
        else:
            logger.info("Reachability monitor stopped")

    def is_running(self) -> bool:
        """Check if the background thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        interval = self._config.check_interval_ms / 1000

        while not self._stop_event.is_set():
            try:
                report = asyncio.run(self.check())
            except Exception as e:
                logger.error("Periodic network check failed: %s", e)
                report = None

            if report is not None and self._on_status is not None:
                try:
                    self._on_status(report.status)
                except Exception as e:
                    logger.error("Status callback failed: %s", e)

            self._stop_event.wait(timeout=interval)

        logger.debug("Reachability loop exited")
