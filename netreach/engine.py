"""Sampling loop, strategy evaluation and report assembly."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from .analysis import compute_latency_stats, evaluate_network_quality
from .config import CheckStrategy, NetworkConfig, Target
from .hijack import detect_dns_hijacking
from .interfaces import detect_security_and_network_type
from .models import (
    ConnectionType,
    NetworkReport,
    NetworkStatus,
    ProbeOutcome,
    SecurityFlags,
)
from .probe import check_target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleVerdict:
    """Verdict of one sampling round.

    Attributes:
        connected: Whether the round counts as connected under the strategy.
        latency_ms: Fastest successful latency of the round, None if not connected.
    """

    connected: bool
    latency_ms: int | None = None


def evaluate_sample(
    outcomes: Sequence[ProbeOutcome],
    strategy: CheckStrategy,
    total_targets: int,
) -> SampleVerdict:
    """Reduce the outcomes of one round to a verdict.

    A failed essential target fails the round regardless of strategy.
    RACE needs one success; CONSENSUS needs more than total_targets // 2.
    """
    if any(o.is_essential and not o.success for o in outcomes):
        return SampleVerdict(connected=False)

    successes = [o for o in outcomes if o.success]

    match strategy:
        case CheckStrategy.RACE:
            connected = len(successes) > 0
        case CheckStrategy.CONSENSUS:
            connected = len(successes) > total_targets // 2

    if not connected:
        return SampleVerdict(connected=False)

    latencies = [o.latency_ms for o in successes if o.latency_ms is not None]
    return SampleVerdict(connected=True, latency_ms=min(latencies) if latencies else 0)


async def _probe_round(targets: Sequence[Target]) -> list[ProbeOutcome]:
    """Probe every target concurrently and wait for all of them."""
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(check_target(target)) for target in targets]
    return [task.result() for task in tasks]


async def collect_samples(config: NetworkConfig) -> tuple[list[int], list[ProbeOutcome]]:
    """Run the sampling rounds.

    Returns:
        (winning latency of each connected round, outcomes of the final round).
    """
    sample_count = config.resilience.sample_count
    latencies: list[int] = []
    final_outcomes: list[ProbeOutcome] = []

    for sample_num in range(sample_count):
        outcomes = await _probe_round(config.targets)
        verdict = evaluate_sample(outcomes, config.resilience.strategy, len(config.targets))

        if verdict.connected and verdict.latency_ms is not None:
            latencies.append(verdict.latency_ms)

        logger.debug(
            "Sample %d/%d: %s (%d/%d targets up)",
            sample_num + 1,
            sample_count,
            f"connected, {verdict.latency_ms}ms" if verdict.connected else "not connected",
            sum(1 for o in outcomes if o.success),
            len(outcomes),
        )

        # Earlier rounds only contribute their latency.
        if sample_num == sample_count - 1:
            final_outcomes = outcomes

    return latencies, final_outcomes


def _winner_label(outcomes: Sequence[ProbeOutcome]) -> str:
    """Label of the first successful outcome in target order."""
    for outcome in outcomes:
        if outcome.success:
            return outcome.label
    return ""


def _hijack_check_host(config: NetworkConfig) -> str | None:
    """Host used for the DNS hijack check: first essential target, else first target."""
    for target in config.targets:
        if target.is_essential:
            return target.host
    return config.targets[0].host if config.targets else None


async def _detect_security(config: NetworkConfig) -> tuple[SecurityFlags, ConnectionType]:
    try:
        flags, connection_type = detect_security_and_network_type()
    except Exception as e:
        logger.warning("Interface detection failed: %s", e)
        flags, connection_type = SecurityFlags(), ConnectionType.UNKNOWN

    if not config.security.detect_dns_hijack:
        return flags, connection_type

    host = _hijack_check_host(config)
    if host is None:
        return flags, connection_type

    try:
        spoofed = await detect_dns_hijacking(host)
    except Exception as e:
        logger.warning("DNS hijack check failed for %s: %s", host, e)
        spoofed = False

    if spoofed:
        logger.warning("DNS hijacking suspected for %s", host)
        flags = SecurityFlags(
            is_vpn_detected=flags.is_vpn_detected,
            is_dns_spoofed=True,
            is_proxy_detected=flags.is_proxy_detected,
            interface_name=flags.interface_name,
        )
    return flags, connection_type


async def check_network(config: NetworkConfig) -> NetworkReport:
    """Run a complete network check.

    1. Samples every target num_jitter_samples times (at least once).
    2. Computes latency and stability statistics over the connected rounds.
    3. Classifies the connection quality.
    4. Detects the interface type and VPN presence, and optionally checks
       for DNS hijacking.

    Never raises; a check with no reachable target is reported as
    disconnected and OFFLINE.

    Args:
        config: Configuration describing targets, thresholds and strategy.

    Returns:
        NetworkReport for this check.
    """
    timestamp_ms = int(time.time() * 1000)

    try:
        latencies, final_outcomes = await collect_samples(config)
    except Exception as e:
        logger.error("Sampling failed: %s", e)
        latencies, final_outcomes = [], []

    is_connected = len(latencies) > 0
    stats = compute_latency_stats(latencies, config.resilience.sample_count)
    quality = evaluate_network_quality(is_connected, stats, config)

    security_flags, connection_type = await _detect_security(config)

    report = NetworkReport(
        timestamp_ms=timestamp_ms,
        status=NetworkStatus(
            is_connected=is_connected,
            quality=quality,
            latency_stats=stats,
            winner_target=_winner_label(final_outcomes),
        ),
        connection_type=connection_type,
        security_flags=security_flags,
        target_reports=tuple(final_outcomes),
    )

    logger.info(
        "Network check: %s, quality=%s, latency=%dms, loss=%.1f%%, stability=%d",
        "connected" if is_connected else "disconnected",
        quality.value,
        stats.latency_ms,
        stats.packet_loss_percent,
        stats.stability_score,
    )
    return report
