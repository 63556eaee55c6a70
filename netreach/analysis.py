"""Latency statistics, stability scoring and quality classification."""

import math
from collections.abc import Sequence

from .config import NetworkConfig, QualityThresholds
from .models import ConnectionQuality, LatencyStats

# Sub-score weights of the stability score. They sum to 1.0.
LATENCY_STABILITY_WEIGHT = 0.35
SEQUENTIAL_JITTER_WEIGHT = 0.25
LOSS_WEIGHT = 0.30
SPIKE_WEIGHT = 0.10

# A round latency above SPIKE_RATIO * mean counts as a spike.
SPIKE_RATIO = 2.0
SPIKE_SCORE = 80.0

# Minimum stability score for a connection to stay Excellent.
EXCELLENT_MIN_STABILITY = 85


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def calculate_jitter_stats(
    latencies: Sequence[int],
) -> tuple[int | None, int | None, int | None, float | None]:
    """Calculate min, max, mean and sample standard deviation.

    The mean is the integer floor of sum / count. The standard deviation
    uses the n-1 denominator around that integer mean and is only defined
    for two or more samples.

    Args:
        latencies: Latency samples in milliseconds.

    Returns:
        (min, max, mean, stddev); every value is None for an empty series.
    """
    if not latencies:
        return None, None, None, None

    min_latency = min(latencies)
    max_latency = max(latencies)
    count = len(latencies)
    mean_latency = sum(latencies) // count

    if count < 2:
        return min_latency, max_latency, mean_latency, None

    variance_sum = sum((latency - mean_latency) ** 2 for latency in latencies)
    std_dev = math.sqrt(variance_sum / (count - 1))
    return min_latency, max_latency, mean_latency, std_dev


def _latency_stability_score(mean: float, std_dev: float, packet_loss_percent: float) -> float:
    if mean > 0:
        cv = std_dev / mean
        return _clamp(100.0 * (1.0 - cv * 3.0))
    return 100.0 if packet_loss_percent <= 0 else 0.0


def _sequential_jitter_score(latencies: Sequence[int], mean: float) -> float:
    if len(latencies) < 2 or mean <= 0:
        return 100.0
    deltas = [abs(latencies[i] - latencies[i - 1]) for i in range(1, len(latencies))]
    relative_jitter = (sum(deltas) / len(deltas)) / mean
    return _clamp(100.0 * (1.0 - relative_jitter * 4.0))


def _loss_score(packet_loss_percent: float) -> float:
    return _clamp(100.0 - packet_loss_percent * 10.0)


def _spike_score(max_latency: int | None, mean: float) -> float:
    if max_latency is not None and mean > 0 and max_latency / mean > SPIKE_RATIO:
        return SPIKE_SCORE
    return 100.0


def compute_latency_stats(latencies: Sequence[int], expected_samples: int) -> LatencyStats:
    """Aggregate the winning latencies of the successful rounds.

    The stability score is the weighted sum of four sub-scores, each
    clamped to [0, 100] first:

    - latency stability (0.35): 100 * (1 - 3 * stddev / mean)
    - sequential jitter (0.25): 100 * (1 - 4 * mean |consecutive delta| / mean)
    - loss (0.30): 100 - 10 * loss%
    - spike (0.10): 80 if max > 2 * mean, else 100

    Args:
        latencies: Winning latency of each successful round, in round order.
        expected_samples: Number of rounds that were run.

    Returns:
        LatencyStats for the series.
    """
    if expected_samples > 0:
        packet_loss_percent = 100.0 * (1.0 - len(latencies) / expected_samples)
    else:
        packet_loss_percent = 0.0
    packet_loss_percent = _clamp(packet_loss_percent)

    min_latency, max_latency, mean_latency, std_dev = calculate_jitter_stats(latencies)
    mean = float(mean_latency or 0)
    jitter = std_dev or 0.0

    weighted_score = (
        _latency_stability_score(mean, jitter, packet_loss_percent) * LATENCY_STABILITY_WEIGHT
        + _sequential_jitter_score(latencies, mean) * SEQUENTIAL_JITTER_WEIGHT
        + _loss_score(packet_loss_percent) * LOSS_WEIGHT
        + _spike_score(max_latency, mean) * SPIKE_WEIGHT
    )

    return LatencyStats(
        latency_ms=mean_latency or 0,
        jitter_ms=int(jitter),
        packet_loss_percent=packet_loss_percent,
        min_latency_ms=min_latency,
        max_latency_ms=max_latency,
        avg_latency_ms=mean_latency,
        stddev_ms=std_dev,
        stability_score=int(_clamp(round(weighted_score))),
    )


def evaluate_quality(latency_ms: int, thresholds: QualityThresholds) -> ConnectionQuality:
    """Map a latency to a quality tier using ascending thresholds.

    Latency above the poor threshold maps to OFFLINE.
    """
    if latency_ms <= thresholds.excellent:
        return ConnectionQuality.EXCELLENT
    if latency_ms <= thresholds.great:
        return ConnectionQuality.GREAT
    if latency_ms <= thresholds.good:
        return ConnectionQuality.GOOD
    if latency_ms <= thresholds.moderate:
        return ConnectionQuality.MODERATE
    if latency_ms <= thresholds.poor:
        return ConnectionQuality.POOR
    return ConnectionQuality.OFFLINE


def evaluate_network_quality(
    is_connected: bool,
    stats: LatencyStats,
    config: NetworkConfig,
) -> ConnectionQuality:
    """Classify the connection from latency, then apply downgrade rules.

    Rules are applied in order and are not commutative:
    1. not connected -> OFFLINE
    2. packet loss above the critical threshold -> UNSTABLE
    3. stability below the configured threshold -> at best GOOD
    4. EXCELLENT with stability below 85 -> GOOD
    """
    if not is_connected:
        return ConnectionQuality.OFFLINE

    quality = evaluate_quality(stats.latency_ms, config.quality_threshold)
    resilience = config.resilience

    if stats.packet_loss_percent > resilience.critical_packet_loss_percent:
        return ConnectionQuality.UNSTABLE

    if stats.stability_score < resilience.stability_threshold:
        if quality.rank < ConnectionQuality.GOOD.rank:
            return ConnectionQuality.GOOD
        return quality

    if quality is ConnectionQuality.EXCELLENT and stats.stability_score < EXCELLENT_MIN_STABILITY:
        return ConnectionQuality.GOOD

    return quality
