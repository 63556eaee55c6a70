"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


@dataclass(frozen=True)
class Defaults:
    """Built-in default values shared by the configuration dataclasses.

    A single immutable instance (DEFAULTS) is created at import time and
    read wherever a default is needed.
    """

    cloudflare_name: str = "Cloudflare"
    cloudflare_dns: str = "1.1.1.1"
    google_name: str = "Google"
    google_dns: str = "8.8.8.8"
    port: int = 53
    timeout_ms: int = 1000
    check_interval_ms: int = 5000

    excellent_ms: int = 50
    great_ms: int = 100
    good_ms: int = 200
    moderate_ms: int = 400
    poor_ms: int = 1000

    jitter_samples: int = 5
    jitter_threshold_percent: float = 20.0
    stability_threshold: int = 50
    critical_packet_loss_percent: float = 10.0

    # Resolvers used as the trusted side of the DNS hijack comparison.
    trusted_resolvers: tuple[str, ...] = ("1.1.1.1", "1.0.0.1")
    captive_portal_url: str = "http://neverssl.com"


DEFAULTS = Defaults()


class TargetProtocol(Enum):
    """Transport used to probe a target."""

    TCP = "tcp"
    UDP = "udp"


class CheckStrategy(Enum):
    """How the outcomes of one sampling round are reduced to a verdict.

    RACE: the round succeeds if any target succeeds.
    CONSENSUS: the round succeeds if a strict majority of targets succeed.
    """

    RACE = "race"
    CONSENSUS = "consensus"


@dataclass(frozen=True)
class Target:
    """A single network endpoint to probe.

    priority is carried for callers and never read by the engine.
    An essential target fails the whole sampling round when it fails.
    """

    label: str
    host: str
    port: int
    protocol: TargetProtocol = TargetProtocol.TCP
    timeout_ms: int = DEFAULTS.timeout_ms
    priority: int = 1
    is_essential: bool = False

    def __post_init__(self) -> None:
        if not self.label:
            raise ConfigError("Target label cannot be empty")
        if not self.host:
            raise ConfigError(f"Target host cannot be empty for '{self.label}'")
        if not (1 <= self.port <= 65535):
            raise ConfigError(f"Target port must be between 1 and 65535 for '{self.label}'")
        if not isinstance(self.protocol, TargetProtocol):
            raise ConfigError(f"Invalid protocol {self.protocol!r} for '{self.label}'")
        if self.timeout_ms <= 0:
            raise ConfigError(f"Timeout must be greater than 0 ms for '{self.label}' (got {self.timeout_ms})")

    @property
    def address(self) -> str:
        """Return a URL-like string for logging."""
        return f"{self.protocol.value}://{self.host}:{self.port}"


@dataclass(frozen=True)
class QualityThresholds:
    """Latency thresholds (ms) for each quality tier.

    Latency at or below a threshold selects that tier; thresholds must not
    decrease from excellent to poor.
    """

    excellent: int = DEFAULTS.excellent_ms
    great: int = DEFAULTS.great_ms
    good: int = DEFAULTS.good_ms
    moderate: int = DEFAULTS.moderate_ms
    poor: int = DEFAULTS.poor_ms

    def __post_init__(self) -> None:
        ordered = [
            ("excellent", self.excellent),
            ("great", self.great),
            ("good", self.good),
            ("moderate", self.moderate),
            ("poor", self.poor),
        ]
        for name, value in ordered:
            if value < 0:
                raise ConfigError(f"Quality threshold '{name}' must be non-negative (got {value})")
        for (low_name, low), (high_name, high) in zip(ordered, ordered[1:]):
            if low > high:
                raise ConfigError(
                    f"Quality thresholds must be non-decreasing: {low_name}={low} is greater than {high_name}={high}"
                )


@dataclass(frozen=True)
class SecurityConfig:
    """Security-related checks.

    block_vpn and allowed_interface_prefixes are enforced by
    NetworkReachability.guard(); detect_dns_hijack enables the DNS comparison
    in every check (adds one extra lookup per check).
    """

    block_vpn: bool = False
    detect_dns_hijack: bool = False
    allowed_interface_prefixes: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.allowed_interface_prefixes, list):
            raise ConfigError("allowed_interface_prefixes must be a list")
        if any(not prefix for prefix in self.allowed_interface_prefixes):
            raise ConfigError("allowed_interface_prefixes cannot contain empty prefixes")


@dataclass(frozen=True)
class ResilienceConfig:
    """Sampling, strategy and stability tuning."""

    strategy: CheckStrategy = CheckStrategy.RACE
    circuit_breaker_threshold: int = 0  # 0 disables the circuit breaker
    num_jitter_samples: int = DEFAULTS.jitter_samples
    # Reserved; carried for callers, not read by the classifier.
    jitter_threshold_percent: float = DEFAULTS.jitter_threshold_percent
    stability_threshold: int = DEFAULTS.stability_threshold
    critical_packet_loss_percent: float = DEFAULTS.critical_packet_loss_percent

    def __post_init__(self) -> None:
        if not isinstance(self.strategy, CheckStrategy):
            raise ConfigError(f"Invalid strategy {self.strategy!r}")
        if self.circuit_breaker_threshold < 0:
            raise ConfigError(
                f"circuit_breaker_threshold must be non-negative (got {self.circuit_breaker_threshold})"
            )
        if self.num_jitter_samples < 0:
            raise ConfigError(f"num_jitter_samples must be non-negative (got {self.num_jitter_samples})")
        if self.jitter_threshold_percent < 0:
            raise ConfigError(
                f"jitter_threshold_percent must be non-negative (got {self.jitter_threshold_percent})"
            )
        if not (0 <= self.stability_threshold <= 100):
            raise ConfigError(f"stability_threshold must be between 0 and 100 (got {self.stability_threshold})")
        if not (0 <= self.critical_packet_loss_percent <= 100):
            raise ConfigError(
                f"critical_packet_loss_percent must be between 0 and 100 (got {self.critical_packet_loss_percent})"
            )

    @property
    def sample_count(self) -> int:
        """Number of sampling rounds actually run (at least one)."""
        return max(1, self.num_jitter_samples)


def _default_targets() -> list[Target]:
    return [
        Target(label=DEFAULTS.cloudflare_name, host=DEFAULTS.cloudflare_dns, port=DEFAULTS.port),
        Target(label=DEFAULTS.google_name, host=DEFAULTS.google_dns, port=DEFAULTS.port),
    ]


@dataclass(frozen=True)
class NetworkConfig:
    """Main configuration container."""

    targets: list[Target] = field(default_factory=_default_targets)
    check_interval_ms: int = DEFAULTS.check_interval_ms  # 0 disables periodic checks
    quality_threshold: QualityThresholds = field(default_factory=QualityThresholds)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)

    def __post_init__(self) -> None:
        if self.check_interval_ms < 0:
            raise ConfigError(f"check_interval_ms must be non-negative (got {self.check_interval_ms})")
        labels = [target.label for target in self.targets]
        duplicates = [label for label in labels if labels.count(label) > 1]
        if duplicates:
            raise ConfigError(f"Duplicate target labels found: {set(duplicates)}")


def default_config() -> NetworkConfig:
    """Return the built-in configuration (Cloudflare and Google DNS over TCP)."""
    return NetworkConfig()


def _parse_enum(enum_cls: type[Enum], value: object, field_name: str) -> Enum:
    """Parse a case-insensitive enum value from YAML."""
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Invalid {field_name} '{value}'. Must be one of: {choices}")


def _parse_target(data: dict, index: int) -> Target:
    """Parse a single target entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Target entry {index} must be a dictionary")

    label = data.get("label")
    host = data.get("host")
    port = data.get("port")

    if label is None:
        raise ConfigError(f"Target entry {index} is missing 'label' field")
    if host is None:
        raise ConfigError(f"Target entry {index} is missing 'host' field")
    if port is None:
        raise ConfigError(f"Target entry {index} is missing 'port' field")

    return Target(
        label=str(label),
        host=str(host),
        port=int(port),
        protocol=_parse_enum(TargetProtocol, data.get("protocol", "tcp"), "protocol"),
        timeout_ms=int(data.get("timeout_ms", DEFAULTS.timeout_ms)),
        priority=int(data.get("priority", 1)),
        is_essential=bool(data.get("essential", False)),
    )


def _parse_quality_threshold(data: dict | None) -> QualityThresholds:
    """Parse quality_threshold section."""
    if data is None:
        return QualityThresholds()
    if not isinstance(data, dict):
        raise ConfigError("'quality_threshold' section must be a dictionary")

    return QualityThresholds(
        excellent=int(data.get("excellent", DEFAULTS.excellent_ms)),
        great=int(data.get("great", DEFAULTS.great_ms)),
        good=int(data.get("good", DEFAULTS.good_ms)),
        moderate=int(data.get("moderate", DEFAULTS.moderate_ms)),
        poor=int(data.get("poor", DEFAULTS.poor_ms)),
    )


def _parse_security(data: dict | None) -> SecurityConfig:
    """Parse security section."""
    if data is None:
        return SecurityConfig()
    if not isinstance(data, dict):
        raise ConfigError("'security' section must be a dictionary")

    prefixes = data.get("allowed_interface_prefixes", [])
    if not isinstance(prefixes, list):
        raise ConfigError("'security.allowed_interface_prefixes' must be a list")

    return SecurityConfig(
        block_vpn=bool(data.get("block_vpn", False)),
        detect_dns_hijack=bool(data.get("detect_dns_hijack", False)),
        allowed_interface_prefixes=[str(prefix) for prefix in prefixes],
    )


def _parse_resilience(data: dict | None) -> ResilienceConfig:
    """Parse resilience section."""
    if data is None:
        return ResilienceConfig()
    if not isinstance(data, dict):
        raise ConfigError("'resilience' section must be a dictionary")

    return ResilienceConfig(
        strategy=_parse_enum(CheckStrategy, data.get("strategy", "race"), "strategy"),
        circuit_breaker_threshold=int(data.get("circuit_breaker_threshold", 0)),
        num_jitter_samples=int(data.get("num_jitter_samples", DEFAULTS.jitter_samples)),
        jitter_threshold_percent=float(data.get("jitter_threshold_percent", DEFAULTS.jitter_threshold_percent)),
        stability_threshold=int(data.get("stability_threshold", DEFAULTS.stability_threshold)),
        critical_packet_loss_percent=float(
            data.get("critical_packet_loss_percent", DEFAULTS.critical_packet_loss_percent)
        ),
    )


def _section(config_data: dict, name: str) -> dict:
    """Return the named section, creating it when absent."""
    if config_data.get(name) is None:
        config_data[name] = {}
    section = config_data[name]
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' section must be a dictionary")
    return section


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - NETREACH_CHECK_INTERVAL_MS: Override check_interval_ms
    - NETREACH_STRATEGY: Override resilience.strategy (race/consensus)
    - NETREACH_JITTER_SAMPLES: Override resilience.num_jitter_samples
    - NETREACH_BLOCK_VPN: Override security.block_vpn (true/false)
    - NETREACH_DETECT_DNS_HIJACK: Override security.detect_dns_hijack (true/false)
    """
    interval = os.environ.get("NETREACH_CHECK_INTERVAL_MS")
    if interval is not None:
        config_data["check_interval_ms"] = int(interval)

    strategy = os.environ.get("NETREACH_STRATEGY")
    if strategy is not None:
        _section(config_data, "resilience")["strategy"] = strategy

    samples = os.environ.get("NETREACH_JITTER_SAMPLES")
    if samples is not None:
        _section(config_data, "resilience")["num_jitter_samples"] = int(samples)

    block_vpn = os.environ.get("NETREACH_BLOCK_VPN")
    if block_vpn is not None:
        _section(config_data, "security")["block_vpn"] = block_vpn.lower() in ("true", "1", "yes")

    detect_hijack = os.environ.get("NETREACH_DETECT_DNS_HIJACK")
    if detect_hijack is not None:
        _section(config_data, "security")["detect_dns_hijack"] = detect_hijack.lower() in ("true", "1", "yes")

    return config_data


def load_config(config_path: str) -> NetworkConfig:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated NetworkConfig object. When the file has no 'targets'
        section, the default Cloudflare and Google targets are used.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}")

    targets_data = data.get("targets")
    if targets_data is not None and not isinstance(targets_data, list):
        raise ConfigError("'targets' must be a list")

    try:
        if targets_data is None:
            targets = _default_targets()
        else:
            targets = [_parse_target(entry, i) for i, entry in enumerate(targets_data)]

        return NetworkConfig(
            targets=targets,
            check_interval_ms=int(data.get("check_interval_ms", DEFAULTS.check_interval_ms)),
            quality_threshold=_parse_quality_threshold(data.get("quality_threshold")),
            security=_parse_security(data.get("security")),
            resilience=_parse_resilience(data.get("resilience")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
