"""Tests for the configuration module."""

from pathlib import Path

import pytest

from netreach.config import (
    DEFAULTS,
    CheckStrategy,
    ConfigError,
    NetworkConfig,
    QualityThresholds,
    ResilienceConfig,
    SecurityConfig,
    Target,
    TargetProtocol,
    default_config,
    load_config,
)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for config files."""
    return tmp_path


@pytest.fixture
def valid_config_content() -> str:
    """Return a valid configuration YAML content."""
    return """targets:
  - label: Cloudflare
    host: 1.1.1.1
    port: 53
    essential: true
  - label: Quad9
    host: 9.9.9.9
    port: 53
    protocol: udp
    timeout_ms: 500
    priority: 2

check_interval_ms: 10000

quality_threshold:
  excellent: 30
  great: 60
  good: 120
  moderate: 250
  poor: 800

security:
  block_vpn: true
  detect_dns_hijack: true
  allowed_interface_prefixes:
    - eth
    - wlan

resilience:
  strategy: consensus
  circuit_breaker_threshold: 3
  num_jitter_samples: 3
  stability_threshold: 60
  critical_packet_loss_percent: 25.0
"""


class TestTarget:
    """Tests for Target dataclass."""

    def test_creates_valid_target(self) -> None:
        """Valid target can be created with defaults."""
        target = Target(label="DNS", host="1.1.1.1", port=53)
        assert target.protocol is TargetProtocol.TCP
        assert target.timeout_ms == DEFAULTS.timeout_ms
        assert target.priority == 1
        assert target.is_essential is False

    def test_address_property(self) -> None:
        """Address renders protocol, host and port."""
        target = Target(label="DNS", host="8.8.8.8", port=53, protocol=TargetProtocol.UDP)
        assert target.address == "udp://8.8.8.8:53"

    def test_rejects_empty_label(self) -> None:
        """Empty label is rejected."""
        with pytest.raises(ConfigError, match="label cannot be empty"):
            Target(label="", host="1.1.1.1", port=53)

    def test_rejects_empty_host(self) -> None:
        """Empty host is rejected."""
        with pytest.raises(ConfigError, match="host cannot be empty"):
            Target(label="DNS", host="", port=53)

    def test_rejects_port_zero(self) -> None:
        """Port 0 is rejected."""
        with pytest.raises(ConfigError, match="port must be between 1 and 65535"):
            Target(label="DNS", host="1.1.1.1", port=0)

    def test_rejects_port_above_65535(self) -> None:
        """Port above 65535 is rejected."""
        with pytest.raises(ConfigError, match="port must be between 1 and 65535"):
            Target(label="DNS", host="1.1.1.1", port=65536)

    def test_accepts_port_boundaries(self) -> None:
        """Ports 1 and 65535 are accepted."""
        assert Target(label="A", host="h", port=1).port == 1
        assert Target(label="B", host="h", port=65535).port == 65535

    def test_rejects_zero_timeout(self) -> None:
        """Timeout must be positive."""
        with pytest.raises(ConfigError, match="Timeout must be greater than 0"):
            Target(label="DNS", host="1.1.1.1", port=53, timeout_ms=0)

    def test_rejects_non_enum_protocol(self) -> None:
        """Protocol must be a TargetProtocol member."""
        with pytest.raises(ConfigError, match="Invalid protocol"):
            Target(label="DNS", host="1.1.1.1", port=53, protocol="tcp")


class TestQualityThresholds:
    """Tests for QualityThresholds dataclass."""

    def test_defaults(self) -> None:
        """Defaults are 50/100/200/400/1000 ms."""
        thresholds = QualityThresholds()
        assert (thresholds.excellent, thresholds.great, thresholds.good, thresholds.moderate, thresholds.poor) == (
            50,
            100,
            200,
            400,
            1000,
        )

    def test_accepts_equal_thresholds(self) -> None:
        """Equal neighbouring thresholds are allowed."""
        thresholds = QualityThresholds(excellent=100, great=100, good=100, moderate=100, poor=100)
        assert thresholds.poor == 100

    def test_rejects_decreasing_thresholds(self) -> None:
        """A threshold lower than the previous tier is rejected."""
        with pytest.raises(ConfigError, match="non-decreasing"):
            QualityThresholds(excellent=50, great=40)

    def test_rejects_negative_threshold(self) -> None:
        """Negative thresholds are rejected."""
        with pytest.raises(ConfigError, match="non-negative"):
            QualityThresholds(excellent=-1)


class TestSecurityConfig:
    """Tests for SecurityConfig dataclass."""

    def test_defaults(self) -> None:
        """All checks are off by default."""
        security = SecurityConfig()
        assert security.block_vpn is False
        assert security.detect_dns_hijack is False
        assert security.allowed_interface_prefixes == []

    def test_rejects_empty_prefix(self) -> None:
        """Empty interface prefixes would match everything and are rejected."""
        with pytest.raises(ConfigError, match="empty prefixes"):
            SecurityConfig(allowed_interface_prefixes=["eth", ""])


class TestResilienceConfig:
    """Tests for ResilienceConfig dataclass."""

    def test_defaults(self) -> None:
        """Defaults match the documented values."""
        resilience = ResilienceConfig()
        assert resilience.strategy is CheckStrategy.RACE
        assert resilience.circuit_breaker_threshold == 0
        assert resilience.num_jitter_samples == 5
        assert resilience.jitter_threshold_percent == 20.0
        assert resilience.stability_threshold == 50
        assert resilience.critical_packet_loss_percent == 10.0

    def test_sample_count_is_at_least_one(self) -> None:
        """Zero jitter samples still runs one round."""
        assert ResilienceConfig(num_jitter_samples=0).sample_count == 1
        assert ResilienceConfig(num_jitter_samples=7).sample_count == 7

    def test_rejects_negative_samples(self) -> None:
        """Negative sample counts are rejected."""
        with pytest.raises(ConfigError, match="num_jitter_samples"):
            ResilienceConfig(num_jitter_samples=-1)

    def test_rejects_stability_threshold_above_100(self) -> None:
        """Stability threshold is a 0-100 score."""
        with pytest.raises(ConfigError, match="stability_threshold"):
            ResilienceConfig(stability_threshold=101)

    def test_rejects_packet_loss_above_100(self) -> None:
        """Critical packet loss is a percentage."""
        with pytest.raises(ConfigError, match="critical_packet_loss_percent"):
            ResilienceConfig(critical_packet_loss_percent=150.0)

    def test_rejects_negative_circuit_breaker_threshold(self) -> None:
        """Circuit breaker threshold cannot be negative."""
        with pytest.raises(ConfigError, match="circuit_breaker_threshold"):
            ResilienceConfig(circuit_breaker_threshold=-1)


class TestNetworkConfig:
    """Tests for NetworkConfig dataclass."""

    def test_default_config_targets(self) -> None:
        """Default config probes Cloudflare and Google DNS over TCP."""
        config = default_config()
        assert [(t.label, t.host, t.port) for t in config.targets] == [
            ("Cloudflare", "1.1.1.1", 53),
            ("Google", "8.8.8.8", 53),
        ]
        assert all(t.protocol is TargetProtocol.TCP for t in config.targets)
        assert all(t.timeout_ms == 1000 for t in config.targets)
        assert config.check_interval_ms == 5000

    def test_rejects_duplicate_labels(self) -> None:
        """Target labels must be unique."""
        targets = [
            Target(label="DNS", host="1.1.1.1", port=53),
            Target(label="DNS", host="8.8.8.8", port=53),
        ]
        with pytest.raises(ConfigError, match="Duplicate target labels"):
            NetworkConfig(targets=targets)

    def test_rejects_negative_interval(self) -> None:
        """Negative check interval is rejected."""
        with pytest.raises(ConfigError, match="check_interval_ms"):
            NetworkConfig(check_interval_ms=-1)

    def test_accepts_zero_interval(self) -> None:
        """Zero interval disables periodic checks."""
        assert NetworkConfig(check_interval_ms=0).check_interval_ms == 0

    def test_accepts_empty_targets(self) -> None:
        """An empty target list is allowed and reports offline."""
        assert NetworkConfig(targets=[]).targets == []


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_valid_config(self, config_dir: Path, valid_config_content: str) -> None:
        """Valid config file is loaded correctly."""
        config_file = config_dir / "config.yaml"
        config_file.write_text(valid_config_content)

        config = load_config(str(config_file))

        assert len(config.targets) == 2
        cloudflare, quad9 = config.targets
        assert cloudflare.is_essential is True
        assert cloudflare.protocol is TargetProtocol.TCP
        assert quad9.protocol is TargetProtocol.UDP
        assert quad9.timeout_ms == 500
        assert quad9.priority == 2
        assert config.check_interval_ms == 10000
        assert config.quality_threshold.good == 120
        assert config.security.block_vpn is True
        assert config.security.allowed_interface_prefixes == ["eth", "wlan"]
        assert config.resilience.strategy is CheckStrategy.CONSENSUS
        assert config.resilience.circuit_breaker_threshold == 3
        assert config.resilience.num_jitter_samples == 3
        assert config.resilience.critical_packet_loss_percent == 25.0

    def test_missing_targets_uses_defaults(self, config_dir: Path) -> None:
        """Config without targets falls back to the default targets."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("check_interval_ms: 0\n")

        config = load_config(str(config_file))

        assert [t.label for t in config.targets] == ["Cloudflare", "Google"]
        assert config.check_interval_ms == 0

    def test_empty_file_uses_defaults(self, config_dir: Path) -> None:
        """Empty config file yields the default configuration."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("")

        config = load_config(str(config_file))

        assert config == default_config()

    def test_missing_file_raises(self, config_dir: Path) -> None:
        """Missing config file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(config_dir / "missing.yaml"))

    def test_invalid_yaml_raises(self, config_dir: Path) -> None:
        """Malformed YAML raises ConfigError."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("targets: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse YAML"):
            load_config(str(config_file))

    def test_non_dict_root_raises(self, config_dir: Path) -> None:
        """Top-level YAML must be a mapping."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="YAML dictionary"):
            load_config(str(config_file))

    def test_targets_must_be_list(self, config_dir: Path) -> None:
        """Targets section must be a list."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("targets: 1.1.1.1\n")

        with pytest.raises(ConfigError, match="'targets' must be a list"):
            load_config(str(config_file))

    def test_target_missing_host_raises(self, config_dir: Path) -> None:
        """Each target needs a host."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("targets:\n  - label: A\n    port: 53\n")

        with pytest.raises(ConfigError, match="missing 'host'"):
            load_config(str(config_file))

    def test_invalid_protocol_raises(self, config_dir: Path) -> None:
        """Unknown protocol names are rejected with the valid choices."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("targets:\n  - label: A\n    host: h\n    port: 53\n    protocol: icmp\n")

        with pytest.raises(ConfigError, match="Must be one of: tcp, udp"):
            load_config(str(config_file))

    def test_protocol_is_case_insensitive(self, config_dir: Path) -> None:
        """Protocol and strategy accept any case."""
        config_file = config_dir / "config.yaml"
        config_file.write_text(
            "targets:\n  - label: A\n    host: h\n    port: 53\n    protocol: UDP\nresilience:\n  strategy: Consensus\n"
        )

        config = load_config(str(config_file))

        assert config.targets[0].protocol is TargetProtocol.UDP
        assert config.resilience.strategy is CheckStrategy.CONSENSUS

    def test_non_numeric_port_raises(self, config_dir: Path) -> None:
        """Non-numeric values surface as ConfigError."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("targets:\n  - label: A\n    host: h\n    port: dns\n")

        with pytest.raises(ConfigError, match="Invalid configuration value"):
            load_config(str(config_file))

    def test_decreasing_thresholds_raise(self, config_dir: Path) -> None:
        """Threshold ordering is validated when loading."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("quality_threshold:\n  good: 500\n  moderate: 300\n")

        with pytest.raises(ConfigError, match="non-decreasing"):
            load_config(str(config_file))

    def test_security_section_must_be_dict(self, config_dir: Path) -> None:
        """Sections must be mappings."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("security:\n  - block_vpn\n")

        with pytest.raises(ConfigError, match="'security' section must be a dictionary"):
            load_config(str(config_file))


class TestEnvOverrides:
    """Tests for NETREACH_* environment overrides."""

    def test_overrides_check_interval(self, config_dir: Path, monkeypatch) -> None:
        """NETREACH_CHECK_INTERVAL_MS overrides the file value."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("check_interval_ms: 10000\n")
        monkeypatch.setenv("NETREACH_CHECK_INTERVAL_MS", "2500")

        assert load_config(str(config_file)).check_interval_ms == 2500

    def test_overrides_strategy(self, config_dir: Path, monkeypatch) -> None:
        """NETREACH_STRATEGY creates the resilience section if needed."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("")
        monkeypatch.setenv("NETREACH_STRATEGY", "consensus")

        assert load_config(str(config_file)).resilience.strategy is CheckStrategy.CONSENSUS

    def test_overrides_jitter_samples(self, config_dir: Path, monkeypatch) -> None:
        """NETREACH_JITTER_SAMPLES overrides num_jitter_samples."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("resilience:\n  num_jitter_samples: 10\n")
        monkeypatch.setenv("NETREACH_JITTER_SAMPLES", "2")

        assert load_config(str(config_file)).resilience.num_jitter_samples == 2

    def test_boolean_overrides(self, config_dir: Path, monkeypatch) -> None:
        """Boolean overrides accept true/1/yes and treat anything else as false."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("security:\n  detect_dns_hijack: true\n")

        for true_value in ["true", "1", "yes", "TRUE"]:
            monkeypatch.setenv("NETREACH_BLOCK_VPN", true_value)
            assert load_config(str(config_file)).security.block_vpn is True

        monkeypatch.setenv("NETREACH_DETECT_DNS_HIJACK", "no")
        assert load_config(str(config_file)).security.detect_dns_hijack is False

    def test_invalid_numeric_override_raises(self, config_dir: Path, monkeypatch) -> None:
        """Non-numeric override values raise ConfigError."""
        config_file = config_dir / "config.yaml"
        config_file.write_text("")
        monkeypatch.setenv("NETREACH_CHECK_INTERVAL_MS", "soon")

        with pytest.raises(ConfigError, match="Invalid environment override"):
            load_config(str(config_file))
