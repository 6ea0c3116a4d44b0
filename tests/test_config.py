"""Tests for device_simulator.config – YAML config loading and overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from device_simulator.config import Action, PlatformConfig, ReplayConfig, SimulatorSettings, load_yaml_config


# -----------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------


class TestSimulatorSettings:
    """SimulatorSettings defaults and construction."""

    def test_defaults(self) -> None:
        cfg = SimulatorSettings()
        assert cfg.action == Action.REBUILD_AND_SIMULATE
        assert cfg.dry_run is False
        assert cfg.log_level == "INFO"
        assert cfg.platform.org == ""
        assert cfg.platform.mqtt_port == 8883
        assert cfg.platform.device_token == "iotanalytics"
        assert cfg.platform.client_id_prefix == ""
        assert cfg.platform.topic_prefix == ""
        assert cfg.replay.csv_file_path == "sample.csv"
        assert cfg.replay.publish_interval_divisor == 1.0
        assert cfg.replay.qos == 1
        assert cfg.replay.publish_timeout_s is None

    def test_derived_hosts(self) -> None:
        platform = PlatformConfig(org="myorg", http_domain="api.example.com", mqtt_domain="mq.example.com")
        assert platform.api_base_url == "https://myorg.api.example.com/api/v0002"
        assert platform.mqtt_host == "myorg.mq.example.com"

    def test_divisor_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ReplayConfig(publish_interval_divisor=0)

    def test_qos_range(self) -> None:
        with pytest.raises(ValueError):
            ReplayConfig(qos=3)


class TestAction:
    def test_provisions_and_simulates(self) -> None:
        assert Action.DELETE.provisions and not Action.DELETE.simulates
        assert Action.REBUILD.provisions and not Action.REBUILD.simulates
        assert not Action.SIMULATE.provisions and Action.SIMULATE.simulates
        assert Action.REBUILD_AND_SIMULATE.provisions and Action.REBUILD_AND_SIMULATE.simulates

    def test_from_string(self) -> None:
        assert Action("rebuild") is Action.REBUILD


# -----------------------------------------------------------------------
# Overrides and validation
# -----------------------------------------------------------------------


class TestOverrides:
    """with_overrides() routes keys to the right section."""

    def test_routes_keys(self) -> None:
        cfg = SimulatorSettings().with_overrides(
            org="myorg",
            publish_interval_divisor=10,
            action=Action.SIMULATE,
            dry_run=True,
        )
        assert cfg.platform.org == "myorg"
        assert cfg.replay.publish_interval_divisor == 10.0
        assert cfg.action == Action.SIMULATE
        assert cfg.dry_run is True

    def test_none_values_ignored(self) -> None:
        base = SimulatorSettings().with_overrides(org="keep")
        cfg = base.with_overrides(org=None, qos=None)
        assert cfg.platform.org == "keep"
        assert cfg.replay.qos == 1

    def test_original_unchanged(self) -> None:
        base = SimulatorSettings()
        base.with_overrides(org="myorg")
        assert base.platform.org == ""

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="Unknown setting 'colour'"):
            SimulatorSettings().with_overrides(colour="blue")

    def test_invalid_value(self) -> None:
        with pytest.raises(ValueError):
            SimulatorSettings().with_overrides(publish_interval_divisor=-1)


class TestMissingSettings:
    def test_dry_run_needs_nothing(self) -> None:
        assert SimulatorSettings(dry_run=True).missing_settings() == []

    def test_full_run_needs_credentials(self) -> None:
        assert SimulatorSettings().missing_settings() == ["org", "api_key", "api_token"]

    def test_simulate_only_needs_org(self) -> None:
        assert SimulatorSettings().missing_settings(Action.SIMULATE) == ["org"]

    def test_complete(self) -> None:
        cfg = SimulatorSettings().with_overrides(org="o", api_key="k", api_token="t")
        assert cfg.missing_settings() == []

    def test_empty_domain_reported(self) -> None:
        cfg = SimulatorSettings().with_overrides(org="o", mqtt_domain="")
        assert cfg.missing_settings(Action.SIMULATE) == ["mqtt_domain"]


# -----------------------------------------------------------------------
# load_yaml_config
# -----------------------------------------------------------------------


class TestLoadYAMLConfig:
    """load_yaml_config() parsing from temporary YAML files."""

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_yaml_config(tmp_path / "nonexistent.yaml")

    def test_minimal_config(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "sim.yaml"
        cfg_file.write_text("""\
platform:
  org: myorg
""")
        cfg = load_yaml_config(cfg_file)
        assert cfg.platform.org == "myorg"
        assert cfg.replay.csv_file_path == "sample.csv"

    def test_full_config(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "sim.yaml"
        cfg_file.write_text("""\
platform:
  org: myorg
  api_key: a-myorg-key
  api_token: secret
  mqtt_port: 1883
  client_id_prefix: "d:"
  topic_prefix: "iot-2/"
  verify_tls: true

replay:
  csv_file_path: data/events.csv
  publish_interval_divisor: 10
  qos: 0
  publish_timeout_s: 5

simulator:
  action: simulate
  dry_run: true
  log_level: debug
""")
        cfg = load_yaml_config(cfg_file)
        assert cfg.platform.api_key == "a-myorg-key"
        assert cfg.platform.mqtt_port == 1883
        assert cfg.platform.client_id_prefix == "d:"
        assert cfg.platform.topic_prefix == "iot-2/"
        assert cfg.platform.verify_tls is True
        assert cfg.replay.csv_file_path == "data/events.csv"
        assert cfg.replay.publish_interval_divisor == 10.0
        assert cfg.replay.qos == 0
        assert cfg.replay.publish_timeout_s == 5.0
        assert cfg.action == Action.SIMULATE
        assert cfg.dry_run is True
        assert cfg.log_level == "DEBUG"

    def test_empty_file_returns_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "empty.yaml"
        cfg_file.write_text("")
        assert load_yaml_config(cfg_file) == SimulatorSettings()

    def test_invalid_action(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "bad.yaml"
        cfg_file.write_text("simulator:\n  action: explode\n")
        with pytest.raises(ValueError):
            load_yaml_config(cfg_file)
