"""Configuration loader for the simulator YAML format.

Parses YAML files with the following top-level sections::

    platform:    # org, API credentials, domains, wire prefixes
    replay:      # CSV file, divisor, QoS, timeouts
    simulator:   # action, dry_run, log_level

Example:

.. code-block:: yaml

    platform:
      org: myorg
      api_key: a-myorg-xxxxxxxxxx
      api_token: secret
      client_id_prefix: "d:"
      topic_prefix: "iot-2/"

    replay:
      csv_file_path: sample.csv
      publish_interval_divisor: 10

    simulator:
      action: rebuild_and_simulate

Values given on the command line override the file, and the file
overrides the built-in defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

try:
    from enum import StrEnum
except ImportError:  # Python < 3.11
    from enum import Enum

    class StrEnum(str, Enum):  # type: ignore[no-redef]
        """Minimal backport of ``enum.StrEnum`` for Python 3.10."""

__all__ = [
    "Action",
    "PlatformConfig",
    "ReplayConfig",
    "SimulatorSettings",
    "load_yaml_config",
]

logger = logging.getLogger("device_simulator.config")


class Action(StrEnum):
    """What a simulator run does."""

    DELETE = "delete"
    REBUILD = "rebuild"
    SIMULATE = "simulate"
    REBUILD_AND_SIMULATE = "rebuild_and_simulate"

    @property
    def provisions(self) -> bool:
        return self is not Action.SIMULATE

    @property
    def simulates(self) -> bool:
        return self in (Action.SIMULATE, Action.REBUILD_AND_SIMULATE)


class PlatformConfig(BaseModel):
    """Connection settings for the device-management platform.

    Attributes:
        org: Organisation id (first label of every host name).
        api_key: REST API key (basic-auth user).
        api_token: REST API token (basic-auth password).
        http_domain: Domain of the REST API.
        mqtt_domain: Domain of the MQTT broker.
        mqtt_port: MQTT broker port.
        device_token: Shared auth token registered for every device.
        client_id_prefix: Prepended to ``<org>:<type>:<id>`` client ids.
        topic_prefix: Prepended to ``evt/<event>/fmt/<format>`` topics.
        verify_tls: Verify certificates for REST and MQTT.
    """

    org: str = ""
    api_key: str = ""
    api_token: str = ""
    http_domain: str = "internetofthings.ibmcloud.com"
    mqtt_domain: str = "messaging.internetofthings.ibmcloud.com"
    mqtt_port: int = 8883
    device_token: str = "iotanalytics"
    client_id_prefix: str = ""
    topic_prefix: str = ""
    verify_tls: bool = False

    @property
    def api_base_url(self) -> str:
        return f"https://{self.org}.{self.http_domain}/api/v0002"

    @property
    def mqtt_host(self) -> str:
        return f"{self.org}.{self.mqtt_domain}"


class ReplayConfig(BaseModel):
    """Replay knobs.

    Attributes:
        csv_file_path: Recorded events to replay.
        publish_interval_divisor: Replay speed-up (``10`` = ten times faster).
        qos: MQTT QoS for every publish.
        publish_timeout_s: Optional per-publish deadline.
        connect_timeout_s: MQTT handshake / broker reply timeout.
        max_concurrent_connects: Bound on simultaneous connection attempts.
    """

    csv_file_path: str = "sample.csv"
    publish_interval_divisor: float = Field(default=1.0, gt=0)
    qos: int = Field(default=1, ge=0, le=2)
    publish_timeout_s: float | None = Field(default=None, gt=0)
    connect_timeout_s: float | None = Field(default=30.0, gt=0)
    max_concurrent_connects: int | None = Field(default=None, ge=1)


class SimulatorSettings(BaseModel):
    """Parsed representation of the full configuration.

    Attributes:
        platform: Platform connection settings.
        replay: Replay knobs.
        action: What the run does (default: rebuild, then simulate).
        dry_run: Log REST calls and print publishes instead of sending them.
        log_level: Logging level string.
    """

    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    action: Action = Action.REBUILD_AND_SIMULATE
    dry_run: bool = False
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> SimulatorSettings:
        """Return a copy with non-``None`` *overrides* applied.

        Keys may name a top-level field (``action``) or a field of the
        ``platform`` / ``replay`` sections (``org``, ``csv_file_path``).
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            if key in PlatformConfig.model_fields:
                data["platform"][key] = value
            elif key in ReplayConfig.model_fields:
                data["replay"][key] = value
            elif key in SimulatorSettings.model_fields:
                data[key] = value
            else:
                raise ValueError(f"Unknown setting '{key}'")
        return SimulatorSettings.model_validate(data)

    def missing_settings(self, action: Action | None = None) -> list[str]:
        """Names of required settings that are empty for *action*."""
        action = action or self.action
        required: list[str] = []
        if not self.dry_run:
            required.append("org")
            if action.provisions:
                required += ["api_key", "api_token", "http_domain"]
            if action.simulates:
                required.append("mqtt_domain")
        return [name for name in required if not getattr(self.platform, name)]


def load_yaml_config(path: str | Path) -> SimulatorSettings:
    """Load and validate a YAML configuration file.

    Returns a :class:`SimulatorSettings` ready to be passed to
    :class:`Simulator`.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    sim_section = raw.get("simulator") or {}
    settings = SimulatorSettings(
        platform=PlatformConfig.model_validate(raw.get("platform") or {}),
        replay=ReplayConfig.model_validate(raw.get("replay") or {}),
        action=sim_section.get("action", Action.REBUILD_AND_SIMULATE),
        dry_run=bool(sim_section.get("dry_run", False)),
        log_level=str(sim_section.get("log_level", "INFO")).upper(),
    )

    logger.info(
        "Loaded config: org=%r, csv=%s, action=%s",
        settings.platform.org,
        settings.replay.csv_file_path,
        settings.action.value,
    )
    return settings
