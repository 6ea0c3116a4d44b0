"""Device Event Simulator - replay recorded IoT device events against a
device-management and telemetry platform, keeping their original timing.

Quick start::

    from device_simulator import Simulator, SimulatorSettings

    settings = SimulatorSettings(dry_run=True).with_overrides(
        org="myorg", csv_file_path="sample.csv", publish_interval_divisor=10,
    )
    Simulator(settings).run()
"""

from __future__ import annotations

from device_simulator.config import Action, SimulatorSettings, load_yaml_config
from device_simulator.ingest import load_workload, read_event_records
from device_simulator.models import DeviceIdentity, EventRecord
from device_simulator.pool import ConnectionPool, Session
from device_simulator.replay import ReplayScheduler, ReplayStats
from device_simulator.shutdown import ShutdownCoordinator
from device_simulator.simulator import RunSummary, Simulator
from device_simulator.timeline import Workload, build_timeline

__all__ = [
    "Action",
    "ConnectionPool",
    "DeviceIdentity",
    "EventRecord",
    "ReplayScheduler",
    "ReplayStats",
    "RunSummary",
    "Session",
    "ShutdownCoordinator",
    "Simulator",
    "SimulatorSettings",
    "Workload",
    "build_timeline",
    "load_workload",
    "load_yaml_config",
    "read_event_records",
]

__version__ = "0.1.0"
