"""Tests for device_simulator.simulator - Simulator wiring, actions, summary."""

from __future__ import annotations

import asyncio
import io
import signal
import sys
from pathlib import Path

import httpx
import pytest

from device_simulator.config import Action, SimulatorSettings
from device_simulator.errors import DeviceConnectionError, IngestionError
from device_simulator.provisioning import ProvisioningClient
from device_simulator.simulator import RunSummary, Simulator
from device_simulator.transport.console import ConsoleConnection, ConsoleTransport
from device_simulator.transport.mqtt import MqttTransport

_CSV = """\
timestamp,deviceType,deviceId,eventType,format,thermometer_sensor_temperature,hygrometer_sensor_humidity
2017-05-02T10:00:00.000Z,thermometer,t-01,sensor,json,21.5,
2017-05-02T10:00:00.010Z,hygrometer,h-01,sensor,json,,48
2017-05-02T10:00:00.020Z,thermometer,t-01,sensor,json,22,
"""

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def _settings(tmp_path: Path, **overrides) -> SimulatorSettings:
    csv_path = tmp_path / "events.csv"
    csv_path.write_text(_CSV, encoding="utf-8")
    base = {
        "org": "myorg",
        "api_key": "k",
        "api_token": "t",
        "csv_file_path": str(csv_path),
        "publish_interval_divisor": 100,
    }
    base.update(overrides)
    return SimulatorSettings().with_overrides(**base)


class _Recorder:
    def __init__(self, status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self._status = status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self._status, text="{}")


def _provisioner(recorder: _Recorder) -> ProvisioningClient:
    return ProvisioningClient(
        "https://myorg.example.com/api/v0002",
        "k",
        "t",
        device_token="iotanalytics",
        transport=httpx.MockTransport(recorder),
    )


class _RefusingTransport(ConsoleTransport):
    async def open(self, client_id: str) -> ConsoleConnection:
        raise DeviceConnectionError(client_id, "Not authorized")


class _InterruptingTransport(ConsoleTransport):
    """Raises SIGINT from inside ``open`` or ``publish`` for one client, then blocks."""

    def __init__(self, *, on_open: str | None = None, on_publish: str | None = None) -> None:
        super().__init__(stream=io.StringIO())
        self.opened: list[ConsoleConnection] = []
        self._on_open = on_open
        self._on_publish = on_publish

    async def open(self, client_id: str) -> ConsoleConnection:
        if client_id == self._on_open:
            signal.raise_signal(signal.SIGINT)
            await asyncio.Event().wait()
        connection = _InterruptingConnection(client_id, interrupt=client_id == self._on_publish)
        self.opened.append(connection)
        return connection


class _InterruptingConnection(ConsoleConnection):
    def __init__(self, client_id: str, *, interrupt: bool) -> None:
        super().__init__(client_id, stream=io.StringIO())
        self._interrupt = interrupt

    async def publish(self, topic: str, payload: bytes) -> None:
        if self._interrupt:
            signal.raise_signal(signal.SIGINT)
            await asyncio.Event().wait()
        await super().publish(topic, payload)


# -----------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------


class TestSimulatorConstruction:
    """Default transport selection."""

    def test_dry_run_uses_console(self, tmp_path: Path) -> None:
        sim = Simulator(_settings(tmp_path, dry_run=True))
        assert isinstance(sim._transport, ConsoleTransport)

    def test_live_run_uses_mqtt(self, tmp_path: Path) -> None:
        sim = Simulator(_settings(tmp_path))
        assert isinstance(sim._transport, MqttTransport)
        assert sim._transport._hostname == "myorg.messaging.internetofthings.ibmcloud.com"


# -----------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------


class TestSimulatorRun:
    """End-to-end runs over the console transport."""

    def test_dry_run_publishes_every_event(self, tmp_path: Path) -> None:
        buf = io.StringIO()
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=ConsoleTransport(stream=buf))

        summary = sim.run()

        assert summary.action == Action.REBUILD_AND_SIMULATE
        assert (summary.events, summary.devices, summary.device_types) == (3, 2, 2)
        assert summary.published == 3
        assert summary.interrupted is False
        assert buf.getvalue().splitlines() == [
            '[myorg:thermometer:t-01] evt/sensor/fmt/json {"temperature":21.5}',
            '[myorg:hygrometer:h-01] evt/sensor/fmt/json {"humidity":48}',
            '[myorg:thermometer:t-01] evt/sensor/fmt/json {"temperature":22}',
        ]

    def test_prefixes_applied(self, tmp_path: Path) -> None:
        buf = io.StringIO()
        settings = _settings(tmp_path, dry_run=True, client_id_prefix="d:", topic_prefix="iot-2/")
        Simulator(settings, transport=ConsoleTransport(stream=buf)).run(Action.SIMULATE)
        assert buf.getvalue().splitlines()[0].startswith("[d:myorg:thermometer:t-01] iot-2/evt/sensor/fmt/json ")

    def test_rebuild_and_simulate_provisions_first(self, tmp_path: Path) -> None:
        recorder = _Recorder()
        buf = io.StringIO()
        sim = Simulator(
            _settings(tmp_path),
            transport=ConsoleTransport(stream=buf),
            provisioner=_provisioner(recorder),
        )

        summary = sim.run()

        assert summary.provisioning_failures == 0
        assert summary.published == 3
        paths = [req.url.path for req in recorder.requests]
        assert paths[0] == "/api/v0002/bulk/devices/remove"
        assert paths[-1] == "/api/v0002/bulk/devices/add"

    def test_provisioning_failures_do_not_stop_replay(self, tmp_path: Path) -> None:
        recorder = _Recorder(status=500)
        sim = Simulator(
            _settings(tmp_path),
            transport=ConsoleTransport(stream=io.StringIO()),
            provisioner=_provisioner(recorder),
        )

        summary = sim.run()

        assert summary.provisioning_failures == 6
        assert summary.published == 3

    def test_delete_does_not_replay(self, tmp_path: Path) -> None:
        recorder = _Recorder()
        buf = io.StringIO()
        sim = Simulator(_settings(tmp_path), transport=ConsoleTransport(stream=buf), provisioner=_provisioner(recorder))

        summary = sim.run(Action.DELETE)

        assert summary.published == 0
        assert buf.getvalue() == ""
        assert {req.method for req in recorder.requests} == {"POST", "DELETE"}
        assert summary.format_line().startswith("Finished deleting devices and device types in ")

    def test_simulate_skips_provisioning(self, tmp_path: Path) -> None:
        recorder = _Recorder()
        sim = Simulator(
            _settings(tmp_path),
            transport=ConsoleTransport(stream=io.StringIO()),
            provisioner=_provisioner(recorder),
        )
        summary = sim.run(Action.SIMULATE)
        assert recorder.requests == []
        assert summary.published == 3

    def test_unreachable_devices_are_skipped(self, tmp_path: Path) -> None:
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=_RefusingTransport())
        summary = sim.run(Action.SIMULATE)
        assert summary.published == 0
        assert summary.skipped == 3

    def test_bad_csv_raises_before_network(self, tmp_path: Path) -> None:
        recorder = _Recorder()
        settings = _settings(tmp_path, csv_file_path=str(tmp_path / "missing.csv"))
        sim = Simulator(settings, transport=ConsoleTransport(stream=io.StringIO()), provisioner=_provisioner(recorder))
        with pytest.raises(IngestionError):
            sim.run()
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_run_inside_running_loop(self, tmp_path: Path) -> None:
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=ConsoleTransport(stream=io.StringIO()))
        summary = sim.run(Action.SIMULATE)
        assert summary.published == 3

    @pytest.mark.asyncio
    async def test_run_async(self, tmp_path: Path) -> None:
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=ConsoleTransport(stream=io.StringIO()))
        summary = await sim.run_async(Action.SIMULATE)
        assert summary.published == 3


# -----------------------------------------------------------------------
# Interrupts
# -----------------------------------------------------------------------


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX only")
class TestSimulatorInterrupt:
    """SIGINT during a run stops it and closes every opened connection."""

    @pytest.mark.asyncio
    async def test_interrupt_while_connecting(self, tmp_path: Path) -> None:
        transport = _InterruptingTransport(on_open="myorg:hygrometer:h-01")
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=transport)

        summary = await asyncio.wait_for(sim.run_async(Action.SIMULATE), timeout=2.0)

        assert summary.interrupted is True
        assert summary.published == 0
        assert summary.format_line().startswith("Interrupted in ")
        assert [conn.client_id for conn in transport.opened] == ["myorg:thermometer:t-01"]
        assert all(conn.closed for conn in transport.opened)

    @pytest.mark.asyncio
    async def test_interrupt_mid_replay(self, tmp_path: Path) -> None:
        transport = _InterruptingTransport(on_publish="myorg:hygrometer:h-01")
        sim = Simulator(_settings(tmp_path, dry_run=True), transport=transport)

        summary = await asyncio.wait_for(sim.run_async(Action.SIMULATE), timeout=2.0)

        assert summary.interrupted is True
        assert summary.published == 1
        assert summary.format_line().startswith("Interrupted in ")
        assert len(transport.opened) == 2
        assert all(conn.closed for conn in transport.opened)


# -----------------------------------------------------------------------
# RunSummary
# -----------------------------------------------------------------------


class TestRunSummary:
    def test_done_line(self) -> None:
        summary = RunSummary(action=Action.SIMULATE, events=10, published=8, elapsed_s=62.5)
        assert summary.format_line() == "Done in 00:01:02.5 (8 of 10 events published)"

    def test_interrupted_line(self) -> None:
        summary = RunSummary(action=Action.REBUILD_AND_SIMULATE, events=10, published=2, interrupted=True)
        assert summary.format_line() == "Interrupted in 00:00:00.0 (2 of 10 events published)"

    def test_rebuild_line(self) -> None:
        summary = RunSummary(action=Action.REBUILD, elapsed_s=3.0)
        assert summary.format_line() == "Finished rebuilding devices and device types in 00:00:03.0"
