"""Simulator - top-level orchestrator that wires CSV ingestion,
provisioning, the connection pool and the replay scheduler together.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from pathlib import Path

from pydantic import BaseModel

from device_simulator.config import Action, SimulatorSettings
from device_simulator.errors import ProvisioningError
from device_simulator.ingest import load_workload
from device_simulator.pool import ConnectionPool
from device_simulator.provisioning import ProvisioningClient
from device_simulator.replay import ReplayScheduler, ReplayStats, format_elapsed
from device_simulator.shutdown import ShutdownCoordinator
from device_simulator.timeline import Workload
from device_simulator.transport.base import Transport
from device_simulator.transport.console import ConsoleTransport
from device_simulator.transport.mqtt import MqttTransport

__all__ = ["RunSummary", "Simulator"]

logger = logging.getLogger("device_simulator")


class RunSummary(BaseModel):
    """What a run did, for the final report line.

    Attributes:
        action: The action that ran.
        events / devices / device_types: Sizes of the loaded workload.
        published / skipped / failed: Replay counters (zero without replay).
        provisioning_failures: REST calls that failed.
        interrupted: ``True`` when a signal cut the run short.
        elapsed_s: Wall-clock duration of the run.
    """

    action: Action
    events: int = 0
    devices: int = 0
    device_types: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
    provisioning_failures: int = 0
    interrupted: bool = False
    elapsed_s: float = 0.0

    def format_line(self) -> str:
        elapsed = format_elapsed(self.elapsed_s)
        if self.action is Action.DELETE:
            return f"Finished deleting devices and device types in {elapsed}"
        if self.action is Action.REBUILD:
            return f"Finished rebuilding devices and device types in {elapsed}"
        status = "Interrupted" if self.interrupted else "Done"
        return f"{status} in {elapsed} ({self.published} of {self.events} events published)"


class Simulator:
    """High-level API for replaying recorded device events.

    Example::

        from device_simulator import Simulator, SimulatorSettings

        settings = SimulatorSettings().with_overrides(
            org="myorg", api_key="a-myorg-key", api_token="secret",
            csv_file_path="sample.csv", publish_interval_divisor=10,
        )
        summary = Simulator(settings).run()
        print(summary.format_line())

    Parameters:
        settings:
            Resolved configuration.
        transport:
            Device transport.  Defaults to :class:`ConsoleTransport` for dry
            runs and :class:`MqttTransport` otherwise.
        provisioner:
            REST client.  Defaults to one built from ``settings.platform``.
    """

    def __init__(
        self,
        settings: SimulatorSettings,
        *,
        transport: Transport | None = None,
        provisioner: ProvisioningClient | None = None,
    ) -> None:
        self._settings = settings
        if transport is None:
            if settings.dry_run:
                transport = ConsoleTransport()
            else:
                transport = MqttTransport.for_platform(settings.platform, settings.replay)
        self._transport = transport
        self._provisioner = provisioner

    @property
    def settings(self) -> SimulatorSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, action: Action | None = None) -> RunSummary:
        """Blocking entry point - starts the event loop.

        Works inside environments that already have a running event loop
        (Jupyter, IPython) by spawning a dedicated background thread with
        its own loop.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None or not loop.is_running():
            return asyncio.run(self.run_async(action))

        result: list[RunSummary] = []
        exc: list[BaseException | None] = [None]

        def _target() -> None:
            try:
                result.append(asyncio.run(self.run_async(action)))
            except BaseException as e:
                exc[0] = e

        t = threading.Thread(target=_target, daemon=True)
        t.start()
        t.join()
        if exc[0] is not None:
            raise exc[0]
        return result[0]

    async def run_async(self, action: Action | None = None) -> RunSummary:
        """Async entry point - runs inside an existing event loop.

        Raises:
            IngestionError: If the CSV file cannot be read; nothing has
                touched the network at that point.
        """
        action = Action(action or self._settings.action)
        started = time.monotonic()

        workload = load_workload(Path(self._settings.replay.csv_file_path))
        summary = RunSummary(
            action=action,
            events=len(workload.timeline),
            devices=len(workload.devices),
            device_types=len(workload.device_types),
        )

        if action.provisions:
            rebuild = action is not Action.DELETE
            failures = await self._provision(workload, rebuild=rebuild)
            summary.provisioning_failures = len(failures)
            if failures:
                logger.warning("%d provisioning calls failed - continuing anyway", len(failures))

        if action.simulates:
            stats = await self.simulate(workload)
            summary.published = stats.published
            summary.skipped = stats.skipped
            summary.failed = stats.failed
            summary.interrupted = stats.interrupted

        summary.elapsed_s = time.monotonic() - started
        logger.info(summary.format_line())
        return summary

    async def simulate(self, workload: Workload) -> ReplayStats:
        """Connect every device, replay the timeline, disconnect.

        A SIGINT/SIGTERM stops the replay at its next wait; every open
        session is closed before this returns either way.
        """
        replay_cfg = self._settings.replay
        platform = self._settings.platform
        pool = ConnectionPool(
            self._transport,
            platform.org,
            client_id_prefix=platform.client_id_prefix,
            max_concurrency=replay_cfg.max_concurrent_connects,
        )
        scheduler = ReplayScheduler(
            pool,
            divisor=replay_cfg.publish_interval_divisor,
            topic_prefix=platform.topic_prefix,
            publish_timeout_s=replay_cfg.publish_timeout_s,
        )

        async with ShutdownCoordinator(pool) as coordinator:
            logger.info("Simulation data successfully read from CSV file. Connecting devices ...")
            connected = await coordinator.wait_for(pool.connect_all(workload.devices))
            if not connected:
                return ReplayStats(total=len(workload.timeline), interrupted=True)

            logger.info("Devices connected. Starting simulation ...")
            stats = await scheduler.run(workload.timeline, stop_event=coordinator.stop_event)
            logger.info("Simulation ended (%d events published). Disconnecting devices ...", stats.published)
        return stats

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _provision(self, workload: Workload, *, rebuild: bool) -> list[ProvisioningError]:
        verb = "Rebuilding" if rebuild else "Deleting"
        if self._settings.dry_run:
            logger.info(
                "[dry run] %s %d devices and %d device types: %s",
                verb,
                len(workload.devices),
                len(workload.device_types),
                ", ".join(workload.device_types),
            )
            return []

        logger.info("%s %d devices and %d device types ...", verb, len(workload.devices), len(workload.device_types))
        provisioner = self._provisioner or ProvisioningClient.for_platform(self._settings.platform)
        async with provisioner:
            if rebuild:
                return await provisioner.rebuild_all(workload)
            return await provisioner.delete_all(workload)
