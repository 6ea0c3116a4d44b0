#!/usr/bin/env python3
"""Dry-run replay examples -- 3 cases replaying examples/data/sample.csv
through the console transport.

Directly runnable (no platform credentials or broker required).

Usage::

    python examples/scenarios/dry_run_replay_example.py           # Case 1 (default)
    python examples/scenarios/dry_run_replay_example.py --case 2   # JSON lines, 10x speed
    python examples/scenarios/dry_run_replay_example.py --case 3   # Interrupt mid-replay

Equivalent CLI::

    device-simulator simulate --csv examples/data/sample.csv --dry-run --divisor 2
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

_SAMPLE_CSV = Path(__file__).parent.parent / "data" / "sample.csv"


def _settings(**overrides):
    from device_simulator import SimulatorSettings

    return SimulatorSettings().with_overrides(
        org="demo",
        csv_file_path=str(_SAMPLE_CSV),
        dry_run=True,
        **overrides,
    )


# ---------------------------------------------------------------------------
# Case 1: Text output at recorded speed / 2
# ---------------------------------------------------------------------------


def run_case_1() -> None:
    """Human-readable publishes, replayed twice as fast as recorded.

    Knobs demonstrated:
      - publish_interval_divisor=2 -> halve every recorded delay
      - client_id_prefix / topic_prefix -> WIoTP-style wire names
    """
    from device_simulator import Action, Simulator

    print("=== Case 1: Text output (divisor 2) ===\n")

    settings = _settings(publish_interval_divisor=2, client_id_prefix="d:", topic_prefix="iot-2/")
    summary = Simulator(settings).run(Action.SIMULATE)
    print(f"\n{summary.format_line()}")


# ---------------------------------------------------------------------------
# Case 2: JSON lines at 10x speed
# ---------------------------------------------------------------------------


def run_case_2() -> None:
    """One JSON object per publish, e.g. for piping into jq."""
    from device_simulator import Action, Simulator
    from device_simulator.transport import ConsoleTransport

    print("=== Case 2: JSON lines (divisor 10) ===\n")

    sim = Simulator(_settings(publish_interval_divisor=10), transport=ConsoleTransport(fmt="json"))
    summary = sim.run(Action.SIMULATE)
    print(f"\n{summary.format_line()}")


# ---------------------------------------------------------------------------
# Case 3: Stop the replay after two seconds
# ---------------------------------------------------------------------------


def run_case_3() -> None:
    """Drive the pool, scheduler and shutdown coordinator by hand.

    The stop request has the same effect as pressing Ctrl-C: the replay
    stops at its next wait and every device connection is closed.
    """
    from device_simulator import load_workload
    from device_simulator.pool import ConnectionPool
    from device_simulator.replay import ReplayScheduler
    from device_simulator.shutdown import ShutdownCoordinator
    from device_simulator.transport import ConsoleTransport

    print("=== Case 3: Interrupt after 2 s ===\n")

    async def _main() -> None:
        workload = load_workload(_SAMPLE_CSV)
        pool = ConnectionPool(ConsoleTransport(), "demo")
        scheduler = ReplayScheduler(pool)

        async with ShutdownCoordinator(pool) as coordinator:
            await pool.connect_all(workload.devices)
            asyncio.get_running_loop().call_later(2.0, coordinator.request_shutdown)
            stats = await scheduler.run(workload.timeline, stop_event=coordinator.stop_event)

        print(f"\npublished={stats.published} of {stats.total}, interrupted={stats.interrupted}, pool size={len(pool)}")

    asyncio.run(_main())


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

CASES = {1: run_case_1, 2: run_case_2, 3: run_case_3}


def main() -> None:
    parser = argparse.ArgumentParser(description="Dry-run replay examples")
    parser.add_argument("--case", type=int, default=1, choices=sorted(CASES), help="Which case to run (default: 1)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )
    CASES[args.case]()


if __name__ == "__main__":
    main()
