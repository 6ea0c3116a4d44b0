#!/usr/bin/env python3
"""YAML config-driven example -- load simulator settings from a YAML file
and run the configured action.

All settings (platform, replay speed, action) live in
``examples/configs/simulator_config.yaml``; the Python code is minimal.
The shipped config has ``dry_run: true`` so this is directly runnable.

Usage::

    python examples/scenarios/yaml_config_example.py

Equivalent CLI::

    device-simulator run --config examples/configs/simulator_config.yaml
"""

from __future__ import annotations

import logging
from pathlib import Path


def main() -> None:
    print("=== YAML Config-Driven Example ===\n")

    config_path = Path(__file__).parent.parent / "configs" / "simulator_config.yaml"

    if not config_path.exists():
        print(f"  Config file not found: {config_path}")
        return

    print(f"  Config file: {config_path}\n")

    # --- Load the YAML configuration ---
    from device_simulator.config import load_yaml_config
    settings = load_yaml_config(config_path)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    # The CSV path in the config is relative to the repository root.
    repo_root = config_path.parent.parent.parent
    settings = settings.with_overrides(csv_file_path=str(repo_root / settings.replay.csv_file_path))

    print(f"  Org:             {settings.platform.org}")
    print(f"  CSV file:        {settings.replay.csv_file_path}")
    print(f"  Divisor:         {settings.replay.publish_interval_divisor}")
    print(f"  Action:          {settings.action.value}")
    print(f"  Dry run:         {settings.dry_run}")
    print()

    missing = settings.missing_settings()
    if missing:
        print(f"  Missing settings: {', '.join(missing)}")
        return

    # --- Run ---
    from device_simulator.simulator import Simulator
    summary = Simulator(settings).run()
    print(f"\n  {summary.format_line()}")


if __name__ == "__main__":
    main()
