"""CLI entry point for the Device Event Simulator.

Usage::

    device-simulator run --config simulator.yaml
    device-simulator run --org myorg --api-key KEY --api-token TOKEN --csv sample.csv --divisor 10
    device-simulator simulate --config simulator.yaml
    device-simulator rebuild --config simulator.yaml
    device-simulator delete --config simulator.yaml
    device-simulator inspect --csv sample.csv
    device-simulator init-config --output simulator.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap

from device_simulator.config import Action, SimulatorSettings

logger = logging.getLogger("device_simulator.cli")

# Sub-commands that run the simulator, and the action each one forces.
# ``run`` keeps whatever action the config file selects.
_ACTION_COMMANDS: dict[str, Action | None] = {
    "run": None,
    "simulate": Action.SIMULATE,
    "rebuild": Action.REBUILD,
    "delete": Action.DELETE,
}

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# Device Event Simulator configuration

platform:
  org: ""                             # your organisation id
  api_key: ""                         # REST API key
  api_token: ""                       # REST API token
  http_domain: internetofthings.ibmcloud.com
  mqtt_domain: messaging.internetofthings.ibmcloud.com
  # mqtt_port: 8883
  # device_token: iotanalytics        # auth token registered for every device
  client_id_prefix: "d:"              # client id = <prefix><org>:<deviceType>:<deviceId>
  topic_prefix: "iot-2/"              # topic = <prefix>evt/<eventType>/fmt/<format>
  # verify_tls: false

replay:
  csv_file_path: sample.csv
  publish_interval_divisor: 1         # 10 = replay ten times faster than recorded
  # qos: 1                            # 0 = fire and forget, 1 = wait for PUBACK
  # publish_timeout_s: 5              # optional per-publish deadline
  # connect_timeout_s: 30
  # max_concurrent_connects: 50       # optional bound on parallel connects

simulator:
  action: rebuild_and_simulate        # delete | rebuild | simulate | rebuild_and_simulate
  # dry_run: false                    # print publishes, skip REST calls
  # log_level: INFO                   # DEBUG, INFO, WARNING, ERROR
"""

_CSV_NOTES = textwrap.dedent("""\
    CSV file:
      required columns: timestamp, deviceType, deviceId, eventType, format
      timestamp values: ISO-8601, e.g. 2017-05-02T10:00:00.000Z
      format values:    json
      payload columns:  <deviceType>_<eventType>_<propertyName>, e.g. thermometer_sensor_temperature
                        (numeric values; leave empty when the property is absent)
""")


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          device-simulator run --config simulator.yaml
          device-simulator run --org myorg --api-key KEY --api-token TOKEN --csv sample.csv
          device-simulator simulate --config simulator.yaml --divisor 10
          device-simulator run --csv sample.csv --dry-run --divisor 100
          device-simulator delete --config simulator.yaml
          device-simulator inspect --csv sample.csv
          device-simulator init-config --output simulator.yaml

    """) + _CSV_NOTES

    parser = argparse.ArgumentParser(
        prog="device-simulator",
        description="Provision simulated IoT devices and replay recorded device events with their original timing.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Options shared by every command that reads the CSV file / config.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML config file. Command-line options override it.",
    )
    common.add_argument("--csv", type=str, default=None, help="CSV file with recorded device events.")
    common.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )

    run_options = argparse.ArgumentParser(add_help=False)
    run_options.add_argument("--org", type=str, default=None, help="Organisation id.")
    run_options.add_argument("--api-key", type=str, default=None, help="REST API key.")
    run_options.add_argument("--api-token", type=str, default=None, help="REST API token.")
    run_options.add_argument(
        "--divisor",
        type=float,
        default=None,
        help="Replay speed-up: 10 publishes events ten times faster than recorded (default: 1).",
    )
    run_options.add_argument(
        "--qos",
        type=int,
        default=None,
        choices=[0, 1, 2],
        help="MQTT QoS for every publish (default: 1).",
    )
    run_options.add_argument(
        "--publish-timeout",
        type=float,
        default=None,
        help="Seconds to wait for each publish before skipping it (default: no limit).",
    )
    run_options.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Print publishes to stdout and skip REST calls.",
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # -- run / simulate / rebuild / delete -----------------------------------
    action_help = {
        "run": "Rebuild devices and device types, then replay events (or the config file's action).",
        "simulate": "Replay events, assuming devices and device types already exist.",
        "rebuild": "Delete, then recreate every device and device type found in the CSV file.",
        "delete": "Delete every device and device type found in the CSV file.",
    }
    for name, help_text in action_help.items():
        subparsers.add_parser(
            name,
            help=help_text,
            parents=[common, run_options],
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=_CSV_NOTES,
        )

    # -- inspect -------------------------------------------------------------
    subparsers.add_parser(
        "inspect",
        help="Show the devices, device types and events found in the CSV file.",
        parents=[common],
    )

    # -- init-config ---------------------------------------------------------
    init_parser = subparsers.add_parser(
        "init-config",
        help="Generate a sample YAML configuration file.",
    )
    init_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write config to this file instead of stdout.",
    )

    # -- Pre-check: default sub-command ---------------------------------------
    # If the first arg is NOT a known subcommand but looks like a flag
    # (e.g. --config, --csv), inject "run" as the subcommand so that
    # `device-simulator --config simulator.yaml` keeps working.
    _known_commands = {*_ACTION_COMMANDS, "inspect", "init-config"}
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _known_commands and raw_args[0] not in ("-h", "--help"):
        raw_args = ["run", *list(raw_args)]

    args = parser.parse_args(raw_args)

    if args.command is None:
        parser.print_help()
        return

    # -- Dispatch ----------------------------------------------------------
    if args.command in _ACTION_COMMANDS:
        _cmd_action(args, _ACTION_COMMANDS[args.command])
    elif args.command == "inspect":
        _cmd_inspect(args)
    elif args.command == "init-config":
        _cmd_init_config(args.output)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _configure_logging(level: str | None) -> None:
    logging.basicConfig(
        level=getattr(logging, level or "INFO"),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_settings(args: argparse.Namespace, **overrides: object) -> SimulatorSettings:
    """Config file (if any) + command-line overrides, or exit with status 1."""
    from device_simulator.config import load_yaml_config

    try:
        settings = load_yaml_config(args.config) if args.config else SimulatorSettings()
        settings = settings.with_overrides(csv_file_path=args.csv, log_level=args.log_level, **overrides)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))
    return settings


def _cmd_action(args: argparse.Namespace, action: Action | None) -> None:
    """Run the simulator for the selected action."""
    from device_simulator.errors import IngestionError
    from device_simulator.simulator import Simulator

    _configure_logging(args.log_level)
    settings = _load_settings(
        args,
        action=action,
        org=args.org,
        api_key=args.api_key,
        api_token=args.api_token,
        publish_interval_divisor=args.divisor,
        qos=args.qos,
        publish_timeout_s=args.publish_timeout,
        dry_run=True if args.dry_run else None,
    )

    missing = settings.missing_settings()
    if missing:
        print(
            f"Error: missing connection setting(s) for '{settings.action.value}': {', '.join(missing)}.\n"
            "Add them to the config file (see 'device-simulator init-config') or pass them as options "
            "(--org, --api-key, --api-token).",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        summary = Simulator(settings).run()
    except IngestionError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return

    print(summary.format_line())


# -- inspect ------------------------------------------------------------------


def _cmd_inspect(args: argparse.Namespace) -> None:
    from device_simulator.errors import IngestionError
    from device_simulator.ingest import load_workload
    from device_simulator.replay import format_elapsed

    _configure_logging(args.log_level or "WARNING")
    settings = _load_settings(args)

    try:
        workload = load_workload(settings.replay.csv_file_path)
    except IngestionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    counts: dict[tuple[str, str], int] = {}
    for rec in workload.timeline:
        key = (rec.device_type, rec.device_id)
        counts[key] = counts.get(key, 0) + 1

    print(f"\n{'Device Type':<24} {'Device Id':<28} {'Events':>7}")
    print("-" * 61)
    for device in workload.devices:
        print(f"{device.type:<24} {device.id:<28} {counts[(device.type, device.id)]:>7}")
    print("-" * 61)
    print(f"{'TOTAL':<53} {len(workload.timeline):>7}")
    print()
    print(f"Device types:      {len(workload.device_types)} ({', '.join(workload.device_types)})")
    print(f"Recorded duration: {format_elapsed(workload.duration_s)}")
    print()


# -- init-config --------------------------------------------------------------


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        from pathlib import Path

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# ======================================================================
if __name__ == "__main__":
    main()
