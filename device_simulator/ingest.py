"""CSV ingestion - turns a recorded-events CSV file into event records.

Expected columns (header row required)::

    timestamp,deviceType,deviceId,eventType,format,<deviceType>_<eventType>_<property>,...

Example::

    timestamp,deviceType,deviceId,eventType,format,thermometer_sensor_temperature,hygrometer_sensor_humidity
    2017-05-02T10:00:00.000Z,thermometer,t-01,sensor,json,21.5,
    2017-05-02T10:00:01.500Z,hygrometer,h-01,sensor,json,,48

Each row only carries the payload columns whose prefix matches its own
device type and event type; empty cells are left out of the payload.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from pydantic import ValidationError

from device_simulator.errors import IngestionError
from device_simulator.models import EventRecord, PayloadValue
from device_simulator.timeline import Workload

__all__ = ["REQUIRED_COLUMNS", "SUPPORTED_FORMATS", "load_workload", "read_event_records"]

logger = logging.getLogger("device_simulator.ingest")

REQUIRED_COLUMNS = ("timestamp", "deviceType", "deviceId", "eventType", "format")
SUPPORTED_FORMATS = frozenset({"json"})


def read_event_records(path: str | Path) -> list[EventRecord]:
    """Read every row of *path* into an :class:`EventRecord` (file order).

    Raises:
        IngestionError: If the file is missing or any row is malformed.
    """
    path = Path(path)
    if not path.is_file():
        raise IngestionError(f"CSV file not found: {path}")

    records: list[EventRecord] = []
    with path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        missing = [col for col in REQUIRED_COLUMNS if col not in (reader.fieldnames or [])]
        if missing:
            raise IngestionError(f"{path}: missing required column(s): {', '.join(missing)}")

        for row in reader:
            records.append(_parse_row(row, path, reader.line_num))

    logger.info("Read %d device events from %s", len(records), path)
    return records


def load_workload(path: str | Path) -> Workload:
    """Read *path* and build the ordered timeline plus device lists."""
    return Workload.from_records(read_event_records(path))


# ----------------------------------------------------------------------
# Internal
# ----------------------------------------------------------------------


def _parse_row(row: dict[str, str | None], path: Path, line: int) -> EventRecord:
    where = f"{path}:{line}"
    fields = {col: (row.get(col) or "").strip() for col in REQUIRED_COLUMNS}

    for col in ("timestamp", "deviceType", "deviceId", "eventType"):
        if not fields[col]:
            raise IngestionError(f"{where}: empty '{col}' value")

    fmt = fields["format"] or "json"
    if fmt not in SUPPORTED_FORMATS:
        raise IngestionError(f"{where}: unsupported format '{fmt}' (expected one of {sorted(SUPPORTED_FORMATS)})")

    prefix = f"{fields['deviceType']}_{fields['eventType']}_"
    payload: dict[str, PayloadValue] = {}
    for key, raw in row.items():
        # Extra cells beyond the header land under the ``None`` key.
        if key is None or not key.startswith(prefix) or raw is None or raw.strip() == "":
            continue
        payload[key[len(prefix):]] = _parse_number(raw)

    try:
        return EventRecord(
            timestamp=fields["timestamp"],
            device_type=fields["deviceType"],
            device_id=fields["deviceId"],
            event_type=fields["eventType"],
            format=fmt,
            payload=payload,
        )
    except ValidationError as exc:
        raise IngestionError(f"{where}: invalid event record: {exc.errors()[0]['msg']}") from exc


def _parse_number(raw: str) -> PayloadValue:
    try:
        return float(raw)
    except ValueError:
        logger.debug("Non-numeric payload value %r - publishing null", raw)
        return None
