"""Timeline builder - orders recorded events and attaches inter-event delays.

Also extracts the unique devices and device types the timeline refers to,
which the provisioning and connection phases work from.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from device_simulator.models import DeviceIdentity, EventRecord

__all__ = [
    "Workload",
    "build_timeline",
    "extract_device_types",
    "extract_devices",
]

logger = logging.getLogger("device_simulator.timeline")


def build_timeline(records: Iterable[EventRecord]) -> list[EventRecord]:
    """Sort *records* by timestamp and set ``time_since_last_event_s``.

    The sort is stable, so events sharing a timestamp keep their input
    order (and get a zero delay).  Empty and single-event inputs are valid.
    """
    ordered = sorted(records, key=lambda rec: rec.timestamp)
    timeline: list[EventRecord] = []
    previous: EventRecord | None = None
    for rec in ordered:
        delay = 0.0 if previous is None else (rec.timestamp - previous.timestamp).total_seconds()
        timeline.append(rec.model_copy(update={"time_since_last_event_s": delay}))
        previous = rec
    return timeline


def extract_devices(timeline: Iterable[EventRecord]) -> list[DeviceIdentity]:
    """Return the unique devices in order of first appearance."""
    seen: dict[DeviceIdentity, None] = {}
    for rec in timeline:
        seen.setdefault(rec.device)
    return list(seen)


def extract_device_types(devices: Iterable[DeviceIdentity]) -> list[str]:
    """Return the unique device types in order of first appearance."""
    seen: dict[str, None] = {}
    for device in devices:
        seen.setdefault(device.type)
    return list(seen)


class Workload(BaseModel):
    """Everything the simulator needs from the recorded data.

    Attributes:
        timeline: Events in replay order, with delays attached.
        devices: Unique devices referenced by the timeline.
        device_types: Unique device types referenced by ``devices``.
    """

    timeline: list[EventRecord] = Field(default_factory=list)
    devices: list[DeviceIdentity] = Field(default_factory=list)
    device_types: list[str] = Field(default_factory=list)

    @classmethod
    def from_records(cls, records: Sequence[EventRecord]) -> Workload:
        timeline = build_timeline(records)
        devices = extract_devices(timeline)
        device_types = extract_device_types(devices)
        logger.info(
            "Built timeline: %d events, %d devices, %d device types",
            len(timeline),
            len(devices),
            len(device_types),
        )
        return cls(timeline=timeline, devices=devices, device_types=device_types)

    @property
    def duration_s(self) -> float:
        """Recorded span between the first and last event, in seconds."""
        return sum(rec.time_since_last_event_s for rec in self.timeline)
