"""Common data models for the device simulator.

Defines :class:`EventRecord`, one recorded device event, and
:class:`DeviceIdentity`, one simulated device.  Also holds the helpers that
derive the wire-level client id, topic and payload bytes from them.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "DeviceIdentity",
    "EventRecord",
    "encode_payload",
    "make_client_id",
    "make_topic",
]

PayloadValue = float | None


class EventRecord(BaseModel):
    """A single device event read from the recorded data.

    Records are immutable.  The timeline builder attaches timing metadata
    by producing copies (``model_copy(update=...)``).

    Attributes:
        timestamp: When the event happened (timezone-aware; naive input is
            taken as UTC).
        device_type: Device type identifier, e.g. ``"thermometer"``.
        device_id: Device identifier, unique within its type.
        event_type: Event type identifier, e.g. ``"sensor"``.
        format: Payload encoding tag, e.g. ``"json"``.
        payload: Property name to numeric value (``None`` when the recorded
            value was not a number).
        time_since_last_event_s: Seconds since the previous event in
            timeline order.  ``0.0`` for the first event.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    device_type: str
    device_id: str
    event_type: str
    format: str = "json"
    payload: dict[str, PayloadValue] = Field(default_factory=dict)
    time_since_last_event_s: float = Field(default=0.0, ge=0.0)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def device(self) -> DeviceIdentity:
        return DeviceIdentity(id=self.device_id, type=self.device_type)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain ``dict`` representation (JSON-safe types)."""
        return self.model_dump(mode="json")


class DeviceIdentity(BaseModel):
    """A (device id, device type) pair observed in the recorded events."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str


# ----------------------------------------------------------------------
# Wire helpers
# ----------------------------------------------------------------------


def make_client_id(org: str, device_type: str, device_id: str, prefix: str = "") -> str:
    """Return the transport client identifier ``<org>:<type>:<id>``."""
    return f"{prefix}{org}:{device_type}:{device_id}"


def make_topic(event_type: str, fmt: str, prefix: str = "") -> str:
    """Return the publish topic ``evt/<event_type>/fmt/<fmt>``."""
    return f"{prefix}evt/{event_type}/fmt/{fmt}"


# Integral floats at or above this magnitude keep exponent notation.
_MAX_PLAIN_INT = 1e21


def _json_value(value: PayloadValue) -> int | float | None:
    if value is None or not math.isfinite(value):
        return None
    if float(value).is_integer() and abs(value) < _MAX_PLAIN_INT:
        return int(value)
    return value


def encode_payload(payload: dict[str, PayloadValue], fmt: str = "json") -> bytes:
    """Serialise a payload mapping for publishing.

    Only ``"json"`` is supported.  The output is compact (no whitespace),
    integral values below 1e21 are written without a fractional part, larger
    ones keep exponent notation (``1e+300``), and non-finite
    values become ``null``, so ``{"x": 1.0}`` encodes as ``b'{"x":1}'``.
    """
    if fmt != "json":
        raise ValueError(f"Unsupported payload format '{fmt}'")
    body = {key: _json_value(value) for key, value in payload.items()}
    return json.dumps(body, separators=(",", ":"), allow_nan=False).encode("utf-8")
