"""Exception types raised across the simulator.

Only :class:`IngestionError` is fatal.  The per-device errors are caught
where they happen, logged, and the run carries on without that device or
event.
"""

from __future__ import annotations

__all__ = [
    "DeviceConnectionError",
    "IngestionError",
    "ProvisioningError",
    "PublishError",
    "PublishNotConnected",
    "SimulatorError",
]


class SimulatorError(Exception):
    """Base class for all simulator errors."""


class IngestionError(SimulatorError):
    """The CSV file or the timeline built from it is malformed."""


class DeviceConnectionError(SimulatorError):
    """A device's transport handshake failed."""

    def __init__(self, client_id: str, reason: object) -> None:
        super().__init__(f"Failed to create device connection {client_id}: {reason}")
        self.client_id = client_id
        self.reason = reason


class PublishNotConnected(SimulatorError):
    """A publish targeted a client id that has no live session."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"Device connection {client_id} not found.")
        self.client_id = client_id


class PublishError(SimulatorError):
    """The transport did not deliver a payload."""

    def __init__(self, client_id: str, topic: str, reason: object) -> None:
        super().__init__(f"{client_id} failed to publish to topic {topic}: {reason}")
        self.client_id = client_id
        self.topic = topic
        self.reason = reason


class ProvisioningError(SimulatorError):
    """A device-management REST call failed."""

    def __init__(self, operation: str, target: str, reason: object, status_code: int | None = None) -> None:
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Error {operation} {target}{status}: {reason}")
        self.operation = operation
        self.target = target
        self.reason = reason
        self.status_code = status_code
