"""Transport abstraction - one live connection per simulated device.

Provides:
- ``Transport``  - abstract factory that opens a device connection.
- ``Connection`` - abstract handle for one open device session.

The connection pool only talks to these two interfaces, so the replay
engine is identical whether it publishes over MQTT or to the console.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

__all__ = ["Connection", "Transport"]


class Connection(ABC):
    """An open transport session for exactly one client id.

    Concrete connections must implement ``publish``, ``close`` and
    ``wait_closed``.
    """

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id

    @property
    @abstractmethod
    def closed(self) -> bool:
        """``True`` once the transport has reported the session closed."""

    @abstractmethod
    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish *payload* on *topic* and wait for delivery confirmation.

        Raises:
            PublishError: If the transport could not deliver the payload.
        """

    @abstractmethod
    async def close(self) -> None:
        """Request a graceful close of the session."""

    @abstractmethod
    async def wait_closed(self) -> None:
        """Resolve once the session is closed, whether requested or lost."""


class Transport(ABC):
    """Opens device connections for the connection pool."""

    @abstractmethod
    async def open(self, client_id: str) -> Connection:
        """Establish a connection for *client_id*.

        Raises:
            DeviceConnectionError: If the handshake fails.
        """
