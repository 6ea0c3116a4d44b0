"""Connection pool - at most one live transport session per device.

The pool is the only owner of :class:`Session` objects.  A session is
registered as soon as its connection opens and removes itself when the
transport reports the connection closed, so a session is in the pool if
and only if its connection is open.  Everything else (the replay
scheduler, the shutdown coordinator) only looks sessions up.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable

from device_simulator.errors import PublishNotConnected
from device_simulator.models import DeviceIdentity, make_client_id
from device_simulator.transport.base import Connection, Transport

__all__ = ["ConnectionPool", "Session"]

logger = logging.getLogger("device_simulator.pool")


class Session:
    """A live transport connection for exactly one device."""

    def __init__(self, device: DeviceIdentity, connection: Connection) -> None:
        self.device = device
        self.connection = connection

    @property
    def client_id(self) -> str:
        return self.connection.client_id

    async def publish(self, topic: str, payload: bytes) -> None:
        await self.connection.publish(topic, payload)

    def __repr__(self) -> str:
        return f"Session(client_id={self.client_id!r})"


class ConnectionPool:
    """Opens, tracks and tears down device sessions.

    Parameters:
        transport:
            Opens the underlying connections.
        org:
            Organisation id used in every client identifier.
        client_id_prefix:
            Prepended to every client identifier (``"d:"`` for WIoTP).
        max_concurrency:
            Upper bound on simultaneous connection attempts in
            :meth:`connect_all`.  ``None`` connects every device at once.
    """

    def __init__(
        self,
        transport: Transport,
        org: str,
        *,
        client_id_prefix: str = "",
        max_concurrency: int | None = None,
    ) -> None:
        self._transport = transport
        self._org = org
        self._client_id_prefix = client_id_prefix
        self._max_concurrency = max_concurrency
        self._sessions: dict[str, Session] = {}
        self._watchers: dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def client_id_for(self, device_type: str, device_id: str) -> str:
        return make_client_id(self._org, device_type, device_id, prefix=self._client_id_prefix)

    def lookup(self, client_id: str) -> Session | None:
        """Return the live session for *client_id*, or ``None``."""
        return self._sessions.get(client_id)

    def require(self, client_id: str) -> Session:
        """Return the live session for *client_id*.

        Raises:
            PublishNotConnected: If no session is registered.
        """
        session = self._sessions.get(client_id)
        if session is None:
            raise PublishNotConnected(client_id)
        return session

    @property
    def client_ids(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._sessions

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect_all(self, devices: Iterable[DeviceIdentity]) -> int:
        """Connect every device concurrently and return the pool size.

        Waits for every attempt to finish.  A failed attempt is logged and
        leaves no session behind; it never cancels the other attempts.
        """
        devices = list(devices)
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None

        async def _attempt(device: DeviceIdentity) -> None:
            if semaphore is None:
                await self._connect(device)
                return
            async with semaphore:
                await self._connect(device)

        await asyncio.gather(*(_attempt(device) for device in devices))
        logger.info("Connected %d/%d devices", len(self._sessions), len(devices))
        return len(self._sessions)

    async def _connect(self, device: DeviceIdentity) -> None:
        client_id = self.client_id_for(device.type, device.id)
        try:
            connection = await self._transport.open(client_id)
        except Exception as exc:
            logger.error("An error occurred for %s: %s", client_id, exc)
            logger.warning("Failed to create device connection %s.", client_id)
            return

        logger.info("Device connection %s successfully established.", client_id)
        if client_id in self._sessions:
            logger.warning("%s is already in the connection pool - closing duplicate connection.", client_id)
            await connection.close()
            return

        session = Session(device, connection)
        self._sessions[client_id] = session
        self._watchers[client_id] = asyncio.create_task(self._watch(session), name=f"watch-{client_id}")
        logger.info("%s was added to the connection pool (size %d).", client_id, len(self._sessions))

    async def _watch(self, session: Session) -> None:
        """Drop *session* from the pool once its transport reports it closed."""
        client_id = session.client_id
        try:
            await session.connection.wait_closed()
            logger.info("Connection %s closed.", client_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Connection %s failed: %s", client_id, exc)
        finally:
            if self._sessions.get(client_id) is session:
                del self._sessions[client_id]
                logger.info("%s was removed from the connection pool (size %d).", client_id, len(self._sessions))
            if self._watchers.get(client_id) is asyncio.current_task():
                del self._watchers[client_id]

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    async def disconnect_all(self) -> None:
        """Close every session and wait until each transport confirms it.

        The pool is empty when this returns.
        """
        sessions = list(self._sessions.values())
        if not sessions:
            return

        logger.info("Closing %d device connections ...", len(sessions))
        await asyncio.gather(*(self._disconnect(session) for session in sessions))
        self._sessions.clear()
        logger.info("All device connections closed.")

    async def _disconnect(self, session: Session) -> None:
        client_id = session.client_id
        watcher = self._watchers.get(client_id)
        try:
            await session.connection.close()
        except Exception as exc:
            logger.error("Error closing connection %s: %s", client_id, exc)
            if watcher is not None:
                watcher.cancel()

        if watcher is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
        self._sessions.pop(client_id, None)
