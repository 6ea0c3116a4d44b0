"""Console transport - prints every publish instead of sending it.

Useful for dry runs, demos, and checking a CSV file's replay timing
without touching the platform.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import IO

from device_simulator.errors import PublishError
from device_simulator.transport.base import Connection, Transport

__all__ = ["ConsoleConnection", "ConsoleTransport"]


class ConsoleConnection(Connection):
    """Session that writes publishes to a stream."""

    def __init__(self, client_id: str, *, stream: IO[str], fmt: str = "text") -> None:
        super().__init__(client_id)
        self._stream = stream
        self._fmt = fmt
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def publish(self, topic: str, payload: bytes) -> None:
        if self.closed:
            raise PublishError(self.client_id, topic, "connection closed")

        text = payload.decode("utf-8")
        if self._fmt == "json":
            line = json.dumps({"client_id": self.client_id, "topic": topic, "payload": text})
        else:
            line = f"[{self.client_id}] {topic} {text}"
        try:
            self._stream.write(line + "\n")
            self._stream.flush()
        except (OSError, ValueError) as exc:
            # Broken pipe, or a stream closed underneath us.
            raise PublishError(self.client_id, topic, exc) from exc

    async def close(self) -> None:
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()


class ConsoleTransport(Transport):
    """Opens :class:`ConsoleConnection` sessions.

    Parameters:
        fmt: Output format - ``"text"`` (human-readable) or ``"json"``
             (one JSON object per publish).
        stream: Writable file-like object (defaults to ``sys.stdout``).
    """

    def __init__(self, *, fmt: str = "text", stream: IO[str] | None = None) -> None:
        self._fmt = fmt
        self._stream = stream or sys.stdout

    async def open(self, client_id: str) -> ConsoleConnection:
        return ConsoleConnection(client_id, stream=self._stream, fmt=self._fmt)
