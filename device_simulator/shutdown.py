"""Shutdown coordinator - turns an interrupt into an orderly teardown.

On SIGINT/SIGTERM the coordinator sets a stop event that the replay
scheduler checks at every wait.  Leaving the ``async with`` block then
closes every pool session, exactly once, before the process exits.

Example::

    async with ShutdownCoordinator(pool) as coordinator:
        if await coordinator.wait_for(pool.connect_all(devices)):
            await scheduler.run(timeline, stop_event=coordinator.stop_event)
    # every session is closed here, interrupted or not
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Awaitable, Sequence
from types import TracebackType

from device_simulator.pool import ConnectionPool

__all__ = ["ShutdownCoordinator"]

logger = logging.getLogger("device_simulator.shutdown")


class ShutdownCoordinator:
    """Owns the stop event and the single pool drain.

    Parameters:
        pool: Pool to drain on shutdown.
        signals: Signals that trigger a shutdown.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        signals: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        self._pool = pool
        self._signals = tuple(signals)
        self._installed: list[signal.Signals] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event = asyncio.Event()
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def interrupted(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Signal handlers
    # ------------------------------------------------------------------

    def install(self) -> None:
        """Route the configured signals to :meth:`request_shutdown`."""
        # NotImplementedError: raised on Windows where signal handlers are unsupported.
        # RuntimeError: raised when running in a non-main thread (e.g. notebook env).
        self._loop = asyncio.get_running_loop()
        for sig in self._signals:
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                self._loop.add_signal_handler(sig, self.request_shutdown)
                self._installed.append(sig)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in self._installed:
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                self._loop.remove_signal_handler(sig)
        self._installed.clear()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Ask the replay to stop.  Calls after the first have no effect."""
        if self._stop_event.is_set():
            logger.debug("Shutdown already in progress")
            return
        logger.info("Caught interrupt signal, closing device connections ...")
        self._stop_event.set()

    async def wait_for(self, aw: Awaitable[object]) -> bool:
        """Await *aw* unless a shutdown is requested first.

        Returns ``True`` if *aw* completed, ``False`` if it was cancelled
        because of a shutdown request.
        """
        if self._stop_event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            return False

        task = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait((task, stop), return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop.cancel()

        if task.done():
            task.result()
            return True

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return False

    async def drain(self) -> None:
        """Close every pool session.  The pool is drained at most once."""
        if self._drain_task is None:
            self._drain_task = asyncio.ensure_future(self._pool.disconnect_all())
        await asyncio.shield(self._drain_task)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ShutdownCoordinator:
        self.install()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await self.drain()
        finally:
            self.uninstall()
