"""Replay scheduler - publishes a timeline with its recorded timing.

Events are replayed one at a time, in timeline order.  Before each event
the scheduler waits ``time_since_last_event_s / divisor`` seconds, then
looks the device's session up in the pool and publishes.  A missing
session or a failed publish is logged and skipped; neither stops the
replay.  Setting the ``stop_event`` ends the replay at the next wait or
while a publish is waiting for its confirmation.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from pydantic import BaseModel

from device_simulator.errors import PublishError, PublishNotConnected
from device_simulator.models import EventRecord, encode_payload, make_topic
from device_simulator.pool import ConnectionPool, Session

__all__ = ["ReplayScheduler", "ReplayStats", "format_elapsed"]

logger = logging.getLogger("device_simulator.replay")


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``HH:MM:SS.d``.  Tenths are truncated, not rounded."""
    tenths = int(round(seconds * 1000)) // 100
    hours, rem = divmod(tenths, 36_000)
    minutes, rem = divmod(rem, 600)
    secs, tenth = divmod(rem, 10)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{tenth}"


class ReplayStats(BaseModel):
    """Outcome of one replay.

    Attributes:
        total: Events in the timeline.
        published: Events whose delivery the transport confirmed.
        skipped: Events whose device had no live session.
        failed: Events whose publish raised or timed out.
        interrupted: ``True`` when the replay was stopped before the end.
    """

    total: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
    interrupted: bool = False

    @property
    def attempted(self) -> int:
        return self.published + self.skipped + self.failed


class ReplayScheduler:
    """Walks a timeline and publishes each event through a connection pool.

    Parameters:
        pool:
            Pool the sessions are looked up in.  The scheduler never opens
            or closes sessions itself.
        divisor:
            Replay speed-up.  ``10`` replays ten times faster than recorded.
        topic_prefix:
            Prepended to every topic (``"iot-2/"`` for WIoTP).
        publish_timeout_s:
            Optional deadline for each publish.  A publish that misses it is
            counted as failed and the replay moves on.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        divisor: float = 1.0,
        topic_prefix: str = "",
        publish_timeout_s: float | None = None,
    ) -> None:
        if divisor <= 0:
            raise ValueError(f"divisor must be positive, got {divisor}")
        self._pool = pool
        self._divisor = divisor
        self._topic_prefix = topic_prefix
        self._publish_timeout_s = publish_timeout_s
        self._stats = ReplayStats()

    @property
    def publish_count(self) -> int:
        return self._stats.published

    @property
    def stats(self) -> ReplayStats:
        return self._stats

    async def run(self, timeline: Sequence[EventRecord], stop_event: asyncio.Event | None = None) -> ReplayStats:
        """Replay *timeline* and return the final counters.

        Parameters:
            timeline: Events in replay order (see :func:`build_timeline`).
            stop_event: Cancellation token.  Once set, no further event is
                        published and the replay returns early.  A publish
                        still waiting for confirmation is abandoned.
        """
        stats = self._stats = ReplayStats(total=len(timeline))
        stop_event = stop_event or asyncio.Event()
        logger.info("Replaying %d events (divisor %g)", len(timeline), self._divisor)

        for index, event in enumerate(timeline):
            delay = event.time_since_last_event_s / self._divisor
            if delay > 0:
                logger.debug("Delaying %s ...", format_elapsed(delay))
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)

            if stop_event.is_set() or not await self._deliver(event, stats, stop_event):
                stats.interrupted = True
                logger.info("Replay stopped - %d of %d events not played", len(timeline) - index, len(timeline))
                break

        return stats

    async def _deliver(self, event: EventRecord, stats: ReplayStats, stop_event: asyncio.Event) -> bool:
        """Publish one event.  Returns ``False`` if *stop_event* cut the publish short."""
        client_id = self._pool.client_id_for(event.device_type, event.device_id)
        topic = make_topic(event.event_type, event.format, prefix=self._topic_prefix)

        try:
            session = self._pool.require(client_id)
        except PublishNotConnected as exc:
            logger.warning("%s Payload not sent.", exc)
            stats.skipped += 1
            return True

        try:
            payload = encode_payload(event.payload, event.format)
        except ValueError as exc:
            logger.error("Payload for %s not sent: %s", client_id, exc)
            stats.failed += 1
            return True

        publish = asyncio.ensure_future(self._publish(session, topic, payload))
        stop = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait((publish, stop), return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            publish.cancel()
            raise
        finally:
            stop.cancel()

        if not publish.done():
            publish.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await publish
            logger.warning("%s publish to topic %s abandoned on shutdown.", client_id, topic)
            return False

        try:
            publish.result()
        except asyncio.TimeoutError:
            logger.error("%s publish to topic %s timed out after %.1fs.", client_id, topic, self._publish_timeout_s)
            stats.failed += 1
            return True
        except PublishError as exc:
            logger.error("Payload for %s not sent: %s", client_id, exc)
            stats.failed += 1
            return True

        stats.published += 1
        logger.info("%s published payload %s to topic %s.", client_id, payload.decode("utf-8"), topic)
        return True

    async def _publish(self, session: Session, topic: str, payload: bytes) -> None:
        if self._publish_timeout_s is None:
            await session.publish(topic, payload)
        else:
            await asyncio.wait_for(session.publish(topic, payload), timeout=self._publish_timeout_s)
