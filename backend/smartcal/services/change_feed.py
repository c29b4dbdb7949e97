# backend/smartcal/services/change_feed.py
"""
Meeting change feed built on Broadcaster.

Every committed meeting mutation publishes a small JSON event on the owner's
channel:

    {"operation": "created", "meeting_id": "01H...", "sequence": 42}

``sequence`` is the MeetingChange row written in the same transaction, so it
increases monotonically per owner. Consumers never trust the payload for
meeting data; they refetch and use the sequence to discard stale refetches.

Two consumers exist:
- ChangeSubscription: an async iterator with an explicit cancel(), used by
  the calendar grid's reconciliation loop.
- create_meeting_stream: the SSE generator behind GET /meetings/stream.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
import logging
from typing import Any, AsyncGenerator, Dict, Iterable, Optional

from broadcaster import Broadcast
from pydantic import ValidationError

from ..core.broadcast import get_broadcast
from ..core.config import settings
from ..core.exceptions import PersistenceError
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.meeting import MeetingChangeEvent

logger = logging.getLogger(__name__)

_DONE = object()


def channel_for(owner_id: str) -> str:
    return f"meetings:{owner_id}"


async def publish_meeting_change(
    owner_id: str,
    event: MeetingChangeEvent,
    broadcast: Optional[Broadcast] = None,
) -> None:
    """
    Publish a committed change to the owner's channel.

    Publishing happens after commit; a failure here is logged and does not
    undo the mutation. Subscribers catch up on their next refetch.
    """
    channel = channel_for(owner_id)
    try:
        target = broadcast or get_broadcast()
        await target.publish(channel=channel, message=event.to_message())
        prometheus_metrics.inc_meeting_change(event.operation.value)
        logger.debug("[BROADCAST] Published %s #%s to %s", event.operation.value, event.sequence, channel)
    except RuntimeError as e:
        # Broadcast not initialized
        logger.warning(f"[BROADCAST] Broadcast not initialized, cannot publish: {e}")
    except Exception as e:
        logger.error(f"[BROADCAST] Failed to publish to {channel}: {e}")


class ChangeSubscription:
    """
    Cancellable subscription to one owner's change events.

    Usage:
        subscription = ChangeSubscription(owner_id)
        await subscription.start()
        async for event in subscription:
            ...
        subscription.cancel()

    A reader task owns the Broadcaster subscription and forwards parsed
    events into a queue, so cancelling a consumer never leaves the
    Broadcaster iterator half-read.
    """

    def __init__(self, owner_id: str, broadcast: Optional[Broadcast] = None):
        self.owner_id = owner_id
        self.channel = channel_for(owner_id)
        self._broadcast = broadcast
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._ready = asyncio.Event()
        self._reader: Optional["asyncio.Task[None]"] = None
        self._error: Optional[BaseException] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def start(self) -> "ChangeSubscription":
        """Subscribe and wait until events published from now on will be seen."""
        if self._reader is None:
            broadcast = self._broadcast or get_broadcast()
            self._reader = asyncio.create_task(self._read(broadcast), name=f"change-feed:{self.owner_id}")
            prometheus_metrics.track_subscriber(1)
        await self._ready.wait()
        if self._error is not None:
            raise PersistenceError("Change feed unavailable", operation="subscribe") from self._error
        return self

    async def _read(self, broadcast: Broadcast) -> None:
        try:
            async with broadcast.subscribe(channel=self.channel) as subscriber:
                self._ready.set()
                logger.info("[BROADCAST] Subscribed to %s", self.channel)
                async for message in subscriber:
                    try:
                        event = MeetingChangeEvent.model_validate_json(message.message)
                    except ValidationError as e:
                        logger.warning(f"[BROADCAST] Ignoring malformed change event on {self.channel}: {e}")
                        continue
                    await self._queue.put(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[BROADCAST] Reader error on {self.channel}: {e}")
            self._error = e
        finally:
            self._ready.set()
            self._queue.put_nowait(_DONE)

    def cancel(self) -> None:
        """Unsubscribe. Iteration ends after events already queued are drained."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._reader is not None:
            self._reader.cancel()
            prometheus_metrics.track_subscriber(-1)
        self._ready.set()
        self._queue.put_nowait(_DONE)

    async def wait_closed(self) -> None:
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)

    def __aiter__(self) -> "ChangeSubscription":
        return self

    async def __anext__(self) -> MeetingChangeEvent:
        item = await self._queue.get()
        if item is _DONE:
            # Keep the sentinel so every later call also stops
            self._queue.put_nowait(_DONE)
            if self._error is not None and not self._cancelled:
                raise PersistenceError("Change feed interrupted", operation="subscribe") from self._error
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "ChangeSubscription":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()
        await self.wait_closed()


def format_change_event(event: MeetingChangeEvent) -> Dict[str, str]:
    """SSE frame for a change event; the sequence doubles as Last-Event-ID."""
    return {
        "event": "meeting_change",
        "id": str(event.sequence),
        "data": event.to_message(),
    }


async def create_meeting_stream(
    owner_id: str,
    missed_events: Optional[Iterable[MeetingChangeEvent]] = None,
    broadcast: Optional[Broadcast] = None,
    heartbeat_interval: Optional[float] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    SSE stream of an owner's meeting changes.

    DB-free: missed events for Last-Event-ID catch-up are fetched by the
    caller before streaming starts.
    """
    interval = heartbeat_interval or settings.sse_heartbeat_interval

    for event in missed_events or ():
        yield format_change_event(event)

    yield {
        "event": "connected",
        "data": json.dumps(
            {
                "owner_id": owner_id,
                "status": "connected",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ),
    }

    subscription = ChangeSubscription(owner_id, broadcast=broadcast)
    try:
        await subscription.start()
        while True:
            try:
                # queue-backed, so a timeout never cancels a half-read Broadcaster message
                event = await asyncio.wait_for(subscription.__anext__(), timeout=interval)
            except asyncio.TimeoutError:
                logger.debug(f"[SSE] Sending heartbeat for {owner_id}")
                yield {
                    "event": "heartbeat",
                    "data": json.dumps(
                        {"type": "heartbeat", "timestamp": datetime.now(timezone.utc).isoformat()}
                    ),
                }
                continue
            except StopAsyncIteration:
                logger.info(f"[SSE] Subscription ended for {owner_id}")
                break
            yield format_change_event(event)
    except asyncio.CancelledError:
        logger.info(f"[SSE] Stream cancelled for {owner_id}")
        raise
    except PersistenceError as e:
        logger.error(f"[SSE] Change feed error for {owner_id}: {e.message}")
        yield {
            "event": "error",
            "data": json.dumps(
                {"error": "service_unavailable", "message": "Real-time service temporarily unavailable"}
            ),
        }
    finally:
        subscription.cancel()
        await subscription.wait_closed()
        logger.info(f"[SSE] {owner_id} unsubscribed from {subscription.channel}")
