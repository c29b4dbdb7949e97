# backend/tests/unit/services/test_change_feed.py
from __future__ import annotations

import asyncio
import json

import pytest

from smartcal.core.enums import ChangeOperation
from smartcal.schemas.meeting import MeetingChangeEvent
from smartcal.services.change_feed import (
    ChangeSubscription,
    channel_for,
    create_meeting_stream,
    format_change_event,
    publish_meeting_change,
)

OWNER = "owner-feed"


def event(sequence: int, operation: ChangeOperation = ChangeOperation.CREATED) -> MeetingChangeEvent:
    return MeetingChangeEvent(operation=operation, meeting_id=f"m{sequence}", sequence=sequence)


class TestChangeSubscription:
    async def test_receives_events_in_publish_order(self, broadcast):
        async with ChangeSubscription(OWNER, broadcast=broadcast) as subscription:
            for sequence in (1, 2, 3):
                await publish_meeting_change(OWNER, event(sequence), broadcast)

            received = [await asyncio.wait_for(subscription.__anext__(), 1) for _ in range(3)]

        assert [e.sequence for e in received] == [1, 2, 3]

    async def test_only_owner_channel(self, broadcast):
        async with ChangeSubscription(OWNER, broadcast=broadcast) as subscription:
            await publish_meeting_change("someone-else", event(1), broadcast)
            await publish_meeting_change(OWNER, event(2), broadcast)

            received = await asyncio.wait_for(subscription.__anext__(), 1)

        assert received.sequence == 2

    async def test_cancel_ends_iteration(self, broadcast):
        subscription = await ChangeSubscription(OWNER, broadcast=broadcast).start()

        subscription.cancel()
        collected = [item async for item in subscription]
        await subscription.wait_closed()

        assert collected == []
        assert subscription.cancelled

    async def test_malformed_messages_are_skipped(self, broadcast):
        async with ChangeSubscription(OWNER, broadcast=broadcast) as subscription:
            await broadcast.publish(channel=channel_for(OWNER), message="{not json")
            await publish_meeting_change(OWNER, event(5), broadcast)

            received = await asyncio.wait_for(subscription.__anext__(), 1)

        assert received.sequence == 5


async def test_publish_without_broadcast_does_not_raise():
    await publish_meeting_change(OWNER, event(1))


def test_format_change_event_uses_sequence_as_id():
    frame = format_change_event(event(42, ChangeOperation.DELETED))

    assert frame["event"] == "meeting_change"
    assert frame["id"] == "42"
    assert json.loads(frame["data"]) == {"operation": "deleted", "meeting_id": "m42", "sequence": 42}


class TestMeetingStream:
    async def test_replays_missed_then_connects_then_streams(self, broadcast):
        stream = create_meeting_stream(
            OWNER, missed_events=[event(1), event(2)], broadcast=broadcast, heartbeat_interval=5
        )
        try:
            first = await stream.__anext__()
            second = await stream.__anext__()
            connected = await stream.__anext__()
            pending = asyncio.ensure_future(stream.__anext__())
            # let the stream subscribe before publishing
            await asyncio.sleep(0.05)
            await publish_meeting_change(OWNER, event(3), broadcast)
            live = await asyncio.wait_for(pending, 1)
        finally:
            await stream.aclose()

        assert [first["id"], second["id"]] == ["1", "2"]
        assert connected["event"] == "connected"
        assert live["id"] == "3"

    async def test_heartbeat_when_idle(self, broadcast):
        stream = create_meeting_stream(OWNER, broadcast=broadcast, heartbeat_interval=0.05)
        try:
            connected = await stream.__anext__()
            heartbeat = await asyncio.wait_for(stream.__anext__(), 1)
        finally:
            await stream.aclose()

        assert connected["event"] == "connected"
        assert heartbeat["event"] == "heartbeat"

    async def test_unavailable_feed_reports_error_event(self):
        class BrokenBroadcast:
            def subscribe(self, channel):
                raise ConnectionError("redis down")

        stream = create_meeting_stream(OWNER, broadcast=BrokenBroadcast(), heartbeat_interval=1)
        try:
            await stream.__anext__()
            error = await asyncio.wait_for(stream.__anext__(), 1)
        finally:
            await stream.aclose()

        assert error["event"] == "error"
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
