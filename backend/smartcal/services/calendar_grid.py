# backend/smartcal/services/calendar_grid.py
"""
Calendar grid: one Monday-start week of hourly cells for a session.

The grid keeps no authoritative state. It shows the meetings last fetched
for its week plus any optimistic drafts still waiting for confirmation, and
reconciles with the change feed:

- a single loop consumes change events in order
- each event starts a refetch tagged with the event's sequence and the
  current view generation; a newer event cancels the refetch in flight
- a refetch result is applied only if its generation is current and its
  sequence is not older than the last applied one
- navigation bumps the generation, so results for the previous week are
  discarded even if they arrive late

After ``close()`` nothing touches grid state again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set, Tuple, Union

from ..core.config import settings
from ..core.constants import ALL_CALENDARS
from ..core.context import SessionContext
from ..core.enums import MeetingState
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import get_timezone, local_midnight, local_minute, now_utc, to_zone
from ..core.ulid_helper import generate_ulid
from ..schemas.meeting import MeetingChangeEvent, MeetingDraft, MeetingResponse, build_meeting_draft

logger = logging.getLogger(__name__)


class ChangeStream(Protocol):
    def __aiter__(self) -> Any: ...

    def cancel(self) -> None: ...


class MeetingSource(Protocol):
    """What the grid needs from the meeting repository boundary."""

    async def list(self, start_utc: datetime, end_utc: datetime) -> List[MeetingResponse]: ...

    async def create(self, draft: MeetingDraft) -> MeetingResponse: ...

    async def subscribe(self) -> ChangeStream: ...


@dataclass(frozen=True)
class CreateAction:
    """Open the new-meeting form seeded with a cell's date and hour."""

    day: date
    hour: int
    start: datetime
    kind: str = "create"


@dataclass(frozen=True)
class JoinAction:
    """Join a rendered meeting: the platform when virtual, the location otherwise."""

    meeting_id: str
    title: str
    is_virtual: bool
    target: Optional[str]
    kind: str = "join"


GridAction = Union[CreateAction, JoinAction]
CellKey = Tuple[date, int]


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


class CalendarGrid:
    def __init__(
        self,
        context: SessionContext,
        source: MeetingSource,
        *,
        anchor: Optional[date] = None,
        timezone: Optional[str] = None,
        start_hour: Optional[int] = None,
        end_hour: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.context = context
        self.source = source
        self.tz = get_timezone(timezone or context.timezone)
        self.start_hour = settings.calendar_start_hour if start_hour is None else start_hour
        self.end_hour = settings.calendar_end_hour if end_hour is None else end_hour
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("start_hour must be before end_hour within 0-24")
        self._today = today or (lambda: to_zone(now_utc(), self.tz).date())
        self.anchor = anchor or self._today()
        self.calendar_filter = ALL_CALENDARS

        self._confirmed: List[MeetingResponse] = []
        self._drafts: Dict[str, MeetingResponse] = {}
        self._generation = 0
        self._applied_sequence = 0
        self._latest_sequence = 0
        self._subscription: Optional[ChangeStream] = None
        self._loop_task: Optional["asyncio.Task[None]"] = None
        self._refetch_task: Optional["asyncio.Task[bool]"] = None
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._closed = False

    # Lifecycle

    async def start(self) -> "CalendarGrid":
        """Subscribe to the change feed and load the current week."""
        self._ensure_open()
        subscription = await self.source.subscribe()
        self._subscription = subscription
        self._loop_task = self._spawn(self._reconcile(subscription), "grid-reconcile")
        await self.refresh()
        return self

    async def close(self) -> None:
        """Cancel the subscription and every pending task."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.cancel()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("[GRID] Closed grid for %s (%d tasks cancelled)", self.context.principal_id, len(pending))

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "CalendarGrid":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Week span

    @property
    def week_start(self) -> date:
        return monday_of(self.anchor)

    @property
    def days(self) -> List[date]:
        return [self.week_start + timedelta(days=offset) for offset in range(7)]

    @property
    def hours(self) -> List[int]:
        return list(range(self.start_hour, self.end_hour))

    def span_utc(self) -> Tuple[datetime, datetime]:
        start = self.week_start
        return local_midnight(start, self.tz), local_midnight(start + timedelta(days=7), self.tz)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    # Navigation

    async def next_week(self) -> None:
        await self._navigate(self.anchor + timedelta(days=7))

    async def previous_week(self) -> None:
        await self._navigate(self.anchor - timedelta(days=7))

    async def go_to_today(self) -> None:
        await self._navigate(self._today())

    async def _navigate(self, anchor: date) -> None:
        self._ensure_open()
        self.anchor = anchor
        self._generation += 1
        self._confirmed = []
        await self.refresh()

    async def refresh(self) -> bool:
        """Refetch the current week; True when the result was applied."""
        self._ensure_open()
        task = self._start_refetch(max(self._applied_sequence, self._latest_sequence))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # Superseded by a newer refetch or the grid was closed
                return False
            raise

    # Filtering and placement

    def set_calendar_filter(self, calendar: str) -> None:
        calendar = (calendar or ALL_CALENDARS).strip().lower()
        if calendar != ALL_CALENDARS and calendar not in settings.calendar_tags:
            raise ValidationException(f"Unknown calendar: {calendar}")
        self.calendar_filter = calendar

    @property
    def meetings(self) -> List[MeetingResponse]:
        """Confirmed meetings plus unconfirmed drafts, filtered and ordered by start."""
        confirmed_ids = {meeting.id for meeting in self._confirmed}
        merged = list(self._confirmed) + [
            draft for draft_id, draft in self._drafts.items() if draft_id not in confirmed_ids
        ]
        if self.calendar_filter != ALL_CALENDARS:
            merged = [m for m in merged if m.calendar_type == self.calendar_filter]
        return sorted(merged, key=lambda m: (m.start_time, m.id))

    def cell_of(self, meeting: MeetingResponse) -> CellKey:
        local = to_zone(meeting.start_time, self.tz)
        return local.date(), local.hour

    def cells(self) -> Dict[CellKey, List[MeetingResponse]]:
        """
        Meetings keyed by (local date, start hour), stacked in start order.

        Meetings starting outside the displayed hours or week are omitted
        here; they still count as busy for slot computation.
        """
        days = set(self.days)
        placed: Dict[CellKey, List[MeetingResponse]] = {}
        for meeting in self.meetings:
            key = self.cell_of(meeting)
            if key[0] in days and self.start_hour <= key[1] < self.end_hour:
                placed.setdefault(key, []).append(meeting)
        return placed

    def meetings_at(self, day: date, hour: int) -> List[MeetingResponse]:
        return self.cells().get((day, hour), [])

    def click(self, day: date, hour: int, meeting_id: Optional[str] = None) -> GridAction:
        """
        Resolve a click on a cell or on a meeting rendered inside it.

        A click on a meeting yields only its join action, never the cell's
        create action.
        """
        if meeting_id is not None:
            for meeting in self.meetings_at(day, hour):
                if meeting.id == meeting_id:
                    return JoinAction(
                        meeting_id=meeting.id,
                        title=meeting.title,
                        is_virtual=meeting.is_virtual,
                        target=meeting.join_target,
                    )
            raise NotFoundException(f"Meeting {meeting_id} is not shown at {day} {hour:02d}:00")
        if day not in self.days or hour not in self.hours:
            raise ValidationException(f"Cell {day} {hour:02d}:00 is not on the current grid")
        return CreateAction(day=day, hour=hour, start=local_minute(day, hour * 60, self.tz))

    # Optimistic creation

    async def create_meeting(self, draft: Union[MeetingDraft, Mapping[str, Any]]) -> MeetingResponse:
        """
        Show the draft immediately, then replace it with the confirmed record.

        On failure the draft is removed and the error re-raised; nothing is
        retried.
        """
        self._ensure_open()
        if not isinstance(draft, MeetingDraft):
            draft = build_meeting_draft(draft)
        if draft.id is None:
            draft = draft.model_copy(update={"id": generate_ulid()})

        self._drafts[draft.id] = _proposed(draft, self.context.principal_id)
        try:
            record = await self.source.create(draft)
        except BaseException:
            if not self._closed:
                self._drafts.pop(draft.id, None)
            raise

        if self._closed:
            return record
        self._drafts.pop(draft.id, None)
        if all(meeting.id != record.id for meeting in self._confirmed) and self._in_view(record):
            self._confirmed.append(record)
        return record

    # Reconciliation

    async def _reconcile(self, subscription: ChangeStream) -> None:
        try:
            async for event in subscription:
                if self._closed:
                    break
                self._handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[GRID] Change feed stopped for {self.context.principal_id}: {e}")

    def _handle_event(self, event: MeetingChangeEvent) -> None:
        if event.sequence <= self._latest_sequence:
            logger.debug("[GRID] Ignoring replayed change #%s", event.sequence)
            return
        self._latest_sequence = event.sequence
        self._start_refetch(event.sequence)

    def _start_refetch(self, sequence: int) -> "asyncio.Task[bool]":
        if self._refetch_task is not None and not self._refetch_task.done():
            self._refetch_task.cancel()
        self._refetch_task = self._spawn(
            self._refetch(sequence, self._generation), f"grid-refetch-{sequence}"
        )
        return self._refetch_task

    async def _refetch(self, sequence: int, generation: int) -> bool:
        start, end = self.span_utc()
        records = await self.source.list(start, end)
        if self._closed:
            return False
        if generation != self._generation or sequence < self._applied_sequence:
            logger.debug(
                "[GRID] Discarding stale refetch #%s (generation %s, current %s)",
                sequence,
                generation,
                self._generation,
            )
            return False
        self._confirmed = sorted(records, key=lambda m: (m.start_time, m.id))
        self._applied_sequence = sequence
        confirmed_ids = {meeting.id for meeting in self._confirmed}
        for draft_id in [draft_id for draft_id in self._drafts if draft_id in confirmed_ids]:
            del self._drafts[draft_id]
        return True

    # Helpers

    def _in_view(self, meeting: MeetingResponse) -> bool:
        start, end = self.span_utc()
        return meeting.start_time < end and meeting.end_time > start

    def _spawn(self, coro, name: str) -> "asyncio.Task[Any]":
        task = self.context.spawn(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_failure)
        return task

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Calendar grid is closed")


def _log_failure(task: "asyncio.Task[Any]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"[GRID] Task {task.get_name()} failed: {task.exception()}")


def _proposed(draft: MeetingDraft, owner_id: str) -> MeetingResponse:
    return MeetingResponse(
        id=draft.id,
        title=draft.title,
        start_time=draft.start_time,
        end_time=draft.end_time,
        calendar_type=draft.calendar_type,
        attendees=[str(address) for address in draft.attendees],
        is_virtual=draft.is_virtual,
        location=None if draft.is_virtual else draft.location,
        platform=draft.platform if draft.is_virtual else None,
        description=draft.description,
        created_by=owner_id,
        created_at=now_utc(),
        state=MeetingState.PROPOSED,
        join_target=draft.platform if draft.is_virtual else draft.location,
    )
