# backend/smartcal/routes/v1/meetings.py
"""
Meeting routes - API v1

Endpoints:
    GET    /                    - List by time window, or search with scope/text/calendar
    POST   /                    - Create a meeting
    GET    /overview            - Dashboard numbers
    GET    /stream              - SSE change feed (Last-Event-ID catch-up)
    GET    /{meeting_id}        - One meeting
    POST   /{meeting_id}/cancel - Cancel a meeting
    DELETE /{meeting_id}        - Delete a meeting

Change events are published after the service call returns, which is after
its transaction has committed.
"""

import asyncio
from datetime import datetime, timezone
import logging
from typing import AsyncGenerator, Dict, List, Literal, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status
from sse_starlette.sse import EventSourceResponse

from ...api.dependencies import (
    get_current_user_id,
    get_meeting_service,
    get_scheduling_service,
    get_session_context,
)
from ...core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ...core.context import SessionContext
from ...core.exceptions import DomainException, ValidationException
from ...schemas.meeting import (
    MeetingChangeEvent,
    MeetingListResponse,
    MeetingOverviewResponse,
    MeetingResponse,
    build_meeting_draft,
)
from ...services.change_feed import create_meeting_stream, publish_meeting_change
from ...services.meeting_service import MeetingService
from ...services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

# V1 router - mounted at /api/v1/meetings
router = APIRouter(tags=["meetings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=MeetingListResponse)
async def list_meetings(
    start: Optional[datetime] = Query(None, description="Window start (inclusive)"),
    end: Optional[datetime] = Query(None, description="Window end (exclusive)"),
    scope: Literal["upcoming", "past", "all"] = Query("all"),
    q: Optional[str] = Query(None, max_length=200, description="Search title and description"),
    calendar_type: Optional[str] = Query(None, description="Calendar tag or 'all'"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    offset: int = Query(0, ge=0),
    context: SessionContext = Depends(get_session_context),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingListResponse:
    """
    With ``start`` and ``end``: meetings intersecting the window, by start.
    Otherwise: the meetings list page, split by ``scope`` and filtered by
    ``q`` and ``calendar_type``.
    """
    try:
        if start is not None or end is not None:
            if start is None or end is None:
                raise ValidationException("start and end must be given together")
            if end <= start:
                raise ValidationException("end must be after start")
            meetings = await asyncio.to_thread(
                service.list_meetings,
                context.principal_id,
                start,
                end,
                calendar_type=calendar_type,
            )
        else:
            meetings = await asyncio.to_thread(
                service.search_meetings,
                context.principal_id,
                text=q,
                calendar_type=calendar_type,
                scope=scope,
                limit=limit,
                offset=offset,
            )
    except DomainException as e:
        handle_domain_exception(e)

    now = datetime.now(timezone.utc)
    records = [MeetingResponse.from_meeting(meeting, now) for meeting in meetings]
    return MeetingListResponse(meetings=records, total=len(records), scope=scope)


@router.post("", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    payload: Dict = Body(..., description="Meeting form data"),
    context: SessionContext = Depends(get_session_context),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    """
    Create a meeting for the caller.

    The body is validated field by field; failures come back as 400 with
    one entry per field under ``detail.details.errors``.
    """
    try:
        draft = build_meeting_draft(payload)
        mutation = await asyncio.to_thread(service.create_meeting, context.principal_id, draft)
    except DomainException as e:
        handle_domain_exception(e)

    await publish_meeting_change(context.principal_id, mutation.event)
    return MeetingResponse.from_meeting(mutation.meeting)


@router.get("/overview", response_model=MeetingOverviewResponse)
async def get_overview(
    context: SessionContext = Depends(get_session_context),
    service: SchedulingService = Depends(get_scheduling_service),
) -> MeetingOverviewResponse:
    try:
        data = await asyncio.to_thread(service.overview, context.principal_id)
    except DomainException as e:
        handle_domain_exception(e)

    next_meeting = data.pop("next_meeting")
    return MeetingOverviewResponse(
        **data,
        next_meeting=MeetingResponse.from_meeting(next_meeting) if next_meeting is not None else None,
    )


@router.get(
    "/stream",
    response_class=EventSourceResponse,
    responses={
        200: {
            "description": "SSE stream of meeting changes",
            "content": {"text/event-stream": {"schema": {"type": "string"}}},
        }
    },
)
async def stream_meeting_changes(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: MeetingService = Depends(get_meeting_service),
) -> EventSourceResponse:
    """
    Server-Sent Events stream of the caller's meeting changes.

    Every event carries its change sequence as the SSE id. On reconnect the
    browser sends Last-Event-ID and the changes recorded after it are
    replayed before live events.
    """
    last_event_id = request.headers.get("Last-Event-ID")
    missed: List[MeetingChangeEvent] = []
    if last_event_id:
        logger.info(f"[SSE] {user_id} reconnecting with Last-Event-ID {last_event_id}")
        try:
            sequence = int(last_event_id)
        except ValueError:
            logger.warning(f"[SSE] Ignoring malformed Last-Event-ID from {user_id}: {last_event_id}")
        else:
            missed = await asyncio.to_thread(service.changes_since, user_id, sequence)

    async def event_generator() -> AsyncGenerator[Dict[str, str], None]:
        async for event in create_meeting_stream(user_id, missed_events=missed):
            yield event

    return EventSourceResponse(
        event_generator(),
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
        media_type="text/event-stream",
    )


# ============================================================================
# Routes with a meeting id
# ============================================================================


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    context: SessionContext = Depends(get_session_context),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    try:
        meeting = await asyncio.to_thread(service.get_meeting, context.principal_id, meeting_id)
    except DomainException as e:
        handle_domain_exception(e)
    return MeetingResponse.from_meeting(meeting)


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: str,
    context: SessionContext = Depends(get_session_context),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    try:
        mutation = await asyncio.to_thread(service.cancel_meeting, context.principal_id, meeting_id)
    except DomainException as e:
        handle_domain_exception(e)

    await publish_meeting_change(context.principal_id, mutation.event)
    return MeetingResponse.from_meeting(mutation.meeting)


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meeting(
    meeting_id: str,
    context: SessionContext = Depends(get_session_context),
    service: MeetingService = Depends(get_meeting_service),
) -> Response:
    try:
        event = await asyncio.to_thread(service.delete_meeting, context.principal_id, meeting_id)
    except DomainException as e:
        handle_domain_exception(e)

    await publish_meeting_change(context.principal_id, event)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
