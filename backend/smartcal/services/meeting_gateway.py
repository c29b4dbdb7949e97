# backend/smartcal/services/meeting_gateway.py
"""
Async boundary over the synchronous meeting service.

Each call opens its own database session and runs the SQLAlchemy work in a
worker thread with ``asyncio.to_thread``. Change events are published only
after the owning transaction has committed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from typing import Any, Callable, List, Mapping, Optional, TypeVar, Union

from broadcaster import Broadcast
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.context import SessionContext
from ..core.exceptions import DomainException, PersistenceError, RepositoryException
from ..database import SessionLocal
from ..schemas.meeting import MeetingDraft, MeetingResponse, build_meeting_draft
from .change_feed import ChangeSubscription, publish_meeting_change
from .meeting_service import MeetingService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MeetingGateway:
    """
    list / create / cancel / subscribe for the principal in ``context``.

    Raises:
        MeetingValidationError: invalid draft (before any I/O)
        PersistenceError: the store could not be read or written
    """

    def __init__(
        self,
        context: SessionContext,
        session_factory: Union[sessionmaker, Callable[[], Session]] = SessionLocal,
        broadcast: Optional[Broadcast] = None,
    ):
        self.context = context
        self._session_factory = session_factory
        self._broadcast = broadcast

    @property
    def owner_id(self) -> str:
        return self.context.principal_id

    async def list(
        self,
        start_utc: datetime,
        end_utc: datetime,
        *,
        calendar_type: Optional[str] = None,
    ) -> List[MeetingResponse]:
        """Meetings intersecting [start_utc, end_utc), ordered by start."""

        def work(service: MeetingService) -> List[MeetingResponse]:
            meetings = service.list_meetings(
                self.owner_id, start_utc, end_utc, calendar_type=calendar_type
            )
            return [MeetingResponse.from_meeting(meeting) for meeting in meetings]

        return await self._run("list", work)

    async def create(
        self,
        draft: Union[MeetingDraft, Mapping[str, Any]],
        *,
        require_free_slot: bool = False,
    ) -> MeetingResponse:
        if not isinstance(draft, MeetingDraft):
            draft = build_meeting_draft(draft)

        def work(service: MeetingService):
            mutation = service.create_meeting(self.owner_id, draft, require_free_slot=require_free_slot)
            return MeetingResponse.from_meeting(mutation.meeting), mutation.event

        record, event = await self._run("create", work)
        await publish_meeting_change(self.owner_id, event, self._broadcast)
        return record

    async def cancel(self, meeting_id: str) -> MeetingResponse:
        def work(service: MeetingService):
            mutation = service.cancel_meeting(self.owner_id, meeting_id)
            return MeetingResponse.from_meeting(mutation.meeting), mutation.event

        record, event = await self._run("cancel", work)
        await publish_meeting_change(self.owner_id, event, self._broadcast)
        return record

    async def subscribe(self) -> ChangeSubscription:
        """Start a change subscription; ``cancel()`` on the result unsubscribes."""
        subscription = ChangeSubscription(self.owner_id, broadcast=self._broadcast)
        return await subscription.start()

    async def _run(self, operation: str, work: Callable[[MeetingService], T]) -> T:
        if self.context.closed:
            raise RuntimeError("Session context is closed")
        return await asyncio.to_thread(self._call, operation, work)

    def _call(self, operation: str, work: Callable[[MeetingService], T]) -> T:
        db = self._session_factory()
        try:
            return work(MeetingService(db))
        except DomainException:
            raise
        except (SQLAlchemyError, RepositoryException) as e:
            logger.error(f"Meeting {operation} failed for {self.owner_id}: {e}")
            raise PersistenceError(f"Could not {operation} meetings", operation=operation) from e
        finally:
            db.close()
