"""Explicit session context for authenticated callers.

Identity and roles come from the upstream identity provider; this object is
the only place the rest of the backend reads them from. A context also owns
the asyncio tasks started on behalf of its session so teardown can cancel
them in one place.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Coroutine, Optional, Set, TypeVar

from .enums import RoleName

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SessionContext:
    """Principal id, role and preferred zone for one session."""

    principal_id: str
    role: RoleName = RoleName.MEMBER
    timezone: Optional[str] = None
    _tasks: Set["asyncio.Task[Any]"] = field(default_factory=set, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    @property
    def closed(self) -> bool:
        return self._closed

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: Optional[str] = None) -> "asyncio.Task[T]":
        """Start a task whose lifetime is bounded by this context."""
        if self._closed:
            coro.close()
            raise RuntimeError("Session context is closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def aclose(self) -> None:
        """Cancel every task started through this context."""
        if self._closed:
            return
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("Session context for %s closed (%d tasks cancelled)", self.principal_id, len(pending))

    async def __aenter__(self) -> "SessionContext":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
