# backend/smartcal/api/dependencies/auth.py
"""
Caller identity.

Authentication happens upstream; the gateway forwards the verified principal
in request headers and this module turns them into a SessionContext. No
other code reads identity from the request.
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Header

from ...core.context import SessionContext
from ...core.enums import RoleName
from ...core.exceptions import UnauthorizedException, ValidationException
from ...core.timezone_utils import is_valid_timezone

logger = logging.getLogger(__name__)


def build_session_context(
    user_id: Optional[str],
    role: Optional[str] = None,
    timezone: Optional[str] = None,
) -> SessionContext:
    """
    Raises:
        UnauthorizedException: no principal id
        ValidationException: unknown role
    """
    principal = (user_id or "").strip()
    if not principal:
        raise UnauthorizedException("Missing authenticated principal", code="NOT_AUTHENTICATED")
    try:
        role_name = RoleName((role or RoleName.MEMBER.value).strip().lower())
    except ValueError as e:
        raise ValidationException(f"Unknown role: {role}", code="INVALID_ROLE") from e
    if timezone is not None and not is_valid_timezone(timezone):
        logger.warning(f"Ignoring invalid X-User-Timezone header for {principal}: {timezone}")
        timezone = None
    return SessionContext(principal_id=principal, role=role_name, timezone=timezone)


async def get_session_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_user_timezone: Optional[str] = Header(None, alias="X-User-Timezone"),
) -> AsyncGenerator[SessionContext, None]:
    """Request-scoped context; tasks spawned through it are cancelled on teardown."""
    context = build_session_context(x_user_id, x_user_role, x_user_timezone)
    try:
        yield context
    finally:
        await context.aclose()


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    return build_session_context(x_user_id).principal_id
