# backend/smartcal/core/broadcast.py
"""
Shared broadcast manager for the meeting change feed.

One Broadcaster instance per worker process. With the default memory://
backend every subscriber lives in this process; pointing BROADCAST_URL at
Redis fans change events out across workers through a single PubSub
connection per worker.
"""

import logging
from typing import Optional

from broadcaster import Broadcast

from .config import settings

logger = logging.getLogger(__name__)

_broadcast: Optional[Broadcast] = None


def get_broadcast() -> Broadcast:
    """
    Get the shared broadcast instance.

    Raises:
        RuntimeError: If broadcast is not initialized (call connect_broadcast first)
    """
    if _broadcast is None:
        raise RuntimeError("Broadcast not initialized. Call connect_broadcast() during startup.")
    return _broadcast


def is_broadcast_initialized() -> bool:
    return _broadcast is not None


async def connect_broadcast(url: Optional[str] = None) -> Broadcast:
    """
    Connect the shared broadcaster.

    Call during application startup (in lifespan manager).
    """
    global _broadcast

    if _broadcast is not None:
        return _broadcast

    broadcast_url = url or settings.broadcast_url
    _broadcast = Broadcast(broadcast_url)
    await _broadcast.connect()
    logger.info("[BROADCAST] Connected change feed backend: %s", broadcast_url)
    return _broadcast


async def disconnect_broadcast() -> None:
    """
    Disconnect the shared broadcaster.

    Call during application shutdown.
    """
    global _broadcast

    if _broadcast is not None:
        await _broadcast.disconnect()
        _broadcast = None
        logger.info("[BROADCAST] Disconnected")
