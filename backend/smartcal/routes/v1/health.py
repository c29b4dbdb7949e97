# backend/smartcal/routes/v1/health.py
"""
Health check and metrics endpoints for monitoring and load balancer checks.

Both are public: /metrics follows the usual Prometheus convention of an
unauthenticated scrape target.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy import text

from ... import __version__
from ...core.broadcast import is_broadcast_initialized
from ...core.config import settings
from ...core.constants import BRAND_NAME
from ...database import engine
from ...monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    service: str
    version: str
    environment: str
    database: str
    change_feed: str
    timestamp: str


def _database_status() -> str:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.warning(f"Health check database query failed: {e}")
        return "unavailable"


@router.get("/health", response_model=HealthResponse)
def health_check(response: Response) -> HealthResponse:
    """Liveness plus a cheap database query; 503 when the database is down."""
    database = _database_status()
    if database != "ok":
        response.status_code = 503
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        service=f"{BRAND_NAME.lower()}-api",
        version=__version__,
        environment=settings.environment,
        database=database,
        change_feed="connected" if is_broadcast_initialized() else "disconnected",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus exposition of the private registry."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
        headers={"Cache-Control": "no-cache"},
    )
