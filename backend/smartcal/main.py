# backend/smartcal/main.py
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from .core.broadcast import connect_broadcast, disconnect_broadcast
from .core.config import is_running_tests, settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import init_db
from .errors import register_error_handlers
from .routes.v1 import (
    availability as availability_v1,
    booking_pages as booking_pages_v1,
    health as health_v1,
    meetings as meetings_v1,
    public as public_v1,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    init_db()
    await connect_broadcast()

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    await disconnect_broadcast()


def _unique_operation_id(route: APIRoute) -> str:
    method = sorted(route.methods or {"get"})[0].lower()
    return f"{route.name}_{method}"


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(meetings_v1.router, prefix="/meetings")
api_v1.include_router(booking_pages_v1.router, prefix="/booking-pages")
api_v1.include_router(public_v1.router, prefix="/public")

app.include_router(api_v1)
app.include_router(health_v1.router)
