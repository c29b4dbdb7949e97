# backend/smartcal/errors.py
"""
Application-level error handlers.

Routes convert domain errors themselves; these handlers catch the ones
raised from dependencies (identity headers, for example) and anything that
escapes a route, and render them in the same ``detail`` envelope.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc = exc.to_http_exception()
        if http_exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=http_exc.status_code,
            content=jsonable_encoder({"detail": http_exc.detail}),
        )
