"""Render AppError subclasses as {"detail": message} with their mapped status code."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import AppError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            # Internal detail goes to the log only; the client sees the generic message.
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc.message,
                exc_info=exc.cause or exc,
            )
        else:
            logger.info(
                "%s %s rejected status=%s: %s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.client_message},
            headers=headers,
        )
