"""
Exception handlers mapping the connector error taxonomy onto responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from connectors.errors import ConnectorError, RateLimitError, ValidationError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConnectorError)
    async def connector_error_handler(request: Request, exc: ConnectorError) -> JSONResponse:
        body = {"error": exc.error_code, "detail": exc.message}
        if isinstance(exc, ValidationError) and exc.fields:
            body["fields"] = exc.fields
        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.error_code)
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)
