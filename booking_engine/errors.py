"""
Exception handlers for the HTTP API.

Domain exceptions become JSON bodies of the form
``{"message", "code", "details"}`` with the exception's status code.
Request body validation failures are reported as 400 with one entry per
offending field, matching ``ValidationException.for_fields``.
"""

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append(
            {
                "field": ".".join(location) or "body",
                "message": str(error.get("msg", "Invalid value")),
            }
        )
    return errors


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc: HTTPException = exc.to_http_exception()
        if http_exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(
            jsonable_encoder(http_exc.detail),
            status_code=http_exc.status_code,
            headers=http_exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = _field_errors(exc)
        content: Dict[str, Any] = {
            "message": errors[0]["message"] if len(errors) == 1 else "Invalid request data",
            "code": "VALIDATION_ERROR",
            "details": {"errors": errors},
        }
        return JSONResponse(content, status_code=400)
