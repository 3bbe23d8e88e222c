"""
api/errors.py -- Render domain errors as the ErrorResponse envelope.

Used by the GatehouseError exception handler in api/main.py and by middleware
that has to short-circuit before routing (CSRF rejection, session store
outage). Exceptions raised inside @app.middleware functions never reach
FastAPI's exception handlers, so middleware builds the response itself.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import GatehouseError


def error_response(exc: GatehouseError) -> JSONResponse:
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(exclude_none=True),
    )
    response.headers["Cache-Control"] = "no-store"
    return response
