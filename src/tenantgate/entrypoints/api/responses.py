"""JSON response envelopes."""

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorBody(BaseModel):
    """``error`` member of a failure envelope."""

    code: str
    message: str
    details: list[str] = []


class ApiResponse(BaseModel):
    """Success envelope."""

    success: bool = True
    data: Any = None
    request_id: str | None = None


class ErrorResponse(BaseModel):
    """Failure envelope."""

    success: bool = False
    error: ErrorBody
    request_id: str | None = None


def request_id_of(request: Request) -> str | None:
    """Correlation id assigned by the request gate, if it ran."""
    return getattr(request.state, "request_id", None)


def ok(request: Request, data: Any = None, status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` in the success envelope."""
    body = ApiResponse(data=jsonable_encoder(data), request_id=request_id_of(request))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the failure envelope."""
    body = ErrorResponse(
        error=ErrorBody(code=code, message=message, details=details or []),
        request_id=request_id_of(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)
