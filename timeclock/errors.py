from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.extra = dict(extra or {})


class JustificationRequiredError(ApiError):
    """Late interactive ClockIn submitted without a justification.

    Recoverable: the client collects a justification and resubmits the same
    punch.
    """

    def __init__(self, lateness_minutes: int):
        super().__init__(
            status_code=422,
            code="JUSTIFICATION_REQUIRED",
            message="Justification required.",
            extra={
                "requires_justification": True,
                "lateness_minutes": lateness_minutes,
            },
        )
        self.lateness_minutes = lateness_minutes


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    if extra:
        payload.update(extra)
    return JSONResponse(status_code=status_code, content=payload)
