from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from timeclock.client.settings import ClientSettings

logger = logging.getLogger("timeclock.client.transport")

AUTH_ERROR_CODES = frozenset({"MISSING_TOKEN", "INVALID_TOKEN"})


class SubmitKind(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    JUSTIFICATION_REQUIRED = "JUSTIFICATION_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    REJECTED = "REJECTED"
    TRANSIENT = "TRANSIENT"


@dataclass(frozen=True)
class SubmitResult:
    status_code: int | None
    body: dict[str, Any] = field(default_factory=dict)
    transport_error: str | None = None

    @property
    def error_code(self) -> str | None:
        error = self.body.get("error")
        if isinstance(error, dict) and error.get("code"):
            return str(error["code"])
        return None

    @property
    def message(self) -> str:
        error = self.body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if self.body.get("success"):
            return str(self.body["success"])
        if self.transport_error:
            return f"Server unreachable ({self.transport_error})."
        return f"Request failed with status {self.status_code}."

    @property
    def kind(self) -> SubmitKind:
        code = self.status_code
        if code is None or code >= 500:
            return SubmitKind.TRANSIENT
        if 200 <= code < 300:
            return SubmitKind.ACCEPTED
        if code == 422 and self.body.get("requires_justification") is True:
            return SubmitKind.JUSTIFICATION_REQUIRED
        if code == 429:
            return SubmitKind.RATE_LIMITED
        if code == 401 or self.error_code in AUTH_ERROR_CODES:
            return SubmitKind.AUTH_REQUIRED
        if 400 <= code < 500:
            return SubmitKind.REJECTED
        return SubmitKind.TRANSIENT


class PunchTransport:
    """Posts punches to the API; connectivity failures become results, never exceptions."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> PunchTransport:
        return cls(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds)

    async def submit(self, payload: dict[str, Any], *, token: str) -> SubmitResult:
        try:
            response = await self._client.post(
                "/api/clock-in",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as exc:
            logger.warning(
                "punch_submit_unreachable",
                extra={"error": exc.__class__.__name__, "punch_type": payload.get("type")},
            )
            return SubmitResult(status_code=None, transport_error=exc.__class__.__name__)

        try:
            body = response.json()
        except ValueError:
            body = {}
        return SubmitResult(
            status_code=response.status_code,
            body=body if isinstance(body, dict) else {},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
