from __future__ import annotations

import json
import logging
from typing import Any
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from timeclock.errors import ApiError
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.geocoding")


def _fetch_json(*, url: str, params: dict[str, Any], timeout_seconds: float, user_agent: str) -> Any:
    request = urllib_request.Request(
        url=f"{url}?{urllib_parse.urlencode(params)}",
        method="GET",
        headers={"User-Agent": user_agent, "Accept": "application/json"},
    )
    with urllib_request.urlopen(request, timeout=max(1.0, timeout_seconds)) as response:
        return json.loads(response.read().decode("utf-8"))


def _address_not_found(full_address: str) -> ApiError:
    return ApiError(
        status_code=400,
        code="ADDRESS_NOT_FOUND",
        message=f'Could not find coordinates for the address: "{full_address}".',
    )


def geocode_address(full_address: str) -> tuple[float, float]:
    """Resolve an address to ``(lat, lon)`` through a Nominatim search endpoint."""
    settings = get_settings()
    if not settings.geocoding_enabled:
        raise ApiError(
            status_code=400,
            code="GEOCODING_DISABLED",
            message=f'Coordinates are required for "{full_address}" because geocoding is disabled.',
        )

    try:
        results = _fetch_json(
            url=settings.geocoding_url,
            params={"q": full_address, "format": "json", "limit": 1},
            timeout_seconds=settings.geocoding_timeout_seconds,
            user_agent=settings.geocoding_user_agent,
        )
    except (urllib_error.URLError, TimeoutError, ValueError) as exc:
        logger.warning(
            "geocoding_request_failed",
            extra={"address": full_address, "error": exc.__class__.__name__},
        )
        raise ApiError(
            status_code=502,
            code="GEOCODING_UNAVAILABLE",
            message="Address lookup service is unavailable. Try again or send coordinates.",
        ) from exc

    if not isinstance(results, list) or not results:
        raise _address_not_found(full_address)

    try:
        lat = float(results[0]["lat"])
        lon = float(results[0]["lon"])
    except (KeyError, TypeError, ValueError) as exc:
        raise _address_not_found(full_address) from exc

    logger.info("geocoding_resolved", extra={"address": full_address, "lat": lat, "lon": lon})
    return lat, lon
