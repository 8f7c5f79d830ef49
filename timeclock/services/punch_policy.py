"""Decides whether a punch is accepted and under which location label.

The rules form an explicit priority chain. Each rule either does not apply to
the submission, or fully accepts it (resolved location name plus the
coordinate to store) or fully rejects it with a user-facing reason. The first
applicable rule wins; there is no soft acceptance.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from math import isinf
from typing import Protocol

from timeclock.models import EXTERNAL_PERMISSION, KIOSK_PERMISSION
from timeclock.security import verify_kiosk_token
from timeclock.services.geo import distance_m

EXTERNAL_LOCATION_NAME = "External"


class LocationLike(Protocol):
    name: str
    lat: float | None
    lon: float | None


class KioskLike(Protocol):
    name: str
    company_id: int
    token_hash: str
    is_active: bool


@dataclass(frozen=True)
class Accept:
    location_name: str
    lat: float | None = None
    lon: float | None = None
    rule: str = ""
    distance_m: float | None = None


@dataclass(frozen=True)
class Reject:
    status_code: int
    code: str
    message: str
    rule: str = ""
    closest_distance_m: float | None = None


Decision = Accept | Reject


@dataclass(frozen=True)
class PunchContext:
    allowed_locations: Sequence[str]
    company_id: int | None
    lat: float | None = None
    lon: float | None = None
    kiosk_token: str | None = None
    locations: Sequence[LocationLike] = field(default_factory=tuple)
    kiosks: Sequence[KioskLike] = field(default_factory=tuple)
    radius_m: float = 300.0

    @property
    def has_coordinate(self) -> bool:
        return self.lat is not None and self.lon is not None

    def has_permission(self, tag: str) -> bool:
        return tag in set(self.allowed_locations or ())


class ExternalRule:
    name = "external"

    def applies(self, ctx: PunchContext) -> bool:
        return ctx.has_permission(EXTERNAL_PERMISSION)

    def evaluate(self, ctx: PunchContext) -> Decision:
        # Coordinate is kept for the record but never checked.
        return Accept(
            location_name=EXTERNAL_LOCATION_NAME,
            lat=ctx.lat if ctx.has_coordinate else None,
            lon=ctx.lon if ctx.has_coordinate else None,
            rule=self.name,
        )


class KioskRule:
    name = "kiosk"

    def __init__(self, token_matches: Callable[[str, str], bool] = verify_kiosk_token):
        self._token_matches = token_matches

    def applies(self, ctx: PunchContext) -> bool:
        return bool(ctx.kiosk_token)

    def evaluate(self, ctx: PunchContext) -> Decision:
        if not ctx.has_permission(KIOSK_PERMISSION):
            return Reject(
                status_code=403,
                code="KIOSK_FORBIDDEN",
                message="You are not allowed to punch at this kiosk.",
                rule=self.name,
            )

        token = ctx.kiosk_token or ""
        for kiosk in ctx.kiosks:
            if ctx.company_id is None or kiosk.company_id != ctx.company_id:
                continue
            if not kiosk.is_active:
                continue
            if self._token_matches(token, kiosk.token_hash):
                # Possession of the kiosk secret asserts presence; GPS is not recorded.
                return Accept(location_name=kiosk.name, rule=self.name)

        return Reject(
            status_code=401,
            code="KIOSK_UNAUTHORIZED",
            message="Kiosk is not authorized or the token is invalid.",
            rule=self.name,
        )


class GeofenceRule:
    name = "geofence"

    def applies(self, ctx: PunchContext) -> bool:
        return ctx.has_coordinate

    def evaluate(self, ctx: PunchContext) -> Decision:
        permitted = set(ctx.allowed_locations or ())
        candidates = [location for location in ctx.locations if location.name in permitted]
        if not candidates:
            return Reject(
                status_code=400,
                code="NO_PERMITTED_LOCATION",
                message="No company location matches your permissions.",
                rule=self.name,
            )

        closest: LocationLike | None = None
        closest_distance = float("inf")
        for location in candidates:
            value = distance_m(ctx.lat, ctx.lon, location.lat, location.lon)
            if value < closest_distance:
                closest_distance = value
                closest = location

        if closest is not None and closest_distance <= ctx.radius_m:
            return Accept(
                location_name=closest.name,
                lat=ctx.lat,
                lon=ctx.lon,
                rule=self.name,
                distance_m=closest_distance,
            )

        if isinf(closest_distance):
            return Reject(
                status_code=400,
                code="OUT_OF_RANGE",
                message="None of your permitted locations has registered coordinates.",
                rule=self.name,
            )
        return Reject(
            status_code=400,
            code="OUT_OF_RANGE",
            message=(
                "You are outside the allowed radius. "
                f"The closest location is {closest_distance:.0f}m away."
            ),
            rule=self.name,
            closest_distance_m=closest_distance,
        )


class NoLocationRule:
    name = "no_location"

    def applies(self, ctx: PunchContext) -> bool:
        return True

    def evaluate(self, ctx: PunchContext) -> Decision:
        return Reject(
            status_code=400,
            code="LOCATION_UNAVAILABLE",
            message="Could not validate your location. Enable geolocation or use an authorized kiosk.",
            rule=self.name,
        )


DEFAULT_RULES: tuple[ExternalRule | KioskRule | GeofenceRule | NoLocationRule, ...] = (
    ExternalRule(),
    KioskRule(),
    GeofenceRule(),
    NoLocationRule(),
)


def evaluate_punch_location(ctx: PunchContext, rules: Sequence = DEFAULT_RULES) -> Decision:
    for rule in rules:
        if rule.applies(ctx):
            return rule.evaluate(ctx)
    return NoLocationRule().evaluate(ctx)
