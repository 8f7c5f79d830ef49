"""Client side punch submission with an offline fallback.

A punch that cannot reach the server is stored in a local queue and replayed
later, in capture order, through the same endpoint. Replays carry their
captured timestamp and a stable idempotency key, so a punch that did reach the
server before the connection dropped is never recorded twice.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from timeclock.client.settings import ClientSettings, get_client_settings
from timeclock.client.storage import PunchQueueStore, QueuedPunch, new_local_id
from timeclock.client.transport import PunchTransport, SubmitKind, SubmitResult
from timeclock.services.rate_limit import cooldown_message, cooldown_remaining_seconds

logger = logging.getLogger("timeclock.client.sync")

TokenProvider = Callable[[], Awaitable[str | None]]
Locator = Callable[[], Awaitable[tuple[float, float] | None]]


class OutcomeKind(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    QUEUED = "QUEUED"
    JUSTIFICATION_REQUIRED = "JUSTIFICATION_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class PunchOutcome:
    kind: OutcomeKind
    message: str
    entry_id: int | None = None
    status: str | None = None
    local_id: str | None = None
    lateness_minutes: int | None = None


@dataclass(frozen=True)
class PermanentFailure:
    local_id: str
    entry_type: str
    captured_at: datetime
    status_code: int | None
    message: str


@dataclass
class DrainReport:
    synced: int = 0
    failures: list[PermanentFailure] = field(default_factory=list)
    remaining: int = 0
    skipped: bool = False
    stopped_early: bool = False


class OfflinePunchQueue:
    def __init__(
        self,
        store: PunchQueueStore,
        transport: PunchTransport,
        token_provider: TokenProvider,
    ):
        self._store = store
        self._transport = transport
        self._token_provider = token_provider
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def enqueue(
        self,
        payload: dict[str, Any],
        *,
        local_id: str | None = None,
        captured_at: datetime | None = None,
    ) -> QueuedPunch:
        record = await asyncio.to_thread(
            self._store.enqueue,
            payload,
            local_id=local_id,
            captured_at=captured_at,
        )
        logger.info(
            "offline_punch_queued",
            extra={"local_id": record.local_id, "punch_type": record.entry_type, "seq": record.seq},
        )
        return record

    async def pending_count(self) -> int:
        return await asyncio.to_thread(self._store.count)

    async def on_online(self) -> DrainReport:
        return await self.drain()

    async def on_authenticated(self) -> DrainReport:
        return await self.drain()

    async def drain(self) -> DrainReport:
        # Checked and set before the first await, so overlapping triggers see it.
        if self._draining:
            return DrainReport(skipped=True)
        self._draining = True
        try:
            return await self._drain_once()
        finally:
            self._draining = False

    async def _drain_once(self) -> DrainReport:
        report = DrainReport()
        entries = await asyncio.to_thread(self._store.peek_all)
        if not entries:
            return report

        token = await self._token_provider()
        if not token:
            report.remaining = len(entries)
            report.stopped_early = True
            logger.info("offline_drain_waiting_for_auth", extra={"pending": len(entries)})
            return report

        for entry in entries:
            result = await self._transport.submit(entry.replay_payload(), token=token)
            kind = result.kind

            if kind == SubmitKind.ACCEPTED:
                await asyncio.to_thread(self._store.remove, entry.local_id)
                report.synced += 1
                continue

            if kind in {SubmitKind.TRANSIENT, SubmitKind.AUTH_REQUIRED}:
                # Later entries must not overtake this one.
                report.stopped_early = True
                logger.info(
                    "offline_drain_paused",
                    extra={
                        "local_id": entry.local_id,
                        "reason": kind.value,
                        "status_code": result.status_code,
                    },
                )
                break

            await asyncio.to_thread(self._store.remove, entry.local_id)
            failure = PermanentFailure(
                local_id=entry.local_id,
                entry_type=entry.entry_type,
                captured_at=entry.captured_at,
                status_code=result.status_code,
                message=result.message,
            )
            report.failures.append(failure)
            logger.warning(
                "offline_punch_discarded",
                extra={
                    "local_id": entry.local_id,
                    "punch_type": entry.entry_type,
                    "status_code": result.status_code,
                    "error_code": result.error_code,
                    "reason": result.message,
                },
            )

        report.remaining = await asyncio.to_thread(self._store.count)
        logger.info(
            "offline_drain_complete",
            extra={
                "synced": report.synced,
                "failed": len(report.failures),
                "remaining": report.remaining,
            },
        )
        return report


class PunchClient:
    def __init__(
        self,
        transport: PunchTransport,
        queue: OfflinePunchQueue,
        token_provider: TokenProvider,
        *,
        locator: Locator | None = None,
        settings: ClientSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._transport = transport
        self._queue = queue
        self._token_provider = token_provider
        self._locator = locator
        self._settings = settings or get_client_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_punch_at: datetime | None = None

    async def locate(self) -> tuple[float, float] | None:
        if self._locator is None:
            return None
        try:
            return await asyncio.wait_for(
                self._locator(),
                timeout=self._settings.geolocation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.info(
                "geolocation_timeout",
                extra={"timeout_seconds": self._settings.geolocation_timeout_seconds},
            )
            return None

    def _cooldown_remaining(self, now: datetime) -> int:
        return cooldown_remaining_seconds(
            self._last_punch_at,
            now,
            timedelta(seconds=self._settings.punch_cooldown_seconds),
        )

    async def punch(
        self,
        entry_type: str,
        *,
        justification: str | None = None,
        kiosk_token: str | None = None,
    ) -> PunchOutcome:
        captured_at = self._clock()
        remaining = self._cooldown_remaining(captured_at)
        if remaining > 0:
            return PunchOutcome(kind=OutcomeKind.RATE_LIMITED, message=cooldown_message(remaining))

        payload: dict[str, Any] = {"type": entry_type}
        if justification:
            payload["justification"] = justification
        if kiosk_token:
            payload["kiosk_token"] = kiosk_token
        else:
            coordinates = await self.locate()
            if coordinates is not None:
                payload["location"] = {"lat": coordinates[0], "lon": coordinates[1]}

        local_id = new_local_id()
        token = await self._token_provider()
        if not token:
            result = SubmitResult(status_code=None, transport_error="NoToken")
        else:
            result = await self._transport.submit({**payload, "idempotency_key": local_id}, token=token)

        kind = result.kind
        if kind == SubmitKind.ACCEPTED:
            self._last_punch_at = captured_at
            return PunchOutcome(
                kind=OutcomeKind.ACCEPTED,
                message=result.message,
                entry_id=result.body.get("entry_id"),
                status=result.body.get("status"),
                local_id=local_id,
            )

        if kind == SubmitKind.TRANSIENT:
            record = await self._queue.enqueue(payload, local_id=local_id, captured_at=captured_at)
            self._last_punch_at = captured_at
            return PunchOutcome(
                kind=OutcomeKind.QUEUED,
                message="No connection. Punch saved on this device and will be sent automatically.",
                local_id=record.local_id,
            )

        if kind == SubmitKind.JUSTIFICATION_REQUIRED:
            return PunchOutcome(
                kind=OutcomeKind.JUSTIFICATION_REQUIRED,
                message=result.message,
                lateness_minutes=result.body.get("lateness_minutes"),
            )

        if kind == SubmitKind.RATE_LIMITED:
            return PunchOutcome(kind=OutcomeKind.RATE_LIMITED, message=result.message)

        return PunchOutcome(kind=OutcomeKind.REJECTED, message=result.message)
