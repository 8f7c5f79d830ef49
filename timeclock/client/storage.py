"""Durable FIFO of punches that could not reach the server.

Rows are ordered by an autoincrement sequence so replay order always matches
capture order, independent of clock changes on the device.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Integer, String, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool


class QueueBase(DeclarativeBase):
    pass


class QueuedPunchRow(QueueBase):
    __tablename__ = "offline_punch_queue"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@dataclass(frozen=True)
class QueuedPunch:
    seq: int
    local_id: str
    payload: dict[str, Any]
    captured_at: datetime

    @property
    def entry_type(self) -> str:
        return str(self.payload.get("type", ""))

    def replay_payload(self) -> dict[str, Any]:
        return {
            **self.payload,
            "timestamp": self.captured_at.isoformat(),
            "idempotency_key": self.local_id,
        }


def new_local_id() -> str:
    return uuid4().hex


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(row: QueuedPunchRow) -> QueuedPunch:
    return QueuedPunch(
        seq=row.seq,
        local_id=row.local_id,
        payload=dict(row.payload or {}),
        captured_at=_as_utc(row.captured_at),
    )


def create_queue_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


class PunchQueueStore:
    def __init__(self, engine: Engine):
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        QueueBase.metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str) -> PunchQueueStore:
        return cls(create_queue_engine(url))

    def enqueue(
        self,
        payload: dict[str, Any],
        *,
        local_id: str | None = None,
        captured_at: datetime | None = None,
    ) -> QueuedPunch:
        local_id = local_id or new_local_id()
        captured_at = _as_utc(captured_at or datetime.now(timezone.utc))
        clean_payload = {
            key: value
            for key, value in payload.items()
            if key not in {"timestamp", "idempotency_key"} and value is not None
        }
        with self._sessions() as session:
            existing = session.scalar(select(QueuedPunchRow).where(QueuedPunchRow.local_id == local_id))
            if existing is not None:
                return _to_record(existing)
            row = QueuedPunchRow(
                local_id=local_id,
                entry_type=str(clean_payload.get("type", "")),
                payload=clean_payload,
                captured_at=captured_at,
            )
            session.add(row)
            session.commit()
            return _to_record(row)

    def peek_all(self) -> list[QueuedPunch]:
        with self._sessions() as session:
            rows = session.scalars(select(QueuedPunchRow).order_by(QueuedPunchRow.seq.asc())).all()
            return [_to_record(row) for row in rows]

    def remove(self, local_id: str) -> bool:
        """Returns False when the entry was already gone."""
        with self._sessions() as session:
            row = session.scalar(select(QueuedPunchRow).where(QueuedPunchRow.local_id == local_id))
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def count(self) -> int:
        with self._sessions() as session:
            return int(session.scalar(select(func.count()).select_from(QueuedPunchRow)) or 0)
