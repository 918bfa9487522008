"""Call-log, appointment and business-routing persistence (SQLModel).

The core only appends and updates: a call log is created as soon as a
webhook is accepted and updated once when the request is resolved; an
appointment row is written after the calendar event exists.  No
transaction spans these writes.

Timestamps are stored as naive UTC so the same tables work on SQLite and
PostgreSQL ``TIMESTAMP WITHOUT TIME ZONE`` columns.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import JSON, Column
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from receptionist.config import DATABASE_URL
from receptionist.errors import ExternalServiceError
from receptionist.models import CallStatus, TimeWindow

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _to_naive_utc(moment: datetime | None) -> datetime | None:
    if moment is None:
        return None
    return moment.astimezone(UTC).replace(tzinfo=None)


# ── Tables ───────────────────────────────────────────────────────────


class Business(SQLModel, table=True):
    __tablename__ = "businesses"
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    phone_number: str = Field(unique=True, index=True)
    context_prompt: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)


class CallLog(SQLModel, table=True):
    __tablename__ = "call_logs"
    id: str = Field(default_factory=_new_id, primary_key=True)
    created_at: datetime = Field(default_factory=_utc_naive_now, index=True)
    updated_at: datetime = Field(default_factory=_utc_naive_now)
    business_id: str | None = Field(default=None, foreign_key="businesses.id")
    tool_call_id: str | None = None
    caller_name: str | None = None
    caller_phone: str | None = Field(default=None, index=True)
    email: str | None = None
    requested_start: datetime | None = None
    requested_end: datetime | None = None
    booked_start: datetime | None = None
    booked_end: datetime | None = None
    status: str = Field(default=CallStatus.PENDING.value, index=True)
    decision_reason: str | None = None
    raw_payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: str = Field(default_factory=_new_id, primary_key=True)
    created_at: datetime = Field(default_factory=_utc_naive_now)
    business_id: str | None = Field(default=None, foreign_key="businesses.id")
    name: str
    phone: str | None = None
    email: str | None = None
    start: datetime = Field(index=True)
    end: datetime
    source: str = "twilio_vapi"
    calendar_id: str | None = None
    google_event_id: str | None = Field(default=None, index=True)
    call_log_id: str | None = Field(default=None, foreign_key="call_logs.id", index=True)


@dataclass(frozen=True)
class BusinessContext:
    id: str
    name: str
    context_prompt: str | None


# ── Store protocol ──────────────────────────────────────────────────


class CallStore(Protocol):
    def create_call_log(
        self,
        *,
        tool_call_id: str,
        business_id: str | None = None,
        caller_name: str | None = None,
        caller_phone: str | None = None,
        email: str | None = None,
        requested_window: TimeWindow | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> str: ...

    def update_call_log(
        self,
        call_log_id: str,
        *,
        status: CallStatus,
        booked_window: TimeWindow | None = None,
        reason: str | None = None,
    ) -> None: ...

    def create_appointment(
        self,
        *,
        name: str,
        window: TimeWindow,
        phone: str | None = None,
        email: str | None = None,
        business_id: str | None = None,
        calendar_id: str | None = None,
        google_event_id: str | None = None,
        call_log_id: str | None = None,
    ) -> str: ...

    def find_business_by_phone(self, phone_number: str) -> BusinessContext | None: ...


# ── SQL implementation ──────────────────────────────────────────────


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create the engine; SQLite gets a thread-shareable single connection."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def init_db(engine: Engine) -> None:
    """Create tables if missing; use real migrations in production."""
    SQLModel.metadata.create_all(engine)


class SqlCallStore:
    """``CallStore`` backed by SQLModel sessions."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def _save(self, row: SQLModel) -> str:
        try:
            with Session(self._engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return row.id
        except SQLAlchemyError as exc:
            raise ExternalServiceError(f"Database write failed: {exc}", service="database") from exc

    def create_call_log(
        self,
        *,
        tool_call_id: str,
        business_id: str | None = None,
        caller_name: str | None = None,
        caller_phone: str | None = None,
        email: str | None = None,
        requested_window: TimeWindow | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> str:
        row = CallLog(
            tool_call_id=tool_call_id,
            business_id=business_id,
            caller_name=caller_name,
            caller_phone=caller_phone,
            email=email,
            requested_start=_to_naive_utc(requested_window.start) if requested_window else None,
            requested_end=_to_naive_utc(requested_window.end) if requested_window else None,
            raw_payload=raw_payload,
        )
        call_log_id = self._save(row)
        logger.debug("Created call log %s for tool call %s", call_log_id, tool_call_id)
        return call_log_id

    def update_call_log(
        self,
        call_log_id: str,
        *,
        status: CallStatus,
        booked_window: TimeWindow | None = None,
        reason: str | None = None,
    ) -> None:
        try:
            with Session(self._engine) as session:
                row = session.get(CallLog, call_log_id)
                if row is None:
                    raise ExternalServiceError(
                        f"Call log {call_log_id} does not exist", service="database",
                    )
                row.status = status.value
                row.decision_reason = reason
                row.updated_at = _utc_naive_now()
                if booked_window is not None:
                    row.booked_start = _to_naive_utc(booked_window.start)
                    row.booked_end = _to_naive_utc(booked_window.end)
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise ExternalServiceError(f"Database update failed: {exc}", service="database") from exc

    def create_appointment(
        self,
        *,
        name: str,
        window: TimeWindow,
        phone: str | None = None,
        email: str | None = None,
        business_id: str | None = None,
        calendar_id: str | None = None,
        google_event_id: str | None = None,
        call_log_id: str | None = None,
    ) -> str:
        row = Appointment(
            name=name,
            phone=phone,
            email=email,
            start=_to_naive_utc(window.start),
            end=_to_naive_utc(window.end),
            business_id=business_id,
            calendar_id=calendar_id,
            google_event_id=google_event_id,
            call_log_id=call_log_id,
        )
        return self._save(row)

    def find_business_by_phone(self, phone_number: str) -> BusinessContext | None:
        try:
            with Session(self._engine) as session:
                row = session.exec(
                    select(Business).where(Business.phone_number == phone_number)
                ).first()
        except SQLAlchemyError as exc:
            raise ExternalServiceError(f"Business lookup failed: {exc}", service="database") from exc
        if row is None:
            return None
        return BusinessContext(id=row.id, name=row.name, context_prompt=row.context_prompt)

    def get_call_log(self, call_log_id: str) -> CallLog | None:
        with Session(self._engine) as session:
            return session.get(CallLog, call_log_id)
