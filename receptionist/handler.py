"""Inbound webhook processing, independent of the HTTP framework.

``WebhookHandler.handle`` takes the decoded JSON body and returns the
status code and JSON body to send back.  The voice platform reads
``results[0].result`` aloud, so every path that reaches business logic
answers with one spoken sentence, including failures.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.engine import Engine

from receptionist.agent import ToolCallAgent, build_chat_model
from receptionist.config import (
    ALTERNATIVE_CANDIDATE_MULTIPLIER,
    ALTERNATIVE_COUNT,
    ALTERNATIVE_LOOKAHEAD_DAYS,
    load_business_hours,
)
from receptionist.errors import ExternalServiceError
from receptionist.models import (
    AppointmentRequest,
    Booked,
    BookingOutcome,
    NotRecognized,
    TimeWindow,
    ToolInvocation,
    ToolName,
)
from receptionist.normalizer import (
    DATE_AND_TIME,
    DEFAULT_CORRELATION_ID,
    EMAIL_ADDRESS,
    END_TIME,
    NAME,
    PHONE_NUMBER,
    extract_called_number,
    normalize,
)
from receptionist.scheduling.alternatives import AlternativeSlotSearch
from receptionist.scheduling.availability import AvailabilityResolver
from receptionist.scheduling.booking import PAST_DATE_MESSAGE, BookingCoordinator
from receptionist.scheduling.dates import try_parse_instant
from receptionist.services.cache import LRUCache
from receptionist.services.google_calendar import GoogleCalendarClient, load_service_account_credentials
from receptionist.services.metrics import metrics
from receptionist.services.persistence import CallStore, SqlCallStore, build_engine, init_db

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "An error occurred while processing your appointment request. Please try again later."
NAME_REQUIRED = "Name is required"


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict[str, Any]


def _spoken(correlation_id: str, message: str) -> dict[str, Any]:
    return {"results": [{"toolCallId": correlation_id, "result": message}]}


def fallback_context(called_number: str) -> str:
    return f"You are the AI assistant for the business associated with the number {called_number}."


class WebhookHandler:
    def __init__(
        self,
        coordinator: BookingCoordinator,
        agent: ToolCallAgent,
        store: CallStore,
        *,
        responses: LRUCache | None = None,
    ):
        self._coordinator = coordinator
        self._agent = agent
        self._store = store
        self._responses = responses if responses is not None else LRUCache()

    def handle(self, raw: Any) -> WebhookResult:
        invocation = normalize(raw)
        if isinstance(invocation, NotRecognized):
            logger.warning("Rejected webhook payload: %s", invocation.reason)
            return WebhookResult(400, {"error": f"Invalid webhook payload. {invocation.reason}"})

        try:
            return self._handle(raw, invocation)
        except Exception:
            logger.exception("Unexpected error handling tool call %s", invocation.correlation_id)
            return WebhookResult(500, _spoken(invocation.correlation_id, ERROR_MESSAGE))

    # ── Steps ────────────────────────────────────────────────────────

    def _handle(self, raw: Mapping[str, Any], invocation: ToolInvocation) -> WebhookResult:
        correlation_id = invocation.correlation_id
        args = invocation.arguments
        check_only = invocation.tool_name is ToolName.CHECK_AVAILABILITY

        business_id = context_prompt = None
        called_number = extract_called_number(raw)
        if called_number:
            business = self._store.find_business_by_phone(called_number)
            if business is None:
                logger.warning("No business matched called number %s", called_number)
                return WebhookResult(200, {"action": "hangup"})
            business_id = business.id
            context_prompt = business.context_prompt or fallback_context(called_number)

        name = args.get(NAME)
        if not name and not check_only:
            return WebhookResult(400, {"error": NAME_REQUIRED})

        replayable = correlation_id != DEFAULT_CORRELATION_ID
        if replayable:
            cached = self._responses.get(correlation_id)
            if cached is not None:
                logger.info("Replaying cached response for tool call %s", correlation_id)
                return WebhookResult(200, cached)

        requested_text = args.get(DATE_AND_TIME)
        window = self._requested_window(requested_text, args.get(END_TIME) if check_only else None)

        if window is not None and window.end <= self._coordinator.now():
            logger.warning("Requested date is in the past: %s", window.start.isoformat())
            return self._respond(correlation_id, PAST_DATE_MESSAGE, cache=replayable)

        request = AppointmentRequest(
            caller_name=name or "",
            caller_phone=args.get(PHONE_NUMBER),
            caller_email=args.get(EMAIL_ADDRESS),
            requested_window=window,
            requested_text=requested_text if window is None else None,
            business_id=business_id,
            context_prompt=context_prompt,
            check_only=check_only,
        )
        call_log_id = self._open_call_log(correlation_id, request, raw)
        request = dataclasses.replace(request, call_log_id=call_log_id)

        if window is None and requested_text:
            logger.info("Date %r not machine-readable, handing %s to the agent", requested_text, correlation_id)
            outcome = self._agent.run(request)
        elif check_only:
            outcome = self._coordinator.check_request(request)
        else:
            outcome = self._coordinator.book(request)

        self._close_call_log(call_log_id, outcome)
        metrics.record_outcome(outcome.status.value)
        logger.info("Tool call %s resolved as %s", correlation_id, outcome.status.value)
        return self._respond(correlation_id, outcome.message, cache=replayable)

    def _requested_window(self, start_text: str | None, end_text: str | None) -> TimeWindow | None:
        """The fixed-length slot at the requested start, or ``[start, end)`` when a later end is given."""
        hours = self._coordinator.hours
        start = try_parse_instant(start_text, hours.zone)
        if start is None:
            return None
        end = try_parse_instant(end_text, hours.zone)
        if end is not None and end > start:
            return TimeWindow(start, end)
        return hours.slot(start)

    def _respond(self, correlation_id: str, message: str, *, cache: bool) -> WebhookResult:
        body = _spoken(correlation_id, message)
        if cache:
            self._responses.put(correlation_id, body)
        return WebhookResult(200, body)

    def _open_call_log(
        self, correlation_id: str, request: AppointmentRequest, raw: Mapping[str, Any],
    ) -> str | None:
        try:
            return self._store.create_call_log(
                tool_call_id=correlation_id,
                business_id=request.business_id,
                caller_name=request.caller_name,
                caller_phone=request.caller_phone,
                email=request.caller_email,
                requested_window=request.requested_window,
                raw_payload=dict(raw),
            )
        except ExternalServiceError as exc:
            logger.error("Could not create call log for %s: %s", correlation_id, exc)
            return None

    def _close_call_log(self, call_log_id: str | None, outcome: BookingOutcome) -> None:
        if call_log_id is None:
            return
        try:
            self._store.update_call_log(
                call_log_id,
                status=outcome.status,
                booked_window=outcome.window if isinstance(outcome, Booked) else None,
                reason=outcome.message,
            )
        except ExternalServiceError as exc:
            logger.error("Could not update call log %s: %s", call_log_id, exc)


def create_webhook_handler(engine: Engine | None = None) -> WebhookHandler:
    """Wire the production collaborators from configuration.

    Pass *engine* to reuse an existing SQLAlchemy engine.
    """
    hours = load_business_hours()
    try:
        credentials = load_service_account_credentials()
    except ValueError as exc:
        logger.error("Google Calendar credentials unavailable: %s", exc)
        credentials = None
    calendar = GoogleCalendarClient(credentials, timezone=hours.timezone)

    if engine is None:
        engine = build_engine()
    init_db(engine)
    store = SqlCallStore(engine)

    resolver = AvailabilityResolver(hours, calendar)
    coordinator = BookingCoordinator(
        resolver,
        AlternativeSlotSearch(resolver, calendar),
        calendar,
        store,
        calendar_id=calendar.calendar_id,
        alternative_count=ALTERNATIVE_COUNT,
        lookahead_days=ALTERNATIVE_LOOKAHEAD_DAYS,
        candidate_multiplier=ALTERNATIVE_CANDIDATE_MULTIPLIER,
    )
    agent = ToolCallAgent(build_chat_model(), coordinator)
    logger.info(
        "Webhook handler ready (timezone=%s, calendar=%s)", hours.timezone, calendar.calendar_id,
    )
    return WebhookHandler(coordinator, agent, store)
