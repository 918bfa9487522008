"""HTTP client for the Google Calendar API v3 with retry logic and timeouts.

Only three operations are used by the receptionist: a free/busy check for a
single window, a free/busy listing over a range, and event insertion.  The
core never mutates calendar state except through ``create_event``.

Authentication uses a Google service account (``google-auth``); the access
token is refreshed lazily whenever the credentials report themselves invalid.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from receptionist.config import (
    CALENDAR_TIMEOUT_SECONDS,
    GOOGLE_CALENDAR_BASE_URL,
    GOOGLE_CALENDAR_ID,
    GOOGLE_SERVICE_ACCOUNT_JSON,
    GOOGLE_SERVICE_ACCOUNT_JSON_BASE64,
)
from receptionist.errors import CalendarAPIError, CalendarTimeoutError
from receptionist.models import TimeWindow
from receptionist.services.metrics import metrics

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0

# Failures after which the request may still have reached Google.
_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError)
# Failures that prove it did not.
_UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    html_link: str = ""


class CalendarBackend(Protocol):
    """What the scheduling core needs from a calendar."""

    def check_free_busy(self, window: TimeWindow) -> bool:
        """Return ``True`` when *window* overlaps a busy period."""
        ...

    def list_free_busy(self, range_start: datetime, range_end: datetime) -> list[TimeWindow]:
        """Return busy intervals inside the range, ordered by start."""
        ...

    def create_event(self, window: TimeWindow, summary: str, description: str) -> CreatedEvent:
        ...


# ── Credentials ─────────────────────────────────────────────────────


def parse_service_account_json(raw: str) -> dict[str, Any]:
    """Decode a service-account key pasted into an env var.

    Accepts plain single-line JSON, JSON pasted with literal newlines inside
    the private key, or the whole document base64-encoded.
    """
    trimmed = raw.strip()
    attempts = [trimmed]

    escaped = re.sub(r"(?<!\\)\n", r"\\n", trimmed.replace("\r", ""))
    if escaped != trimmed:
        attempts.append(escaped)

    if _BASE64_RE.match(trimmed) and len(trimmed) % 4 == 0:
        try:
            attempts.append(base64.b64decode(trimmed).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError):
            pass

    for candidate in attempts:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise ValueError(
        "Invalid GOOGLE_SERVICE_ACCOUNT_JSON. Ensure it is valid JSON, single-line "
        "with escaped newlines, or base64 encoded."
    )


def load_service_account_credentials(
    raw_json: str = GOOGLE_SERVICE_ACCOUNT_JSON,
    raw_base64: str = GOOGLE_SERVICE_ACCOUNT_JSON_BASE64,
):
    """Build ``google.oauth2`` service-account credentials from configuration."""
    from google.oauth2 import service_account  # noqa: PLC0415

    if raw_base64:
        try:
            raw_json = base64.b64decode(raw_base64).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON_BASE64 is not valid base64.") from exc
    if not raw_json:
        raise ValueError("Google service account credentials not configured.")

    info = parse_service_account_json(raw_json)
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


def _parse_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _decode(response: httpx.Response) -> dict[str, Any]:
    """The JSON object in a 2xx response body."""
    try:
        data = response.json()
    except ValueError as exc:
        raise CalendarAPIError(
            f"Calendar API returned a non-JSON body: {response.text[:200]}",
            status_code=response.status_code,
        ) from exc
    if not isinstance(data, dict):
        raise CalendarAPIError(
            f"Calendar API returned {type(data).__name__}, expected an object",
            status_code=response.status_code,
        )
    return data


# ── Client ──────────────────────────────────────────────────────────


class GoogleCalendarClient:
    """Thin wrapper around the Calendar REST API with automatic retries.

    Timeouts and connection errors are retried with exponential backoff, as
    are 5xx responses.  4xx responses fail immediately.  Event inserts are
    only retried when the request provably never reached Google.  Every
    failure that leaves this class, malformed response bodies included, is a
    ``CalendarAPIError``.
    """

    def __init__(
        self,
        credentials=None,
        calendar_id: str | None = None,
        *,
        timezone: str = "UTC",
        base_url: str = GOOGLE_CALENDAR_BASE_URL,
        timeout: float = CALENDAR_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        self._credentials = credentials
        self._calendar_id = calendar_id or GOOGLE_CALENDAR_ID
        self._timezone = timezone
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def calendar_id(self) -> str:
        return self._calendar_id

    # ── Internal helpers ─────────────────────────────────────────────

    def _auth_headers(self) -> dict[str, str]:
        if self._credentials is None:
            return {}
        if not self._credentials.valid:
            from google.auth.exceptions import GoogleAuthError  # noqa: PLC0415
            from google.auth.transport.requests import Request  # noqa: PLC0415

            try:
                self._credentials.refresh(Request())
            except GoogleAuthError as exc:
                raise CalendarAPIError(f"Service account token refresh failed: {exc}") from exc
        return {"Authorization": f"Bearer {self._credentials.token}"}

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        retry_unsent_only: bool = False,
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries.

        With *retry_unsent_only*, only failures that prove the request never
        reached Google (connect errors, pool timeouts) are retried, so an
        insert whose response was lost is not sent twice.
        """
        operation = f"{method} {path.split('?')[0]}"
        retryable = _UNSENT_ERRORS if retry_unsent_only else _TRANSIENT_ERRORS
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method,
                    path,
                    json=json_body,
                    headers=self._auth_headers(),
                )
                if response.status_code >= 500:
                    raise CalendarAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise CalendarAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                data = _decode(response)
                metrics.record_success(
                    "google_calendar", operation,
                    latency_ms=(time.perf_counter() - t0) * 1000,
                )
                return data

            except retryable as exc:
                last_error = exc
                metrics.record_failure(
                    "google_calendar", operation,
                    error_type=type(exc).__name__,
                    latency_ms=(time.perf_counter() - t0) * 1000,
                )
                logger.warning(
                    "Calendar API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except httpx.TimeoutException as exc:
                metrics.record_failure(
                    "google_calendar", operation,
                    error_type=type(exc).__name__,
                    latency_ms=(time.perf_counter() - t0) * 1000,
                )
                raise CalendarTimeoutError(
                    f"Calendar API {operation} timed out after the request was sent: {exc}"
                ) from exc
            except httpx.HTTPError as exc:
                raise CalendarAPIError(f"Calendar API transport error: {exc}") from exc
            except CalendarAPIError as exc:
                metrics.record_failure(
                    "google_calendar", operation,
                    error_type=f"{exc.status_code}",
                    latency_ms=(time.perf_counter() - t0) * 1000,
                )
                if exc.status_code and exc.status_code >= 500 and not retry_unsent_only:
                    last_error = exc
                    logger.warning(
                        "Calendar API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        message = f"Calendar API request failed after {MAX_RETRIES} retries: {last_error}"
        if isinstance(last_error, CalendarAPIError):
            raise CalendarAPIError(message, status_code=last_error.status_code)
        raise CalendarTimeoutError(message)

    def _query_busy(self, range_start: datetime, range_end: datetime) -> list[dict[str, str]]:
        data = self._request(
            "POST",
            "/freeBusy",
            json_body={
                "timeMin": range_start.isoformat(),
                "timeMax": range_end.isoformat(),
                "timeZone": self._timezone,
                "items": [{"id": self._calendar_id}],
            },
        )
        calendar = data.get("calendars", {})
        calendar = calendar.get(self._calendar_id, {}) if isinstance(calendar, dict) else None
        if not isinstance(calendar, dict):
            raise CalendarAPIError(f"Malformed free/busy response for {self._calendar_id}")
        errors = calendar.get("errors")
        if errors:
            raise CalendarAPIError(f"Free/busy query rejected for {self._calendar_id}: {errors}")
        busy = calendar.get("busy", [])
        if not isinstance(busy, list):
            raise CalendarAPIError(f"Malformed busy list for {self._calendar_id}: {busy!r}")
        return busy

    # ── CalendarBackend ──────────────────────────────────────────────

    def check_free_busy(self, window: TimeWindow) -> bool:
        busy = self._query_busy(window.start, window.end)
        logger.debug("Free/busy for %s: %d busy period(s)", window.key(), len(busy))
        return bool(busy)

    def list_free_busy(self, range_start: datetime, range_end: datetime) -> list[TimeWindow]:
        try:
            intervals = [
                TimeWindow(_parse_instant(b["start"]), _parse_instant(b["end"]))
                for b in self._query_busy(range_start, range_end)
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise CalendarAPIError(f"Malformed busy interval in free/busy response: {exc!r}") from exc
        intervals.sort(key=lambda w: w.start)
        return intervals

    def create_event(self, window: TimeWindow, summary: str, description: str) -> CreatedEvent:
        data = self._request(
            "POST",
            f"/calendars/{quote(self._calendar_id, safe='')}/events",
            json_body={
                "summary": summary,
                "description": description,
                "start": {"dateTime": window.start.isoformat(), "timeZone": self._timezone},
                "end": {"dateTime": window.end.isoformat(), "timeZone": self._timezone},
            },
            retry_unsent_only=True,
        )
        event_id = data.get("id", "")
        logger.info("Created event %s on calendar %s", event_id, self._calendar_id)
        return CreatedEvent(event_id=event_id, html_link=data.get("htmlLink", ""))

    def close(self) -> None:
        self._client.close()
