"""Tests for the GoogleCalendarClient service."""

from __future__ import annotations

import base64
import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import httpx
import pytest

from receptionist.errors import CalendarAPIError, CalendarTimeoutError, ExternalTimeoutError
from receptionist.models import AppointmentRequest, Failed, FailureReason, TimeWindow
from receptionist.scheduling.alternatives import AlternativeSlotSearch
from receptionist.scheduling.availability import AvailabilityResolver
from receptionist.scheduling.booking import BookingCoordinator
from receptionist.services.google_calendar import (
    INITIAL_BACKOFF_SECONDS,
    MAX_RETRIES,
    GoogleCalendarClient,
    parse_service_account_json,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    return mock


def _busy(*intervals, calendar_id="primary") -> dict:
    return {
        "calendars": {
            calendar_id: {"busy": [{"start": s, "end": e} for s, e in intervals]}
        }
    }


@pytest.fixture
def client():
    return GoogleCalendarClient(calendar_id="primary", timezone="America/New_York")


@pytest.fixture
def window(ny):
    start = ny(2030, 3, 5, 10)
    return TimeWindow(start, start + timedelta(minutes=30))


# ── Free/busy ────────────────────────────────────────────────────────


class TestFreeBusy:
    def test_busy_window(self, client, window):
        data = _busy(("2030-03-05T15:00:00Z", "2030-03-05T15:30:00Z"))
        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            assert client.check_free_busy(window) is True

        method, path = mock_req.call_args.args
        body = mock_req.call_args.kwargs["json"]
        assert (method, path) == ("POST", "/freeBusy")
        assert body["items"] == [{"id": "primary"}]
        assert body["timeZone"] == "America/New_York"
        assert body["timeMin"] == window.start.isoformat()

    def test_free_window(self, client, window):
        with patch.object(client._client, "request", return_value=_mock_response(_busy())):
            assert client.check_free_busy(window) is False

    def test_list_free_busy_returns_sorted_windows(self, client, ny):
        data = _busy(
            ("2030-03-06T14:00:00Z", "2030-03-06T15:00:00Z"),
            ("2030-03-05T15:00:00Z", "2030-03-05T16:00:00Z"),
        )
        with patch.object(client._client, "request", return_value=_mock_response(data)):
            intervals = client.list_free_busy(ny(2030, 3, 5), ny(2030, 3, 7))

        assert [w.start.isoformat() for w in intervals] == [
            "2030-03-05T15:00:00+00:00",
            "2030-03-06T14:00:00+00:00",
        ]

    def test_calendar_level_errors_raise(self, client, window):
        data = {"calendars": {"primary": {"errors": [{"reason": "notFound"}]}}}
        with patch.object(client._client, "request", return_value=_mock_response(data)):
            with pytest.raises(CalendarAPIError, match="notFound"):
                client.check_free_busy(window)


# ── Events ───────────────────────────────────────────────────────────


class TestCreateEvent:
    def test_posts_event_and_returns_id(self, window):
        client = GoogleCalendarClient(calendar_id="team@example.com", timezone="America/New_York")
        created = {"id": "evt123", "htmlLink": "https://calendar.google.com/event?eid=evt123"}

        with patch.object(client._client, "request", return_value=_mock_response(created)) as mock_req:
            event = client.create_event(window, "Appointment with John Doe", "John Doe\nPhone: +1555")

        assert event.event_id == "evt123"
        assert event.html_link.endswith("evt123")
        method, path = mock_req.call_args.args
        assert method == "POST"
        assert path == "/calendars/team%40example.com/events"
        body = mock_req.call_args.kwargs["json"]
        assert body["summary"] == "Appointment with John Doe"
        assert body["start"] == {"dateTime": window.start.isoformat(), "timeZone": "America/New_York"}


# ── Retry logic ──────────────────────────────────────────────────────


class TestRetryLogic:
    @patch("receptionist.services.google_calendar.time.sleep")
    def test_retries_on_timeout(self, mock_sleep, client, window):
        with patch.object(
            client._client,
            "request",
            side_effect=[httpx.TimeoutException("timeout"), _mock_response(_busy())],
        ):
            assert client.check_free_busy(window) is False
        mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_retries_on_500_error(self, mock_sleep, client, window):
        with patch.object(
            client._client,
            "request",
            side_effect=[_mock_response({"error": "backend"}, 503), _mock_response(_busy())],
        ):
            assert client.check_free_busy(window) is False

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_does_not_retry_on_400_error(self, mock_sleep, client, window):
        with patch.object(client._client, "request", return_value=_mock_response({"error": "bad"}, 403)):
            with pytest.raises(CalendarAPIError) as exc_info:
                client.check_free_busy(window)
        assert exc_info.value.status_code == 403
        mock_sleep.assert_not_called()

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_timeouts_exhaust_into_timeout_error(self, mock_sleep, client, window):
        with patch.object(client._client, "request", side_effect=httpx.ConnectTimeout("timeout")):
            with pytest.raises(CalendarTimeoutError) as exc_info:
                client.check_free_busy(window)
        assert isinstance(exc_info.value, ExternalTimeoutError)
        assert exc_info.value.service == "google_calendar"
        assert "after" in str(exc_info.value).lower()
        assert mock_sleep.call_count == MAX_RETRIES - 1

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_server_errors_exhaust_with_status(self, mock_sleep, client, window):
        with patch.object(client._client, "request", return_value=_mock_response({}, 500)):
            with pytest.raises(CalendarAPIError) as exc_info:
                client.check_free_busy(window)
        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, CalendarTimeoutError)

    def test_other_transport_errors_are_wrapped(self, client, window):
        with patch.object(client._client, "request", side_effect=httpx.RemoteProtocolError("reset")):
            with pytest.raises(CalendarAPIError, match="transport"):
                client.check_free_busy(window)


# ── Auth ─────────────────────────────────────────────────────────────


class TestAuth:
    def test_bearer_token_from_credentials(self, window):
        credentials = MagicMock(valid=True, token="ya29.token")
        client = GoogleCalendarClient(credentials, "primary")
        with patch.object(client._client, "request", return_value=_mock_response(_busy())) as mock_req:
            client.check_free_busy(window)
        assert mock_req.call_args.kwargs["headers"] == {"Authorization": "Bearer ya29.token"}
        credentials.refresh.assert_not_called()

    def test_expired_credentials_are_refreshed(self, window):
        credentials = MagicMock(valid=False, token="fresh")
        client = GoogleCalendarClient(credentials, "primary")
        with patch.object(client._client, "request", return_value=_mock_response(_busy())):
            client.check_free_busy(window)
        credentials.refresh.assert_called_once()


class TestServiceAccountJson:
    INFO = {"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}

    def test_plain_json(self):
        assert parse_service_account_json(json.dumps(self.INFO)) == self.INFO

    def test_literal_newlines_in_private_key(self):
        raw = '{"type": "service_account", "private_key": "-----BEGIN\nKEY\n-----END"}'
        assert parse_service_account_json(raw)["private_key"] == "-----BEGIN\nKEY\n-----END"

    def test_base64(self):
        encoded = base64.b64encode(json.dumps(self.INFO).encode()).decode()
        assert parse_service_account_json(encoded) == self.INFO

    def test_garbage(self):
        with pytest.raises(ValueError, match="GOOGLE_SERVICE_ACCOUNT_JSON"):
            parse_service_account_json("not json at all")


class TestInsertRetries:
    @patch("receptionist.services.google_calendar.time.sleep")
    def test_insert_is_not_resent_after_read_timeout(self, mock_sleep, client, window):
        with patch.object(client._client, "request", side_effect=httpx.ReadTimeout("slow")) as mock_req:
            with pytest.raises(CalendarTimeoutError):
                client.create_event(window, "Appointment with John Doe", "John Doe")
        assert mock_req.call_count == 1
        mock_sleep.assert_not_called()

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_insert_is_retried_when_the_connection_failed(self, mock_sleep, client, window):
        with patch.object(
            client._client,
            "request",
            side_effect=[httpx.ConnectError("refused"), _mock_response({"id": "evt1"})],
        ) as mock_req:
            event = client.create_event(window, "Appointment with John Doe", "John Doe")
        assert event.event_id == "evt1"
        assert mock_req.call_count == 2

    @patch("receptionist.services.google_calendar.time.sleep")
    def test_insert_is_not_retried_on_server_error(self, mock_sleep, client, window):
        with patch.object(client._client, "request", return_value=_mock_response({}, 503)) as mock_req:
            with pytest.raises(CalendarAPIError) as exc_info:
                client.create_event(window, "Appointment with John Doe", "John Doe")
        assert exc_info.value.status_code == 503
        assert mock_req.call_count == 1


# ── Malformed responses ──────────────────────────────────────────────


def _transport_client(handler) -> GoogleCalendarClient:
    return GoogleCalendarClient(
        calendar_id="primary",
        timezone="America/New_York",
        transport=httpx.MockTransport(handler),
    )


def _html(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text="<html>oops</html>")


class TestMalformedResponses:
    def test_non_json_body(self, window):
        with pytest.raises(CalendarAPIError, match="non-JSON"):
            _transport_client(_html).check_free_busy(window)

    def test_json_that_is_not_an_object(self, window):
        client = _transport_client(lambda request: httpx.Response(200, json=["busy"]))
        with pytest.raises(CalendarAPIError, match="expected an object"):
            client.check_free_busy(window)

    def test_busy_entry_without_end(self, ny):
        data = {"calendars": {"primary": {"busy": [{"start": "2030-03-05T15:00:00Z"}]}}}
        client = _transport_client(lambda request: httpx.Response(200, json=data))
        with pytest.raises(CalendarAPIError, match="Malformed busy interval"):
            client.list_free_busy(ny(2030, 3, 5), ny(2030, 3, 6))

    def test_booking_degrades_instead_of_raising(self, hours, store, clock, window):
        client = _transport_client(_html)
        resolver = AvailabilityResolver(hours, client)
        coordinator = BookingCoordinator(
            resolver, AlternativeSlotSearch(resolver, client), client, store, clock=clock,
        )

        outcome = coordinator.book(AppointmentRequest(caller_name="John Doe", requested_window=window))

        assert isinstance(outcome, Failed)
        assert outcome.reason is FailureReason.EXTERNAL_SERVICE
        assert store.appointments == {}
