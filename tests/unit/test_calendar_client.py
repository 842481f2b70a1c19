"""Unit tests for the calendar adapter over a mocked HTTP transport."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from booking_sync.models.errors import CalendarError, CalendarNotConfiguredError
from booking_sync.storage.calendar_client import CalendarClient

TOKEN_URL = "https://oauth2.example.test/token"
API_BASE = "https://calendar.example.test/v3"
EVENTS_PATH = "/v3/calendars/studio%40example.com/events"


class CalendarAPI:
    """Scripted responses keyed by (method, path)."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.responses: dict[tuple[str, str], list[httpx.Response]] = {}

    def queue(self, method: str, path: str, *responses: httpx.Response) -> None:
        self.responses.setdefault((method, path), []).extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_calls += 1
            return httpx.Response(
                200, json={"access_token": f"token-{self.token_calls}", "expires_in": 3600}
            )
        self.requests.append(request)
        queued = self.responses.get((request.method, request.url.raw_path.decode().split("?")[0]))
        if not queued:
            return httpx.Response(500, text="unexpected request")
        return queued.pop(0)


def timed_item(event_id: str, start: str, end: str, **extra) -> dict:
    return {"id": event_id, "start": {"dateTime": start}, "end": {"dateTime": end}, **extra}


@pytest.fixture
def api():
    return CalendarAPI()


@pytest.fixture
def client(api):
    return CalendarClient(
        client_id="id",
        client_secret="secret",
        refresh_token="refresh",
        calendar_id="studio@example.com",
        api_base=API_BASE,
        token_url=TOKEN_URL,
        transport=httpx.MockTransport(api),
    )


@pytest.mark.asyncio
async def test_unconfigured_client_raises():
    client = CalendarClient(client_id="", client_secret="", refresh_token="")

    assert not client.configured
    with pytest.raises(CalendarNotConfiguredError):
        await client.list_events(datetime.now(timezone.utc), datetime.now(timezone.utc))


@pytest.mark.asyncio
async def test_access_token_is_cached(client, api):
    first = await client.get_access_token()
    second = await client.get_access_token()

    assert first == second == "token-1"
    assert api.token_calls == 1


@pytest.mark.asyncio
async def test_token_rejection_raises(api):
    def reject(request):
        return httpx.Response(400, json={"error": "invalid_grant"})

    client = CalendarClient(
        client_id="id", client_secret="secret", refresh_token="revoked",
        token_url=TOKEN_URL, transport=httpx.MockTransport(reject),
    )

    with pytest.raises(CalendarError) as exc:
        await client.get_access_token()
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_retries_once_with_fresh_token_on_401(client, api):
    api.queue(
        "GET", f"{EVENTS_PATH}/evt-1",
        httpx.Response(401, json={"error": "expired"}),
        httpx.Response(200, json=timed_item("evt-1", "2025-01-14T10:00:00+08:00", "2025-01-14T10:45:00+08:00")),
    )

    event = await client.get_event("evt-1")

    assert event.event_id == "evt-1"
    assert api.token_calls == 2
    assert api.requests[-1].headers["Authorization"] == "Bearer token-2"


@pytest.mark.asyncio
async def test_list_events_follows_pages(client, api):
    api.queue(
        "GET", EVENTS_PATH,
        httpx.Response(200, json={
            "items": [timed_item("a", "2025-01-14T09:00:00+08:00", "2025-01-14T10:00:00+08:00")],
            "nextPageToken": "p2",
        }),
        httpx.Response(200, json={
            "items": [timed_item("b", "2025-01-14T11:00:00+08:00", "2025-01-14T12:00:00+08:00")],
        }),
    )
    start = datetime(2025, 1, 14, tzinfo=timezone(timedelta(hours=8)))

    events = await client.list_events(start, start + timedelta(days=1), query="Booking ID")

    assert [e.event_id for e in events] == ["a", "b"]
    first, second = api.requests
    assert first.url.params["singleEvents"] == "true"
    assert first.url.params["q"] == "Booking ID"
    assert "pageToken" not in first.url.params
    assert second.url.params["pageToken"] == "p2"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 410])
async def test_delete_missing_event_returns_false(client, api, status):
    api.queue("DELETE", f"{EVENTS_PATH}/gone", httpx.Response(status))

    assert await client.delete_event("gone") is False


@pytest.mark.asyncio
async def test_delete_event(client, api):
    api.queue("DELETE", f"{EVENTS_PATH}/evt-1", httpx.Response(204))

    assert await client.delete_event("evt-1") is True
    assert api.requests[0].url.params["sendUpdates"] == "all"


@pytest.mark.asyncio
async def test_server_error_raises(client, api):
    api.queue("DELETE", f"{EVENTS_PATH}/evt-1", httpx.Response(503))

    with pytest.raises(CalendarError) as exc:
        await client.delete_event("evt-1")
    assert exc.value.status_code == 503
    assert not exc.value.is_gone


@pytest.mark.asyncio
async def test_insert_event_sends_body(client, api):
    api.queue(
        "POST", EVENTS_PATH,
        httpx.Response(200, json=timed_item("new", "2025-01-14T10:00:00+08:00", "2025-01-14T10:45:00+08:00")),
    )

    event = await client.insert_event({"summary": "Solo Portrait - Ana Santos"})

    assert event.event_id == "new"
    assert json.loads(api.requests[0].content) == {"summary": "Solo Portrait - Ana Santos"}


@pytest.mark.asyncio
async def test_watch_events_body(client, api):
    api.queue(
        "POST", f"{EVENTS_PATH}/watch",
        httpx.Response(200, json={"id": "chan-1", "resourceId": "res-1", "expiration": "1737000000000"}),
    )
    expiration = datetime(2025, 1, 16, 4, 0, tzinfo=timezone.utc)

    result = await client.watch_events("chan-1", "https://studio.example.com/webhooks/calendar", expiration, token="tok")

    body = json.loads(api.requests[0].content)
    assert body["type"] == "web_hook"
    assert body["token"] == "tok"
    assert body["expiration"] == str(int(expiration.timestamp() * 1000))
    assert result["resourceId"] == "res-1"
