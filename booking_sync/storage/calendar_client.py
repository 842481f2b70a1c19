"""External calendar adapter over the Google Calendar v3 REST API.

Owns the OAuth refresh-token flow and returns events as ``CalendarEvent``.
"""

import time
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx

from booking_sync.logging import get_logger
from booking_sync.models.calendar_event import CalendarEvent
from booking_sync.models.errors import CalendarError, CalendarNotConfiguredError

logger = get_logger(__name__)

MAX_RESULTS_PER_PAGE = 2500
# Refresh this long before the provider's stated expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class CalendarClient:
    """Event CRUD and push-channel registration for one calendar."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        calendar_id: str = "primary",
        api_base: str = "https://www.googleapis.com/calendar/v3",
        token_url: str = "https://oauth2.googleapis.com/token",
        timeout_seconds: float = 10.0,
        send_updates: str = "all",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize calendar client."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.calendar_id = calendar_id
        self.api_base = api_base.rstrip("/")
        self.token_url = token_url
        self.timeout_seconds = timeout_seconds
        self.send_updates = send_updates
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    @property
    def _events_path(self) -> str:
        return f"{self.api_base}/calendars/{quote(self.calendar_id, safe='')}/events"

    async def connect(self) -> None:
        """Create the pooled HTTP client."""
        self._client = httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _http(self) -> httpx.AsyncClient:
        if not self.configured:
            raise CalendarNotConfiguredError()
        if self._client is None:
            await self.connect()
        return self._client

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a cached access token, refreshing it when stale."""
        if (
            not force_refresh
            and self._access_token
            and time.monotonic() < self._token_expires_at
        ):
            return self._access_token

        client = await self._http()
        try:
            response = await client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            logger.error("calendar_token_refresh_failed", error=str(e))
            raise CalendarError(f"Token endpoint unreachable: {e.__class__.__name__}") from e

        if response.status_code != 200:
            logger.error(
                "calendar_token_refresh_rejected",
                status_code=response.status_code,
                body=response.text[:300],
            )
            raise CalendarError("Token refresh rejected", status_code=response.status_code)

        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        logger.debug("calendar_token_refreshed", expires_in=expires_in)
        return self._access_token

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._http()
        token = await self.get_access_token()

        for attempt in range(2):
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.HTTPError as e:
                logger.error("calendar_request_failed", method=method, url=url, error=str(e))
                raise CalendarError(f"Calendar unreachable: {e.__class__.__name__}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info("calendar_token_expired_retrying")
                token = await self.get_access_token(force_refresh=True)
                continue
            break

        if response.status_code >= 400:
            log = logger.info if response.status_code in (404, 410) else logger.error
            log(
                "calendar_error_response",
                method=method,
                url=url,
                status_code=response.status_code,
                body=response.text[:300],
            )
            raise CalendarError(
                f"Calendar returned {response.status_code}", status_code=response.status_code
            )
        return response

    async def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        query: Optional[str] = None,
    ) -> list[CalendarEvent]:
        """List single (expanded) events overlapping [time_min, time_max)."""
        params: dict[str, Any] = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS_PER_PAGE,
        }
        if query:
            params["q"] = query

        events: list[CalendarEvent] = []
        while True:
            response = await self._request("GET", self._events_path, params=params)
            payload = response.json()
            events.extend(CalendarEvent.from_api(item) for item in payload.get("items", []))
            next_page = payload.get("nextPageToken")
            if not next_page:
                break
            params["pageToken"] = next_page

        logger.debug("calendar_events_listed", count=len(events), query=query)
        return events

    async def get_event(self, event_id: str) -> CalendarEvent:
        response = await self._request("GET", f"{self._events_path}/{quote(event_id, safe='')}")
        return CalendarEvent.from_api(response.json())

    async def insert_event(self, body: dict[str, Any]) -> CalendarEvent:
        response = await self._request(
            "POST", self._events_path, params={"sendUpdates": self.send_updates}, json=body
        )
        event = CalendarEvent.from_api(response.json())
        logger.info("calendar_event_created", event_id=event.event_id)
        return event

    async def patch_event(self, event_id: str, body: dict[str, Any]) -> CalendarEvent:
        response = await self._request(
            "PATCH",
            f"{self._events_path}/{quote(event_id, safe='')}",
            params={"sendUpdates": self.send_updates},
            json=body,
        )
        logger.info("calendar_event_patched", event_id=event_id, fields=sorted(body))
        return CalendarEvent.from_api(response.json())

    async def delete_event(self, event_id: str) -> bool:
        """Delete an event; returns False when it was already gone."""
        try:
            await self._request(
                "DELETE",
                f"{self._events_path}/{quote(event_id, safe='')}",
                params={"sendUpdates": self.send_updates},
            )
        except CalendarError as e:
            if e.is_gone:
                logger.info("calendar_event_already_deleted", event_id=event_id)
                return False
            raise
        logger.info("calendar_event_deleted", event_id=event_id)
        return True

    async def watch_events(
        self,
        channel_id: str,
        address: str,
        expiration: datetime,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        """Register a push-notification channel for event changes."""
        body: dict[str, Any] = {
            "id": channel_id,
            "type": "web_hook",
            "address": address,
            "expiration": str(int(expiration.timestamp() * 1000)),
        }
        if token:
            body["token"] = token
        response = await self._request("POST", f"{self._events_path}/watch", json=body)
        return response.json()

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        await self._request(
            "POST",
            f"{self.api_base}/channels/stop",
            json={"id": channel_id, "resourceId": resource_id},
        )
