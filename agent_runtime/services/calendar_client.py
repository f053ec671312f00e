"""HTTP client for Google Calendar free/busy lookups and OAuth token refresh.

Calendar API docs: https://developers.google.com/calendar/api/v3/reference/freebusy/query
Token refresh:     https://developers.google.com/identity/protocols/oauth2/web-server#offline

Calls are made once with a timeout and never retried.  Any failure raises
:class:`CalendarAPIError`; the scheduling service decides what that means
for the request.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from agent_runtime.config import (
    GOOGLE_CALENDAR_BASE_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_TOKEN_URL,
)
from agent_runtime.models import BusyPeriod
from agent_runtime.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0
# Used when the token endpoint omits ``expires_in``
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class CalendarAPIError(Exception):
    """Raised when a Google Calendar or OAuth call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GoogleCalendarClient:
    """Thin wrapper around the two Google endpoints the scheduler needs."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        http_client: httpx.Client | None = None,
        base_url: str = GOOGLE_CALENDAR_BASE_URL,
        token_url: str = GOOGLE_TOKEN_URL,
    ):
        self._client_id = client_id or GOOGLE_CLIENT_ID
        self._client_secret = client_secret or GOOGLE_CLIENT_SECRET
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._client = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        form: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute one HTTP request and return the decoded JSON body."""
        try:
            with metrics.track("google_calendar", operation):
                response = self._client.request(
                    method, url, headers=headers, json=json_body, data=form,
                )
                if response.status_code >= 400:
                    raise CalendarAPIError(
                        f"Google API error {response.status_code}: {response.text[:300]}",
                        status_code=response.status_code,
                    )
                return response.json()
        except httpx.HTTPError as exc:
            raise CalendarAPIError(
                f"Google API request failed: {type(exc).__name__}: {exc}"
            ) from exc
        except ValueError as exc:
            raise CalendarAPIError(f"Google API returned invalid JSON: {exc}") from exc

    # ── Public API methods ───────────────────────────────────────────

    def refresh_access_token(self, refresh_token: str) -> tuple[str, datetime]:
        """Exchange a refresh token for a new access token.

        Returns:
            ``(access_token, expires_at)`` with *expires_at* in UTC.
        """
        if not self._client_id or not self._client_secret:
            raise CalendarAPIError("Google OAuth client credentials are not configured.")

        data = self._request(
            "POST",
            self._token_url,
            operation="oauth_refresh",
            form={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        access_token = data.get("access_token")
        if not access_token:
            raise CalendarAPIError("Token endpoint returned no access_token.")

        expires_in = data.get("expires_in")
        lifetime = timedelta(seconds=int(expires_in)) if expires_in else DEFAULT_TOKEN_LIFETIME
        return access_token, datetime.now(UTC) + lifetime

    def free_busy(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[BusyPeriod]:
        """Return the busy intervals of *calendar_id* between two instants."""
        data = self._request(
            "POST",
            f"{self._base_url}/freeBusy",
            operation="freebusy_query",
            headers={"Authorization": f"Bearer {access_token}"},
            json_body={
                "timeMin": time_min.astimezone(UTC).isoformat(),
                "timeMax": time_max.astimezone(UTC).isoformat(),
                "items": [{"id": calendar_id}],
            },
        )
        busy = data.get("calendars", {}).get(calendar_id, {}).get("busy", [])
        try:
            periods = [BusyPeriod.model_validate(b) for b in busy]
        except ValueError as exc:
            raise CalendarAPIError(f"Malformed busy period: {exc}") from exc
        logger.debug("Calendar %s has %d busy periods", calendar_id, len(periods))
        return periods
