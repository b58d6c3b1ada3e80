"""
Google Calendar adapter (Calendar API v3, OAuth2 refresh-token flow).
"""

import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from .base import Provider, RequestResult, RequestSpec, parse_records
from .request_engine import RequestEngine


GOOGLE_CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"

NO_TITLE = "N/A"


@dataclass
class CalendarSummary:
    """Entry of the user's calendar list."""
    id: str
    summary: str
    primary: bool = False

    @classmethod
    def from_api_response(cls, data: dict) -> "CalendarSummary":
        return cls(
            id=data["id"],
            summary=data.get("summary") or NO_TITLE,
            primary=bool(data.get("primary", False)),
        )


@dataclass
class CalendarEvent:
    """A single calendar event."""
    id: str
    summary: str
    start: str
    end: Optional[str] = None
    all_day: bool = False
    location: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.start} - {self.summary}"

    @classmethod
    def from_api_response(cls, data: dict) -> "CalendarEvent":
        start = data.get("start") or {}
        end = data.get("end") or {}
        return cls(
            id=data.get("id", ""),
            summary=data.get("summary") or NO_TITLE,
            start=start.get("dateTime") or start.get("date") or "",
            end=end.get("dateTime") or end.get("date"),
            all_day="dateTime" not in start and "date" in start,
            location=data.get("location"),
        )


def _items(data: Any) -> List[dict]:
    """
    Unwrap the ``items`` list of a Calendar API list response.

    Args:
        data: Decoded response body

    Returns:
        The items, or [] when the body has none
    """
    if isinstance(data, dict):
        return data.get("items") or []
    return []


class GoogleCalendarAdapter:
    """Calendar list and event resources on top of the shared request engine."""

    provider = Provider.GOOGLE

    def __init__(self, engine: RequestEngine, default_calendar_id: str = "primary"):
        self.engine = engine
        self.default_calendar_id = default_calendar_id

    async def list_calendars(self) -> RequestResult[List[CalendarSummary]]:
        """Calendars visible to the authenticated user."""
        result = await self.engine.execute(self.provider, "users/me/calendarList")
        return result.map(lambda data: parse_records(_items(data), CalendarSummary.from_api_response))

    async def list_events(
        self,
        calendar_id: Optional[str] = None,
        days_back: int = 30,
        days_ahead: int = 30,
        max_results: int = 10,
        now: Optional[datetime] = None,
    ) -> RequestResult[List[CalendarEvent]]:
        """
        Single events around today, ordered by start time.

        Args:
            calendar_id: Calendar to read (defaults to the configured calendar)
            days_back: Days before now to include
            days_ahead: Days after now to include
            max_results: Maximum events returned
            now: Reference time (defaults to the current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        calendar_id = calendar_id or self.default_calendar_id
        endpoint = f"calendars/{urllib.parse.quote(calendar_id, safe='')}/events"
        params = {
            "timeMin": (now - timedelta(days=days_back)).isoformat(),
            "timeMax": (now + timedelta(days=days_ahead)).isoformat(),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        result = await self.engine.execute(self.provider, endpoint, RequestSpec(params=params))
        return result.map(lambda data: parse_records(_items(data), CalendarEvent.from_api_response))
