"""Bookable-slot computation and the scheduling section of the instructions.

Two views of the owner's availability are produced per request:

* **model-visible** slots come only from the owner's configured weekly
  windows.  They go into the reply model's instructions, so nothing from
  the owner's private calendar can leak into a reply.
* **UI-visible** slots are the model-visible ones minus anything that
  overlaps a busy period on the owner's Google Calendar.  They go to the
  booking card only.

:func:`compute_slots` is pure; :class:`SchedulingService` does the I/O
(settings, windows, token refresh, free/busy) around it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from agent_runtime.models import (
    AvailabilityWindow,
    BusyPeriod,
    CalendarConnection,
    SchedulingSettings,
    Slot,
)
from agent_runtime.prompts import (
    SCHEDULING_AVAILABILITY,
    SCHEDULING_CONTEXT,
    SCHEDULING_NO_AVAILABILITY,
    SCHEDULING_NOT_ENABLED,
)
from agent_runtime.services.calendar_client import CalendarAPIError, GoogleCalendarClient
from agent_runtime.services.store import InMemoryStore

logger = logging.getLogger(__name__)

LOOKAHEAD_DAYS = 7
DEFAULT_SLOT_MINUTES = 30
# Display defaults for the session lines and booking card
DEFAULT_FREE_DISPLAY_MINUTES = 15
DEFAULT_PAID_DISPLAY_MINUTES = 30
MODEL_SLOT_LIMIT = 30
UI_SLOT_LIMIT = 50


# ── Pure slot computation ────────────────────────────────────────────


@dataclass(frozen=True)
class SlotViews:
    model_visible: tuple[Slot, ...]
    ui_visible: tuple[Slot, ...]


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def day_of_week(day: date) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (day.weekday() + 1) % 7


def overlaps(slot: Slot, busy: BusyPeriod) -> bool:
    """Slot starts inside, ends inside, or contains the busy period."""
    return (
        busy.start <= slot.start < busy.end
        or busy.start < slot.end <= busy.end
        or (slot.start <= busy.start and slot.end >= busy.end)
    )


def _tile_window(
    window: AvailabilityWindow,
    day: date,
    duration: timedelta,
    step: timedelta,
    earliest: datetime,
) -> list[Slot]:
    tz = resolve_timezone(window.timezone)
    start = datetime.combine(day, window.start_time, tzinfo=tz).astimezone(UTC)
    end = datetime.combine(day, window.end_time, tzinfo=tz).astimezone(UTC)

    slots = []
    current = start
    while current + duration <= end:
        if current >= earliest:
            slots.append(Slot(start=current, end=current + duration))
        current += step
    return slots


def compute_slots(
    windows: Sequence[AvailabilityWindow],
    now: datetime,
    *,
    duration_minutes: int = DEFAULT_SLOT_MINUTES,
    buffer_minutes: int = 15,
    advance_notice: timedelta = timedelta(hours=24),
    busy_periods: Iterable[BusyPeriod] = (),
    timezone: str | None = None,
) -> SlotViews:
    """Candidate slots over the next seven days in the owner's timezone.

    Args:
        windows: the owner's active weekly windows.
        now: current instant (timezone-aware).
        duration_minutes: length of each slot.
        buffer_minutes: gap between consecutive slots in a window.
        advance_notice: slots starting before ``now + advance_notice`` are dropped.
        busy_periods: calendar busy intervals; only affect the UI view.
        timezone: owner timezone; defaults to the first window's, else UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    owner_tz = resolve_timezone(timezone or (windows[0].timezone if windows else None))
    duration = timedelta(minutes=duration_minutes)
    step = duration + timedelta(minutes=buffer_minutes)
    earliest = now + advance_notice
    today = now.astimezone(owner_tz).date()

    slots: list[Slot] = []
    for offset in range(LOOKAHEAD_DAYS):
        day = today + timedelta(days=offset)
        dow = day_of_week(day)
        for window in windows:
            if window.day_of_week == dow:
                slots.extend(_tile_window(window, day, duration, step, earliest))
    slots.sort(key=lambda s: s.start)

    busy = list(busy_periods)
    ui_visible = [s for s in slots if not any(overlaps(s, b) for b in busy)]
    return SlotViews(model_visible=tuple(slots), ui_visible=tuple(ui_visible))


def format_time(moment: datetime) -> str:
    """``9:00 AM`` style, without a leading zero."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def format_date(moment: datetime) -> str:
    """``Monday, January 5`` style."""
    return f"{moment:%A}, {moment:%B} {moment.day}"


def group_slots_by_date(
    slots: Sequence[Slot], tz: ZoneInfo, limit: int = MODEL_SLOT_LIMIT,
) -> dict[str, list[str]]:
    """Local date heading → local start times, for the first *limit* slots."""
    grouped: dict[str, list[str]] = {}
    for slot in slots[:limit]:
        local = slot.start.astimezone(tz)
        grouped.setdefault(format_date(local), []).append(format_time(local))
    return grouped


# ── Booking card payload and model context ───────────────────────────


class SlotPayload(BaseModel):
    start: str
    end: str


class SchedulingPayload(BaseModel):
    """Data for the booking card.  Built from UI-visible slots only."""

    owner_id: str
    wallet_address: str | None = None
    slots: list[SlotPayload] = Field(default_factory=list)
    slots_by_date: dict[str, list[str]] = Field(default_factory=dict)
    free_enabled: bool = True
    paid_enabled: bool = False
    free_duration: int = DEFAULT_FREE_DISPLAY_MINUTES
    paid_duration: int = DEFAULT_PAID_DISPLAY_MINUTES
    price_cents: int = 0
    timezone: str = "UTC"


def session_lines(settings: SchedulingSettings) -> str:
    lines = []
    if settings.free_enabled:
        minutes = settings.free_duration_minutes or DEFAULT_FREE_DISPLAY_MINUTES
        lines.append(f"- **Free calls** available ({minutes} minutes)")
    if settings.paid_enabled:
        minutes = settings.paid_duration_minutes or DEFAULT_PAID_DISPLAY_MINUTES
        price = settings.price_cents / 100
        lines.append(f"- **Paid sessions** available ({minutes} minutes) - ${price:.2f} USD")
    return "\n".join(lines)


def build_scheduling_context(
    settings: SchedulingSettings, slots_by_date: dict[str, list[str]], timezone: str,
) -> str:
    """Scheduling section for the reply model, from model-visible slots."""
    if slots_by_date:
        slot_lines = "\n".join(
            f"**{day}:** {', '.join(times)}" for day, times in slots_by_date.items()
        )
        availability = SCHEDULING_AVAILABILITY.format(timezone=timezone, slot_lines=slot_lines)
    else:
        availability = SCHEDULING_NO_AVAILABILITY
    return SCHEDULING_CONTEXT.format(
        availability=availability, session_lines=session_lines(settings),
    )


@dataclass(frozen=True)
class SchedulingResult:
    context: str
    payload: SchedulingPayload | None = None


# ── Service ──────────────────────────────────────────────────────────


class SchedulingService:
    """Loads the owner's scheduling data and computes both slot views."""

    def __init__(self, store: InMemoryStore, calendar: GoogleCalendarClient | None = None):
        self._store = store
        self._calendar = calendar

    def _access_token(self, connection: CalendarConnection, now: datetime) -> str | None:
        expires_at = connection.token_expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        expired = expires_at is not None and expires_at <= now
        if connection.access_token and not expired:
            return connection.access_token
        if not connection.refresh_token:
            return connection.access_token if not expired else None

        logger.info("Refreshing Google access token for %s", connection.owner_id)
        token, expires_at = self._calendar.refresh_access_token(connection.refresh_token)
        self._store.update_calendar_token(connection.owner_id, token, expires_at)
        return token

    def busy_periods(self, owner_id: str, now: datetime) -> list[BusyPeriod] | None:
        """Owner's busy periods for the lookahead, or ``None`` if unavailable."""
        connection = self._store.get_calendar_connection(owner_id)
        if connection is None or self._calendar is None:
            return None
        try:
            token = self._access_token(connection, now)
            if not token:
                return None
            return self._calendar.free_busy(
                token, connection.calendar_id, now, now + timedelta(days=LOOKAHEAD_DAYS),
            )
        except CalendarAPIError as exc:
            logger.warning("Calendar check failed for %s: %s", owner_id, exc)
            return None

    def availability(
        self, owner_id: str, now: datetime, settings: SchedulingSettings | None = None,
    ) -> tuple[SlotViews, str]:
        """Both slot views and the owner timezone name."""
        settings = settings or self._store.get_scheduling_settings(owner_id) or SchedulingSettings(
            owner_id=owner_id,
        )
        windows = self._store.active_availability_windows(owner_id)
        timezone = windows[0].timezone if windows else "UTC"
        busy = self.busy_periods(owner_id, now) if windows else None

        views = compute_slots(
            windows,
            now,
            duration_minutes=settings.free_duration_minutes or DEFAULT_SLOT_MINUTES,
            buffer_minutes=settings.buffer_minutes,
            advance_notice=timedelta(hours=settings.advance_notice_hours),
            busy_periods=busy or (),
            timezone=timezone,
        )
        if busy is not None:
            logger.info(
                "Booking card slots filtered from %d to %d",
                len(views.model_visible), len(views.ui_visible),
            )
        return views, timezone

    def build(self, owner_id: str, now: datetime) -> SchedulingResult:
        """Model context plus booking card payload for a scheduling query."""
        settings = self._store.get_scheduling_settings(owner_id)
        if settings is None or not settings.scheduling_enabled:
            return SchedulingResult(context=SCHEDULING_NOT_ENABLED)

        views, timezone = self.availability(owner_id, now, settings)
        tz = resolve_timezone(timezone)
        model_by_date = group_slots_by_date(views.model_visible, tz)

        payload = SchedulingPayload(
            owner_id=owner_id,
            wallet_address=settings.wallet_address,
            slots=[
                SlotPayload(start=s.start.isoformat(), end=s.end.isoformat())
                for s in views.ui_visible[:UI_SLOT_LIMIT]
            ],
            slots_by_date=group_slots_by_date(views.ui_visible, tz),
            free_enabled=settings.free_enabled,
            paid_enabled=settings.paid_enabled,
            free_duration=settings.free_duration_minutes or DEFAULT_FREE_DISPLAY_MINUTES,
            paid_duration=settings.paid_duration_minutes or DEFAULT_PAID_DISPLAY_MINUTES,
            price_cents=settings.price_cents,
            timezone=timezone,
        )
        logger.info("Added scheduling context with %d days", len(model_by_date))
        return SchedulingResult(
            context=build_scheduling_context(settings, model_by_date, timezone),
            payload=payload,
        )
