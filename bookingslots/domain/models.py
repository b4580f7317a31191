"""
Domain models for schedule configuration, bookings and generated slots.

Records coming from the data source are plain dicts (one per table row);
each model offers ``from_record`` to parse them and ``to_record`` where the
model is written back.
"""

from dataclasses import dataclass, field, replace
from datetime import date, time
from typing import Any, Dict, Mapping, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidRequestError

DEFAULT_TIMEZONE = "America/Los_Angeles"

ACTIVE_APPOINTMENT_STATUSES = ("scheduled", "confirmed")
APPOINTMENT_STATUSES = ACTIVE_APPOINTMENT_STATUSES + ("completed", "cancelled", "no_show")
BLOCK_TYPES = ("vacation", "break", "personal", "holiday")

# Inclusive bounds accepted by the admin settings form
SETTINGS_LIMITS = {
    "buffer_time_minutes": (0, 60),
    "advance_booking_days": (1, 365),
    "minimum_notice_hours": (0, 168),
    "cancellation_cutoff_hours": (0, 168),
}


def parse_time(value: Any) -> time:
    """Parse ``HH:MM`` / ``HH:MM:SS`` strings (as stored in time columns)."""
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


def parse_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` string (or pass a date through)."""
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    return date.fromisoformat(str(value)[:10])


def combine(day: date, at: time, timezone: str) -> DateTime:
    """Place a wall-clock time on a calendar day in the given timezone."""
    return pendulum.datetime(
        day.year,
        day.month,
        day.day,
        at.hour,
        at.minute,
        at.second,
        tz=timezone,
    )


def weekday_index(day: date) -> int:
    """Weekday as stored in business hours: 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Ranges are half-open, so back-to-back ranges do not overlap. For
        non-empty ranges this is the same as "start inside, end inside, or
        fully containing".
        """
        return self.start < other.end and self.end > other.start

    def padded(self, minutes: int) -> "TimeRange":
        """Return the range widened by ``minutes`` on both sides."""
        if not minutes:
            return self
        return TimeRange(
            start=self.start.subtract(minutes=minutes),
            end=self.end.add(minutes=minutes),
        )

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BusinessHours:
    """Opening hours for one weekday (0=Sunday)."""
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True
    id: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise InvalidRequestError(
                f"day_of_week must be between 0 and 6, got {self.day_of_week}"
            )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "BusinessHours":
        return cls(
            id=_optional_str(record.get("id")),
            day_of_week=int(record["day_of_week"]),
            start_time=parse_time(record["start_time"]),
            end_time=parse_time(record["end_time"]),
            is_active=bool(record.get("is_active", True)),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M:%S"),
            "end_time": self.end_time.strftime("%H:%M:%S"),
            "is_active": self.is_active,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    def window_for(self, day: date, timezone: str) -> Optional[TimeRange]:
        """
        Working window on ``day``, or None when the day has no usable hours
        (inactive, or start not before end).
        """
        if not self.is_active:
            return None
        start = combine(day, self.start_time, timezone)
        end = combine(day, self.end_time, timezone)
        if start >= end:
            return None
        return TimeRange(start=start, end=end)


@dataclass(frozen=True)
class AppointmentSettings:
    """
    Global booking policy. Passed explicitly wherever it is needed.
    """
    buffer_time_minutes: int = 0
    advance_booking_days: int = 60
    minimum_notice_hours: int = 24
    cancellation_cutoff_hours: int = 24
    timezone: str = DEFAULT_TIMEZONE
    id: Optional[str] = None

    def __post_init__(self):
        for name, (low, high) in SETTINGS_LIMITS.items():
            value = getattr(self, name)
            if not low <= value <= high:
                raise InvalidRequestError(f"{name} must be between {low} and {high}, got {value}")
        try:
            pendulum.timezone(self.timezone)
        except Exception as exc:
            raise InvalidRequestError(f"Unknown timezone: {self.timezone}") from exc

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        fallback_timezone: str = DEFAULT_TIMEZONE,
    ) -> "AppointmentSettings":
        defaults = cls()
        return cls(
            id=_optional_str(record.get("id")),
            buffer_time_minutes=_int_or(record.get("buffer_time_minutes"), defaults.buffer_time_minutes),
            advance_booking_days=_int_or(record.get("advance_booking_days"), defaults.advance_booking_days),
            minimum_notice_hours=_int_or(record.get("minimum_notice_hours"), defaults.minimum_notice_hours),
            cancellation_cutoff_hours=_int_or(
                record.get("cancellation_cutoff_hours"), defaults.cancellation_cutoff_hours
            ),
            timezone=record.get("timezone") or fallback_timezone,
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "buffer_time_minutes": self.buffer_time_minutes,
            "advance_booking_days": self.advance_booking_days,
            "minimum_notice_hours": self.minimum_notice_hours,
            "cancellation_cutoff_hours": self.cancellation_cutoff_hours,
            "timezone": self.timezone,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    def merged(self, **changes: Any) -> "AppointmentSettings":
        """Return a copy with ``changes`` applied (validated again)."""
        if "id" in changes:
            raise InvalidRequestError("The settings record id cannot be changed")
        unknown = set(changes) - set(SETTINGS_LIMITS) - {"timezone"}
        if unknown:
            raise InvalidRequestError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)


@dataclass(frozen=True)
class TimeBlock:
    """Ad-hoc unavailable interval, e.g. vacation or a personal errand."""
    title: str
    start_datetime: DateTime
    end_datetime: DateTime
    block_type: str = "personal"
    id: Optional[str] = None

    def __post_init__(self):
        if self.block_type not in BLOCK_TYPES:
            raise InvalidRequestError(
                f"block_type must be one of {', '.join(BLOCK_TYPES)}, got {self.block_type!r}"
            )
        if self.start_datetime >= self.end_datetime:
            raise InvalidRequestError("Time block must start before it ends")

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "TimeBlock":
        return cls(
            id=_optional_str(record.get("id")),
            title=record.get("title") or "",
            start_datetime=pendulum.parse(record["start_datetime"]),
            end_datetime=pendulum.parse(record["end_datetime"]),
            block_type=record.get("block_type") or "personal",
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "title": self.title,
            "start_datetime": self.start_datetime.in_timezone("UTC").to_iso8601_string(),
            "end_datetime": self.end_datetime.in_timezone("UTC").to_iso8601_string(),
            "block_type": self.block_type,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_datetime, end=self.end_datetime)


@dataclass(frozen=True)
class Appointment:
    """
    The subset of an appointment row the scheduler works with.

    ``start_time``/``end_time`` are wall-clock times in the business timezone.
    """
    appointment_date: date
    start_time: time
    end_time: time
    status: str = "scheduled"
    id: Optional[str] = None
    service_id: Optional[str] = None
    client_id: Optional[str] = None
    notes: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        if self.status not in APPOINTMENT_STATUSES:
            raise InvalidRequestError(f"Unknown appointment status: {self.status!r}")
        if self.start_time >= self.end_time:
            raise InvalidRequestError("Appointment must start before it ends")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Appointment":
        known = {
            "id", "appointment_date", "start_time", "end_time",
            "status", "service_id", "client_id", "notes",
        }
        return cls(
            id=_optional_str(record.get("id")),
            appointment_date=parse_date(record["appointment_date"]),
            start_time=parse_time(record["start_time"]),
            end_time=parse_time(record["end_time"]),
            status=record.get("status") or "scheduled",
            service_id=_optional_str(record.get("service_id")),
            client_id=_optional_str(record.get("client_id")),
            notes=record.get("notes"),
            extra={k: v for k, v in record.items() if k not in known},
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "appointment_date": self.appointment_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M:%S"),
            "end_time": self.end_time.strftime("%H:%M:%S"),
            "status": self.status,
            "service_id": self.service_id,
            "client_id": self.client_id,
            "notes": self.notes,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    def time_range(self, timezone: str) -> TimeRange:
        """Absolute interval of the appointment in the business timezone."""
        return TimeRange(
            start=combine(self.appointment_date, self.start_time, timezone),
            end=combine(self.appointment_date, self.end_time, timezone),
        )


@dataclass(frozen=True)
class TimeSlot:
    """
    A generated candidate slot. Not persisted.
    """
    start: DateTime
    end: DateTime
    available: bool

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:mm – HH:mm
        """
        weekday = self.start.format("dddd")
        return (
            f"{weekday}, {self.start.format('YYYY-MM-DD')} | "
            f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"
        )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _int_or(value: Any, default: int) -> int:
    return default if value is None else int(value)
