"""
Core business logic for generating bookable time slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O). Everything the
walk needs is fetched by the caller beforehand and passed in.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

import pendulum
from pendulum import DateTime

from .exceptions import InvalidRequestError
from .models import (
    Appointment,
    AppointmentSettings,
    BusinessHours,
    TimeBlock,
    TimeRange,
    TimeSlot,
    weekday_index,
)

logger = logging.getLogger(__name__)

SLOT_INTERVAL_MINUTES = 30


class SlotGenerator:
    """
    Generates the candidate slots of one calendar day and marks each one
    available or not.

    Algorithm:
    1. Look up the active business hours for the weekday (closed -> no slots)
    2. Walk candidate starts at a fixed 30-minute stride while the slot
       still ends within the work day
    3. Reject candidates inside the minimum notice or beyond the advance
       booking limit
    4. Reject candidates overlapping an appointment (padded by the buffer)
       or a time block
    5. Return every candidate in ascending start order
    """

    def __init__(
        self,
        settings: AppointmentSettings,
        slot_interval_minutes: int = SLOT_INTERVAL_MINUTES,
    ):
        if slot_interval_minutes <= 0:
            raise InvalidRequestError("slot_interval_minutes must be greater than zero")
        self.settings = settings
        self.slot_interval_minutes = slot_interval_minutes

    @property
    def timezone(self) -> str:
        return self.settings.timezone

    def compute_slots(
        self,
        day: date,
        service_duration_minutes: int,
        business_hours: Sequence[BusinessHours],
        appointments: Sequence[Appointment],
        time_blocks: Sequence[TimeBlock],
        now: Optional[DateTime] = None,
    ) -> List[TimeSlot]:
        """
        Generate all slots for ``day``.

        Args:
            day: Calendar day, already expressed in the business timezone
            service_duration_minutes: Length of the service being booked
            business_hours: Business hours rows (inactive rows are ignored)
            appointments: Appointments on ``day``; cancelled ones are ignored
            time_blocks: Blocked periods overlapping ``day``
            now: Reference time for notice/advance rules (defaults to now)

        Returns:
            List of TimeSlot objects, available or not, ordered by start

        Raises:
            InvalidRequestError: If the duration is not positive
        """
        validate_duration(service_duration_minutes)

        hours = self.hours_for_day(business_hours, day)
        if hours is None:
            return []

        work_day = hours.window_for(day, self.timezone)
        if work_day is None:
            return []

        now = now or pendulum.now(self.timezone)
        busy = self._busy_ranges(appointments, time_blocks)

        slots: List[TimeSlot] = []
        candidate_start = work_day.start

        while candidate_start.add(minutes=service_duration_minutes) <= work_day.end:
            candidate = TimeRange(
                start=candidate_start,
                end=candidate_start.add(minutes=service_duration_minutes),
            )
            slots.append(
                TimeSlot(
                    start=candidate.start,
                    end=candidate.end,
                    available=self._is_free(candidate, busy, now),
                )
            )
            candidate_start = candidate_start.add(minutes=self.slot_interval_minutes)

        logger.debug(
            "Generated %d slot(s) for %s (%d min), %d available",
            len(slots),
            day.isoformat(),
            service_duration_minutes,
            sum(1 for slot in slots if slot.available),
        )
        return slots

    def check_slot(
        self,
        slot: TimeRange,
        appointments: Iterable[Appointment],
        time_blocks: Iterable[TimeBlock],
        now: Optional[DateTime] = None,
    ) -> bool:
        """
        Apply the notice, advance-limit and overlap rules to one interval.

        Used when committing a booking to re-validate the chosen slot
        against the current data.
        """
        now = now or pendulum.now(self.timezone)
        return self._is_free(slot, self._busy_ranges(appointments, time_blocks), now)

    def is_on_grid(self, day: date, start: DateTime, business_hours: Sequence[BusinessHours]) -> bool:
        """Check that ``start`` is one of the stride-aligned candidate starts of ``day``."""
        hours = self.hours_for_day(business_hours, day)
        if hours is None:
            return False
        work_day = hours.window_for(day, self.timezone)
        if work_day is None or start < work_day.start:
            return False
        offset_minutes = (start - work_day.start).total_seconds() / 60
        return offset_minutes % self.slot_interval_minutes == 0

    def hours_for_day(
        self,
        business_hours: Sequence[BusinessHours],
        day: date,
    ) -> Optional[BusinessHours]:
        """
        Find the active business hours row for the weekday of ``day``.

        If several active rows exist for the same weekday the one with the
        lowest id is used.
        """
        weekday = weekday_index(day)
        matches = [
            hours for hours in business_hours
            if hours.day_of_week == weekday and hours.is_active
        ]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "Found %d active business hours rows for weekday %d; using the lowest id",
                len(matches),
                weekday,
            )
            matches.sort(key=_id_sort_key)
        return matches[0]

    def _busy_ranges(
        self,
        appointments: Iterable[Appointment],
        time_blocks: Iterable[TimeBlock],
    ) -> List[TimeRange]:
        """Appointment intervals padded by the buffer, plus raw block intervals."""
        buffer_minutes = self.settings.buffer_time_minutes
        busy: List[TimeRange] = [
            appointment.time_range(self.timezone).padded(buffer_minutes)
            for appointment in appointments
            if appointment.is_active
        ]
        busy.extend(block.time_range for block in time_blocks)
        return busy

    def _is_free(self, candidate: TimeRange, busy: Sequence[TimeRange], now: DateTime) -> bool:
        earliest = now.add(hours=self.settings.minimum_notice_hours)
        if candidate.start < earliest:
            return False

        latest = now.add(days=self.settings.advance_booking_days)
        if candidate.start > latest:
            return False

        return not any(candidate.overlaps(interval) for interval in busy)


def _id_sort_key(hours: BusinessHours):
    # Numeric ids sort numerically, everything else lexically, missing ids last.
    if hours.id is None:
        return (2, 0, "")
    if hours.id.isdigit():
        return (0, int(hours.id), "")
    return (1, 0, hours.id)


def validate_duration(service_duration_minutes: int) -> None:
    """Reject non-integer or non-positive service durations."""
    if not isinstance(service_duration_minutes, int) or isinstance(service_duration_minutes, bool):
        raise InvalidRequestError("service_duration_minutes must be an integer")
    if service_duration_minutes <= 0:
        raise InvalidRequestError(
            f"service_duration_minutes must be greater than zero, got {service_duration_minutes}"
        )
