"""
Application service for computing bookable slots.

The service fetches every collaborator (settings, business hours,
appointments, time blocks) up front through a repository adapter and then
hands the data to the pure ``SlotGenerator``. Any fetch failure propagates;
no partial slot list is ever returned.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.models import (
    Appointment,
    AppointmentSettings,
    BusinessHours,
    TimeBlock,
    TimeSlot,
)
from ..domain.slot_generator import SLOT_INTERVAL_MINUTES, SlotGenerator, validate_duration

logger = logging.getLogger(__name__)

Clock = Callable[[str], DateTime]


class ScheduleRepositoryProtocol(Protocol):
    """Protocol describing the data source behaviour needed by the services."""

    def get_business_hours(self) -> List[BusinessHours]:
        """Return active business hours rows."""

    def get_appointment_settings(self) -> Optional[AppointmentSettings]:
        """Return the global settings record, or None when missing."""

    def get_appointments(self, start_date: date, end_date: date) -> List[Appointment]:
        """Return scheduled/confirmed appointments within the date range."""

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Return one appointment by id, whatever its status."""

    def get_time_blocks(self, start: DateTime, end: DateTime) -> List[TimeBlock]:
        """Return time blocks overlapping ``[start, end)``."""

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Store a new appointment and return it with its id."""

    def update_appointment(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        """Apply column changes to an appointment and return the result."""

    def upsert_business_hours(self, hours: BusinessHours) -> BusinessHours:
        """Insert or replace the row for ``hours.day_of_week``."""

    def insert_time_block(self, block: TimeBlock) -> TimeBlock:
        """Store a new time block and return it with its id."""

    def delete_time_block(self, block_id: str) -> bool:
        """Delete a time block; return False when it did not exist."""

    def save_appointment_settings(self, settings: AppointmentSettings) -> AppointmentSettings:
        """Persist the settings record."""


def day_bounds(day: date, timezone: str) -> tuple[DateTime, DateTime]:
    """Start of ``day`` and start of the following day in ``timezone``."""
    start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
    return start, start.add(days=1)


class AvailabilityService:
    """
    Orchestrates schedule retrieval and slot generation.

    Dependency inversion toward a protocol makes it easy to plug in the
    hosted database adapter or the in-memory repository in tests.
    """

    def __init__(
        self,
        repository: ScheduleRepositoryProtocol,
        clock: Optional[Clock] = None,
        slot_interval_minutes: int = SLOT_INTERVAL_MINUTES,
    ) -> None:
        self._repository = repository
        self._clock = clock or pendulum.now
        self._slot_interval_minutes = slot_interval_minutes

    def load_settings(self) -> Optional[AppointmentSettings]:
        """Fetch the settings record, logging when it is missing."""
        settings = self._repository.get_appointment_settings()
        if settings is None:
            logger.warning("No appointment settings configured; no slots can be offered")
        return settings

    def build_generator(self, settings: AppointmentSettings) -> SlotGenerator:
        return SlotGenerator(settings=settings, slot_interval_minutes=self._slot_interval_minutes)

    def get_time_slots(
        self,
        day: date,
        service_duration_minutes: int,
        *,
        only_available: bool = False,
    ) -> List[TimeSlot]:
        """
        Compute the slots of ``day`` for a service of the given length.

        Args:
            day: Calendar day in the business timezone
            service_duration_minutes: Positive service length in minutes
            only_available: Drop slots that cannot be booked

        Returns:
            Slots in ascending start order; empty when the business is closed
            or booking is not configured

        Raises:
            InvalidRequestError: If the duration is not positive
            DataSourceError: If any collaborator fetch fails
        """
        validate_duration(service_duration_minutes)

        settings = self.load_settings()
        if settings is None:
            return []

        business_hours = self._repository.get_business_hours()
        appointments = self._repository.get_appointments(day, day)
        start, end = day_bounds(day, settings.timezone)
        time_blocks = self._repository.get_time_blocks(start, end)

        slots = self.build_generator(settings).compute_slots(
            day=day,
            service_duration_minutes=service_duration_minutes,
            business_hours=business_hours,
            appointments=appointments,
            time_blocks=time_blocks,
            now=self._clock(settings.timezone),
        )

        if only_available:
            return [slot for slot in slots if slot.available]
        return slots

    def get_available_dates(
        self,
        start_day: date,
        days: int,
        service_duration_minutes: int,
    ) -> List[date]:
        """
        Return the days in ``[start_day, start_day + days)`` that have at
        least one bookable slot. Data is fetched once for the whole range.
        """
        validate_duration(service_duration_minutes)
        if days <= 0:
            return []

        settings = self.load_settings()
        if settings is None:
            return []

        end_day = start_day + timedelta(days=days - 1)
        business_hours = self._repository.get_business_hours()
        appointments = self._repository.get_appointments(start_day, end_day)
        range_start, _ = day_bounds(start_day, settings.timezone)
        _, range_end = day_bounds(end_day, settings.timezone)
        time_blocks = self._repository.get_time_blocks(range_start, range_end)

        generator = self.build_generator(settings)
        now = self._clock(settings.timezone)

        available_days: List[date] = []
        for offset in range(days):
            day = start_day + timedelta(days=offset)
            day_start, day_end = day_bounds(day, settings.timezone)
            slots = generator.compute_slots(
                day=day,
                service_duration_minutes=service_duration_minutes,
                business_hours=business_hours,
                appointments=[a for a in appointments if a.appointment_date == day],
                time_blocks=[
                    b for b in time_blocks
                    if b.start_datetime < day_end and b.end_datetime > day_start
                ],
                now=now,
            )
            if any(slot.available for slot in slots):
                available_days.append(day)

        return available_days
