"""
Booking commit, cancellation and rescheduling.

Slot generation only advises; this service is where a chosen slot is
checked again against the current data before anything is written.
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time as time_module
from datetime import date, time
from typing import List, Optional

import pendulum

from ..domain.exceptions import (
    CancellationNotAllowedError,
    InvalidRequestError,
    NotFoundError,
    SlotUnavailableError,
)
from ..domain.models import Appointment, AppointmentSettings, TimeRange, combine
from ..domain.slot_generator import SLOT_INTERVAL_MINUTES, validate_duration
from .availability import (
    AvailabilityService,
    Clock,
    ScheduleRepositoryProtocol,
    day_bounds,
)

logger = logging.getLogger(__name__)

_BASE36_DIGITS = string.digits + string.ascii_uppercase


class BookingService:
    """
    Commits bookings after re-validating the requested slot.

    Check-then-write runs under a process-wide lock so two callers in the
    same process cannot both take the same slot; across processes the data
    source rejects conflicting inserts (surfaced as SlotUnavailableError).
    """

    def __init__(
        self,
        repository: ScheduleRepositoryProtocol,
        clock: Optional[Clock] = None,
        slot_interval_minutes: int = SLOT_INTERVAL_MINUTES,
    ) -> None:
        self._repository = repository
        self._clock = clock or pendulum.now
        self._availability = AvailabilityService(
            repository=repository,
            clock=self._clock,
            slot_interval_minutes=slot_interval_minutes,
        )
        self._lock = threading.Lock()

    def book_appointment(
        self,
        day: date,
        start_time: time,
        service_duration_minutes: int,
        *,
        service_id: Optional[str] = None,
        client_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Book a slot if it is still available.

        Returns:
            The stored appointment (status ``scheduled``)

        Raises:
            InvalidRequestError: If the duration or start time is invalid
            SlotUnavailableError: If the slot is no longer bookable
        """
        validate_duration(service_duration_minutes)

        with self._lock:
            settings = self._require_settings()
            slot = self._validate_slot(settings, day, start_time, service_duration_minutes)

            appointment = Appointment(
                appointment_date=day,
                start_time=slot.start.time(),
                end_time=slot.end.time(),
                status="scheduled",
                service_id=service_id,
                client_id=client_id,
                notes=notes,
            )
            stored = self._repository.insert_appointment(appointment)

        logger.info("Booked appointment %s for %s", stored.id, slot)
        return stored

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        """
        Cancel an appointment unless it starts within the cancellation cut-off.

        Raises:
            NotFoundError: If the appointment does not exist
            CancellationNotAllowedError: If it is not active or too close
        """
        with self._lock:
            appointment = self._get_appointment(appointment_id)
            if not appointment.is_active:
                raise CancellationNotAllowedError(
                    f"Appointment {appointment_id} is {appointment.status} and cannot be cancelled"
                )

            settings = self._require_settings()
            now = self._clock(settings.timezone)
            starts_at = appointment.time_range(settings.timezone).start
            cutoff = now.add(hours=settings.cancellation_cutoff_hours)

            if starts_at < cutoff:
                raise CancellationNotAllowedError(
                    f"Appointments can only be cancelled at least "
                    f"{settings.cancellation_cutoff_hours} hour(s) in advance"
                )

            cancelled = self._repository.update_appointment(
                appointment_id,
                {"status": "cancelled", "updated_at": now.in_timezone("UTC").to_iso8601_string()},
            )

        logger.info("Cancelled appointment %s", appointment_id)
        return cancelled

    def reschedule_appointment(
        self,
        appointment_id: str,
        new_day: date,
        new_start_time: time,
    ) -> Appointment:
        """
        Move an active appointment to a new slot, keeping its duration.

        The appointment being moved does not count as a conflict.
        """
        with self._lock:
            appointment = self._get_appointment(appointment_id)
            if not appointment.is_active:
                raise InvalidRequestError(
                    f"Appointment {appointment_id} is {appointment.status} and cannot be rescheduled"
                )

            settings = self._require_settings()
            duration = appointment.time_range(settings.timezone).duration_minutes()
            slot = self._validate_slot(
                settings,
                new_day,
                new_start_time,
                duration,
                ignore_appointment_id=appointment_id,
            )
            now = self._clock(settings.timezone)
            moved = self._repository.update_appointment(
                appointment_id,
                {
                    "appointment_date": new_day.isoformat(),
                    "start_time": slot.start.format("HH:mm:ss"),
                    "end_time": slot.end.format("HH:mm:ss"),
                    "updated_at": now.in_timezone("UTC").to_iso8601_string(),
                },
            )

        logger.info("Rescheduled appointment %s to %s", appointment_id, slot)
        return moved

    def _validate_slot(
        self,
        settings: AppointmentSettings,
        day: date,
        start_time: time,
        duration_minutes: int,
        ignore_appointment_id: Optional[str] = None,
    ) -> TimeRange:
        """Re-run the slot rules against freshly fetched data."""
        generator = self._availability.build_generator(settings)
        business_hours = self._repository.get_business_hours()

        hours = generator.hours_for_day(business_hours, day)
        work_day = hours.window_for(day, settings.timezone) if hours else None
        if work_day is None:
            raise SlotUnavailableError(f"The business is closed on {day.isoformat()}")

        start = combine(day, start_time, settings.timezone)
        if not generator.is_on_grid(day, start, business_hours):
            raise InvalidRequestError(
                f"{start_time.strftime('%H:%M')} is not a valid slot start on {day.isoformat()}"
            )

        slot = TimeRange(start=start, end=start.add(minutes=duration_minutes))
        if slot.end > work_day.end:
            raise SlotUnavailableError("The requested slot ends after business hours")

        appointments: List[Appointment] = [
            appointment for appointment in self._repository.get_appointments(day, day)
            if ignore_appointment_id is None or appointment.id != ignore_appointment_id
        ]
        block_start, block_end = day_bounds(day, settings.timezone)
        time_blocks = self._repository.get_time_blocks(block_start, block_end)

        if not generator.check_slot(slot, appointments, time_blocks, now=self._clock(settings.timezone)):
            raise SlotUnavailableError(f"The slot {slot} is no longer available")

        return slot

    def _require_settings(self) -> AppointmentSettings:
        settings = self._availability.load_settings()
        if settings is None:
            raise SlotUnavailableError("Online booking is not configured")
        return settings

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self._repository.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment


def generate_confirmation_number() -> str:
    """
    Build a short human-readable confirmation code: the current time in
    milliseconds as base 36, a dash, and four random base-36 characters.
    """
    timestamp = _to_base36(int(time_module.time() * 1000))
    suffix = "".join(random.choice(_BASE36_DIGITS) for _ in range(4))
    return f"{timestamp}-{suffix}"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))
