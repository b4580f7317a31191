"""
In-memory schedule repository for running without a hosted database.
"""

import json
import logging
import uuid
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from pendulum import DateTime

from ..domain.exceptions import DataSourceError, NotFoundError
from ..domain.models import (
    Appointment,
    AppointmentSettings,
    BusinessHours,
    DEFAULT_TIMEZONE,
    TimeBlock,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_schedule_data.json"


class MockScheduleRepository:
    """
    Repository that keeps every table in memory.

    Data is seeded from a JSON file (see mock_schedule_data.json) or passed
    directly; writes only live as long as the instance.
    """

    def __init__(
        self,
        business_hours: Optional[List[BusinessHours]] = None,
        settings: Optional[AppointmentSettings] = None,
        appointments: Optional[List[Appointment]] = None,
        time_blocks: Optional[List[TimeBlock]] = None,
    ):
        self.business_hours: List[BusinessHours] = list(business_hours or [])
        self.settings = settings
        self.appointments: List[Appointment] = list(appointments or [])
        self.time_blocks: List[TimeBlock] = list(time_blocks or [])

    @classmethod
    def from_json_file(
        cls,
        data_file: Optional[Path] = None,
        fallback_timezone: str = DEFAULT_TIMEZONE,
    ) -> "MockScheduleRepository":
        """
        Load mock schedule data from a JSON file.

        The file holds one key per table: ``business_hours``,
        ``appointment_settings``, ``appointments`` and ``time_blocks``.
        """
        data_file = data_file or DEFAULT_DATA_FILE

        if not data_file.exists():
            raise FileNotFoundError(f"Mock data file not found: {data_file}")

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise DataSourceError(f"Invalid JSON in {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise DataSourceError(f"Mock data file {data_file} must contain an object at the root level")

        logger.debug("Loaded mock schedule data from %s", data_file)

        try:
            settings_record = data.get("appointment_settings")
            return cls(
                business_hours=[BusinessHours.from_record(r) for r in data.get("business_hours", [])],
                settings=(
                    AppointmentSettings.from_record(settings_record, fallback_timezone)
                    if settings_record
                    else None
                ),
                appointments=[Appointment.from_record(r) for r in data.get("appointments", [])],
                time_blocks=[TimeBlock.from_record(r) for r in data.get("time_blocks", [])],
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise DataSourceError(f"Malformed record in {data_file}: {exc}") from exc

    # Reads

    def get_business_hours(self) -> List[BusinessHours]:
        active = [hours for hours in self.business_hours if hours.is_active]
        return sorted(active, key=lambda hours: hours.day_of_week)

    def get_appointment_settings(self) -> Optional[AppointmentSettings]:
        return self.settings

    def get_appointments(self, start_date: date, end_date: date) -> List[Appointment]:
        return sorted(
            (
                appointment for appointment in self.appointments
                if appointment.is_active
                and start_date <= appointment.appointment_date <= end_date
            ),
            key=lambda appointment: (appointment.appointment_date, appointment.start_time),
        )

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        for appointment in self.appointments:
            if appointment.id == appointment_id:
                return appointment
        return None

    def get_time_blocks(self, start: DateTime, end: DateTime) -> List[TimeBlock]:
        return sorted(
            (
                block for block in self.time_blocks
                if block.start_datetime < end and block.end_datetime > start
            ),
            key=lambda block: block.start_datetime,
        )

    # Writes

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        stored = _with_id(appointment)
        self.appointments.append(stored)
        return stored

    def update_appointment(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        for index, appointment in enumerate(self.appointments):
            if appointment.id == appointment_id:
                record = appointment.to_record()
                record.update(changes)
                updated = Appointment.from_record(record)
                self.appointments[index] = updated
                return updated
        raise NotFoundError(f"Appointment {appointment_id} not found")

    def upsert_business_hours(self, hours: BusinessHours) -> BusinessHours:
        remaining = [h for h in self.business_hours if h.day_of_week != hours.day_of_week]
        existing = [h for h in self.business_hours if h.day_of_week == hours.day_of_week]
        stored = _with_id(hours, existing[0].id if existing else None)
        self.business_hours = remaining + [stored]
        return stored

    def insert_time_block(self, block: TimeBlock) -> TimeBlock:
        stored = _with_id(block)
        self.time_blocks.append(stored)
        return stored

    def delete_time_block(self, block_id: str) -> bool:
        before = len(self.time_blocks)
        self.time_blocks = [block for block in self.time_blocks if block.id != block_id]
        return len(self.time_blocks) != before

    def save_appointment_settings(self, settings: AppointmentSettings) -> AppointmentSettings:
        self.settings = _with_id(settings, settings.id)
        return self.settings


def _with_id(record, record_id: Optional[str] = None):
    """Return a copy of a frozen record carrying an id (new uuid if needed)."""
    return replace(record, id=record_id or record.id or uuid.uuid4().hex)
