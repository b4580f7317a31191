"""
Admin-side writes: business hours, time blocks and appointment settings.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Any

from pendulum import DateTime

from ..domain.exceptions import InvalidRequestError, NotFoundError
from ..domain.models import AppointmentSettings, BusinessHours, TimeBlock
from .availability import ScheduleRepositoryProtocol

logger = logging.getLogger(__name__)


class ScheduleAdminService:
    """Validates admin edits before handing them to the repository."""

    def __init__(self, repository: ScheduleRepositoryProtocol) -> None:
        self._repository = repository

    def update_business_hours(
        self,
        day_of_week: int,
        start_time: time,
        end_time: time,
        is_active: bool = True,
    ) -> BusinessHours:
        """
        Set the hours of one weekday (0=Sunday). Rows are keyed by weekday,
        so this replaces any existing row for that day.
        """
        if is_active and start_time >= end_time:
            raise InvalidRequestError("Opening time must be before closing time")

        hours = BusinessHours(
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
        )
        stored = self._repository.upsert_business_hours(hours)
        logger.info(
            "Business hours for weekday %d set to %s-%s (%s)",
            day_of_week,
            start_time.strftime("%H:%M"),
            end_time.strftime("%H:%M"),
            "open" if is_active else "closed",
        )
        return stored

    def create_time_block(
        self,
        title: str,
        start: DateTime,
        end: DateTime,
        block_type: str = "personal",
    ) -> TimeBlock:
        block = TimeBlock(
            title=title.strip(),
            start_datetime=start,
            end_datetime=end,
            block_type=block_type,
        )
        stored = self._repository.insert_time_block(block)
        logger.info("Blocked %s - %s (%s)", start, end, block_type)
        return stored

    def delete_time_block(self, block_id: str) -> None:
        if not self._repository.delete_time_block(block_id):
            raise NotFoundError(f"Time block {block_id} not found")
        logger.info("Removed time block %s", block_id)

    def update_appointment_settings(self, **changes: Any) -> AppointmentSettings:
        """
        Merge ``changes`` into the current settings record and store it.
        A missing record starts from the defaults.
        """
        current = self._repository.get_appointment_settings() or AppointmentSettings()
        updated = current.merged(**changes)
        stored = self._repository.save_appointment_settings(updated)
        logger.info("Appointment settings updated: %s", ", ".join(sorted(changes)) or "no changes")
        return stored
