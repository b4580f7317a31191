"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentSettings,
    BusinessHours,
    TimeBlock,
    TimeRange,
    TimeSlot,
)
from .slot_generator import SLOT_INTERVAL_MINUTES, SlotGenerator

__all__ = [
    "Appointment",
    "AppointmentSettings",
    "BusinessHours",
    "TimeBlock",
    "TimeRange",
    "TimeSlot",
    "SlotGenerator",
    "SLOT_INTERVAL_MINUTES",
]
