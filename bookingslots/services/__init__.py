"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .admin import ScheduleAdminService
from .availability import AvailabilityService, ScheduleRepositoryProtocol
from .booking import BookingService, generate_confirmation_number

__all__ = [
    "AvailabilityService",
    "BookingService",
    "ScheduleAdminService",
    "ScheduleRepositoryProtocol",
    "generate_confirmation_number",
]
