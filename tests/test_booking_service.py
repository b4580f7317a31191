"""
Tests for booking commit, cancellation and rescheduling.
"""

import re
import threading
import time as time_module
from datetime import date, time

import pendulum
import pytest

from bookingslots.adapters.mock_repository import MockScheduleRepository
from bookingslots.domain.exceptions import (
    CancellationNotAllowedError,
    InvalidRequestError,
    NotFoundError,
    SlotUnavailableError,
)
from bookingslots.domain.models import Appointment, AppointmentSettings, BusinessHours, TimeBlock
from bookingslots.services.booking import BookingService, generate_confirmation_number

TZ = "America/Los_Angeles"
WEDNESDAY = date(2026, 10, 21)


def _clock(tz: str):
    return pendulum.datetime(2026, 10, 20, 8, tz=tz)


@pytest.fixture
def repository():
    return MockScheduleRepository(
        business_hours=[
            BusinessHours(id=str(weekday), day_of_week=weekday, start_time=time(9), end_time=time(17))
            for weekday in range(1, 6)
        ],
        settings=AppointmentSettings(
            buffer_time_minutes=15,
            minimum_notice_hours=2,
            advance_booking_days=60,
            cancellation_cutoff_hours=24,
            timezone=TZ,
        ),
        appointments=[
            Appointment(id="a1", appointment_date=WEDNESDAY, start_time=time(10), end_time=time(11)),
            Appointment(id="a2", appointment_date=date(2026, 10, 20), start_time=time(15), end_time=time(16)),
        ],
    )


@pytest.fixture
def service(repository):
    return BookingService(repository=repository, clock=_clock)


class TestBookAppointment:
    """Tests for committing a booking."""

    def test_books_free_slot(self, service, repository):
        """A free slot is stored as a scheduled appointment."""
        stored = service.book_appointment(WEDNESDAY, time(11, 30), 60, service_id="swedish-60")

        assert stored.id
        assert stored.status == "scheduled"
        assert stored.start_time == time(11, 30)
        assert stored.end_time == time(12, 30)
        assert stored in repository.appointments

    def test_rejects_slot_inside_buffer(self, service):
        """The buffer around an existing booking is enforced at commit time."""
        with pytest.raises(SlotUnavailableError):
            service.book_appointment(WEDNESDAY, time(11), 60)

    def test_second_booking_of_same_slot_fails(self, service):
        """Two bookings of the same slot: the second one loses."""
        service.book_appointment(WEDNESDAY, time(14), 60)

        with pytest.raises(SlotUnavailableError):
            service.book_appointment(WEDNESDAY, time(14), 60)

    def test_rejects_newly_blocked_time(self, service, repository):
        """A block added after the slot list was shown is respected."""
        repository.insert_time_block(
            TimeBlock(
                title="Errand",
                start_datetime=pendulum.datetime(2026, 10, 21, 13, tz=TZ),
                end_datetime=pendulum.datetime(2026, 10, 21, 14, tz=TZ),
            )
        )

        with pytest.raises(SlotUnavailableError):
            service.book_appointment(WEDNESDAY, time(13), 30)

    def test_rejects_off_grid_start(self, service):
        """Starts must be on the 30-minute grid."""
        with pytest.raises(InvalidRequestError, match="not a valid slot start"):
            service.book_appointment(WEDNESDAY, time(13, 15), 60)

    def test_rejects_closed_day(self, service):
        """Nothing can be booked on a closed day."""
        with pytest.raises(SlotUnavailableError, match="closed"):
            service.book_appointment(date(2026, 10, 25), time(10), 60)

    def test_rejects_slot_ending_after_hours(self, service):
        """A service must end by closing time."""
        with pytest.raises(SlotUnavailableError, match="after business hours"):
            service.book_appointment(WEDNESDAY, time(16, 30), 60)

    def test_rejects_short_notice(self, service):
        """The minimum notice applies at commit time too."""
        with pytest.raises(SlotUnavailableError):
            service.book_appointment(date(2026, 10, 20), time(9), 60)

    def test_rejects_when_not_configured(self, repository):
        """No settings record means booking is closed."""
        repository.settings = None
        service = BookingService(repository=repository, clock=_clock)

        with pytest.raises(SlotUnavailableError, match="not configured"):
            service.book_appointment(WEDNESDAY, time(13), 60)

    def test_rejects_invalid_duration(self, service):
        """Durations must be positive."""
        with pytest.raises(InvalidRequestError):
            service.book_appointment(WEDNESDAY, time(13), -60)


class TestCancelAppointment:
    """Tests for cancellation."""

    def test_cancels_outside_cutoff(self, service, repository):
        """Appointments well in advance can be cancelled."""
        cancelled = service.cancel_appointment("a1")

        assert cancelled.status == "cancelled"
        assert repository.get_appointment("a1").status == "cancelled"

    def test_refuses_inside_cutoff(self, service):
        """Appointments starting within the cut-off cannot be cancelled."""
        with pytest.raises(CancellationNotAllowedError, match="24 hour"):
            service.cancel_appointment("a2")

    def test_refuses_already_cancelled(self, service):
        """Cancelling twice is refused."""
        service.cancel_appointment("a1")

        with pytest.raises(CancellationNotAllowedError):
            service.cancel_appointment("a1")

    def test_cancelled_slot_becomes_bookable(self, service):
        """Freed time can be booked again."""
        service.cancel_appointment("a1")

        stored = service.book_appointment(WEDNESDAY, time(10), 60)

        assert stored.start_time == time(10)

    def test_unknown_appointment(self, service):
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            service.cancel_appointment("missing")


class TestRescheduleAppointment:
    """Tests for rescheduling."""

    def test_moves_and_ignores_itself(self, service, repository):
        """Moving by half an hour does not conflict with the old position."""
        moved = service.reschedule_appointment("a1", WEDNESDAY, time(10, 30))

        assert moved.start_time == time(10, 30)
        assert moved.end_time == time(11, 30)
        assert repository.get_appointment("a1").start_time == time(10, 30)

    def test_conflict_with_other_appointment(self, service):
        """Another booking still blocks the new slot."""
        service.book_appointment(WEDNESDAY, time(14), 60)

        with pytest.raises(SlotUnavailableError):
            service.reschedule_appointment("a1", WEDNESDAY, time(14, 30))

    def test_cancelled_cannot_be_rescheduled(self, service):
        """Only active appointments can move."""
        service.cancel_appointment("a1")

        with pytest.raises(InvalidRequestError):
            service.reschedule_appointment("a1", WEDNESDAY, time(14))



class SlowReadRepository(MockScheduleRepository):
    """Widens the gap between the availability check and the insert."""

    def get_appointments(self, start_date, end_date):
        appointments = super().get_appointments(start_date, end_date)
        time_module.sleep(0.01)
        return appointments


class TestConcurrency:
    """Tests for serialized check-then-write."""

    def test_parallel_bookings_of_one_slot(self, repository):
        """Of several threads booking the same slot exactly one wins."""
        slow = SlowReadRepository(
            business_hours=repository.business_hours,
            settings=repository.settings,
            appointments=repository.appointments,
        )
        service = BookingService(repository=slow, clock=_clock)
        attempts = 8
        barrier = threading.Barrier(attempts)
        results = []

        def attempt():
            barrier.wait()
            try:
                service.book_appointment(WEDNESDAY, time(13), 60)
                results.append("booked")
            except SlotUnavailableError:
                results.append("taken")

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["booked"] + ["taken"] * (attempts - 1)
        assert len([a for a in slow.appointments if a.start_time == time(13)]) == 1

    @pytest.mark.parametrize(
        "operation, args",
        [
            ("reschedule_appointment", ("a1", WEDNESDAY, time(10, 30))),
            ("cancel_appointment", ("a1",)),
        ],
    )
    def test_appointment_is_read_under_the_lock(self, service, repository, operation, args):
        """Status checks happen while the booking lock is held."""
        reads = []
        original_get = repository.get_appointment

        def recording_get(appointment_id):
            reads.append(appointment_id)
            return original_get(appointment_id)

        repository.get_appointment = recording_get

        with service._lock:
            worker = threading.Thread(target=getattr(service, operation), args=args)
            worker.start()
            worker.join(timeout=0.1)
            assert reads == []

        worker.join()
        assert reads == ["a1"]

    def test_reschedule_after_cancel_is_refused(self, service):
        """A cancellation that wins the lock stops a later reschedule."""
        service.cancel_appointment("a1")

        with pytest.raises(InvalidRequestError, match="cannot be rescheduled"):
            service.reschedule_appointment("a1", WEDNESDAY, time(10, 30))

def test_generate_confirmation_number_format():
    """Confirmation numbers are base-36 timestamp plus four random characters."""
    number = generate_confirmation_number()

    assert re.fullmatch(r"[0-9A-Z]+-[0-9A-Z]{4}", number)
