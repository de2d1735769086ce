"""Tests for BookingTransactionManager against in-memory repositories."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from itertools import combinations

import pytest

from app.domain.scheduling.availability import AvailabilityIndex
from app.domain.scheduling.exceptions import (
    AlreadyCancelled,
    ConfirmationCodeCollision,
    ConfirmationCodeExhausted,
    InvalidRequest,
    NotFound,
    SlotUnavailable,
)
from app.domain.scheduling.locks import HostLockManager
from app.domain.scheduling.service import BookingTransactionManager, GuestInfo
from app.domain.scheduling.time_utils import ensure_utc, overlaps
from app.models import AvailabilityWindow, Booking, BookingStatus, Contact, MeetingType

HOST_ID = 7


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class InMemoryBookingRepo:
    """Booking store with the same contract as BookingRepository.

    `delay` stretches the gap between reading existing bookings and writing,
    which is where an unguarded check-then-act would race.
    """

    def __init__(self, delay: float = 0.0):
        self.bookings = []
        self.delay = delay
        self.rollbacks = 0
        self._next_id = 1
        self._mutex = threading.Lock()

    def lock_host(self, host_id):
        pass

    def find_confirmed_overlapping(self, host_id, range_start, range_end):
        with self._mutex:
            found = [
                b
                for b in self.bookings
                if b.host_id == host_id
                and b.status == BookingStatus.CONFIRMED.value
                and ensure_utc(b.start_time) < range_end
                and ensure_utc(b.end_time) > range_start
            ]
        if self.delay:
            time.sleep(self.delay)
        return found

    def find_by_confirmation_code(self, code):
        return next((b for b in self.bookings if b.confirmation_code == code), None)

    def code_exists(self, code):
        return self.find_by_confirmation_code(code) is not None

    def insert(self, booking):
        with self._mutex:
            if self.code_exists(booking.confirmation_code):
                raise ConfirmationCodeCollision(booking.confirmation_code)
            booking.id = self._next_id
            self._next_id += 1
            self.bookings.append(booking)
        return booking

    def update(self, booking):
        return booking

    def cancel_if_confirmed(self, booking, reason, cancelled_at):
        with self._mutex:
            if booking.status != BookingStatus.CONFIRMED.value:
                return False
            booking.status = BookingStatus.CANCELLED.value
            booking.cancellation_reason = reason
            booking.cancelled_at = cancelled_at
        return True

    def rollback(self):
        self.rollbacks += 1

    def confirmed(self):
        return [b for b in self.bookings if b.status == BookingStatus.CONFIRMED.value]


class InMemoryMeetingTypeRepo:
    def __init__(self, *meeting_types):
        self.meeting_types = {m.id: m for m in meeting_types}

    def find_active_by_id(self, meeting_type_id):
        meeting_type = self.meeting_types.get(meeting_type_id)
        if meeting_type is None or not meeting_type.is_active:
            return None
        return meeting_type


class InMemoryAvailabilityRepo:
    def __init__(self, *windows):
        self.windows = list(windows)

    def find_active_windows(self, host_id, day_of_week):
        return [
            w
            for w in self.windows
            if w.host_id == host_id and w.day_of_week == day_of_week and w.is_active
        ]


class InMemoryContacts:
    def __init__(self, *contacts):
        self.contacts = list(contacts)

    def find_by_email(self, email, workspace_id):
        return next(
            (c for c in self.contacts if c.email == email.lower() and c.workspace_id == workspace_id),
            None,
        )


class Clock:
    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current


@pytest.fixture
def meeting_type():
    return MeetingType(
        id=1,
        workspace_id=1,
        host_id=HOST_ID,
        name="Intro Call",
        slug="intro-call",
        duration_minutes=30,
        buffer_before_minutes=0,
        buffer_after_minutes=0,
        location_type="zoom",
        location="https://zoom.example.com/j/1",
        is_active=True,
        is_public=True,
        max_booking_days=60,
        min_notice_hours=1,
    )


@pytest.fixture
def booking_repo():
    return InMemoryBookingRepo()


@pytest.fixture
def windows():
    # Monday and Tuesday 09:00-17:00 UTC
    return InMemoryAvailabilityRepo(
        AvailabilityWindow(id=1, host_id=HOST_ID, day_of_week=1, start_time="09:00", end_time="17:00", timezone="UTC", is_active=True),
        AvailabilityWindow(id=2, host_id=HOST_ID, day_of_week=2, start_time="09:00", end_time="17:00", timezone="UTC", is_active=True),
    )


@pytest.fixture
def manager(booking_repo, meeting_type, windows):
    return BookingTransactionManager(
        booking_repo=booking_repo,
        meeting_type_repo=InMemoryMeetingTypeRepo(meeting_type),
        availability_index=AvailabilityIndex(windows),
        lock_manager=HostLockManager(wait=5),
        clock=Clock(utc(2026, 10, 19, 8, 0)),
        contact_lookup=InMemoryContacts(Contact(id=42, workspace_id=1, email="known@example.com")),
    )


@pytest.fixture
def guest():
    return GuestInfo(name="Gail Guest", email="Gail@Example.com", timezone="UTC")


def assert_no_double_booking(repo):
    for a, b in combinations(repo.confirmed(), 2):
        assert not overlaps(
            ensure_utc(a.start_time), ensure_utc(a.end_time), ensure_utc(b.start_time), ensure_utc(b.end_time)
        ), f"{a.confirmation_code} overlaps {b.confirmation_code}"


class TestCreateBooking:
    def test_creates_confirmed_booking(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.end_time == utc(2026, 10, 19, 10, 30)
        assert booking.duration_minutes == 30
        assert booking.guest_email == "gail@example.com"
        assert booking.location == "https://zoom.example.com/j/1"
        assert len(booking.confirmation_code) == 8
        assert booking.confirmation_code == booking.confirmation_code.upper()
        int(booking.confirmation_code, 16)

    def test_naive_start_read_in_guest_zone(self, manager):
        guest = GuestInfo(name="Nia", email="nia@example.com", timezone="America/New_York")
        booking = manager.create_booking(1, guest, datetime(2026, 10, 19, 9, 0))
        assert booking.start_time == utc(2026, 10, 19, 13, 0)
        assert booking.timezone == "America/New_York"

    def test_contact_enrichment(self, manager):
        guest = GuestInfo(name="Kim", email="Known@Example.com")
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0))
        assert booking.contact_id == 42

    def test_unknown_contact_is_not_an_error(self, manager, guest):
        assert manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0)).contact_id is None

    def test_missing_meeting_type(self, manager, guest):
        with pytest.raises(NotFound):
            manager.create_booking(999, guest, utc(2026, 10, 19, 10, 0))

    def test_inactive_meeting_type(self, manager, meeting_type, guest):
        meeting_type.is_active = False
        with pytest.raises(NotFound):
            manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))

    def test_conflict_rejected(self, manager, booking_repo, guest):
        manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        with pytest.raises(SlotUnavailable):
            manager.create_booking(1, guest, utc(2026, 10, 19, 10, 15))
        assert len(booking_repo.bookings) == 1
        assert booking_repo.rollbacks == 1

    def test_inside_notice_window(self, manager, guest):
        with pytest.raises(InvalidRequest):
            manager.create_booking(1, guest, utc(2026, 10, 19, 8, 45))

    def test_beyond_horizon(self, manager, guest):
        with pytest.raises(InvalidRequest):
            manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0) + timedelta(days=63))

    def test_outside_availability(self, manager, guest):
        with pytest.raises(InvalidRequest):
            manager.create_booking(1, guest, utc(2026, 10, 19, 16, 45))
        with pytest.raises(InvalidRequest):
            # Wednesday has no window
            manager.create_booking(1, guest, utc(2026, 10, 21, 10, 0))

    def test_code_collision_regenerates(self, manager, booking_repo, guest):
        codes = iter(["AAAAAAAA", "AAAAAAAA", "BBBBBBBB"])
        manager.code_generator = lambda: next(codes)

        first = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        second = manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0))

        assert first.confirmation_code == "AAAAAAAA"
        assert second.confirmation_code == "BBBBBBBB"
        assert len(booking_repo.bookings) == 2

    def test_code_collision_exhausted(self, manager, booking_repo, guest):
        calls = []

        def stuck_generator():
            calls.append(1)
            return "AAAAAAAA"

        manager.code_generator = stuck_generator
        manager.max_code_attempts = 3
        manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        calls.clear()

        with pytest.raises(ConfirmationCodeExhausted):
            manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0))
        assert len(calls) == 3
        assert len(booking_repo.bookings) == 1


class TestConcurrency:
    def test_same_slot_race_has_one_winner(self, manager, booking_repo):
        booking_repo.delay = 0.01
        barrier = threading.Barrier(8)

        def attempt(i):
            guest = GuestInfo(name=f"Guest {i}", email=f"guest{i}@example.com")
            barrier.wait()
            try:
                manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
                return "ok"
            except SlotUnavailable:
                return "taken"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))

        assert results.count("ok") == 1
        assert results.count("taken") == 7
        assert len(booking_repo.confirmed()) == 1

    def test_overlapping_slots_race(self, manager, booking_repo):
        booking_repo.delay = 0.01
        starts = [utc(2026, 10, 19, 10, 0) + timedelta(minutes=15 * i) for i in range(6)]
        barrier = threading.Barrier(len(starts))

        def attempt(start):
            barrier.wait()
            try:
                manager.create_booking(1, GuestInfo(name="G", email="g@example.com"), start)
                return True
            except SlotUnavailable:
                return False

        with ThreadPoolExecutor(max_workers=len(starts)) as pool:
            list(pool.map(attempt, starts))

        assert len(booking_repo.confirmed()) >= 1
        assert_no_double_booking(booking_repo)

    def test_concurrent_reschedules_onto_overlapping_slots(self, manager, booking_repo):
        guest = GuestInfo(name="G", email="g@example.com")
        first = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        second = manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0))
        booking_repo.delay = 0.01
        barrier = threading.Barrier(2)

        def attempt(args):
            code, start = args
            barrier.wait()
            try:
                manager.reschedule_booking(code, start)
                return True
            except SlotUnavailable:
                return False

        moves = [
            (first.confirmation_code, utc(2026, 10, 19, 14, 0)),
            (second.confirmation_code, utc(2026, 10, 19, 14, 15)),
        ]
        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, moves))

        assert sorted(results) == [False, True]
        assert len(booking_repo.confirmed()) == 2
        assert_no_double_booking(booking_repo)


class TestCancelBooking:
    def test_cancel_then_cancel_again(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))

        cancelled = manager.cancel_booking(booking.confirmation_code, "Conflict came up")
        assert cancelled.status == BookingStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Conflict came up"
        assert cancelled.cancelled_at == utc(2026, 10, 19, 8, 0)

        with pytest.raises(AlreadyCancelled):
            manager.cancel_booking(booking.confirmation_code)

    def test_cancel_lost_to_concurrent_cancel(self, manager, booking_repo, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        real_cancel = booking_repo.cancel_if_confirmed

        def cancelled_by_someone_else_first(target, reason, cancelled_at):
            real_cancel(target, "first caller", utc(2026, 10, 19, 7, 0))
            return real_cancel(target, reason, cancelled_at)

        booking_repo.cancel_if_confirmed = cancelled_by_someone_else_first
        with pytest.raises(AlreadyCancelled):
            manager.cancel_booking(booking.confirmation_code, "second caller")
        assert booking.cancellation_reason == "first caller"

    def test_cancel_frees_the_slot(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        manager.cancel_booking(booking.confirmation_code)
        again = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        assert again.confirmation_code != booking.confirmation_code

    def test_unknown_code(self, manager):
        with pytest.raises(NotFound):
            manager.cancel_booking("DEADBEEF")

    def test_completed_booking_cannot_be_cancelled(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        booking.status = BookingStatus.COMPLETED.value
        with pytest.raises(InvalidRequest):
            manager.cancel_booking(booking.confirmation_code)


class TestRescheduleBooking:
    def test_moves_in_place(self, manager, booking_repo, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        moved = manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 20, 14, 0))

        assert moved.id == booking.id
        assert moved.start_time == utc(2026, 10, 20, 14, 0)
        assert moved.end_time == utc(2026, 10, 20, 14, 30)
        assert moved.status == BookingStatus.CONFIRMED.value
        assert len(booking_repo.bookings) == 1

    def test_overlapping_own_slot_is_allowed(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        moved = manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 19, 10, 15))
        assert moved.start_time == utc(2026, 10, 19, 10, 15)

    def test_conflict_leaves_booking_untouched(self, manager, guest):
        first = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        manager.create_booking(1, guest, utc(2026, 10, 19, 11, 0))

        with pytest.raises(SlotUnavailable):
            manager.reschedule_booking(first.confirmation_code, utc(2026, 10, 19, 11, 15))
        assert first.start_time == utc(2026, 10, 19, 10, 0)

    def test_duration_comes_from_booking(self, manager, meeting_type, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        meeting_type.duration_minutes = 60

        moved = manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 19, 13, 0))
        assert moved.end_time == utc(2026, 10, 19, 13, 30)

    def test_cancelled_booking(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        manager.cancel_booking(booking.confirmation_code)
        with pytest.raises(AlreadyCancelled):
            manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 19, 13, 0))

    def test_naive_start_uses_booking_zone(self, manager):
        guest = GuestInfo(name="Nia", email="nia@example.com", timezone="America/New_York")
        booking = manager.create_booking(1, guest, datetime(2026, 10, 19, 9, 0))
        moved = manager.reschedule_booking(booking.confirmation_code, datetime(2026, 10, 19, 11, 0))
        assert moved.start_time == utc(2026, 10, 19, 15, 0)

    def test_revalidates_against_meeting_type(self, manager, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        with pytest.raises(InvalidRequest):
            manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 19, 18, 0))

    def test_deactivated_meeting_type_skips_window_rules(self, manager, meeting_type, guest):
        booking = manager.create_booking(1, guest, utc(2026, 10, 19, 10, 0))
        meeting_type.is_active = False
        moved = manager.reschedule_booking(booking.confirmation_code, utc(2026, 10, 19, 18, 0))
        assert moved.start_time == utc(2026, 10, 19, 18, 0)
