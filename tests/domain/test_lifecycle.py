"""
Tests for booking_engine/domain/lifecycle.py
"""
import pytest

from booking_engine.domain.lifecycle import (
    BookingTrigger, CANCELLABLE_STATUSES, TERMINAL_STATUSES, booking_state_machine, next_status,
)
from booking_engine.exceptions import InvalidStatusTransition
from booking_engine.models.ontology import BookingStatus


class TestNextStatus:

    @pytest.mark.parametrize("status,trigger,expected", [
        (BookingStatus.DRAFT, BookingTrigger.RESERVE, BookingStatus.RESERVED),
        (BookingStatus.RESERVED, BookingTrigger.CONFIRM, BookingStatus.CONFIRMED),
        (BookingStatus.CONFIRMED, BookingTrigger.CHECK_IN, BookingStatus.CHECKED_IN),
        (BookingStatus.CHECKED_IN, BookingTrigger.CHECK_OUT, BookingStatus.CHECKED_OUT),
        (BookingStatus.RESERVED, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingTrigger.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.RESERVED, BookingTrigger.MARK_NO_SHOW, BookingStatus.NO_SHOW),
    ])
    def test_allowed(self, status, trigger, expected):
        assert next_status(status, trigger) == expected

    @pytest.mark.parametrize("status", [BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT,
                                        BookingStatus.NO_SHOW, BookingStatus.DRAFT])
    def test_cancel_rejected(self, status):
        with pytest.raises(InvalidStatusTransition) as exc:
            next_status(status, BookingTrigger.CANCEL)
        assert exc.value.details["status"] == status.value

    def test_skip_confirm_rejected(self):
        with pytest.raises(InvalidStatusTransition):
            next_status(BookingStatus.RESERVED, BookingTrigger.CHECK_IN)

    def test_accepts_plain_string_status(self):
        assert next_status("reserved", BookingTrigger.CONFIRM) == BookingStatus.CONFIRMED


class TestLifecycleShape:

    def test_terminal_states_have_no_triggers(self):
        for status in TERMINAL_STATUSES:
            machine = booking_state_machine(status)
            assert machine.is_terminal()
            assert machine.allowed_triggers() == []

    def test_cancellable_statuses(self):
        for status in BookingStatus:
            machine = booking_state_machine(status)
            assert machine.can_fire(BookingTrigger.CANCEL) == (status in CANCELLABLE_STATUSES)
