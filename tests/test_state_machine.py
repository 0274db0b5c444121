"""Tests for the booking status state machine."""

import pytest

from booking_engine.errors import InvalidTransitionError, PolicyViolation
from booking_engine.scheduling.lifecycle import BookingAction, BookingStateMachine
from booking_engine.schemas import BookingStatus


class TestValidTransitions:
    @pytest.mark.parametrize("current, action, expected", [
        (BookingStatus.PENDING, BookingAction.CONFIRM, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingAction.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingAction.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingAction.COMPLETE, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingAction.MARK_NO_SHOW, BookingStatus.NO_SHOW),
    ])
    def test_transition(self, current, action, expected):
        assert BookingStateMachine.next_status(current, action) == expected


class TestInvalidTransitions:
    def test_complete_pending_booking(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            BookingStateMachine.next_status(BookingStatus.PENDING, BookingAction.COMPLETE)
        assert "confirm" in str(exc_info.value)

    def test_no_show_pending_booking(self):
        with pytest.raises(InvalidTransitionError):
            BookingStateMachine.next_status(BookingStatus.PENDING, BookingAction.MARK_NO_SHOW)

    def test_confirm_twice(self):
        with pytest.raises(InvalidTransitionError):
            BookingStateMachine.next_status(BookingStatus.CONFIRMED, BookingAction.CONFIRM)

    @pytest.mark.parametrize("terminal", [
        BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW,
    ])
    def test_terminal_states_have_no_exit(self, terminal):
        assert BookingStateMachine.is_terminal(terminal)
        for action in BookingAction:
            with pytest.raises(InvalidTransitionError):
                BookingStateMachine.next_status(terminal, action)

    def test_invalid_transition_is_a_policy_violation(self):
        with pytest.raises(PolicyViolation) as exc_info:
            BookingStateMachine.next_status(BookingStatus.CANCELLED, BookingAction.CANCEL)
        assert exc_info.value.category == "invalid_transition"
        assert exc_info.value.details["status"] == "cancelled"


class TestValidActions:
    def test_pending(self):
        assert set(BookingStateMachine.valid_actions(BookingStatus.PENDING)) == {
            BookingAction.CONFIRM, BookingAction.CANCEL,
        }

    def test_confirmed(self):
        assert set(BookingStateMachine.valid_actions(BookingStatus.CONFIRMED)) == {
            BookingAction.CANCEL, BookingAction.COMPLETE, BookingAction.MARK_NO_SHOW,
        }

    def test_open_statuses_are_not_terminal(self):
        assert not BookingStateMachine.is_terminal(BookingStatus.PENDING)
        assert not BookingStateMachine.is_terminal(BookingStatus.CONFIRMED)
