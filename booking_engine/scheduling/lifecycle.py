"""
Booking status state machine.

Every status change goes through an explicit transition table. An action
without a matching row is rejected with the list of actions still valid
from the current status.

    pending   --confirm-------> confirmed
    pending   --cancel--------> cancelled
    confirmed --cancel--------> cancelled
    confirmed --complete------> completed
    confirmed --mark_no_show--> no-show

Cancelled, completed and no-show are terminal.

Usage:
    BookingStateMachine.next_status(BookingStatus.PENDING, BookingAction.CONFIRM)
    # -> BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from enum import Enum

from booking_engine.errors import InvalidTransitionError
from booking_engine.schemas import BookingStatus

logger = logging.getLogger(__name__)


class BookingAction(str, Enum):
    """Operations that move a booking to another status."""
    CONFIRM = "confirm"
    COMPLETE = "complete"
    MARK_NO_SHOW = "mark_no_show"
    CANCEL = "cancel"


@dataclass(frozen=True)
class StatusTransition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    action: BookingAction


class BookingStateMachine:
    """Stateless lookup over the booking transition table."""

    TRANSITIONS: list[StatusTransition] = [
        StatusTransition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingAction.CONFIRM),
        StatusTransition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingAction.CANCEL),
        StatusTransition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingAction.CANCEL),
        StatusTransition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingAction.COMPLETE),
        StatusTransition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW, BookingAction.MARK_NO_SHOW),
    ]

    @classmethod
    def next_status(cls, current: BookingStatus, action: BookingAction) -> BookingStatus:
        """
        Resolve the status an action leads to.

        Raises:
            InvalidTransitionError: If the action is not allowed from ``current``.
        """
        for t in cls.TRANSITIONS:
            if t.from_status == current and t.action == action:
                logger.debug(
                    "Status transition: %s -> %s (action: %s)",
                    current.value, t.to_status.value, action.value,
                )
                return t.to_status

        valid = [a.value for a in cls.valid_actions(current)]
        raise InvalidTransitionError(
            f"Cannot {action.value.replace('_', ' ')} a {current.value} booking. "
            f"Valid actions: {valid}",
            status=current.value,
            action=action.value,
        )

    @classmethod
    def valid_actions(cls, current: BookingStatus) -> list[BookingAction]:
        """Return all actions valid from the given status."""
        return [t.action for t in cls.TRANSITIONS if t.from_status == current]

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return not cls.valid_actions(status)
