# Lifecycle tables for bookings and commission transactions.
#
# A booking's coarse `status` and fine-grained `stage` are stored in two columns for querying,
# but in code they only ever travel together as a BookingState, which enumerates the legal pairs.
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from .errors import ConflictError, ValidationError


class BookingAction(str, Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class Party(str, Enum):
    GUEST = "guest"
    HOST = "host"


class BookingState(Enum):
    AWAITING_HOST = ("pending", "awaiting_host")
    CONFIRMED = ("confirmed", "confirmed")
    CHECKED_IN = ("confirmed", "checked_in")
    COMPLETED = ("completed", "checked_out")
    # Cancellation freezes the stage reached at the time of cancelling
    CANCELLED_AWAITING_HOST = ("cancelled", "awaiting_host")
    CANCELLED_CONFIRMED = ("cancelled", "confirmed")
    CANCELLED_CHECKED_IN = ("cancelled", "checked_in")
    # Raised and resolved outside the engine; terminal here
    DISPUTE_CHECKED_IN = ("dispute", "checked_in")
    DISPUTE_CHECKED_OUT = ("dispute", "checked_out")

    @property
    def status(self) -> str:
        return self.value[0]

    @property
    def stage(self) -> str:
        return self.value[1]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_columns(cls, status: str, stage: str) -> "BookingState":
        try:
            return cls((status, stage))
        except ValueError as exc:
            raise ValueError(f"illegal booking state: status={status!r} stage={stage!r}") from exc


# Statuses that hold the listing's calendar
OCCUPYING_STATUSES: Tuple[str, ...] = ("pending", "confirmed")
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"cancelled", "completed", "dispute"})
LEGAL_STATE_PAIRS: Tuple[Tuple[str, str], ...] = tuple(s.value for s in BookingState)

BOOKING_TRANSITIONS: Dict[Tuple[BookingState, BookingAction], BookingState] = {
    (BookingState.AWAITING_HOST, BookingAction.CONFIRM): BookingState.CONFIRMED,
    (BookingState.AWAITING_HOST, BookingAction.REJECT): BookingState.CANCELLED_AWAITING_HOST,
    (BookingState.AWAITING_HOST, BookingAction.CANCEL): BookingState.CANCELLED_AWAITING_HOST,
    (BookingState.CONFIRMED, BookingAction.CANCEL): BookingState.CANCELLED_CONFIRMED,
    (BookingState.CONFIRMED, BookingAction.CHECK_IN): BookingState.CHECKED_IN,
    (BookingState.CHECKED_IN, BookingAction.CANCEL): BookingState.CANCELLED_CHECKED_IN,
    (BookingState.CHECKED_IN, BookingAction.CHECK_OUT): BookingState.COMPLETED,
}

ACTION_PARTIES: Dict[BookingAction, FrozenSet[Party]] = {
    BookingAction.CONFIRM: frozenset({Party.HOST}),
    BookingAction.REJECT: frozenset({Party.HOST}),
    BookingAction.CANCEL: frozenset({Party.GUEST, Party.HOST}),
    BookingAction.CHECK_IN: frozenset({Party.GUEST, Party.HOST}),
    BookingAction.CHECK_OUT: frozenset({Party.GUEST, Party.HOST}),
}

# Guard messages for a legal-but-wrong-stage request
_WRONG_STAGE: Dict[BookingAction, str] = {
    BookingAction.CONFIRM: "only pending bookings can be confirmed",
    BookingAction.REJECT: "only pending bookings can be rejected",
    BookingAction.CANCEL: "booking cannot be cancelled",
    BookingAction.CHECK_IN: "only confirmed bookings can be checked in",
    BookingAction.CHECK_OUT: "booking must be checked in before checking out",
}


def next_booking_state(current: BookingState, action: BookingAction) -> BookingState:
    """
    Resolve `action` against the transition table.

    - Terminal states raise ConflictError: the booking already finished or was cancelled.
    - Non-terminal states without a matching row raise ValidationError naming the guard.
    """
    target = BOOKING_TRANSITIONS.get((current, action))
    if target is not None:
        return target
    if current.is_terminal:
        raise ConflictError(f"booking already {current.status}")
    if action is BookingAction.CONFIRM and current.status == "confirmed":
        raise ValidationError("booking already confirmed")
    raise ValidationError(_WRONG_STAGE[action])


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


COMMISSION_TRANSITIONS: Dict[CommissionStatus, FrozenSet[CommissionStatus]] = {
    CommissionStatus.PENDING: frozenset({
        CommissionStatus.PROCESSING,
        CommissionStatus.COMPLETED,
        CommissionStatus.FAILED,
        CommissionStatus.CANCELLED,
    }),
    CommissionStatus.PROCESSING: frozenset({CommissionStatus.COMPLETED, CommissionStatus.FAILED}),
    # Reversal path
    CommissionStatus.COMPLETED: frozenset({CommissionStatus.REFUNDED}),
    CommissionStatus.FAILED: frozenset(),
    CommissionStatus.REFUNDED: frozenset(),
    CommissionStatus.CANCELLED: frozenset(),
}


TERMINAL_COMMISSION_STATUSES: FrozenSet[CommissionStatus] = frozenset({
    CommissionStatus.COMPLETED,
    CommissionStatus.FAILED,
    CommissionStatus.REFUNDED,
    CommissionStatus.CANCELLED,
})


def check_commission_transition(current: CommissionStatus, target: CommissionStatus) -> None:
    if target in COMMISSION_TRANSITIONS[current]:
        return
    if current in TERMINAL_COMMISSION_STATUSES:
        raise ConflictError(f"transaction is already {current.value}")
    raise ValidationError(f"cannot move transaction from {current.value} to {target.value}")
