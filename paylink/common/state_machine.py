"""Payment state machine transitions enforced by the lifecycle coordinator."""

from enum import Enum

from paylink.common.errors import InvalidTransition


class PaymentStatus(str, Enum):
    """Lifecycle states for a payment."""

    INITIATED = "INITIATED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.SUCCESS: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


def allowed_next(status: PaymentStatus) -> frozenset[PaymentStatus]:
    """Statuses reachable from `status` in one step, excluding the self-loop."""

    return ALLOWED_TRANSITIONS.get(PaymentStatus(status), frozenset())


def is_terminal(status: PaymentStatus) -> bool:
    return not allowed_next(status)


def validate_transition(current: PaymentStatus, new: PaymentStatus) -> None:
    """Raise when a transition is not allowed by the state machine.

    Staying in the same state is always legal, terminal states included, so
    a repeated request can be re-applied safely.
    """

    current, new = PaymentStatus(current), PaymentStatus(new)
    if current == new:
        return
    allowed = allowed_next(current)
    if new not in allowed:
        raise InvalidTransition(current, new, allowed)
