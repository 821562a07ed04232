"""Unit tests for core payment state-machine guardrails."""

import itertools

import pytest

from paylink.common.errors import InvalidTransition
from paylink.common.state_machine import (
    ALLOWED_TRANSITIONS,
    PaymentStatus,
    allowed_next,
    is_terminal,
    validate_transition,
)

INITIATED, PENDING, SUCCESS, FAILED = (
    PaymentStatus.INITIATED,
    PaymentStatus.PENDING,
    PaymentStatus.SUCCESS,
    PaymentStatus.FAILED,
)


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition(INITIATED, PENDING)
    validate_transition(PENDING, SUCCESS)
    validate_transition(PENDING, FAILED)


def test_invalid_transition():
    """Illegal transition must raise to protect lifecycle correctness."""

    with pytest.raises(InvalidTransition) as excinfo:
        validate_transition(INITIATED, SUCCESS)
    assert excinfo.value.current == INITIATED
    assert excinfo.value.requested == SUCCESS
    assert excinfo.value.allowed == {PENDING}
    assert "INITIATED -> SUCCESS" in str(excinfo.value)


def test_invalid_transition_is_a_value_error():
    with pytest.raises(ValueError):
        validate_transition(SUCCESS, PENDING)


@pytest.mark.parametrize("status", list(PaymentStatus))
def test_self_loop_always_allowed(status):
    """Re-applying the current status is legal, terminal states included."""

    validate_transition(status, status)


def test_table_matches_exact_edges():
    for current, requested in itertools.permutations(PaymentStatus, 2):
        legal = requested in ALLOWED_TRANSITIONS[current]
        if legal:
            validate_transition(current, requested)
        else:
            with pytest.raises(InvalidTransition):
                validate_transition(current, requested)

    assert allowed_next(INITIATED) == {PENDING}
    assert allowed_next(PENDING) == {SUCCESS, FAILED}


def test_terminal_states():
    assert is_terminal(SUCCESS) and is_terminal(FAILED)
    assert not is_terminal(INITIATED) and not is_terminal(PENDING)
    assert allowed_next(SUCCESS) == frozenset()
    assert allowed_next(FAILED) == frozenset()


def test_terminal_rejection_message_names_terminal_state():
    with pytest.raises(InvalidTransition, match=r"none \(terminal state\)"):
        validate_transition(FAILED, SUCCESS)


def test_accepts_raw_string_statuses():
    validate_transition("PENDING", "SUCCESS")
    with pytest.raises(InvalidTransition):
        validate_transition("SUCCESS", "FAILED")
