"""Pure stop-state derivation and rider action gates."""

from busbuddy.logic.stop_state import (
    evaluate_route,
    evaluate_stop_state,
    is_at_stop,
    outstanding_wait_requests,
)
from busbuddy.logic.timing import (
    EXTENDED_WAIT_SECONDS,
    STANDARD_WAIT_SECONDS,
    elapsed_seconds,
    format_countdown,
    make_trip_id,
    remaining_seconds,
)
from busbuddy.logic.validation import can_mark_absent, can_send_wait_request

__all__ = [
    # Evaluator
    "evaluate_stop_state",
    "evaluate_route",
    "is_at_stop",
    "outstanding_wait_requests",
    # Gates
    "can_send_wait_request",
    "can_mark_absent",
    # Timing
    "STANDARD_WAIT_SECONDS",
    "EXTENDED_WAIT_SECONDS",
    "elapsed_seconds",
    "remaining_seconds",
    "format_countdown",
    "make_trip_id",
]
