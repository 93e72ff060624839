"""Tests for rider action gates."""

from datetime import UTC, datetime, timedelta

from busbuddy.logic.validation import (
    REASON_ABSENT,
    REASON_ALREADY_ABSENT,
    REASON_NO_TRIP,
    REASON_NOT_AT_STOP,
    REASON_WINDOW_CLOSED,
    can_mark_absent,
    can_send_wait_request,
)
from busbuddy.models.trip import Trip, TripStatus

T0 = datetime(2024, 9, 3, 7, 30, 0, tzinfo=UTC)


def at(seconds: int) -> datetime:
    return T0 + timedelta(seconds=seconds)


def at_stop_trip(stop_id: str = "stop_1") -> Trip:
    return Trip(
        trip_id="trip_bus_1_2024_09_03", bus_id="bus_1", route_id="route_1",
        driver_id="driver_1", started_at=T0, status=TripStatus.AT_STOP,
        current_stop_id=stop_id, stop_arrived_at=T0,
    )


def in_transit_trip() -> Trip:
    return Trip(
        trip_id="trip_bus_1_2024_09_03", bus_id="bus_1", route_id="route_1",
        driver_id="driver_1", started_at=T0,
    )


class TestCanSendWaitRequest:
    """Tests for the wait-request gate."""

    def test_allowed_at_own_stop_on_arrival(self) -> None:
        """Allowed at the rider's stop right after arrival."""
        decision = can_send_wait_request(False, at_stop_trip(), "stop_1", at(0))
        assert decision.allowed is True
        assert decision.reason is None

    def test_allowed_at_420_seconds(self) -> None:
        """Allowed up to and including 420 seconds."""
        assert can_send_wait_request(False, at_stop_trip(), "stop_1", at(420)).allowed is True

    def test_absence_denies_even_when_everything_else_allows(self) -> None:
        """An absence denies an otherwise valid request."""
        decision = can_send_wait_request(True, at_stop_trip(), "stop_1", at(0))
        assert decision.allowed is False
        assert decision.reason == REASON_ABSENT

    def test_absence_checked_first(self) -> None:
        """The absence reason wins over other reasons."""
        decision = can_send_wait_request(True, in_transit_trip(), "stop_1", at(9999))
        assert decision.reason == REASON_ABSENT

    def test_bus_at_other_stop(self) -> None:
        """Denied when the bus is at another stop."""
        decision = can_send_wait_request(False, at_stop_trip("stop_2"), "stop_1", at(0))
        assert decision.allowed is False
        assert decision.reason == REASON_NOT_AT_STOP

    def test_in_transit(self) -> None:
        """Denied while the bus is moving."""
        decision = can_send_wait_request(False, in_transit_trip(), "stop_1", at(0))
        assert decision.reason == REASON_NOT_AT_STOP

    def test_no_trip(self) -> None:
        """Denied without a trip."""
        decision = can_send_wait_request(False, None, "stop_1", at(0))
        assert decision.reason == REASON_NOT_AT_STOP

    def test_rider_without_stop(self) -> None:
        """Denied when the rider has no stop."""
        decision = can_send_wait_request(False, at_stop_trip(), None, at(0))
        assert decision.reason == REASON_NOT_AT_STOP

    def test_window_closed_after_420(self) -> None:
        """Denied after 420 seconds."""
        decision = can_send_wait_request(False, at_stop_trip(), "stop_1", at(421))
        assert decision.allowed is False
        assert decision.reason == REASON_WINDOW_CLOSED

    def test_unknown_arrival_time_closes_window(self) -> None:
        """Denied when the arrival time is unknown."""
        trip = Trip.model_construct(
            trip_id="trip_bus_1_2024_09_03", bus_id="bus_1", route_id="route_1",
            driver_id="driver_1", started_at=T0, ended_at=None, status=TripStatus.AT_STOP,
            current_stop_id="stop_1", stop_arrived_at=None, location=None,
        )
        decision = can_send_wait_request(False, trip, "stop_1", at(0))
        assert decision.reason == REASON_WINDOW_CLOSED


class TestCanMarkAbsent:
    """Tests for the mark-absent gate."""

    def test_first_mark_allowed(self) -> None:
        """The first absence is allowed."""
        assert can_mark_absent(False, True).allowed is True

    def test_second_mark_denied(self) -> None:
        """A second absence is denied."""
        decision = can_mark_absent(True, True)
        assert decision.allowed is False
        assert decision.reason == REASON_ALREADY_ABSENT

    def test_no_active_trip(self) -> None:
        """Denied without an active trip."""
        decision = can_mark_absent(False, False)
        assert decision.allowed is False
        assert decision.reason == REASON_NO_TRIP

    def test_no_trip_checked_before_existing_absence(self) -> None:
        """The no-trip reason wins over an existing absence."""
        assert can_mark_absent(True, False).reason == REASON_NO_TRIP
