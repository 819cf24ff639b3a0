"""
Emergency Lifecycle Tests

Tests for the request state machine and per-case state.
"""

import pytest
from unittest.mock import MagicMock

from signal_hub.errors import LifecycleError
from signal_hub.emergency import (
    RequestState,
    RequestLifecycle,
    RouteResult,
    EmergencyRequest,
    EmergencyCase,
)
from signal_hub.models import Coordinate, SignalPoint


# ============================================
# RequestLifecycle Tests
# ============================================

class TestRequestLifecycle:
    """Test state transitions"""

    def test_starts_pending(self):
        lifecycle = RequestLifecycle()
        assert lifecycle.state == RequestState.PENDING
        assert not lifecycle.is_terminal
        assert lifecycle.history[0][0] == RequestState.PENDING

    def test_accept(self):
        lifecycle = RequestLifecycle()
        lifecycle.accept()

        assert lifecycle.state == RequestState.ACCEPTED
        assert lifecycle.is_terminal
        assert [entry[0] for entry in lifecycle.history] == [RequestState.PENDING, RequestState.ACCEPTED]

    def test_reject_records_reason(self):
        lifecycle = RequestLifecycle()
        lifecycle.reject("superseded")

        assert lifecycle.state == RequestState.REJECTED
        assert lifecycle.history[-1][2] == "superseded"

    def test_terminal_states_are_final(self):
        accepted = RequestLifecycle()
        accepted.accept()
        with pytest.raises(LifecycleError):
            accepted.accept()
        with pytest.raises(LifecycleError):
            accepted.reject()

        rejected = RequestLifecycle()
        rejected.reject()
        with pytest.raises(LifecycleError):
            rejected.accept()

        assert accepted.state == RequestState.ACCEPTED
        assert rejected.state == RequestState.REJECTED

    def test_can_transition(self):
        lifecycle = RequestLifecycle()
        assert lifecycle.can_transition(RequestState.ACCEPTED)
        assert lifecycle.can_transition(RequestState.REJECTED)
        assert not lifecycle.can_transition(RequestState.PENDING)

    def test_state_values(self):
        assert RequestState.PENDING.value == "Pending"
        assert RequestState.ACCEPTED.value == "Accepted"
        assert RequestState.REJECTED.value == "Rejected"


# ============================================
# EmergencyCase Tests
# ============================================

class TestEmergencyCase:
    """Test per-case state"""

    def _case(self) -> EmergencyCase:
        request = EmergencyRequest(
            patient_name="Jane Doe",
            requester_id="sid-1",
            origin=Coordinate(13.0, 80.0),
        )
        return EmergencyCase(case_id="EMG-00001", request=request)

    def test_to_dict(self):
        case = self._case()
        data = case.to_dict()

        assert data["caseId"] == "EMG-00001"
        assert data["patientName"] == "Jane Doe"
        assert data["status"] == "Pending"
        assert data["origin"] == {"lat": 13.0, "lng": 80.0}
        assert data["destination"] is None
        assert data["eta"] is None
        assert data["tracking"] is False
        assert data["retired"] is False

    def test_route_fields(self):
        case = self._case()
        case.route = RouteResult(path=[Coordinate(13.0, 80.0), Coordinate(13.0, 80.01)], eta="2 mins")
        case.relevant_signals = [SignalPoint.at(13.0, 80.005)]

        data = case.to_dict()
        assert data["eta"] == "2 mins"
        assert data["routePoints"] == 2
        assert data["trafficLightsOnRoute"] == 1

    def test_stop_tracking_cancels_simulation(self):
        case = self._case()
        simulator = MagicMock()
        task = MagicMock()
        task.done.return_value = False

        case.simulator = simulator
        case.tracking_task = task
        assert case.is_tracking

        case.stop_tracking()

        simulator.cancel.assert_called_once()
        task.cancel.assert_called_once()
        assert case.tracking_task is None
        assert not case.is_tracking

    def test_discard_signals(self):
        case = self._case()
        case.relevant_signals = [SignalPoint.at(13.0, 80.0)]
        case.discard_signals()
        assert case.relevant_signals == []


class TestModuleSource:
    """Test the lifecycle module compiles without warnings"""

    def test_no_invalid_escape_sequences(self):
        import warnings
        from pathlib import Path
        from signal_hub.emergency import lifecycle

        source = Path(lifecycle.__file__).read_text(encoding="utf-8")

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, lifecycle.__file__, "exec")
