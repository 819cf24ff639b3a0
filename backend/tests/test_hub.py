"""
Coordination Hub Tests

End-to-end tests of the hub dispatcher with recording observers and mocked
collaborators: request relay, accept/reject, route matching, simulated and
live positions, proximity notifications and failure isolation.
"""

import pytest
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from signal_hub.emergency import CoordinationHub, RequestState, RouteResult
from signal_hub.errors import CollaboratorFailure, DeliveryFailure, LifecycleError
from signal_hub.models import Coordinate, SignalEventSource, SignalPoint
from signal_hub.websocket.connections import ObserverConnection


class RecordingConnection(ObserverConnection):
    """Observer that keeps every frame it receives"""

    transport = "test"

    def __init__(self, connection_id: str, fail: bool = False):
        super().__init__(connection_id)
        self.fail = fail
        self.frames = []

    async def send_text(self, text: str):
        if self.fail:
            raise DeliveryFailure(self.connection_id)
        self.frames.append(json.loads(text))

    def of_type(self, message_type: str):
        return [f for f in self.frames if f.get("messageType") == message_type]


class StalledConnection(ObserverConnection):
    """Observer whose channel stays open but never accepts a frame"""

    transport = "test"

    async def send_text(self, text: str):
        await asyncio.Event().wait()


DEPOT = Coordinate(13.0, 79.9990)
PATIENT = Coordinate(13.0, 80.0040)
SIGNAL_ON_ROUTE = SignalPoint.at(13.0, 80.0018)
SIGNAL_OFF_ROUTE = SignalPoint.at(13.1, 80.1)


def emergency_frame(name="Jane Doe", **extra):
    frame = {
        "messageType": "emergencyRequest",
        "name": name,
        "latitude": PATIENT.lat,
        "longitude": PATIENT.lng,
    }
    frame.update(extra)
    return json.dumps(frame)


def location_frame(lat, lng, **extra):
    frame = {"messageType": "vehicleLocationUpdate", "latitude": lat, "longitude": lng}
    frame.update(extra)
    return json.dumps(frame)


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value="SM1")
    notifier.notify_accepted = AsyncMock(return_value="SM2")
    return notifier


@pytest.fixture
def sink():
    sink = MagicMock()
    sink.record_signal_events = AsyncMock(return_value=1)
    return sink


@pytest.fixture
def route_provider():
    provider = MagicMock()
    provider.get_route = AsyncMock(return_value=RouteResult(path=[DEPOT, PATIENT], eta="1 min"))
    return provider


@pytest.fixture
def hub(notifier, sink, route_provider):
    return CoordinationHub(
        catalog=[SIGNAL_ON_ROUTE, SIGNAL_OFF_ROUTE],
        notifier=notifier,
        sink=sink,
        route_provider=route_provider,
        step_interval_ms=0,
        depot=DEPOT,
        notification_recipient="+15550100",
    )


@pytest.fixture
def observers(hub):
    sender, other = RecordingConnection("sender"), RecordingConnection("other")
    hub.connect(sender)
    hub.connect(other)
    return sender, other


# ============================================
# Emergency Request Tests
# ============================================

class TestEmergencyRequests:
    """Test request relay and validation"""

    @pytest.mark.asyncio
    async def test_request_relayed_to_other_observers(self, hub, observers, notifier):
        sender, other = observers
        await hub.start()

        hub.submit("sender", emergency_frame(phone="+9100"))
        await hub.wait_idle()

        assert sender.frames == []
        relayed = other.of_type("emergencyRequest")
        assert len(relayed) == 1
        assert relayed[0]["name"] == "Jane Doe"
        assert relayed[0]["caseId"] == "EMG-00001"
        assert relayed[0]["phone"] == "+9100"
        assert relayed[0]["timestamp"].endswith("Z")

        notifier.notify.assert_awaited_once_with("+15550100", "Jane Doe")
        assert hub.get_active_case().state == RequestState.PENDING

        await hub.stop()

    @pytest.mark.asyncio
    async def test_legacy_request(self, hub, observers):
        sender, other = observers
        await hub.start()

        hub.submit("sender", {"name": "Jane", "lat": 13.0, "lng": 80.0})
        await hub.wait_idle()

        relayed = other.of_type("emergencyRequest")
        assert relayed[0]["latitude"] == 13.0
        assert relayed[0]["longitude"] == 80.0

        await hub.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("frame", [
        emergency_frame(name=""),
        json.dumps({"messageType": "emergencyRequest"}),
        "{broken json",
        "[1, 2]",
        json.dumps({"messageType": "unknown"}),
    ])
    async def test_invalid_frames_are_discarded(self, hub, observers, notifier, frame):
        sender, other = observers
        await hub.start()

        hub.submit("sender", frame)
        await hub.wait_idle()

        assert sender.frames == []
        assert other.frames == []
        notifier.notify.assert_not_awaited()
        assert hub.protocol_violations == 1
        assert "sender" in hub.registry
        assert hub.get_active_case() is None

        await hub.stop()

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_block(self, hub, observers, notifier):
        sender, other = observers
        notifier.notify.side_effect = CollaboratorFailure("sms", "Twilio down")
        await hub.start()

        hub.submit("sender", emergency_frame())
        await hub.wait_idle()

        assert len(other.of_type("emergencyRequest")) == 1
        assert hub.get_active_case().state == RequestState.PENDING
        assert hub.collaborator_failures == 1

        await hub.stop()

    @pytest.mark.asyncio
    async def test_reported_lights_are_recorded(self, hub, observers, sink):
        await hub.start()

        hub.submit("sender", emergency_frame(
            fromDirection="S",
            nearbyTrafficLights=[{"lat": 13.0, "lng": 80.0, "direction": "N"}],
        ))
        await hub.wait_idle()

        events = sink.record_signal_events.await_args.args[0]
        assert len(events) == 1
        assert events[0].source == SignalEventSource.REPORTED
        assert events[0].from_direction == "S"
        assert events[0].case_id == "EMG-00001"

        await hub.stop()


# ============================================
# Second Request Tests
# ============================================

class TestSecondRequest:
    """Test follow-up reports and superseding"""

    @pytest.mark.asyncio
    async def test_same_patient_is_follow_up(self, hub, observers, notifier, sink):
        sender, other = observers
        await hub.start()

        hub.submit("sender", emergency_frame())
        hub.submit("sender", emergency_frame(
            nearbyTrafficLights=[{"lat": 13.0, "lng": 80.0, "direction": "E", "fromDirection": "W"}],
        ))
        await hub.wait_idle()

        assert len(hub.cases) == 1
        assert len(other.of_type("emergencyRequest")) == 1
        notifier.notify.assert_awaited_once()

        lights = other.of_type("trafficLightUpdate")
        assert len(lights) == 1
        assert lights[0]["trafficLights"][0]["direction"] == "E"
        assert len(sender.of_type("trafficLightUpdate")) == 1
        sink.record_signal_events.assert_awaited_once()
        assert hub.follow_up_reports == 1

        await hub.stop()

    @pytest.mark.asyncio
    async def test_other_patient_supersedes_pending(self, hub, observers):
        await hub.start()

        hub.submit("sender", emergency_frame("Jane"))
        await hub.wait_idle()
        first = hub.get_active_case()

        hub.submit("sender", emergency_frame("Bob"))
        await hub.wait_idle()

        assert first.state == RequestState.REJECTED
        assert first.lifecycle.history[-1][2] == "superseded"
        assert hub.get_case("EMG-00001") is None
        assert list(hub.cases) == ["EMG-00002"]
        assert hub.active_case_id == "EMG-00002"
        assert hub.get_active_case().request.patient_name == "Bob"

        await hub.stop()

    @pytest.mark.asyncio
    async def test_other_patient_retires_accepted(self, hub, observers):
        hub.step_interval_ms = 1000
        await hub.start()

        hub.submit("sender", emergency_frame("Jane"))
        await hub.accept_request("Jane")

        first = hub.get_case("EMG-00001")
        for _ in range(100):
            if first.is_tracking:
                break
            await asyncio.sleep(0.01)
        assert first.is_tracking

        hub.submit("sender", emergency_frame("Bob"))
        await hub.wait_idle()

        assert first.state == RequestState.ACCEPTED
        assert first.retired_at is not None
        assert not first.is_tracking
        assert first.relevant_signals == []
        assert "EMG-00001" not in hub.cases
        assert hub.get_active_case().request.patient_name == "Bob"

        await hub.stop()

    @pytest.mark.asyncio
    async def test_only_active_case_is_retained(self, hub, observers):
        await hub.start()

        for index in range(50):
            hub.submit("sender", emergency_frame(f"Patient {index}"))
        await hub.wait_idle()

        assert len(hub.cases) == 1
        assert hub.get_active_case().request.patient_name == "Patient 49"
        assert hub.cases_superseded == 49

        await hub.stop()


# ============================================
# Accept / Reject Tests
# ============================================

class TestAcceptReject:
    """Test lifecycle commands"""

    @pytest.mark.asyncio
    async def test_accept_drives_vehicle_past_signal(self, hub, observers, notifier, sink, route_provider):
        sender, other = observers
        await hub.start()

        hub.submit("sender", emergency_frame())
        case = await hub.accept_request("Jane Doe")
        await hub.wait_idle()

        assert case["status"] == "Accepted"
        notifier.notify_accepted.assert_awaited_once_with("+15550100", "Jane Doe")
        route_provider.get_route.assert_awaited_once_with(DEPOT, PATIENT)

        status = other.of_type("requestStatus")
        assert len(status) == 1
        assert status[0]["status"] == "Accepted"
        assert status[0]["eta"] == "1 min"
        assert status[0]["trafficLightsOnRoute"] == 1

        positions = other.of_type("coordinateUpdate")
        assert len(positions) == 51
        assert positions[-1]["latitude"] == PATIENT.lat
        assert positions[-1]["longitude"] == PATIENT.lng
        assert positions[-1]["vehicleId"] == "AMB-1"
        assert positions[-1]["direction"] == "E"
        assert positions[-1]["fromDirection"] == "W"

        lights = other.of_type("trafficLightUpdate")
        assert len(lights) == 1
        light = lights[0]["trafficLights"][0]
        assert (light["lat"], light["lng"]) == (SIGNAL_ON_ROUTE.lat, SIGNAL_ON_ROUTE.lng)
        assert light["direction"] == "E"
        assert light["fromDirection"] == "W"
        assert light["distance"] <= 200
        assert lights[0]["caseId"] == "EMG-00001"

        events = sink.record_signal_events.await_args.args[0]
        assert events[0].source == SignalEventSource.PROXIMITY
        assert hub.signals_notified == 1
        assert hub.vehicle_position == PATIENT

        await hub.stop()

    @pytest.mark.asyncio
    async def test_accept_without_pending_request(self, hub, observers):
        await hub.start()

        with pytest.raises(LifecycleError):
            await hub.accept_request("Jane Doe")

        await hub.stop()

    @pytest.mark.asyncio
    async def test_accept_with_wrong_name(self, hub, observers):
        await hub.start()
        hub.submit("sender", emergency_frame("Jane"))

        with pytest.raises(LifecycleError):
            await hub.accept_request("Bob")

        assert hub.get_active_case().state == RequestState.PENDING
        await hub.stop()

    @pytest.mark.asyncio
    async def test_accept_twice(self, hub, observers):
        await hub.start()
        hub.submit("sender", emergency_frame())
        await hub.accept_request()

        with pytest.raises(LifecycleError):
            await hub.accept_request()

        await hub.stop()

    @pytest.mark.asyncio
    async def test_reject(self, hub, observers, route_provider, notifier):
        sender, other = observers
        await hub.start()

        hub.submit("sender", emergency_frame())
        await hub.wait_idle()
        pending = hub.get_active_case()

        case = await hub.reject_request("Jane Doe", "no ambulance free")
        await hub.wait_idle()

        assert case["status"] == "Rejected"
        assert hub.active_case_id is None
        assert pending.lifecycle.history[-1][2] == "no ambulance free"
        assert hub.cases == {}
        route_provider.get_route.assert_not_awaited()
        notifier.notify_accepted.assert_not_awaited()
        assert other.of_type("requestStatus") == []

        with pytest.raises(LifecycleError):
            await hub.accept_request("Jane Doe")

        await hub.stop()

    @pytest.mark.asyncio
    async def test_route_failure_keeps_acceptance(self, hub, observers, route_provider):
        sender, other = observers
        route_provider.get_route.side_effect = CollaboratorFailure("route", "OSRM unreachable")
        await hub.start()

        hub.submit("sender", emergency_frame())
        await hub.accept_request()
        await hub.wait_idle()

        case = hub.get_active_case()
        assert case.state == RequestState.ACCEPTED
        assert case.relevant_signals == []
        assert hub.collaborator_failures == 1

        status = other.of_type("requestStatus")
        assert status[0]["eta"] is None
        assert status[0]["trafficLightsOnRoute"] == 0
        assert other.of_type("coordinateUpdate") == []

        await hub.stop()

    @pytest.mark.asyncio
    async def test_commands_require_running_hub(self, hub):
        with pytest.raises(RuntimeError):
            await hub.accept_request()


# ============================================
# Position Tests
# ============================================

class TestPositions:
    """Test live location updates"""

    @pytest.mark.asyncio
    async def test_location_update_reaches_everyone(self, hub, observers):
        sender, other = observers
        await hub.start()

        hub.submit("sender", location_frame(13.0, 80.0, vehicleId="AMB-7", direction="NE"))
        await hub.wait_idle()

        for observer in (sender, other):
            updates = observer.of_type("coordinateUpdate")
            assert len(updates) == 1
            assert updates[0]["vehicleId"] == "AMB-7"
            assert updates[0]["direction"] == "NE"
            assert updates[0]["latitude"] == 13.0

        await hub.stop()

    @pytest.mark.asyncio
    async def test_directions_derived_from_movement(self, hub, observers):
        sender, other = observers
        await hub.start()

        hub.submit("sender", location_frame(13.0, 80.0))
        hub.submit("sender", location_frame(13.0, 80.001))
        await hub.wait_idle()

        updates = other.of_type("coordinateUpdate")
        assert updates[0]["direction"] is None
        assert updates[1]["direction"] == "E"
        assert updates[1]["fromDirection"] == "W"

        await hub.stop()

    @pytest.mark.asyncio
    async def test_live_feed_replaces_simulation(self, hub, observers):
        hub.step_interval_ms = 1000
        await hub.start()

        hub.submit("sender", emergency_frame())
        await hub.accept_request()

        case = hub.get_active_case()
        for _ in range(100):
            if case.is_tracking:
                break
            await asyncio.sleep(0.01)
        simulator = case.simulator

        hub.submit("sender", location_frame(13.0, 80.0))
        await hub.wait_idle()

        assert case.live_feed
        assert not case.is_tracking
        assert simulator.is_cancelled
        assert hub.vehicle_position == Coordinate(13.0, 80.0)

        await hub.stop()

    @pytest.mark.asyncio
    async def test_live_positions_notify_signals(self, hub, observers, route_provider):
        sender, other = observers
        hub.simulation_enabled = False
        await hub.start()

        hub.submit("sender", emergency_frame())
        await hub.accept_request()
        await hub.wait_idle()

        hub.submit("sender", location_frame(13.0, 79.9990))
        hub.submit("sender", location_frame(13.0, 80.0))
        hub.submit("sender", location_frame(13.0, 80.0001))
        await hub.wait_idle()

        lights = other.of_type("trafficLightUpdate")
        assert len(lights) == 1
        assert lights[0]["trafficLights"][0]["direction"] == "E"
        assert lights[0]["trafficLights"][0]["fromDirection"] == "W"

        await hub.stop()


# ============================================
# Delivery and Stats Tests
# ============================================

class TestDeliveryAndStats:
    """Test observer failure isolation and statistics"""

    @pytest.mark.asyncio
    async def test_broken_observer_is_dropped(self, hub, observers):
        sender, other = observers
        broken = RecordingConnection("broken", fail=True)
        hub.connect(broken)
        await hub.start()

        hub.submit("sender", location_frame(13.0, 80.0))
        hub.submit("sender", location_frame(13.0, 80.001))
        await hub.wait_idle()

        assert "broken" not in hub.registry
        assert len(other.of_type("coordinateUpdate")) == 2

        await hub.stop()

    @pytest.mark.asyncio
    async def test_stalled_observer_does_not_block_dispatch(self):
        hub = CoordinationHub(send_timeout=0.05)
        healthy = RecordingConnection("healthy")
        hub.connect(healthy)
        hub.connect(StalledConnection("stalled"))
        await hub.start()

        hub.submit("healthy", location_frame(13.0, 80.0))
        hub.submit("healthy", location_frame(13.0, 80.001))
        await asyncio.wait_for(hub.wait_idle(), timeout=2)

        assert len(healthy.of_type("coordinateUpdate")) == 2
        assert "stalled" not in hub.registry
        assert hub.get_stats()["observers"]["errorCount"] == 1

        await hub.stop()

    @pytest.mark.asyncio
    async def test_stop_fails_queued_commands(self):
        hub = CoordinationHub(send_timeout=60)
        hub.connect(StalledConnection("stalled"))
        await hub.start()

        # the relay blocks the dispatcher, so the accept stays queued
        hub.submit("sender", emergency_frame())
        accept = asyncio.create_task(hub.accept_request())
        await asyncio.sleep(0.05)
        assert not accept.done()

        await asyncio.wait_for(hub.stop(), timeout=2)

        with pytest.raises(RuntimeError):
            await asyncio.wait_for(accept, timeout=1)

    @pytest.mark.asyncio
    async def test_disconnect(self, hub, observers):
        hub.disconnect("other")
        assert "other" not in hub.registry
        assert len(hub.registry) == 1

    @pytest.mark.asyncio
    async def test_broadcast_recent_signals(self, hub, observers):
        sender, other = observers
        from signal_hub.models import SignalEvent

        events = [SignalEvent(signal=SIGNAL_ON_ROUTE, direction="E", from_direction="W")]
        delivered = await hub.broadcast_recent_signals(events)

        assert delivered == 2
        assert other.of_type("trafficLightUpdate")[0]["caseId"] is None
        assert await hub.broadcast_recent_signals([]) == 0

    @pytest.mark.asyncio
    async def test_stats(self, hub, observers):
        await hub.start()

        hub.submit("sender", "{bad")
        hub.submit("sender", emergency_frame())
        await hub.wait_idle()

        stats = hub.get_stats()
        assert stats["running"] is True
        assert stats["activeCaseId"] == "EMG-00001"
        assert stats["messagesReceived"] == 2
        assert stats["protocolViolations"] == 1
        assert stats["catalogSize"] == 2
        assert stats["observers"]["connectedObservers"] == 2

        await hub.stop()
        assert hub.get_stats()["running"] is False
