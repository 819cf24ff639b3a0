"""
Coordination Hub

Central coordinator between the emergency vehicle and its observers:
- Receives inbound observer frames and accept/reject commands
- Applies the emergency request lifecycle (one active case at a time)
- Derives relevant signals from the route and detects approaching ones
- Fans out events to every connected observer

All inbound work goes through one queue and is applied by a single
dispatcher task in arrival order. Collaborators (notification sender,
persistence sink, route provider) are called as fire-and-forget tasks;
their failures are logged and counted, never rolled back into the
lifecycle. Route results and simulated positions re-enter the queue.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from signal_hub.errors import LifecycleError, ProtocolViolation
from signal_hub.geo import (
    DEFAULT_CORRIDOR_METERS,
    DEFAULT_RADIUS_METERS,
    MotionSimulator,
    ProximityTracker,
    RouteSignalMatcher,
    bearing,
    describe_approach,
)
from signal_hub.models import Coordinate, SignalEvent, SignalEventSource, SignalPoint
from signal_hub.websocket.connections import ObserverConnection
from signal_hub.websocket.emitter import DEFAULT_SEND_TIMEOUT, ObserverRegistry
from signal_hub.websocket.events import (
    CoordinateUpdateData,
    EmergencyRequestMessage,
    MessageType,
    RequestStatusData,
    TrafficLightData,
    TrafficLightUpdateData,
    utc_timestamp,
)
from signal_hub.websocket.protocol import parse_inbound

from .lifecycle import (
    EmergencyCase,
    EmergencyRequest,
    RequestState,
    RouteResult,
)


# Chennai ambulance depot, used until the vehicle reports a position
DEFAULT_DEPOT = Coordinate(lat=13.104828921878372, lng=80.27684466155233)


class EnvelopeKind(str, Enum):
    """Kinds of work applied by the dispatcher"""
    MESSAGE = "message"            # inbound observer frame
    ACCEPT = "accept"              # control command
    REJECT = "reject"              # control command
    POSITION = "position"          # simulated vehicle position
    ROUTE_READY = "route_ready"    # route provider result (or None)


@dataclass
class Envelope:
    """One unit of work on the hub inbox"""
    kind: EnvelopeKind
    connection_id: Optional[str] = None
    payload: Any = None
    case_id: Optional[str] = None
    future: Optional[asyncio.Future] = None
    received_at: float = field(default_factory=time.time)


class CoordinationHub:
    """
    Real-time coordination between the vehicle, observers and signals

    Usage:
        hub = CoordinationHub(catalog=signals, notifier=sender, sink=sink,
                              route_provider=provider)
        await hub.start()
        hub.connect(connection)
        hub.submit(connection.connection_id, raw_frame)
        case = await hub.accept_request("Jane Doe")
        await hub.stop()
    """

    def __init__(
        self,
        catalog: Optional[Sequence[SignalPoint]] = None,
        registry: Optional[ObserverRegistry] = None,
        notifier=None,
        sink=None,
        route_provider=None,
        radius_meters: float = DEFAULT_RADIUS_METERS,
        corridor_meters: float = DEFAULT_CORRIDOR_METERS,
        use_degree_heuristic: bool = False,
        simulation_enabled: bool = True,
        step_interval_ms: float = 30,
        step_factor: float = 0.0001,
        min_steps: int = 10,
        vehicle_id: str = "AMB-1",
        depot: Optional[Coordinate] = None,
        notification_recipient: str = "",
        send_timeout: float = DEFAULT_SEND_TIMEOUT
    ):
        """
        Initialize the hub

        Args:
            catalog: Static signal catalog
            registry: Observer registry (created when omitted)
            notifier: Notification sender (notify / notify_accepted)
            sink: Persistence sink (record_signal_events)
            route_provider: Route provider (get_route)
            radius_meters: Proximity notification radius
            corridor_meters: Route corridor half-width
            use_degree_heuristic: Match the corridor in raw degrees
            simulation_enabled: Drive the vehicle along the route after accept
            step_interval_ms: Simulation tick interval
            step_factor: Simulation step size in degrees
            min_steps: Minimum simulation steps per route segment
            vehicle_id: Id reported in simulated coordinateUpdate events
            depot: Vehicle position before any position is known
            notification_recipient: SMS recipient for alerts
            send_timeout: Seconds an observer may take to accept one frame
        """
        self.catalog: List[SignalPoint] = list(catalog or [])
        self.registry = registry or ObserverRegistry(send_timeout=send_timeout)
        self.notifier = notifier
        self.sink = sink
        self.route_provider = route_provider

        self.radius_meters = radius_meters
        self.matcher = RouteSignalMatcher(
            corridor_meters=corridor_meters,
            use_degree_heuristic=use_degree_heuristic
        )

        self.simulation_enabled = simulation_enabled
        self.step_interval_ms = step_interval_ms
        self.step_factor = step_factor
        self.min_steps = min_steps

        self.vehicle_id = vehicle_id
        self.depot = depot or DEFAULT_DEPOT
        self.notification_recipient = notification_recipient

        # Case state (dispatcher-owned); resolved and superseded cases are dropped
        self.cases: Dict[str, EmergencyCase] = {}
        self.active_case_id: Optional[str] = None
        self.vehicle_position: Optional[Coordinate] = None
        self._case_counter = 0

        # Work queue
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._running = False

        # Statistics
        self.messages_received = 0
        self.protocol_violations = 0
        self.collaborator_failures = 0
        self.dispatch_errors = 0
        self.follow_up_reports = 0
        self.signals_notified = 0
        self.cases_accepted = 0
        self.cases_rejected = 0
        self.cases_superseded = 0

    # ============================================
    # Service Control
    # ============================================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the dispatcher"""
        if self._running:
            return

        self._running = True
        self._dispatcher_task = asyncio.create_task(self._dispatch_loop())
        print(f"[HUB] Coordination hub started ({len(self.catalog)} signals in catalog)")

    async def stop(self):
        """Stop the dispatcher and cancel every background task"""
        if not self._running:
            return

        self._running = False

        for case in self.cases.values():
            case.stop_tracking()

        if self._dispatcher_task:
            self._dispatcher_task.cancel()
            try:
                await self._dispatcher_task
            except asyncio.CancelledError:
                pass
            self._dispatcher_task = None

        # Fail commands still waiting in the inbox
        while True:
            try:
                envelope = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._resolve(envelope, error=RuntimeError("Coordination hub stopped"))
            self._inbox.task_done()

        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        print("[HUB] Coordination hub stopped")

    async def wait_idle(self):
        """Wait until the inbox is drained and no background work remains"""
        while True:
            await self._inbox.join()
            pending = [task for task in self._background if not task.done()]
            if not pending and self._inbox.empty():
                return
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    # ============================================
    # Observer Membership
    # ============================================

    def connect(self, connection: ObserverConnection):
        self.registry.add(connection)
        print(f"[WS] Observer connected: {connection.connection_id} "
              f"({connection.transport}, {len(self.registry)} total)")

    def disconnect(self, connection_id: str):
        if self.registry.remove(connection_id):
            print(f"[WS] Observer disconnected: {connection_id} ({len(self.registry)} remaining)")

    # ============================================
    # Inbound Work
    # ============================================

    def submit(self, connection_id: str, raw: Any):
        """Queue one inbound frame from an observer"""
        self.messages_received += 1
        self._inbox.put_nowait(Envelope(EnvelopeKind.MESSAGE, connection_id=connection_id, payload=raw))

    async def accept_request(self, patient_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Accept the pending request

        Args:
            patient_name: Must match the pending request when given

        Returns:
            Case dictionary after the transition

        Raises:
            LifecycleError: no matching pending request
        """
        return await self._command(EnvelopeKind.ACCEPT, {"patientName": patient_name})

    async def reject_request(self, patient_name: Optional[str] = None, reason: str = "rejected") -> Dict[str, Any]:
        """Reject the pending request (see accept_request)"""
        return await self._command(EnvelopeKind.REJECT, {"patientName": patient_name, "reason": reason})

    async def _command(self, kind: EnvelopeKind, payload: Dict[str, Any]) -> Any:
        if not self._running:
            raise RuntimeError("Coordination hub is not running")

        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(Envelope(kind, payload=payload, future=future))
        return await future

    # ============================================
    # Dispatcher
    # ============================================

    async def _dispatch_loop(self):
        while True:
            envelope = await self._inbox.get()
            try:
                result = await self._apply(envelope)
            except ProtocolViolation as e:
                self.protocol_violations += 1
                print(f"[PROTOCOL] Discarded frame from {envelope.connection_id}: {e}")
                self._resolve(envelope, error=e)
            except LifecycleError as e:
                print(f"[HUB] Command refused: {e}")
                self._resolve(envelope, error=e)
            except asyncio.CancelledError:
                self._resolve(envelope, error=RuntimeError("Coordination hub stopped"))
                raise
            except Exception as e:
                self.dispatch_errors += 1
                print(f"[HUB] Error applying {envelope.kind.value}: {e}")
                self._resolve(envelope, error=e)
            else:
                self._resolve(envelope, result=result)
            finally:
                self._inbox.task_done()

    @staticmethod
    def _resolve(envelope: Envelope, result: Any = None, error: Exception = None):
        future = envelope.future
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    async def _apply(self, envelope: Envelope) -> Any:
        kind = envelope.kind

        if kind == EnvelopeKind.MESSAGE:
            message = parse_inbound(envelope.payload)
            if isinstance(message, EmergencyRequestMessage):
                return await self._on_emergency_request(envelope.connection_id, message)
            return await self._on_location_update(message)

        if kind == EnvelopeKind.ACCEPT:
            return await self._on_accept(envelope.payload.get("patientName"))

        if kind == EnvelopeKind.REJECT:
            return await self._on_reject(
                envelope.payload.get("patientName"),
                envelope.payload.get("reason") or "rejected"
            )

        if kind == EnvelopeKind.POSITION:
            return await self._on_simulated_position(envelope.case_id, envelope.payload)

        if kind == EnvelopeKind.ROUTE_READY:
            return await self._on_route_ready(envelope.case_id, envelope.payload)

        raise ValueError(f"Unknown envelope kind: {kind}")

    # ============================================
    # Emergency Requests
    # ============================================

    async def _on_emergency_request(
        self,
        connection_id: Optional[str],
        message: EmergencyRequestMessage
    ) -> EmergencyCase:
        active = self.get_active_case()

        if active and active.request.patient_name == message.name:
            self.follow_up_reports += 1
            print(f"[HUB] Follow-up report for {active.case_id} ({len(message.nearbyTrafficLights)} lights)")
            await self._relay_reported_lights(active, message)
            return active

        if active:
            self._supersede(active)

        case = self._open_case(connection_id, message)

        outbound = dict(message.raw)
        outbound.update({
            "messageType": MessageType.EMERGENCY_REQUEST.value,
            "name": message.name,
            "caseId": case.case_id,
            "timestamp": utc_timestamp(),
        })
        if message.latitude is not None:
            outbound["latitude"] = message.latitude
            outbound["longitude"] = message.longitude
        if message.direction is not None:
            outbound["direction"] = message.direction
        if message.fromDirection is not None:
            outbound["fromDirection"] = message.fromDirection

        delivered = await self.registry.broadcast(outbound, exclude=connection_id)
        print(f"[HUB] Emergency request {case.case_id} for {message.name} relayed to {delivered} observers")

        if self.notifier:
            self._spawn(
                self.notifier.notify(self.notification_recipient, message.name),
                "notification"
            )

        if message.nearbyTrafficLights:
            self._record(self._reported_events(case, message))

        return case

    def _open_case(self, connection_id: Optional[str], message: EmergencyRequestMessage) -> EmergencyCase:
        self._case_counter += 1
        case_id = f"EMG-{self._case_counter:05d}"

        origin = None
        if message.latitude is not None:
            origin = Coordinate(message.latitude, message.longitude)

        destination = None
        if message.destinationLatitude is not None:
            destination = Coordinate(message.destinationLatitude, message.destinationLongitude)

        request = EmergencyRequest(
            patient_name=message.name,
            requester_id=connection_id,
            origin=origin,
            destination=destination,
            payload=dict(message.raw),
        )

        case = EmergencyCase(
            case_id=case_id,
            request=request,
            tracker=ProximityTracker(self.radius_meters),
        )

        self.cases[case_id] = case
        self.active_case_id = case_id
        return case

    def _supersede(self, case: EmergencyCase):
        """Close the active case because a request for another patient arrived"""
        if case.state == RequestState.PENDING:
            case.lifecycle.reject("superseded")
        else:
            case.retired_at = time.time()

        case.stop_tracking()
        case.discard_signals()
        self.cases.pop(case.case_id, None)
        self.cases_superseded += 1
        print(f"[HUB] Case {case.case_id} superseded ({case.state.value})")

    def _reported_events(self, case: EmergencyCase, message: EmergencyRequestMessage) -> List[SignalEvent]:
        return [
            SignalEvent(
                signal=SignalPoint.at(light.lat, light.lng),
                direction=light.direction,
                from_direction=light.fromDirection,
                case_id=case.case_id,
                patient_name=case.request.patient_name,
                source=SignalEventSource.REPORTED,
            )
            for light in message.nearbyTrafficLights
        ]

    async def _relay_reported_lights(self, case: EmergencyCase, message: EmergencyRequestMessage):
        events = self._reported_events(case, message)
        if not events:
            return
        self._record(events)
        await self._broadcast_traffic_lights(events, case.case_id)

    # ============================================
    # Accept / Reject
    # ============================================

    def _pending_case(self, patient_name: Optional[str]) -> EmergencyCase:
        case = self.get_active_case()

        if case is None or case.state != RequestState.PENDING:
            raise LifecycleError("No pending emergency request")

        if patient_name and case.request.patient_name != patient_name:
            raise LifecycleError(
                f"Pending request is for {case.request.patient_name!r}, not {patient_name!r}"
            )

        return case

    async def _on_accept(self, patient_name: Optional[str]) -> Dict[str, Any]:
        case = self._pending_case(patient_name)

        case.lifecycle.accept()
        case.tracker.reset()
        case.discard_signals()
        self.cases_accepted += 1
        print(f"[HUB] Case {case.case_id} accepted for {case.request.patient_name}")

        if self.notifier:
            self._spawn(
                self.notifier.notify_accepted(self.notification_recipient, case.request.patient_name),
                "notification"
            )

        origin = self.vehicle_position or self.depot
        destination = case.request.origin or case.request.destination

        if destination is None or self.route_provider is None:
            print(f"[HUB] No route for {case.case_id}; signals will not be matched")
            await self._broadcast_status(case)
        else:
            self._spawn(self._fetch_route(case.case_id, origin, destination), "route")

        return case.to_dict()

    async def _on_reject(self, patient_name: Optional[str], reason: str) -> Dict[str, Any]:
        case = self._pending_case(patient_name)

        case.lifecycle.reject(reason)
        case.stop_tracking()
        case.discard_signals()
        self.cases.pop(case.case_id, None)
        self.active_case_id = None
        self.cases_rejected += 1
        print(f"[HUB] Case {case.case_id} rejected ({reason})")

        return case.to_dict()

    # ============================================
    # Route and Simulation
    # ============================================

    async def _fetch_route(self, case_id: str, origin: Coordinate, destination: Coordinate):
        route = None
        try:
            route = await self.route_provider.get_route(origin, destination)
        except Exception as e:
            self._collaborator_failed("route", e)

        self._inbox.put_nowait(Envelope(EnvelopeKind.ROUTE_READY, case_id=case_id, payload=route))

    def _is_current(self, case: Optional[EmergencyCase]) -> bool:
        return (
            case is not None and
            case.case_id == self.active_case_id and
            case.state == RequestState.ACCEPTED and
            case.retired_at is None
        )

    async def _on_route_ready(self, case_id: str, route: Optional[RouteResult]):
        case = self.cases.get(case_id)
        if not self._is_current(case):
            return

        case.route = route
        if route and route.path:
            case.relevant_signals = self.matcher.match_route(route.path, self.catalog)
            print(f"[HUB] Route for {case_id}: {len(route.path)} points, "
                  f"{len(case.relevant_signals)} signals on route, ETA {route.eta or 'unknown'}")

        await self._broadcast_status(case)

        if route and route.path and self.simulation_enabled and not case.live_feed:
            self._start_simulation(case, route.path)

    def _start_simulation(self, case: EmergencyCase, path: List[Coordinate]):
        simulator = MotionSimulator(
            path,
            step_interval_ms=self.step_interval_ms,
            step_factor=self.step_factor,
            min_steps=self.min_steps
        )
        case.simulator = simulator
        case.tracking_task = self._spawn(self._run_simulation(case.case_id, simulator), "simulation")
        print(f"[SIM] Simulating {case.case_id} along {len(path)} route points")

    async def _run_simulation(self, case_id: str, simulator: MotionSimulator):
        async for position in simulator.run():
            self._inbox.put_nowait(Envelope(EnvelopeKind.POSITION, case_id=case_id, payload=position))

        print(f"[SIM] {case_id} finished after {simulator.ticks_emitted} ticks")

    # ============================================
    # Positions
    # ============================================

    def _directions_from(self, position: Coordinate):
        previous = self.vehicle_position
        if previous is None or previous == position:
            return None, None
        return bearing(previous, position).octant, bearing(position, previous).octant

    async def _on_location_update(self, message) -> None:
        position = Coordinate(message.latitude, message.longitude)
        direction, from_direction = self._directions_from(position)

        case = self.get_active_case()
        if case and case.state == RequestState.ACCEPTED and not case.live_feed:
            case.live_feed = True
            if case.is_tracking:
                case.stop_tracking()
                print(f"[SIM] Live feed took over {case.case_id}, simulation cancelled")

        await self._publish_position(
            position,
            vehicle_id=message.vehicleId or self.vehicle_id,
            direction=message.direction or direction,
            from_direction=message.fromDirection or from_direction,
        )

    async def _on_simulated_position(self, case_id: str, position: Coordinate) -> None:
        case = self.cases.get(case_id)
        if not self._is_current(case) or case.live_feed:
            return

        direction, from_direction = self._directions_from(position)
        await self._publish_position(position, self.vehicle_id, direction, from_direction)

    async def _publish_position(
        self,
        position: Coordinate,
        vehicle_id: Optional[str],
        direction: Optional[str],
        from_direction: Optional[str]
    ):
        self.vehicle_position = position

        update = CoordinateUpdateData(
            latitude=position.lat,
            longitude=position.lng,
            vehicleId=vehicle_id,
            direction=direction,
            fromDirection=from_direction,
        )
        await self.registry.broadcast(update.model_dump())

        case = self.get_active_case()
        if self._is_current(case) and case.relevant_signals:
            await self._check_signals(case, position)

    async def _check_signals(self, case: EmergencyCase, position: Coordinate):
        newly = case.tracker.check_proximity(position, case.relevant_signals)
        if not newly:
            return

        events = []
        for signal in newly:
            approach = describe_approach(position, signal)
            events.append(SignalEvent(
                signal=signal,
                direction=approach.direction.octant,
                from_direction=approach.from_direction.octant,
                case_id=case.case_id,
                patient_name=case.request.patient_name,
                bearing=approach.direction.degrees,
                distance=approach.distance,
            ))
            print(f"[HUB] Signal {signal.signal_id} notified for {case.case_id} "
                  f"(heading {approach.direction.octant}, {approach.distance:.0f} m)")

        self.signals_notified += len(events)
        await self._broadcast_traffic_lights(events, case.case_id)
        self._record(events)

    # ============================================
    # Outbound
    # ============================================

    async def _broadcast_traffic_lights(self, events: List[SignalEvent], case_id: Optional[str]) -> int:
        update = TrafficLightUpdateData(
            trafficLights=[TrafficLightData(**event.to_payload()) for event in events],
            caseId=case_id,
        )
        return await self.registry.broadcast(update.model_dump())

    async def _broadcast_status(self, case: EmergencyCase) -> int:
        status = RequestStatusData(
            caseId=case.case_id,
            name=case.request.patient_name,
            status=case.state.value,
            eta=case.route.eta if case.route else None,
            trafficLightsOnRoute=len(case.relevant_signals),
        )
        return await self.registry.broadcast(status.model_dump())

    async def broadcast_recent_signals(self, events: List[SignalEvent]) -> int:
        """Broadcast previously recorded signal events as one trafficLightUpdate"""
        if not events:
            return 0
        return await self._broadcast_traffic_lights(events, case_id=None)

    # ============================================
    # Collaborators
    # ============================================

    def _record(self, events: List[SignalEvent]):
        if self.sink and events:
            self._spawn(self.sink.record_signal_events(events), "persistence")

    def _spawn(self, coro, label: str) -> asyncio.Task:
        task = asyncio.create_task(self._guard(coro, label))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _guard(self, coro, label: str):
        try:
            return await coro
        except Exception as e:
            self._collaborator_failed(label, e)

    def _collaborator_failed(self, label: str, error: Exception):
        self.collaborator_failures += 1
        print(f"[COLLABORATOR] {label} failed: {error}")

    # ============================================
    # Queries
    # ============================================

    def get_active_case(self) -> Optional[EmergencyCase]:
        if self.active_case_id is None:
            return None
        return self.cases.get(self.active_case_id)

    def get_case(self, case_id: str) -> Optional[EmergencyCase]:
        return self.cases.get(case_id)

    def get_stats(self) -> Dict[str, Any]:
        """Get hub statistics"""
        return {
            "running": self._running,
            "activeCaseId": self.active_case_id,
            "totalCases": len(self.cases),
            "casesAccepted": self.cases_accepted,
            "casesRejected": self.cases_rejected,
            "casesSuperseded": self.cases_superseded,
            "messagesReceived": self.messages_received,
            "protocolViolations": self.protocol_violations,
            "collaboratorFailures": self.collaborator_failures,
            "dispatchErrors": self.dispatch_errors,
            "followUpReports": self.follow_up_reports,
            "signalsNotified": self.signals_notified,
            "catalogSize": len(self.catalog),
            "queueDepth": self._inbox.qsize(),
            "backgroundTasks": len(self._background),
            "observers": self.registry.get_stats(),
        }


# ============================================
# Global Instance
# ============================================

_hub: Optional[CoordinationHub] = None


def get_hub() -> Optional[CoordinationHub]:
    """Get the global coordination hub"""
    return _hub


def set_hub(hub: Optional[CoordinationHub]):
    """Set the global coordination hub"""
    global _hub
    _hub = hub
