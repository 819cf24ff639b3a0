"""
Emergency Request Lifecycle

Implements the per-case state machine:

    (created) -> PENDING -> ACCEPTED
                 PENDING -> REJECTED

ACCEPTED and REJECTED are terminal. A new case must be opened for a new
emergency; nothing transitions back to PENDING.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from signal_hub.errors import LifecycleError
from signal_hub.geo import MotionSimulator, ProximityTracker
from signal_hub.models import Coordinate, SignalPoint


class RequestState(str, Enum):
    """Emergency request status"""
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


_TRANSITIONS = {
    RequestState.PENDING: {RequestState.ACCEPTED, RequestState.REJECTED},
    RequestState.ACCEPTED: set(),
    RequestState.REJECTED: set(),
}


class RequestLifecycle:
    """
    State machine for one emergency request

    Every transition is recorded in `history` as (state, timestamp, reason).
    """

    def __init__(self):
        self.state = RequestState.PENDING
        self.history: List[Tuple[RequestState, float, str]] = [
            (RequestState.PENDING, time.time(), "created")
        ]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def can_transition(self, target: RequestState) -> bool:
        return target in _TRANSITIONS[self.state]

    def accept(self):
        self._transition(RequestState.ACCEPTED, "accepted")

    def reject(self, reason: str = "rejected"):
        self._transition(RequestState.REJECTED, reason)

    def _transition(self, target: RequestState, reason: str):
        if not self.can_transition(target):
            raise LifecycleError(
                f"Cannot move request from {self.state.value} to {target.value}"
            )
        self.state = target
        self.history.append((target, time.time(), reason))


@dataclass
class RouteResult:
    """Route returned by the route provider"""
    path: List[Coordinate]
    eta: str = ""
    distance_meters: float = 0.0
    duration_seconds: float = 0.0


@dataclass
class EmergencyRequest:
    """
    Validated emergency request

    payload keeps the original inbound fields so the broadcast can echo them.
    """
    patient_name: str
    requester_id: Optional[str] = None
    origin: Optional[Coordinate] = None
    destination: Optional[Coordinate] = None
    created_at: float = field(default_factory=time.time)
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmergencyCase:
    """
    Everything the hub owns for one emergency

    Lifecycle, notified-signal registry, relevant signal set, route and the
    tracking task all live here and are only touched by the hub dispatcher.
    """
    case_id: str
    request: EmergencyRequest
    lifecycle: RequestLifecycle = field(default_factory=RequestLifecycle)
    tracker: ProximityTracker = field(default_factory=ProximityTracker)
    relevant_signals: List[SignalPoint] = field(default_factory=list)
    route: Optional[RouteResult] = None
    simulator: Optional[MotionSimulator] = None
    tracking_task: Optional[asyncio.Task] = None
    live_feed: bool = False
    retired_at: Optional[float] = None

    @property
    def state(self) -> RequestState:
        return self.lifecycle.state

    @property
    def is_tracking(self) -> bool:
        return self.tracking_task is not None and not self.tracking_task.done()

    def stop_tracking(self):
        """Cancel the simulated position stream, if any"""
        if self.simulator:
            self.simulator.cancel()
        if self.tracking_task and not self.tracking_task.done():
            self.tracking_task.cancel()
        self.tracking_task = None

    def discard_signals(self):
        self.relevant_signals = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert case to dictionary for API response"""
        return {
            "caseId": self.case_id,
            "patientName": self.request.patient_name,
            "requesterId": self.request.requester_id,
            "status": self.state.value,
            "createdAt": self.request.created_at,
            "origin": self.request.origin.to_dict() if self.request.origin else None,
            "destination": self.request.destination.to_dict() if self.request.destination else None,
            "eta": self.route.eta if self.route else None,
            "routePoints": len(self.route.path) if self.route else 0,
            "trafficLightsOnRoute": len(self.relevant_signals),
            "notifiedTrafficLights": len(self.tracker.notified_ids),
            "tracking": self.is_tracking,
            "liveFeed": self.live_feed,
            "retired": self.retired_at is not None,
            "history": [
                {"state": state.value, "at": at, "reason": reason}
                for state, at, reason in self.lifecycle.history
            ],
        }
