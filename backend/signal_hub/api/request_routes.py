"""
Request Routes - Emergency request control endpoints

Endpoints:
- POST /accept-request - Accept the pending emergency request
- POST /reject-request - Reject the pending emergency request
- GET /api/cases/active - Active case details
- GET /api/signals/recent - Replay recently recorded signal events
"""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
import time

from signal_hub.database import SqlSignalEventSink, get_sink
from signal_hub.emergency import CoordinationHub, get_hub
from signal_hub.errors import CollaboratorFailure, LifecycleError

router = APIRouter(tags=["requests"])


# ============================================
# Request/Response Models
# ============================================

class RequestDecision(BaseModel):
    """Accept/reject command body"""
    patientName: Optional[str] = Field(
        default=None,
        description="Patient name of the pending request (checked when given)"
    )
    reason: Optional[str] = Field(
        default=None,
        description="Rejection reason (reject only)"
    )


class DecisionResponse(BaseModel):
    """Result of an accept/reject command"""
    success: bool
    message: str
    case: Dict[str, Any]


# ============================================
# Component lookup
# ============================================

def _get_hub() -> CoordinationHub:
    hub = get_hub()
    if not hub or not hub.is_running:
        raise HTTPException(status_code=503, detail="Coordination hub not initialized")
    return hub


def _get_sink() -> SqlSignalEventSink:
    sink = get_sink()
    if not sink:
        raise HTTPException(status_code=503, detail="Signal event store not initialized")
    return sink


# ============================================
# Endpoints
# ============================================

@router.post("/accept-request", response_model=DecisionResponse)
async def accept_request(request: RequestDecision):
    """
    Accept the pending emergency request

    The hub resets the notified signals, fetches the route from the vehicle
    to the patient and starts tracking the vehicle along it.

    Example:
    ```
    curl -X POST http://localhost:8000/accept-request \\
      -H "Content-Type: application/json" \\
      -d '{"patientName":"Jane Doe"}'
    ```
    """
    hub = _get_hub()

    try:
        case = await hub.accept_request(request.patientName)
    except LifecycleError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return DecisionResponse(
        success=True,
        message=f"Request accepted for {case['patientName']}",
        case=case
    )


@router.post("/reject-request", response_model=DecisionResponse)
async def reject_request(request: RequestDecision):
    """Reject the pending emergency request"""
    hub = _get_hub()

    try:
        case = await hub.reject_request(request.patientName, request.reason or "rejected")
    except LifecycleError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return DecisionResponse(
        success=True,
        message=f"Request rejected for {case['patientName']}",
        case=case
    )


@router.get("/api/cases/active")
async def get_active_case():
    """Active case, or {"active": false}"""
    hub = _get_hub()

    case = hub.get_active_case()
    if case is None:
        return {"active": False, "case": None, "timestamp": time.time()}

    return {"active": True, "case": case.to_dict(), "timestamp": time.time()}


@router.get("/api/signals/recent")
async def get_recent_signals(
    limit: int = Query(default=20, ge=1, le=200, description="Number of events"),
    broadcast: bool = Query(default=False, description="Also send them as trafficLightUpdate")
):
    """
    Latest recorded signal events

    With broadcast=true the events are also sent to every observer as one
    trafficLightUpdate.
    """
    hub = _get_hub()
    sink = _get_sink()

    try:
        events = await sink.recent_events(limit)
    except CollaboratorFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    delivered = 0
    if broadcast:
        delivered = await hub.broadcast_recent_signals(events)

    return {
        "count": len(events),
        "delivered": delivered,
        "trafficLights": [
            {**event.to_payload(), "caseId": event.case_id, "source": event.source.value,
             "timestamp": event.timestamp}
            for event in events
        ],
    }
