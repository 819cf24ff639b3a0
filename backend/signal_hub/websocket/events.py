"""
Message Channel Event Definitions

Every frame on the observer channel is a JSON object carrying a
`messageType` field. Field names below are the wire contract shared with
the vehicle dashboards.

Events are categorized as:
- Observer -> Hub: emergency requests and live vehicle positions
- Hub -> Observer: broadcasts produced by the coordination hub
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================
# Message Type Constants
# ============================================

class MessageType(str, Enum):
    """Values of the messageType field"""

    # Observer -> Hub (emergencyRequest is also broadcast back out)
    EMERGENCY_REQUEST = "emergencyRequest"
    VEHICLE_LOCATION_UPDATE = "vehicleLocationUpdate"

    # Hub -> Observer
    COORDINATE_UPDATE = "coordinateUpdate"
    TRAFFIC_LIGHT_UPDATE = "trafficLightUpdate"
    REQUEST_STATUS = "requestStatus"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-01T10:00:00.000Z"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================
# Observer -> Hub Message Models
# ============================================

class ReportedTrafficLight(BaseModel):
    """One entry of nearbyTrafficLights in an inbound emergency request"""
    model_config = ConfigDict(extra="allow")

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    direction: Optional[str] = None
    fromDirection: Optional[str] = None


class EmergencyRequestMessage(BaseModel):
    """Validated inbound emergencyRequest (modern or legacy form)"""
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    direction: Optional[str] = None
    fromDirection: Optional[str] = None
    destinationLatitude: Optional[float] = None
    destinationLongitude: Optional[float] = None
    nearbyTrafficLights: List[ReportedTrafficLight] = Field(default_factory=list)
    legacy: bool = False

    # Every field the client sent, echoed in the broadcast
    raw: Dict[str, Any] = Field(default_factory=dict)


class VehicleLocationMessage(BaseModel):
    """Validated inbound vehicleLocationUpdate"""
    latitude: float
    longitude: float
    vehicleId: Optional[str] = None
    direction: Optional[str] = None
    fromDirection: Optional[str] = None


# ============================================
# Hub -> Observer Event Models
# ============================================

class CoordinateUpdateData(BaseModel):
    """Data for coordinateUpdate broadcasts"""
    messageType: Literal["coordinateUpdate"] = "coordinateUpdate"
    latitude: float
    longitude: float
    vehicleId: Optional[str] = None
    direction: Optional[str] = None
    fromDirection: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)


class TrafficLightData(BaseModel):
    """One signal inside trafficLightUpdate"""
    lat: float
    lng: float
    direction: Optional[str] = None
    fromDirection: Optional[str] = None
    bearing: Optional[float] = None
    distance: Optional[float] = None


class TrafficLightUpdateData(BaseModel):
    """Data for trafficLightUpdate broadcasts"""
    messageType: Literal["trafficLightUpdate"] = "trafficLightUpdate"
    trafficLights: List[TrafficLightData]
    caseId: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)


class RequestStatusData(BaseModel):
    """Data for requestStatus broadcasts (route established for an accepted case)"""
    messageType: Literal["requestStatus"] = "requestStatus"
    caseId: str
    name: str
    status: str
    eta: Optional[str] = None
    trafficLightsOnRoute: int = 0
    timestamp: str = Field(default_factory=utc_timestamp)
