"""
Inbound Message Parsing

Turns a raw text frame (or an already-decoded Socket.IO payload) into a
validated message model. Anything that cannot be parsed raises
ProtocolViolation; the hub discards the frame and keeps the connection open.

Accepted aliases (older dashboards):
- lat / lng instead of latitude / longitude
- a frame with a non-empty `name` and no messageType is an emergencyRequest
"""

import json
import math
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from signal_hub.errors import ProtocolViolation

from .events import (
    MessageType,
    EmergencyRequestMessage,
    ReportedTrafficLight,
    VehicleLocationMessage,
)


InboundMessage = Union[EmergencyRequestMessage, VehicleLocationMessage]


def decode_frame(raw: Any) -> Dict[str, Any]:
    """Decode a text/bytes frame into a JSON object"""
    if isinstance(raw, dict):
        return raw

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolViolation("frame is not valid UTF-8")

    if not isinstance(raw, str):
        raise ProtocolViolation(f"unsupported frame type: {type(raw).__name__}")

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ProtocolViolation(f"malformed JSON: {e}")

    if not isinstance(data, dict):
        raise ProtocolViolation("frame must be a JSON object")

    return data


def parse_inbound(raw: Any) -> InboundMessage:
    """
    Parse one inbound frame

    Args:
        raw: JSON text, bytes, or a dict (Socket.IO may deliver decoded JSON)

    Returns:
        EmergencyRequestMessage or VehicleLocationMessage

    Raises:
        ProtocolViolation: malformed frame, unknown type, or missing fields
    """
    data = decode_frame(raw)
    message_type = data.get("messageType")

    if message_type == MessageType.EMERGENCY_REQUEST.value:
        return _parse_emergency_request(data, legacy=False)

    if message_type == MessageType.VEHICLE_LOCATION_UPDATE.value:
        return _parse_location_update(data)

    if message_type is None:
        if data.get("name"):
            return _parse_emergency_request(data, legacy=True)
        raise ProtocolViolation("unknown message format (no messageType and no name)")

    raise ProtocolViolation(f"unknown messageType: {message_type!r}")


# ============================================
# Field Helpers
# ============================================

def _number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ProtocolViolation(f"{field_name} must be a number")
    try:
        number = float(value)
    except ValueError:
        raise ProtocolViolation(f"{field_name} must be a number")
    if not math.isfinite(number):
        raise ProtocolViolation(f"{field_name} must be finite")
    return number


def _first_present(data: Dict[str, Any], *keys: str) -> Tuple[Optional[str], Any]:
    for key in keys:
        if data.get(key) is not None:
            return key, data[key]
    return None, None


def read_coordinate(
    data: Dict[str, Any],
    lat_keys: Tuple[str, ...] = ("latitude", "lat"),
    lng_keys: Tuple[str, ...] = ("longitude", "lng"),
    required: bool = False
) -> Optional[Tuple[float, float]]:
    """
    Read a (lat, lng) pair honouring key aliases

    Returns None when neither half is present and the pair is optional.
    """
    lat_key, lat_value = _first_present(data, *lat_keys)
    lng_key, lng_value = _first_present(data, *lng_keys)

    if lat_key is None and lng_key is None:
        if required:
            raise ProtocolViolation(f"missing coordinates ({lat_keys[0]}/{lng_keys[0]})")
        return None

    if lat_key is None or lng_key is None:
        raise ProtocolViolation("incomplete coordinate pair")

    lat = _number(lat_value, lat_key)
    lng = _number(lng_value, lng_key)

    if not -90.0 <= lat <= 90.0:
        raise ProtocolViolation(f"{lat_key} out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise ProtocolViolation(f"{lng_key} out of range: {lng}")

    return lat, lng


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolViolation(f"{key} must be a string")
    return value


# ============================================
# Message Parsers
# ============================================

def _parse_emergency_request(data: Dict[str, Any], legacy: bool) -> EmergencyRequestMessage:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ProtocolViolation("emergencyRequest without patient name")

    origin = read_coordinate(data)

    destination = None
    if isinstance(data.get("destination"), dict):
        destination = read_coordinate(data["destination"], required=True)
    elif data.get("destination") is not None:
        raise ProtocolViolation("destination must be an object with lat/lng")

    from_direction = _optional_text(data, "fromDirection")

    lights = data.get("nearbyTrafficLights") or []
    if not isinstance(lights, list):
        raise ProtocolViolation("nearbyTrafficLights must be a list")

    reported = []
    for index, item in enumerate(lights):
        if not isinstance(item, dict):
            raise ProtocolViolation(f"nearbyTrafficLights[{index}] must be an object")
        try:
            light = ReportedTrafficLight.model_validate(item)
        except ValidationError as e:
            raise ProtocolViolation(f"nearbyTrafficLights[{index}] invalid: {e.errors()[0]['msg']}")
        # Per-light fromDirection falls back to the request-level one
        if light.fromDirection is None and from_direction is not None:
            light = light.model_copy(update={"fromDirection": from_direction})
        reported.append(light)

    return EmergencyRequestMessage(
        name=name.strip(),
        latitude=origin[0] if origin else None,
        longitude=origin[1] if origin else None,
        direction=_optional_text(data, "direction"),
        fromDirection=from_direction,
        destinationLatitude=destination[0] if destination else None,
        destinationLongitude=destination[1] if destination else None,
        nearbyTrafficLights=reported,
        legacy=legacy,
        raw=dict(data),
    )


def _parse_location_update(data: Dict[str, Any]) -> VehicleLocationMessage:
    lat, lng = read_coordinate(data, required=True)

    vehicle_id = data.get("vehicleId")
    if vehicle_id is not None:
        vehicle_id = str(vehicle_id)

    return VehicleLocationMessage(
        latitude=lat,
        longitude=lng,
        vehicleId=vehicle_id,
        direction=_optional_text(data, "direction"),
        fromDirection=_optional_text(data, "fromDirection"),
    )
