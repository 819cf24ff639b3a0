"""
Emergency Coordination Package

Components:
- lifecycle: request state machine and per-case state
- coordination_hub: queue-driven hub that applies the lifecycle, matches
  signals along the route and fans events out to observers

Usage:
    from signal_hub.emergency import CoordinationHub, set_hub

    hub = CoordinationHub(catalog=signals)
    await hub.start()
    set_hub(hub)
"""

from .lifecycle import (
    RequestState,
    RequestLifecycle,
    RouteResult,
    EmergencyRequest,
    EmergencyCase,
)

from .coordination_hub import (
    DEFAULT_DEPOT,
    EnvelopeKind,
    Envelope,
    CoordinationHub,
    get_hub,
    set_hub,
)

__all__ = [
    "RequestState",
    "RequestLifecycle",
    "RouteResult",
    "EmergencyRequest",
    "EmergencyCase",
    "DEFAULT_DEPOT",
    "EnvelopeKind",
    "Envelope",
    "CoordinationHub",
    "get_hub",
    "set_hub",
]
