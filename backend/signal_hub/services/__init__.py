"""
External Collaborators

- notification_service: SMS alerts (Twilio REST, console fallback)
- route_service: route providers (OSRM, straight line)
- signal_catalog: static traffic signal catalog loader
"""

from .notification_service import (
    NotificationSender,
    ConsoleNotificationSender,
    TwilioSmsSender,
    create_notification_sender,
)

from .route_service import (
    RouteProvider,
    OsrmRouteProvider,
    StraightLineRouteProvider,
    create_route_provider,
    format_eta,
)

from .signal_catalog import load_signal_catalog, parse_signal_catalog

__all__ = [
    "NotificationSender",
    "ConsoleNotificationSender",
    "TwilioSmsSender",
    "create_notification_sender",
    "RouteProvider",
    "OsrmRouteProvider",
    "StraightLineRouteProvider",
    "create_route_provider",
    "format_eta",
    "load_signal_catalog",
    "parse_signal_catalog",
]
