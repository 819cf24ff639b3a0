"""
Signal Catalog Loader

Loads the static traffic signal catalog once at startup. Two JSON layouts
are accepted:

- OSM Overpass export: {"elements": [{"lat":..,"lon":..,"tags":{"highway":"traffic_signals"}}]}
- Plain list: [{"lat":..,"lng":..}, ...]

Duplicates (same normalized coordinate) are dropped; catalog order is kept.
"""

import json
from pathlib import Path
from typing import Any, Iterable, List, Union

from signal_hub.models import Coordinate, SignalPoint


def _is_traffic_signal(element: dict) -> bool:
    tags = element.get("tags") or {}
    return tags.get("highway") == "traffic_signals"


def _valid(lat: Any, lng: Any) -> bool:
    return (
        isinstance(lat, (int, float)) and isinstance(lng, (int, float)) and
        -90 <= lat <= 90 and -180 <= lng <= 180
    )


def parse_signal_catalog(data: Union[dict, list]) -> List[SignalPoint]:
    """
    Build SignalPoints from decoded catalog JSON

    Entries without usable coordinates are skipped.
    """
    if isinstance(data, dict):
        entries: Iterable[dict] = (e for e in data.get("elements", []) if _is_traffic_signal(e))
    elif isinstance(data, list):
        entries = data
    else:
        raise ValueError("Signal catalog must be an Overpass object or a list")

    signals: List[SignalPoint] = []
    seen = set()

    for entry in entries:
        if not isinstance(entry, dict):
            continue

        lat = entry.get("lat")
        lng = entry.get("lon", entry.get("lng"))
        if not _valid(lat, lng):
            continue

        signal = SignalPoint(Coordinate(float(lat), float(lng)))
        if signal.signal_id in seen:
            continue

        seen.add(signal.signal_id)
        signals.append(signal)

    return signals


def load_signal_catalog(path: Union[str, Path]) -> List[SignalPoint]:
    """
    Load the catalog file

    Returns an empty catalog (with a warning) when the file is missing or
    unreadable; the hub still relays requests without signal matching.
    """
    catalog_path = Path(path)

    if not catalog_path.exists():
        print(f"[WARN] Signal catalog not found: {catalog_path}")
        return []

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        signals = parse_signal_catalog(data)
    except (OSError, ValueError) as e:
        print(f"[WARN] Failed to load signal catalog {catalog_path.name}: {e}")
        return []

    print(f"   [CATALOG] Loaded {len(signals)} traffic signals from {catalog_path.name}")
    return signals
