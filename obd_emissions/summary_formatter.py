"""Format a ``TripRecord.model_dump()`` dict into flat display strings."""

from __future__ import annotations

from datetime import datetime
from typing import Dict


_EMPTY: Dict[str, str] = {
    "parse_ok": "NO",
    "vehicle_id": "",
    "duration": "",
    "distance": "",
    "emissions": "",
    "intensity": "",
    "data_quality": "",
    "debug": "",
}


def format_trip_report(data: dict) -> dict:
    """Convert a trip dict into the string fields listed in :data:`_EMPTY`.

    On any unexpected error the result has ``parse_ok="NO"`` and a
    ``debug`` message.
    """
    try:
        return _format_impl(data)
    except Exception as exc:
        result = dict(_EMPTY)
        result["debug"] = f"format error: {exc}"
        return result


def render_text(report: dict) -> str:
    """Multi-line console rendering of :func:`format_trip_report` output."""
    if report.get("parse_ok") != "YES":
        return f"Trip report unavailable ({report.get('debug', '')})"
    return "\n".join(
        f"{label:<13}{report[key]}"
        for label, key in (
            ("Vehicle:", "vehicle_id"),
            ("Duration:", "duration"),
            ("Distance:", "distance"),
            ("CO2:", "emissions"),
            ("Intensity:", "intensity"),
            ("Data quality:", "data_quality"),
        )
    )


# ------------------------------------------------------------------
# Private implementation
# ------------------------------------------------------------------


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _format_impl(data: dict) -> dict:
    started = _as_datetime(data["started_at"])
    ended = _as_datetime(data["ended_at"])
    seconds = int((ended - started).total_seconds())
    minutes, secs = divmod(max(seconds, 0), 60)

    distance_km = float(data["distance_km"])
    total_g = float(data["total_co2_g"])
    avg = data.get("avg_co2_g_per_km")

    route_km = data.get("route_distance_km") or 0.0
    distance = f"{distance_km:.2f} km"
    if route_km:
        distance += f" (GPS route {route_km:.2f} km)"

    ticks = int(data.get("tick_count", 0))
    stale = int(data.get("stale_tick_count", 0))
    total_ticks = ticks + stale
    quality = (
        f"{ticks}/{total_ticks} ticks usable ({100.0 * ticks / total_ticks:.0f}%)"
        if total_ticks
        else "no ticks recorded"
    )

    return {
        "parse_ok": "YES",
        "vehicle_id": data.get("vehicle_id", ""),
        "duration": f"{minutes}m {secs:02d}s",
        "distance": distance,
        "emissions": f"{total_g / 1000.0:.2f} kg ({total_g:.1f} g)",
        "intensity": f"{avg:.1f} g/km" if avg is not None else "n/a",
        "data_quality": quality,
        "debug": f"OK, keys={list(data.keys())[:8]}",
    }
