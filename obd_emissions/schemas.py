"""Pydantic v2 models for telemetry readings and finished trips.

``TripRecord`` is the payload handed to the hosted trip store; the
store's own schema is owned elsewhere, so the contract is additive:
new fields may be added, existing fields stay backward-compatible.
"""

from __future__ import annotations

import math
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

EARTH_RADIUS_KM = 6371.0


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class TelemetryReading(BaseModel):
    """Decoded PID values for one polling tick (display units)."""

    ts: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Tick timestamp in UTC",
    )
    speed_kmh: float = Field(default=0.0, ge=0, description="Vehicle speed, km/h")
    rpm: float = Field(default=0.0, ge=0, description="Engine speed, rpm")
    maf_gps: float = Field(default=0.0, ge=0, description="Mass air flow, g/s")
    engine_load_pct: float = Field(default=0.0, description="Calculated engine load, %")
    throttle_pct: float = Field(default=0.0, description="Throttle position, %")
    fuel_rate_lph: Optional[float] = Field(
        default=None, description="Engine fuel rate, L/h (PID 5E)"
    )
    lambda_equiv: Optional[float] = Field(
        default=None, description="Commanded equivalence ratio (PID 44)"
    )

    @property
    def speed_mps(self) -> float:
        return self.speed_kmh / 3.6


class RoutePoint(BaseModel):
    """A GPS fix recorded alongside the trip."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    ts: Optional[datetime] = None


def haversine_km(a: RoutePoint, b: RoutePoint) -> float:
    """Great-circle distance between two route points in kilometres."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


# ---------------------------------------------------------------------------
# Top-level trip record
# ---------------------------------------------------------------------------

_RAW_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
_TRIP_KEY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "obd-emissions:trip")


class TripRecord(BaseModel):
    """Final summary of one trip, produced when the trip ends."""

    vehicle_id: str = Field(
        ...,
        description="Pseudonymous vehicle identifier (NOT a raw VIN)",
        examples=["V-SIM-001"],
    )
    started_at: datetime
    ended_at: datetime
    distance_km: float = Field(..., ge=0)
    total_co2_g: float = Field(..., ge=0)
    avg_co2_g_per_km: Optional[float] = None
    tick_count: int = Field(default=0, ge=0, description="Accepted ticks")
    stale_tick_count: int = Field(default=0, ge=0, description="Rejected ticks")
    fuel_type: str = Field(default="gasoline")
    route: List[RoutePoint] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    # --- validators --------------------------------------------------------

    @field_validator("vehicle_id")
    @classmethod
    def reject_raw_vin(cls, v: str) -> str:
        """Reject 17-char alphanumeric strings that look like a raw VIN."""
        if _RAW_VIN_PATTERN.match(v):
            raise ValueError(
                "vehicle_id looks like a raw VIN (ISO 3779). "
                "Use a pseudonymous identifier instead."
            )
        return v

    # --- derived -----------------------------------------------------------

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_co2_kg(self) -> float:
        return self.total_co2_g / 1000.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def route_distance_km(self) -> float:
        """Distance along the recorded GPS route (0 with fewer than 2 points)."""
        return sum(
            haversine_km(prev, nxt) for prev, nxt in zip(self.route, self.route[1:])
        )

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def idempotency_key(self) -> str:
        """Stable per-trip key: same vehicle and start time, same key."""
        started = self.started_at
        if started.tzinfo is not None:
            started = started.astimezone(timezone.utc)
        return str(
            uuid.uuid5(_TRIP_KEY_NAMESPACE, f"{self.vehicle_id}|{started.isoformat()}")
        )
