"""Aggregate statistics over stored trips.

Feeds the history/analytics views: overall totals, per-trip averages,
the most recent trips as chart series, and a low/medium/high emissions
distribution.  Computed with **pandas**.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from obd_emissions.schemas import TripRecord

# Per-trip emission bands, kg CO₂.
LOW_EMISSIONS_MAX_KG = 2.0
MEDIUM_EMISSIONS_MAX_KG = 5.0


@dataclass(frozen=True)
class EmissionsDistribution:
    low: int = 0  # <= 2 kg
    medium: int = 0  # (2, 5] kg
    high: int = 0  # > 5 kg


@dataclass(frozen=True)
class ChartSeries:
    """Oldest-first series for the most recent trips."""

    labels: List[str] = field(default_factory=list)
    emissions_kg: List[float] = field(default_factory=list)
    distances_km: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class TripAnalytics:
    trip_count: int
    total_co2_kg: float
    average_co2_kg: float
    total_distance_km: float
    average_distance_km: float
    fleet_co2_g_per_km: Optional[float]
    distribution: EmissionsDistribution
    recent: ChartSeries

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def trips_to_dataframe(trips: Sequence[TripRecord]) -> pd.DataFrame:
    """One row per trip, indexed by ``ended_at`` and sorted oldest first."""
    df = pd.DataFrame(
        {
            "ended_at": [t.ended_at for t in trips],
            "total_co2_kg": [t.total_co2_kg for t in trips],
            "distance_km": [t.distance_km for t in trips],
        }
    )
    return df.set_index("ended_at").sort_index()


def _distribution(co2_kg: pd.Series) -> EmissionsDistribution:
    low = int((co2_kg <= LOW_EMISSIONS_MAX_KG).sum())
    high = int((co2_kg > MEDIUM_EMISSIONS_MAX_KG).sum())
    return EmissionsDistribution(low=low, medium=len(co2_kg) - low - high, high=high)


def summarise_trips(trips: Sequence[TripRecord], *, recent: int = 7) -> TripAnalytics:
    """Summarise *trips*; the last *recent* trips become chart series."""
    if not trips:
        return TripAnalytics(
            trip_count=0,
            total_co2_kg=0.0,
            average_co2_kg=0.0,
            total_distance_km=0.0,
            average_distance_km=0.0,
            fleet_co2_g_per_km=None,
            distribution=EmissionsDistribution(),
            recent=ChartSeries(),
        )

    df = trips_to_dataframe(trips)
    total_co2 = float(df["total_co2_kg"].sum())
    total_distance = float(df["distance_km"].sum())

    tail = df.tail(recent) if recent > 0 else df.iloc[0:0]
    series = ChartSeries(
        labels=[ts.strftime("%m/%d") for ts in tail.index],
        emissions_kg=[round(v, 2) for v in tail["total_co2_kg"]],
        distances_km=[round(v, 2) for v in tail["distance_km"]],
    )

    return TripAnalytics(
        trip_count=len(df),
        total_co2_kg=round(total_co2, 2),
        average_co2_kg=round(total_co2 / len(df), 2),
        total_distance_km=round(total_distance, 2),
        average_distance_km=round(total_distance / len(df), 2),
        fleet_co2_g_per_km=(
            total_co2 * 1000.0 / total_distance if total_distance > 0 else None
        ),
        distribution=_distribution(df["total_co2_kg"]),
        recent=series,
    )
