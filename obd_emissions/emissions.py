"""Gasoline CO₂ emissions estimator.

Converts one tick of normalised telemetry (elapsed time, speed and either
mass-air-flow or fuel rate) into an instantaneous CO₂ mass flow and keeps
running trip totals.

Fuel-flow selection, first match wins:

1. ``maf_gps > 0``: ``fuel_g_s = maf / (AFR_STOICH * max(0.8, lambda))``,
   converted to L/s with the fuel density.
2. ``fuel_rate_Lh > 0``: ``fuel_L_s = fuel_rate / 3600``.
3. Neither: the tick is *stale* and totals are not touched.

``co2_gps = fuel_L_s * EF_CO2_G_PER_L``.  The emission factor already
includes the combustion chemistry, so it is applied as a single constant.

The estimator never raises for bad numeric input.  Invalid ticks
(``dt_s <= 0``, ``speed_mps < 0``, non-finite values) and ticks with no
usable fuel signal return the last known totals with ``stale=True``.

One :class:`EmissionsEstimator` belongs to exactly one trip and one owner.
It has no internal locking; concurrent producers must serialise calls.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Gasoline constants
# ---------------------------------------------------------------------------

AFR_STOICH = 14.7  # air:fuel mass ratio
FUEL_DENSITY_G_PER_L = 745.0
EF_CO2_G_PER_L = 2340.0
LAMBDA_FLOOR = 0.8
SECONDS_PER_HOUR = 3600.0

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmissionsInputs:
    """One tick of normalised telemetry.

    Attributes
    ----------
    dt_s : float
        Seconds since the previous tick; must be positive.
    speed_mps : float
        Vehicle speed in m/s; must be non-negative.
    maf_gps : float, optional
        Mass air flow in g/s (preferred fuel signal).
    fuel_rate_Lh : float, optional
        Engine fuel rate in L/h (fallback fuel signal).
    lambda_equiv : float, optional
        Commanded equivalence ratio; ``1.0`` when absent.
    """

    dt_s: float
    speed_mps: float
    maf_gps: Optional[float] = None
    fuel_rate_Lh: Optional[float] = None
    lambda_equiv: Optional[float] = None


@dataclass(frozen=True)
class FuelFlowFlags:
    """Which fuel signal was used, or whether the tick was rejected."""

    used_maf: bool = False
    used_fuel_rate: bool = False
    stale: bool = False


@dataclass(frozen=True)
class EmissionsOutputs:
    """Per-tick result.  ``None`` marks a quantity that is undefined."""

    co2_gps: float
    co2_g_per_km_instant: Optional[float]
    total_co2_g: float
    distance_km: float
    avg_co2_g_per_km: Optional[float]
    flags: FuelFlowFlags


@dataclass(frozen=True)
class EmissionsSummary:
    """Running totals since the last reset."""

    total_co2_g: float
    distance_km: float
    avg_co2_g_per_km: Optional[float]


_STALE = FuelFlowFlags(stale=True)

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _finite(value: Any) -> Optional[float]:
    """Coerce *value* to a finite float, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _fuel_flow_lps(inputs: EmissionsInputs) -> tuple[float, FuelFlowFlags]:
    """Select the fuel signal and return ``(litres_per_second, flags)``."""
    maf = _finite(inputs.maf_gps)
    if maf is not None and maf > 0:
        lam = _finite(inputs.lambda_equiv) or 1.0
        lambda_eff = max(LAMBDA_FLOOR, lam)
        fuel_mass_gps = maf / (AFR_STOICH * lambda_eff)
        return fuel_mass_gps / FUEL_DENSITY_G_PER_L, FuelFlowFlags(used_maf=True)

    fuel_rate = _finite(inputs.fuel_rate_Lh)
    if fuel_rate is not None and fuel_rate > 0:
        return fuel_rate / SECONDS_PER_HOUR, FuelFlowFlags(used_fuel_rate=True)

    return 0.0, _STALE


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------


class EmissionsEstimator:
    """Accumulates CO₂ mass and distance for a single trip."""

    def __init__(self) -> None:
        self._total_co2_g = 0.0
        self._distance_km = 0.0

    # -- state --------------------------------------------------------------

    def reset(self) -> None:
        """Zero both totals.  Safe to call repeatedly."""
        self._total_co2_g = 0.0
        self._distance_km = 0.0

    @property
    def is_fresh(self) -> bool:
        """``True`` while both totals are zero."""
        return self._total_co2_g == 0.0 and self._distance_km == 0.0

    # -- ticks --------------------------------------------------------------

    def ingest_tick(self, inputs: EmissionsInputs) -> EmissionsOutputs:
        """Process one tick and return the instantaneous and running values."""
        dt_s = _finite(inputs.dt_s)
        speed_mps = _finite(inputs.speed_mps)
        if dt_s is None or speed_mps is None or dt_s <= 0 or speed_mps < 0:
            logger.debug("tick_rejected", dt_s=inputs.dt_s, speed_mps=inputs.speed_mps)
            return self._stale_outputs()

        fuel_lps, flags = _fuel_flow_lps(inputs)
        if flags.stale:
            logger.debug("tick_stale", reason="no_fuel_signal")
            return self._stale_outputs()

        co2_gps = fuel_lps * EF_CO2_G_PER_L
        co2_g_per_km_instant = (
            (co2_gps / speed_mps) * 1000.0 if speed_mps > 0 else None
        )

        self._total_co2_g += co2_gps * dt_s
        self._distance_km += speed_mps * dt_s / 1000.0

        return EmissionsOutputs(
            co2_gps=co2_gps,
            co2_g_per_km_instant=co2_g_per_km_instant,
            total_co2_g=self._total_co2_g,
            distance_km=self._distance_km,
            avg_co2_g_per_km=self._average(),
            flags=flags,
        )

    def get_summary(self) -> EmissionsSummary:
        """Snapshot of the running totals; does not consume a tick."""
        return EmissionsSummary(
            total_co2_g=self._total_co2_g,
            distance_km=self._distance_km,
            avg_co2_g_per_km=self._average(),
        )

    # -- internal -----------------------------------------------------------

    def _average(self) -> Optional[float]:
        if self._distance_km > 0:
            return self._total_co2_g / self._distance_km
        return None

    def _stale_outputs(self) -> EmissionsOutputs:
        return EmissionsOutputs(
            co2_gps=0.0,
            co2_g_per_km_instant=None,
            total_co2_g=self._total_co2_g,
            distance_km=self._distance_km,
            avg_co2_g_per_km=self._average(),
            flags=_STALE,
        )
