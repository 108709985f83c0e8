"""Assembles one telemetry tick from a connected reader."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import structlog

from obd_emissions.emissions import EmissionsInputs
from obd_emissions.pid_decoder import (
    CORE_PIDS,
    PID_COMMANDED_EQUIV_RATIO,
    PID_ENGINE_LOAD,
    PID_FUEL_RATE,
    PID_MAF,
    PID_RPM,
    PID_SPEED,
    PID_THROTTLE_POS,
    decode,
)
from obd_emissions.reader.base import OBDReader
from obd_emissions.schemas import TelemetryReading

logger = structlog.get_logger(__name__)

FUEL_PIDS = (PID_FUEL_RATE, PID_COMMANDED_EQUIV_RATIO)


async def read_reading(
    reader: OBDReader,
    pids: Iterable[str] = CORE_PIDS,
) -> TelemetryReading:
    """Query *pids* from *reader* and return the decoded reading.

    A PID the adapter does not answer decodes to ``0.0`` like any other
    malformed response.  Fuel rate and equivalence ratio stay ``None``
    unless they were polled and returned a positive value.
    """
    if not reader.is_connected():
        raise RuntimeError("Reader is not connected")

    values: Dict[str, float] = {}
    for pid in pids:
        raw = await reader.query(pid)
        values[pid] = decode(pid, raw) if raw is not None else 0.0

    reading = TelemetryReading(
        speed_kmh=values.get(PID_SPEED, 0.0),
        rpm=values.get(PID_RPM, 0.0),
        maf_gps=values.get(PID_MAF, 0.0),
        engine_load_pct=values.get(PID_ENGINE_LOAD, 0.0),
        throttle_pct=values.get(PID_THROTTLE_POS, 0.0),
        fuel_rate_lph=_positive_or_none(values.get(PID_FUEL_RATE)),
        lambda_equiv=_positive_or_none(values.get(PID_COMMANDED_EQUIV_RATIO)),
    )
    logger.debug(
        "reading_decoded",
        speed_kmh=reading.speed_kmh,
        rpm=reading.rpm,
        maf_gps=reading.maf_gps,
    )
    return reading


def to_emissions_inputs(reading: TelemetryReading, dt_s: float) -> EmissionsInputs:
    """Normalise *reading* into estimator units (m/s, g/s, L/h)."""
    return EmissionsInputs(
        dt_s=dt_s,
        speed_mps=reading.speed_mps,
        maf_gps=_positive_or_none(reading.maf_gps),
        fuel_rate_Lh=reading.fuel_rate_lph,
        lambda_equiv=reading.lambda_equiv,
    )


def _positive_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return value
