"""Shared pytest fixtures for obd_emissions tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Generator, Optional

import pytest

from obd_emissions.config import TrackerSettings
from obd_emissions.emissions import EmissionsEstimator
from obd_emissions.reader.base import OBDReader
from obd_emissions.schemas import TripRecord

FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"


class FakeReader(OBDReader):
    """In-memory reader answering from a ``{pid: raw_response}`` dict."""

    def __init__(
        self,
        responses: Optional[Dict[str, Optional[str]]] = None,
        *,
        connected: bool = True,
        fail_connect: bool = False,
    ) -> None:
        self.responses = dict(responses or {})
        self._connected = connected
        self._fail_connect = fail_connect
        self.queries: list[str] = []
        self.disconnected = False

    async def connect(self) -> None:
        if self._fail_connect:
            raise ConnectionError("adapter unreachable")
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False
        self.disconnected = True

    def is_connected(self) -> bool:
        return self._connected

    async def query(self, pid: str) -> Optional[str]:
        self.queries.append(pid)
        return self.responses.get(pid)


@pytest.fixture(autouse=True)
def _reset_scenario_cache() -> Generator[None, None, None]:
    """Clear the simulation scenario cache between tests."""
    from obd_emissions.reader import simulation

    simulation._scenarios_cache = None
    yield
    simulation._scenarios_cache = None


@pytest.fixture()
def estimator() -> EmissionsEstimator:
    return EmissionsEstimator()


@pytest.fixture()
def settings() -> TrackerSettings:
    return TrackerSettings(
        obd_port="sim",
        vehicle_id="V-TEST-001",
        dry_run=True,
        poll_interval_seconds=0.01,
    )


@pytest.fixture()
def sample_log_path() -> Path:
    return FIXTURES_DIR / "sample_trip_log.txt"


def make_trip(
    total_co2_g: float,
    distance_km: float,
    *,
    day: int = 1,
    vehicle_id: str = "V-TEST-001",
) -> TripRecord:
    ended = datetime(2025, 7, day, 18, 0, tzinfo=timezone.utc)
    return TripRecord(
        vehicle_id=vehicle_id,
        started_at=ended - timedelta(minutes=20),
        ended_at=ended,
        distance_km=distance_km,
        total_co2_g=total_co2_g,
        avg_co2_g_per_km=total_co2_g / distance_km if distance_km else None,
    )
