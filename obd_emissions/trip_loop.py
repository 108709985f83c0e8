"""Main asyncio polling loop: one estimator per trip, one tick per interval."""

from __future__ import annotations

import asyncio
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

import structlog

from obd_emissions.config import TrackerSettings
from obd_emissions.emissions import EmissionsEstimator, EmissionsInputs, EmissionsOutputs
from obd_emissions.pid_decoder import CORE_PIDS
from obd_emissions.reader.base import OBDReader
from obd_emissions.schemas import RoutePoint, TripRecord
from obd_emissions.tick_builder import FUEL_PIDS, read_reading, to_emissions_inputs
from obd_emissions.trip_poster import TripPoster

logger = structlog.get_logger(__name__)


class TripTracker:
    """Owns the estimator, tick counters and route for a single trip."""

    def __init__(self, vehicle_id: str) -> None:
        self.vehicle_id = vehicle_id
        self.estimator = EmissionsEstimator()
        self.route: List[RoutePoint] = []
        self.started_at: Optional[datetime] = None
        self.tick_count = 0
        self.stale_tick_count = 0

    def start(self) -> None:
        """Begin a new trip from a fresh estimator."""
        self.estimator.reset()
        self.route = []
        self.tick_count = 0
        self.stale_tick_count = 0
        self.started_at = datetime.now(timezone.utc)
        logger.info("trip_started", vehicle_id=self.vehicle_id)

    def record_tick(self, inputs: EmissionsInputs) -> EmissionsOutputs:
        outputs = self.estimator.ingest_tick(inputs)
        if outputs.flags.stale:
            self.stale_tick_count += 1
        else:
            self.tick_count += 1
        return outputs

    def add_route_point(self, point: RoutePoint) -> None:
        self.route.append(point)

    def finish(self) -> TripRecord:
        """Build the trip record from the estimator's final summary."""
        if self.started_at is None:
            raise RuntimeError("TripTracker.start() was never called")
        summary = self.estimator.get_summary()
        record = TripRecord(
            vehicle_id=self.vehicle_id,
            started_at=self.started_at,
            ended_at=datetime.now(timezone.utc),
            distance_km=summary.distance_km,
            total_co2_g=summary.total_co2_g,
            avg_co2_g_per_km=summary.avg_co2_g_per_km,
            tick_count=self.tick_count,
            stale_tick_count=self.stale_tick_count,
            route=list(self.route),
        )
        logger.info(
            "trip_finished",
            vehicle_id=record.vehicle_id,
            distance_km=round(record.distance_km, 3),
            total_co2_g=round(record.total_co2_g, 1),
            ticks=record.tick_count,
            stale_ticks=record.stale_tick_count,
        )
        return record


def create_reader(settings: TrackerSettings) -> OBDReader:
    """Factory: return the right reader for the current config."""
    if settings.is_simulation:
        from obd_emissions.reader.simulation import SimulationReader

        return SimulationReader(scenario=settings.obd_sim_scenario)

    from obd_emissions.reader.live import LiveReader

    return LiveReader(
        settings.connection_url,
        baudrate=settings.obd_baudrate,
        timeout=settings.obd_timeout_seconds,
    )


def polled_pids(settings: TrackerSettings) -> Tuple[str, ...]:
    if settings.poll_fuel_rate:
        return CORE_PIDS + FUEL_PIDS
    return CORE_PIDS


async def run_trip(
    settings: TrackerSettings,
    *,
    max_ticks: Optional[int] = None,
    reader: Optional[OBDReader] = None,
    route: Optional[Iterable[RoutePoint]] = None,
) -> TripRecord:
    """Record one trip and hand the finished record to the trip store.

    Parameters
    ----------
    settings:
        Fully-resolved tracker configuration.
    max_ticks:
        Stop after this many tick attempts.  ``None`` runs until SIGINT /
        SIGTERM.
    reader:
        Data source override; defaults to :func:`create_reader`.
    route:
        GPS points collected by the host for this trip.
    """
    shutdown_event = asyncio.Event()

    def _request_shutdown() -> None:
        logger.info("shutdown_requested")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    handled_signals = []
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_shutdown)
            handled_signals.append(sig)

    reader = reader or create_reader(settings)
    tracker = TripTracker(settings.vehicle_id)
    poster = TripPoster(settings)

    tracker.start()
    for point in route or ():
        tracker.add_route_point(point)

    await poster.start()
    try:
        await _loop(reader, tracker, settings, shutdown_event, max_ticks=max_ticks)
        record = tracker.finish()
        await poster.post_trip(record)
    finally:
        await reader.disconnect()
        await poster.close()
        for sig in handled_signals:
            loop.remove_signal_handler(sig)
    return record


async def _loop(
    reader: OBDReader,
    tracker: TripTracker,
    settings: TrackerSettings,
    shutdown_event: asyncio.Event,
    *,
    max_ticks: Optional[int],
) -> None:
    """Core connect-read-ingest-sleep loop with auto-reconnect."""
    pids = polled_pids(settings)
    last_tick = time.monotonic()
    attempts = 0

    while not shutdown_event.is_set():
        if max_ticks is not None and attempts >= max_ticks:
            return
        attempts += 1

        await _interruptible_sleep(settings.poll_interval_seconds, shutdown_event)
        if shutdown_event.is_set():
            return

        # --- connect (or reconnect) ----------------------------------------
        if not reader.is_connected():
            try:
                await reader.connect()
                logger.info(
                    "reader_connected",
                    mode="simulation" if settings.is_simulation else "live",
                    port=settings.obd_port,
                )
            except Exception:
                logger.exception("reader_connect_failed")
                last_tick = time.monotonic()
                continue

        # --- tick ----------------------------------------------------------
        try:
            reading = await read_reading(reader, pids)
        except Exception:
            logger.exception("tick_read_failed")
            last_tick = time.monotonic()
            continue

        now = time.monotonic()
        outputs = tracker.record_tick(to_emissions_inputs(reading, now - last_tick))
        last_tick = now

        logger.info(
            "tick_processed",
            speed_kmh=reading.speed_kmh,
            co2_gps=round(outputs.co2_gps, 4),
            total_co2_g=round(outputs.total_co2_g, 2),
            distance_km=round(outputs.distance_km, 4),
            used_maf=outputs.flags.used_maf,
            used_fuel_rate=outputs.flags.used_fuel_rate,
            stale=outputs.flags.stale,
        )


async def _interruptible_sleep(
    seconds: float, event: asyncio.Event
) -> None:
    """Sleep for *seconds* but wake early if *event* is set."""
    try:
        await asyncio.wait_for(event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
