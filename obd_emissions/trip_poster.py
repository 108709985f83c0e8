"""Delivers finished ``TripRecord`` payloads to the hosted trip store.

Every POST carries an ``Idempotency-Key`` derived from the vehicle and the
trip start time, so a retried request cannot store the same trip twice.
Trips the store could not take yet wait in a bounded pending queue keyed
by that same value: re-submitting a pending trip replaces the queued copy
instead of adding a second one.

Store replies:

* 2xx, 409 (already stored)      -- stored
* 404, 501 (endpoint not deployed) -- skipped, not retried
* other 4xx                       -- rejected, dropped
* 5xx or network error            -- retried with exponential backoff,
                                      then queued
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Literal, Optional

import httpx
import structlog

from obd_emissions.config import TrackerSettings
from obd_emissions.schemas import TripRecord

logger = structlog.get_logger(__name__)

_ENDPOINT_PATH = "/v1/trips"
_IDEMPOTENCY_HEADER = "Idempotency-Key"

Delivery = Literal["stored", "skipped", "rejected", "retry_later"]


def classify_status(status_code: int) -> Optional[Delivery]:
    """Map a store reply to a final outcome; ``None`` means retry."""
    if 200 <= status_code < 300 or status_code == 409:
        return "stored"
    if status_code in (404, 501):
        return "skipped"
    if 400 <= status_code < 500:
        return "rejected"
    return None


class TripPoster:
    """POSTs trips with retry and keeps undelivered ones for later."""

    def __init__(self, settings: TrackerSettings) -> None:
        self._url = settings.trip_api_base_url.rstrip("/") + _ENDPOINT_PATH
        self._max_attempts = max(1, settings.max_retry_attempts)
        self._pending_max = settings.offline_buffer_max
        self._dry_run = settings.dry_run
        self._pending: OrderedDict[str, TripRecord] = OrderedDict()
        self._client: httpx.AsyncClient | None = None

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        if not self._dry_run:
            self._client = httpx.AsyncClient(timeout=30.0)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -- public API ---------------------------------------------------------

    async def post_trip(self, trip: TripRecord) -> bool:
        """Deliver *trip*, flushing older pending trips first.

        Returns ``True`` when the store took the trip (or has no trip
        endpoint).  In dry-run mode the trip is only logged.
        """
        if self._dry_run:
            logger.info(
                "dry_run_trip",
                trip_key=trip.idempotency_key,
                vehicle_id=trip.vehicle_id,
                distance_km=round(trip.distance_km, 3),
                total_co2_g=round(trip.total_co2_g, 1),
            )
            return True

        # This submission supersedes any queued copy of the same trip.
        self._pending.pop(trip.idempotency_key, None)
        await self._flush_pending()

        outcome = await self._deliver(trip)
        if outcome == "retry_later":
            self._enqueue(trip)
        return outcome in ("stored", "skipped")

    @property
    def buffer_size(self) -> int:
        return len(self._pending)

    # -- internal -----------------------------------------------------------

    def _enqueue(self, trip: TripRecord) -> None:
        self._pending[trip.idempotency_key] = trip
        while len(self._pending) > self._pending_max:
            dropped_key, dropped = self._pending.popitem(last=False)
            logger.warning(
                "pending_trip_dropped",
                trip_key=dropped_key,
                vehicle_id=dropped.vehicle_id,
            )
        logger.warning(
            "trip_queued",
            trip_key=trip.idempotency_key,
            pending=len(self._pending),
        )

    async def _flush_pending(self) -> None:
        """Send queued trips oldest first; stop at the first that must wait."""
        delivered = 0
        while self._pending:
            key, trip = next(iter(self._pending.items()))
            if await self._deliver(trip) == "retry_later":
                break
            del self._pending[key]
            delivered += 1
        if delivered:
            logger.info(
                "pending_trips_flushed",
                delivered=delivered,
                remaining=len(self._pending),
            )

    async def _deliver(self, trip: TripRecord) -> Delivery:
        if self._client is None:
            raise RuntimeError("TripPoster.start() must be called before sending")

        key = trip.idempotency_key
        headers = {"Content-Type": "application/json", _IDEMPOTENCY_HEADER: key}
        body = trip.model_dump_json()

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.post(self._url, content=body, headers=headers)
            except httpx.RequestError as exc:
                failure = {"error": str(exc)}
            else:
                outcome = classify_status(response.status_code)
                if outcome == "rejected":
                    logger.error(
                        "trip_rejected",
                        trip_key=key,
                        status=response.status_code,
                        body=response.text[:500],
                    )
                    return outcome
                if outcome is not None:
                    logger.info(
                        "trip_delivered",
                        trip_key=key,
                        outcome=outcome,
                        status=response.status_code,
                    )
                    return outcome
                failure = {"status": response.status_code}

            backoff = 2 ** (attempt - 1)
            logger.warning(
                "trip_post_failed",
                trip_key=key,
                attempt=attempt,
                max_attempts=self._max_attempts,
                retry_in=backoff if attempt < self._max_attempts else None,
                **failure,
            )
            if attempt < self._max_attempts:
                await asyncio.sleep(backoff)

        return "retry_later"
