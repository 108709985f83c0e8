"""Tests for obd_emissions.schemas -- TripRecord validation and serialisation."""

from __future__ import annotations

import json

import pytest
from conftest import make_trip
from pydantic import ValidationError

from obd_emissions.schemas import RoutePoint, TelemetryReading, TripRecord, haversine_km


class TestVehicleId:
    def test_pseudonymous_id_accepted(self) -> None:
        assert make_trip(1.0, 1.0, vehicle_id="V-ABC-123").vehicle_id == "V-ABC-123"

    def test_raw_vin_rejected(self) -> None:
        with pytest.raises(ValidationError, match="raw VIN"):
            make_trip(1.0, 1.0, vehicle_id="1HGCM82633A004352")

    def test_seventeen_chars_with_letter_o_allowed(self) -> None:
        # O is never used in a VIN.
        make_trip(1.0, 1.0, vehicle_id="1HGCM82633A00435O")


class TestTripRecord:
    def test_negative_totals_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_trip(-1.0, 1.0)

    def test_computed_fields(self) -> None:
        trip = make_trip(2500.0, 12.5)
        assert trip.total_co2_kg == 2.5
        assert trip.route_distance_km == 0.0
        assert trip.duration_seconds == 1200.0
        assert trip.fuel_type == "gasoline"

    def test_json_contains_computed_fields(self) -> None:
        data = json.loads(make_trip(2500.0, 12.5).model_dump_json())
        assert data["total_co2_kg"] == 2.5
        assert data["route_distance_km"] == 0.0
        assert data["route"] == []

    def test_json_round_trip(self) -> None:
        trip = make_trip(2500.0, 12.5)
        trip.route = [RoutePoint(latitude=48.1, longitude=11.5)]
        restored = TripRecord.model_validate_json(trip.model_dump_json())
        assert restored.total_co2_g == trip.total_co2_g
        assert restored.route == trip.route
        assert restored.started_at == trip.started_at

    def test_extra_fields_allowed(self) -> None:
        trip = TripRecord.model_validate(
            {
                **make_trip(1.0, 1.0).model_dump(
                    exclude={"total_co2_kg", "route_distance_km"}
                ),
                "app_version": "2.1",
            }
        )
        assert trip.model_dump()["app_version"] == "2.1"


class TestRoute:
    def test_latitude_bounds(self) -> None:
        with pytest.raises(ValidationError):
            RoutePoint(latitude=91.0, longitude=0.0)

    def test_haversine_one_degree_of_latitude(self) -> None:
        a = RoutePoint(latitude=0.0, longitude=0.0)
        b = RoutePoint(latitude=1.0, longitude=0.0)
        assert haversine_km(a, b) == pytest.approx(111.19, abs=0.01)

    def test_haversine_same_point(self) -> None:
        a = RoutePoint(latitude=52.5, longitude=13.4)
        assert haversine_km(a, a) == 0.0

    def test_route_distance_sums_legs(self) -> None:
        trip = make_trip(1.0, 1.0)
        trip.route = [
            RoutePoint(latitude=0.0, longitude=0.0),
            RoutePoint(latitude=1.0, longitude=0.0),
            RoutePoint(latitude=2.0, longitude=0.0),
        ]
        assert trip.route_distance_km == pytest.approx(2 * 111.19, abs=0.02)


class TestTelemetryReading:
    def test_speed_mps(self) -> None:
        assert TelemetryReading(speed_kmh=72.0).speed_mps == pytest.approx(20.0)

    def test_negative_speed_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TelemetryReading(speed_kmh=-1.0)
