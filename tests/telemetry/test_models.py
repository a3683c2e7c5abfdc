"""Tests for telemetry snapshot models."""

from datetime import UTC, datetime

from cosmic_broadcast.telemetry.models import (
    GeomagneticData,
    Snapshot,
    SolarFlare,
    SolarWind,
    format_timestamp,
    parse_float,
    parse_timestamp,
)


class TestParseHelpers:
    """Tests for tolerant value parsing."""

    def test_parse_float_accepts_numbers_and_strings(self) -> None:
        assert parse_float(4) == 4.0
        assert parse_float("550.5") == 550.5

    def test_parse_float_rejects_garbage(self) -> None:
        assert parse_float(None) is None
        assert parse_float("fast") is None
        assert parse_float(True) is None
        assert parse_float(float("nan")) is None
        assert parse_float(float("inf")) is None

    def test_parse_timestamp_handles_zulu(self) -> None:
        parsed = parse_timestamp("2024-05-10T17:00:00Z")
        assert parsed == datetime(2024, 5, 10, 17, 0, tzinfo=UTC)

    def test_parse_timestamp_assumes_utc_for_naive(self) -> None:
        parsed = parse_timestamp("2024-05-10T17:00:00")
        assert parsed is not None
        assert parsed.tzinfo is UTC

    def test_parse_timestamp_invalid(self) -> None:
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(12345) is None
        assert parse_timestamp("") is None

    def test_format_timestamp(self) -> None:
        value = datetime(2024, 5, 10, 17, 0, tzinfo=UTC)
        assert format_timestamp(value) == "2024-05-10T17:00:00Z"
        assert format_timestamp(None) is None


class TestSolarFlare:
    """Tests for SolarFlare parsing."""

    def test_from_dict_full_record(self) -> None:
        flare = SolarFlare.from_dict(
            {
                "id": "FLR-1",
                "flareClass": "X2.1",
                "classType": "X",
                "magnitude": 2.1,
                "timestamp": "2024-05-10T16:45:00Z",
                "sourceRegion": "AR3664",
            }
        )

        assert flare.id == "FLR-1"
        assert flare.class_type == "X"
        assert flare.magnitude == 2.1
        assert flare.source_region == "AR3664"
        assert flare.label == "X2.1"

    def test_class_and_magnitude_derived_from_flare_class(self) -> None:
        flare = SolarFlare.from_dict({"id": "f", "flareClass": "m5.4"})

        assert flare.class_type == "M"
        assert flare.magnitude == 5.4

    def test_missing_fields(self) -> None:
        flare = SolarFlare.from_dict({"classType": "x"})

        assert flare.id is None
        assert flare.class_type == "X"
        assert flare.magnitude is None
        assert flare.source_region == "unknown region"
        assert flare.label == "X"

    def test_to_dict_uses_camel_case(self) -> None:
        flare = SolarFlare(id="f1", class_type="M", magnitude=1.5)
        data = flare.to_dict()

        assert data["flareClass"] == "M1.5"
        assert data["classType"] == "M"
        assert data["sourceRegion"] == "unknown region"


class TestSnapshot:
    """Tests for Snapshot parsing."""

    def test_from_dict(self) -> None:
        snapshot = Snapshot.from_dict(
            {
                "timestamp": "2024-05-10T17:00:00Z",
                "solar_wind": {"speed": 950, "density": 12.5},
                "geomagnetic": {"kp_index": 8.6, "storm_active": True, "storm_level": "G4"},
                "flares": [{"id": "f1", "classType": "X", "magnitude": 2.1}],
                "data_source": "cached",
            }
        )

        assert snapshot.timestamp == datetime(2024, 5, 10, 17, 0, tzinfo=UTC)
        assert snapshot.solar_wind.speed == 950.0
        assert snapshot.geomagnetic.kp_index == 8.6
        assert snapshot.geomagnetic.storm_level == "G4"
        assert len(snapshot.flares) == 1
        assert snapshot.data_source == "cached"

    def test_from_dict_tolerates_malformed_content(self) -> None:
        snapshot = Snapshot.from_dict(
            {
                "solar_wind": "broken",
                "geomagnetic": {"kp_index": "high"},
                "flares": [None, 7, {"id": "ok", "classType": "M"}],
                "data_source": "satellite",
            }
        )

        assert snapshot.timestamp is None
        assert snapshot.solar_wind == SolarWind()
        assert snapshot.geomagnetic.kp_index is None
        assert [flare.id for flare in snapshot.flares] == ["ok"]
        assert snapshot.data_source == "live"

    def test_from_dict_non_mapping(self) -> None:
        snapshot = Snapshot.from_dict(None)
        assert snapshot.flares == ()
        assert snapshot.geomagnetic == GeomagneticData()

    def test_to_dict_keeps_upstream_shape(self) -> None:
        snapshot = Snapshot(
            timestamp=datetime(2024, 5, 10, tzinfo=UTC),
            solar_wind=SolarWind(speed=420.0),
            geomagnetic=GeomagneticData(kp_index=3.0),
        )
        data = snapshot.to_dict()

        assert data["timestamp"] == "2024-05-10T00:00:00Z"
        assert data["solar_wind"]["speed"] == 420.0
        assert data["geomagnetic"]["kp_index"] == 3.0
        assert data["flares"] == []
        assert data["data_source"] == "live"
