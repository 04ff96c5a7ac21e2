import json
import math

import pytest

from realtime_heatmap.validator import validate

from conftest import SCENARIO_SNAPSHOT


class TestValidate:
    def test_scenario_keeps_only_the_good_record(self):
        fc = validate(SCENARIO_SNAPSHOT)
        assert len(fc) == 1
        f = fc.features[0]
        assert f.incident_id == "a"
        assert f.position == (2.0, 1.0)
        assert f.county == "X"
        assert f.time == "N/A"
        assert f.title == "Crash"
        assert f.weight == 1

    def test_axis_order_is_lon_then_lat(self):
        fc = validate({"k": {"lat": -1.2921, "lon": 36.8219}})
        lon, lat = fc.features[0].position
        assert lon == pytest.approx(36.8219)
        assert lat == pytest.approx(-1.2921)
        assert fc.to_geojson()["features"][0]["geometry"]["coordinates"] == [36.8219, -1.2921]

    @pytest.mark.parametrize("snapshot", [None, {}, [], "garbage", 42])
    def test_empty_or_absent_snapshot(self, snapshot):
        assert len(validate(snapshot)) == 0

    @pytest.mark.parametrize("lat, lon", [
        (None, 1.0),
        (1.0, None),
        ("", "2"),
        ("abc", "2"),
        ("nan", "2"),
        ("1", "inf"),
        (float("-inf"), 3),
        (True, 3),
        ([1], 3),
    ])
    def test_bad_coordinates_are_dropped(self, lat, lon):
        assert len(validate({"x": {"lat": lat, "lon": lon}})) == 0

    def test_missing_keys_are_dropped(self):
        assert len(validate({"x": {"lat": 1.0}, "y": {"lon": 1.0}})) == 0

    def test_zero_is_a_valid_coordinate(self):
        fc = validate({"x": {"lat": 0, "lon": "0"}})
        assert fc.features[0].position == (0.0, 0.0)

    def test_integer_too_large_for_float_is_dropped(self):
        fc = validate(json.loads('{"a": {"lat": 1' + "0" * 400 + ', "lon": 2}, "b": {"lat": 1, "lon": 2}}'))
        assert [f.incident_id for f in fc.features] == ["b"]

    def test_numeric_strings_with_whitespace(self):
        fc = validate({"x": {"lat": " 51.5 ", "lon": "-0.12"}})
        assert fc.features[0].position == (-0.12, 51.5)

    def test_non_mapping_records_are_skipped(self):
        fc = validate({"x": "not a record", "y": None, "z": {"lat": 1, "lon": 2}})
        assert [f.incident_id for f in fc.features] == ["z"]

    def test_display_defaults_and_stringify(self):
        fc = validate({"x": {"lat": 1, "lon": 2, "county": "", "time": 1700000000, "title": None}})
        f = fc.features[0]
        assert f.county == "N/A"
        assert f.time == "1700000000"
        assert f.title == "N/A"

    def test_duplicates_are_kept(self):
        rec = {"lat": 1, "lon": 2, "title": "Fire"}
        fc = validate({"a": rec, "b": dict(rec)})
        assert len(fc) == 2
        assert fc.features[0].position == fc.features[1].position

    def test_extra_fields_are_ignored(self):
        fc = validate({"x": {"lat": 1, "lon": 2, "severity": "high", "reporter": {"id": 9}}})
        assert "severity" not in fc.to_geojson()["features"][0]["properties"]

    def test_array_snapshot_with_holes(self):
        fc = validate([None, {"lat": 1, "lon": 2}, None, {"lat": "bad", "lon": 2}])
        assert [f.incident_id for f in fc.features] == ["1"]

    def test_positions_are_finite(self):
        fc = validate({str(i): {"lat": str(i), "lon": str(-i)} for i in range(20)})
        assert all(math.isfinite(c) for f in fc.features for c in f.position)
