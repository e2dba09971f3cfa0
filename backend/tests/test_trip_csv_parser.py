"""
Unit Tests for Trip CSV Ingestion

Run with: pytest tests/test_trip_csv_parser.py -v
"""

import pytest
from datetime import date, time

from ingestion.trip_csv_parser import (
    TripCsvError,
    get_csv_stats,
    identify_home_address,
    normalize_date,
    parse_trip_csv,
    parse_trip_rows,
)

HEADER = (
    '"Started, date","Started, time","Address from","Finish, date","Finish, time",'
    '"Address to","Distance (km)","Driving Time (HH:MM:SS)","Driver","Number Plate"\n'
)


def write_csv(tmp_path, body, header=HEADER, name="trips.csv"):
    path = tmp_path / name
    path.write_text(header + body, encoding="utf-8")
    return str(path)


def row(**overrides):
    values = {
        "Started, date": "2024-01-15",
        "Started, time": "09:00",
        "Address from": "Depot",
        "Finish, date": "2024-01-15",
        "Finish, time": "09:30",
        "Address to": "123 Main St",
        "Distance (km)": "12.5",
        "Driving Time (HH:MM:SS)": "00:30:00",
    }
    values.update(overrides)
    return values


class TestNormalizeDate:

    def test_supported_formats(self):
        assert normalize_date("2024-01-15") == date(2024, 1, 15)
        assert normalize_date("15/01/2024") == date(2024, 1, 15)
        assert normalize_date("2024-01-15T08:00:00") == date(2024, 1, 15)

    def test_invalid(self):
        assert normalize_date("") is None
        assert normalize_date("January 15") is None


class TestParseTripRows:
    """Test row validation and conversion."""

    def test_valid_rows_sorted(self):
        result = parse_trip_rows([
            row(**{"Started, time": "14:00", "Finish, time": "14:20"}),
            row(**{"Started, date": "14/01/2024"}),
            row(),
        ], "Test_S")

        assert result.row_count == 3
        assert result.valid_rows == 3
        assert [(t.trip_date, t.start_time) for t in result.trips] == [
            (date(2024, 1, 14), time(9, 0)),
            (date(2024, 1, 15), time(9, 0)),
            (date(2024, 1, 15), time(14, 0)),
        ]
        trip = result.trips[1]
        assert trip.staff_id == "Test_S"
        assert trip.distance_km == 12.5
        assert trip.driving_time == "00:30:00"
        assert trip.driver == "Unknown"
        assert trip.classification is None

    def test_seconds_dropped_from_times(self):
        result = parse_trip_rows([row(**{"Started, time": "09:00:45", "Finish, time": "09:30:10"})], "Test_S")
        assert result.trips[0].start_time == time(9, 0)
        assert result.trips[0].end_time == time(9, 30)

    def test_alternate_column_names(self):
        values = row()
        del values["Distance (km)"]
        del values["Driving Time (HH:MM:SS)"]
        values["Distance"] = "7"
        values["Driving Time"] = "00:12:00"

        trip = parse_trip_rows([values], "Test_S").trips[0]

        assert trip.distance_km == 7.0
        assert trip.driving_time == "00:12:00"

    def test_invalid_rows_reported(self):
        result = parse_trip_rows([
            row(**{"Address to": ""}),
            row(**{"Started, date": "yesterday"}),
            row(**{"Started, time": "25:00"}),
            row(**{"Distance (km)": "1500"}),
            row(),
        ], "Test_S")

        assert result.valid_rows == 1
        assert len(result.warnings) == 4
        assert result.warnings[0] == "Row 1: Missing required data"
        assert result.warnings[1].startswith("Row 2: Invalid start date")
        assert result.warnings[3].startswith("Row 4: Invalid distance")


class TestParseTripCsv:
    """Test reading export files."""

    def test_reads_file(self, tmp_path):
        path = write_csv(
            tmp_path,
            '2024-01-15, 09:00,"1 Homestead Close, Leafyville",2024-01-15,09:30,"123 Main St, Parramatta",'
            '12.5,00:30:00,Test Staff,ABC123\n'
        )

        result = parse_trip_csv(path, "Test_S")

        trip = result.trips[0]
        assert trip.origin == "1 Homestead Close, Leafyville"
        assert trip.destination == "123 Main St, Parramatta"
        assert trip.start_time == time(9, 0)
        assert trip.driver == "Test Staff"
        assert trip.number_plate == "ABC123"

    def test_byte_order_mark(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_text(HEADER + "2024-01-15,09:00,Depot,2024-01-15,09:30,Site,1,00:05:00,,\n", encoding="utf-8-sig")

        result = parse_trip_csv(str(path), "Test_S")

        assert result.valid_rows == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_trip_csv(str(tmp_path / "nope.csv"), "Test_S")

    def test_missing_columns(self, tmp_path):
        path = write_csv(tmp_path, "2024-01-15,09:00\n", header='"Started, date","Started, time"\n')

        with pytest.raises(TripCsvError) as exc_info:
            parse_trip_csv(path, "Test_S")
        assert "Address from" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        path = write_csv(tmp_path, "", header="")

        with pytest.raises(TripCsvError):
            parse_trip_csv(path, "Test_S")


class TestTripStatistics:
    """Test derived statistics."""

    @pytest.fixture
    def trips(self):
        return parse_trip_rows([
            row(**{"Address from": "Home", "Address to": "Site A"}),
            row(**{"Started, time": "12:00", "Address from": "Site A", "Address to": "Home",
                   "Driving Time (HH:MM:SS)": "00:45:00"}),
            row(**{"Started, date": "2024-01-16", "Address from": "Home", "Address to": "Site B"}),
        ], "Test_S").trips

    def test_identify_home_address(self, trips):
        assert identify_home_address(trips) == "Home"

    def test_identify_home_address_tie_goes_to_first_seen(self):
        trips = parse_trip_rows([row(**{"Address from": "Depot", "Address to": "Site"})], "Test_S").trips
        assert identify_home_address(trips) == "Depot"

    def test_identify_home_address_empty(self):
        assert identify_home_address([]) is None

    def test_csv_stats(self, trips):
        stats = get_csv_stats(trips)

        assert stats["total_trips"] == 3
        assert stats["date_range"] == {"start": "2024-01-15", "end": "2024-01-16"}
        assert stats["total_distance_km"] == 37.5
        assert stats["total_driving_minutes"] == 105
        assert stats["unique_dates"] == 2
