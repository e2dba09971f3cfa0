"""
Unit Tests for Trip Classification

Tests home detection, trip labelling and daily summaries.

Run with: pytest tests/test_trip_classifier.py -v
"""

import pytest
from datetime import date

from reconciliation.matching_config import MatchingConfig
from reconciliation.models import TripClassification
from reconciliation.services.trip_classifier import AddressClassificationCache, TripClassifier
from reconciliation.staff_registry import StaffProfile

HOME = "1 Homestead Close, Leafyville"
SITE_A = "123 Main St, Parramatta NSW"
SITE_B = "45 George St, Sydney NSW"
SITE_C = "9 Harbour Rd, Manly NSW"


@pytest.fixture
def classifier():
    return TripClassifier()


class TestHomeDetection:
    """Test home address recognition."""

    def test_configured_home_words(self, classifier, profile):
        assert classifier.is_home_address(HOME, profile) is True
        assert classifier.is_home_address("Unit 2, 1 Homestead Cl, LEAFYVILLE", profile) is True

    def test_short_home_words_ignored(self, classifier, profile):
        """The house number alone does not make an address home."""
        assert classifier.is_home_address("1 Station Rd, Penrith", profile) is False

    def test_empty_address_is_not_home(self, classifier, profile):
        assert classifier.is_home_address("", profile) is False
        assert classifier.is_home_address(None, profile) is False

    def test_most_frequent_address_is_home(self, make_trip):
        profile = StaffProfile(staff_id="Test_S", full_name="Test", home_address="Unknown")
        classifier = TripClassifier()
        depot = "88 Oak Rd, Penrith"
        trips = [
            make_trip(start="07:00", end="07:30", origin=depot, destination=SITE_A),
            make_trip(start="12:00", end="12:30", origin=SITE_A, destination=depot),
            make_trip(start="13:00", end="13:30", origin=depot, destination=SITE_B),
        ]

        assert classifier.is_home_address(depot, profile, trips) is True
        assert classifier.is_home_address(SITE_B, profile, trips) is False

    def test_decisions_are_cached(self, profile):
        cache = AddressClassificationCache()
        classifier = TripClassifier(cache=cache)

        classifier.is_home_address(HOME, profile)
        classifier.is_home_address(SITE_A, profile)

        assert len(cache) == 2
        assert ("Test_S", HOME) in cache
        assert cache.get("Test_S", SITE_A) is False

    def test_existing_cache_decision_wins(self):
        cache = AddressClassificationCache()
        assert cache.record("Test_S", SITE_A, True) is True
        assert cache.record("Test_S", SITE_A, False) is True


class TestClassifyDay:
    """Test per-day trip labelling."""

    def test_morning_work_evening(self, classifier, profile, make_trip):
        trips = [
            make_trip(start="16:00", end="16:45", origin=SITE_B, destination=HOME),
            make_trip(start="07:30", end="08:00", origin=HOME, destination=SITE_A),
            make_trip(start="10:00", end="10:30", origin=SITE_A, destination=SITE_B),
        ]

        classified = classifier.classify_day(trips, profile)

        assert [t.classification for t in classified] == [
            TripClassification.PERSONAL_MORNING,
            TripClassification.WORK,
            TripClassification.PERSONAL_EVENING,
        ]
        assert [t.start_time.hour for t in classified] == [7, 10, 16]

    def test_home_visit_mid_day_is_mixed(self, classifier, profile, make_trip):
        trips = [
            make_trip(start="08:00", end="08:30", origin=SITE_A, destination=SITE_B),
            make_trip(start="12:00", end="12:30", origin=SITE_B, destination=HOME),
            make_trip(start="13:00", end="13:30", origin=HOME, destination=SITE_C),
            make_trip(start="17:00", end="17:30", origin=SITE_C, destination=SITE_A),
        ]

        classified = classifier.classify_day(trips, profile)

        assert [t.classification for t in classified] == [
            TripClassification.WORK,
            TripClassification.PERSONAL_MIXED,
            TripClassification.PERSONAL_MIXED,
            TripClassification.WORK,
        ]

    def test_single_round_trip_from_home(self, classifier, profile, make_trip):
        """A lone trip leaving home is the morning trip."""
        classified = classifier.classify_day(
            [make_trip(origin=HOME, destination=HOME)], profile
        )
        assert classified[0].classification == TripClassification.PERSONAL_MORNING

    def test_driving_minutes_derived(self, classifier, profile, make_trip):
        classified = classifier.classify_day(
            [make_trip(origin=SITE_A, destination=SITE_B, driving_time="00:45:30")], profile
        )
        assert classified[0].driving_minutes == pytest.approx(45.5)

    def test_inputs_not_mutated(self, classifier, profile, make_trip):
        trips = [make_trip(origin=SITE_A, destination=SITE_B)]

        classified = classifier.classify_day(trips, profile)

        assert trips[0].classification is None
        assert classified[0] is not trips[0]

    def test_classified_trip_cannot_be_reclassified(self, classifier, profile, make_trip):
        classified = classifier.classify_day([make_trip(origin=SITE_A, destination=SITE_B)], profile)

        with pytest.raises(ValueError):
            classified[0].classified(TripClassification.PERSONAL_MIXED, 10)


class TestSummarizeDay:
    """Test daily aggregation."""

    def test_break_deducted_on_long_day(self, classifier, make_work_trip):
        trips = [
            make_work_trip(start="08:00", end="09:00", destination=SITE_A, distance_km=10.5),
            make_work_trip(start="15:30", end="16:30", destination=SITE_B, distance_km=20.25),
        ]

        summary = classifier.summarize_day("Test_S", date(2024, 1, 15), trips)

        assert summary.total_work_minutes == 510
        assert summary.break_deduction_minutes == 30
        assert summary.net_work_hours == 8.0
        assert summary.total_distance_km == 30.75
        assert summary.work_travel_minutes == 120
        assert summary.personal_travel_minutes == 0
        assert summary.job_sites == (SITE_A, SITE_B)

    def test_no_break_on_short_day(self, classifier, make_work_trip):
        trips = [
            make_work_trip(start="09:00", end="10:00"),
            make_work_trip(start="11:00", end="12:00"),
        ]

        summary = classifier.summarize_day("Test_S", date(2024, 1, 15), trips)

        assert summary.break_deduction_minutes == 0
        assert summary.net_work_hours == 3.0

    def test_break_settings_from_config(self, make_work_trip):
        classifier = TripClassifier(MatchingConfig(break_after_hours=2, break_duration_minutes=45))
        trips = [make_work_trip(start="09:00", end="10:00"), make_work_trip(start="11:00", end="12:00")]

        summary = classifier.summarize_day("Test_S", date(2024, 1, 15), trips)

        assert summary.net_work_minutes == 135

    def test_job_sites_deduplicated(self, classifier, make_work_trip):
        trips = [
            make_work_trip(start="09:00", end="10:00", destination=SITE_A),
            make_work_trip(start="11:00", end="12:00", destination=SITE_A),
        ]

        summary = classifier.summarize_day("Test_S", date(2024, 1, 15), trips)

        assert summary.job_sites == (SITE_A,)

    def test_empty_day(self, classifier):
        summary = classifier.summarize_day("Test_S", date(2024, 1, 15), [])

        assert summary.first_arrival is None
        assert summary.net_work_minutes == 0
        assert summary.trips == ()


class TestBuildDailySummaries:
    """Test grouping across dates."""

    def test_groups_and_orders_dates(self, classifier, profile, make_trip):
        day_one = date(2024, 1, 15)
        day_two = date(2024, 1, 16)
        trips = [
            make_trip(trip_date=day_two, start="08:00", end="08:30", origin=HOME, destination=SITE_C),
            make_trip(trip_date=day_one, start="07:30", end="08:00", origin=HOME, destination=SITE_A),
            make_trip(trip_date=day_one, start="10:00", end="10:30", origin=SITE_A, destination=SITE_B),
            make_trip(trip_date=day_one, start="16:00", end="16:30", origin=SITE_B, destination=HOME),
        ]

        summaries = classifier.build_daily_summaries(trips, profile)

        assert list(summaries) == [day_one, day_two]
        assert [t.classification for t in summaries[day_one].trips] == [
            TripClassification.PERSONAL_MORNING,
            TripClassification.WORK,
            TripClassification.PERSONAL_EVENING,
        ]
        assert len(summaries[day_one].work_trips) == 1
        assert len(summaries[day_two].personal_trips) == 1

    def test_no_trips(self, classifier, profile):
        assert classifier.build_daily_summaries([], profile) == {}
