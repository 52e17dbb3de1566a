"""
Unit tests for ImpossibleTravelAnalyzer.

Tests the great-circle math, the speed threshold and the handling of
unresolved locations.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from src.shared.models.session_observation import GeoPoint
from src.shared.session_security.config import MIN_TIME_DIFF_HOURS
from src.shared.session_security.travel_analyzer import (
    ImpossibleTravelAnalyzer,
    elapsed_hours,
    haversine_distance,
)


class TestHaversineDistance:
    """Tests for haversine distance calculation."""

    def test_same_location_returns_zero(self):
        """Distance between same point should be zero."""
        assert haversine_distance(40.7128, -74.0060, 40.7128, -74.0060) == 0.0

    def test_nyc_to_london(self):
        """Test NYC to London distance (~5,570 km)."""
        distance = haversine_distance(
            40.7128, -74.0060,  # NYC
            51.5074, -0.1278    # London
        )

        assert 5450 < distance < 5700

    def test_nyc_to_tokyo(self):
        """Test NYC to Tokyo distance (~10,850 km)."""
        distance = haversine_distance(
            40.7128, -74.0060,  # NYC
            35.6762, 139.6503   # Tokyo
        )

        assert 10600 < distance < 11100

    def test_is_symmetric(self):
        """Distance is the same in both directions."""
        there = haversine_distance(40.7128, -74.0060, 42.3601, -71.0589)
        back = haversine_distance(42.3601, -71.0589, 40.7128, -74.0060)

        assert there == pytest.approx(back)

    def test_antipodal_points(self):
        """Antipodal points are half the circumference apart."""
        distance = haversine_distance(0.0, 0.0, 0.0, 180.0)

        assert distance == pytest.approx(20015.1, abs=1.0)


class TestElapsedHours:
    """Tests for elapsed time calculation."""

    def test_two_hours(self, base_time):
        """Two hours apart returns 2.0."""
        assert elapsed_hours(base_time, base_time + timedelta(hours=2)) == 2.0

    def test_naive_datetimes_treated_as_utc(self, base_time):
        """Naive datetimes are compared as UTC."""
        naive = base_time.replace(tzinfo=None)

        assert elapsed_hours(naive, base_time + timedelta(minutes=30)) == 0.5


class TestEvaluate:
    """Tests for scoring resolved location pairs."""

    def test_nyc_to_tokyo_in_10_minutes_is_impossible(self, sample_geo_nyc, sample_geo_tokyo):
        """NYC to Tokyo in 10 minutes requires tens of thousands of km/h."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_tokyo, 10 / 60)

        assert result.is_impossible is True
        assert 10600 < result.distance_km < 11100
        assert result.required_speed_kmh > 60000

    def test_nyc_to_tokyo_in_20_hours_is_possible(self, sample_geo_nyc, sample_geo_tokyo):
        """NYC to Tokyo in 20 hours is a normal flight."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_tokyo, 20.0)

        assert result.is_impossible is False
        assert result.required_speed_kmh < 1000

    def test_nyc_to_boston_in_1_hour_is_possible(self, sample_geo_nyc, sample_geo_boston):
        """~306 km in 1 hour is well under the threshold."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_boston, 1.0)

        assert result.is_impossible is False

    def test_speed_just_below_threshold(self, sample_geo_nyc, sample_geo_london):
        """Speed slightly below the threshold is not flagged."""
        analyzer = ImpossibleTravelAnalyzer()
        distance = haversine_distance(
            sample_geo_nyc.latitude, sample_geo_nyc.longitude,
            sample_geo_london.latitude, sample_geo_london.longitude,
        )

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_london, distance / 999.0)

        assert result.is_impossible is False

    def test_speed_just_above_threshold(self, sample_geo_nyc, sample_geo_london):
        """Speed slightly above the threshold is flagged."""
        analyzer = ImpossibleTravelAnalyzer()
        distance = haversine_distance(
            sample_geo_nyc.latitude, sample_geo_nyc.longitude,
            sample_geo_london.latitude, sample_geo_london.longitude,
        )

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_london, distance / 1001.0)

        assert result.is_impossible is True

    def test_speed_equal_to_threshold_is_not_impossible(self, sample_geo_nyc, sample_geo_london):
        """The threshold comparison is strict."""
        distance = haversine_distance(
            sample_geo_nyc.latitude, sample_geo_nyc.longitude,
            sample_geo_london.latitude, sample_geo_london.longitude,
        )
        analyzer = ImpossibleTravelAnalyzer(max_plausible_speed_kmh=distance)

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_london, 1.0)

        assert result.required_speed_kmh == distance
        assert result.is_impossible is False

    def test_zero_time_uses_epsilon(self, sample_geo_nyc, sample_geo_boston):
        """Simultaneous sessions use the one-second floor instead of dividing by zero."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_boston, 0.0)

        assert result.time_diff_hours == MIN_TIME_DIFF_HOURS
        assert result.required_speed_kmh == pytest.approx(result.distance_km * 3600)
        assert result.is_impossible is True

    def test_negative_time_uses_epsilon(self, sample_geo_nyc, sample_geo_boston):
        """Negative elapsed time is floored at the epsilon."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, sample_geo_boston, -2.0)

        assert result.time_diff_hours == MIN_TIME_DIFF_HOURS

    def test_unresolved_location_is_never_impossible(self, sample_geo_nyc):
        """A pair with an unresolved side is not flagged."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.evaluate(sample_geo_nyc, None, 0.01)

        assert result.is_impossible is False
        assert result.distance_km is None
        assert result.required_speed_kmh is None

    def test_location_without_coordinates_is_never_impossible(self, sample_geo_nyc):
        """A GeoPoint with only a city name cannot be measured."""
        analyzer = ImpossibleTravelAnalyzer()
        no_coords = GeoPoint(city="Somewhere", country="Nowhere")

        result = analyzer.evaluate(no_coords, sample_geo_nyc, 0.01)

        assert result.is_impossible is False
        assert result.previous_geo == no_coords


class TestAnalyze:
    """Tests for analyzing session pairs."""

    def test_resolves_each_ip_through_resolver(self, make_session, mock_resolver):
        """Without a locations map each IP is resolved once."""
        analyzer = ImpossibleTravelAnalyzer(resolver=mock_resolver)
        prev = make_session(ip="203.0.113.10", minutes=0)
        curr = make_session(ip="192.0.2.30", minutes=10)

        result = analyzer.analyze(prev, curr)

        assert result.is_impossible is True
        assert mock_resolver.resolve.call_count == 2

    def test_uses_locations_map_when_given(self, make_session, mock_resolver, sample_geo_nyc, sample_geo_boston):
        """Pre-resolved locations bypass the resolver."""
        analyzer = ImpossibleTravelAnalyzer(resolver=mock_resolver)
        prev = make_session(ip="203.0.113.10", minutes=0)
        curr = make_session(ip="203.0.113.40", minutes=120)
        locations = {"203.0.113.10": sample_geo_nyc, "203.0.113.40": sample_geo_boston}

        result = analyzer.analyze(prev, curr, locations=locations)

        assert result.is_impossible is False
        assert result.time_diff_hours == 2.0
        mock_resolver.resolve.assert_not_called()

    def test_padded_ips_use_canonical_keys(self, make_session, mock_resolver, sample_geo_nyc, sample_geo_boston):
        """Padded IPs are stripped before the locations map is consulted."""
        analyzer = ImpossibleTravelAnalyzer(resolver=mock_resolver)
        prev = make_session(ip=" 203.0.113.10", minutes=0)
        curr = make_session(ip="203.0.113.40 ", minutes=120)
        locations = {"203.0.113.10": sample_geo_nyc, "203.0.113.40": sample_geo_boston}

        result = analyzer.analyze(prev, curr, locations=locations)

        assert result.previous_geo is sample_geo_nyc
        assert result.current_geo is sample_geo_boston

    def test_padded_ip_resolved_stripped(self, make_session, mock_resolver):
        """The resolver receives the stripped address."""
        analyzer = ImpossibleTravelAnalyzer(resolver=mock_resolver)

        analyzer.analyze(
            make_session(ip="203.0.113.10", minutes=0),
            make_session(ip="\t192.0.2.30 ", minutes=10),
        )

        mock_resolver.resolve.assert_any_call("192.0.2.30")

    def test_resolver_failure_treated_as_unresolved(self, make_session):
        """A resolver exception does not propagate."""
        resolver = Mock()
        resolver.resolve.side_effect = RuntimeError("lookup failed")
        analyzer = ImpossibleTravelAnalyzer(resolver=resolver)

        result = analyzer.analyze(
            make_session(ip="203.0.113.10", minutes=0),
            make_session(ip="192.0.2.30", minutes=1),
        )

        assert result.is_impossible is False
        assert result.previous_geo is None

    def test_no_resolver_means_unresolved(self, make_session):
        """An analyzer without resolver or map never flags travel."""
        analyzer = ImpossibleTravelAnalyzer()

        result = analyzer.analyze(
            make_session(ip="203.0.113.10", minutes=0),
            make_session(ip="192.0.2.30", minutes=1),
        )

        assert result.is_impossible is False
