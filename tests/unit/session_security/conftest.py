"""Pytest fixtures for session security tests."""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock

from src.shared.enrichment.geolocation import GeoResolver
from src.shared.models.session_observation import GeoPoint, SessionObservation


NYC_IP = "203.0.113.10"
LONDON_IP = "198.51.100.20"
TOKYO_IP = "192.0.2.30"
BOSTON_IP = "203.0.113.40"


@pytest.fixture
def sample_geo_nyc():
    """Sample geolocation for New York City."""
    return GeoPoint(latitude=40.7128, longitude=-74.0060, city="New York", country="United States")


@pytest.fixture
def sample_geo_london():
    """Sample geolocation for London."""
    return GeoPoint(latitude=51.5074, longitude=-0.1278, city="London", country="United Kingdom")


@pytest.fixture
def sample_geo_tokyo():
    """Sample geolocation for Tokyo."""
    return GeoPoint(latitude=35.6762, longitude=139.6503, city="Tokyo", country="Japan")


@pytest.fixture
def sample_geo_boston():
    """Sample geolocation for Boston."""
    return GeoPoint(latitude=42.3601, longitude=-71.0589, city="Boston", country="United States")


@pytest.fixture
def base_time():
    """Fixed reference time for deterministic tests."""
    return datetime(2025, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


class StaticResolver(GeoResolver):
    """Resolver backed by a fixed IP to GeoPoint table."""

    def __init__(self, table):
        self.table = dict(table)

    def resolve(self, ip):
        return self.table.get(ip)


@pytest.fixture
def geo_table(sample_geo_nyc, sample_geo_london, sample_geo_tokyo, sample_geo_boston):
    """IP to location table covering the sample cities."""
    return {
        NYC_IP: sample_geo_nyc,
        LONDON_IP: sample_geo_london,
        TOKYO_IP: sample_geo_tokyo,
        BOSTON_IP: sample_geo_boston,
    }


@pytest.fixture
def static_resolver(geo_table):
    """Deterministic resolver for the sample cities."""
    return StaticResolver(geo_table)


@pytest.fixture
def mock_resolver(geo_table):
    """Mock resolver that records every lookup."""
    resolver = Mock(spec=GeoResolver)
    resolver.resolve.side_effect = lambda ip: geo_table.get(ip)
    return resolver


@pytest.fixture
def make_session(base_time):
    """Factory for session observations relative to base_time."""
    counter = {"n": 0}

    def _make(
        user_id="user-123",
        ip="203.0.113.10",
        minutes=0,
        session_id=None,
        **kwargs,
    ):
        counter["n"] += 1
        kwargs.setdefault("user_name", "John Doe")
        kwargs.setdefault("user_email", "john.doe@example.com")
        return SessionObservation(
            session_id=session_id or f"sess-{counter['n']:03d}",
            user_id=user_id,
            ip_address=ip,
            created_at=base_time + timedelta(minutes=minutes),
            **kwargs,
        )

    return _make
