"""Impossible travel analysis for session security monitoring.

Compares two sequential sessions of the same user and decides whether the
distance between their IP-resolved locations could have been covered in
the time between them.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from ..enrichment.geolocation import GeoResolver, safe_resolve
from ..models.session_observation import GeoPoint, SessionObservation, ensure_utc, normalize_ip
from .config import MAX_PLAUSIBLE_SPEED_KMH, MIN_TIME_DIFF_HOURS

logger = logging.getLogger(__name__)

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point in degrees
        lon1: Longitude of first point in degrees
        lat2: Latitude of second point in degrees
        lon2: Longitude of second point in degrees

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    # Float rounding can push a just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def elapsed_hours(start: datetime, end: datetime) -> float:
    """Hours from start to end, negative if end precedes start."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


@dataclass(frozen=True)
class TravelAnalysis:
    """Result of comparing two session observations.

    Attributes:
        distance_km: Great-circle distance, None without coordinates
        time_diff_hours: Elapsed hours, floored at the epsilon
        required_speed_kmh: Speed needed to cover the distance, None without coordinates
        is_impossible: Whether the required speed exceeds the threshold
        previous_geo: Resolved location of the earlier session
        current_geo: Resolved location of the later session
    """

    distance_km: Optional[float]
    time_diff_hours: float
    required_speed_kmh: Optional[float]
    is_impossible: bool
    previous_geo: Optional[GeoPoint] = None
    current_geo: Optional[GeoPoint] = None


class ImpossibleTravelAnalyzer:
    """Decides whether two sequential sessions are physically plausible.

    Travel is impossible when the speed required to move between the two
    resolved locations exceeds ``max_plausible_speed_kmh``. Pairs without
    coordinates on either side are never flagged.
    """

    def __init__(
        self,
        resolver: Optional[GeoResolver] = None,
        max_plausible_speed_kmh: float = MAX_PLAUSIBLE_SPEED_KMH,
        min_time_diff_hours: float = MIN_TIME_DIFF_HOURS,
    ):
        """Initialize the analyzer.

        Args:
            resolver: Geolocation resolver, required unless locations are
                always supplied to analyze()
            max_plausible_speed_kmh: Fastest plausible travel speed
            min_time_diff_hours: Floor applied to elapsed time
        """
        self.resolver = resolver
        self.max_plausible_speed_kmh = max_plausible_speed_kmh
        self.min_time_diff_hours = min_time_diff_hours

    def analyze(
        self,
        prev: SessionObservation,
        curr: SessionObservation,
        locations: Optional[Mapping[str, Optional[GeoPoint]]] = None,
    ) -> TravelAnalysis:
        """Analyze two sessions of one user for impossible travel.

        Callers must pass two sessions with valid, different IPs, ordered
        so that ``curr`` does not start before ``prev``.

        Args:
            prev: Earlier session
            curr: Later session
            locations: Pre-resolved IP to GeoPoint mapping; when omitted
                each IP is resolved once through the resolver

        Returns:
            TravelAnalysis for the pair
        """
        prev_geo = self._locate(prev.ip_address, locations)
        curr_geo = self._locate(curr.ip_address, locations)

        hours = elapsed_hours(prev.created_at, curr.created_at)
        return self.evaluate(prev_geo, curr_geo, hours)

    def evaluate(
        self,
        prev_geo: Optional[GeoPoint],
        curr_geo: Optional[GeoPoint],
        time_diff_hours: float,
    ) -> TravelAnalysis:
        """Score a pair of resolved locations.

        Args:
            prev_geo: Earlier location, None if unresolved
            curr_geo: Later location, None if unresolved
            time_diff_hours: Elapsed hours between the two sessions

        Returns:
            TravelAnalysis for the pair
        """
        hours = max(self.min_time_diff_hours, time_diff_hours)

        if not (prev_geo and prev_geo.has_coordinates and curr_geo and curr_geo.has_coordinates):
            return TravelAnalysis(
                distance_km=None,
                time_diff_hours=hours,
                required_speed_kmh=None,
                is_impossible=False,
                previous_geo=prev_geo,
                current_geo=curr_geo,
            )

        distance_km = haversine_distance(
            prev_geo.latitude,
            prev_geo.longitude,
            curr_geo.latitude,
            curr_geo.longitude,
        )
        speed_kmh = distance_km / hours

        return TravelAnalysis(
            distance_km=distance_km,
            time_diff_hours=hours,
            required_speed_kmh=speed_kmh,
            is_impossible=speed_kmh > self.max_plausible_speed_kmh,
            previous_geo=prev_geo,
            current_geo=curr_geo,
        )

    def _locate(
        self,
        ip: Optional[str],
        locations: Optional[Mapping[str, Optional[GeoPoint]]],
    ) -> Optional[GeoPoint]:
        ip = normalize_ip(ip)
        if ip is None:
            return None
        if locations is not None:
            return locations.get(ip)
        if self.resolver is None:
            logger.debug(f"No resolver configured, treating {ip} as unresolved")
            return None
        return safe_resolve(self.resolver, ip)
