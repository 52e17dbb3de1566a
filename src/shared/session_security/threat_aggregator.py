"""Threat aggregation over recent session observations.

Provides two stateless detections over a snapshot of session rows:

- Impossible travel: groups sessions by user, orders them by creation time
  and compares adjacent pairs with the ImpossibleTravelAnalyzer.
- Threat categories: independent heuristics for suspicious-session bursts,
  recurring location anomalies and excessive concurrent sessions.
"""

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..enrichment.geolocation import GeoResolver, safe_resolve
from ..models.session_observation import GeoPoint, SessionObservation, ensure_utc, normalize_ip
from .config import SessionSecurityConfig
from .threat_types import (
    ALERT_ID_PREFIX,
    AlertLocation,
    Threat,
    ThreatAlert,
    ThreatSeverity,
)
from .travel_analyzer import ImpossibleTravelAnalyzer, TravelAnalysis

logger = logging.getLogger(__name__)

SessionPair = Tuple[SessionObservation, SessionObservation]


class ThreatAggregator:
    """Scans session observations and produces ranked alerts and threats.

    Both detections are pure functions of their inputs given a
    deterministic resolver; nothing is cached or persisted between calls.
    """

    def __init__(
        self,
        resolver: GeoResolver,
        analyzer: Optional[ImpossibleTravelAnalyzer] = None,
        config: Optional[SessionSecurityConfig] = None,
    ):
        """Initialize the aggregator.

        Args:
            resolver: Geolocation resolver used for travel detection
            analyzer: Pre-configured travel analyzer (built from config if omitted)
            config: Detection thresholds and windows
        """
        self.resolver = resolver
        self.config = config or SessionSecurityConfig()
        self.analyzer = analyzer or ImpossibleTravelAnalyzer(
            resolver=resolver,
            max_plausible_speed_kmh=self.config.max_plausible_speed_kmh,
            min_time_diff_hours=self.config.min_time_diff_hours,
        )

    def detect_impossible_travel(
        self, observations: Sequence[SessionObservation]
    ) -> List[ThreatAlert]:
        """Detect impossible travel across all users.

        Callers are expected to pass at most ``config.max_observations``
        rows; any excess is dropped with a warning.

        Args:
            observations: Recent session observations, any order

        Returns:
            Alerts ordered by required speed (fastest first), then by
            timestamp (most recent first)
        """
        started = time.monotonic()
        observations = self._apply_cap(observations)

        pairs = self._analyzable_pairs(observations)
        ips: Set[str] = set()
        for prev, curr in pairs:
            ips.add(normalize_ip(prev.ip_address))
            ips.add(normalize_ip(curr.ip_address))

        locations = self._resolve_all(sorted(ips))

        alerts = []
        for prev, curr in pairs:
            analysis = self.analyzer.analyze(prev, curr, locations=locations)
            if analysis.is_impossible:
                alerts.append(self._create_alert(prev, curr, analysis))

        alerts.sort(key=lambda a: (a.required_speed_kmh, a.timestamp), reverse=True)

        duration = time.monotonic() - started
        if duration > self.config.slow_detection_warning_seconds:
            logger.warning(f"Slow impossible travel detection: {duration:.2f}s")

        logger.info(
            f"Impossible travel scan: {len(observations)} sessions, {len(pairs)} pairs, "
            f"{len(ips)} IPs, {len(alerts)} alerts in {duration:.3f}s"
        )

        return alerts

    def detect_threat_categories(
        self,
        observations: Sequence[SessionObservation],
        now: datetime,
    ) -> List[Threat]:
        """Run the category heuristics against one snapshot of sessions.

        Args:
            observations: Session observations
            now: Reference time for the detection windows

        Returns:
            Threats in fixed order: burst, location anomaly, concurrency
        """
        now = ensure_utc(now)
        results = [
            self._detect_suspicious_burst(observations, now),
            self._detect_location_anomalies(observations, now),
            self._detect_excessive_sessions(observations, now),
        ]
        threats = [t for t in results if t is not None]

        logger.info(f"Threat scan: {len(observations)} sessions, {len(threats)} threats")

        return threats

    def _apply_cap(
        self, observations: Sequence[SessionObservation]
    ) -> Sequence[SessionObservation]:
        cap = self.config.max_observations
        if len(observations) > cap:
            logger.warning(
                f"Received {len(observations)} session observations, "
                f"analyzing only the first {cap}"
            )
            return observations[:cap]
        return observations

    def _analyzable_pairs(
        self, observations: Sequence[SessionObservation]
    ) -> List[SessionPair]:
        """Group by user, sort by creation time and keep comparable pairs."""
        by_user: Dict[str, List[SessionObservation]] = {}
        for observation in observations:
            by_user.setdefault(observation.user_id, []).append(observation)

        pairs = []
        skipped = 0
        for user_sessions in by_user.values():
            # sorted() is stable, ties keep input order
            ordered = sorted(user_sessions, key=lambda s: ensure_utc(s.created_at))

            for i in range(1, len(ordered)):
                prev, curr = ordered[i - 1], ordered[i]
                prev_ip = normalize_ip(prev.ip_address)
                curr_ip = normalize_ip(curr.ip_address)
                if prev_ip is None or curr_ip is None:
                    skipped += 1
                    continue
                if prev_ip == curr_ip:
                    continue
                pairs.append((prev, curr))

        if skipped:
            logger.debug(f"Skipped {skipped} session pairs with missing or invalid IPs")

        return pairs

    def _resolve_all(self, ips: List[str]) -> Dict[str, Optional[GeoPoint]]:
        """Resolve each distinct IP once, concurrently."""
        locations: Dict[str, Optional[GeoPoint]] = {}
        if not ips:
            return locations

        workers = min(self.config.geo_lookup_workers, len(ips))
        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            future_to_ip = {
                executor.submit(safe_resolve, self.resolver, ip): ip
                for ip in ips
            }
            done, not_done = wait(future_to_ip, timeout=self.config.lookup_timeout_seconds)

            for future in done:
                locations[future_to_ip[future]] = future.result()

            for future in not_done:
                locations[future_to_ip[future]] = None

            if not_done:
                logger.warning(
                    f"Geolocation timed out for {len(not_done)} of {len(ips)} IPs, "
                    "treating them as unresolved"
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return locations

    def _create_alert(
        self,
        prev: SessionObservation,
        curr: SessionObservation,
        analysis: TravelAnalysis,
    ) -> ThreatAlert:
        return ThreatAlert(
            id=f"{ALERT_ID_PREFIX}{curr.session_id}",
            user_id=curr.user_id,
            user_name=curr.user_name,
            user_email=curr.user_email,
            previous_location=_alert_location(analysis.previous_geo, normalize_ip(prev.ip_address)),
            current_location=_alert_location(analysis.current_geo, normalize_ip(curr.ip_address)),
            distance_km=analysis.distance_km,
            time_diff_hours=analysis.time_diff_hours,
            required_speed_kmh=analysis.required_speed_kmh,
            timestamp=ensure_utc(curr.created_at),
        )

    def _detect_suspicious_burst(
        self, observations: Sequence[SessionObservation], now: datetime
    ) -> Optional[Threat]:
        """Many suspicious sessions from one IP in a short window."""
        window_start = now - timedelta(minutes=self.config.burst_window_minutes)

        per_ip = Counter(
            normalize_ip(s.ip_address) or s.ip_address
            for s in observations
            if s.is_suspicious and s.ip_address and ensure_utc(s.created_at) >= window_start
        )
        flagged_ips = [ip for ip, count in per_ip.items() if count > self.config.burst_threshold]

        if not flagged_ips:
            return None

        return Threat(
            id=f"suspicious-sessions-{int(now.timestamp())}",
            severity=ThreatSeverity.HIGH,
            type="Multiple Suspicious Sessions",
            description=(
                f"{len(flagged_ips)} IP(s) with multiple suspicious sessions "
                f"in last {self.config.burst_window_minutes} minutes"
            ),
            affected_users=len(flagged_ips),
            detected_at=window_start,
        )

    def _detect_location_anomalies(
        self, observations: Sequence[SessionObservation], now: datetime
    ) -> Optional[Threat]:
        """Users with repeated suspicious sessions in the last hour."""
        window_start = now - timedelta(minutes=self.config.location_anomaly_window_minutes)

        per_user = Counter(
            s.user_id
            for s in observations
            if s.is_suspicious and ensure_utc(s.created_at) >= window_start
        )
        flagged_users = [
            user for user, count in per_user.items()
            if count > self.config.location_anomaly_threshold
        ]

        if not flagged_users:
            return None

        return Threat(
            id=f"location-anomaly-{int(now.timestamp())}",
            severity=ThreatSeverity.CRITICAL,
            type="Location Anomaly",
            description=f"{len(flagged_users)} user(s) with impossible travel patterns detected",
            affected_users=len(flagged_users),
            detected_at=window_start,
        )

    def _detect_excessive_sessions(
        self, observations: Sequence[SessionObservation], now: datetime
    ) -> Optional[Threat]:
        """Users holding more active sessions than the concurrency limit."""
        per_user = Counter(s.user_id for s in observations if s.is_active(now))
        flagged_users = [
            user for user, count in per_user.items()
            if count > self.config.concurrent_session_threshold
        ]

        if not flagged_users:
            return None

        return Threat(
            id=f"concurrent-sessions-{int(now.timestamp())}",
            severity=ThreatSeverity.MEDIUM,
            type="Excessive Concurrent Sessions",
            description=f"{len(flagged_users)} user(s) with unusually high number of active sessions",
            affected_users=len(flagged_users),
            detected_at=now - timedelta(minutes=self.config.location_anomaly_window_minutes),
        )


def _alert_location(geo: Optional[GeoPoint], ip: str) -> AlertLocation:
    if geo is None:
        geo = GeoPoint()
    return AlertLocation(city=geo.city_label, country=geo.country_label, ip=ip)
