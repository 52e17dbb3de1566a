"""Threat and alert data models for session security monitoring.

A ThreatAlert is a per-pair impossible travel finding tied to two concrete
sessions. A Threat is a category-level aggregate finding such as "too many
concurrent sessions".
"""

import hashlib
import json
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

KM_TO_MILES = 0.621371

ALERT_ID_PREFIX = "alert-"


class AlertStatus(str, Enum):
    """Operator-facing status of an impossible travel alert."""

    PENDING = "pending"
    DISMISSED = "dismissed"
    BLOCKED = "blocked"


class ThreatSeverity(str, Enum):
    """Severity levels for category-level threats."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ThreatStatus(str, Enum):
    """Lifecycle status of a category-level threat."""

    ACTIVE = "active"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class AlertLocation:
    """Location of one side of a travel pair, as shown to operators."""

    city: str
    country: str
    ip: str

    def to_dict(self) -> Dict[str, str]:
        return {"city": self.city, "country": self.country, "ip": self.ip}


@dataclass
class ThreatAlert:
    """Impossible travel alert for one pair of sessions.

    Attributes:
        id: ``alert-<session id>`` of the later session
        user_id: User owning both sessions
        user_name: User display name
        user_email: User email
        previous_location: Where the earlier session came from
        current_location: Where the later session came from
        distance_km: Great-circle distance between the two locations
        time_diff_hours: Hours between the two session starts
        required_speed_kmh: Speed needed to cover the distance in time
        timestamp: Start of the later session
        status: Operator decision on the alert
    """

    id: str
    user_id: str
    user_name: Optional[str]
    user_email: Optional[str]
    previous_location: AlertLocation
    current_location: AlertLocation
    distance_km: float
    time_diff_hours: float
    required_speed_kmh: float
    timestamp: datetime
    status: AlertStatus = AlertStatus.PENDING

    @property
    def distance_mi(self) -> float:
        return self.distance_km * KM_TO_MILES

    @property
    def session_id(self) -> str:
        """Session id of the later session in the pair."""
        return self.id[len(ALERT_ID_PREFIX):]

    def with_status(self, status: AlertStatus) -> "ThreatAlert":
        """Return a copy of this alert with a different status."""
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "previous_location": self.previous_location.to_dict(),
            "current_location": self.current_location.to_dict(),
            "distance_km": round(self.distance_km, 1),
            "distance_mi": round(self.distance_mi, 1),
            "time_diff_hours": round(self.time_diff_hours, 4),
            "required_speed_kmh": round(self.required_speed_kmh, 1),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
        }


@dataclass
class Threat:
    """Category-level threat finding.

    Attributes:
        id: ``<kind>-<unix seconds>`` of the detection time
        severity: Fixed per heuristic
        type: Human-readable threat category
        description: Summary of the finding
        affected_users: Number of affected users (or IPs, for bursts)
        detected_at: Start of the window the heuristic looked at
        status: Threat lifecycle status
    """

    id: str
    severity: ThreatSeverity
    type: str
    description: str
    affected_users: int
    detected_at: datetime
    status: ThreatStatus = ThreatStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "severity": self.severity.value,
            "type": self.type,
            "description": self.description,
            "affected_users": self.affected_users,
            "detected_at": self.detected_at.isoformat(),
            "status": self.status.value,
        }


def threats_etag(threats: List[Threat]) -> str:
    """Compute a weak ETag over a list of threats.

    Args:
        threats: Threats in response order

    Returns:
        ETag string of the form ``W/"<sha1>"``
    """
    payload = json.dumps([t.to_dict() for t in threats], sort_keys=True)
    digest = hashlib.sha1(payload.encode()).hexdigest()
    return f'W/"{digest}"'
