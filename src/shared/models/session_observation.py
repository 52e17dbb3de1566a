"""
Session observation schema for session security analytics.

Raw session rows arrive from the storage layer as loosely-typed mappings.
This module validates them once at the boundary and turns them into frozen
value objects, so the analyzers downstream never deal with missing keys,
string timestamps or malformed IP literals.
"""

import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

UNKNOWN_CITY = "Unknown"
UNKNOWN_COUNTRY = "??"


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """Canonical text form of an IPv4 or IPv6 literal.

    Args:
        value: Candidate IP address string, surrounding whitespace allowed

    Returns:
        Compressed canonical address, or None if the value is not an IP
    """
    if not value or not isinstance(value, str):
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def is_valid_ip(value: Optional[str]) -> bool:
    """Check whether a value is a well-formed IPv4 or IPv6 literal."""
    return normalize_ip(value) is not None


def parse_flag(value: Any) -> bool:
    """Read a boolean column that may arrive as bool, number or string."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes", "y", "on")
    if isinstance(value, (bool, int)):
        return bool(value)
    return False


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, leave aware ones untouched."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp from a storage row.

    Args:
        value: datetime or ISO-8601 string (trailing 'Z' accepted)

    Returns:
        Timezone-aware datetime, or None if unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class GeoPoint:
    """Resolved location for an IP address.

    Attributes:
        latitude: Latitude in degrees, None if unknown
        longitude: Longitude in degrees, None if unknown
        city: City display name
        country: Country display name
    """

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are present."""
        return self.latitude is not None and self.longitude is not None

    @property
    def city_label(self) -> str:
        return self.city or UNKNOWN_CITY

    @property
    def country_label(self) -> str:
        return self.country or UNKNOWN_COUNTRY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "city": self.city,
            "country": self.country,
        }


@dataclass(frozen=True)
class SessionObservation:
    """One authenticated session's identity-relevant facts at creation time.

    Attributes:
        session_id: Opaque session identifier
        user_id: Owning user identifier
        ip_address: Client IP as recorded, may be missing or malformed
        created_at: When the session began (timezone-aware)
        user_name: Owning user's display name
        user_email: Owning user's email address
        is_suspicious: Suspicion marker set by the authentication layer
        expires_at: Session expiry, None for non-expiring sessions
        country: Country recorded at session creation
        device_type: Device class recorded at session creation
    """

    session_id: str
    user_id: str
    ip_address: Optional[str]
    created_at: datetime
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    is_suspicious: bool = False
    expires_at: Optional[datetime] = None
    country: Optional[str] = None
    device_type: Optional[str] = None

    @property
    def has_valid_ip(self) -> bool:
        return is_valid_ip(self.ip_address)

    def is_active(self, now: datetime) -> bool:
        """Check whether the session has not expired at the given instant."""
        if self.expires_at is None:
            return True
        return ensure_utc(self.expires_at) > ensure_utc(now)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["SessionObservation"]:
        """Build an observation from a raw storage row.

        Accepts either ``id`` or ``session_id`` for the session key and
        user details either flat (``user_name``/``user_email``) or nested
        under ``user`` (``name``/``email``).

        Args:
            data: Raw row mapping

        Returns:
            SessionObservation, or None if required fields are missing
        """
        session_id = data.get("session_id") or data.get("id")
        user = data.get("user") or {}
        user_id = data.get("user_id") or user.get("id")
        created_at = parse_timestamp(data.get("created_at"))

        if not session_id or not user_id or created_at is None:
            logger.debug(f"Dropping session row with missing fields: {session_id!r}")
            return None

        ip_address = data.get("ip_address")
        if isinstance(ip_address, str):
            ip_address = ip_address.strip() or None

        return cls(
            session_id=str(session_id),
            user_id=str(user_id),
            ip_address=ip_address,
            created_at=created_at,
            user_name=data.get("user_name") or user.get("name"),
            user_email=data.get("user_email") or user.get("email"),
            is_suspicious=parse_flag(data.get("is_suspicious", False)),
            expires_at=parse_timestamp(data.get("expires_at")),
            country=data.get("country"),
            device_type=data.get("device_type"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat(),
            "user_name": self.user_name,
            "user_email": self.user_email,
            "is_suspicious": self.is_suspicious,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "country": self.country,
            "device_type": self.device_type,
        }


def observations_from_rows(rows: Iterable[Mapping[str, Any]]) -> List[SessionObservation]:
    """Validate raw storage rows into observations, dropping malformed ones.

    Input order is preserved.

    Args:
        rows: Raw session rows

    Returns:
        List of SessionObservation
    """
    observations = []
    dropped = 0
    for row in rows:
        observation = SessionObservation.from_dict(row)
        if observation is None:
            dropped += 1
            continue
        observations.append(observation)

    if dropped:
        logger.debug(f"Dropped {dropped} malformed session rows")

    return observations
