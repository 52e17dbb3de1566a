"""Session policy evaluation.

Per-user access restrictions checked when a session is created or
refreshed:

- IP allowlisting/blocklisting (addresses or CIDR networks)
- Geographic restrictions by country
- Day-of-week and time-of-day windows
- Device type restrictions
- Concurrent session limits
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.session_observation import ensure_utc
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]
DEFAULT_DEVICE_TYPES = ["mobile", "tablet", "desktop"]


@dataclass
class SessionPolicy:
    """Session access policy for one user.

    Days are numbered 0 (Sunday) through 6 (Saturday).
    """

    user_id: str
    allowed_ips: List[str] = field(default_factory=list)
    blocked_ips: List[str] = field(default_factory=list)
    allowed_countries: List[str] = field(default_factory=list)
    blocked_countries: List[str] = field(default_factory=list)
    allowed_days: List[int] = field(default_factory=lambda: list(ALL_DAYS))
    allowed_time_start: str = "00:00"
    allowed_time_end: str = "23:59"
    timezone: str = "America/New_York"
    allowed_device_types: List[str] = field(default_factory=lambda: list(DEFAULT_DEVICE_TYPES))
    blocked_device_types: List[str] = field(default_factory=list)
    max_concurrent_sessions: int = 5
    require_fingerprint_match: bool = False
    require_step_up_for_sensitive_actions: bool = False
    auto_logout_on_ip_change: bool = False
    auto_logout_on_location_change: bool = False
    notify_on_new_device: bool = True
    notify_on_new_location: bool = True
    notify_on_suspicious_activity: bool = True

    @property
    def id(self) -> str:
        return f"policy_{self.user_id}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionPolicy":
        """Create policy from dictionary, validating time fields."""
        policy = cls(
            user_id=data["user_id"],
            allowed_ips=list(data.get("allowed_ips", [])),
            blocked_ips=list(data.get("blocked_ips", [])),
            allowed_countries=list(data.get("allowed_countries", [])),
            blocked_countries=list(data.get("blocked_countries", [])),
            allowed_days=list(data.get("allowed_days", ALL_DAYS)),
            allowed_time_start=data.get("allowed_time_start", "00:00"),
            allowed_time_end=data.get("allowed_time_end", "23:59"),
            timezone=data.get("timezone", "America/New_York"),
            allowed_device_types=list(data.get("allowed_device_types", DEFAULT_DEVICE_TYPES)),
            blocked_device_types=list(data.get("blocked_device_types", [])),
            max_concurrent_sessions=data.get("max_concurrent_sessions", 5),
            require_fingerprint_match=data.get("require_fingerprint_match", False),
            require_step_up_for_sensitive_actions=data.get(
                "require_step_up_for_sensitive_actions", False
            ),
            auto_logout_on_ip_change=data.get("auto_logout_on_ip_change", False),
            auto_logout_on_location_change=data.get("auto_logout_on_location_change", False),
            notify_on_new_device=data.get("notify_on_new_device", True),
            notify_on_new_location=data.get("notify_on_new_location", True),
            notify_on_suspicious_activity=data.get("notify_on_suspicious_activity", True),
        )
        _parse_hhmm(policy.allowed_time_start)
        _parse_hhmm(policy.allowed_time_end)
        _zone(policy.timezone)
        return policy

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "allowed_ips": self.allowed_ips,
            "blocked_ips": self.blocked_ips,
            "allowed_countries": self.allowed_countries,
            "blocked_countries": self.blocked_countries,
            "allowed_days": self.allowed_days,
            "allowed_time_start": self.allowed_time_start,
            "allowed_time_end": self.allowed_time_end,
            "timezone": self.timezone,
            "allowed_device_types": self.allowed_device_types,
            "blocked_device_types": self.blocked_device_types,
            "max_concurrent_sessions": self.max_concurrent_sessions,
            "require_fingerprint_match": self.require_fingerprint_match,
            "require_step_up_for_sensitive_actions": self.require_step_up_for_sensitive_actions,
            "auto_logout_on_ip_change": self.auto_logout_on_ip_change,
            "auto_logout_on_location_change": self.auto_logout_on_location_change,
            "notify_on_new_device": self.notify_on_new_device,
            "notify_on_new_location": self.notify_on_new_location,
            "notify_on_suspicious_activity": self.notify_on_suspicious_activity,
        }


@dataclass
class SessionAttempt:
    """Facts about a session being created or refreshed.

    ``fingerprint_matched`` is None when no fingerprint was compared.
    """

    ip: Optional[str] = None
    country: Optional[str] = None
    device_type: Optional[str] = None
    is_new_device: bool = False
    is_new_location: bool = False
    ip_changed: bool = False
    location_changed: bool = False
    active_sessions: int = 0
    is_sensitive_action: bool = False
    is_suspicious: bool = False
    fingerprint_matched: Optional[bool] = None


@dataclass
class PolicyValidation:
    """Outcome of validating a session attempt against a policy."""

    allowed: bool = True
    reasons: List[str] = field(default_factory=list)
    requires_step_up: bool = False
    should_logout: bool = False
    should_notify: bool = False
    notification_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "allowed": self.allowed,
            "reasons": self.reasons,
            "requires_step_up": self.requires_step_up,
            "should_logout": self.should_logout,
            "should_notify": self.should_notify,
            "notification_reason": self.notification_reason,
        }


def default_policy(user_id: str) -> SessionPolicy:
    """Get the permissive default session policy for a user."""
    return SessionPolicy(user_id=user_id)


def _ip_matches(address, entries: List[str]) -> bool:
    for entry in entries:
        try:
            if address in ipaddress.ip_network(entry.strip(), strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring malformed IP policy entry: {entry!r}")
    return False


def is_ip_allowed(ip: Optional[str], policy: SessionPolicy) -> bool:
    """Check if IP address is allowed by policy.

    Blocklist entries take precedence over allowlist entries. A missing or
    malformed IP is only rejected when the policy restricts IPs at all.
    """
    if not policy.allowed_ips and not policy.blocked_ips:
        return True

    try:
        address = ipaddress.ip_address((ip or "").strip())
    except ValueError:
        return False

    if _ip_matches(address, policy.blocked_ips):
        return False

    if policy.allowed_ips:
        return _ip_matches(address, policy.allowed_ips)

    return True


def is_country_allowed(country: Optional[str], policy: SessionPolicy) -> bool:
    """Check if country is allowed by policy. Unknown countries are allowed."""
    if not country:
        return True

    if country in policy.blocked_countries:
        return False

    if policy.allowed_countries:
        return country in policy.allowed_countries

    return True


def is_time_allowed(policy: SessionPolicy, now: datetime) -> bool:
    """Check if ``now`` falls within the policy's day and time window.

    Overnight windows (end earlier than start) wrap past midnight. Naive
    datetimes are read as UTC.
    """
    local = ensure_utc(now).astimezone(_zone(policy.timezone))
    # Python weekday(): Monday=0; policy days: Sunday=0
    weekday = (local.weekday() + 1) % 7
    if weekday not in policy.allowed_days:
        return False

    start = _parse_hhmm(policy.allowed_time_start)
    end = _parse_hhmm(policy.allowed_time_end)
    current = local.time().replace(second=0, microsecond=0)

    if end < start:
        return current >= start or current <= end

    return start <= current <= end


def is_device_type_allowed(device_type: Optional[str], policy: SessionPolicy) -> bool:
    """Check if device type is allowed by policy. Unknown types are allowed."""
    if not device_type:
        return True

    if device_type in policy.blocked_device_types:
        return False

    if policy.allowed_device_types:
        return device_type in policy.allowed_device_types

    return True


def validate_session(
    policy: SessionPolicy, attempt: SessionAttempt, now: datetime
) -> PolicyValidation:
    """Validate a session attempt against a policy.

    Args:
        policy: User's session policy
        attempt: Session being created or refreshed
        now: Current time (timezone-aware)

    Returns:
        PolicyValidation with every violated restriction listed in reasons,
        followed by any auto logout reasons. Logout reasons alone do not deny
        the session.
    """
    result = PolicyValidation()

    if not is_ip_allowed(attempt.ip, policy):
        result.reasons.append(f"IP address {attempt.ip} is not allowed")

    if not is_country_allowed(attempt.country, policy):
        result.reasons.append(f"Access from {attempt.country} is not allowed")

    if not is_time_allowed(policy, now):
        result.reasons.append("Access is not allowed at this time")

    if not is_device_type_allowed(attempt.device_type, policy):
        result.reasons.append(f"Device type {attempt.device_type} is not allowed")

    if attempt.active_sessions >= policy.max_concurrent_sessions:
        result.reasons.append(
            f"Maximum concurrent sessions ({policy.max_concurrent_sessions}) reached"
        )

    if policy.require_fingerprint_match and attempt.fingerprint_matched is False:
        result.reasons.append("Device fingerprint does not match")

    result.allowed = not result.reasons
    if not result.allowed:
        logger.info(f"Session policy denied for {policy.user_id}: {'; '.join(result.reasons)}")

    if policy.require_step_up_for_sensitive_actions and attempt.is_sensitive_action:
        result.requires_step_up = True

    if policy.auto_logout_on_location_change and attempt.location_changed:
        result.should_logout = True
        result.reasons.append("Location changed - auto logout")
    if policy.auto_logout_on_ip_change and attempt.ip_changed:
        result.should_logout = True
        result.reasons.append("IP address changed - auto logout")

    if policy.notify_on_new_device and attempt.is_new_device:
        result.should_notify = True
        result.notification_reason = "New device detected"
    elif policy.notify_on_new_location and attempt.is_new_location:
        result.should_notify = True
        result.notification_reason = "New location detected"
    elif policy.notify_on_suspicious_activity and attempt.is_suspicious:
        result.should_notify = True
        result.notification_reason = "Suspicious activity detected"

    return result


def _parse_hhmm(value: str) -> time:
    try:
        hour, minute = value.split(":")
        return time(int(hour), int(minute))
    except (ValueError, AttributeError):
        raise ConfigurationError(f"Invalid HH:MM time: {value!r}")


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown timezone: {name!r}")
