"""
Session Security Configuration

Defines thresholds, detection windows and geolocation settings for the
session security analyzers, loadable from a dict, environment variables
or a YAML file.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .exceptions import ConfigurationError

ENV_PREFIX = "SESSION_SECURITY_"

# Fastest plausible commercial travel: jet cruising speed plus margin
MAX_PLAUSIBLE_SPEED_KMH = 1000.0

# One second, expressed in hours
MIN_TIME_DIFF_HOURS = 1.0 / 3600

# Upper bound on observations analyzed per invocation
MAX_OBSERVATIONS = 500


@dataclass
class SessionSecurityConfig:
    """Configuration for session security detection."""

    # Impossible travel
    max_plausible_speed_kmh: float = MAX_PLAUSIBLE_SPEED_KMH
    min_time_diff_hours: float = MIN_TIME_DIFF_HOURS
    max_observations: int = MAX_OBSERVATIONS

    # Suspicious-session burst
    burst_window_minutes: int = 5
    burst_threshold: int = 5

    # Location-anomaly recurrence
    location_anomaly_window_minutes: int = 60
    location_anomaly_threshold: int = 1

    # Excessive concurrency
    concurrent_session_threshold: int = 10

    # Risk scoring
    suspicious_session_weight: int = 30
    excess_session_weight: int = 10
    baseline_session_allowance: int = 3
    max_risk_score: int = 100

    # Geolocation
    geo_lookup_workers: int = 8
    geo_timeout_seconds: float = 5.0
    lookup_timeout_seconds: Optional[float] = None
    geo_cache_ttl_hours: int = 1
    geo_cache_max_size: int = 10000
    ipinfo_token: Optional[str] = None

    # Logging
    slow_detection_warning_seconds: float = 3.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionSecurityConfig":
        """Create config from dictionary.

        Unknown keys are ignored.

        Args:
            data: Configuration dictionary

        Returns:
            SessionSecurityConfig instance
        """
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            kwargs[key] = value
        config = cls(**kwargs)
        config.validate()
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionSecurityConfig":
        """Create config from ``SESSION_SECURITY_*`` environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)

        Returns:
            SessionSecurityConfig instance
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        kwargs: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            kwargs[f.name] = _coerce(f.name, raw, getattr(defaults, f.name))

        if "ipinfo_token" not in kwargs and environ.get("IPINFO_TOKEN"):
            kwargs["ipinfo_token"] = environ["IPINFO_TOKEN"]

        config = cls(**kwargs)
        config.validate()
        return config

    @classmethod
    def from_yaml_file(cls, path: Union[str, Path]) -> "SessionSecurityConfig":
        """Load config from a YAML file.

        The file may hold the settings at the top level or under a
        ``session_security`` key.

        Args:
            path: Path to YAML file

        Returns:
            SessionSecurityConfig instance
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        section = data.get("session_security", data)
        if not isinstance(section, dict):
            raise ConfigurationError(f"'session_security' in {path} must be a mapping")

        return cls.from_dict(section)

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If any threshold or window is out of range
        """
        positive = [
            "max_plausible_speed_kmh",
            "min_time_diff_hours",
            "max_observations",
            "burst_window_minutes",
            "location_anomaly_window_minutes",
            "geo_lookup_workers",
            "geo_timeout_seconds",
            "max_risk_score",
        ]
        for name in positive:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value!r}")

        non_negative = [
            "burst_threshold",
            "location_anomaly_threshold",
            "concurrent_session_threshold",
            "suspicious_session_weight",
            "excess_session_weight",
            "baseline_session_allowance",
        ]
        for name in non_negative:
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")

        timeout = self.lookup_timeout_seconds
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ConfigurationError(f"lookup_timeout_seconds must be positive when set, got {timeout!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary, omitting the ipinfo token."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["ipinfo_token"] = "***" if self.ipinfo_token else None
        return result


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field default."""
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float) or name == "lookup_timeout_seconds":
            return float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}")
    return raw
