"""Shared data models for Session Guard."""

from .session_observation import (
    GeoPoint,
    SessionObservation,
    is_valid_ip,
    normalize_ip,
    observations_from_rows,
    parse_flag,
    parse_timestamp,
)

__all__ = [
    "GeoPoint",
    "SessionObservation",
    "is_valid_ip",
    "normalize_ip",
    "observations_from_rows",
    "parse_flag",
    "parse_timestamp",
]
