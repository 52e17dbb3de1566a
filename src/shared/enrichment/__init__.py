"""Context enrichment for session security analytics.

Provides IP geolocation behind a pluggable resolver interface.
"""

from .geolocation import (
    GeoIPCache,
    GeoIPService,
    GeoResolver,
    safe_resolve,
)

__all__ = [
    "GeoIPCache",
    "GeoIPService",
    "GeoResolver",
    "safe_resolve",
]
