"""IP Geolocation Enrichment Service.

Resolves IP addresses to approximate locations using IPInfo.io (when a
token is configured) with fallback to the free IP-API service.
"""

import ipaddress
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Tuple

import requests

from ..models.session_observation import GeoPoint

logger = logging.getLogger(__name__)

IPAPI_URL = "http://ip-api.com/json/{ip}?fields=status,message,country,regionName,city,lat,lon"
IPINFO_URL = "https://ipinfo.io/{ip}/json"

LOCAL_GEO = GeoPoint(city="Localhost", country="Local")


class GeoResolver(ABC):
    """Maps an IP address to an approximate location.

    Implementations are best effort: ``resolve`` returns None when the
    location is unknown and should not raise.
    """

    @abstractmethod
    def resolve(self, ip: str) -> Optional[GeoPoint]:
        """Resolve an IP address.

        Args:
            ip: Well-formed IPv4/IPv6 literal

        Returns:
            GeoPoint, or None if the location could not be determined
        """
        raise NotImplementedError


def safe_resolve(resolver: GeoResolver, ip: str) -> Optional[GeoPoint]:
    """Call a resolver, turning any escaped exception into None."""
    try:
        return resolver.resolve(ip)
    except Exception as e:
        logger.warning(f"Geolocation resolver failed for {ip}: {e}")
        return None


class GeoIPCache:
    """Thread-safe in-memory cache for geolocation results."""

    def __init__(self, ttl_hours: int = 1, max_size: int = 10000):
        """Initialize cache.

        Args:
            ttl_hours: Time-to-live in hours
            max_size: Maximum cache entries
        """
        self.ttl = timedelta(hours=ttl_hours)
        self.max_size = max_size
        self._cache: Dict[str, Tuple[GeoPoint, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, ip: str) -> Optional[GeoPoint]:
        """Get cached geolocation."""
        with self._lock:
            entry = self._cache.get(ip)
            if entry is None:
                return None
            geo, stored_at = entry
            if datetime.now(timezone.utc) - stored_at < self.ttl:
                return geo
            del self._cache[ip]
            return None

    def put(self, ip: str, geo: GeoPoint) -> None:
        """Cache geolocation result."""
        with self._lock:
            # Evict oldest entry if at capacity
            if ip not in self._cache and len(self._cache) >= self.max_size:
                oldest_key = min(self._cache, key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]

            self._cache[ip] = (geo, datetime.now(timezone.utc))

    def clear(self) -> None:
        """Clear cache."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


class GeoIPService(GeoResolver):
    """Geolocation service backed by public HTTP lookup APIs."""

    def __init__(
        self,
        ipinfo_token: Optional[str] = None,
        timeout_seconds: float = 5.0,
        cache_ttl_hours: int = 1,
        cache_max_size: int = 10000,
        session: Optional[requests.Session] = None,
    ):
        """Initialize geolocation service.

        Args:
            ipinfo_token: IPInfo.io API token, enables the IPInfo lookup
            timeout_seconds: HTTP timeout per lookup
            cache_ttl_hours: Cache TTL in hours
            cache_max_size: Maximum number of cached IPs
            session: Optional requests session (connection reuse)
        """
        self.ipinfo_token = ipinfo_token
        self.timeout_seconds = timeout_seconds
        self.cache = GeoIPCache(ttl_hours=cache_ttl_hours, max_size=cache_max_size)
        self._http = session or requests

    @classmethod
    def from_config(cls, config) -> "GeoIPService":
        """Create service from a SessionSecurityConfig."""
        return cls(
            ipinfo_token=config.ipinfo_token,
            timeout_seconds=config.geo_timeout_seconds,
            cache_ttl_hours=config.geo_cache_ttl_hours,
            cache_max_size=config.geo_cache_max_size,
        )

    def resolve(self, ip: str) -> Optional[GeoPoint]:
        """Lookup geolocation for IP address.

        Args:
            ip: IP address to lookup

        Returns:
            GeoPoint, or None if every provider failed
        """
        cached = self.cache.get(ip)
        if cached:
            return cached

        if self._is_private_ip(ip):
            self.cache.put(ip, LOCAL_GEO)
            return LOCAL_GEO

        geo = None
        if self.ipinfo_token:
            geo = self._lookup_ipinfo(ip)

        if geo is None:
            geo = self._lookup_ipapi(ip)

        if geo is not None:
            self.cache.put(ip, geo)

        return geo

    def lookup_batch(self, ips: Iterable[str]) -> Dict[str, Optional[GeoPoint]]:
        """Lookup geolocation for multiple IPs.

        Args:
            ips: IP addresses

        Returns:
            Dictionary of IP to GeoPoint (None when unresolved)
        """
        results = {}
        for ip in ips:
            if ip not in results:
                results[ip] = self.resolve(ip)
        return results

    def _lookup_ipinfo(self, ip: str) -> Optional[GeoPoint]:
        """Lookup using IPInfo.io API."""
        try:
            response = self._http.get(
                IPINFO_URL.format(ip=ip),
                headers={"Authorization": f"Bearer {self.ipinfo_token}"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()

            if data.get("bogon"):
                return None

            lat, lon = None, None
            if "loc" in data:
                parts = data["loc"].split(",")
                if len(parts) == 2:
                    lat, lon = float(parts[0]), float(parts[1])

            return GeoPoint(
                latitude=lat,
                longitude=lon,
                city=data.get("city") or None,
                country=data.get("country") or None,
            )
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.debug(f"IPInfo lookup failed for {ip}: {e}")
            return None

    def _lookup_ipapi(self, ip: str) -> Optional[GeoPoint]:
        """Lookup using free IP-API.com service."""
        try:
            response = self._http.get(
                IPAPI_URL.format(ip=ip),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()

            if data.get("status") != "success":
                logger.debug(f"IP-API lookup unsuccessful for {ip}: {data.get('message')}")
                return None

            return GeoPoint(
                latitude=data.get("lat"),
                longitude=data.get("lon"),
                city=data.get("city") or None,
                country=data.get("country") or None,
            )
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.debug(f"IP-API lookup failed for {ip}: {e}")
            return None

    def _is_private_ip(self, ip: str) -> bool:
        """Check if IP is in private/reserved range."""
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return address.is_private or address.is_loopback or address.is_link_local
