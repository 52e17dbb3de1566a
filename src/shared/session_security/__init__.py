"""Session security analytics.

Detects impossible travel between a user's sessions, flags category-level
session threats, scores per-user session risk, evaluates session policies
and applies operator decisions to alerts.
"""

from .alert_actions import (
    AlertActionHandler,
    SessionNotifier,
    SessionRevoker,
    session_id_from_alert_id,
)
from .config import SessionSecurityConfig
from .exceptions import (
    AlertStateError,
    ConfigurationError,
    InvalidAlertIdError,
    SessionRevocationError,
    SessionSecurityError,
)
from .risk_scorer import (
    SessionRiskScorer,
    SessionStatsSummary,
    UserSessionStats,
    risk_level,
)
from .session_policy import (
    PolicyValidation,
    SessionAttempt,
    SessionPolicy,
    default_policy,
    is_country_allowed,
    is_device_type_allowed,
    is_ip_allowed,
    is_time_allowed,
    validate_session,
)
from .threat_aggregator import ThreatAggregator
from .threat_types import (
    AlertLocation,
    AlertStatus,
    Threat,
    ThreatAlert,
    ThreatSeverity,
    ThreatStatus,
    threats_etag,
)
from .travel_analyzer import (
    ImpossibleTravelAnalyzer,
    TravelAnalysis,
    elapsed_hours,
    haversine_distance,
)

__all__ = [
    # Aggregation
    "ThreatAggregator",
    # Travel analysis
    "ImpossibleTravelAnalyzer",
    "TravelAnalysis",
    "elapsed_hours",
    "haversine_distance",
    # Alerts and threats
    "AlertLocation",
    "AlertStatus",
    "Threat",
    "ThreatAlert",
    "ThreatSeverity",
    "ThreatStatus",
    "threats_etag",
    # Risk scoring
    "SessionRiskScorer",
    "SessionStatsSummary",
    "UserSessionStats",
    "risk_level",
    # Policies
    "PolicyValidation",
    "SessionAttempt",
    "SessionPolicy",
    "default_policy",
    "is_country_allowed",
    "is_device_type_allowed",
    "is_ip_allowed",
    "is_time_allowed",
    "validate_session",
    # Alert actions
    "AlertActionHandler",
    "SessionNotifier",
    "SessionRevoker",
    "session_id_from_alert_id",
    # Config and errors
    "SessionSecurityConfig",
    "AlertStateError",
    "ConfigurationError",
    "InvalidAlertIdError",
    "SessionRevocationError",
    "SessionSecurityError",
]
