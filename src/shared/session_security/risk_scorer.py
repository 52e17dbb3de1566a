"""Session statistics and per-user session risk scoring.

Risk score per user, over the user's active sessions:

    min(max_risk_score,
        suspicious_sessions * suspicious_session_weight
        + max(0, active_sessions - baseline_session_allowance) * excess_session_weight)

With the defaults this is ``min(100, suspicious * 30 + max(0, active - 3) * 10)``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..models.session_observation import SessionObservation, ensure_utc
from .config import SessionSecurityConfig

logger = logging.getLogger(__name__)

# Risk level thresholds (score >= threshold)
RISK_LEVEL_THRESHOLDS = [
    ("critical", 70),
    ("high", 50),
    ("medium", 25),
]


@dataclass
class UserSessionStats:
    """Active session statistics for one user."""

    user_id: str
    user_name: Optional[str]
    user_email: Optional[str]
    active_sessions: int
    suspicious_sessions: int
    risk_score: int
    last_login: Optional[datetime]

    @property
    def risk_level(self) -> str:
        return risk_level(self.risk_score)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "active_sessions": self.active_sessions,
            "suspicious_sessions": self.suspicious_sessions,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }


@dataclass
class SessionStatsSummary:
    """Totals across all active sessions plus per-user statistics."""

    active_sessions: int = 0
    suspicious_sessions: int = 0
    active_users: int = 0
    users: List[UserSessionStats] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "stats": {
                "active_sessions": self.active_sessions,
                "suspicious_sessions": self.suspicious_sessions,
                "active_users": self.active_users,
            },
            "users": [u.to_dict() for u in self.users],
        }


def risk_level(score: int) -> str:
    """Map a 0-100 risk score to a risk level name."""
    for level, threshold in RISK_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return "low"


class SessionRiskScorer:
    """Scores users by their active and suspicious session counts."""

    def __init__(self, config: Optional[SessionSecurityConfig] = None):
        self.config = config or SessionSecurityConfig()

    def score_user(self, active_sessions: int, suspicious_sessions: int) -> int:
        """Calculate a user's session risk score.

        Args:
            active_sessions: Number of active sessions
            suspicious_sessions: Number of those flagged suspicious

        Returns:
            Risk score from 0 to max_risk_score
        """
        excess = max(0, active_sessions - self.config.baseline_session_allowance)
        score = (
            suspicious_sessions * self.config.suspicious_session_weight
            + excess * self.config.excess_session_weight
        )
        return min(self.config.max_risk_score, score)

    def summarize(
        self, observations: Sequence[SessionObservation], now: datetime
    ) -> SessionStatsSummary:
        """Build session statistics from a snapshot of sessions.

        Only sessions active at ``now`` are counted.

        Args:
            observations: Session observations
            now: Reference time for expiry checks

        Returns:
            SessionStatsSummary with users ordered by risk score (highest
            first), then user id
        """
        active = [s for s in observations if s.is_active(now)]

        by_user: Dict[str, List[SessionObservation]] = {}
        for session in active:
            by_user.setdefault(session.user_id, []).append(session)

        users = []
        for user_id, sessions in by_user.items():
            suspicious = sum(1 for s in sessions if s.is_suspicious)
            # Denormalized user fields come from whichever row carries them
            name = next((s.user_name for s in sessions if s.user_name), None)
            email = next((s.user_email for s in sessions if s.user_email), None)

            users.append(UserSessionStats(
                user_id=user_id,
                user_name=name,
                user_email=email,
                active_sessions=len(sessions),
                suspicious_sessions=suspicious,
                risk_score=self.score_user(len(sessions), suspicious),
                last_login=max(ensure_utc(s.created_at) for s in sessions),
            ))

        users.sort(key=lambda u: (-u.risk_score, u.user_id))

        summary = SessionStatsSummary(
            active_sessions=len(active),
            suspicious_sessions=sum(1 for s in active if s.is_suspicious),
            active_users=len(by_user),
            users=users,
        )

        logger.info(
            f"Session stats: {summary.active_sessions} active sessions, "
            f"{summary.suspicious_sessions} suspicious, {summary.active_users} users"
        )

        return summary
