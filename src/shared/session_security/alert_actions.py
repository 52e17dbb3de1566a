"""Operator actions on impossible travel alerts.

Dismissing an alert only changes its status. Blocking an alert revokes the
later session of the travel pair and optionally notifies the user.
"""

import logging
from typing import Optional, Protocol

from .exceptions import AlertStateError, InvalidAlertIdError, SessionRevocationError
from .threat_types import ALERT_ID_PREFIX, AlertStatus, ThreatAlert

logger = logging.getLogger(__name__)


class SessionRevoker(Protocol):
    """Protocol for the session store that can terminate sessions."""

    def revoke(self, session_id: str) -> bool:
        """Revoke a session. Returns True if the session was revoked."""
        ...


class SessionNotifier(Protocol):
    """Protocol for notifying users about blocked sessions."""

    def notify_session_blocked(
        self, user_email: str, user_name: Optional[str], alert: ThreatAlert
    ) -> None:
        """Tell the user a session was blocked."""
        ...


def session_id_from_alert_id(alert_id: str) -> str:
    """Extract the session id from an ``alert-<session id>`` identifier.

    Raises:
        InvalidAlertIdError: If the prefix or the session id is missing
    """
    if not alert_id or not alert_id.startswith(ALERT_ID_PREFIX):
        raise InvalidAlertIdError(f"Invalid alert id: {alert_id!r}")

    session_id = alert_id[len(ALERT_ID_PREFIX):]
    if not session_id:
        raise InvalidAlertIdError(f"Alert id has no session id: {alert_id!r}")

    return session_id


class AlertActionHandler:
    """Applies dismiss and block decisions to impossible travel alerts."""

    def __init__(
        self,
        session_revoker: SessionRevoker,
        notifier: Optional[SessionNotifier] = None,
    ):
        self.session_revoker = session_revoker
        self.notifier = notifier

    def session_id_from_alert_id(self, alert_id: str) -> str:
        return session_id_from_alert_id(alert_id)

    def dismiss(self, alert: ThreatAlert, actor_id: str) -> ThreatAlert:
        """Mark an alert as a false positive.

        Args:
            alert: Pending alert
            actor_id: Operator performing the action

        Returns:
            Copy of the alert with status dismissed
        """
        self._require_pending(alert, "dismiss")

        logger.info(
            f"Impossible travel alert {alert.id} dismissed by {actor_id} "
            f"(user {alert.user_id})"
        )
        return alert.with_status(AlertStatus.DISMISSED)

    def block(self, alert: ThreatAlert, actor_id: str) -> ThreatAlert:
        """Revoke the session behind an alert.

        Args:
            alert: Pending alert
            actor_id: Operator performing the action

        Returns:
            Copy of the alert with status blocked

        Raises:
            AlertStateError: If the alert is not pending
            SessionRevocationError: If the session could not be revoked
        """
        self._require_pending(alert, "block")
        session_id = session_id_from_alert_id(alert.id)

        if not self.session_revoker.revoke(session_id):
            logger.error(f"Failed to revoke session {session_id} for alert {alert.id}")
            raise SessionRevocationError(f"Could not revoke session {session_id}")

        blocked = alert.with_status(AlertStatus.BLOCKED)

        logger.warning(
            f"Session {session_id} blocked by {actor_id} after impossible travel "
            f"from {alert.previous_location.city}, {alert.previous_location.country} "
            f"to {alert.current_location.city}, {alert.current_location.country} "
            f"(user {alert.user_id})"
        )

        if self.notifier is not None and alert.user_email:
            try:
                self.notifier.notify_session_blocked(alert.user_email, alert.user_name, blocked)
            except Exception as e:
                logger.error(f"Failed to send session blocked notification: {e}")

        return blocked

    def _require_pending(self, alert: ThreatAlert, action: str) -> None:
        if alert.status != AlertStatus.PENDING:
            logger.warning(f"Cannot {action} alert {alert.id}: status is {alert.status.value}")
            raise AlertStateError(
                f"Cannot {action} alert {alert.id} with status {alert.status.value}"
            )
