"""Exceptions raised by the session security module."""


class SessionSecurityError(Exception):
    """Base exception for session security errors."""
    pass


class ConfigurationError(SessionSecurityError):
    """Invalid session security configuration."""
    pass


class InvalidAlertIdError(SessionSecurityError):
    """Alert identifier does not follow the ``alert-<session id>`` format."""
    pass


class AlertStateError(SessionSecurityError):
    """Requested action is not allowed from the alert's current status."""
    pass


class SessionRevocationError(SessionSecurityError):
    """Session could not be revoked while blocking an alert."""
    pass
