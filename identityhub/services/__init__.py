"""Services package exports."""

from identityhub.services.auth_service import AuthService
from identityhub.services.logging_service import configure_logging, get_logger
from identityhub.services.notification_service import LoggingNotifier, Notifier
from identityhub.services.password_service import PasswordService
from identityhub.services.token_service import TokenService

__all__ = [
    "AuthService",
    "LoggingNotifier",
    "Notifier",
    "PasswordService",
    "TokenService",
    "configure_logging",
    "get_logger",
]
