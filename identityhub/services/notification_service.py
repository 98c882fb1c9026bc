"""Out-of-band delivery of confirmation and password reset tokens."""

from typing import Protocol

import structlog

from identityhub.models.user import User

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Delivers tokens to users. Tokens never travel in API responses."""

    async def send_email_confirmation(self, user: User, confirmation_token: str) -> None: ...

    async def send_password_reset(self, user: User, reset_token: str) -> None: ...


class LoggingNotifier:
    """Default notifier that records the hand-off without the token value.

    Deployments plug a real mail sender in behind the same interface.
    """

    async def send_email_confirmation(self, user: User, confirmation_token: str) -> None:
        logger.info(
            "email_confirmation_issued",
            user_id=str(user.id),
        )

    async def send_password_reset(self, user: User, reset_token: str) -> None:
        logger.info(
            "password_reset_issued",
            user_id=str(user.id),
        )
