"""Auth orchestrator: the single entry point for every identity operation.

Both the HTTP routers and the gRPC servicers call into :class:`AuthService`
and forward its result envelopes verbatim. Expected failures are raised
internally as :class:`AuthError` and converted at the method boundary;
anything else becomes a logged internal fault with a generic message.
"""

import functools
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from identityhub.config import Settings
from identityhub.exceptions import AuthError, DuplicateEmailError, ErrorKind
from identityhub.models.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateUserRequest,
)
from identityhub.models.results import ApiResult, AuthResult
from identityhub.models.token import TokenClaims
from identityhub.models.user import RefreshToken, Role, User, UserPage, UserProfile
from identityhub.services.notification_service import Notifier
from identityhub.services.password_service import PasswordService, SignInOutcome
from identityhub.services.token_service import TokenService
from identityhub.store.base import CredentialStore

logger = structlog.get_logger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid email or password"
ACCOUNT_LOCKED_MESSAGE = "Account is locked out"
INVALID_REFRESH_MESSAGE = "Invalid or expired refresh token"
FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)
USER_NOT_FOUND_MESSAGE = "User not found"
DEFAULT_PAGE_SIZE = 10

# Resource name -> rule over the user's roles. Unlisted resources only
# require an active account.
PERMISSION_RULES: dict[str, Callable[[User], bool]] = {
    "admin": lambda user: user.has_role(Role.ADMIN),
    "user": lambda user: user.has_role(Role.ADMIN) or user.has_role(Role.USER),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_user_id(user_id) -> Optional[UUID]:
    if isinstance(user_id, UUID):
        return user_id
    try:
        return UUID(str(user_id))
    except (TypeError, ValueError):
        return None


def _guarded(failure_message: str, result_type=ApiResult):
    """Turn raised failures into result envelopes.

    Args:
        failure_message: Generic message used for unexpected faults
        result_type: Envelope class providing ``fail()``
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except AuthError as e:
                if e.kind is not ErrorKind.VALIDATION_FAILURE:
                    logger.info(
                        "auth_operation_rejected",
                        operation=func.__name__,
                        kind=e.kind.value,
                    )
                return result_type.fail(e.kind, e.message, e.errors)
            except Exception:
                logger.exception("auth_operation_failed", operation=func.__name__)
                return result_type.fail(ErrorKind.INTERNAL_FAULT, failure_message)

        return wrapper

    return decorator


class AuthService:
    """Registration, sign-in, token rotation, password and profile management."""

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        passwords: PasswordService,
        notifier: Notifier,
        settings: Settings,
    ):
        self._store = store
        self._tokens = tokens
        self._passwords = passwords
        self._notifier = notifier
        self._settings = settings
        self._refresh_lifetime = timedelta(days=settings.refresh_token_expiry_days)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @_guarded("An error occurred during registration", AuthResult)
    async def register(self, request: RegisterRequest) -> AuthResult:
        """Create an account with the ``User`` role.

        The email confirmation token goes to the notifier only.
        """
        if request.password != request.confirm_password:
            raise AuthError(
                ErrorKind.VALIDATION_FAILURE,
                "Passwords do not match",
                ["The password and confirmation password do not match."],
            )

        if await self._store.get_user_by_email(request.email) is not None:
            raise AuthError(ErrorKind.DUPLICATE_EMAIL, "User with this email already exists")

        violations = self._passwords.validate_policy(request.password)
        if violations:
            raise AuthError(
                ErrorKind.VALIDATION_FAILURE,
                "Failed to create user: " + ", ".join(violations),
                violations,
            )

        user = User(
            id=uuid4(),
            email=request.email,
            username=request.email,
            password_hash=await self._passwords.hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            phone_number=request.phone_number,
            roles=[Role.USER],
            lockout_enabled=self._settings.lockout_enabled,
            created_at=_now(),
        )

        try:
            await self._store.create_user(user)
        except DuplicateEmailError:
            raise AuthError(
                ErrorKind.DUPLICATE_EMAIL, "User with this email already exists"
            ) from None

        confirmation_token = self._passwords.generate_email_confirmation_token(user)
        await self._notifier.send_email_confirmation(user, confirmation_token)

        logger.info("user_registered", user_id=str(user.id))

        return AuthResult(
            success=True,
            message="User registered successfully. Please confirm your email.",
            user=UserProfile.from_user(user),
        )

    @_guarded("An error occurred during login", AuthResult)
    async def login(self, request: LoginRequest) -> AuthResult:
        """Verify credentials and issue an access/refresh token pair."""
        now = _now()
        user = await self._store.get_user_by_email(request.email)
        if user is None or not user.is_active:
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        outcome = await self._passwords.check_password_sign_in(
            self._store, user, request.password, now
        )

        if outcome is SignInOutcome.LOCKED_OUT:
            raise AuthError(ErrorKind.ACCOUNT_LOCKED, ACCOUNT_LOCKED_MESSAGE)
        if outcome is SignInOutcome.FAILED:
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        if self._settings.email_confirmation_required and not user.email_confirmed:
            raise AuthError(
                ErrorKind.INVALID_CREDENTIALS, "Email address has not been confirmed"
            )

        result = await self._issue_tokens(user, "Login successful", now)
        logger.info("user_logged_in", user_id=str(user.id))
        return result

    @_guarded("An error occurred during token refresh", AuthResult)
    async def refresh_token(self, request: RefreshTokenRequest) -> AuthResult:
        """Exchange a refresh token for a new pair, revoking the old one.

        The store revokes and replaces in one atomic step, so presenting the
        same token twice succeeds at most once.
        """
        now = _now()
        row = await self._store.get_refresh_token(request.refresh_token)
        if row is None or not row.is_active_at(now):
            raise AuthError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, INVALID_REFRESH_MESSAGE)

        user = await self._store.get_user_by_id(row.user_id)
        if user is None or not user.is_active:
            raise AuthError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, INVALID_REFRESH_MESSAGE)

        replacement = RefreshToken.issue(
            user.id, self._tokens.generate_refresh_token(), now, self._refresh_lifetime
        )
        if not await self._store.rotate_refresh_token(row.token, replacement, now):
            raise AuthError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, INVALID_REFRESH_MESSAGE)

        access_token, expires_at = self._tokens.mint_access_token(user)

        logger.info(
            "refresh_token_rotated",
            user_id=str(user.id),
            revoked_row_id=str(row.id),
            new_row_id=str(replacement.id),
        )

        return AuthResult(
            success=True,
            message="Token refreshed successfully",
            access_token=access_token,
            refresh_token=replacement.token,
            expires_at=expires_at,
            user=UserProfile.from_user(user),
        )

    @_guarded("An error occurred during logout", AuthResult)
    async def logout(self, user_id: str) -> AuthResult:
        """Revoke every active refresh token of the user. Idempotent."""
        uid = _parse_user_id(user_id)
        if uid is None:
            raise AuthError(ErrorKind.VALIDATION_FAILURE, "Invalid user")

        revoked = await self._store.revoke_user_refresh_tokens(uid, _now())
        logger.info("user_logged_out", user_id=str(uid), revoked_count=revoked)

        return AuthResult(success=True, message="Logout successful")

    async def _issue_tokens(self, user: User, message: str, now: datetime) -> AuthResult:
        refresh = RefreshToken.issue(
            user.id, self._tokens.generate_refresh_token(), now, self._refresh_lifetime
        )
        await self._store.add_refresh_token(refresh)
        access_token, expires_at = self._tokens.mint_access_token(user)

        return AuthResult(
            success=True,
            message=message,
            access_token=access_token,
            refresh_token=refresh.token,
            expires_at=expires_at,
            user=UserProfile.from_user(user),
        )

    # ------------------------------------------------------------------
    # Password management
    # ------------------------------------------------------------------

    @_guarded("An error occurred while processing the request")
    async def forgot_password(self, request: ForgotPasswordRequest) -> ApiResult[str]:
        """Start a password reset.

        The response is identical whether or not the account exists.
        """
        user = await self._store.get_user_by_email(request.email)
        if user is not None:
            reset_token = self._passwords.generate_password_reset_token(user)
            await self._notifier.send_password_reset(user, reset_token)
            logger.info("password_reset_requested", user_id=str(user.id))

        return ApiResult.ok(FORGOT_PASSWORD_MESSAGE)

    @_guarded("An error occurred while resetting password")
    async def reset_password(self, request: ResetPasswordRequest) -> ApiResult[str]:
        user = await self._store.get_user_by_email(request.email)
        if user is None:
            raise AuthError(ErrorKind.INVALID_RESET_TOKEN, "Invalid reset token")

        if not self._passwords.verify_password_reset_token(user, request.token):
            raise AuthError(
                ErrorKind.INVALID_RESET_TOKEN, "Failed to reset password", ["Invalid token."]
            )

        violations = self._passwords.validate_policy(request.new_password)
        if violations:
            raise AuthError(ErrorKind.INVALID_RESET_TOKEN, "Failed to reset password", violations)

        if not await self._store_password(user, request.new_password):
            raise AuthError(
                ErrorKind.INVALID_RESET_TOKEN, "Failed to reset password", ["Invalid token."]
            )

        logger.info("password_reset_completed", user_id=str(user.id))
        return ApiResult.ok("Password reset successfully")

    @_guarded("An error occurred while changing password")
    async def change_password(
        self, user_id: str, request: ChangePasswordRequest
    ) -> ApiResult[str]:
        """Replace the password after verifying the current one.

        Access tokens already issued stay valid until they expire.
        """
        user = await self._require_user(user_id)

        if not await self._passwords.verify_password(request.current_password, user.password_hash):
            raise AuthError(
                ErrorKind.VALIDATION_FAILURE,
                "Failed to change password",
                ["Incorrect password."],
            )

        violations = self._passwords.validate_policy(request.new_password)
        if violations:
            raise AuthError(ErrorKind.VALIDATION_FAILURE, "Failed to change password", violations)

        if not await self._store_password(user, request.new_password):
            raise AuthError(
                ErrorKind.VALIDATION_FAILURE,
                "Failed to change password",
                ["Password was changed by another request."],
            )

        logger.info("password_changed", user_id=str(user.id))
        return ApiResult.ok("Password changed successfully")

    async def _store_password(self, user: User, new_password: str) -> bool:
        """Persist a new hash and stamp unless the stamp moved since ``user`` was read."""
        updated = await self._passwords.replace_password(user, new_password)
        return await self._store.set_password(
            user.id,
            updated.password_hash,
            updated.security_stamp,
            user.security_stamp,
            updated.updated_at,
        )

    @_guarded("An error occurred while confirming email")
    async def confirm_email(self, user_id: str, token: str) -> ApiResult[str]:
        uid = _parse_user_id(user_id)
        user = await self._store.get_user_by_id(uid) if uid else None
        if user is None:
            raise AuthError(ErrorKind.INVALID_CONFIRMATION_TOKEN, "Invalid confirmation token")

        if not self._passwords.verify_email_confirmation_token(user, token):
            raise AuthError(
                ErrorKind.INVALID_CONFIRMATION_TOKEN,
                "Failed to confirm email",
                ["Invalid token."],
            )

        if not user.email_confirmed:
            await self._store.mark_email_confirmed(user.id, _now())

        logger.info("email_confirmed", user_id=str(user.id))
        return ApiResult.ok("Email confirmed successfully")

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------

    async def _require_user(self, user_id: str) -> User:
        uid = _parse_user_id(user_id)
        user = await self._store.get_user_by_id(uid) if uid else None
        if user is None:
            raise AuthError(ErrorKind.NOT_FOUND, USER_NOT_FOUND_MESSAGE)
        return user

    @_guarded("An error occurred while retrieving user")
    async def get_user(self, user_id: str) -> ApiResult[UserProfile]:
        user = await self._require_user(user_id)
        return ApiResult.ok("User retrieved successfully", UserProfile.from_user(user))

    @_guarded("An error occurred while retrieving user")
    async def get_user_by_email(self, email: str) -> ApiResult[UserProfile]:
        user = await self._store.get_user_by_email(email)
        if user is None:
            raise AuthError(ErrorKind.NOT_FOUND, USER_NOT_FOUND_MESSAGE)
        return ApiResult.ok("User retrieved successfully", UserProfile.from_user(user))

    @_guarded("An error occurred while updating user")
    async def update_user(
        self, user_id: str, request: UpdateUserRequest
    ) -> ApiResult[UserProfile]:
        """Apply the non-null profile fields of ``request``."""
        user = await self._require_user(user_id)

        changes = request.model_dump(exclude_none=True)
        updated = await self._store.update_profile(user.id, changes, _now())
        if updated is None:
            raise AuthError(ErrorKind.NOT_FOUND, USER_NOT_FOUND_MESSAGE)

        logger.info(
            "user_updated",
            user_id=str(user.id),
            fields_updated=sorted(changes),
        )
        return ApiResult.ok("User updated successfully", UserProfile.from_user(updated))

    @_guarded("An error occurred while retrieving users")
    async def get_users(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        search_term: Optional[str] = None,
        include_inactive: bool = False,
    ) -> ApiResult[UserPage]:
        """List users with optional search and active filter.

        Args:
            page: 1-based page number; values below 1 become 1
            page_size: Page length; values of 0 or less become 10
            search_term: Case-insensitive substring of email, first or last name
            include_inactive: Include deactivated accounts

        Returns:
            ApiResult carrying a UserPage ordered by creation time
        """
        page = page if page > 0 else 1
        page_size = page_size if page_size > 0 else DEFAULT_PAGE_SIZE
        search_term = search_term.strip() if search_term else None
        search_term = search_term or None

        total = await self._store.count_users(search_term, include_inactive)
        users = await self._store.list_users(
            search_term, include_inactive, (page - 1) * page_size, page_size
        )

        return ApiResult.ok(
            "Users retrieved successfully",
            UserPage(
                users=[UserProfile.from_user(u) for u in users],
                total_count=total,
                page=page,
                page_size=page_size,
            ),
        )

    # ------------------------------------------------------------------
    # Validation for internal callers
    # ------------------------------------------------------------------

    @_guarded("An error occurred while validating credentials")
    async def validate_credentials(self, email: str, password: str) -> ApiResult[UserProfile]:
        """Check a password without issuing tokens or touching lockout state."""
        user = await self._store.get_user_by_email(email)
        if user is None or not user.is_active:
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)
        if self._passwords.is_locked_out(user):
            raise AuthError(ErrorKind.ACCOUNT_LOCKED, ACCOUNT_LOCKED_MESSAGE)
        if not await self._passwords.verify_password(password, user.password_hash):
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        return ApiResult.ok("Credentials are valid", UserProfile.from_user(user))

    @_guarded("An error occurred while validating token")
    async def validate_access_token(self, token: str) -> ApiResult[TokenClaims]:
        claims = self._tokens.authenticate(token)
        if claims is None:
            raise AuthError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, "Invalid token")
        return ApiResult.ok("Token is valid", claims)

    @_guarded("An error occurred while checking permissions")
    async def check_user_permission(
        self, user_id: str, resource: str, action: str
    ) -> ApiResult[bool]:
        """Decide whether a user may perform ``action`` on ``resource``.

        The decision depends on the resource only; ``action`` is recorded
        for logging.
        """
        uid = _parse_user_id(user_id)
        user = await self._store.get_user_by_id(uid) if uid else None

        if user is None or not user.is_active:
            allowed = False
        else:
            rule = PERMISSION_RULES.get((resource or "").lower())
            allowed = rule(user) if rule is not None else user.is_active

        logger.debug(
            "permission_checked",
            user_id=str(user_id),
            resource=resource,
            action=action,
            allowed=allowed,
        )
        return ApiResult.ok("Permission granted" if allowed else "Permission denied", allowed)

    @_guarded("An error occurred while checking user")
    async def user_exists(self, email: str) -> ApiResult[bool]:
        exists = await self._store.get_user_by_email(email) is not None
        return ApiResult.ok("User exists" if exists else "User does not exist", exists)

    @_guarded("An error occurred while retrieving user roles")
    async def get_user_roles(self, user_id: str) -> ApiResult[list[str]]:
        user = await self._require_user(user_id)
        return ApiResult.ok("User roles retrieved successfully", list(user.roles))

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    @_guarded("An error occurred while seeding the admin user")
    async def ensure_admin_user(self, email: str, password: str) -> ApiResult[UserProfile]:
        """Create a confirmed Admin account unless the email already exists."""
        existing = await self._store.get_user_by_email(email)
        if existing is not None:
            return ApiResult.ok("Admin user already exists", UserProfile.from_user(existing))

        violations = self._passwords.validate_policy(password)
        if violations:
            raise AuthError(ErrorKind.VALIDATION_FAILURE, "Failed to create admin user", violations)

        admin = User(
            id=uuid4(),
            email=email,
            username=email,
            password_hash=await self._passwords.hash_password(password),
            first_name="System",
            last_name="Administrator",
            email_confirmed=True,
            roles=[Role.ADMIN],
            lockout_enabled=self._settings.lockout_enabled,
            created_at=_now(),
        )
        await self._store.create_user(admin)

        logger.info("admin_user_seeded", user_id=str(admin.id))
        return ApiResult.ok("Admin user created", UserProfile.from_user(admin))
