"""gRPC AuthService handlers.

Each handler converts the request into the orchestrator's input, calls
the matching :class:`AuthService` operation and copies the envelope into
the reply. Failures travel in the reply body; only bearer problems abort
the call.
"""

from identityhub.models.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from identityhub.models.results import ApiResult, AuthResult
from identityhub.rpc.guards import authenticate
from identityhub.rpc.messages import (
    message_class,
    status_reply,
    token_result,
    unix_seconds,
    user_data,
)
from identityhub.rpc.validation import parse_request
from identityhub.services.auth_service import AuthService
from identityhub.services.token_service import TokenService


class AuthServicer:
    """Implements ``identityhub.v1.AuthService``."""

    def __init__(self, auth: AuthService, tokens: TokenService):
        self._auth = auth
        self._tokens = tokens

    async def ValidateToken(self, request, context):
        result = await self._auth.validate_access_token(request.token)
        reply = message_class("ValidateTokenResponse")(
            is_valid=result.success, message=result.message
        )
        if result.success:
            claims = result.data
            reply.user_id = claims.user_id
            reply.email = claims.email
            reply.roles.extend(claims.roles)
            reply.expires_at = unix_seconds(claims.expires_at)
        return reply

    async def ValidateCredentials(self, request, context):
        result = await self._auth.validate_credentials(request.email, request.password)
        reply = message_class("ValidateCredentialsResponse")(
            is_valid=result.success, message=result.message
        )
        if result.success:
            reply.user.CopyFrom(user_data(result.data))
        return reply

    async def CheckPermissions(self, request, context):
        result = await self._auth.check_user_permission(
            request.user_id, request.resource, request.action
        )
        return message_class("CheckPermissionsResponse")(
            has_permission=bool(result.success and result.data),
            message=result.message,
        )

    async def RefreshToken(self, request, context):
        parsed, failure = parse_request(
            RefreshTokenRequest,
            AuthResult,
            {
                "refresh_token": request.refresh_token,
                "access_token": request.access_token or None,
            },
        )
        if failure is not None:
            return token_result(failure)
        return token_result(await self._auth.refresh_token(parsed))

    async def Register(self, request, context):
        parsed, failure = parse_request(
            RegisterRequest,
            AuthResult,
            {
                "email": request.email,
                "password": request.password,
                "confirm_password": request.confirm_password,
                "first_name": request.first_name or None,
                "last_name": request.last_name or None,
                "phone_number": request.phone_number or None,
            },
        )
        if failure is not None:
            return token_result(failure)
        return token_result(await self._auth.register(parsed))

    async def Login(self, request, context):
        parsed, failure = parse_request(
            LoginRequest,
            AuthResult,
            {"email": request.email, "password": request.password},
        )
        if failure is not None:
            return token_result(failure)
        return token_result(await self._auth.login(parsed))

    async def Logout(self, request, context):
        principal = await authenticate(context, self._tokens)
        return status_reply(await self._auth.logout(principal.user_id))

    async def ForgotPassword(self, request, context):
        parsed, failure = parse_request(
            ForgotPasswordRequest, ApiResult, {"email": request.email}
        )
        if failure is not None:
            return status_reply(failure)
        return status_reply(await self._auth.forgot_password(parsed))

    async def ResetPassword(self, request, context):
        parsed, failure = parse_request(
            ResetPasswordRequest,
            ApiResult,
            {
                "email": request.email,
                "token": request.token,
                "new_password": request.new_password,
            },
        )
        if failure is not None:
            return status_reply(failure)
        return status_reply(await self._auth.reset_password(parsed))

    async def ChangePassword(self, request, context):
        principal = await authenticate(context, self._tokens)
        parsed, failure = parse_request(
            ChangePasswordRequest,
            ApiResult,
            {
                "current_password": request.current_password,
                "new_password": request.new_password,
            },
        )
        if failure is not None:
            return status_reply(failure)
        return status_reply(await self._auth.change_password(principal.user_id, parsed))

    async def ConfirmEmail(self, request, context):
        if not request.user_id or not request.token:
            return message_class("StatusReply")(
                success=False, message="Invalid confirmation parameters"
            )
        return status_reply(await self._auth.confirm_email(request.user_id, request.token))
