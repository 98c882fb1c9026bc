"""gRPC UserService handlers. Every call requires a bearer token."""

from identityhub.models.auth import UpdateUserRequest
from identityhub.models.results import ApiResult
from identityhub.models.token import Principal
from identityhub.models.user import Role
from identityhub.rpc.guards import authenticate, require_role
from identityhub.rpc.messages import message_class, user_data, user_reply
from identityhub.rpc.validation import parse_request
from identityhub.services.auth_service import AuthService
from identityhub.services.token_service import TokenService


def _is_self(principal: Principal, user_id: str) -> bool:
    return bool(principal.user_id) and principal.user_id.lower() == user_id.strip().lower()


class UserServicer:
    """Implements ``identityhub.v1.UserService``.

    Callers may read and update their own record; touching anyone else's
    requires the Admin role.
    """

    def __init__(self, auth: AuthService, tokens: TokenService):
        self._auth = auth
        self._tokens = tokens

    async def GetUser(self, request, context):
        principal = await authenticate(context, self._tokens)
        if not _is_self(principal, request.user_id):
            await require_role(context, principal, Role.ADMIN)
        return user_reply(await self._auth.get_user(request.user_id))

    async def GetUserByEmail(self, request, context):
        principal = await authenticate(context, self._tokens)
        if principal.email.lower() != request.email.strip().lower():
            await require_role(context, principal, Role.ADMIN)
        return user_reply(await self._auth.get_user_by_email(request.email))

    async def GetUsers(self, request, context):
        principal = await authenticate(context, self._tokens)
        await require_role(context, principal, Role.ADMIN)

        result = await self._auth.get_users(
            request.page,
            request.page_size,
            request.search_term or None,
            request.include_inactive,
        )
        reply = message_class("GetUsersResponse")(success=result.success, message=result.message)
        if result.success:
            page = result.data
            reply.users.extend(user_data(u) for u in page.users)
            reply.total_count = page.total_count
            reply.page = page.page
            reply.page_size = page.page_size
        return reply

    async def UpdateUser(self, request, context):
        principal = await authenticate(context, self._tokens)
        if not _is_self(principal, request.user_id):
            await require_role(context, principal, Role.ADMIN)

        # proto3 strings have no presence; "" means leave unchanged
        parsed, failure = parse_request(
            UpdateUserRequest,
            ApiResult,
            {
                "first_name": request.first_name or None,
                "last_name": request.last_name or None,
                "phone_number": request.phone_number or None,
                "profile_picture_url": request.profile_picture_url or None,
            },
        )
        if failure is not None:
            return user_reply(failure)
        return user_reply(await self._auth.update_user(request.user_id, parsed))

    async def UserExists(self, request, context):
        await authenticate(context, self._tokens)
        result = await self._auth.user_exists(request.email)
        return message_class("UserExistsResponse")(
            success=result.success,
            exists=bool(result.data),
            message=result.message,
        )

    async def GetUserRoles(self, request, context):
        await authenticate(context, self._tokens)
        result = await self._auth.get_user_roles(request.user_id)
        return message_class("GetUserRolesResponse")(
            success=result.success,
            message=result.message,
            roles=list(result.data or []),
        )
