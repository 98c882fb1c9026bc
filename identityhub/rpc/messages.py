"""Protobuf messages and service tables for the ``identityhub.v1`` package.

The file descriptor is assembled at import time from the tables below, so
the wire contract lives in one place and no generated ``*_pb2`` modules are
needed. Field numbers follow declaration order and must never be reordered.
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from identityhub.models.results import ApiResult, AuthResult
from identityhub.models.user import UserProfile

PACKAGE = "identityhub.v1"
PROTO_FILE = "identityhub/v1/identity.proto"

_F = descriptor_pb2.FieldDescriptorProto
_SCALARS = {
    "string": _F.TYPE_STRING,
    "bool": _F.TYPE_BOOL,
    "int32": _F.TYPE_INT32,
    "int64": _F.TYPE_INT64,
}

# message name -> [(field name, type)]; "repeated T" marks a list field
MESSAGES: dict[str, list[tuple[str, str]]] = {
    "UserData": [
        ("id", "string"),
        ("email", "string"),
        ("username", "string"),
        ("first_name", "string"),
        ("last_name", "string"),
        ("phone_number", "string"),
        ("profile_picture_url", "string"),
        ("is_active", "bool"),
        ("email_confirmed", "bool"),
        ("roles", "repeated string"),
        ("created_at", "string"),
        ("updated_at", "string"),
    ],
    "TokenResult": [
        ("success", "bool"),
        ("message", "string"),
        ("access_token", "string"),
        ("refresh_token", "string"),
        ("expires_at", "int64"),
        ("user", "UserData"),
        ("errors", "repeated string"),
    ],
    "StatusReply": [
        ("success", "bool"),
        ("message", "string"),
        ("errors", "repeated string"),
    ],
    # AuthService requests and replies
    "ValidateTokenRequest": [("token", "string")],
    "ValidateTokenResponse": [
        ("is_valid", "bool"),
        ("user_id", "string"),
        ("email", "string"),
        ("roles", "repeated string"),
        ("expires_at", "int64"),
        ("message", "string"),
    ],
    "ValidateCredentialsRequest": [("email", "string"), ("password", "string")],
    "ValidateCredentialsResponse": [
        ("is_valid", "bool"),
        ("message", "string"),
        ("user", "UserData"),
    ],
    "CheckPermissionsRequest": [
        ("user_id", "string"),
        ("resource", "string"),
        ("action", "string"),
    ],
    "CheckPermissionsResponse": [("has_permission", "bool"), ("message", "string")],
    "RefreshTokenRequest": [("access_token", "string"), ("refresh_token", "string")],
    "RegisterRequest": [
        ("email", "string"),
        ("password", "string"),
        ("confirm_password", "string"),
        ("first_name", "string"),
        ("last_name", "string"),
        ("phone_number", "string"),
    ],
    "LoginRequest": [("email", "string"), ("password", "string")],
    "LogoutRequest": [],
    "ForgotPasswordRequest": [("email", "string")],
    "ResetPasswordRequest": [
        ("email", "string"),
        ("token", "string"),
        ("new_password", "string"),
    ],
    "ChangePasswordRequest": [("current_password", "string"), ("new_password", "string")],
    "ConfirmEmailRequest": [("user_id", "string"), ("token", "string")],
    # UserService requests and replies
    "UserReply": [
        ("success", "bool"),
        ("message", "string"),
        ("user", "UserData"),
        ("errors", "repeated string"),
    ],
    "GetUserRequest": [("user_id", "string")],
    "GetUserByEmailRequest": [("email", "string")],
    "GetUsersRequest": [
        ("page", "int32"),
        ("page_size", "int32"),
        ("search_term", "string"),
        ("include_inactive", "bool"),
    ],
    "GetUsersResponse": [
        ("success", "bool"),
        ("message", "string"),
        ("users", "repeated UserData"),
        ("total_count", "int32"),
        ("page", "int32"),
        ("page_size", "int32"),
    ],
    "UpdateUserRequest": [
        ("user_id", "string"),
        ("first_name", "string"),
        ("last_name", "string"),
        ("phone_number", "string"),
        ("profile_picture_url", "string"),
    ],
    "UserExistsRequest": [("email", "string")],
    "UserExistsResponse": [("success", "bool"), ("exists", "bool"), ("message", "string")],
    "GetUserRolesRequest": [("user_id", "string")],
    "GetUserRolesResponse": [
        ("success", "bool"),
        ("message", "string"),
        ("roles", "repeated string"),
    ],
}

# service name -> {method: (request message, response message)}
SERVICES: dict[str, dict[str, tuple[str, str]]] = {
    "AuthService": {
        "ValidateToken": ("ValidateTokenRequest", "ValidateTokenResponse"),
        "ValidateCredentials": ("ValidateCredentialsRequest", "ValidateCredentialsResponse"),
        "CheckPermissions": ("CheckPermissionsRequest", "CheckPermissionsResponse"),
        "RefreshToken": ("RefreshTokenRequest", "TokenResult"),
        "Register": ("RegisterRequest", "TokenResult"),
        "Login": ("LoginRequest", "TokenResult"),
        "Logout": ("LogoutRequest", "StatusReply"),
        "ForgotPassword": ("ForgotPasswordRequest", "StatusReply"),
        "ResetPassword": ("ResetPasswordRequest", "StatusReply"),
        "ChangePassword": ("ChangePasswordRequest", "StatusReply"),
        "ConfirmEmail": ("ConfirmEmailRequest", "StatusReply"),
    },
    "UserService": {
        "GetUser": ("GetUserRequest", "UserReply"),
        "GetUserByEmail": ("GetUserByEmailRequest", "UserReply"),
        "GetUsers": ("GetUsersRequest", "GetUsersResponse"),
        "UpdateUser": ("UpdateUserRequest", "UserReply"),
        "UserExists": ("UserExistsRequest", "UserExistsResponse"),
        "GetUserRoles": ("GetUserRolesRequest", "GetUserRolesResponse"),
    },
}


def _qualified(name: str) -> str:
    return f".{PACKAGE}.{name}"


def _add_field(message: descriptor_pb2.DescriptorProto, number: int, name: str, type_name: str):
    field = message.field.add()
    field.name = name
    field.number = number

    repeated = type_name.startswith("repeated ")
    if repeated:
        type_name = type_name[len("repeated ") :]
    field.label = _F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL

    if type_name in _SCALARS:
        field.type = _SCALARS[type_name]
    else:
        field.type = _F.TYPE_MESSAGE
        field.type_name = _qualified(type_name)


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Assemble the ``identity.proto`` file descriptor from the tables."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=PROTO_FILE, package=PACKAGE, syntax="proto3"
    )

    for message_name, fields in MESSAGES.items():
        message = file_proto.message_type.add()
        message.name = message_name
        for number, (field_name, type_name) in enumerate(fields, start=1):
            _add_field(message, number, field_name, type_name)

    for service_name, methods in SERVICES.items():
        service = file_proto.service.add()
        service.name = service_name
        for method_name, (request_name, response_name) in methods.items():
            method = service.method.add()
            method.name = method_name
            method.input_type = _qualified(request_name)
            method.output_type = _qualified(response_name)

    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(build_file_descriptor().SerializeToString())


@lru_cache(maxsize=None)
def message_class(name: str) -> type:
    """Concrete message class for ``name`` (unqualified)."""
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))


def service_full_name(service_name: str) -> str:
    return f"{PACKAGE}.{service_name}"


# ----------------------------------------------------------------------
# Envelope -> message conversion
# ----------------------------------------------------------------------


def unix_seconds(value: Optional[datetime]) -> int:
    return int(value.timestamp()) if value is not None else 0


def user_data(profile: UserProfile):
    """Wire form of a profile. Absent optional strings become ""."""
    return message_class("UserData")(
        id=str(profile.id),
        email=profile.email,
        username=profile.username,
        first_name=profile.first_name or "",
        last_name=profile.last_name or "",
        phone_number=profile.phone_number or "",
        profile_picture_url=profile.profile_picture_url or "",
        is_active=profile.is_active,
        email_confirmed=profile.email_confirmed,
        roles=list(profile.roles),
        created_at=profile.created_at.isoformat(),
        updated_at=profile.updated_at.isoformat() if profile.updated_at else "",
    )


def token_result(result: AuthResult):
    reply = message_class("TokenResult")(
        success=result.success,
        message=result.message,
        access_token=result.access_token or "",
        refresh_token=result.refresh_token or "",
        expires_at=unix_seconds(result.expires_at),
        errors=list(result.errors or []),
    )
    if result.user is not None:
        reply.user.CopyFrom(user_data(result.user))
    return reply


def status_reply(result):
    """StatusReply for any envelope without a payload worth sending."""
    return message_class("StatusReply")(
        success=result.success,
        message=result.message,
        errors=list(result.errors or []),
    )


def user_reply(result: ApiResult):
    reply = message_class("UserReply")(
        success=result.success,
        message=result.message,
        errors=list(result.errors or []),
    )
    if result.success and result.data is not None:
        reply.user.CopyFrom(user_data(result.data))
    return reply
