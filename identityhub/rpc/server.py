"""grpc.aio server hosting the AuthService and UserService handlers."""

from typing import Optional
from uuid import uuid4

import grpc
import structlog

from identityhub.rpc.auth_servicer import AuthServicer
from identityhub.rpc.messages import SERVICES, message_class, service_full_name
from identityhub.rpc.user_servicer import UserServicer
from identityhub.services.auth_service import AuthService
from identityhub.services.token_service import TokenService

logger = structlog.get_logger(__name__)

CORRELATION_KEY = "x-correlation-id"
SHUTDOWN_GRACE_SECONDS = 5.0


class CorrelationIdInterceptor(grpc.aio.ServerInterceptor):
    """Bind a correlation id for every RPC, reusing the caller's when sent."""

    async def intercept_service(self, continuation, handler_call_details):
        correlation_id = None
        for key, value in handler_call_details.invocation_metadata or ():
            if key.lower() == CORRELATION_KEY:
                correlation_id = value
                break

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id or str(uuid4()),
            rpc_method=handler_call_details.method,
        )
        logger.debug("rpc_received")
        return await continuation(handler_call_details)


def _generic_handler(service_name: str, servicer):
    handlers = {}
    for method_name, (request_name, response_name) in SERVICES[service_name].items():
        handlers[method_name] = grpc.unary_unary_rpc_method_handler(
            getattr(servicer, method_name),
            request_deserializer=message_class(request_name).FromString,
            response_serializer=message_class(response_name).SerializeToString,
        )
    return grpc.method_handlers_generic_handler(service_full_name(service_name), handlers)


def create_grpc_server(
    auth: AuthService,
    tokens: TokenService,
    address: str,
) -> tuple[grpc.aio.Server, int]:
    """Build (but do not start) the RPC server.

    Args:
        auth: Orchestrator the handlers delegate to
        tokens: Token engine used for bearer checks
        address: Bind address, e.g. ``[::]:50051`` or ``127.0.0.1:0``

    Returns:
        Tuple of (server, bound port)
    """
    server = grpc.aio.server(interceptors=[CorrelationIdInterceptor()])
    server.add_generic_rpc_handlers(
        (
            _generic_handler("AuthService", AuthServicer(auth, tokens)),
            _generic_handler("UserService", UserServicer(auth, tokens)),
        )
    )
    port = server.add_insecure_port(address)
    return server, port


async def start_grpc_server(
    auth: AuthService,
    tokens: TokenService,
    address: str,
) -> tuple[grpc.aio.Server, int]:
    server, port = create_grpc_server(auth, tokens, address)
    await server.start()
    logger.info("grpc_server_started", address=address, port=port)
    return server, port


async def stop_grpc_server(
    server: Optional[grpc.aio.Server], grace: float = SHUTDOWN_GRACE_SECONDS
) -> None:
    if server is None:
        return
    await server.stop(grace)
    logger.info("grpc_server_stopped")
