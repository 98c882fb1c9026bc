"""Binary RPC interface (gRPC, package ``identityhub.v1``)."""

from identityhub.rpc.server import create_grpc_server, start_grpc_server, stop_grpc_server

__all__ = ["create_grpc_server", "start_grpc_server", "stop_grpc_server"]
