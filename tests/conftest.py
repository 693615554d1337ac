"""Shared fixtures: an in-process gRPC server and a TCP listener that never answers."""

import asyncio
import socket
from typing import List

import grpc
import pytest

SERVICE = "test.Echo"


def _render(context) -> bytes:
    """Serialize the invocation metadata as key=value lines."""
    return "\n".join(
        f"{key}={value}" for key, value in context.invocation_metadata()
    ).encode()


def parse_metadata(payload: bytes) -> dict:
    """Inverse of _render, keeping the last value of repeated keys."""
    result = {}
    for line in payload.decode().splitlines():
        key, _, value = line.partition("=")
        result[key] = value
    return result


class EchoServer:
    """Echoes the metadata each call arrived with and counts received calls."""

    def __init__(self):
        self.calls: List[str] = []
        self.target = None

    async def unary(self, request, context):
        self.calls.append("unary")
        return _render(context)

    async def server_stream(self, request, context):
        self.calls.append("server_stream")
        yield _render(context)

    async def client_stream(self, request_iterator, context):
        self.calls.append("client_stream")
        async for _ in request_iterator:
            pass
        return _render(context)

    async def bidi_stream(self, request_iterator, context):
        self.calls.append("bidi_stream")
        async for _ in request_iterator:
            yield _render(context)

    def handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(SERVICE, {
            "Unary": grpc.unary_unary_rpc_method_handler(self.unary),
            "ServerStream": grpc.unary_stream_rpc_method_handler(self.server_stream),
            "ClientStream": grpc.stream_unary_rpc_method_handler(self.client_stream),
            "BidiStream": grpc.stream_stream_rpc_method_handler(self.bidi_stream),
        })


@pytest.fixture
async def echo_server():
    """A plaintext grpc.aio server on a random local port."""
    echo = EchoServer()
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((echo.handler(),))
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    echo.target = f"127.0.0.1:{port}"
    try:
        yield echo
    finally:
        await server.stop(None)


@pytest.fixture
async def silent_port():
    """A TCP port that accepts connections and never sends a byte."""
    connections = []

    async def swallow(reader, writer):
        connections.append(writer)
        await reader.read()

    server = await asyncio.start_server(swallow, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port
    finally:
        for writer in connections:
            writer.close()
        server.close()
        await server.wait_closed()


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
