from typing import Any, Dict

from grpc import aio

from .. import wire


class RegistryClient:
    """Async client for the chatregistry gRPC service.

    Each call sends a dict (carried as a protobuf Struct) and returns the
    decoded reply dict;
    failures surface as grpc.aio.AioRpcError with the server's status code.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 50051, channel: aio.Channel = None):
        self.channel = channel or aio.insecure_channel(f"{host}:{port}")
        self._unary = {
            method: self.channel.unary_unary(
                wire.method_path(method),
                request_serializer=wire.encode,
                response_deserializer=wire.decode,
            )
            for method in wire.UNARY_METHODS
        }
        self._subscribe = self.channel.unary_stream(
            wire.method_path("Subscribe"),
            request_serializer=wire.encode,
            response_deserializer=wire.decode,
        )

    async def call(self, method: str, **payload: Any) -> Dict[str, Any]:
        if method not in self._unary:
            raise ValueError(f"Unknown method: {method}")
        return await self._unary[method](payload)

    def subscribe(self, username: str = ""):
        """Open the event stream; iterate the returned call with ``async for``."""
        return self._subscribe({"username": username})

    async def close(self):
        await self.channel.close()
