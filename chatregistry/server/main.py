import argparse
import asyncio

from grpc import aio

from .rpc import ChatRegistryServicer, add_registry_servicer_to_server, logger
from .service import ChatService


async def serve(host="127.0.0.1", port=50051, service: ChatService = None):
    """Serve a ChatService over gRPC until the server is terminated.

    A fresh, empty registry is created when none is passed in; nothing is
    persisted, so a restart begins with no users, rooms or groups.

    Args:
        host (str): Interface to bind. Defaults to 127.0.0.1.
        port (int): TCP port to bind. Defaults to 50051.
        service (ChatService, optional): Registry to expose instead of a new one
    """
    server = aio.server()
    add_registry_servicer_to_server(ChatRegistryServicer(service or ChatService()), server)
    listen_addr = f"{host}:{port}"
    server.add_insecure_port(listen_addr)
    logger.info(f"Server starting, listening on {listen_addr}")
    await server.start()
    logger.info(f"Server is now running on {listen_addr}")
    await server.wait_for_termination()


def main():
    parser = argparse.ArgumentParser(description="In-memory chat registry server")
    parser.add_argument("--host", default="127.0.0.1", help="Address to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=50051, help="Port to listen on (default: 50051)")
    args = parser.parse_args()
    asyncio.run(serve(args.host, args.port))


if __name__ == "__main__":
    main()
