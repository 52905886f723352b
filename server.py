"""
Main entry for the lobby service: Socket.IO + REST on one ASGI app.
"""

import asyncio
import logging

# Configure logging BEFORE importing discord to prevent duplicate handlers
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    force=True,  # Override any existing handlers (e.g., from discord.py)
)
logger = logging.getLogger("lobby_server")


# Suppress PyNaCl warning since voice audio isn't needed
class _PyNaClFilter(logging.Filter):
    """Filter out the PyNaCl warning from discord.py."""

    def filter(self, record):
        return "PyNaCl is not installed" not in record.getMessage()


logging.getLogger("discord.client").addFilter(_PyNaClFilter())

import discord  # noqa: E402,F401 - imported after logging setup on purpose
import uvicorn  # noqa: E402

# discord.py adds its own handler to the 'discord' logger on import
_discord_logger = logging.getLogger("discord")
_discord_logger.handlers.clear()
_discord_logger.setLevel(logging.INFO)

from api.app import create_app, create_socket_server  # noqa: E402
from api.sockets import SocketIONotifier  # noqa: E402
from config import SERVER_HOST, SERVER_PORT  # noqa: E402
from infrastructure.service_container import ServiceConfig, ServiceContainer  # noqa: E402


async def main() -> None:
    config = ServiceConfig()
    sio = create_socket_server(config.cors_origins)
    notifier = SocketIONotifier(sio)
    container = ServiceContainer(config, notifier=notifier)
    await container.initialize()

    app = create_app(container, sio, notifier)
    server = uvicorn.Server(uvicorn.Config(app, host=SERVER_HOST, port=SERVER_PORT, log_config=None))
    logger.info(f"Lobby service listening on {SERVER_HOST}:{SERVER_PORT} (db={config.db_path})")
    try:
        await server.serve()
    finally:
        await container.shutdown()
        await notifier.drain()


if __name__ == "__main__":
    asyncio.run(main())
