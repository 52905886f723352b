"""
ASGI application factory: FastAPI for REST with Socket.IO mounted in front.
"""

import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from api.sockets import LobbySocketHandlers, SocketIONotifier
from infrastructure.service_container import ServiceContainer
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("lobby_server.api.app")


def create_socket_server(cors_origins: list[str]) -> socketio.AsyncServer:
    allowed = "*" if "*" in cors_origins else cors_origins
    return socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allowed)


def create_api(container: ServiceContainer) -> FastAPI:
    """The REST application on its own (used directly by tests)."""
    api = FastAPI(title="Lobby Service")
    api.state.container = container
    api.add_middleware(
        CORSMiddleware,
        allow_origins=container.config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.include_router(router)
    return api


def create_app(container: ServiceContainer, sio: socketio.AsyncServer, notifier: SocketIONotifier) -> socketio.ASGIApp:
    """
    Wire Socket.IO handlers to an initialized container and wrap the REST app.

    The container must have been built with `notifier` so lobby events reach
    the same Socket.IO server the handlers are registered on.
    """
    LobbySocketHandlers(
        sio,
        container.lobby_service,
        notifier,
        rate_limiter=RateLimiter(),
        rate_limit=container.config.intent_rate_limit,
        rate_window=container.config.intent_rate_window,
    ).register()
    logger.info("Socket.IO handlers registered")
    return socketio.ASGIApp(sio, other_asgi_app=create_api(container))
