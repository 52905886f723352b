"""
Lobby event fan-out.

The protocol core only knows this interface; the Socket.IO transport
implements it in api/sockets.py. Delivery is fire-and-forget: implementations
must not block the caller on slow or missing recipients.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger("lobby_server.services.notifier")


class LobbyNotifier(ABC):
    """Publishes lobby events to the lobby's connected observers."""

    @abstractmethod
    def notify(self, lobby_id: str, event: str, payload: Any) -> None:
        """Send an event to every observer of a lobby."""
        ...

    @abstractmethod
    def notify_player(self, player_id: str, event: str, payload: Any) -> None:
        """Send an event to a single player's connections."""
        ...

    def detach(self, lobby_id: str, player_id: str) -> None:
        """Stop delivering a lobby's events to a player who left it."""

    def close(self, lobby_id: str) -> None:
        """Drop every observer of a closed lobby."""

    def broadcast_lobby(self, lobby) -> None:
        """Send the full lobby snapshot to its members."""
        self.notify(lobby.code, "lobbyUpdate", lobby.to_dict())


class LoggingNotifier(LobbyNotifier):
    """Notifier with no transport; writes events to the debug log."""

    def notify(self, lobby_id: str, event: str, payload: Any) -> None:
        logger.debug(f"[{lobby_id}] {event}")

    def notify_player(self, player_id: str, event: str, payload: Any) -> None:
        logger.debug(f"[player {player_id}] {event}")
