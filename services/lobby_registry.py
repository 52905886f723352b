"""
LobbyRegistry: in-memory table of active lobbies keyed by code.

Owns creation, lookup and removal, the player -> lobby index used for the
one-lobby-per-player rule, and the per-lobby locks that serialize mutations.
"""

import asyncio
import logging
import random

from domain.models.lobby import DraftMode, Lobby
from domain.models.player import LobbyPlayer

logger = logging.getLogger("lobby_server.services.lobby_registry")

# No 0/O, 1/I/L to keep codes easy to read out loud
LOBBY_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 100


class LobbyRegistry:
    """
    Holds every live Lobby. One registry per server instance.

    Callers mutate a lobby only while holding `lock_for(code)`.
    """

    def __init__(self, code_length: int = 6, rng: random.Random | None = None):
        self.code_length = code_length
        self.rng = rng or random.Random()
        self._lobbies: dict[str, Lobby] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._player_index: dict[str, str] = {}
        self._creation_lock = asyncio.Lock()

    @property
    def creation_lock(self) -> asyncio.Lock:
        """Lock for protecting the full lobby creation flow."""
        return self._creation_lock

    @staticmethod
    def normalize_code(code: str | None) -> str:
        return (code or "").strip().upper()

    def _generate_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = "".join(self.rng.choices(LOBBY_CODE_ALPHABET, k=self.code_length))
            if code not in self._lobbies:
                return code
        raise RuntimeError("Could not generate a unique lobby code")

    async def create(
        self,
        host: LobbyPlayer,
        max_players: int,
        is_public: bool = True,
        is_ranked: bool = True,
        draft_mode: DraftMode = DraftMode.TURNS,
        rounds_to_win: int = 0,
    ) -> Lobby:
        """Create a lobby with the host as its first member."""
        async with self._creation_lock:
            code = self._generate_code()
            lobby = Lobby(
                code=code,
                host_id=host.discord_id,
                max_players=max_players,
                is_public=is_public,
                is_ranked=is_ranked,
                draft_mode=draft_mode,
                rounds_to_win=rounds_to_win,
                players=[host],
            )
            self._lobbies[code] = lobby
            self._locks[code] = asyncio.Lock()
            self._player_index[host.discord_id] = code
            logger.info(
                f"Created lobby {code} (host={host.discord_id}, max_players={max_players}, "
                f"public={is_public}, mode={draft_mode.value})"
            )
            return lobby

    def get(self, code: str | None) -> Lobby | None:
        return self._lobbies.get(self.normalize_code(code))

    def lock_for(self, code: str) -> asyncio.Lock:
        """Per-lobby mutation lock. Unknown codes get a throwaway lock."""
        normalized = self.normalize_code(code)
        lock = self._locks.get(normalized)
        if lock is None:
            lock = asyncio.Lock()
            if normalized in self._lobbies:
                self._locks[normalized] = lock
        return lock

    def is_current(self, lobby: Lobby) -> bool:
        """True if this exact lobby object is still registered under its code."""
        return self._lobbies.get(lobby.code) is lobby

    def remove(self, code: str) -> Lobby | None:
        normalized = self.normalize_code(code)
        lobby = self._lobbies.pop(normalized, None)
        if lobby is None:
            return None
        for pid in lobby.member_ids:
            if self._player_index.get(pid) == normalized:
                del self._player_index[pid]
        self._locks.pop(normalized, None)
        logger.info(f"Removed lobby {normalized}")
        return lobby

    # --- Player index ---

    def lobby_code_for_player(self, discord_id: str) -> str | None:
        return self._player_index.get(discord_id)

    def find_by_player(self, discord_id: str) -> Lobby | None:
        code = self._player_index.get(discord_id)
        return self._lobbies.get(code) if code else None

    def track_player(self, discord_id: str, code: str) -> None:
        self._player_index[discord_id] = code

    def untrack_player(self, discord_id: str, code: str) -> None:
        if self._player_index.get(discord_id) == code:
            del self._player_index[discord_id]

    # --- Listings ---

    def all(self) -> list[Lobby]:
        return list(self._lobbies.values())

    def public_lobbies(self) -> list[Lobby]:
        """Public lobbies, oldest first."""
        lobbies = [lobby for lobby in self._lobbies.values() if lobby.is_public]
        return sorted(lobbies, key=lambda lobby: lobby.created_at)

    def __len__(self) -> int:
        return len(self._lobbies)

    def __contains__(self, code: str) -> bool:
        return self.normalize_code(code) in self._lobbies
