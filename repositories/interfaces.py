"""
Abstract repository interfaces for data access.

These interfaces define the contracts implemented by concrete repositories.
"""

from abc import ABC, abstractmethod

from domain.models.match import Match
from domain.models.player import PlayerProfile


class IPlayerRepository(ABC):
    @abstractmethod
    def ensure_profile(
        self, discord_id: str, username: str, avatar: str | None, default_elo: int
    ) -> PlayerProfile: ...

    @abstractmethod
    def get_by_id(self, discord_id: str) -> PlayerProfile | None: ...

    @abstractmethod
    def get_ratings(self, discord_ids: list[str]) -> dict[str, int]: ...

    @abstractmethod
    def get_all(self, limit: int = 100, offset: int = 0) -> list[PlayerProfile]: ...

    @abstractmethod
    def search(self, query: str, limit: int = 20) -> list[PlayerProfile]: ...

    @abstractmethod
    def get_leaderboard(self, limit: int = 50, offset: int = 0) -> list[PlayerProfile]: ...

    @abstractmethod
    def get_player_count(self) -> int: ...


class IMatchRepository(ABC):
    @abstractmethod
    def record_match(self, match: Match) -> str: ...

    @abstractmethod
    def get_match(self, match_id: str) -> Match | None: ...

    @abstractmethod
    def get_recent_matches(self, limit: int = 20, offset: int = 0) -> list[Match]: ...

    @abstractmethod
    def get_player_matches(self, discord_id: str, limit: int = 10) -> list[Match]: ...

    @abstractmethod
    def get_match_count(self) -> int: ...


class IModerationRepository(ABC):
    @abstractmethod
    def set_timeout(self, discord_id: str, expires_at: float, reason: str | None, issued_by: str | None) -> None: ...

    @abstractmethod
    def get_active_timeout(self, discord_id: str, now: float) -> dict | None: ...

    @abstractmethod
    def clear_timeout(self, discord_id: str) -> bool: ...

    @abstractmethod
    def grant_immunity(self, discord_id: str, source_lobby: str, granted_at: float) -> None: ...

    @abstractmethod
    def get_immune_ids(self, discord_ids: list[str]) -> set[str]: ...

    @abstractmethod
    def consume_immunity(self, discord_ids: list[str]) -> int: ...
