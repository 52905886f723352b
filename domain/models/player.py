"""
Player domain models.
"""

import time
from dataclasses import dataclass, field


@dataclass
class LobbyPlayer:
    """
    A player as seen by one lobby.

    The rating here is a snapshot taken at join time for display only;
    the authoritative rating lives in the profile store.
    """

    discord_id: str
    username: str
    avatar: str | None = None
    elo: int = 0
    joined_at: float = field(default_factory=time.time)
    connected: bool = True

    def to_dict(self) -> dict:
        return {
            "odiscordId": self.discord_id,
            "username": self.username,
            "avatar": self.avatar,
            "elo": self.elo,
            "connected": self.connected,
        }


@dataclass
class PlayerProfile:
    """
    Persistent player profile (wins/losses/ELO/combat totals).

    This is a pure domain model with no infrastructure dependencies.
    """

    discord_id: str
    username: str
    avatar: str | None = None
    elo: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    games_played: int = 0
    total_kills: int = 0
    total_deaths: int = 0
    total_assists: int = 0
    total_damage: int = 0
    total_healing: int = 0
    # class name -> {"games", "wins", "kills", "deaths", "assists", "damage", "healing"}
    class_stats: dict[str, dict[str, int]] = field(default_factory=dict)

    def get_win_rate(self) -> float | None:
        """Get win rate as a percentage, or None if no games played."""
        if self.games_played == 0:
            return None
        return (self.wins / self.games_played) * 100

    def get_kdr(self) -> float:
        if self.total_deaths == 0:
            return float(self.total_kills)
        return self.total_kills / self.total_deaths

    def to_dict(self) -> dict:
        return {
            "odiscordId": self.discord_id,
            "username": self.username,
            "avatar": self.avatar,
            "elo": self.elo,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "gamesPlayed": self.games_played,
            "totalKills": self.total_kills,
            "totalDeaths": self.total_deaths,
            "totalAssists": self.total_assists,
            "totalDamage": self.total_damage,
            "totalHealing": self.total_healing,
            "classStats": self.class_stats,
        }

    def __str__(self) -> str:
        return f"{self.username} (ELO: {self.elo}, W-L: {self.wins}-{self.losses})"
