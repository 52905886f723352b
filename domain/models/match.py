"""
Match record domain model.

A Match is immutable once created by the finalizer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

CLASS_NAMES = ("Tank", "Brawler", "Sniper", "Trickster", "Support")
STAT_FIELDS = ("kills", "deaths", "assists", "damage", "healing")


@dataclass(frozen=True)
class CombatStats:
    """Per-player combat numbers reported for one match."""

    kills: int = 0
    deaths: int = 0
    assists: int = 0
    damage: int = 0
    healing: int = 0
    class_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "CombatStats":
        """Build from a client payload; unknown classes and bad numbers are dropped."""
        if not data:
            return cls()
        values = {}
        for name in STAT_FIELDS:
            try:
                values[name] = max(0, int(data.get(name, 0) or 0))
            except (TypeError, ValueError):
                values[name] = 0
        class_name = data.get("class")
        if class_name not in CLASS_NAMES:
            class_name = None
        return cls(class_name=class_name, **values)

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in STAT_FIELDS}


@dataclass(frozen=True)
class MatchParticipant:
    discord_id: str
    username: str
    team_number: int
    won: bool
    rating_before: int
    rating_after: int
    stats: CombatStats = field(default_factory=CombatStats)

    @property
    def rating_change(self) -> int:
        return self.rating_after - self.rating_before

    def to_dict(self) -> dict[str, Any]:
        return {
            "odiscordId": self.discord_id,
            "username": self.username,
            "team": self.team_number,
            "eloBefore": self.rating_before,
            "eloAfter": self.rating_after,
            "oldElo": self.rating_before,
            "newElo": self.rating_after,
            "eloChange": self.rating_change,
            "class": self.stats.class_name,
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class Match:
    """Immutable record of a finished match."""

    match_id: str
    lobby_code: str
    created_at: datetime
    team1: tuple[MatchParticipant, ...]
    team2: tuple[MatchParticipant, ...]
    winning_team: int | None  # 1, 2, or None for a draw
    is_ranked: bool = True
    team1_color: int = 1
    team2_color: int = 5
    score: tuple[int, int] = (0, 0)
    elo_gain: int = 0
    elo_loss: int = 0

    @property
    def is_draw(self) -> bool:
        return self.winning_team is None

    @property
    def winners(self) -> tuple[MatchParticipant, ...]:
        if self.winning_team == 2:
            return self.team2
        return self.team1

    @property
    def losers(self) -> tuple[MatchParticipant, ...]:
        if self.winning_team == 2:
            return self.team1
        return self.team2

    @property
    def participants(self) -> tuple[MatchParticipant, ...]:
        return self.team1 + self.team2

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.match_id,
            "lobbyId": self.lobby_code,
            "timestamp": self.created_at.isoformat(),
            "winningTeam": self.winning_team,
            "winners": [p.to_dict() for p in self.winners],
            "losers": [p.to_dict() for p in self.losers],
            "isDraw": self.is_draw,
            "isRanked": self.is_ranked,
            "eloGain": self.elo_gain,
            "eloLoss": self.elo_loss,
            "team1Color": self.team1_color,
            "team2Color": self.team2_color,
            "score": {"team1": self.score[0], "team2": self.score[1]},
        }
