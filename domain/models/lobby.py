"""
Lobby domain model.

The Lobby is the aggregate root: members, captains, rosters and the
draft/auction/purge sub-states all live on it and never outlive it.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from domain.models.auction import AuctionState
from domain.models.draft import TEAM1, TEAM2, DraftState
from domain.models.player import LobbyPlayer
from domain.models.purge import PurgeState


class LobbyPhase(Enum):
    WAITING = "waiting"
    CAPTAIN_SELECT = "captain-select"
    DRAFTING = "drafting"
    MARKET = "market"
    PURGING = "purging"
    PLAYING = "playing"
    FINISHED = "finished"


class DraftMode(Enum):
    TURNS = "turns"
    MARKET = "market"

    @classmethod
    def parse(cls, value: Any) -> "DraftMode":
        """Parse a client value, raising ValueError on anything unknown."""
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


DRAW = "draw"
DEFAULT_TEAM1_COLOR = 1  # Blue
DEFAULT_TEAM2_COLOR = 5  # Red
COLOR_COUNT = 8


@dataclass
class Lobby:
    """Represents one lobby from creation until close."""

    code: str
    host_id: str
    max_players: int
    is_public: bool = True
    is_ranked: bool = True
    draft_mode: DraftMode = DraftMode.TURNS
    rounds_to_win: int = 0
    phase: LobbyPhase = LobbyPhase.WAITING
    players: list[LobbyPlayer] = field(default_factory=list)  # Join order
    team1_color: int = DEFAULT_TEAM1_COLOR
    team2_color: int = DEFAULT_TEAM2_COLOR
    captain1_id: str | None = None
    captain2_id: str | None = None
    team1: list[str] = field(default_factory=list)
    team2: list[str] = field(default_factory=list)
    score: dict[str, int] = field(default_factory=lambda: {TEAM1: 0, TEAM2: 0})
    whitelist: set[str] = field(default_factory=set)
    kicked: set[str] = field(default_factory=set)
    draft: DraftState | None = None
    auction: AuctionState | None = None
    purge: PurgeState | None = None
    winner: str | None = None  # TEAM1, TEAM2 or DRAW once finished
    last_match_id: str | None = None
    finalizing: bool = False
    created_at: float = field(default_factory=time.time)

    # --- Membership ---

    @property
    def member_ids(self) -> list[str]:
        return [p.discord_id for p in self.players]

    @property
    def member_count(self) -> int:
        return len(self.players)

    @property
    def created_at_ms(self) -> int:
        """Creation time in epoch milliseconds, as browser clients expect."""
        return int(self.created_at * 1000)

    def is_member(self, discord_id: str) -> bool:
        return any(p.discord_id == discord_id for p in self.players)

    def get_player(self, discord_id: str) -> LobbyPlayer | None:
        for player in self.players:
            if player.discord_id == discord_id:
                return player
        return None

    def is_host(self, discord_id: str | None) -> bool:
        return discord_id is not None and discord_id == self.host_id

    def remove_player(self, discord_id: str) -> LobbyPlayer | None:
        """Remove a member from the member list and from any roster or captaincy."""
        player = self.get_player(discord_id)
        if player is None:
            return None
        self.players.remove(player)
        self.whitelist.discard(discord_id)
        if discord_id in self.team1:
            self.team1.remove(discord_id)
        if discord_id in self.team2:
            self.team2.remove(discord_id)
        if self.captain1_id == discord_id:
            self.captain1_id = None
        if self.captain2_id == discord_id:
            self.captain2_id = None
        return player

    # --- Teams ---

    @property
    def captain_ids(self) -> list[str]:
        return [cid for cid in (self.captain1_id, self.captain2_id) if cid is not None]

    def captain_of(self, team: str) -> str | None:
        return self.captain1_id if team == TEAM1 else self.captain2_id

    def captain_team(self, discord_id: str) -> str | None:
        """Team captained by this player, if any."""
        if discord_id is None:
            return None
        if discord_id == self.captain1_id:
            return TEAM1
        if discord_id == self.captain2_id:
            return TEAM2
        return None

    def roster(self, team: str) -> list[str]:
        return self.team1 if team == TEAM1 else self.team2

    def team_of(self, discord_id: str) -> str | None:
        if discord_id in self.team1:
            return TEAM1
        if discord_id in self.team2:
            return TEAM2
        return None

    def unassigned_ids(self) -> list[str]:
        """Members on neither roster, in join order."""
        assigned = set(self.team1) | set(self.team2)
        return [p.discord_id for p in self.players if p.discord_id not in assigned]

    def assign(self, discord_id: str, team: str) -> None:
        if self.team_of(discord_id) is not None:
            raise ValueError(f"Player {discord_id} is already on a team")
        self.roster(team).append(discord_id)

    def clear_team_formation(self) -> None:
        """Drop captains, rosters and team-formation sub-states."""
        self.captain1_id = None
        self.captain2_id = None
        self.team1 = []
        self.team2 = []
        self.draft = None
        self.auction = None

    def reset_for_new_game(self) -> None:
        """Clear everything tied to the last game while keeping membership."""
        self.clear_team_formation()
        self.purge = None
        self.score = {TEAM1: 0, TEAM2: 0}
        self.winner = None
        self.finalizing = False
        self.phase = LobbyPhase.WAITING

    # --- Serialization ---

    def _player_dicts(self, ids: list[str]) -> list[dict]:
        result = []
        for pid in ids:
            player = self.get_player(pid)
            if player is not None:
                result.append(player.to_dict())
        return result

    def _host_dict(self) -> dict[str, Any]:
        host = self.get_player(self.host_id)
        return {
            "odiscordId": self.host_id,
            "username": host.username if host else None,
            "avatar": host.avatar if host else None,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full snapshot broadcast to members after every mutation."""
        draft = self.draft
        return {
            "id": self.code,
            "code": self.code,
            "phase": self.phase.value,
            "host": self._host_dict(),
            "players": [p.to_dict() for p in self.players],
            "maxPlayers": self.max_players,
            "isPublic": self.is_public,
            "isRanked": self.is_ranked,
            "draftMode": self.draft_mode.value,
            "roundsToWin": self.rounds_to_win,
            "team1Color": self.team1_color,
            "team2Color": self.team2_color,
            "captains": {TEAM1: self.captain1_id, TEAM2: self.captain2_id},
            "teams": {
                TEAM1: self._player_dicts(self.team1),
                TEAM2: self._player_dicts(self.team2),
            },
            "unassigned": self._player_dicts(self.unassigned_ids()),
            "currentTurn": draft.current_turn if draft else None,
            "picksLeft": draft.picks_left if draft else 0,
            "score": dict(self.score),
            "whitelist": sorted(self.whitelist),
            "draft": draft.to_dict() if draft else None,
            "auction": self.auction.to_dict() if self.auction else None,
            "purge": self.purge.to_dict() if self.purge else None,
            "winner": self.winner,
            "lastMatchId": self.last_match_id,
            "createdAt": self.created_at_ms,
        }

    def summary_dict(self) -> dict[str, Any]:
        """Short form used for public lobby listings."""
        host = self._host_dict()
        return {
            "id": self.code,
            "code": self.code,
            "host": host,
            "hostName": host["username"],
            "playerCount": self.member_count,
            "maxPlayers": self.max_players,
            "phase": self.phase.value,
            "isRanked": self.is_ranked,
            "draftMode": self.draft_mode.value,
            "team1Color": self.team1_color,
            "team2Color": self.team2_color,
            "score": dict(self.score),
            "createdAt": self.created_at_ms,
        }
