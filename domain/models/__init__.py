"""
Domain models - pure data structures representing lobby entities.
"""

from domain.models.auction import AuctionSale, AuctionState
from domain.models.draft import TEAM1, TEAM2, DraftPattern, DraftState
from domain.models.lobby import DRAW, DraftMode, Lobby, LobbyPhase
from domain.models.match import CombatStats, Match, MatchParticipant
from domain.models.player import LobbyPlayer, PlayerProfile
from domain.models.purge import PurgeState

__all__ = [
    "TEAM1",
    "TEAM2",
    "DRAW",
    "AuctionSale",
    "AuctionState",
    "CombatStats",
    "DraftMode",
    "DraftPattern",
    "DraftState",
    "Lobby",
    "LobbyPhase",
    "LobbyPlayer",
    "Match",
    "MatchParticipant",
    "PlayerProfile",
    "PurgeState",
]
