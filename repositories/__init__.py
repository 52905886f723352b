"""
Repository layer for data access abstraction.
"""

from repositories.base_repository import BaseRepository
from repositories.interfaces import (
    IMatchRepository,
    IModerationRepository,
    IPlayerRepository,
)
from repositories.match_repository import MatchRepository
from repositories.moderation_repository import ModerationRepository
from repositories.player_repository import PlayerRepository

__all__ = [
    "BaseRepository",
    "PlayerRepository",
    "MatchRepository",
    "ModerationRepository",
    "IPlayerRepository",
    "IMatchRepository",
    "IModerationRepository",
]
