"""
Application services layer.

Services orchestrate lobby operations using repositories and domain services.
"""

from services.draft_engine import DraftEngine
from services.lobby_registry import LobbyRegistry
from services.lobby_service import LobbyService
from services.market_engine import MarketEngine
from services.match_finalizer import FinalizeRequest, MatchFinalizer
from services.membership_service import MembershipService
from services.notifier import LobbyNotifier, LoggingNotifier
from services.phase_service import PhaseService
from services.presence_service import AlwaysPresentProvider, PresenceProvider, PresenceUnavailable
from services.purge_engine import PurgeEngine

# Result type for consistent error handling
from services.result import Result
from services.timer_service import TimerService

__all__ = [
    "AlwaysPresentProvider",
    "DraftEngine",
    "FinalizeRequest",
    "LobbyNotifier",
    "LobbyRegistry",
    "LobbyService",
    "LoggingNotifier",
    "MarketEngine",
    "MatchFinalizer",
    "MembershipService",
    "PhaseService",
    "PresenceProvider",
    "PresenceUnavailable",
    "PurgeEngine",
    "Result",
    "TimerService",
]
