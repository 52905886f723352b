"""
Domain services containing pure business logic.
"""

from domain.services.draft_service import DraftService
from domain.services.market_service import BidRejected, MarketService
from domain.services.purge_service import PurgeService

__all__ = ["BidRejected", "DraftService", "MarketService", "PurgeService"]
