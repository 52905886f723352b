"""
Auction domain model for market-mode team formation.
"""

from dataclasses import dataclass, field
from typing import Any

from domain.models.draft import TEAM1, TEAM2


@dataclass(frozen=True)
class AuctionSale:
    """A resolved lot."""

    player_id: str
    team: str
    price: int
    no_bids: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "odiscordId": self.player_id,
            "team": self.team,
            "price": self.price,
            "noBids": self.no_bids,
        }


@dataclass
class AuctionState:
    """
    Market progress for one lobby.

    One player is up at a time; `queue` holds the players still to be auctioned
    in their fixed order. Exists only while the lobby is in the market phase.
    """

    queue: list[str] = field(default_factory=list)
    budgets: dict[str, int] = field(default_factory=lambda: {TEAM1: 0, TEAM2: 0})
    # Maximum roster size per team (captain included)
    slots: dict[str, int] = field(default_factory=lambda: {TEAM1: 0, TEAM2: 0})
    current_player_id: str | None = None
    bids: dict[str, int] = field(default_factory=lambda: {TEAM1: 0, TEAM2: 0})
    leading_team: str | None = None
    deadline: float | None = None
    lot_number: int = 0
    history: list[AuctionSale] = field(default_factory=list)

    @property
    def leading_bid(self) -> int:
        if self.leading_team is None:
            return 0
        return self.bids[self.leading_team]

    @property
    def is_active(self) -> bool:
        return self.current_player_id is not None

    def open_lot(self, player_id: str, deadline: float) -> None:
        self.current_player_id = player_id
        self.bids = {TEAM1: 0, TEAM2: 0}
        self.leading_team = None
        self.deadline = deadline
        self.lot_number += 1

    def close_lot(self, sale: AuctionSale) -> None:
        self.history.append(sale)
        self.current_player_id = None
        self.bids = {TEAM1: 0, TEAM2: 0}
        self.leading_team = None
        self.deadline = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentPlayer": self.current_player_id,
            "queue": list(self.queue),
            "budgets": dict(self.budgets),
            "slots": dict(self.slots),
            "bids": dict(self.bids),
            "leadingTeam": self.leading_team,
            "leadingBid": self.leading_bid,
            "deadline": self.deadline,
            "lot": self.lot_number,
            "history": [sale.to_dict() for sale in self.history],
        }
