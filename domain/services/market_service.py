"""
Market domain service for auction-based team formation.

Pure logic: auction ordering, slot sizing, bid validation and lot resolution.
The caller owns timers and state mutation.
"""

import math

from domain.models.auction import AuctionSale, AuctionState
from domain.models.draft import TEAM1, TEAM2, other_team
from domain.models.player import LobbyPlayer

REASON_INVALID = "invalid"
REASON_BUDGET = "budget"
REASON_ROSTER_FULL = "roster_full"


class BidRejected(ValueError):
    """Raised when a bid breaks an auction rule."""

    def __init__(self, message: str, reason: str = REASON_INVALID):
        super().__init__(message)
        self.reason = reason


class MarketService:
    """
    Pure domain logic for the player market.

    Rules:
    - Players are auctioned once each, highest rating first; ties keep join order.
    - A bid must beat every standing bid and fit the bidder's remaining budget.
    - Equal standing bids resolve to TEAM1.
    - A lot with no bids goes free to the team with more open slots (TEAM1 on ties).
    """

    def __init__(self, starting_budget: int = 1000):
        self.starting_budget = starting_budget

    @staticmethod
    def auction_order(players: list[LobbyPlayer], player_ids: list[str]) -> list[str]:
        """Order the given players by rating, highest first, stable on join order."""
        wanted = set(player_ids)
        candidates = [p for p in players if p.discord_id in wanted]
        # sorted() is stable, so equal ratings keep the join order of `players`
        ordered = sorted(candidates, key=lambda p: -p.elo)
        return [p.discord_id for p in ordered]

    @staticmethod
    def slots_per_team(member_count: int) -> int:
        """Roster size cap per team, captain included."""
        return math.ceil(member_count / 2)

    def create_state(self, players: list[LobbyPlayer], unassigned_ids: list[str]) -> AuctionState:
        slots = self.slots_per_team(len(players))
        return AuctionState(
            queue=self.auction_order(players, unassigned_ids),
            budgets={TEAM1: self.starting_budget, TEAM2: self.starting_budget},
            slots={TEAM1: slots, TEAM2: slots},
        )

    @staticmethod
    def open_slots(state: AuctionState, roster_sizes: dict[str, int]) -> dict[str, int]:
        return {team: max(0, state.slots[team] - roster_sizes.get(team, 0)) for team in (TEAM1, TEAM2)}

    def validate_bid(
        self,
        state: AuctionState,
        team: str,
        amount: int,
        roster_sizes: dict[str, int],
    ) -> None:
        """
        Check a bid against the active lot.

        Raises:
            BidRejected: with a reason of REASON_INVALID, REASON_BUDGET or REASON_ROSTER_FULL
        """
        if not state.is_active:
            raise BidRejected("No player is currently up for auction.")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise BidRejected("Bid must be a positive whole number.")
        if self.open_slots(state, roster_sizes)[team] <= 0:
            raise BidRejected("Your roster is already full.", REASON_ROSTER_FULL)
        opposing_bid = state.bids[other_team(team)]
        standing = max(opposing_bid, state.leading_bid)
        if amount <= standing:
            raise BidRejected(f"Bid must be greater than {standing}.")
        if amount > state.budgets[team]:
            raise BidRejected(
                f"Bid of {amount} exceeds your remaining budget of {state.budgets[team]}.",
                REASON_BUDGET,
            )

    @staticmethod
    def apply_bid(state: AuctionState, team: str, amount: int) -> None:
        state.bids[team] = amount
        state.leading_team = team

    def fallback_team(self, state: AuctionState, roster_sizes: dict[str, int]) -> str:
        """Team that receives a player nobody bid on."""
        slots = self.open_slots(state, roster_sizes)
        if slots[TEAM2] > slots[TEAM1]:
            return TEAM2
        return TEAM1

    def resolve_lot(self, state: AuctionState, roster_sizes: dict[str, int]) -> AuctionSale:
        """
        Decide the outcome of the active lot at its deadline.

        Does not debit budgets; see settle().
        """
        if not state.is_active:
            raise ValueError("No active lot to resolve")
        player_id = state.current_player_id
        team1_bid = state.bids[TEAM1]
        team2_bid = state.bids[TEAM2]
        if team1_bid == 0 and team2_bid == 0:
            return AuctionSale(player_id, self.fallback_team(state, roster_sizes), 0, no_bids=True)
        winner = TEAM1 if team1_bid >= team2_bid else TEAM2
        return AuctionSale(player_id, winner, state.bids[winner])

    @staticmethod
    def settle(state: AuctionState, sale: AuctionSale) -> None:
        """Debit the winner's budget and close the lot."""
        if sale.price > state.budgets[sale.team]:
            raise ValueError("Sale price exceeds remaining budget")
        state.budgets[sale.team] -= sale.price
        state.close_lot(sale)

    def forced_team(self, state: AuctionState, roster_sizes: dict[str, int]) -> str | None:
        """
        Team that must receive the next player without bidding, or None.

        This happens when only one team still has room, or when neither team
        can afford any bid.
        """
        slots = self.open_slots(state, roster_sizes)
        if slots[TEAM1] > 0 and slots[TEAM2] == 0:
            return TEAM1
        if slots[TEAM2] > 0 and slots[TEAM1] == 0:
            return TEAM2
        if state.budgets[TEAM1] <= 0 and state.budgets[TEAM2] <= 0:
            return self.fallback_team(state, roster_sizes)
        return None
