"""
Timed auction orchestration for market-mode team formation.

One player is up at a time. Each lot runs for a fixed bidding window; at the
deadline the lot resolves, the winner's budget is debited and the next player
comes up. The market ends, and play begins, when every player is on a team.
"""

import logging
import time
from collections.abc import Callable

from config import MARKET_BID_EXTENSION_SECONDS, MARKET_BID_WINDOW_SECONDS
from domain.models.auction import AuctionSale
from domain.models.lobby import Lobby, LobbyPhase
from domain.services.market_service import REASON_BUDGET, BidRejected, MarketService
from services import error_codes
from services.notifier import LobbyNotifier
from services.phase_service import PhaseService
from services.result import Result
from services.timer_service import TimerService

logger = logging.getLogger("lobby_server.services.market_engine")

AUCTION_TIMER = "auction"


class MarketEngine:
    """
    Runs the auction for one lobby at a time, driven by captains and timers.

    Events: auctionStart (a lot opens), bidUpdate (a bid is accepted),
    auctionEnd (a lot resolves, with or without bids).
    """

    def __init__(
        self,
        market_service: MarketService,
        phase_service: PhaseService,
        timers: TimerService,
        notifier: LobbyNotifier,
        bid_window_seconds: float = MARKET_BID_WINDOW_SECONDS,
        bid_extension_seconds: float = MARKET_BID_EXTENSION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.market_service = market_service
        self.phase_service = phase_service
        self.timers = timers
        self.notifier = notifier
        self.bid_window_seconds = bid_window_seconds
        self.bid_extension_seconds = bid_extension_seconds
        self.clock = clock

    @staticmethod
    def _roster_sizes(lobby: Lobby) -> dict[str, int]:
        return {"team1": len(lobby.team1), "team2": len(lobby.team2)}

    def start(self, lobby: Lobby) -> Result[None]:
        """Enter the market phase and open the first lot."""
        lobby.auction = self.market_service.create_state(lobby.players, lobby.unassigned_ids())
        self.phase_service.transition(lobby, LobbyPhase.MARKET)
        logger.info(
            f"Lobby {lobby.code}: market started, {len(lobby.auction.queue)} players, "
            f"{lobby.auction.slots['team1']} slots per team"
        )
        self._advance(lobby)
        return Result.ok()

    def place_bid(self, lobby: Lobby, captain_id: str, amount) -> Result[None]:
        check = self.phase_service.require_phase(lobby, LobbyPhase.MARKET)
        if not check:
            return check
        team = lobby.captain_team(captain_id)
        if team is None:
            return Result.fail("Only captains can bid.", code=error_codes.NOT_CAPTAIN)
        state = lobby.auction
        try:
            self.market_service.validate_bid(state, team, amount, self._roster_sizes(lobby))
        except BidRejected as exc:
            code = error_codes.INSUFFICIENT_BUDGET if exc.reason == REASON_BUDGET else error_codes.INVALID_BID
            return Result.fail(str(exc), code=code)

        self.market_service.apply_bid(state, team, amount)
        if self.bid_extension_seconds > 0:
            extended = self.clock() + self.bid_extension_seconds
            if extended > state.deadline:
                state.deadline = extended
                self._schedule_deadline(lobby)

        logger.info(f"Lobby {lobby.code}: {team} bids {amount} on {state.current_player_id}")
        self.notifier.notify(
            lobby.code,
            "bidUpdate",
            {
                "odiscordId": state.current_player_id,
                "team": team,
                "amount": amount,
                "bids": dict(state.bids),
                "leadingTeam": state.leading_team,
                "deadline": state.deadline,
            },
        )
        return Result.ok()

    def handle_departure(self, lobby: Lobby, player_id: str) -> bool:
        """
        Drop a departed non-captain from the auction.

        Returns:
            True if the departure ended the market
        """
        state = lobby.auction
        if lobby.phase != LobbyPhase.MARKET or state is None:
            return False
        if player_id in state.queue:
            state.queue.remove(player_id)
        if state.current_player_id == player_id:
            self.timers.cancel(lobby.code, AUCTION_TIMER)
            state.current_player_id = None
            state.deadline = None
            logger.info(f"Lobby {lobby.code}: lot for {player_id} withdrawn, player left")
            return self._advance(lobby)
        if not state.is_active:
            return self._advance(lobby)
        return False

    async def on_deadline(self, lobby: Lobby) -> None:
        """Timer callback: resolve the current lot and open the next one."""
        state = lobby.auction
        if lobby.phase != LobbyPhase.MARKET or state is None or not state.is_active:
            logger.info(f"Lobby {lobby.code}: auction deadline fired with no open lot, ignoring")
            return
        sale = self.market_service.resolve_lot(state, self._roster_sizes(lobby))
        self._complete_sale(lobby, sale)
        self._advance(lobby)
        self.notifier.broadcast_lobby(lobby)

    def _complete_sale(self, lobby: Lobby, sale: AuctionSale) -> None:
        state = lobby.auction
        self.market_service.settle(state, sale)
        lobby.assign(sale.player_id, sale.team)
        if sale.no_bids:
            logger.info(f"Lobby {lobby.code}: no bids for {sale.player_id}, assigned to {sale.team}")
        else:
            logger.info(f"Lobby {lobby.code}: {sale.player_id} sold to {sale.team} for {sale.price}")
        self.notifier.notify(
            lobby.code,
            "auctionEnd",
            {**sale.to_dict(), "budgets": dict(state.budgets)},
        )

    def _advance(self, lobby: Lobby) -> bool:
        """
        Open the next lot, assigning forced players directly.

        Returns:
            True when the market finished and the lobby moved to playing
        """
        state = lobby.auction
        unassigned = set(lobby.unassigned_ids())
        state.queue = [pid for pid in state.queue if pid in unassigned]
        while state.queue:
            forced = self.market_service.forced_team(state, self._roster_sizes(lobby))
            player_id = state.queue.pop(0)
            if forced is not None:
                state.open_lot(player_id, self.clock())
                self._complete_sale(lobby, AuctionSale(player_id, forced, 0, no_bids=True))
                continue
            deadline = self.clock() + self.bid_window_seconds
            state.open_lot(player_id, deadline)
            self._schedule_deadline(lobby)
            player = lobby.get_player(player_id)
            self.notifier.notify(
                lobby.code,
                "auctionStart",
                {
                    "odiscordId": player_id,
                    "player": player.to_dict() if player else None,
                    "lot": state.lot_number,
                    "deadline": deadline,
                    "duration": self.bid_window_seconds,
                    "budgets": dict(state.budgets),
                    "remaining": len(state.queue),
                },
            )
            return False
        return self._finish(lobby)

    def _finish(self, lobby: Lobby) -> bool:
        self.timers.cancel(lobby.code, AUCTION_TIMER)
        budgets = dict(lobby.auction.budgets)
        lobby.auction = None
        self.phase_service.transition(lobby, LobbyPhase.PLAYING)
        logger.info(
            f"Lobby {lobby.code}: market complete ({len(lobby.team1)} vs {len(lobby.team2)}), "
            f"budgets left {budgets}"
        )
        return True

    def _schedule_deadline(self, lobby: Lobby) -> None:
        delay = lobby.auction.deadline - self.clock()
        self.timers.schedule(lobby, AUCTION_TIMER, delay, self.on_deadline)
