"""
Lobby orchestration facade.

Every client intent enters here. Each one runs under its lobby's lock, is
delegated to the membership, phase or team-formation component, and on
success the new lobby snapshot is broadcast to the lobby's members.
"""

import logging
from dataclasses import dataclass

from config import (
    DEFAULT_ROUNDS_TO_WIN,
    DISCONNECT_GRACE_SECONDS,
    HOST_DISCONNECT_GRACE_SECONDS,
    LOBBY_DEFAULT_MAX_PLAYERS,
    LOBBY_MAX_PLAYERS_LIMIT,
)
from domain.models.lobby import DraftMode, Lobby, LobbyPhase
from domain.models.player import LobbyPlayer
from services import error_codes
from services.draft_engine import DraftEngine
from services.lobby_registry import LobbyRegistry
from services.market_engine import AUCTION_TIMER, MarketEngine
from services.match_finalizer import FinalizeRequest, MatchFinalizer
from services.membership_service import JoinOutcome, MembershipService, RemovalOutcome
from services.notifier import LobbyNotifier
from services.phase_service import PhaseService
from services.presence_service import AlwaysPresentProvider, PresenceProvider, PresenceUnavailable
from services.purge_engine import PurgeEngine
from services.result import Result
from services.timer_service import TimerService

logger = logging.getLogger("lobby_server.services.lobby")

DISCONNECT_TIMER_PREFIX = "disconnect:"


@dataclass
class VoiceStatus:
    players_in_vc: list[str]
    missing: list[str]

    @property
    def all_in_vc(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {"playersInVC": self.players_in_vc, "missing": self.missing, "allInVC": self.all_in_vc}


def parse_user_data(user_data) -> Result[LobbyPlayer]:
    """Build a LobbyPlayer from the client's userData payload."""
    if not isinstance(user_data, dict):
        return Result.fail("Missing user data.", code=error_codes.VALIDATION_ERROR)
    raw_id = user_data.get("odiscordId")
    if raw_id is None or isinstance(raw_id, bool) or str(raw_id).strip() == "":
        return Result.fail("Missing player ID.", code=error_codes.VALIDATION_ERROR)
    username = str(user_data.get("username") or "").strip() or "Player"
    avatar = user_data.get("avatar") or None
    return Result.ok(LobbyPlayer(discord_id=str(raw_id).strip(), username=username[:64], avatar=avatar))


class LobbyService:
    """Entry point for every lobby intent."""

    def __init__(
        self,
        registry: LobbyRegistry,
        notifier: LobbyNotifier,
        timers: TimerService,
        membership: MembershipService,
        phase_service: PhaseService,
        draft_engine: DraftEngine,
        market_engine: MarketEngine,
        purge_engine: PurgeEngine,
        finalizer: MatchFinalizer,
        presence: PresenceProvider | None = None,
        default_max_players: int = LOBBY_DEFAULT_MAX_PLAYERS,
        max_players_limit: int = LOBBY_MAX_PLAYERS_LIMIT,
        default_rounds_to_win: int = DEFAULT_ROUNDS_TO_WIN,
        disconnect_grace_seconds: float = DISCONNECT_GRACE_SECONDS,
        host_disconnect_grace_seconds: float = HOST_DISCONNECT_GRACE_SECONDS,
    ):
        self.registry = registry
        self.notifier = notifier
        self.timers = timers
        self.membership = membership
        self.phase_service = phase_service
        self.draft_engine = draft_engine
        self.market_engine = market_engine
        self.purge_engine = purge_engine
        self.finalizer = finalizer
        self.presence = presence or AlwaysPresentProvider()
        self.default_max_players = default_max_players
        self.max_players_limit = max_players_limit
        self.default_rounds_to_win = default_rounds_to_win
        self.disconnect_grace_seconds = disconnect_grace_seconds
        self.host_disconnect_grace_seconds = host_disconnect_grace_seconds

    # --- Lookups ---

    def get_lobby(self, code: str) -> Lobby | None:
        return self.registry.get(code)

    def get_public_lobbies(self) -> list[Lobby]:
        return self.registry.public_lobbies()

    def get_lobby_for_player(self, player_id: str) -> Lobby | None:
        return self.registry.find_by_player(player_id)

    @staticmethod
    def _not_found() -> Result:
        return Result.fail("Lobby not found.", code=error_codes.LOBBY_NOT_FOUND)

    # --- Creation and membership ---

    async def create_lobby(
        self,
        user_data,
        max_players=None,
        is_public: bool = True,
        draft_mode=DraftMode.TURNS,
        is_ranked: bool = True,
        rounds_to_win=None,
    ) -> Result[Lobby]:
        parsed = parse_user_data(user_data)
        if not parsed:
            return parsed
        host = parsed.value

        try:
            max_players = self.default_max_players if max_players is None else int(max_players)
            rounds_to_win = self.default_rounds_to_win if rounds_to_win is None else int(rounds_to_win)
            mode = DraftMode.parse(draft_mode or DraftMode.TURNS)
        except (TypeError, ValueError):
            return Result.fail("Invalid lobby settings.", code=error_codes.VALIDATION_ERROR)
        min_players = self.phase_service.min_players
        if not min_players <= max_players <= self.max_players_limit:
            return Result.fail(
                f"Max players must be between {min_players} and {self.max_players_limit}.",
                code=error_codes.VALIDATION_ERROR,
            )
        if rounds_to_win < 0:
            return Result.fail("Rounds to win cannot be negative.", code=error_codes.VALIDATION_ERROR)

        existing = self.registry.lobby_code_for_player(host.discord_id)
        if existing is not None:
            return Result.fail(
                f"You are already in lobby {existing}. Leave it first.", code=error_codes.ALREADY_IN_LOBBY
            )
        timeout_check = self.membership.check_timeout(host.discord_id)
        if not timeout_check:
            return timeout_check

        self.membership.load_profile_rating(host)
        lobby = await self.registry.create(
            host,
            max_players=max_players,
            is_public=bool(is_public),
            is_ranked=bool(is_ranked),
            draft_mode=mode,
            rounds_to_win=rounds_to_win,
        )
        return Result.ok(lobby)

    async def join_lobby(self, code: str, user_data) -> Result[JoinOutcome]:
        parsed = parse_user_data(user_data)
        if not parsed:
            return parsed
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = self.membership.join(lobby, parsed.value)
            if result:
                self.timers.cancel(lobby.code, DISCONNECT_TIMER_PREFIX + parsed.value.discord_id)
                self.notifier.broadcast_lobby(lobby)
            return result

    async def leave_lobby(self, player_id: str, code: str | None = None) -> Result[RemovalOutcome]:
        code = code or self.registry.lobby_code_for_player(player_id)
        if not code:
            return Result.fail("You are not in a lobby.", code=error_codes.NOT_IN_LOBBY)
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = self.membership.leave(lobby, player_id)
            if result:
                self._after_removal(lobby, result.value, "The host left the lobby.")
            return result

    async def kick_player(self, code: str, host_id: str, target_id: str, reason: str | None = None) -> Result[None]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            target_id = str(target_id or "")
            result = self.membership.kick(lobby, host_id, target_id)
            if not result:
                return result
            payload = {"odiscordId": target_id, "reason": reason or "You have been removed from the lobby"}
            self.notifier.notify(lobby.code, "playerKicked", payload)
            self.notifier.notify_player(target_id, "playerKicked", payload)
            self._after_removal(lobby, result.value, "The host left the lobby.")
            return Result.ok()

    async def whitelist_player(self, code: str, host_id: str, target_id: str, enabled: bool = True) -> Result[None]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            target_id = str(target_id or "")
            if enabled:
                result = self.membership.whitelist(lobby, host_id, target_id)
            else:
                result = self.membership.unwhitelist(lobby, host_id, target_id)
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    async def timeout_player(
        self, host_id: str, target_id: str, minutes, reason: str | None = None, code: str | None = None
    ) -> Result:
        code = code or self.registry.lobby_code_for_player(host_id)
        if not code:
            return Result.fail("You are not in a lobby.", code=error_codes.NOT_IN_LOBBY)
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            target_id = str(target_id or "")
            result = self.membership.timeout(lobby, host_id, target_id, minutes, reason)
            if not result:
                return result
            outcome = result.value
            if outcome.removal is not None:
                payload = {
                    "odiscordId": target_id,
                    "reason": f"You have been timed out for {outcome.minutes} minutes"
                    + (f": {reason}" if reason else ""),
                }
                self.notifier.notify(lobby.code, "playerKicked", payload)
                self.notifier.notify_player(target_id, "playerKicked", payload)
                self._after_removal(lobby, outcome.removal, "The host left the lobby.")
            return result

    def _after_removal(self, lobby: Lobby, outcome: RemovalOutcome, close_reason: str) -> None:
        """Apply the knock-on effects of a member leaving, then broadcast. Caller holds the lock."""
        if outcome.closes_lobby:
            self._close(lobby, close_reason)
            return
        if outcome.formation_cancelled:
            self.timers.cancel(lobby.code, AUCTION_TIMER)
        elif lobby.phase == LobbyPhase.DRAFTING:
            self.draft_engine.handle_departure(lobby, outcome.was_unassigned)
        elif lobby.phase == LobbyPhase.MARKET:
            self.market_engine.handle_departure(lobby, outcome.player.discord_id)
        self.timers.cancel(lobby.code, DISCONNECT_TIMER_PREFIX + outcome.player.discord_id)
        self.notifier.broadcast_lobby(lobby)

    # --- Connection state ---

    async def handle_disconnect(self, player_id: str) -> None:
        """A player's last connection dropped: start their grace period."""
        code = self.registry.lobby_code_for_player(player_id)
        if not code:
            return
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None or not self.membership.set_connected(lobby, player_id, False):
                return
            grace = self.host_disconnect_grace_seconds if lobby.is_host(player_id) else self.disconnect_grace_seconds

            async def expire(expired_lobby: Lobby) -> None:
                player = expired_lobby.get_player(player_id)
                if player is None or player.connected:
                    return
                logger.info(f"Lobby {expired_lobby.code}: {player_id} did not reconnect within {grace}s")
                outcome = self.membership.remove(expired_lobby, player_id, reason="disconnected")
                if outcome is not None:
                    self._after_removal(expired_lobby, outcome, "The host disconnected.")

            self.timers.schedule(lobby, DISCONNECT_TIMER_PREFIX + player_id, grace, expire)
            logger.info(f"Lobby {lobby.code}: {player_id} disconnected, {grace}s to reconnect")
            self.notifier.broadcast_lobby(lobby)

    async def check_vc_status(self, code: str, player_id: str) -> Result[VoiceStatus]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            if not lobby.is_member(player_id):
                return Result.fail("You are not in this lobby.", code=error_codes.NOT_IN_LOBBY)
            return await self._voice_status(lobby)

    async def _voice_status(self, lobby: Lobby) -> Result[VoiceStatus]:
        try:
            presence = await self.presence.check(lobby.member_ids)
        except PresenceUnavailable as exc:
            logger.warning(f"Presence check failed for lobby {lobby.code}: {exc}")
            return Result.fail(
                "Voice channel status is unavailable right now.", code=error_codes.PRESENCE_UNAVAILABLE
            )
        present = [pid for pid in lobby.member_ids if presence.get(pid)]
        missing = [pid for pid in lobby.member_ids if not presence.get(pid)]
        return Result.ok(VoiceStatus(players_in_vc=present, missing=missing))

    # --- Settings ---

    async def set_team_colors(self, code: str, player_id: str, team1_color=None, team2_color=None) -> Result[None]:
        return await self._host_mutation(
            code, lambda lobby: self.phase_service.set_team_colors(lobby, player_id, team1_color, team2_color)
        )

    async def set_draft_mode(self, code: str, player_id: str, mode) -> Result:
        return await self._host_mutation(code, lambda lobby: self.phase_service.set_draft_mode(lobby, player_id, mode))

    async def _host_mutation(self, code: str, action) -> Result:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = action(lobby)
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    # --- Phase transitions ---

    async def start_captain_select(self, code: str, player_id: str) -> Result[None]:
        """waiting -> captain-select, through the purge when the lobby is overfull."""
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            check = self.phase_service.check_can_start(lobby, player_id)
            if not check:
                return check
            if lobby.is_public:
                status = await self._voice_status(lobby)
                if not status:
                    return status
                check = self.phase_service.check_presence(
                    {pid: pid not in status.value.missing for pid in lobby.member_ids}
                )
                if not check:
                    return check

            if self.purge_engine.purge_service.needs_purge(lobby.member_count, lobby.max_players):
                result = self.purge_engine.start(lobby)
            else:
                self.phase_service.transition(lobby, LobbyPhase.CAPTAIN_SELECT)
                result = Result.ok()
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    async def select_captain(self, code: str, player_id: str, target_id: str) -> Result[str]:
        return await self._host_mutation(
            code, lambda lobby: self.phase_service.select_captain(lobby, player_id, str(target_id or ""))
        )

    async def remove_captain(self, code: str, player_id: str, target_id: str) -> Result[str]:
        return await self._host_mutation(
            code, lambda lobby: self.phase_service.remove_captain(lobby, player_id, str(target_id or ""))
        )

    async def start_team_formation(self, code: str, player_id: str, first_team: str | None = None) -> Result[None]:
        """captain-select -> drafting or market, by the lobby's draft mode."""
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            check = self.phase_service.check_can_form_teams(lobby, player_id)
            if not check:
                return check
            self.membership.refresh_ratings(lobby)
            if lobby.draft_mode == DraftMode.MARKET:
                result = self.market_engine.start(lobby)
            else:
                result = self.draft_engine.start(lobby, first_team)
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    async def draft_pick(self, code: str, player_id: str, target_id: str) -> Result[bool]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = self.draft_engine.pick(lobby, player_id, str(target_id or ""))
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    async def place_bid(self, code: str, player_id: str, amount) -> Result[None]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = self.market_engine.place_bid(lobby, player_id, amount)
            if result:
                self.notifier.broadcast_lobby(lobby)
            return result

    async def add_score(self, code: str, player_id: str, team) -> Result:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            result = self.phase_service.add_score(lobby, player_id, team)
            if not result:
                return result
            self.notifier.broadcast_lobby(lobby)
            if result.value is None:
                return result
            request = self._begin_finalize(lobby, result.value, None)
        return await self._finish_finalize(lobby, request)

    async def declare_winner(self, code: str, player_id: str, winner_team, stats: dict | None = None) -> Result:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            check = self.phase_service.check_can_declare(lobby, player_id, winner_team)
            if not check:
                return check
            request = self._begin_finalize(lobby, check.value, stats)
        return await self._finish_finalize(lobby, request)

    def _begin_finalize(self, lobby: Lobby, winner: str, stats: dict | None) -> FinalizeRequest:
        lobby.finalizing = True
        return FinalizeRequest.from_lobby(lobby, winner, stats)

    async def _finish_finalize(self, lobby: Lobby, request: FinalizeRequest) -> Result:
        """Record the match outside the lobby lock, then apply the outcome under it."""
        result = await self.finalizer.finalize(request)
        async with self.registry.lock_for(lobby.code):
            lobby.finalizing = False
            if not self.registry.is_current(lobby):
                logger.info(f"Lobby {lobby.code} closed while its match was being recorded")
                return result
            if not result:
                self.notifier.notify_player(lobby.host_id, "error", result.to_error_payload())
                return result
            match = result.value
            self.phase_service.mark_finished(lobby, request.winner, match.match_id)
            self._refresh_snapshot_ratings(lobby, match)
            self.notifier.notify(lobby.code, "matchFinalized", match.to_dict())
            self.notifier.broadcast_lobby(lobby)
            return result

    @staticmethod
    def _refresh_snapshot_ratings(lobby: Lobby, match) -> None:
        for participant in match.participants:
            player = lobby.get_player(participant.discord_id)
            if player is not None:
                player.elo = participant.rating_after

    async def reset_lobby(self, code: str, player_id: str) -> Result[None]:
        return await self._host_mutation(code, lambda lobby: self.phase_service.reset(lobby, player_id))

    async def close_lobby(self, code: str, player_id: str, reason: str | None = None) -> Result[None]:
        async with self.registry.lock_for(code):
            lobby = self.registry.get(code)
            if lobby is None:
                return self._not_found()
            check = self.phase_service.require_host(lobby, player_id)
            if not check:
                return check
            self._close(lobby, reason or "The host closed the lobby.")
            return Result.ok()

    def _close(self, lobby: Lobby, reason: str) -> None:
        """Cancel timers, tell everyone, and drop the lobby. Caller holds the lock."""
        self.timers.cancel_lobby(lobby.code)
        self.notifier.notify(lobby.code, "lobbyClosed", {"reason": reason})
        self.registry.remove(lobby.code)
        self.notifier.close(lobby.code)
        logger.info(f"Lobby {lobby.code} closed: {reason}")

    async def shutdown(self) -> None:
        await self.timers.shutdown()
        await self.presence.close()
