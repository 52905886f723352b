"""
Membership management: join, leave, kick, whitelist, timeouts and connection state.

All methods expect the caller to hold the lobby's lock. Broadcasting is the
caller's job; this service only mutates and reports what happened.
"""

import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass

from config import DEFAULT_ELO, LOBBY_OVERFLOW_SLOTS, TIMEOUT_MAX_MINUTES
from domain.models.lobby import Lobby, LobbyPhase
from domain.models.player import LobbyPlayer
from repositories.interfaces import IModerationRepository, IPlayerRepository
from services import error_codes
from services.lobby_registry import LobbyRegistry
from services.notifier import LobbyNotifier
from services.result import Result

logger = logging.getLogger("lobby_server.services.membership")

# Phases in which rosters are being formed by captains
TEAM_FORMATION_PHASES = (LobbyPhase.DRAFTING, LobbyPhase.MARKET)


@dataclass
class JoinOutcome:
    lobby: Lobby
    player: LobbyPlayer
    rejoined: bool = False


@dataclass
class RemovalOutcome:
    """What removing a member did to the lobby."""

    player: LobbyPlayer
    was_unassigned: bool = False
    was_captain: bool = False
    formation_cancelled: bool = False
    closes_lobby: bool = False  # Host left, or nobody is left


@dataclass
class TimeoutOutcome:
    target_id: str
    minutes: int
    expires_at: float
    removal: RemovalOutcome | None = None


class MembershipService:
    """
    Tracks who is in which lobby.

    Rules:
    - New members join only while the lobby is waiting; existing members may
      always reconnect.
    - One lobby per player.
    - Kicked players cannot rejoin that lobby; timed-out players cannot join any.
    """

    def __init__(
        self,
        registry: LobbyRegistry,
        notifier: LobbyNotifier,
        player_repo: IPlayerRepository,
        moderation_repo: IModerationRepository,
        overflow_slots: int = LOBBY_OVERFLOW_SLOTS,
        default_elo: int = DEFAULT_ELO,
        timeout_max_minutes: int = TIMEOUT_MAX_MINUTES,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.notifier = notifier
        self.player_repo = player_repo
        self.moderation_repo = moderation_repo
        self.overflow_slots = overflow_slots
        self.default_elo = default_elo
        self.timeout_max_minutes = timeout_max_minutes
        self.clock = clock

    def capacity(self, lobby: Lobby) -> int:
        """Members accepted while waiting; anything above max_players is purged at start."""
        return lobby.max_players + self.overflow_slots

    def load_profile_rating(self, player: LobbyPlayer) -> None:
        """Create or refresh the player's profile and copy its rating into the lobby snapshot."""
        try:
            profile = self.player_repo.ensure_profile(
                player.discord_id, player.username, player.avatar, self.default_elo
            )
            player.elo = profile.elo
        except sqlite3.Error as exc:
            logger.warning(f"Could not load profile for {player.discord_id}, using default rating: {exc}")
            player.elo = self.default_elo

    def refresh_ratings(self, lobby: Lobby) -> None:
        """Re-read stored ratings into the lobby snapshots before teams are formed."""
        try:
            ratings = self.player_repo.get_ratings(lobby.member_ids)
        except sqlite3.Error as exc:
            logger.warning(f"Could not refresh ratings for lobby {lobby.code}: {exc}")
            return
        for player in lobby.players:
            if player.discord_id in ratings:
                player.elo = ratings[player.discord_id]

    def check_timeout(self, discord_id: str) -> Result[None]:
        try:
            active = self.moderation_repo.get_active_timeout(discord_id, self.clock())
        except sqlite3.Error as exc:
            logger.warning(f"Timeout lookup failed for {discord_id}: {exc}")
            return Result.ok()
        if active:
            remaining = max(1, int((active["expires_at"] - self.clock()) // 60) + 1)
            reason = f" Reason: {active['reason']}" if active.get("reason") else ""
            return Result.fail(
                f"You are timed out from joining lobbies for {remaining} more minute(s).{reason}",
                code=error_codes.PLAYER_TIMED_OUT,
            )
        return Result.ok()

    def join(self, lobby: Lobby, player: LobbyPlayer) -> Result[JoinOutcome]:
        existing = lobby.get_player(player.discord_id)
        if existing is not None:
            existing.connected = True
            existing.username = player.username or existing.username
            if player.avatar:
                existing.avatar = player.avatar
            logger.info(f"Player {player.discord_id} reconnected to lobby {lobby.code}")
            return Result.ok(JoinOutcome(lobby=lobby, player=existing, rejoined=True))

        if player.discord_id in lobby.kicked:
            return Result.fail("You were removed from this lobby.", code=error_codes.KICKED_FROM_LOBBY)

        timeout_check = self.check_timeout(player.discord_id)
        if not timeout_check:
            return timeout_check

        other_code = self.registry.lobby_code_for_player(player.discord_id)
        if other_code is not None and other_code != lobby.code:
            return Result.fail(
                f"You are already in lobby {other_code}. Leave it first.",
                code=error_codes.ALREADY_IN_LOBBY,
            )

        if lobby.phase != LobbyPhase.WAITING:
            return Result.fail("This lobby has already started.", code=error_codes.INVALID_PHASE)

        if lobby.member_count >= self.capacity(lobby):
            return Result.fail("Lobby is full.", code=error_codes.LOBBY_FULL)

        self.load_profile_rating(player)
        player.connected = True
        lobby.players.append(player)
        self.registry.track_player(player.discord_id, lobby.code)
        logger.info(f"Player {player.discord_id} joined lobby {lobby.code} ({lobby.member_count} members)")
        return Result.ok(JoinOutcome(lobby=lobby, player=player))

    def remove(self, lobby: Lobby, discord_id: str, reason: str = "left") -> RemovalOutcome | None:
        """
        Remove a member from the lobby and every roster.

        A captain leaving during team formation cancels it and sends the lobby
        back to captain-select with empty rosters.
        """
        was_unassigned = discord_id in lobby.unassigned_ids()
        was_captain = lobby.captain_team(discord_id) is not None
        player = lobby.remove_player(discord_id)
        if player is None:
            return None

        self.registry.untrack_player(discord_id, lobby.code)
        self.notifier.detach(lobby.code, discord_id)

        outcome = RemovalOutcome(player=player, was_unassigned=was_unassigned, was_captain=was_captain)
        if discord_id == lobby.host_id or lobby.member_count == 0:
            outcome.closes_lobby = True
        elif was_captain and lobby.phase in TEAM_FORMATION_PHASES:
            lobby.clear_team_formation()
            lobby.phase = LobbyPhase.CAPTAIN_SELECT
            outcome.formation_cancelled = True
            logger.info(f"Lobby {lobby.code}: captain {discord_id} left, back to captain-select")

        logger.info(f"Player {discord_id} removed from lobby {lobby.code} ({reason})")
        return outcome

    def leave(self, lobby: Lobby, discord_id: str) -> Result[RemovalOutcome]:
        outcome = self.remove(lobby, discord_id, reason="left")
        if outcome is None:
            return Result.fail("You are not in this lobby.", code=error_codes.NOT_IN_LOBBY)
        return Result.ok(outcome)

    def _check_host_target(self, lobby: Lobby, host_id: str, target_id: str) -> Result[None]:
        if not lobby.is_host(host_id):
            return Result.fail("Only the host can do that.", code=error_codes.NOT_HOST)
        if not target_id:
            return Result.fail("No player specified.", code=error_codes.VALIDATION_ERROR)
        if target_id == host_id:
            return Result.fail("You cannot do that to yourself.", code=error_codes.VALIDATION_ERROR)
        if not lobby.is_member(target_id):
            return Result.fail("That player is not in this lobby.", code=error_codes.NOT_IN_LOBBY)
        return Result.ok()

    def kick(self, lobby: Lobby, host_id: str, target_id: str) -> Result[RemovalOutcome]:
        check = self._check_host_target(lobby, host_id, target_id)
        if not check:
            return check
        lobby.kicked.add(target_id)
        return Result.ok(self.remove(lobby, target_id, reason=f"kicked by {host_id}"))

    def whitelist(self, lobby: Lobby, host_id: str, target_id: str) -> Result[None]:
        check = self._check_host_target(lobby, host_id, target_id)
        if not check:
            return check
        lobby.whitelist.add(target_id)
        return Result.ok()

    def unwhitelist(self, lobby: Lobby, host_id: str, target_id: str) -> Result[None]:
        check = self._check_host_target(lobby, host_id, target_id)
        if not check:
            return check
        lobby.whitelist.discard(target_id)
        return Result.ok()

    def timeout(
        self,
        lobby: Lobby,
        host_id: str,
        target_id: str,
        minutes,
        reason: str | None = None,
    ) -> Result[TimeoutOutcome]:
        """
        Bar a player from joining any lobby for `minutes`, removing them from this one.
        """
        if not lobby.is_host(host_id):
            return Result.fail("Only the host can do that.", code=error_codes.NOT_HOST)
        if not target_id or target_id == host_id:
            return Result.fail("Invalid timeout target.", code=error_codes.VALIDATION_ERROR)
        try:
            minutes = int(minutes)
        except (TypeError, ValueError):
            return Result.fail("Timeout duration must be a number of minutes.", code=error_codes.VALIDATION_ERROR)
        if minutes < 1 or minutes > self.timeout_max_minutes:
            return Result.fail(
                f"Timeout must be between 1 and {self.timeout_max_minutes} minutes.",
                code=error_codes.VALIDATION_ERROR,
            )

        expires_at = self.clock() + minutes * 60
        try:
            self.moderation_repo.set_timeout(target_id, expires_at, reason or None, host_id)
        except sqlite3.Error as exc:
            logger.warning(f"Failed to persist timeout for {target_id}: {exc}")
            return Result.fail("Could not save the timeout. Try again.", code=error_codes.STORAGE_UNAVAILABLE)

        removal = None
        if lobby.is_member(target_id):
            removal = self.remove(lobby, target_id, reason=f"timed out for {minutes}m by {host_id}")
        logger.info(f"Player {target_id} timed out for {minutes} minutes by {host_id}")
        return Result.ok(TimeoutOutcome(target_id=target_id, minutes=minutes, expires_at=expires_at, removal=removal))

    def set_connected(self, lobby: Lobby, discord_id: str, connected: bool) -> bool:
        player = lobby.get_player(discord_id)
        if player is None or player.connected == connected:
            return False
        player.connected = connected
        return True
