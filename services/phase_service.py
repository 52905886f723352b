"""
Lobby phase state machine.

waiting -> captain-select -> {drafting | market} -> playing -> finished -> waiting,
with purging between waiting and captain-select when the lobby is overfull.
"""

import logging

from config import LOBBY_MIN_PLAYERS
from domain.models.draft import TEAM1, TEAM2
from domain.models.lobby import COLOR_COUNT, DRAW, DraftMode, Lobby, LobbyPhase
from services import error_codes
from services.result import Result

logger = logging.getLogger("lobby_server.services.phase")

TRANSITIONS: dict[LobbyPhase, set[LobbyPhase]] = {
    LobbyPhase.WAITING: {LobbyPhase.CAPTAIN_SELECT, LobbyPhase.PURGING},
    LobbyPhase.PURGING: {LobbyPhase.CAPTAIN_SELECT},
    LobbyPhase.CAPTAIN_SELECT: {LobbyPhase.DRAFTING, LobbyPhase.MARKET},
    # Back to captain-select when a captain leaves mid-formation
    LobbyPhase.DRAFTING: {LobbyPhase.PLAYING, LobbyPhase.CAPTAIN_SELECT},
    LobbyPhase.MARKET: {LobbyPhase.PLAYING, LobbyPhase.CAPTAIN_SELECT},
    LobbyPhase.PLAYING: {LobbyPhase.FINISHED},
    LobbyPhase.FINISHED: {LobbyPhase.WAITING},
}

PHASE_NAMES = {
    LobbyPhase.WAITING: "waiting for players",
    LobbyPhase.CAPTAIN_SELECT: "captain selection",
    LobbyPhase.DRAFTING: "the draft",
    LobbyPhase.MARKET: "the market",
    LobbyPhase.PURGING: "the purge",
    LobbyPhase.PLAYING: "the game",
    LobbyPhase.FINISHED: "the results screen",
}


def parse_team(value) -> str | None:
    """Accept 1, 2, "1", "2", "team1", "team2"."""
    if isinstance(value, bool):
        return None
    text = str(value).strip().lower()
    if text in ("1", TEAM1):
        return TEAM1
    if text in ("2", TEAM2):
        return TEAM2
    return None


def parse_winner(value) -> str | None:
    """Accept a team or "draw"."""
    if isinstance(value, str) and value.strip().lower() == DRAW:
        return DRAW
    return parse_team(value)


class PhaseService:
    """
    Gatekeeper for which action is legal in which phase.

    Host-triggered transitions are validated here; system-triggered ones
    (purge and team-formation completion) go through transition() directly.
    """

    def __init__(self, min_players: int = LOBBY_MIN_PLAYERS):
        self.min_players = min_players

    def transition(self, lobby: Lobby, target: LobbyPhase) -> None:
        """
        Move the lobby to `target`.

        Raises:
            ValueError: If the edge is not part of the state machine
        """
        if target not in TRANSITIONS[lobby.phase]:
            raise ValueError(f"Illegal transition {lobby.phase.value} -> {target.value}")
        logger.info(f"Lobby {lobby.code}: {lobby.phase.value} -> {target.value}")
        lobby.phase = target

    @staticmethod
    def require_host(lobby: Lobby, player_id: str | None) -> Result[None]:
        if not lobby.is_host(player_id):
            return Result.fail("Only the host can do that.", code=error_codes.NOT_HOST)
        return Result.ok()

    @staticmethod
    def require_phase(lobby: Lobby, *phases: LobbyPhase) -> Result[None]:
        if lobby.phase not in phases:
            return Result.fail(
                f"That action is not allowed during {PHASE_NAMES[lobby.phase]}.",
                code=error_codes.INVALID_PHASE,
            )
        return Result.ok()

    def check_host_action(self, lobby: Lobby, player_id: str | None, *phases: LobbyPhase) -> Result[None]:
        check = self.require_host(lobby, player_id)
        if check and phases:
            check = self.require_phase(lobby, *phases)
        return check

    # --- waiting -> captain-select ---

    def check_can_start(self, lobby: Lobby, player_id: str) -> Result[None]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.WAITING)
        if not check:
            return check
        if lobby.member_count < self.min_players:
            return Result.fail(
                f"Need at least {self.min_players} players to start ({lobby.member_count} in lobby).",
                code=error_codes.INSUFFICIENT_PLAYERS,
            )
        return Result.ok()

    @staticmethod
    def check_presence(presence: dict[str, bool]) -> Result[None]:
        missing = [pid for pid, present in presence.items() if not present]
        if missing:
            return Result.fail(
                f"{len(missing)} player(s) are not in the voice channel.",
                code=error_codes.VALIDATION_ERROR,
            )
        return Result.ok()

    # --- captain-select ---

    def select_captain(self, lobby: Lobby, player_id: str, target_id: str) -> Result[str]:
        """Seat a captain on the first free side. Returns the captain's team."""
        check = self.check_host_action(lobby, player_id, LobbyPhase.CAPTAIN_SELECT)
        if not check:
            return check
        if not lobby.is_member(target_id):
            return Result.fail("That player is not in this lobby.", code=error_codes.NOT_IN_LOBBY)
        if lobby.captain_team(target_id) is not None:
            return Result.fail("That player is already a captain.", code=error_codes.VALIDATION_ERROR)
        if lobby.captain1_id is None:
            lobby.captain1_id = target_id
            lobby.team1 = [target_id]
            return Result.ok(TEAM1)
        if lobby.captain2_id is None:
            lobby.captain2_id = target_id
            lobby.team2 = [target_id]
            return Result.ok(TEAM2)
        return Result.fail("Both captains are already selected.", code=error_codes.VALIDATION_ERROR)

    def remove_captain(self, lobby: Lobby, player_id: str, target_id: str) -> Result[str]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.CAPTAIN_SELECT)
        if not check:
            return check
        team = lobby.captain_team(target_id)
        if team is None:
            return Result.fail("That player is not a captain.", code=error_codes.VALIDATION_ERROR)
        if team == TEAM1:
            lobby.captain1_id = None
            lobby.team1 = []
        else:
            lobby.captain2_id = None
            lobby.team2 = []
        return Result.ok(team)

    def check_can_form_teams(self, lobby: Lobby, player_id: str) -> Result[None]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.CAPTAIN_SELECT)
        if not check:
            return check
        if len(lobby.captain_ids) != 2:
            return Result.fail("Select two captains first.", code=error_codes.VALIDATION_ERROR)
        return Result.ok()

    # --- settings ---

    def set_team_colors(self, lobby: Lobby, player_id: str, team1_color=None, team2_color=None) -> Result[None]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.WAITING, LobbyPhase.CAPTAIN_SELECT)
        if not check:
            return check
        new_colors = [lobby.team1_color, lobby.team2_color]
        for index, value in enumerate((team1_color, team2_color)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < COLOR_COUNT:
                return Result.fail(
                    f"Team colors must be between 0 and {COLOR_COUNT - 1}.", code=error_codes.VALIDATION_ERROR
                )
            new_colors[index] = value
        if new_colors[0] == new_colors[1]:
            return Result.fail("Teams must have different colors.", code=error_codes.VALIDATION_ERROR)
        lobby.team1_color, lobby.team2_color = new_colors
        return Result.ok()

    def set_draft_mode(self, lobby: Lobby, player_id: str, mode) -> Result[DraftMode]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.WAITING, LobbyPhase.CAPTAIN_SELECT)
        if not check:
            return check
        try:
            lobby.draft_mode = DraftMode.parse(mode)
        except ValueError:
            return Result.fail("Draft mode must be 'turns' or 'market'.", code=error_codes.VALIDATION_ERROR)
        return Result.ok(lobby.draft_mode)

    # --- playing -> finished ---

    def add_score(self, lobby: Lobby, player_id: str, team_value) -> Result[str | None]:
        """Add a round to a team. Returns the team if it reached rounds_to_win."""
        check = self.check_host_action(lobby, player_id, LobbyPhase.PLAYING)
        if not check:
            return check
        if lobby.finalizing:
            return Result.fail("The match is already being recorded.", code=error_codes.INVALID_PHASE)
        team = parse_team(team_value)
        if team is None:
            return Result.fail("Team must be 1 or 2.", code=error_codes.VALIDATION_ERROR)
        lobby.score[team] += 1
        if lobby.rounds_to_win > 0 and lobby.score[team] >= lobby.rounds_to_win:
            return Result.ok(team)
        return Result.ok(None)

    def check_can_declare(self, lobby: Lobby, player_id: str, winner_value) -> Result[str]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.PLAYING)
        if not check:
            return check
        if lobby.finalizing:
            return Result.fail("The match is already being recorded.", code=error_codes.INVALID_PHASE)
        winner = parse_winner(winner_value)
        if winner is None:
            return Result.fail("Winner must be team 1, team 2 or a draw.", code=error_codes.VALIDATION_ERROR)
        if not lobby.team1 or not lobby.team2:
            return Result.fail("Both teams need at least one player.", code=error_codes.INSUFFICIENT_PLAYERS)
        return Result.ok(winner)

    def mark_finished(self, lobby: Lobby, winner: str, match_id: str) -> None:
        self.transition(lobby, LobbyPhase.FINISHED)
        lobby.winner = winner
        lobby.last_match_id = match_id

    # --- finished -> waiting ---

    def reset(self, lobby: Lobby, player_id: str) -> Result[None]:
        check = self.check_host_action(lobby, player_id, LobbyPhase.FINISHED)
        if not check:
            return check
        self.transition(lobby, LobbyPhase.WAITING)
        lobby.reset_for_new_game()
        return Result.ok()
