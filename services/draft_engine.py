"""
Turn-based draft orchestration.

Holds no state of its own: the DraftState lives on the Lobby for the
duration of the drafting phase. Callers hold the lobby lock.
"""

import logging

from domain.models.draft import TEAM1, TEAM2
from domain.models.lobby import Lobby, LobbyPhase
from domain.services.draft_service import DraftService
from services import error_codes
from services.phase_service import PhaseService
from services.result import Result

logger = logging.getLogger("lobby_server.services.draft_engine")


class DraftEngine:
    """
    Applies captain picks to the lobby.

    Responsibilities:
    - Start a draft once two captains are seated
    - Validate and apply picks in the planned order
    - Finish the draft (to playing) when no pickable player is left
    """

    def __init__(self, draft_service: DraftService, phase_service: PhaseService):
        self.draft_service = draft_service
        self.phase_service = phase_service

    def start(self, lobby: Lobby, first_team: str | None = None) -> Result[None]:
        """
        Enter the drafting phase.

        Args:
            lobby: Lobby in captain-select with two captains
            first_team: TEAM1, TEAM2, "random" or None for the lower-rated captain
        """
        captain1 = lobby.get_player(lobby.captain1_id)
        captain2 = lobby.get_player(lobby.captain2_id)
        try:
            first = self.draft_service.choose_first_team(first_team, captain1.elo, captain2.elo)
        except ValueError as exc:
            return Result.fail(str(exc), code=error_codes.VALIDATION_ERROR)

        pickable = lobby.unassigned_ids()
        lobby.draft = self.draft_service.plan_draft(len(pickable), first)
        self.phase_service.transition(lobby, LobbyPhase.DRAFTING)
        logger.info(f"Lobby {lobby.code}: draft started, {len(pickable)} picks, {first} first")
        self._finish_if_complete(lobby)
        return Result.ok()

    def pick(self, lobby: Lobby, captain_id: str, player_id: str) -> Result[bool]:
        """
        Apply one pick.

        Returns:
            Result with True when this pick completed the draft
        """
        check = self.phase_service.require_phase(lobby, LobbyPhase.DRAFTING)
        if not check:
            return check
        state = lobby.draft
        team = lobby.captain_team(captain_id)
        if team is None:
            return Result.fail("Only captains can pick.", code=error_codes.NOT_CAPTAIN)
        reason = self.draft_service.validate_pick(state, team, player_id, lobby.unassigned_ids())
        if reason is not None:
            code = error_codes.NOT_YOUR_TURN if team != state.current_turn else error_codes.VALIDATION_ERROR
            return Result.fail(reason, code=code)

        state.record_pick(team, player_id)
        lobby.assign(player_id, team)
        logger.info(f"Lobby {lobby.code}: {team} picked {player_id} ({state.picks_left} picks left)")
        return Result.ok(self._finish_if_complete(lobby))

    def handle_departure(self, lobby: Lobby, was_unassigned: bool) -> bool:
        """
        Keep the pick order consistent after a non-captain member left.

        Returns:
            True if the departure completed the draft
        """
        if lobby.phase != LobbyPhase.DRAFTING or lobby.draft is None:
            return False
        if was_unassigned:
            lobby.draft.drop_last_pick()
        return self._finish_if_complete(lobby)

    def _finish_if_complete(self, lobby: Lobby) -> bool:
        state = lobby.draft
        if state is None:
            return False
        if lobby.unassigned_ids() and not state.is_complete:
            return False
        # Any leftover player (order exhausted early) goes to the smaller roster
        for player_id in lobby.unassigned_ids():
            team = TEAM1 if len(lobby.team1) <= len(lobby.team2) else TEAM2
            lobby.assign(player_id, team)
        lobby.draft = None
        self.phase_service.transition(lobby, LobbyPhase.PLAYING)
        logger.info(
            f"Lobby {lobby.code}: draft complete ({len(lobby.team1)} vs {len(lobby.team2)})"
        )
        return True
