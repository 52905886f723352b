"""
Tests for the turn-based draft: pick order planning and the draft engine.
"""

import random

import pytest

from domain.models.draft import TEAM1, TEAM2, DraftPattern, DraftState, build_pick_order
from domain.models.lobby import LobbyPhase
from domain.services.draft_service import FIRST_TEAM_RANDOM, DraftService
from services import error_codes
from services.draft_engine import DraftEngine
from services.phase_service import PhaseService
from tests.conftest import make_lobby, pid


class TestPickOrder:
    def test_snake_order_for_eight_picks(self):
        order = build_pick_order(8, TEAM1)
        assert order == [TEAM1, TEAM2, TEAM2, TEAM1, TEAM1, TEAM2, TEAM2, TEAM1]

    def test_snake_order_starting_with_team2(self):
        assert build_pick_order(4, TEAM2) == [TEAM2, TEAM1, TEAM1, TEAM2]

    def test_alternate_order(self):
        assert build_pick_order(4, TEAM1, DraftPattern.ALTERNATE) == [TEAM1, TEAM2, TEAM1, TEAM2]

    @pytest.mark.parametrize("picks", [2, 4, 6, 8, 10])
    def test_even_pick_counts_are_balanced(self, picks):
        order = build_pick_order(picks, TEAM1)
        assert order.count(TEAM1) == order.count(TEAM2)

    def test_rejects_unknown_team(self):
        with pytest.raises(ValueError):
            build_pick_order(4, "team3")

    def test_zero_picks(self):
        assert build_pick_order(0, TEAM1) == []


class TestDraftState:
    def test_record_pick_advances_turn(self):
        state = DraftState(first_team=TEAM1, pick_order=build_pick_order(4, TEAM1))
        assert state.current_turn == TEAM1
        assert state.picks_remaining_this_turn == 1

        state.record_pick(TEAM1, "a")

        assert state.current_turn == TEAM2
        assert state.picks_remaining_this_turn == 2
        assert state.picks_left == 3

    def test_record_pick_out_of_turn_raises(self):
        state = DraftState(first_team=TEAM1, pick_order=[TEAM1, TEAM2])
        with pytest.raises(ValueError):
            state.record_pick(TEAM2, "a")

    def test_drop_last_pick_shortens_order(self):
        state = DraftState(first_team=TEAM1, pick_order=[TEAM1, TEAM2, TEAM2])
        state.drop_last_pick()
        assert state.pick_order == [TEAM1, TEAM2]

    def test_drop_last_pick_never_drops_taken_picks(self):
        state = DraftState(first_team=TEAM1, pick_order=[TEAM1])
        state.record_pick(TEAM1, "a")
        state.drop_last_pick()
        assert state.pick_order == [TEAM1]
        assert state.is_complete


class TestDraftService:
    def test_lower_rated_captain_picks_first(self):
        service = DraftService(rng=random.Random(1))
        assert service.choose_first_team(None, 700, 500) == TEAM2
        assert service.choose_first_team(None, 500, 700) == TEAM1

    def test_equal_ratings_go_to_team1(self):
        assert DraftService().choose_first_team(None, 500, 500) == TEAM1

    def test_explicit_choice_wins(self):
        assert DraftService().choose_first_team(TEAM2, 100, 900) == TEAM2

    def test_random_choice_uses_rng(self):
        service = DraftService(rng=random.Random(7))
        results = {service.choose_first_team(FIRST_TEAM_RANDOM, 500, 500) for _ in range(40)}
        assert results == {TEAM1, TEAM2}

    def test_unknown_choice_raises(self):
        with pytest.raises(ValueError):
            DraftService().choose_first_team("blue", 500, 500)

    def test_validate_pick_reasons(self):
        state = DraftState(first_team=TEAM1, pick_order=[TEAM1, TEAM2])
        assert DraftService.validate_pick(state, None, "a", ["a"]) is not None
        assert DraftService.validate_pick(state, TEAM2, "a", ["a"]) == "It is not your turn to pick."
        assert DraftService.validate_pick(state, TEAM1, "zz", ["a"]) is not None
        assert DraftService.validate_pick(state, TEAM1, "a", ["a"]) is None


@pytest.fixture
def engine(rng):
    return DraftEngine(DraftService(rng=rng), PhaseService(min_players=4))


class TestDraftEngine:
    def test_full_draft_of_eight_players(self, engine):
        """Two captains and six picks end 4v4 and move to playing."""
        lobby = make_lobby(8, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)

        assert engine.start(lobby, TEAM1)
        assert lobby.phase == LobbyPhase.DRAFTING
        assert lobby.draft.pick_order == [TEAM1, TEAM2, TEAM2, TEAM1, TEAM1, TEAM2]

        captains = {TEAM1: pid(0), TEAM2: pid(1)}
        finished = False
        while not finished:
            turn = lobby.draft.current_turn
            target = lobby.unassigned_ids()[0]
            result = engine.pick(lobby, captains[turn], target)
            assert result, result.error
            finished = result.value

        assert lobby.phase == LobbyPhase.PLAYING
        assert len(lobby.team1) == 4
        assert len(lobby.team2) == 4
        assert lobby.unassigned_ids() == []
        assert lobby.draft is None

    def test_pick_out_of_turn_rejected_without_change(self, engine):
        lobby = make_lobby(6, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)

        result = engine.pick(lobby, pid(1), pid(2))

        assert not result
        assert result.error_code == error_codes.NOT_YOUR_TURN
        assert lobby.unassigned_ids() == [pid(2), pid(3), pid(4), pid(5)]
        assert lobby.draft.current_pick_index == 0

    def test_non_captain_cannot_pick(self, engine):
        lobby = make_lobby(6, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)

        result = engine.pick(lobby, pid(3), pid(2))

        assert result.error_code == error_codes.NOT_CAPTAIN

    def test_pick_assigned_player_rejected(self, engine):
        lobby = make_lobby(6, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)

        result = engine.pick(lobby, pid(0), pid(1))

        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_pick_outside_drafting_rejected(self, engine):
        lobby = make_lobby(6, phase=LobbyPhase.PLAYING, captains=True)
        result = engine.pick(lobby, pid(0), pid(2))
        assert result.error_code == error_codes.INVALID_PHASE

    def test_default_first_pick_is_lower_rated_captain(self, engine):
        lobby = make_lobby(4, phase=LobbyPhase.CAPTAIN_SELECT, captains=True, elos=[800, 400, 500, 500])
        engine.start(lobby)
        assert lobby.draft.first_team == TEAM2

    def test_two_player_lobby_goes_straight_to_playing(self, engine):
        lobby = make_lobby(2, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)
        assert lobby.phase == LobbyPhase.PLAYING

    def test_unassigned_departure_drops_last_pick(self, engine):
        lobby = make_lobby(6, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)
        lobby.remove_player(pid(5))

        completed = engine.handle_departure(lobby, was_unassigned=True)

        assert completed is False
        assert len(lobby.draft.pick_order) == 3

    def test_departure_of_last_pickable_completes_draft(self, engine):
        lobby = make_lobby(5, phase=LobbyPhase.CAPTAIN_SELECT, captains=True)
        engine.start(lobby, TEAM1)
        engine.pick(lobby, pid(0), pid(2))
        engine.pick(lobby, pid(1), pid(3))
        lobby.remove_player(pid(4))

        completed = engine.handle_departure(lobby, was_unassigned=True)

        assert completed is True
        assert lobby.phase == LobbyPhase.PLAYING
