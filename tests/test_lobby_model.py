"""Tests for the Lobby aggregate and its serialized snapshot."""

import pytest

from domain.models.draft import TEAM1, TEAM2
from domain.models.lobby import DraftMode, LobbyPhase
from tests.conftest import make_lobby, pid


class TestLobbyMembership:
    def test_member_ids_keep_join_order(self):
        lobby = make_lobby(4)
        assert lobby.member_ids == [pid(0), pid(1), pid(2), pid(3)]

    def test_remove_player_clears_rosters_and_captaincy(self):
        lobby = make_lobby(4, captains=True)
        lobby.assign(pid(2), TEAM1)
        lobby.whitelist.add(pid(1))

        removed = lobby.remove_player(pid(1))

        assert removed.discord_id == pid(1)
        assert lobby.captain2_id is None
        assert lobby.team2 == []
        assert pid(1) not in lobby.whitelist
        assert lobby.team1 == [pid(0), pid(2)]

    def test_remove_unknown_player_returns_none(self):
        lobby = make_lobby(2)
        assert lobby.remove_player("nobody") is None
        assert lobby.member_count == 2

    def test_is_host(self):
        lobby = make_lobby(2)
        assert lobby.is_host(pid(0))
        assert not lobby.is_host(pid(1))
        assert not lobby.is_host(None)


class TestLobbyTeams:
    def test_unassigned_excludes_both_rosters(self):
        lobby = make_lobby(5, captains=True)
        lobby.assign(pid(3), TEAM2)
        assert lobby.unassigned_ids() == [pid(2), pid(4)]

    def test_assign_twice_rejected(self):
        """A player can never sit on both rosters."""
        lobby = make_lobby(4, captains=True)
        lobby.assign(pid(2), TEAM1)
        with pytest.raises(ValueError):
            lobby.assign(pid(2), TEAM2)

    def test_captain_team_lookup(self):
        lobby = make_lobby(4, captains=True)
        assert lobby.captain_team(pid(0)) == TEAM1
        assert lobby.captain_team(pid(1)) == TEAM2
        assert lobby.captain_team(pid(2)) is None

    def test_reset_for_new_game_keeps_members(self):
        lobby = make_lobby(4, captains=True, phase=LobbyPhase.FINISHED)
        lobby.score[TEAM1] = 3
        lobby.winner = TEAM1

        lobby.reset_for_new_game()

        assert lobby.phase == LobbyPhase.WAITING
        assert lobby.member_count == 4
        assert lobby.captain_ids == []
        assert lobby.team1 == [] and lobby.team2 == []
        assert lobby.score == {TEAM1: 0, TEAM2: 0}
        assert lobby.winner is None


class TestLobbySerialization:
    def test_to_dict_shape(self):
        lobby = make_lobby(4, captains=True)
        lobby.draft_mode = DraftMode.MARKET

        data = lobby.to_dict()

        assert data["id"] == "TEST01"
        assert data["phase"] == "waiting"
        assert data["host"] == {"odiscordId": pid(0), "username": "Player0", "avatar": None}
        assert len(data["players"]) == 4
        assert data["draftMode"] == "market"
        assert data["captains"] == {TEAM1: pid(0), TEAM2: pid(1)}
        assert [p["odiscordId"] for p in data["teams"][TEAM1]] == [pid(0)]
        assert [p["odiscordId"] for p in data["unassigned"]] == [pid(2), pid(3)]
        assert data["currentTurn"] is None
        assert data["picksLeft"] == 0
        assert data["draft"] is None and data["auction"] is None and data["purge"] is None

    def test_summary_dict(self):
        lobby = make_lobby(3)
        summary = lobby.summary_dict()
        assert summary["hostName"] == "Player0"
        assert summary["playerCount"] == 3
        assert summary["maxPlayers"] == 10

    def test_summary_dict_carries_browser_fields(self):
        lobby = make_lobby(3)
        lobby.players[0].avatar = "https://cdn.example/a.png"
        lobby.team1_color = 2
        lobby.score[TEAM2] = 1
        lobby.created_at = 1700000000.5

        summary = lobby.summary_dict()

        assert summary["host"] == {
            "odiscordId": pid(0),
            "username": "Player0",
            "avatar": "https://cdn.example/a.png",
        }
        assert summary["team1Color"] == 2
        assert summary["team2Color"] == 5
        assert summary["score"] == {TEAM1: 0, TEAM2: 1}
        assert summary["createdAt"] == 1700000000500

    def test_draft_mode_parse(self):
        assert DraftMode.parse("MARKET") == DraftMode.MARKET
        assert DraftMode.parse(DraftMode.TURNS) == DraftMode.TURNS
        with pytest.raises(ValueError):
            DraftMode.parse("auction")
