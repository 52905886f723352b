"""
Tests for MembershipService: joining, leaving, kicks, whitelist and timeouts.
"""

import sqlite3

import pytest

from domain.models.draft import TEAM1
from domain.models.lobby import LobbyPhase
from domain.models.player import LobbyPlayer
from services import error_codes
from services.lobby_registry import LobbyRegistry
from services.membership_service import MembershipService
from tests.conftest import RecordingNotifier, make_lobby, pid


class Clock:
    def __init__(self, now: float = 10_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenModerationRepository:
    def get_active_timeout(self, discord_id, now):
        raise sqlite3.OperationalError("disk I/O error")

    def set_timeout(self, *args):
        raise sqlite3.OperationalError("disk I/O error")


def newcomer(n: int) -> LobbyPlayer:
    return LobbyPlayer(discord_id=pid(n), username=f"Player{n}")


@pytest.fixture
def registry():
    return LobbyRegistry()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def membership(registry, notifier, player_repository, moderation_repository, clock):
    return MembershipService(
        registry=registry,
        notifier=notifier,
        player_repo=player_repository,
        moderation_repo=moderation_repository,
        overflow_slots=2,
        default_elo=500,
        timeout_max_minutes=60,
        clock=clock,
    )


class TestJoin:
    def test_join_loads_profile_rating(self, membership, registry, player_repository):
        player_repository.ensure_profile(pid(5), "Player5", None, 720)
        lobby = make_lobby(2)

        result = membership.join(lobby, newcomer(5))

        assert result
        assert result.value.player.elo == 720
        assert lobby.is_member(pid(5))
        assert registry.lobby_code_for_player(pid(5)) == lobby.code

    def test_new_player_gets_default_rating(self, membership, player_repository):
        lobby = make_lobby(2)
        membership.join(lobby, newcomer(5))
        assert lobby.get_player(pid(5)).elo == 500
        assert player_repository.get_by_id(pid(5)).elo == 500

    def test_rejoin_marks_connected(self, membership):
        lobby = make_lobby(3, phase=LobbyPhase.PLAYING)
        lobby.get_player(pid(2)).connected = False

        result = membership.join(lobby, newcomer(2))

        assert result.value.rejoined is True
        assert lobby.get_player(pid(2)).connected is True
        assert lobby.member_count == 3

    def test_join_after_start_rejected(self, membership):
        lobby = make_lobby(4, phase=LobbyPhase.CAPTAIN_SELECT)
        result = membership.join(lobby, newcomer(7))
        assert result.error_code == error_codes.INVALID_PHASE

    def test_join_full_lobby_rejected(self, membership):
        """Capacity is max_players plus the overflow trimmed by the purge."""
        lobby = make_lobby(6, max_players=4)
        result = membership.join(lobby, newcomer(9))
        assert result.error_code == error_codes.LOBBY_FULL
        assert lobby.member_count == 6

    def test_overflow_join_accepted(self, membership):
        lobby = make_lobby(5, max_players=4)
        assert membership.join(lobby, newcomer(9))

    def test_player_in_another_lobby_rejected(self, membership, registry):
        registry.track_player(pid(9), "OTHER1")
        result = membership.join(make_lobby(2), newcomer(9))
        assert result.error_code == error_codes.ALREADY_IN_LOBBY

    def test_kicked_player_cannot_rejoin(self, membership):
        lobby = make_lobby(3)
        membership.kick(lobby, pid(0), pid(2))

        result = membership.join(lobby, newcomer(2))

        assert result.error_code == error_codes.KICKED_FROM_LOBBY

    def test_timed_out_player_cannot_join(self, membership, moderation_repository, clock):
        moderation_repository.set_timeout(pid(9), clock.now + 300, "griefing", pid(0))

        result = membership.join(make_lobby(2), newcomer(9))

        assert result.error_code == error_codes.PLAYER_TIMED_OUT
        assert "griefing" in result.error

    def test_expired_timeout_allows_join(self, membership, moderation_repository, clock):
        moderation_repository.set_timeout(pid(9), clock.now - 1, None, pid(0))
        assert membership.join(make_lobby(2), newcomer(9))

    def test_timeout_lookup_failure_does_not_block_join(self, registry, notifier, player_repository):
        membership = MembershipService(registry, notifier, player_repository, BrokenModerationRepository())
        assert membership.join(make_lobby(2), newcomer(9))


class TestRemove:
    def test_leave_detaches_player(self, membership, notifier, registry):
        lobby = make_lobby(3)
        registry.track_player(pid(2), lobby.code)

        result = membership.leave(lobby, pid(2))

        assert result
        assert not lobby.is_member(pid(2))
        assert registry.lobby_code_for_player(pid(2)) is None
        assert (lobby.code, pid(2)) in notifier.detached
        assert result.value.closes_lobby is False

    def test_leave_when_not_member(self, membership):
        result = membership.leave(make_lobby(3), "stranger")
        assert result.error_code == error_codes.NOT_IN_LOBBY

    def test_host_leaving_closes_lobby(self, membership):
        result = membership.leave(make_lobby(3), pid(0))
        assert result.value.closes_lobby is True

    def test_captain_leaving_mid_draft_returns_to_captain_select(self, membership):
        lobby = make_lobby(6, phase=LobbyPhase.DRAFTING, captains=True)
        lobby.assign(pid(2), TEAM1)

        outcome = membership.remove(lobby, pid(1))

        assert outcome.formation_cancelled is True
        assert lobby.phase == LobbyPhase.CAPTAIN_SELECT
        assert lobby.captain_ids == []
        assert lobby.team1 == [] and lobby.team2 == []

    def test_unassigned_leaving_mid_draft_is_flagged(self, membership):
        lobby = make_lobby(6, phase=LobbyPhase.DRAFTING, captains=True)
        outcome = membership.remove(lobby, pid(4))
        assert outcome.was_unassigned is True
        assert outcome.formation_cancelled is False
        assert lobby.phase == LobbyPhase.DRAFTING


class TestHostActions:
    def test_only_host_can_kick(self, membership):
        lobby = make_lobby(3)
        result = membership.kick(lobby, pid(1), pid(2))
        assert result.error_code == error_codes.NOT_HOST
        assert lobby.is_member(pid(2))

    def test_host_cannot_kick_self(self, membership):
        result = membership.kick(make_lobby(3), pid(0), pid(0))
        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_kick_non_member(self, membership):
        result = membership.kick(make_lobby(3), pid(0), "stranger")
        assert result.error_code == error_codes.NOT_IN_LOBBY

    def test_whitelist_toggle(self, membership):
        lobby = make_lobby(3)
        assert membership.whitelist(lobby, pid(0), pid(1))
        assert pid(1) in lobby.whitelist
        assert membership.unwhitelist(lobby, pid(0), pid(1))
        assert pid(1) not in lobby.whitelist

    def test_timeout_removes_and_persists(self, membership, moderation_repository, clock):
        lobby = make_lobby(3)

        result = membership.timeout(lobby, pid(0), pid(2), "15", "toxic")

        assert result
        assert result.value.minutes == 15
        assert result.value.removal is not None
        assert not lobby.is_member(pid(2))
        stored = moderation_repository.get_active_timeout(pid(2), clock.now)
        assert stored["expires_at"] == clock.now + 15 * 60
        assert stored["reason"] == "toxic"

    def test_timeout_of_non_member_still_persists(self, membership, moderation_repository, clock):
        result = membership.timeout(make_lobby(3), pid(0), "stranger", 5)
        assert result.value.removal is None
        assert moderation_repository.get_active_timeout("stranger", clock.now) is not None

    @pytest.mark.parametrize("minutes", [0, -1, 61, "abc", None])
    def test_timeout_duration_validated(self, membership, minutes):
        result = membership.timeout(make_lobby(3), pid(0), pid(2), minutes)
        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_timeout_storage_failure(self, registry, notifier, player_repository):
        membership = MembershipService(registry, notifier, player_repository, BrokenModerationRepository())
        lobby = make_lobby(3)

        result = membership.timeout(lobby, pid(0), pid(2), 5)

        assert result.error_code == error_codes.STORAGE_UNAVAILABLE
        assert lobby.is_member(pid(2))


class TestRatingsAndConnection:
    def test_refresh_ratings_reads_store(self, membership, player_repository):
        lobby = make_lobby(3)
        player_repository.ensure_profile(pid(1), "Player1", None, 880)

        membership.refresh_ratings(lobby)

        assert lobby.get_player(pid(1)).elo == 880
        assert lobby.get_player(pid(2)).elo == 500

    def test_set_connected_reports_change(self, membership):
        lobby = make_lobby(2)
        assert membership.set_connected(lobby, pid(1), False) is True
        assert membership.set_connected(lobby, pid(1), False) is False
        assert membership.set_connected(lobby, "stranger", False) is False
