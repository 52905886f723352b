"""
Tests for MatchFinalizer: rating computation, persistence and retry behavior.
"""

import sqlite3

import pytest

from domain.models.draft import TEAM1, TEAM2
from domain.models.lobby import DRAW, LobbyPhase
from rating_system import EloRatingSystem
from services import error_codes
from services.match_finalizer import FinalizeRequest, MatchFinalizer, RosterEntry
from tests.conftest import make_lobby, pid


class FlakyMatchRepository:
    """Wraps a real repository and fails the first `failures` writes."""

    def __init__(self, inner, failures: int):
        self.inner = inner
        self.failures = failures
        self.attempts = 0

    def record_match(self, match):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise sqlite3.OperationalError("database is locked")
        return self.inner.record_match(match)

    def get_match(self, match_id):
        return self.inner.get_match(match_id)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def seed_profiles(player_repository, ratings: dict[str, int]):
    for discord_id, elo in ratings.items():
        player_repository.ensure_profile(discord_id, f"user-{discord_id}", None, elo)


def two_v_two(winner=TEAM1, ranked=True, stats=None):
    return FinalizeRequest(
        lobby_code="ABC123",
        team1=(RosterEntry("a", "A", 500), RosterEntry("b", "B", 500)),
        team2=(RosterEntry("c", "C", 500), RosterEntry("d", "D", 500)),
        winner=winner,
        is_ranked=ranked,
        score=(3, 1),
        stats=stats or {},
    )


class TestFinalizeRequest:
    def test_from_lobby_captures_rosters_and_stats(self):
        lobby = make_lobby(4, phase=LobbyPhase.PLAYING, captains=True)
        lobby.assign(pid(2), TEAM1)
        lobby.assign(pid(3), TEAM2)
        lobby.score = {TEAM1: 2, TEAM2: 1}

        request = FinalizeRequest.from_lobby(
            lobby,
            TEAM1,
            {pid(2): {"kills": 4, "class": "Sniper"}, "stranger": {"kills": 99}, pid(3): "bad"},
        )

        assert [e.discord_id for e in request.team1] == [pid(0), pid(2)]
        assert [e.discord_id for e in request.team2] == [pid(1), pid(3)]
        assert request.score == (2, 1)
        assert request.winning_team == 1
        assert set(request.stats) == {pid(2)}
        assert request.stats[pid(2)].kills == 4
        assert request.stats[pid(2)].class_name == "Sniper"

    def test_draw_has_no_winning_team(self):
        assert two_v_two(winner=DRAW).winning_team is None


class TestMatchFinalizer:
    @pytest.mark.asyncio
    async def test_success_updates_profiles(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        finalizer = MatchFinalizer(player_repository, match_repository, EloRatingSystem(32, 500), [])

        result = await finalizer.finalize(two_v_two(stats={"a": {"kills": 7, "deaths": 2, "class": "Tank"}}))

        assert result
        match = result.value
        assert match.elo_gain == 16
        assert match.elo_loss == 16
        assert player_repository.get_by_id("a").elo == 516
        assert player_repository.get_by_id("c").elo == 484
        assert player_repository.get_by_id("a").wins == 1
        assert player_repository.get_by_id("d").losses == 1
        assert player_repository.get_by_id("a").total_kills == 7
        assert player_repository.get_by_id("a").class_stats["Tank"]["games"] == 1
        assert match_repository.get_match(match.match_id) is not None

    @pytest.mark.asyncio
    async def test_uses_stored_ratings_over_snapshots(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 900, "b": 900, "c": 500, "d": 500})
        finalizer = MatchFinalizer(player_repository, match_repository, EloRatingSystem(32, 500), [])

        result = await finalizer.finalize(two_v_two())

        winners = {p.discord_id: p for p in result.value.winners}
        assert winners["a"].rating_before == 900
        assert result.value.elo_gain < 16

    @pytest.mark.asyncio
    async def test_unranked_records_without_rating_change(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        finalizer = MatchFinalizer(player_repository, match_repository, EloRatingSystem(32, 500), [])

        result = await finalizer.finalize(two_v_two(ranked=False))

        assert result.value.elo_gain == 0
        assert player_repository.get_by_id("a").elo == 500
        assert player_repository.get_by_id("a").wins == 1

    @pytest.mark.asyncio
    async def test_draw_counts_for_everyone(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        finalizer = MatchFinalizer(player_repository, match_repository, EloRatingSystem(32, 500), [])

        result = await finalizer.finalize(two_v_two(winner=DRAW))

        assert result.value.is_draw
        for discord_id in "abcd":
            profile = player_repository.get_by_id(discord_id)
            assert profile.draws == 1
            assert profile.wins == 0 and profile.losses == 0

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        flaky = FlakyMatchRepository(match_repository, failures=2)
        sleep = RecordingSleep()
        finalizer = MatchFinalizer(player_repository, flaky, EloRatingSystem(32, 500), [1.0, 5.0, 20.0], sleep)

        result = await finalizer.finalize(two_v_two())

        assert result
        assert flaky.attempts == 3
        assert sleep.delays == [1.0, 5.0]
        assert player_repository.get_by_id("a").elo == 516

    @pytest.mark.asyncio
    async def test_gives_up_with_storage_unavailable(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        flaky = FlakyMatchRepository(match_repository, failures=10)
        sleep = RecordingSleep()
        finalizer = MatchFinalizer(player_repository, flaky, EloRatingSystem(32, 500), [0.5, 0.5], sleep)

        result = await finalizer.finalize(two_v_two())

        assert not result
        assert result.error_code == error_codes.STORAGE_UNAVAILABLE
        assert flaky.attempts == 3
        assert player_repository.get_by_id("a").elo == 500
        assert match_repository.get_match_count() == 0

    @pytest.mark.asyncio
    async def test_same_request_is_recorded_once(self, player_repository, match_repository):
        seed_profiles(player_repository, {"a": 500, "b": 500, "c": 500, "d": 500})
        finalizer = MatchFinalizer(player_repository, match_repository, EloRatingSystem(32, 500), [])
        request = two_v_two()

        first = await finalizer.finalize(request)
        second = await finalizer.finalize(request)

        assert second
        assert second.value.match_id == first.value.match_id
        assert match_repository.get_match_count() == 1
        assert player_repository.get_by_id("a").elo == 516
