"""
Pytest fixtures for tests.

Performance optimization: Uses session-scoped schema template to avoid running
the migrations for every test. Instead, we run migrations once and copy the
resulting database file.

Helpers for building players, lobbies and a fully wired container live here
too; import them with `from tests.conftest import ...`.
"""

import asyncio
import dataclasses
import random
import shutil
from typing import Any

import pytest

from domain.models.lobby import Lobby, LobbyPhase
from domain.models.player import LobbyPlayer
from infrastructure.schema_manager import SchemaManager
from infrastructure.service_container import ServiceConfig, ServiceContainer
from repositories.match_repository import MatchRepository
from repositories.moderation_repository import ModerationRepository
from repositories.player_repository import PlayerRepository
from services.notifier import LobbyNotifier
from services.presence_service import PresenceProvider, PresenceUnavailable

# =============================================================================
# CENTRALIZED HELPERS
# =============================================================================


def pid(n: int) -> str:
    """Stable player ID for test player n."""
    return f"{1000 + n}"


def user(n: int, **overrides) -> dict:
    """userData payload for test player n."""
    data = {"odiscordId": pid(n), "username": f"Player{n}", "avatar": None}
    data.update(overrides)
    return data


def make_lobby(
    count: int,
    phase: LobbyPhase = LobbyPhase.WAITING,
    max_players: int = 10,
    captains: bool = False,
    elos: list[int] | None = None,
) -> Lobby:
    """A Lobby built directly, hosted by player 0, with `count` members."""
    players = [
        LobbyPlayer(discord_id=pid(i), username=f"Player{i}", elo=(elos[i] if elos else 500))
        for i in range(count)
    ]
    lobby = Lobby(code="TEST01", host_id=pid(0), max_players=max_players, players=players, phase=phase)
    if captains:
        lobby.captain1_id, lobby.team1 = pid(0), [pid(0)]
        lobby.captain2_id, lobby.team2 = pid(1), [pid(1)]
    return lobby


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll until predicate() is true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(interval)


class RecordingNotifier(LobbyNotifier):
    """Notifier that keeps every event for assertions."""

    def __init__(self):
        self.events: list[tuple[str, str, Any]] = []
        self.player_events: list[tuple[str, str, Any]] = []
        self.detached: list[tuple[str, str]] = []
        self.closed: list[str] = []

    def notify(self, lobby_id: str, event: str, payload: Any) -> None:
        self.events.append((lobby_id, event, payload))

    def notify_player(self, player_id: str, event: str, payload: Any) -> None:
        self.player_events.append((player_id, event, payload))

    def detach(self, lobby_id: str, player_id: str) -> None:
        self.detached.append((lobby_id, player_id))

    def close(self, lobby_id: str) -> None:
        self.closed.append(lobby_id)

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]

    def payloads(self, event: str) -> list[Any]:
        return [payload for _, name, payload in self.events if name == event]

    def player_payloads(self, player_id: str, event: str) -> list[Any]:
        return [payload for target, name, payload in self.player_events if target == player_id and name == event]


class RecordingTimers:
    """Stand-in for TimerService that records instead of sleeping."""

    def __init__(self):
        self.scheduled: dict[tuple[str, str], tuple[float, Any]] = {}
        self.cancelled: list[tuple[str, str]] = []

    def schedule(self, lobby, name, delay, callback):
        self.scheduled[(lobby.code, name)] = (delay, callback)

    def cancel(self, code, name):
        self.cancelled.append((code, name))
        return self.scheduled.pop((code, name), None) is not None


class FakePresence(PresenceProvider):
    """Presence collaborator with scriptable absentees and outages."""

    def __init__(self):
        self.absent: set[str] = set()
        self.unavailable = False
        self.calls = 0

    async def check(self, player_ids: list[str]) -> dict[str, bool]:
        self.calls += 1
        if self.unavailable:
            raise PresenceUnavailable("presence backend down")
        return {p: p not in self.absent for p in player_ids}


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def _schema_template_path(tmp_path_factory):
    """
    Create a schema template database once per test session.

    All migrations run ONCE here. Tests copy from this template
    instead of running schema initialization each time.
    """
    template_dir = tmp_path_factory.mktemp("schema_template")
    template_path = str(template_dir / "template.db")
    SchemaManager(template_path).initialize()
    yield template_path


@pytest.fixture
def repo_db_path(_schema_template_path, tmp_path):
    """
    Create a temporary database with initialized schema for repository tests.

    Fast: file copy instead of schema initialization.
    """
    test_db_path = str(tmp_path / "test.db")
    shutil.copy2(_schema_template_path, test_db_path)
    yield test_db_path


@pytest.fixture
def player_repository(repo_db_path):
    return PlayerRepository(repo_db_path)


@pytest.fixture
def match_repository(repo_db_path):
    return MatchRepository(repo_db_path)


@pytest.fixture
def moderation_repository(repo_db_path):
    return ModerationRepository(repo_db_path)


@pytest.fixture
def rng():
    """Seeded random source so draws are reproducible."""
    return random.Random(1234)


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_presence():
    return FakePresence()


@pytest.fixture
def test_config(repo_db_path):
    """Service config with short timers and no retry backoff."""
    return ServiceConfig(
        db_path=repo_db_path,
        lobby_min_players=4,
        lobby_default_max_players=10,
        lobby_overflow_slots=4,
        default_rounds_to_win=0,
        disconnect_grace_seconds=0.05,
        host_disconnect_grace_seconds=0.05,
        market_starting_budget=1000,
        market_bid_window_seconds=0.05,
        market_bid_extension_seconds=0.0,
        purge_countdown_seconds=0.01,
        purge_elimination_interval_seconds=0.01,
        purge_immunity_enabled=True,
        default_elo=500,
        finalize_retry_delays=[0.0, 0.0],
        rng_seed=42,
    )


@pytest.fixture
def build_container(test_config, recording_notifier, fake_presence):
    """
    Factory for an initialized ServiceContainer.

    Usage:
        container = await build_container(market_bid_window_seconds=10)
    """
    built: list[ServiceContainer] = []

    async def _build(**overrides) -> ServiceContainer:
        config = dataclasses.replace(test_config, **overrides)
        container = ServiceContainer(config, notifier=recording_notifier, presence=fake_presence)
        await container.initialize()
        built.append(container)
        return container

    return _build


async def create_full_lobby(service, count: int, **create_kwargs) -> Lobby:
    """Create a lobby hosted by player 0 and join players 1..count-1."""
    result = await service.create_lobby(user(0), **create_kwargs)
    assert result, result.error
    lobby = result.value
    for i in range(1, count):
        joined = await service.join_lobby(lobby.code, user(i))
        assert joined, joined.error
    return lobby


async def to_captain_select(service, lobby: Lobby) -> None:
    """Start the lobby and seat players 0 and 1 as captains."""
    assert await service.start_captain_select(lobby.code, pid(0))
    assert await service.select_captain(lobby.code, pid(0), pid(0))
    assert await service.select_captain(lobby.code, pid(0), pid(1))


async def run_draft(service, lobby: Lobby) -> None:
    """Let the captain on the clock pick the first unassigned player until the draft ends."""
    while lobby.phase == LobbyPhase.DRAFTING:
        captain = lobby.captain_of(lobby.draft.current_turn)
        result = await service.draft_pick(lobby.code, captain, lobby.unassigned_ids()[0])
        assert result, result.error
