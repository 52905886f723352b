"""
Tests for the lobby registry and per-lobby timers.
"""

import asyncio
import random

import pytest

from domain.models.player import LobbyPlayer
from services.lobby_registry import LOBBY_CODE_ALPHABET, LobbyRegistry
from services.timer_service import TimerService
from tests.conftest import pid, wait_for


def host(n: int = 0) -> LobbyPlayer:
    return LobbyPlayer(discord_id=pid(n), username=f"Player{n}")


class TestLobbyRegistry:
    @pytest.mark.asyncio
    async def test_create_registers_host(self):
        registry = LobbyRegistry(code_length=6, rng=random.Random(5))

        lobby = await registry.create(host(), max_players=10)

        assert len(lobby.code) == 6
        assert set(lobby.code) <= set(LOBBY_CODE_ALPHABET)
        assert registry.get(lobby.code) is lobby
        assert registry.get(lobby.code.lower()) is lobby
        assert registry.find_by_player(pid(0)) is lobby
        assert lobby.code in registry

    @pytest.mark.asyncio
    async def test_codes_are_unique(self):
        registry = LobbyRegistry(code_length=6, rng=random.Random(5))
        codes = {(await registry.create(host(i), max_players=10)).code for i in range(50)}
        assert len(codes) == 50

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_distinct_lobbies(self):
        registry = LobbyRegistry()
        lobbies = await asyncio.gather(*(registry.create(host(i), max_players=10) for i in range(10)))
        assert len({lobby.code for lobby in lobbies}) == 10
        assert len(registry) == 10

    @pytest.mark.asyncio
    async def test_remove_untracks_members(self):
        registry = LobbyRegistry()
        lobby = await registry.create(host(), max_players=10)
        lobby.players.append(host(1))
        registry.track_player(pid(1), lobby.code)

        assert registry.remove(lobby.code) is lobby

        assert registry.get(lobby.code) is None
        assert registry.lobby_code_for_player(pid(0)) is None
        assert registry.lobby_code_for_player(pid(1)) is None
        assert not registry.is_current(lobby)
        assert registry.remove(lobby.code) is None

    @pytest.mark.asyncio
    async def test_lock_for_is_stable_per_lobby(self):
        registry = LobbyRegistry()
        lobby = await registry.create(host(), max_players=10)
        assert registry.lock_for(lobby.code) is registry.lock_for(lobby.code.lower())

    def test_lock_for_unknown_code_is_not_stored(self):
        registry = LobbyRegistry()
        registry.lock_for("NOPE01")
        assert registry.lock_for("NOPE01") is not registry.lock_for("NOPE01")

    @pytest.mark.asyncio
    async def test_public_lobbies_oldest_first(self):
        registry = LobbyRegistry()
        first = await registry.create(host(0), max_players=10, is_public=True)
        await registry.create(host(1), max_players=10, is_public=False)
        second = await registry.create(host(2), max_players=10, is_public=True)
        second.created_at = first.created_at + 1

        assert registry.public_lobbies() == [first, second]


class TestTimerService:
    @pytest.mark.asyncio
    async def test_callback_runs_after_delay(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        fired = []

        async def callback(target):
            fired.append(target.code)

        timers.schedule(lobby, "tick", 0.01, callback)
        assert timers.is_scheduled(lobby.code, "tick")

        await wait_for(lambda: fired)
        assert fired == [lobby.code]
        await wait_for(lambda: not timers.is_scheduled(lobby.code, "tick"))

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        fired = []

        async def callback(target):
            fired.append(target.code)

        timers.schedule(lobby, "tick", 0.05, callback)
        assert timers.cancel(lobby.code, "tick") is True
        await asyncio.sleep(0.1)

        assert fired == []
        assert timers.cancel(lobby.code, "tick") is False

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_timer(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        fired = []

        async def first(target):
            fired.append("first")

        async def second(target):
            fired.append("second")

        timers.schedule(lobby, "tick", 0.05, first)
        timers.schedule(lobby, "tick", 0.01, second)

        await asyncio.sleep(0.1)
        assert fired == ["second"]

    @pytest.mark.asyncio
    async def test_stale_timer_dropped_after_close(self):
        """A timer for a closed lobby never touches a new lobby that reused the code."""
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        fired = []

        async def callback(target):
            fired.append(target)

        timers.schedule(lobby, "tick", 0.01, callback)
        registry.remove(lobby.code)
        await asyncio.sleep(0.05)

        assert fired == []

    @pytest.mark.asyncio
    async def test_callback_may_reschedule_itself(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        ticks = []

        async def callback(target):
            ticks.append(len(ticks))
            if len(ticks) < 3:
                timers.schedule(target, "tick", 0.01, callback)

        timers.schedule(lobby, "tick", 0.01, callback)

        await wait_for(lambda: len(ticks) == 3)
        await wait_for(lambda: timers.active_count() == 0)

    @pytest.mark.asyncio
    async def test_callback_runs_under_lobby_lock(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        observed = []

        async def callback(target):
            observed.append(registry.lock_for(target.code).locked())

        timers.schedule(lobby, "tick", 0.01, callback)
        await wait_for(lambda: observed)
        assert observed == [True]

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)

        async def callback(target):
            raise RuntimeError("boom")

        timers.schedule(lobby, "tick", 0.0, callback)
        await wait_for(lambda: timers.active_count() == 0)

    @pytest.mark.asyncio
    async def test_cancel_lobby_and_shutdown(self):
        registry = LobbyRegistry()
        timers = TimerService(registry)
        lobby = await registry.create(host(), max_players=10)
        other = await registry.create(host(1), max_players=10)

        async def callback(target):
            pass

        timers.schedule(lobby, "a", 10, callback)
        timers.schedule(lobby, "b", 10, callback)
        timers.schedule(other, "a", 10, callback)

        assert timers.cancel_lobby(lobby.code) == 2
        assert timers.is_scheduled(other.code, "a")

        await timers.shutdown()
        assert timers.active_count() == 0
