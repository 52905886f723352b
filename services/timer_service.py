"""
Cancellable per-lobby timers.

Timers are the only source of autonomous state change (auction deadlines,
purge countdowns, disconnect grace periods). Each timer is an asyncio task
keyed by (lobby code, name); scheduling under an existing key replaces it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from domain.models.lobby import Lobby
from services.lobby_registry import LobbyRegistry

logger = logging.getLogger("lobby_server.services.timers")

TimerCallback = Callable[[Lobby], Awaitable[None]]


class TimerService:
    """
    Runs delayed callbacks against a lobby under that lobby's lock.

    A callback only runs if the same Lobby object is still registered when
    the delay elapses; otherwise the firing is dropped and logged.
    """

    def __init__(self, registry: LobbyRegistry):
        self.registry = registry
        self._tasks: dict[tuple[str, str], asyncio.Task] = {}

    def schedule(self, lobby: Lobby, name: str, delay: float, callback: TimerCallback) -> None:
        key = (lobby.code, name)
        self._cancel_task(self._tasks.get(key))

        async def runner() -> None:
            try:
                await asyncio.sleep(max(0.0, delay))
                async with self.registry.lock_for(lobby.code):
                    if not self.registry.is_current(lobby):
                        logger.info(f"Dropping stale timer '{name}' for closed lobby {lobby.code}")
                        return
                    await callback(lobby)
            except asyncio.CancelledError:
                logger.debug(f"Timer '{name}' for lobby {lobby.code} cancelled")
            except Exception:
                logger.exception(f"Timer '{name}' for lobby {lobby.code} failed")
            finally:
                if self._tasks.get(key) is task:
                    del self._tasks[key]

        task = asyncio.create_task(runner(), name=f"{lobby.code}:{name}")
        self._tasks[key] = task

    def cancel(self, code: str, name: str) -> bool:
        task = self._tasks.pop((code, name), None)
        return self._cancel_task(task)

    def cancel_lobby(self, code: str) -> int:
        """Cancel every timer of a lobby. Returns how many were cancelled."""
        keys = [key for key in self._tasks if key[0] == code]
        cancelled = 0
        for key in keys:
            if self._cancel_task(self._tasks.pop(key, None)):
                cancelled += 1
        if cancelled:
            logger.info(f"Cancelled {cancelled} timer(s) for lobby {code}")
        return cancelled

    def is_scheduled(self, code: str, name: str) -> bool:
        task = self._tasks.get((code, name))
        return task is not None and not task.done()

    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            self._cancel_task(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _cancel_task(task: asyncio.Task | None) -> bool:
        # A callback may reschedule or close its own lobby; never cancel the running task
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        return True
