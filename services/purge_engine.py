"""
Purge orchestration: trims an overfull lobby down to max_players before
captain selection, one elimination at a time.
"""

import logging
import sqlite3
import time
from collections.abc import Callable

from config import (
    PURGE_COUNTDOWN_SECONDS,
    PURGE_ELIMINATION_INTERVAL_SECONDS,
    PURGE_IMMUNITY_ENABLED,
)
from domain.models.lobby import Lobby, LobbyPhase
from domain.services.purge_service import PurgeService
from repositories.interfaces import IModerationRepository
from services import error_codes
from services.membership_service import MembershipService
from services.notifier import LobbyNotifier
from services.phase_service import PhaseService
from services.result import Result
from services.timer_service import TimerService

logger = logging.getLogger("lobby_server.services.purge_engine")

PURGE_TIMER = "purge"


class PurgeEngine:
    """
    Runs the purge countdown and eliminations.

    Flow: purgeStart, immunityUsed per token spent, countdown, then one
    playerEliminated per victim spaced by the elimination interval, then
    purgeComplete with the survivors and the lobby moves to captain-select.
    Victims receive an immunity token for their next purge when enabled.
    """

    def __init__(
        self,
        purge_service: PurgeService,
        phase_service: PhaseService,
        membership: MembershipService,
        moderation_repo: IModerationRepository,
        timers: TimerService,
        notifier: LobbyNotifier,
        countdown_seconds: float = PURGE_COUNTDOWN_SECONDS,
        elimination_interval_seconds: float = PURGE_ELIMINATION_INTERVAL_SECONDS,
        immunity_enabled: bool = PURGE_IMMUNITY_ENABLED,
        clock: Callable[[], float] = time.time,
    ):
        self.purge_service = purge_service
        self.phase_service = phase_service
        self.membership = membership
        self.moderation_repo = moderation_repo
        self.timers = timers
        self.notifier = notifier
        self.countdown_seconds = countdown_seconds
        self.elimination_interval_seconds = elimination_interval_seconds
        self.immunity_enabled = immunity_enabled
        self.clock = clock

    def _load_immune(self, member_ids: list[str]) -> set[str]:
        if not self.immunity_enabled:
            return set()
        try:
            return self.moderation_repo.get_immune_ids(member_ids)
        except sqlite3.Error as exc:
            logger.warning(f"Immunity lookup failed, purging without immunity: {exc}")
            return set()

    def start(self, lobby: Lobby) -> Result[None]:
        """Plan the purge and start the countdown."""
        member_ids = lobby.member_ids
        immune = self._load_immune(member_ids)
        if not self.purge_service.can_purge(member_ids, lobby.max_players, immune | {lobby.host_id}):
            return Result.fail(
                "Too many players hold purge immunity to trim this lobby.",
                code=error_codes.VALIDATION_ERROR,
            )

        state = self.purge_service.create_state(
            member_ids,
            lobby.max_players,
            immune=immune,
            protected=lobby.whitelist,
            exempt={lobby.host_id},
        )
        if state.immune:
            try:
                self.moderation_repo.consume_immunity(sorted(state.immune))
            except sqlite3.Error as exc:
                logger.warning(f"Could not consume immunity tokens for lobby {lobby.code}: {exc}")
        state.countdown_ends_at = self.clock() + self.countdown_seconds
        lobby.purge = state
        self.phase_service.transition(lobby, LobbyPhase.PURGING)
        logger.info(
            f"Lobby {lobby.code}: purge started, {state.to_eliminate} to eliminate, "
            f"{len(state.immune)} immune"
        )

        self.notifier.notify(
            lobby.code,
            "purgeStart",
            {
                "originalCount": state.original_count,
                "targetCount": state.target_count,
                "toEliminate": state.to_eliminate,
                "countdown": self.countdown_seconds,
                "countdownEndsAt": state.countdown_ends_at,
            },
        )
        for pid in sorted(state.immune):
            player = lobby.get_player(pid)
            self.notifier.notify(
                lobby.code,
                "immunityUsed",
                {"odiscordId": pid, "username": player.username if player else None},
            )
        self.timers.schedule(lobby, PURGE_TIMER, self.countdown_seconds, self.eliminate_next)
        return Result.ok()

    async def eliminate_next(self, lobby: Lobby) -> None:
        """Timer callback: eliminate one victim, then reschedule or complete."""
        state = lobby.purge
        if lobby.phase != LobbyPhase.PURGING or state is None:
            logger.info(f"Lobby {lobby.code}: purge timer fired outside the purge, ignoring")
            return

        victim_id = None
        if lobby.member_count > state.target_count:
            victim_id = state.next_victim(set(lobby.member_ids))
        if victim_id is None:
            self.complete(lobby)
            return

        removal = self.membership.remove(lobby, victim_id, reason="purged")
        state.eliminated.append(victim_id)
        if self.immunity_enabled:
            try:
                self.moderation_repo.grant_immunity(victim_id, lobby.code, self.clock())
            except sqlite3.Error as exc:
                logger.warning(f"Could not grant purge immunity to {victim_id}: {exc}")

        player = removal.player if removal else None
        logger.info(
            f"Lobby {lobby.code}: eliminated {victim_id} ({len(state.eliminated)}/{state.to_eliminate})"
        )
        self.notifier.notify(
            lobby.code,
            "playerEliminated",
            {
                "odiscordId": victim_id,
                "username": player.username if player else None,
                "eliminatedCount": len(state.eliminated),
                "toEliminate": state.to_eliminate,
                "remaining": lobby.member_count,
                "immunityGranted": self.immunity_enabled,
            },
        )
        self.notifier.notify_player(
            victim_id,
            "playerKicked",
            {"odiscordId": victim_id, "reason": "You were eliminated in the purge."},
        )

        if lobby.member_count > state.target_count and state.next_victim(set(lobby.member_ids)):
            self.timers.schedule(lobby, PURGE_TIMER, self.elimination_interval_seconds, self.eliminate_next)
            self.notifier.broadcast_lobby(lobby)
        else:
            self.complete(lobby)

    def complete(self, lobby: Lobby) -> None:
        state = lobby.purge
        state.complete = True
        survivors = [p.to_dict() for p in lobby.players]
        self.notifier.notify(
            lobby.code,
            "purgeComplete",
            {"survivors": survivors, "eliminated": list(state.eliminated)},
        )
        lobby.purge = None
        self.phase_service.transition(lobby, LobbyPhase.CAPTAIN_SELECT)
        self.notifier.broadcast_lobby(lobby)
        logger.info(f"Lobby {lobby.code}: purge complete, {len(survivors)} survivors")
