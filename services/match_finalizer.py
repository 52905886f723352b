"""
Match finalization: turns a declared result into a persisted Match and
profile updates.
"""

import asyncio
import logging
import sqlite3
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from config import FINALIZE_RETRY_DELAYS
from domain.models.draft import TEAM1, TEAM2
from domain.models.lobby import Lobby
from domain.models.match import CombatStats, Match, MatchParticipant
from rating_system import EloRatingSystem
from repositories.interfaces import IMatchRepository, IPlayerRepository
from services import error_codes
from services.result import Result

logger = logging.getLogger("lobby_server.services.match_finalizer")


@dataclass(frozen=True)
class RosterEntry:
    discord_id: str
    username: str
    snapshot_elo: int


@dataclass(frozen=True)
class FinalizeRequest:
    """
    Everything needed to record one match, captured from the lobby under its lock.

    The match ID is fixed here so that every retry writes the same record.
    """

    lobby_code: str
    team1: tuple[RosterEntry, ...]
    team2: tuple[RosterEntry, ...]
    winner: str  # TEAM1, TEAM2 or DRAW
    is_ranked: bool = True
    team1_color: int = 1
    team2_color: int = 5
    score: tuple[int, int] = (0, 0)
    stats: dict[str, CombatStats] = field(default_factory=dict)
    match_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def winning_team(self) -> int | None:
        if self.winner == TEAM1:
            return 1
        if self.winner == TEAM2:
            return 2
        return None

    @classmethod
    def from_lobby(cls, lobby: Lobby, winner: str, stats: dict | None = None) -> "FinalizeRequest":
        def roster(ids: list[str]) -> tuple[RosterEntry, ...]:
            entries = []
            for pid in ids:
                player = lobby.get_player(pid)
                if player is not None:
                    entries.append(RosterEntry(pid, player.username, player.elo))
            return tuple(entries)

        members = set(lobby.member_ids)
        parsed_stats = {}
        for pid, raw in (stats or {}).items():
            if str(pid) in members and isinstance(raw, dict):
                parsed_stats[str(pid)] = CombatStats.from_dict(raw)

        return cls(
            lobby_code=lobby.code,
            team1=roster(lobby.team1),
            team2=roster(lobby.team2),
            winner=winner,
            is_ranked=lobby.is_ranked,
            team1_color=lobby.team1_color,
            team2_color=lobby.team2_color,
            score=(lobby.score[TEAM1], lobby.score[TEAM2]),
            stats=parsed_stats,
        )


class MatchFinalizer:
    """
    Records match results.

    Storage failures are retried with the configured backoff. Each attempt
    re-reads ratings and writes everything in one transaction, so a failed
    attempt changes nothing and the caller's lobby state is never touched here.
    """

    def __init__(
        self,
        player_repo: IPlayerRepository,
        match_repo: IMatchRepository,
        rating_system: EloRatingSystem | None = None,
        retry_delays: list[float] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.player_repo = player_repo
        self.match_repo = match_repo
        self.rating_system = rating_system or EloRatingSystem()
        self.retry_delays = list(FINALIZE_RETRY_DELAYS if retry_delays is None else retry_delays)
        self.sleep = sleep

    def build_match(self, request: FinalizeRequest, stored_ratings: dict[str, int]) -> Match:
        """
        Compute ratings and assemble the Match. Pure given the same inputs.
        """

        def ratings(entries: tuple[RosterEntry, ...]) -> dict[str, int]:
            return {e.discord_id: stored_ratings.get(e.discord_id, e.snapshot_elo) for e in entries}

        team1_before = ratings(request.team1)
        team2_before = ratings(request.team2)
        change = self.rating_system.compute_match(
            team1_before, team2_before, request.winning_team, ranked=request.is_ranked
        )

        def participants(entries, before, after, team_number) -> tuple[MatchParticipant, ...]:
            return tuple(
                MatchParticipant(
                    discord_id=e.discord_id,
                    username=e.username,
                    team_number=team_number,
                    won=request.winning_team == team_number,
                    rating_before=before[e.discord_id],
                    rating_after=after[e.discord_id],
                    stats=request.stats.get(e.discord_id, CombatStats()),
                )
                for e in entries
            )

        if request.winning_team == 2:
            elo_gain, elo_loss = change.team2_delta, -change.team1_delta
        else:
            elo_gain, elo_loss = change.team1_delta, -change.team2_delta

        return Match(
            match_id=request.match_id,
            lobby_code=request.lobby_code,
            created_at=request.created_at,
            team1=participants(request.team1, team1_before, change.team1_after, 1),
            team2=participants(request.team2, team2_before, change.team2_after, 2),
            winning_team=request.winning_team,
            is_ranked=request.is_ranked,
            team1_color=request.team1_color,
            team2_color=request.team2_color,
            score=request.score,
            elo_gain=elo_gain,
            elo_loss=elo_loss,
        )

    def _record(self, request: FinalizeRequest) -> Match:
        ids = [e.discord_id for e in request.team1 + request.team2]
        stored = self.player_repo.get_ratings(ids)
        match = self.build_match(request, stored)
        self.match_repo.record_match(match)
        return match

    async def finalize(self, request: FinalizeRequest) -> Result[Match]:
        """
        Persist the match, retrying storage failures.

        Returns:
            Result with the Match, or STORAGE_UNAVAILABLE after the last retry
        """
        delays = [0.0] + self.retry_delays
        for attempt, delay in enumerate(delays, start=1):
            if delay > 0:
                await self.sleep(delay)
            try:
                match = await asyncio.to_thread(self._record, request)
            except sqlite3.IntegrityError:
                try:
                    existing = await asyncio.to_thread(self.match_repo.get_match, request.match_id)
                except sqlite3.Error:
                    existing = None
                if existing is not None:
                    logger.info(f"Match {request.match_id} was already recorded, reusing it")
                    return Result.ok(existing)
                logger.warning(f"Integrity error recording match {request.match_id} (attempt {attempt})")
            except (sqlite3.Error, OSError) as exc:
                logger.warning(
                    f"Storage failure recording match for lobby {request.lobby_code} "
                    f"(attempt {attempt}/{len(delays)}): {exc}"
                )
            else:
                logger.info(
                    f"Finalized match {match.match_id} for lobby {request.lobby_code}: "
                    f"winner={request.winner}, +{match.elo_gain}/-{match.elo_loss}"
                )
                return Result.ok(match)

        logger.error(f"Giving up recording match for lobby {request.lobby_code} after {len(delays)} attempts")
        return Result.fail(
            "Could not save the match result. The game is still in progress; try declaring the winner again.",
            code=error_codes.STORAGE_UNAVAILABLE,
        )
