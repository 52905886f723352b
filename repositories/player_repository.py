"""
Repository for player profile data access.
"""

import logging

from domain.models.match import STAT_FIELDS
from domain.models.player import PlayerProfile
from repositories.base_repository import BaseRepository
from repositories.interfaces import IPlayerRepository

logger = logging.getLogger("lobby_server.repositories.player")


class PlayerRepository(BaseRepository, IPlayerRepository):
    """
    Handles all player-related database operations.

    Responsibilities:
    - Profile creation on first join
    - Rating lookups for lobby snapshots and match finalization
    - Leaderboard and search queries
    """

    def ensure_profile(
        self, discord_id: str, username: str, avatar: str | None, default_elo: int
    ) -> PlayerProfile:
        """
        Create the profile if missing, otherwise refresh username and avatar.

        Returns:
            The stored profile
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO players (discord_id, username, avatar, elo)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(discord_id) DO UPDATE SET
                    username = excluded.username,
                    avatar = COALESCE(excluded.avatar, players.avatar),
                    updated_at = CURRENT_TIMESTAMP
                """,
                (discord_id, username, avatar, default_elo),
            )
            cursor.execute("SELECT * FROM players WHERE discord_id = ?", (discord_id,))
            return self._row_to_profile(cursor.fetchone())

    def get_by_id(self, discord_id: str) -> PlayerProfile | None:
        """Get a profile with its per-class stats."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM players WHERE discord_id = ?", (discord_id,))
            row = cursor.fetchone()
            if not row:
                return None
            profile = self._row_to_profile(row)

            cursor.execute(
                "SELECT * FROM player_class_stats WHERE discord_id = ? ORDER BY games DESC",
                (discord_id,),
            )
            profile.class_stats = {
                stat_row["class_name"]: {
                    "games": stat_row["games"],
                    "wins": stat_row["wins"],
                    **{name: stat_row[name] for name in STAT_FIELDS},
                }
                for stat_row in cursor.fetchall()
            }
            return profile

    def get_ratings(self, discord_ids: list[str]) -> dict[str, int]:
        """Map of discord_id -> elo for the IDs that have a profile."""
        if not discord_ids:
            return {}
        placeholders = self.placeholders(discord_ids)
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT discord_id, elo FROM players WHERE discord_id IN ({placeholders})",
                discord_ids,
            )
            return {row["discord_id"]: row["elo"] for row in cursor.fetchall()}

    def get_all(self, limit: int = 100, offset: int = 0) -> list[PlayerProfile]:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM players ORDER BY username COLLATE NOCASE LIMIT ? OFFSET ?",
                (limit, offset),
            )
            return [self._row_to_profile(row) for row in cursor.fetchall()]

    def search(self, query: str, limit: int = 20) -> list[PlayerProfile]:
        """Case-insensitive substring search on username."""
        escaped = self.escape_like(query)
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM players
                WHERE LOWER(username) LIKE LOWER(?) ESCAPE '\\'
                ORDER BY elo DESC, username COLLATE NOCASE
                LIMIT ?
                """,
                (f"%{escaped}%", limit),
            )
            return [self._row_to_profile(row) for row in cursor.fetchall()]

    def get_leaderboard(self, limit: int = 50, offset: int = 0) -> list[PlayerProfile]:
        """
        Get players for leaderboard, sorted by ELO descending.

        Uses SQL sorting to avoid loading all players into memory.

        Args:
            limit: Maximum number of players to return
            offset: Number of players to skip (for pagination)

        Returns:
            List of PlayerProfile objects sorted by elo DESC, wins DESC
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM players
                ORDER BY elo DESC, COALESCE(wins, 0) DESC, username COLLATE NOCASE
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            return [self._row_to_profile(row) for row in cursor.fetchall()]

    def get_player_count(self) -> int:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM players")
            return cursor.fetchone()["count"]

    @staticmethod
    def _row_to_profile(row) -> PlayerProfile:
        return PlayerProfile(
            discord_id=row["discord_id"],
            username=row["username"],
            avatar=row["avatar"],
            elo=row["elo"],
            wins=row["wins"] or 0,
            losses=row["losses"] or 0,
            draws=row["draws"] or 0,
            games_played=row["games_played"] or 0,
            total_kills=row["total_kills"] or 0,
            total_deaths=row["total_deaths"] or 0,
            total_assists=row["total_assists"] or 0,
            total_damage=row["total_damage"] or 0,
            total_healing=row["total_healing"] or 0,
        )
