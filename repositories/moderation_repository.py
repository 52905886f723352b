"""
Repository for cross-lobby moderation state: timeouts and purge immunity.
"""

import logging

from repositories.base_repository import BaseRepository
from repositories.interfaces import IModerationRepository

logger = logging.getLogger("lobby_server.repositories.moderation")


class ModerationRepository(BaseRepository, IModerationRepository):
    """
    Handles player_timeouts and purge_immunity persistence.

    Both outlive any single lobby: a timeout blocks joining every lobby,
    and immunity is carried into the player's next purge.
    """

    def set_timeout(self, discord_id: str, expires_at: float, reason: str | None, issued_by: str | None) -> None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO player_timeouts (discord_id, expires_at, reason, issued_by)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(discord_id) DO UPDATE SET
                    expires_at = excluded.expires_at,
                    reason = excluded.reason,
                    issued_by = excluded.issued_by
                """,
                (discord_id, expires_at, reason, issued_by),
            )

    def get_active_timeout(self, discord_id: str, now: float) -> dict | None:
        """Return the timeout row if it has not expired yet."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM player_timeouts WHERE discord_id = ? AND expires_at > ?",
                (discord_id, now),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def clear_timeout(self, discord_id: str) -> bool:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM player_timeouts WHERE discord_id = ?", (discord_id,))
            return cursor.rowcount > 0

    def grant_immunity(self, discord_id: str, source_lobby: str, granted_at: float) -> None:
        """Grant one immunity token. A player holds at most one."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO purge_immunity (discord_id, granted_at, source_lobby)
                VALUES (?, ?, ?)
                """,
                (discord_id, granted_at, source_lobby),
            )

    def get_immune_ids(self, discord_ids: list[str]) -> set[str]:
        if not discord_ids:
            return set()
        placeholders = self.placeholders(discord_ids)
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT discord_id FROM purge_immunity WHERE discord_id IN ({placeholders})",
                discord_ids,
            )
            return {row["discord_id"] for row in cursor.fetchall()}

    def consume_immunity(self, discord_ids: list[str]) -> int:
        """Spend the tokens of the given players. Returns how many were removed."""
        if not discord_ids:
            return 0
        placeholders = self.placeholders(discord_ids)
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"DELETE FROM purge_immunity WHERE discord_id IN ({placeholders})",
                discord_ids,
            )
            return cursor.rowcount
