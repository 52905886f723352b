"""
Repository for match data access.
"""

import logging
from datetime import datetime

from domain.models.match import STAT_FIELDS, CombatStats, Match, MatchParticipant
from repositories.base_repository import BaseRepository
from repositories.interfaces import IMatchRepository

logger = logging.getLogger("lobby_server.repositories.match")


class MatchRepository(BaseRepository, IMatchRepository):
    """
    Handles all match-related database operations.

    Responsibilities:
    - Match recording together with the profile updates it implies
    - Match participant tracking
    - Match history queries
    """

    def record_match(self, match: Match) -> str:
        """
        Persist a finished match and apply it to every participant's profile.

        Everything runs in a single BEGIN IMMEDIATE transaction: the match row,
        its participants, the profile totals and the per-class stats either all
        land or none do, so a failed attempt can simply be retried.

        Returns:
            Match ID

        Raises:
            sqlite3.Error: If the database is unavailable or the match already exists
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO matches (match_id, lobby_code, created_at, is_draw, is_ranked,
                                     winning_team, team1_color, team2_color,
                                     score_team1, score_team2, elo_gain, elo_loss)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    match.match_id,
                    match.lobby_code,
                    match.created_at.isoformat(),
                    match.is_draw,
                    match.is_ranked,
                    match.winning_team,
                    match.team1_color,
                    match.team2_color,
                    match.score[0],
                    match.score[1],
                    match.elo_gain,
                    match.elo_loss,
                ),
            )

            for participant in match.participants:
                stats = participant.stats
                cursor.execute(
                    """
                    INSERT INTO match_participants (match_id, discord_id, username, team_number, won,
                                                    rating_before, rating_after, class_name,
                                                    kills, deaths, assists, damage, healing)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        match.match_id,
                        participant.discord_id,
                        participant.username,
                        participant.team_number,
                        participant.won,
                        participant.rating_before,
                        participant.rating_after,
                        stats.class_name,
                        stats.kills,
                        stats.deaths,
                        stats.assists,
                        stats.damage,
                        stats.healing,
                    ),
                )
                self._apply_to_profile(cursor, match, participant)

            logger.info(
                f"Recorded match {match.match_id} for lobby {match.lobby_code} "
                f"({len(match.participants)} participants, winning_team={match.winning_team})"
            )
            return match.match_id

    @staticmethod
    def _apply_to_profile(cursor, match: Match, participant: MatchParticipant) -> None:
        won = 1 if participant.won else 0
        lost = 1 if not match.is_draw and not participant.won else 0
        drew = 1 if match.is_draw else 0
        stats = participant.stats
        cursor.execute(
            "INSERT OR IGNORE INTO players (discord_id, username, elo) VALUES (?, ?, ?)",
            (participant.discord_id, participant.username, participant.rating_before),
        )
        cursor.execute(
            """
            UPDATE players SET
                elo = ?,
                wins = COALESCE(wins, 0) + ?,
                losses = COALESCE(losses, 0) + ?,
                draws = COALESCE(draws, 0) + ?,
                games_played = COALESCE(games_played, 0) + 1,
                total_kills = COALESCE(total_kills, 0) + ?,
                total_deaths = COALESCE(total_deaths, 0) + ?,
                total_assists = COALESCE(total_assists, 0) + ?,
                total_damage = COALESCE(total_damage, 0) + ?,
                total_healing = COALESCE(total_healing, 0) + ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE discord_id = ?
            """,
            (
                participant.rating_after,
                won,
                lost,
                drew,
                stats.kills,
                stats.deaths,
                stats.assists,
                stats.damage,
                stats.healing,
                participant.discord_id,
            ),
        )
        if stats.class_name is None:
            return
        cursor.execute(
            """
            INSERT INTO player_class_stats (discord_id, class_name, games, wins,
                                            kills, deaths, assists, damage, healing)
            VALUES (?, ?, 1, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(discord_id, class_name) DO UPDATE SET
                games = games + 1,
                wins = wins + excluded.wins,
                kills = kills + excluded.kills,
                deaths = deaths + excluded.deaths,
                assists = assists + excluded.assists,
                damage = damage + excluded.damage,
                healing = healing + excluded.healing
            """,
            (
                participant.discord_id,
                stats.class_name,
                won,
                stats.kills,
                stats.deaths,
                stats.assists,
                stats.damage,
                stats.healing,
            ),
        )

    def get_match(self, match_id: str) -> Match | None:
        """Get match by ID."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM matches WHERE match_id = ?", (match_id,))
            row = cursor.fetchone()
            if not row:
                return None
            return self._load_match(cursor, row)

    def get_recent_matches(self, limit: int = 20, offset: int = 0) -> list[Match]:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM matches ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = cursor.fetchall()
            return [self._load_match(cursor, row) for row in rows]

    def get_player_matches(self, discord_id: str, limit: int = 10) -> list[Match]:
        """Get recent matches for a player."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT m.*
                FROM matches m
                JOIN match_participants mp ON m.match_id = mp.match_id
                WHERE mp.discord_id = ?
                ORDER BY m.created_at DESC
                LIMIT ?
                """,
                (discord_id, limit),
            )
            rows = cursor.fetchall()
            return [self._load_match(cursor, row) for row in rows]

    def get_match_count(self) -> int:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM matches")
            return cursor.fetchone()["count"]

    def _load_match(self, cursor, row) -> Match:
        cursor.execute(
            "SELECT * FROM match_participants WHERE match_id = ? ORDER BY team_number, rowid",
            (row["match_id"],),
        )
        participants = [self._row_to_participant(p) for p in cursor.fetchall()]
        return Match(
            match_id=row["match_id"],
            lobby_code=row["lobby_code"],
            created_at=datetime.fromisoformat(row["created_at"]),
            team1=tuple(p for p in participants if p.team_number == 1),
            team2=tuple(p for p in participants if p.team_number == 2),
            winning_team=row["winning_team"],
            is_ranked=bool(row["is_ranked"]),
            team1_color=row["team1_color"],
            team2_color=row["team2_color"],
            score=(row["score_team1"] or 0, row["score_team2"] or 0),
            elo_gain=row["elo_gain"] or 0,
            elo_loss=row["elo_loss"] or 0,
        )

    @staticmethod
    def _row_to_participant(row) -> MatchParticipant:
        return MatchParticipant(
            discord_id=row["discord_id"],
            username=row["username"],
            team_number=row["team_number"],
            won=bool(row["won"]),
            rating_before=row["rating_before"],
            rating_after=row["rating_after"],
            stats=CombatStats(
                class_name=row["class_name"],
                **{name: row[name] or 0 for name in STAT_FIELDS},
            ),
        )
