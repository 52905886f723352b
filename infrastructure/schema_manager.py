"""
Schema and migration management for SQLite database.
"""

import logging
import sqlite3

logger = logging.getLogger("lobby_server.schema")


class SchemaManager:
    """
    Owns schema creation and migrations.

    Call initialize() to ensure schema is present and migrations are applied.
    """

    def __init__(self, db_path: str, use_uri: bool = False):
        self.db_path = db_path
        self.use_uri = use_uri

    def initialize(self) -> None:
        """Create base schema and apply migrations."""
        logger.info(f"Initializing database schema: {self.db_path}")
        conn = self._connect()
        try:
            cursor = conn.cursor()
            self._create_base_schema(cursor)
            self._create_schema_migrations_table(cursor)
            self._run_migrations(cursor)
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, uri=self.use_uri)
        conn.row_factory = sqlite3.Row
        if not self.use_uri:  # Skip WAL for in-memory databases
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _create_base_schema(self, cursor) -> None:
        # Player profiles
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS players (
                discord_id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                avatar TEXT,
                elo INTEGER NOT NULL,
                wins INTEGER DEFAULT 0,
                losses INTEGER DEFAULT 0,
                draws INTEGER DEFAULT 0,
                games_played INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

        # Matches table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS matches (
                match_id TEXT PRIMARY KEY,
                lobby_code TEXT NOT NULL,
                created_at TEXT NOT NULL,
                is_draw BOOLEAN DEFAULT 0,
                is_ranked BOOLEAN DEFAULT 1,
                winning_team INTEGER,
                team1_color INTEGER,
                team2_color INTEGER,
                elo_gain INTEGER DEFAULT 0,
                elo_loss INTEGER DEFAULT 0
            )
            """
        )

        # Match participants
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS match_participants (
                match_id TEXT,
                discord_id TEXT,
                username TEXT,
                team_number INTEGER,
                won BOOLEAN,
                rating_before INTEGER,
                rating_after INTEGER,
                FOREIGN KEY (match_id) REFERENCES matches(match_id),
                PRIMARY KEY (match_id, discord_id)
            )
            """
        )

    # --- Migration helpers ---

    def _add_column_if_not_exists(self, cursor, table: str, column: str, column_type: str) -> None:
        try:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
        except sqlite3.OperationalError:
            pass

    def _create_schema_migrations_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def _run_migrations(self, cursor) -> None:
        applied = {row["name"] for row in cursor.execute("SELECT name FROM schema_migrations")}
        for name, action in self._get_migrations():
            if name in applied:
                continue
            logger.info(f"Applying migration: {name}")
            action(cursor)
            cursor.execute(
                "INSERT INTO schema_migrations (name) VALUES (?)",
                (name,),
            )

    def _get_migrations(self):
        return [
            ("add_combat_totals_to_players", self._migration_add_combat_totals_to_players),
            ("add_participant_combat_stats", self._migration_add_participant_combat_stats),
            ("add_match_score_columns", self._migration_add_match_score_columns),
            ("create_player_class_stats_table", self._migration_create_player_class_stats_table),
            ("create_player_timeouts_table", self._migration_create_player_timeouts_table),
            ("create_purge_immunity_table", self._migration_create_purge_immunity_table),
            ("add_indexes_v1", self._migration_add_indexes_v1),
        ]

    # --- Migrations ---

    def _migration_add_combat_totals_to_players(self, cursor) -> None:
        for column in ("total_kills", "total_deaths", "total_assists", "total_damage", "total_healing"):
            self._add_column_if_not_exists(cursor, "players", column, "INTEGER DEFAULT 0")

    def _migration_add_participant_combat_stats(self, cursor) -> None:
        self._add_column_if_not_exists(cursor, "match_participants", "class_name", "TEXT")
        for column in ("kills", "deaths", "assists", "damage", "healing"):
            self._add_column_if_not_exists(cursor, "match_participants", column, "INTEGER DEFAULT 0")

    def _migration_add_match_score_columns(self, cursor) -> None:
        self._add_column_if_not_exists(cursor, "matches", "score_team1", "INTEGER DEFAULT 0")
        self._add_column_if_not_exists(cursor, "matches", "score_team2", "INTEGER DEFAULT 0")

    def _migration_create_player_class_stats_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS player_class_stats (
                discord_id TEXT NOT NULL,
                class_name TEXT NOT NULL,
                games INTEGER DEFAULT 0,
                wins INTEGER DEFAULT 0,
                kills INTEGER DEFAULT 0,
                deaths INTEGER DEFAULT 0,
                assists INTEGER DEFAULT 0,
                damage INTEGER DEFAULT 0,
                healing INTEGER DEFAULT 0,
                PRIMARY KEY (discord_id, class_name),
                FOREIGN KEY (discord_id) REFERENCES players(discord_id)
            )
            """
        )

    def _migration_create_player_timeouts_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS player_timeouts (
                discord_id TEXT PRIMARY KEY,
                expires_at REAL NOT NULL,
                reason TEXT,
                issued_by TEXT
            )
            """
        )

    def _migration_create_purge_immunity_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS purge_immunity (
                discord_id TEXT PRIMARY KEY,
                granted_at REAL NOT NULL,
                source_lobby TEXT
            )
            """
        )

    def _migration_add_indexes_v1(self, cursor) -> None:
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_players_elo ON players(elo DESC, wins DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_matches_created_at ON matches(created_at DESC)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_match_participants_discord_id ON match_participants(discord_id)"
        )
