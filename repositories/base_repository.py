"""
Base repository: SQLite connections, transactions and small SQL helpers.
"""

import logging
import sqlite3
from abc import ABC
from collections.abc import Sequence
from contextlib import contextmanager

from infrastructure.schema_manager import SchemaManager

logger = logging.getLogger("lobby_server.repositories")


class BaseRepository(ABC):
    """
    Base class for the player, match and moderation stores.

    Every public method opens its own short-lived connection, so repositories
    are safe to call from worker threads (the match finalizer and FastAPI's
    threadpool both do).
    """

    # DB paths whose schema has been brought up to date in this process
    _ready_paths: set[str] = set()

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path not in BaseRepository._ready_paths:
            SchemaManager(db_path).initialize()
            BaseRepository._ready_paths.add(db_path)
            logger.debug(f"Schema ready for {db_path}")

    def get_connection(self) -> sqlite3.Connection:
        """Open a connection with dict-style rows, WAL and a busy timeout."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextmanager
    def connection(self):
        """
        Connection that commits on success, rolls back on exception,
        and is always closed.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def atomic_transaction(self):
        """
        Transaction holding the write lock from its first statement.

        BEGIN IMMEDIATE keeps a match write (match row, participants, profile
        totals) from interleaving with another writer; any exception rolls
        the whole thing back.

        Usage:
            with self.atomic_transaction() as conn:
                cursor = conn.cursor()
                cursor.execute(...)
        """
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def placeholders(values: Sequence) -> str:
        """`?,?,?` for an IN (...) clause over `values`."""
        return ",".join("?" * len(values))

    @staticmethod
    def escape_like(text: str) -> str:
        """Escape LIKE wildcards; pair with ESCAPE '\\'."""
        return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
