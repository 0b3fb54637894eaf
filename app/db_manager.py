import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

from logging_utils import get_logger

log = get_logger("db_manager")

DEFAULT_DB_PATH = "/appdata/database.db"

PRAGMAS = (
    "PRAGMA foreign_keys = ON;",
    "PRAGMA journal_mode = WAL;",
    "PRAGMA synchronous = NORMAL;",
    "PRAGMA busy_timeout = 5000;",
)


class DBManager:
    """
    Point d'accès SQLite partagé par les routes Flask, le scheduler et le
    worker des passes d'enforcement.

    Une seule connexion par process : toutes les opérations passent par
    self._lock, lectures comprises.
    """

    _instance: Optional["DBManager"] = None
    _instance_lock = threading.Lock()

    def __new__(cls, db_path: Optional[str] = None):
        with cls._instance_lock:
            if cls._instance is None:
                inst = super().__new__(cls)
                inst._ready = False
                cls._instance = inst
        return cls._instance

    def __init__(self, db_path: Optional[str] = None):
        if self._ready:
            return

        self.db_path = db_path or os.environ.get("DATABASE_PATH", DEFAULT_DB_PATH)
        self._lock = threading.RLock()
        self.conn = self._connect(self.db_path)
        self._ready = True

        log.info(f"SQLite ouvert : {self.db_path}")

    @staticmethod
    def _connect(path: str) -> sqlite3.Connection:
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        for pragma in PRAGMAS:
            conn.execute(pragma)
        return conn

    # ----------------------------
    # Écritures
    # ----------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """commit si le bloc se termine, rollback sinon."""
        with self._lock:
            try:
                yield self.conn
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        with self.transaction() as conn:
            return conn.execute(sql, params)

    def executescript(self, script: str) -> None:
        with self.transaction() as conn:
            conn.executescript(script)

    # ----------------------------
    # Lectures
    # ----------------------------

    def query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def close(self) -> None:
        with self._lock:
            self.conn.close()
            log.info("SQLite fermé")
