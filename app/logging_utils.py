"""
Logging applicatif : un logger racine `streamkeeper` écrit dans un fichier
tournant, avec anonymisation des e-mails et des secrets (tokens Plex,
clés API Tautulli / TMDB) tant que settings.debug_mode est à 0.
"""

import logging
import os
import re
import sqlite3
import time
from logging.handlers import RotatingFileHandler

ROOT_LOGGER = "streamkeeper"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUPS = 5

LOG_DIR = os.environ.get("STREAMKEEPER_LOG_DIR", "/logs")
LOG_FILE = os.path.join(LOG_DIR, "app.log")


class DebugModeReader:
    """
    Lit settings.debug_mode hors Flask (threads du scheduler compris),
    avec un cache de quelques secondes. Base absente -> False.
    """

    def __init__(self, ttl: float = 10.0):
        self.ttl = ttl
        self._value = False
        self._checked_at = 0.0

    def __call__(self) -> bool:
        now = time.monotonic()
        if self._checked_at and now - self._checked_at < self.ttl:
            return self._value

        db_path = os.environ.get("DATABASE_PATH", "/appdata/database.db")
        try:
            conn = sqlite3.connect(db_path)
            try:
                row = conn.execute("SELECT debug_mode FROM settings WHERE id = 1").fetchone()
            finally:
                conn.close()
            self._value = bool(row and row[0] == 1)
        except sqlite3.Error:
            self._value = False

        self._checked_at = now
        return self._value


is_debug_mode_enabled = DebugModeReader()


class AnonymizeFilter(logging.Filter):
    """Masque e-mails et secrets dans le message final."""

    EMAIL_REGEX = re.compile(
        r'([a-zA-Z0-9._%+-])([a-zA-Z0-9._%+-]*)(@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})'
    )

    TOKEN_REGEX = re.compile(
        r'(?i)\b(x-plex-token|token|apikey|api_key|authorization|bearer)\b\s*[:=]\s*[a-z0-9\-._]+'
    )

    @classmethod
    def scrub(cls, text: str) -> str:
        text = cls.EMAIL_REGEX.sub(
            lambda m: m.group(1) + "*" * len(m.group(2)) + m.group(3), text
        )
        return cls.TOKEN_REGEX.sub(lambda m: f"{m.group(1)}=***REDACTED***", text)

    def filter(self, record: logging.LogRecord) -> bool:
        if is_debug_mode_enabled():
            return True

        record.msg = self.scrub(record.getMessage())
        record.args = ()
        return True


def _build_root_logger() -> logging.Logger:
    os.makedirs(LOG_DIR, exist_ok=True)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    if not root.handlers:
        handler = RotatingFileHandler(
            LOG_FILE, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(AnonymizeFilter())
        root.addHandler(handler)

    return root


logger = _build_root_logger()


def get_logger(name: str) -> logging.Logger:
    """ex: get_logger("tasks_engine") -> streamkeeper.tasks_engine"""
    return logger.getChild(name)
