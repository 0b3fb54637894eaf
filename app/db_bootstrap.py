from db_manager import DBManager
from logging_utils import get_logger

log = get_logger("db_bootstrap")

DEFAULT_SHARING_REASON = (
    "Activité suspecte détectée. Vos sessions Plex ont été arrêtées "
    "en raison d'une tentative de partage de compte."
)
DEFAULT_SUBSCRIPTION_REASON = (
    "Votre abonnement a expiré. Renouvelez-le pour retrouver l'accès."
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    email TEXT,
    plex_username TEXT,
    plex_token TEXT,
    avatar TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_users_plex_username ON users(plex_username);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL
);
"""

# ---------------------------------------------------------
# Utility: checks
# ---------------------------------------------------------

def table_exists(db: DBManager, table: str) -> bool:
    row = db.query_one("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return row is not None


def column_exists(db: DBManager, table: str, column: str) -> bool:
    rows = db.query(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in rows)


def ensure_column(db: DBManager, table: str, column: str, definition: str) -> None:
    if not column_exists(db, table, column):
        log.info(f"Ajout de la colonne manquante : {table}.{column}")
        db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def ensure_row(db: DBManager, table: str, where_clause: str, values: dict) -> None:
    row = db.query_one(f"SELECT COUNT(*) AS cnt FROM {table} WHERE {where_clause}", values)
    if row["cnt"] == 0:
        fields = ", ".join(values.keys())
        placeholders = ", ".join(["?"] * len(values))
        db.execute(
            f"INSERT INTO {table} ({fields}) VALUES ({placeholders})",
            tuple(values.values()),
        )


# ---------------------------------------------------------
# MIGRATIONS
# ---------------------------------------------------------

def run_migrations(db: DBManager | None = None) -> None:
    db = db or DBManager()
    log.info("Running DB migrations…")

    db.executescript(SCHEMA)

    # -------------------------------------------------
    # 1. Colonnes abonnement (users)
    # -------------------------------------------------
    ensure_column(db, "users", "subscription_status", "TEXT DEFAULT NULL")
    ensure_column(db, "users", "subscription_expiration", "TIMESTAMP DEFAULT NULL")

    # -------------------------------------------------
    # 2. Colonnes tasks (scheduler)
    # -------------------------------------------------
    TASK_COLUMNS = {
        "description": "TEXT",
        "schedule": "TEXT",
        "enabled": "INTEGER DEFAULT 1",
        "status": "TEXT DEFAULT 'idle'",
        "last_run": "TIMESTAMP",
        "next_run": "TIMESTAMP",
        "last_error": "TEXT",
        "queued_count": "INTEGER NOT NULL DEFAULT 0",
        "updated_at": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    }

    for col, definition in TASK_COLUMNS.items():
        ensure_column(db, "tasks", col, definition)

    # -------------------------------------------------
    # 3. Colonnes settings (Plex / Tautulli / TMDB)
    # -------------------------------------------------
    SETTINGS_COLUMNS = {
        "plex_hostname": "TEXT DEFAULT NULL",
        "plex_port": "INTEGER DEFAULT 32400",
        "plex_use_ssl": "INTEGER DEFAULT 0",
        "tautulli_hostname": "TEXT DEFAULT NULL",
        "tautulli_port": "INTEGER DEFAULT 8181",
        "tautulli_api_key": "TEXT DEFAULT NULL",
        "tautulli_use_ssl": "INTEGER DEFAULT 0",
        "tmdb_api_key": "TEXT DEFAULT NULL",
        "tmdb_language": "TEXT DEFAULT 'fr'",
        "service_account_user_id": "INTEGER DEFAULT 1",
        "plex_stop_subscription_reason": "TEXT DEFAULT NULL",
        "plex_sharing_reason": "TEXT DEFAULT NULL",
        "debug_mode": "INTEGER DEFAULT 0",
    }

    for col, definition in SETTINGS_COLUMNS.items():
        ensure_column(db, "settings", col, definition)

    ensure_row(db, "settings", "id = :id", {"id": 1})

    db.execute(
        """
        UPDATE settings
        SET plex_sharing_reason = COALESCE(plex_sharing_reason, ?),
            plex_stop_subscription_reason = COALESCE(plex_stop_subscription_reason, ?)
        WHERE id = 1
        """,
        (DEFAULT_SHARING_REASON, DEFAULT_SUBSCRIPTION_REASON),
    )

    # -------------------------------------------------
    # 4. Tâches planifiées
    # -------------------------------------------------
    ensure_row(db, "tasks", "name = :name", {
        "name": "plex_account_sharing",
        "description": "Coupe les sessions d'un compte partagé depuis plusieurs IP",
        "schedule": "*/1 * * * *",
        "enabled": 1,
        "status": "idle",
    })

    ensure_row(db, "tasks", "name = :name", {
        "name": "plex_subscriptions",
        "description": "Coupe les streams des utilisateurs sans abonnement actif",
        "schedule": "*/1 * * * *",
        "enabled": 1,
        "status": "idle",
    })

    ensure_row(db, "tasks", "name = :name", {
        "name": "subscription_expiration",
        "description": "Passe en Expired les abonnements arrivés à échéance",
        "schedule": "*/5 * * * *",
        "enabled": 1,
        "status": "idle",
    })

    log.info("Migrations completed successfully")


if __name__ == "__main__":
    run_migrations()
