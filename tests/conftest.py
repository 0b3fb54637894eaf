import os
import sys
import tempfile
from pathlib import Path

import pytest

# Environnement de test : base et logs jetables, pas de scheduler
_TMP = tempfile.mkdtemp(prefix="streamkeeper-tests-")
os.environ.update({
    "DATABASE_PATH": os.path.join(_TMP, "test.db"),
    "STREAMKEEPER_LOG_DIR": os.path.join(_TMP, "logs"),
    "STREAMKEEPER_START_SCHEDULER": "0",
})

# Ensure `app` directory is on sys.path so top-level modules resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
APP_DIR = PROJECT_ROOT / "app"
app_dir_str = str(APP_DIR)
if app_dir_str not in sys.path:
    sys.path.insert(0, app_dir_str)

from core.sessions.models import AccountMember, OwnerIdentity, Session  # noqa: E402


@pytest.fixture
def db():
    from db_bootstrap import run_migrations
    from db_manager import DBManager

    manager = DBManager(os.environ["DATABASE_PATH"])
    run_migrations(manager)

    manager.execute("DELETE FROM users")
    manager.execute("DELETE FROM sqlite_sequence WHERE name = 'users'")
    manager.execute(
        """
        UPDATE settings
        SET plex_hostname = NULL, tautulli_hostname = NULL, tautulli_api_key = NULL,
            tmdb_api_key = NULL, service_account_user_id = 1
        WHERE id = 1
        """
    )
    manager.execute("UPDATE tasks SET status = 'idle', queued_count = 0, enabled = 1, last_error = NULL")
    return manager


@pytest.fixture
def add_user(db):
    def _add(username, plex_username=None, status=None, expiration=None, plex_token=None, avatar=None):
        cur = db.execute(
            """
            INSERT INTO users (username, plex_username, plex_token, avatar,
                               subscription_status, subscription_expiration)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (username, plex_username, plex_token, avatar, status, expiration),
        )
        return cur.lastrowid
    return _add


@pytest.fixture
def app(db):
    from app import create_app

    flask_app = create_app()
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def owner():
    return OwnerIdentity(display_name="Owner", username="owner_user", email="owner@example.com")


@pytest.fixture
def members():
    return [
        AccountMember(display_name="Alice", username="alice", email="alice@example.com"),
        AccountMember(display_name="Bob B.", username="bob", email="bob@example.com"),
    ]


def make_session(session_id, display_name, remote_ip, **kwargs):
    return Session(session_id=session_id, display_name=display_name, remote_ip=remote_ip, **kwargs)
