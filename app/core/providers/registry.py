from __future__ import annotations

from typing import Optional

from errors import PreconditionMissing
from core.providers.plex import PlexProvider
from core.providers.base import ServerConfig
from core.users import UserRepository

DEFAULT_TIMEOUT = 8


def load_settings(db) -> dict:
    row = db.query_one("SELECT * FROM settings WHERE id = 1")
    if not row:
        raise PreconditionMissing("settings row (id=1) missing")
    return dict(row)


def _plex_base_url(settings: dict) -> Optional[str]:
    host = (settings.get("plex_hostname") or "").strip()
    if not host:
        return None
    if host.startswith("http://") or host.startswith("https://"):
        return host.rstrip("/")
    scheme = "https" if int(settings.get("plex_use_ssl") or 0) else "http"
    port = settings.get("plex_port") or 32400
    return f"{scheme}://{host}:{int(port)}"


def get_service_token(db, settings: dict) -> str:
    """
    Token Plex du compte de service (settings.service_account_user_id).
    """
    try:
        user_id = int(settings.get("service_account_user_id") or 1)
    except (TypeError, ValueError):
        raise PreconditionMissing("settings.service_account_user_id invalid")

    user = UserRepository(db).find_by_id(user_id)
    if not user or not user.plex_token:
        raise PreconditionMissing(f"User with ID {user_id} or their Plex token not found.")
    return user.plex_token


def get_provider(db, timeout: int = DEFAULT_TIMEOUT) -> PlexProvider:
    settings = load_settings(db)

    base = _plex_base_url(settings)
    if not base:
        raise PreconditionMissing("Plex hostname not configured (settings.plex_hostname)")

    server = ServerConfig(
        type="plex",
        url=base,
        token=get_service_token(db, settings),
    )
    return PlexProvider(server, timeout=timeout)
