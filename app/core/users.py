from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional

from logging_utils import get_logger

log = get_logger("users")

STATUS_ACTIVE = "Active"
STATUS_EXPIRED = "Expired"
VALID_STATUSES = (STATUS_ACTIVE, STATUS_EXPIRED)

_USER_COLUMNS = """
    id, username, email, plex_username, plex_token, avatar,
    subscription_status, subscription_expiration
"""


@dataclass
class LocalUser:
    id: int
    username: str
    email: Optional[str] = None
    plex_username: Optional[str] = None
    plex_token: Optional[str] = None
    avatar: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_expiration: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "LocalUser":
        r = dict(row)
        return cls(
            id=int(r["id"]),
            username=r.get("username") or "",
            email=r.get("email"),
            plex_username=r.get("plex_username"),
            plex_token=r.get("plex_token"),
            avatar=r.get("avatar"),
            subscription_status=r.get("subscription_status"),
            subscription_expiration=r.get("subscription_expiration"),
        )


class UserRepository:
    """
    Accès aux utilisateurs locaux via DBManager.
    Lecture seule pour les passes d'enforcement, sauf le sweep d'expiration.
    """

    def __init__(self, db) -> None:
        self.db = db

    def find_by_id(self, user_id: int) -> Optional[LocalUser]:
        row = self.db.query_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
            (int(user_id),),
        )
        return LocalUser.from_row(row) if row else None

    def find_by_plex_username(self, plex_username: Optional[str]) -> Optional[LocalUser]:
        if not plex_username:
            return None

        rows = self.db.query(
            f"SELECT {_USER_COLUMNS} FROM users WHERE plex_username = ? ORDER BY id ASC",
            (str(plex_username),),
        )
        if not rows:
            return None

        if len(rows) > 1:
            ids = [int(r["id"]) for r in rows]
            log.warning(
                f"DataIntegrityWarning: plex_username={plex_username} matches {len(rows)} users {ids}, using id={ids[0]}"
            )

        return LocalUser.from_row(rows[0])

    def list_active_subscriptions(self) -> List[LocalUser]:
        rows = self.db.query(
            f"SELECT {_USER_COLUMNS} FROM users WHERE subscription_status = ? ORDER BY id ASC",
            (STATUS_ACTIVE,),
        )
        return [LocalUser.from_row(r) for r in rows]

    def save_subscription(self, user: LocalUser) -> None:
        self.db.execute(
            """
            UPDATE users
            SET subscription_status = ?,
                subscription_expiration = ?
            WHERE id = ?
            """,
            (user.subscription_status, user.subscription_expiration, user.id),
        )
