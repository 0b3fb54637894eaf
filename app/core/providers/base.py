from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.sessions.models import AccountMember, OwnerIdentity, Session


@dataclass
class ServerConfig:
    type: str              # 'plex'
    url: Optional[str]
    token: Optional[str]


class BaseProvider:
    provider_name: str

    def __init__(self, server: ServerConfig, timeout: int = 8) -> None:
        self.server = server
        self.timeout = timeout

    def get_active_sessions(self) -> List[Session]:
        """
        Retourne les sessions NORMALISÉES (core.sessions.models.Session),
        pas le raw du provider.
        """
        raise NotImplementedError

    def terminate_session(self, session_id: str, reason: str = "") -> bool:
        raise NotImplementedError

    def get_own_identity(self) -> OwnerIdentity:
        raise NotImplementedError

    def list_account_members(self) -> List[AccountMember]:
        raise NotImplementedError

    def fetch_image(self, path: str) -> Tuple[bytes, str]:
        raise NotImplementedError
