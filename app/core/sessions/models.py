from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Session:
    """
    Session de lecture telle que listée par le serveur média.
    Transitoire : relue à chaque poll.
    """
    session_id: Optional[str]
    display_name: Optional[str]     # User.title côté Plex (ambigu)
    remote_ip: Optional[str]        # IP publique du player
    media_type: Optional[str] = None
    playback_state: Optional[str] = None

    # Enrichissement (endpoint /plexstreams uniquement)
    username: Optional[str] = None  # vrai username quand Plex l'expose
    title: Optional[str] = None
    grandparent_title: Optional[str] = None
    year: Optional[int] = None
    thumb: Optional[str] = None
    grandparent_thumb: Optional[str] = None
    art: Optional[str] = None
    view_offset_ms: Optional[int] = None
    duration_ms: Optional[int] = None

    def is_usable(self) -> bool:
        return bool(self.session_id and self.display_name and self.remote_ip)


@dataclass
class AccountMember:
    display_name: str
    username: str
    email: Optional[str] = None


@dataclass
class OwnerIdentity:
    display_name: str
    username: str
    email: Optional[str] = None


@dataclass
class ResolvedSession:
    session: Session
    canonical_username: str
    resolved: bool                  # False = fallback sur display_name
    email: Optional[str] = None

    @property
    def session_id(self) -> str:
        return str(self.session.session_id)

    @property
    def remote_ip(self) -> str:
        return str(self.session.remote_ip)


@dataclass
class SharingIncident:
    canonical_username: str
    baseline: ResolvedSession
    offender: ResolvedSession
    terminated: List[str] = field(default_factory=list)


@dataclass
class SharingReport:
    sessions_seen: int = 0
    sessions_resolved: int = 0
    incidents: List[SharingIncident] = field(default_factory=list)

    @property
    def incident_count(self) -> int:
        return len(self.incidents)

    def to_dict(self) -> dict:
        return {
            "sessions_seen": self.sessions_seen,
            "sessions_resolved": self.sessions_resolved,
            "incidents": self.incident_count,
            "terminated": sum(len(i.terminated) for i in self.incidents),
        }
