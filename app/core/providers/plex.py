from __future__ import annotations
import requests
import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

from plexapi.exceptions import PlexApiException
from plexapi.myplex import MyPlexAccount

from errors import UpstreamUnavailable
from logging_utils import get_logger
from core.providers.base import BaseProvider
from core.sessions.models import AccountMember, OwnerIdentity, Session

log = get_logger("plex")


def _int_or_none(v) -> Optional[int]:
    if v is None:
        return None
    s = str(v).strip()
    return int(s) if s.isdigit() else None


class PlexProvider(BaseProvider):
    provider_name = "plex"

    def _base_url(self) -> str:
        """URL serveur construite depuis settings (schéma obligatoire)."""
        b = str(getattr(self.server, "url", None) or "").strip().rstrip("/")

        # Évite les "192.168.1.60:32400" sans schéma
        if not (b.startswith("http://") or b.startswith("https://")):
            raise UpstreamUnavailable("Plex server URL missing", service="plex")
        return b

    def _token(self) -> str:
        token = getattr(self.server, "token", None)
        if not token:
            raise UpstreamUnavailable("Plex token missing", service="plex")
        return token

    def _request(self, method: str, path: str, params: Optional[dict] = None) -> requests.Response:
        url = f"{self._base_url()}{path}"

        p = {"X-Plex-Token": self._token()}
        if params:
            p.update(params)

        try:
            r = requests.request(method, url, params=p, timeout=self.timeout)
            # on veut une VRAIE réponse du serveur
            r.raise_for_status()
            return r
        except requests.exceptions.RequestException as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            raise UpstreamUnavailable(
                f"Plex unreachable: {method} {path} -> {code or type(e).__name__}",
                service="plex",
                status_code=code,
            ) from e

    def _get_xml(self, path: str, params: Optional[dict] = None) -> ET.Element:
        r = self._request("GET", path, params=params)
        try:
            return ET.fromstring(r.text)
        except ET.ParseError as e:
            raise UpstreamUnavailable(f"Plex returned invalid XML for {path}: {e}", service="plex") from e

    # -------------------------
    # Sessions
    # -------------------------

    def get_active_sessions(self) -> List[Session]:
        root = self._get_xml("/status/sessions", params={"includeUser": 1})

        sessions: List[Session] = []
        for node in root:
            user = node.find("User")
            player = node.find("Player")
            sess = node.find("Session")

            display_name = user.attrib.get("title") if user is not None else None
            username = user.attrib.get("username") if user is not None else None

            # IP publique uniquement : Player.address est souvent une IP LAN.
            # Sans remotePublicAddress la session est exclue de la détection.
            ip = None
            state = None
            if player is not None:
                ip = player.attrib.get("remotePublicAddress")
                state = player.attrib.get("state")

            session_id = sess.attrib.get("id") if sess is not None else None

            sessions.append(Session(
                session_id=str(session_id) if session_id else None,
                display_name=display_name or None,
                remote_ip=ip or None,
                media_type=node.attrib.get("type"),
                playback_state=state or "unknown",
                username=username or None,
                title=node.attrib.get("title"),
                grandparent_title=node.attrib.get("grandparentTitle"),
                year=_int_or_none(node.attrib.get("year")),
                thumb=node.attrib.get("thumb"),
                grandparent_thumb=node.attrib.get("grandparentThumb"),
                art=node.attrib.get("art"),
                view_offset_ms=_int_or_none(node.attrib.get("viewOffset")),
                duration_ms=_int_or_none(node.attrib.get("duration")),
            ))

        return sessions

    def terminate_session(self, session_id: str, reason: str = "") -> bool:
        """
        /status/sessions/terminate attend sessionId (= <Session id="...">),
        pas le sessionKey.
        """
        params = {"sessionId": str(session_id)}
        if reason:
            params["reason"] = reason

        # GET puis POST (compat)
        try:
            self._request("GET", "/status/sessions/terminate", params=params)
        except UpstreamUnavailable:
            self._request("POST", "/status/sessions/terminate", params=params)
        return True

    # -------------------------
    # Compte plex.tv
    # -------------------------

    def _account(self) -> MyPlexAccount:
        try:
            return MyPlexAccount(token=self._token(), timeout=self.timeout)
        except (PlexApiException, requests.exceptions.RequestException) as e:
            raise UpstreamUnavailable(f"plex.tv account lookup failed: {e}", service="plex.tv") from e

    def get_own_identity(self) -> OwnerIdentity:
        account = self._account()
        return OwnerIdentity(
            display_name=account.title or "Unknown",
            username=account.username or "Unknown",
            email=account.email,
        )

    def list_account_members(self) -> List[AccountMember]:
        account = self._account()
        try:
            users = account.users()
        except (PlexApiException, requests.exceptions.RequestException) as e:
            raise UpstreamUnavailable(f"plex.tv users listing failed: {e}", service="plex.tv") from e

        members: List[AccountMember] = []
        for u in users:
            title = getattr(u, "title", None)
            if not title:
                continue
            members.append(AccountMember(
                display_name=title,
                username=getattr(u, "username", None) or title,
                email=getattr(u, "email", None),
            ))
        return members

    # -------------------------
    # Images
    # -------------------------

    def fetch_image(self, path: str) -> Tuple[bytes, str]:
        if not path.startswith("/"):
            path = "/" + path
        r = self._request("GET", path)
        return r.content, r.headers.get("Content-Type") or "image/jpeg"
