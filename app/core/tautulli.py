from __future__ import annotations
import requests
from typing import Any, Dict, List, Optional, Tuple

from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger

log = get_logger("tautulli")


class TautulliClient:
    """
    Client minimal de l'API Tautulli v2 (`/api/v2?apikey=...&cmd=...`).
    Toute réponse != success ou erreur HTTP -> UpstreamUnavailable.
    """

    def __init__(self, hostname: str, port: int, api_key: str, use_ssl: bool = False, timeout: int = 8) -> None:
        scheme = "https" if use_ssl else "http"
        self.base_url = f"{scheme}://{hostname}:{int(port)}"
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: dict, timeout: int = 8) -> "TautulliClient":
        hostname = (settings.get("tautulli_hostname") or "").strip()
        api_key = (settings.get("tautulli_api_key") or "").strip()
        if not hostname or not api_key:
            raise PreconditionMissing("Tautulli configuration not found in server settings.")

        return cls(
            hostname=hostname,
            port=int(settings.get("tautulli_port") or 8181),
            api_key=api_key,
            use_ssl=bool(int(settings.get("tautulli_use_ssl") or 0)),
            timeout=timeout,
        )

    def _call(self, cmd: str, **params) -> Any:
        p = {"apikey": self.api_key, "cmd": cmd}
        p.update(params)

        try:
            r = requests.get(f"{self.base_url}/api/v2", params=p, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except requests.exceptions.RequestException as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            raise UpstreamUnavailable(
                f"Tautulli {cmd} failed: {code or type(e).__name__}",
                service="tautulli",
                status_code=code,
            ) from e
        except ValueError as e:
            raise UpstreamUnavailable(f"Tautulli {cmd}: invalid JSON", service="tautulli") from e

        response = (payload or {}).get("response") or {}
        if response.get("result") != "success":
            raise UpstreamUnavailable(
                f"Unexpected response structure from Tautulli ({cmd}): result={response.get('result')}",
                service="tautulli",
            )
        return response.get("data")

    def get_activity(self) -> List[Dict[str, Any]]:
        data = self._call("get_activity") or {}
        sessions = data.get("sessions")
        if not isinstance(sessions, list):
            raise UpstreamUnavailable("Tautulli get_activity: sessions missing", service="tautulli")
        return sessions

    def get_top_users(self, time_range: int = 30, stats_count: int = 100) -> List[Dict[str, Any]]:
        data = self._call(
            "get_home_stats",
            stat_id="top_users",
            time_range=time_range,
            stats_type="duration",
            stats_count=stats_count,
        ) or {}

        if data.get("stat_id") != "top_users" or not isinstance(data.get("rows"), list):
            raise UpstreamUnavailable("Tautulli get_home_stats: top_users rows missing", service="tautulli")
        return data["rows"]

    def get_last_history(self, user_id) -> Optional[Dict[str, Any]]:
        data = self._call(
            "get_history",
            user_id=user_id,
            order_column="date",
            order_dir="desc",
            length=1,
        ) or {}
        rows = data.get("data") or []
        return rows[0] if rows else None

    def fetch_image(self, img: str, rating_key: Optional[str] = None) -> Tuple[bytes, str]:
        params = {"img": img}
        if rating_key:
            params["rating_key"] = rating_key

        try:
            r = requests.get(f"{self.base_url}/pms_image_proxy", params=params, timeout=self.timeout)
            r.raise_for_status()
        except requests.exceptions.RequestException as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            raise UpstreamUnavailable(
                f"Tautulli image fetch failed: {code or type(e).__name__}",
                service="tautulli",
                status_code=code,
            ) from e

        return r.content, r.headers.get("Content-Type") or "image/jpeg"
