from __future__ import annotations
import requests
from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import UpstreamUnavailable
from logging_utils import get_logger

log = get_logger("tmdb")

API_BASE = "https://api.themoviedb.org/3"
POSTER_BASE = "https://image.tmdb.org/t/p/w600_and_h900_bestv2"
BACKDROP_BASE = "https://image.tmdb.org/t/p/w1920_and_h800_multi_faces"

MOVIE_TYPES = ("movie",)
TV_TYPES = ("episode", "show")


@dataclass
class Artwork:
    link: Optional[str] = None          # lien interne /movie/<id> ou /tv/<id>
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None


def _year(value) -> Optional[int]:
    try:
        y = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return y if y > 0 else None


class TmdbClient:
    def __init__(self, api_key: str, language: str = "fr", timeout: int = 8) -> None:
        self.api_key = api_key
        self.language = language or "fr"
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: dict, timeout: int = 8) -> Optional["TmdbClient"]:
        key = (settings.get("tmdb_api_key") or "").strip()
        if not key:
            return None
        return cls(key, settings.get("tmdb_language") or "fr", timeout=timeout)

    def _get(self, path: str, **params) -> Dict[str, Any]:
        p = {"api_key": self.api_key, "language": self.language}
        p.update({k: v for k, v in params.items() if v is not None})
        try:
            r = requests.get(f"{API_BASE}{path}", params=p, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.exceptions.RequestException as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            raise UpstreamUnavailable(f"TMDB {path} failed: {code or type(e).__name__}", service="tmdb") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"TMDB {path}: invalid JSON", service="tmdb") from e

    def search_movie(self, query: str, year: Optional[int] = None) -> Optional[Dict[str, Any]]:
        results = self._get("/search/movie", query=query, year=year).get("results") or []
        return results[0] if results else None

    def search_tv(self, query: str, year: Optional[int] = None) -> Optional[Dict[str, Any]]:
        results = self._get("/search/tv", query=query, first_air_date_year=year).get("results") or []
        if not results and year is not None:
            # année Tautulli souvent = année de l'épisode, pas de la série
            results = self._get("/search/tv", query=query).get("results") or []
        return results[0] if results else None

    def get_movie(self, movie_id: int) -> Dict[str, Any]:
        return self._get(f"/movie/{int(movie_id)}")

    def get_tv(self, tv_id: int) -> Dict[str, Any]:
        return self._get(f"/tv/{int(tv_id)}")

    def lookup_artwork(self, media_type: Optional[str], title: Optional[str], year=None) -> Artwork:
        """
        Jamais bloquant : toute erreur TMDB -> Artwork vide (loggé).
        """
        if not title:
            return Artwork()

        try:
            if media_type in MOVIE_TYPES:
                hit = self.search_movie(title, _year(year))
                if not hit:
                    return Artwork()
                details = self.get_movie(hit["id"])
                link = f"/movie/{hit['id']}"
            elif media_type in TV_TYPES:
                hit = self.search_tv(title, _year(year))
                if not hit:
                    return Artwork()
                details = self.get_tv(hit["id"])
                link = f"/tv/{hit['id']}"
            else:
                return Artwork()
        except (UpstreamUnavailable, KeyError) as e:
            log.error(f"Error fetching TMDB data for '{title}': {e}")
            return Artwork()

        poster = details.get("poster_path")
        backdrop = details.get("backdrop_path")
        return Artwork(
            link=link,
            poster_url=f"{POSTER_BASE}{poster}" if poster else None,
            backdrop_url=f"{BACKDROP_BASE}{backdrop}" if backdrop else None,
        )
