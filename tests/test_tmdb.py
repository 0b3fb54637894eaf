"""Tests for TMDB artwork lookups."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from core.tmdb import BACKDROP_BASE, POSTER_BASE, Artwork, TmdbClient
from errors import UpstreamUnavailable


def _resp(payload):
    r = MagicMock()
    r.json.return_value = payload
    return r


def _router(routes):
    """requests.get mock: (path, params) -> payload."""
    calls = []

    def fake_get(url, params=None, timeout=None):
        path = url.split("/3", 1)[1]
        calls.append((path, dict(params or {})))
        return _resp(routes(path, params or {}))

    return fake_get, calls


def test_from_settings_without_key() -> None:
    assert TmdbClient.from_settings({"tmdb_api_key": ""}) is None
    client = TmdbClient.from_settings({"tmdb_api_key": "k", "tmdb_language": None})
    assert client.language == "fr"


def test_movie_artwork() -> None:
    def routes(path, params):
        if path == "/search/movie":
            return {"results": [{"id": 27205}]}
        return {"poster_path": "/p.jpg", "backdrop_path": "/b.jpg"}

    fake_get, calls = _router(routes)
    with patch("core.tmdb.requests.get", side_effect=fake_get):
        art = TmdbClient("k").lookup_artwork("movie", "Inception", "2010")

    assert art == Artwork(link="/movie/27205", poster_url=f"{POSTER_BASE}/p.jpg", backdrop_url=f"{BACKDROP_BASE}/b.jpg")
    assert calls[0][1]["year"] == 2010
    assert calls[0][1]["language"] == "fr"
    assert calls[1][0] == "/movie/27205"


def test_tv_search_retries_without_year() -> None:
    def routes(path, params):
        if path == "/search/tv":
            return {"results": [] if "first_air_date_year" in params else [{"id": 1399}]}
        return {"poster_path": None, "backdrop_path": "/b.jpg"}

    fake_get, calls = _router(routes)
    with patch("core.tmdb.requests.get", side_effect=fake_get):
        art = TmdbClient("k").lookup_artwork("episode", "Game of Thrones", 2019)

    assert [c[0] for c in calls] == ["/search/tv", "/search/tv", "/tv/1399"]
    assert art.link == "/tv/1399"
    assert art.poster_url is None
    assert art.backdrop_url == f"{BACKDROP_BASE}/b.jpg"


def test_invalid_year_is_not_sent() -> None:
    fake_get, calls = _router(lambda path, params: {"results": []})
    with patch("core.tmdb.requests.get", side_effect=fake_get):
        assert TmdbClient("k").lookup_artwork("show", "Show", "N/A") == Artwork()

    assert len(calls) == 1
    assert "first_air_date_year" not in calls[0][1]


def test_errors_yield_empty_artwork() -> None:
    with patch("core.tmdb.requests.get", side_effect=requests.exceptions.Timeout("slow")):
        assert TmdbClient("k").lookup_artwork("movie", "Inception", 2010) == Artwork()


def test_unsupported_media_type() -> None:
    with patch("core.tmdb.requests.get") as get:
        assert TmdbClient("k").lookup_artwork("track", "Song", None) == Artwork()
    get.assert_not_called()


def test_get_raises_upstream_unavailable() -> None:
    r = MagicMock()
    r.raise_for_status.side_effect = requests.exceptions.HTTPError(response=MagicMock(status_code=401))
    with patch("core.tmdb.requests.get", return_value=r):
        try:
            TmdbClient("k").get_movie(1)
        except UpstreamUnavailable as e:
            assert e.service == "tmdb"
        else:
            raise AssertionError("UpstreamUnavailable not raised")
