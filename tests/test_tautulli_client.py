"""Tests for the Tautulli API client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from core.tautulli import TautulliClient
from errors import PreconditionMissing, UpstreamUnavailable


def _json_response(payload, status=200):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = payload
    if status >= 400:
        r.raise_for_status.side_effect = requests.exceptions.HTTPError(response=r)
    return r


def _ok(data):
    return _json_response({"response": {"result": "success", "data": data}})


@pytest.fixture
def client():
    return TautulliClient("tautulli.local", 8181, "key", use_ssl=False, timeout=3)


class TestFromSettings:
    def test_builds_base_url(self) -> None:
        c = TautulliClient.from_settings({
            "tautulli_hostname": "stats.example",
            "tautulli_port": 443,
            "tautulli_api_key": "abc",
            "tautulli_use_ssl": 1,
        })
        assert c.base_url == "https://stats.example:443"

    @pytest.mark.parametrize("settings", [{}, {"tautulli_hostname": "h"}, {"tautulli_api_key": "k"}])
    def test_missing_configuration(self, settings) -> None:
        with pytest.raises(PreconditionMissing):
            TautulliClient.from_settings(settings)


def test_get_activity(client) -> None:
    with patch("core.tautulli.requests.get", return_value=_ok({"sessions": [{"session_id": "x"}]})) as get:
        sessions = client.get_activity()

    assert sessions == [{"session_id": "x"}]
    args, kwargs = get.call_args
    assert args == ("http://tautulli.local:8181/api/v2",)
    assert kwargs["params"] == {"apikey": "key", "cmd": "get_activity"}


def test_non_success_result(client) -> None:
    payload = {"response": {"result": "error", "message": "Invalid apikey"}}
    with patch("core.tautulli.requests.get", return_value=_json_response(payload)):
        with pytest.raises(UpstreamUnavailable):
            client.get_activity()


def test_http_error(client) -> None:
    with patch("core.tautulli.requests.get", return_value=_json_response({}, status=500)):
        with pytest.raises(UpstreamUnavailable) as exc:
            client.get_activity()
    assert exc.value.status_code == 500


def test_invalid_json(client) -> None:
    r = _json_response(None)
    r.json.side_effect = ValueError("no json")
    with patch("core.tautulli.requests.get", return_value=r):
        with pytest.raises(UpstreamUnavailable):
            client.get_activity()


def test_get_top_users(client) -> None:
    rows = [{"user": "alice", "total_duration": 10}]
    with patch("core.tautulli.requests.get", return_value=_ok({"stat_id": "top_users", "rows": rows})) as get:
        assert client.get_top_users() == rows

    params = get.call_args.kwargs["params"]
    assert params["cmd"] == "get_home_stats"
    assert params["stat_id"] == "top_users"
    assert params["time_range"] == 30
    assert params["stats_count"] == 100


def test_get_top_users_wrong_stat(client) -> None:
    with patch("core.tautulli.requests.get", return_value=_ok({"stat_id": "top_movies", "rows": []})):
        with pytest.raises(UpstreamUnavailable):
            client.get_top_users()


def test_get_last_history(client) -> None:
    with patch("core.tautulli.requests.get", return_value=_ok({"data": [{"title": "A"}, {"title": "B"}]})):
        assert client.get_last_history(5) == {"title": "A"}
    with patch("core.tautulli.requests.get", return_value=_ok({"data": []})):
        assert client.get_last_history(5) is None


def test_fetch_image(client) -> None:
    r = MagicMock(content=b"img", headers={"Content-Type": "image/webp"})
    with patch("core.tautulli.requests.get", return_value=r) as get:
        assert client.fetch_image("/library/metadata/1/thumb", "1") == (b"img", "image/webp")

    assert get.call_args.args == ("http://tautulli.local:8181/pms_image_proxy",)
    assert get.call_args.kwargs["params"] == {"img": "/library/metadata/1/thumb", "rating_key": "1"}
