"""
/api/v1/tautulli : activité courante et top utilisateurs Tautulli,
enrichis via TMDB (affiche, fond, lien interne) et liés aux utilisateurs
locaux (lien de profil).
"""

import time
from concurrent.futures import ThreadPoolExecutor

from flask import Blueprint, Response, jsonify, request

from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger
from core.cache import TTLCache
from core.formatting import format_unix_timestamp, or_na, seconds_to_hours_minutes
from core.providers.registry import load_settings
from core.tautulli import TautulliClient
from core.tmdb import TV_TYPES, Artwork, TmdbClient
from core.users import UserRepository
from web.helpers import error_response, get_db, upstream_timeout

log = get_logger("routes.tautulli")

tautulli_api = Blueprint("tautulli_api", __name__, url_prefix="/api/v1/tautulli")

ENRICH_WORKERS = 4
TOP_USERS_RANGE_DAYS = 30
IMAGE_CACHE_TTL = 86400

image_cache = TTLCache(ttl_seconds=IMAGE_CACHE_TTL, max_entries=500)


def _clients():
    settings = load_settings(get_db())
    timeout = upstream_timeout()
    return TautulliClient.from_settings(settings, timeout=timeout), TmdbClient.from_settings(settings, timeout=timeout)


def _profile_link(repo: UserRepository, plex_username):
    user = repo.find_by_plex_username(plex_username)
    return f"/users/{user.id}" if user else None


def _full_title(media: dict) -> str:
    if media.get("media_type") in TV_TYPES:
        return f"{media.get('grandparent_title')} - {media.get('title')}"
    return media.get("title")


def _artwork_for(tmdb, media: dict, year) -> Artwork:
    if tmdb is None:
        return Artwork()
    media_type = media.get("media_type")
    if media_type in TV_TYPES:
        title = media.get("grandparent_title") or media.get("parent_title") or media.get("title")
    else:
        title = media.get("title")
    return tmdb.lookup_artwork(media_type, title, year)


def _to_number(value, default):
    try:
        return float(value) if "." in str(value) else int(value)
    except (TypeError, ValueError):
        return default


# ------------------------------------------------------------------
# current-streams
# ------------------------------------------------------------------

def _build_stream(session: dict, repo, tmdb) -> dict:
    grandparent_year = session.get("grandparent_year") or session.get("year")
    art = _artwork_for(tmdb, session, grandparent_year if session.get("media_type") in TV_TYPES else session.get("year"))

    last_update = None
    for key in ("last_seen", "session_time"):
        if session.get(key):
            last_update = _to_number(session.get(key), 0) * 1000
            break
    if not last_update:
        last_update = int(time.time() * 1000)

    return {
        "session_id": session.get("session_id"),
        "user": session.get("friendly_name") or session.get("username"),
        "user_thumb": session.get("user_thumb"),
        "title": session.get("title"),
        "grandparent_title": or_na(session.get("grandparent_title")),
        "full_title": _full_title(session),
        "year": or_na(session.get("year")),
        "grandparent_year": or_na(grandparent_year),
        "link": art.link,
        "userProfileLink": _profile_link(repo, session.get("username")),
        "thumb": art.poster_url,
        "art": art.backdrop_url,
        "view_offset": _to_number(session.get("view_offset"), 0),
        "duration": _to_number(session.get("duration"), 0),
        "last_update": last_update,
        "playback_rate": _to_number(session.get("playback_rate"), 1) or 1,
        "state": session.get("state"),
    }


@tautulli_api.route("/current-streams", methods=["GET"])
def api_tautulli_current_streams():
    try:
        tautulli, tmdb = _clients()
        sessions = tautulli.get_activity()
    except (PreconditionMissing, UpstreamUnavailable) as e:
        return error_response(e, "tautulli current-streams")

    repo = UserRepository(get_db())
    with ThreadPoolExecutor(max_workers=ENRICH_WORKERS) as pool:
        streams = list(pool.map(lambda s: _build_stream(s, repo, tmdb), sessions))

    return jsonify({"message": "Current active streams", "streams": streams})


# ------------------------------------------------------------------
# top-users
# ------------------------------------------------------------------

def _last_media(tautulli, tmdb, user_row: dict):
    try:
        media = tautulli.get_last_history(user_row.get("user_id"))
    except UpstreamUnavailable as e:
        log.error(f"Tautulli history failed for user {user_row.get('user')}: {e}")
        return None, Artwork()

    if not media:
        return None, Artwork()

    year = media.get("grandparent_year") if media.get("media_type") in TV_TYPES else media.get("year")
    art = _artwork_for(tmdb, media, year)

    return {
        "title": _full_title(media),
        "grandparent_title": or_na(media.get("grandparent_title")),
        "grandchild_title": or_na(media.get("grandchild_title")),
        "year": or_na(media.get("year")),
        "grandparent_year": or_na(media.get("grandparent_year")),
        "link": art.link,
    }, art


def _build_top_user(user_row: dict, repo, tautulli, tmdb) -> dict:
    last_media, art = _last_media(tautulli, tmdb, user_row)
    total_seconds = _to_number(user_row.get("total_duration"), 0)

    return {
        "user": user_row.get("friendly_name") or user_row.get("user"),
        "user_thumb": user_row.get("user_thumb"),
        "total_plays": user_row.get("total_plays"),
        "total_duration_seconds": total_seconds,
        "total_duration": seconds_to_hours_minutes(total_seconds),
        "last_play": format_unix_timestamp(user_row.get("last_play")),
        "thumb": art.poster_url,
        "art": art.backdrop_url,
        "last_media": last_media,
        "userProfileLink": _profile_link(repo, user_row.get("user")),
    }


@tautulli_api.route("/top-users", methods=["GET"])
def api_tautulli_top_users():
    try:
        tautulli, tmdb = _clients()
        rows = tautulli.get_top_users(time_range=TOP_USERS_RANGE_DAYS)
    except (PreconditionMissing, UpstreamUnavailable) as e:
        return error_response(e, "tautulli top-users")

    repo = UserRepository(get_db())
    with ThreadPoolExecutor(max_workers=ENRICH_WORKERS) as pool:
        users = list(pool.map(lambda r: _build_top_user(r, repo, tautulli, tmdb), rows))

    users.sort(key=lambda u: u["total_duration_seconds"], reverse=True)

    return jsonify({
        "message": f"Top users from the last {TOP_USERS_RANGE_DAYS} days (sorted by total duration)",
        "users": users,
    })


# ------------------------------------------------------------------
# imageproxy (pms_image_proxy, cache 24h)
# ------------------------------------------------------------------

@tautulli_api.route("/imageproxy", methods=["GET"])
def api_tautulli_imageproxy():
    img = (request.args.get("img") or "").strip()
    rating_key = (request.args.get("rating_key") or "").strip() or None

    if not img:
        return jsonify({"error": "Image path is required"}), 400
    if "://" in img or not img.startswith("/"):
        return jsonify({"error": "Invalid image path"}), 400

    key = (img, rating_key)
    cached = image_cache.get(key)
    if cached is None:
        try:
            tautulli, _ = _clients()
            cached = tautulli.fetch_image(img, rating_key)
        except (PreconditionMissing, UpstreamUnavailable) as e:
            return error_response(e, "tautulli imageproxy")
        image_cache.set(key, cached)

    content, content_type = cached
    resp = Response(content, mimetype=content_type)
    resp.headers["Cache-Control"] = f"public, max-age={IMAGE_CACHE_TTL}"
    return resp
