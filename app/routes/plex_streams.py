"""
/api/v1/plexstreams : sessions Plex en cours, résolues vers les comptes
plex.tv et enrichies avec l'avatar de l'utilisateur local.
"""

from concurrent.futures import ThreadPoolExecutor
from urllib.parse import quote

from flask import Blueprint, Response, jsonify, request

from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger
from core.formatting import format_playback_time
from core.providers.registry import get_provider
from core.sessions.reconciler import reconcile
from core.users import UserRepository
from web.helpers import error_response, get_db, upstream_timeout

log = get_logger("routes.plex_streams")

plex_streams_api = Blueprint("plex_streams_api", __name__, url_prefix="/api/v1/plexstreams")

LOOKUP_WORKERS = 4
IMAGE_CACHE_SECONDS = 31536000


def _proxy_url(path):
    if not path:
        return None
    return f"/api/v1/plexstreams/imageproxy?path={quote(path, safe='')}"


def _artwork(session):
    if session.media_type == "episode":
        poster = session.grandparent_thumb
    else:
        poster = session.thumb
    return _proxy_url(poster), _proxy_url(session.art)


def _display_title(session):
    if session.media_type == "episode":
        return session.grandparent_title or "Unknown Series"
    return session.title


def _is_safe_path(path: str) -> bool:
    # chemin relatif au serveur uniquement, jamais une URL
    return path.startswith("/") and not path.startswith("//") and "://" not in path


@plex_streams_api.route("", methods=["GET"])
def api_plex_streams():
    db = get_db()

    try:
        provider = get_provider(db, timeout=upstream_timeout())
        owner = provider.get_own_identity()
        members = provider.list_account_members()
        sessions = provider.get_active_sessions()
    except (PreconditionMissing, UpstreamUnavailable) as e:
        return error_response(e, "plexstreams")

    # sessions incomplètes exclues, ordre Plex conservé
    resolved = reconcile(sessions, members, owner)
    repo = UserRepository(db)

    # lookups utilisateurs locaux en parallèle, résultats dans l'ordre Plex
    with ThreadPoolExecutor(max_workers=LOOKUP_WORKERS) as pool:
        local_users = list(pool.map(lambda rs: repo.find_by_plex_username(rs.canonical_username), resolved))

    out = []
    for rs, local in zip(resolved, local_users):
        s = rs.session
        poster_url, background_url = _artwork(s)
        out.append({
            "username": rs.canonical_username,
            "email": rs.email,
            "title": _display_title(s),
            "sessionId": rs.session_id,
            "mediaType": s.media_type,
            "state": s.playback_state or "unknown",
            "currentTime": format_playback_time(s.view_offset_ms),
            "totalTime": format_playback_time(s.duration_ms),
            "posterUrl": poster_url,
            "backgroundUrl": background_url,
            "avatarUrl": local.avatar if local else None,
            "releaseYear": s.year,
            "resolved": rs.resolved,
        })

    log.debug(f"plexstreams: {len(out)} session(s)")
    return jsonify({"sessions": out})


@plex_streams_api.route("/imageproxy", methods=["GET"])
def api_plex_streams_imageproxy():
    path = (request.args.get("path") or "").strip()
    if not path:
        return jsonify({"error": "Image path is required"}), 400
    if not _is_safe_path(path):
        return jsonify({"error": "Invalid image path"}), 400

    try:
        provider = get_provider(get_db(), timeout=upstream_timeout())
        content, content_type = provider.fetch_image(path)
    except (PreconditionMissing, UpstreamUnavailable) as e:
        return error_response(e, "plexstreams imageproxy")

    resp = Response(content, mimetype=content_type)
    resp.headers["Cache-Control"] = f"public, max-age={IMAGE_CACHE_SECONDS}, immutable"
    return resp
