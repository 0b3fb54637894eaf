from flask import g, current_app, jsonify

from db_manager import DBManager
from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger

log = get_logger("web")


# -----------------------------
# DB helpers (request-scoped)
# -----------------------------
def get_db() -> DBManager:
    if "db" not in g:
        g.db = DBManager(current_app.config["DATABASE"])
    return g.db


def close_db(_exception=None):
    g.pop("db", None)


def upstream_timeout() -> int:
    return int(current_app.config.get("UPSTREAM_TIMEOUT", 8))


# -----------------------------
# Réponses d'erreur génériques
# -----------------------------
def error_response(exc: Exception, context: str):
    """
    Jamais de corps upstream renvoyé au client : le détail reste dans les logs.
    """
    if isinstance(exc, PreconditionMissing):
        log.error(f"{context}: configuration manquante: {exc}")
        return jsonify({"error": "Service not configured."}), 500

    if isinstance(exc, UpstreamUnavailable):
        log.error(f"{context}: {exc.service or 'upstream'} indisponible: {exc}")
        return jsonify({"error": "Upstream service unavailable."}), 502

    log.error(f"{context}: erreur inattendue", exc_info=exc)
    return jsonify({"error": "Internal server error."}), 500
