from datetime import datetime, timedelta, timezone

from flask import Blueprint, request, jsonify

from logging_utils import get_logger
from core.subscriptions import parse_timestamp
from core.users import STATUS_ACTIVE, VALID_STATUSES, UserRepository
from web.helpers import get_db

log = get_logger("api.subscriptions")

subscriptions_api = Blueprint("subscriptions_api", __name__)

EXTEND_DAYS = 30


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _serialize(user):
    return {
        "user_id": user.id,
        "username": user.username,
        "plex_username": user.plex_username,
        "subscription_status": user.subscription_status,
        "subscription_expiration": user.subscription_expiration,
    }


def extend_expiration(current, now=None, days=EXTEND_DAYS):
    """
    Prolonge à partir de max(now, expiration actuelle).
    Une expiration illisible repart de now.
    """
    now = now or datetime.now(timezone.utc)
    base = parse_timestamp(current)
    if base is None or base < now:
        base = now
    return (base + timedelta(days=days)).isoformat()


# ------------------------------------------------------------------
# API
# ------------------------------------------------------------------

@subscriptions_api.route("/api/users/<int:user_id>/subscription", methods=["GET"])
def api_get_user_subscription(user_id):
    user = UserRepository(get_db()).find_by_id(user_id)
    if not user:
        return jsonify({"error": "Utilisateur introuvable"}), 404
    return jsonify(_serialize(user))


@subscriptions_api.route("/api/users/<int:user_id>/subscription", methods=["POST"])
def api_update_user_subscription(user_id):
    data = request.get_json(silent=True) or {}

    repo = UserRepository(get_db())
    user = repo.find_by_id(user_id)
    if not user:
        return jsonify({"error": "Utilisateur introuvable"}), 404

    if "subscription_status" in data:
        status = data.get("subscription_status")
        if status is not None and status not in VALID_STATUSES:
            return jsonify({"error": f"subscription_status doit être {' / '.join(VALID_STATUSES)} ou null"}), 400
        user.subscription_status = status

    if "subscription_expiration" in data:
        raw = data.get("subscription_expiration")
        if raw in (None, ""):
            user.subscription_expiration = None
        else:
            parsed = parse_timestamp(raw)
            if parsed is None:
                return jsonify({"error": "Format de date invalide (YYYY-MM-DD ou ISO-8601)"}), 400
            user.subscription_expiration = parsed.isoformat()

    if data.get("extend_subscription"):
        user.subscription_expiration = extend_expiration(user.subscription_expiration)
        user.subscription_status = STATUS_ACTIVE

    repo.save_subscription(user)

    log.info(
        f"[USER #{user_id}] abonnement mis à jour : "
        f"status={user.subscription_status} expiration={user.subscription_expiration}"
    )

    return jsonify({"status": "ok", **_serialize(user)})
