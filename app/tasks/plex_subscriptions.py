#!/usr/bin/env python3
"""
plex_subscriptions.py
---------------------
Coupe les streams en cours des utilisateurs locaux dont l'abonnement est
'Expired' ou absent. Les utilisateurs inconnus localement ne sont jamais
touchés.
"""

from db_bootstrap import DEFAULT_SUBSCRIPTION_REASON
from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger
from tasks_engine import task_logs
from core.providers.registry import get_provider, load_settings
from core.subscriptions import enforce_expired
from core.users import UserRepository

log = get_logger("plex_subscriptions")


def run(task_id: int, db) -> None:
    task_logs(task_id, "info", "Task plex_subscriptions started")

    try:
        settings = load_settings(db)
        reason = (settings.get("plex_stop_subscription_reason") or "").strip() or DEFAULT_SUBSCRIPTION_REASON

        provider = get_provider(db)
        owner = provider.get_own_identity()
        members = provider.list_account_members()
        sessions = provider.get_active_sessions()

    except PreconditionMissing as e:
        task_logs(task_id, "warning", f"plex_subscriptions skipped: {e}")
        return
    except UpstreamUnavailable as e:
        task_logs(task_id, "error", f"plex_subscriptions aborted ({e.service}): {e}")
        return

    repo = UserRepository(db)
    stopped = enforce_expired(
        sessions,
        repo.find_by_plex_username,
        provider.terminate_session,
        reason,
        members=members,
        owner=owner,
    )

    task_logs(
        task_id, "success",
        f"plex_subscriptions done: {stopped} stream(s) stopped",
        details={"sessions": len(sessions), "stopped": stopped},
    )
