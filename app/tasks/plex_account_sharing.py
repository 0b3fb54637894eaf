#!/usr/bin/env python3
"""
plex_account_sharing.py
-----------------------
Coupe les sessions d'un même compte Plex ouvertes depuis des IP publiques
différentes pendant la même passe (partage de compte).
"""

from db_bootstrap import DEFAULT_SHARING_REASON
from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger
from tasks_engine import task_logs
from core.providers.registry import get_provider, load_settings
from core.sessions.reconciler import check_account_sharing

log = get_logger("plex_account_sharing")


def run(task_id: int, db) -> None:
    task_logs(task_id, "info", "Task plex_account_sharing started")

    try:
        settings = load_settings(db)
        reason = (settings.get("plex_sharing_reason") or "").strip() or DEFAULT_SHARING_REASON

        provider = get_provider(db)
        report = check_account_sharing(provider, reason)

    except PreconditionMissing as e:
        task_logs(task_id, "warning", f"plex_account_sharing skipped: {e}")
        return
    except UpstreamUnavailable as e:
        task_logs(task_id, "error", f"plex_account_sharing aborted ({e.service}): {e}")
        return

    task_logs(
        task_id, "success",
        f"plex_account_sharing done: {report.incident_count} incident(s)",
        details=report.to_dict(),
    )
