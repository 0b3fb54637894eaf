#!/usr/bin/env python3
"""
subscription_expiration.py
--------------------------
Passe 'Active' -> 'Expired' les abonnements dont la date est dépassée.
"""

from datetime import datetime, timezone

from logging_utils import get_logger
from tasks_engine import task_logs
from core.subscriptions import sweep_expirations
from core.users import UserRepository

log = get_logger("subscription_expiration")


def run(task_id: int, db) -> None:
    task_logs(task_id, "info", "Task subscription_expiration started")

    result = sweep_expirations(UserRepository(db), now=datetime.now(timezone.utc))

    for w in result.warnings:
        task_logs(task_id, "warning", str(w))

    task_logs(
        task_id, "success",
        f"subscription_expiration done: {result.count} subscription(s) expired",
        details={"transitioned": result.transitioned, "warnings": len(result.warnings)},
    )
