"""
Moteur des passes planifiées.

- la table `tasks` porte le cron, l'état et la file (queued_count 0/1)
- un seul worker exécute les tâches l'une après l'autre
- une tâche déjà en file ou en cours n'est jamais ré-empilée
- chaque tâche est un module `tasks.<name>` qui expose run(task_id, db)
"""

import importlib
import json
import threading
import time
from datetime import datetime
from typing import Optional

from croniter import croniter

from db_manager import DBManager
from logging_utils import get_logger

logger = get_logger("tasks_engine")

db = DBManager()

SCHEDULER_TICK_SECONDS = 30
WATCHDOG_TICK_SECONDS = 30
STUCK_AFTER_MINUTES = 30

# au-delà, la passe est signalée comme lente (jamais interrompue)
SLOW_TASK_SECONDS = {
    "subscription_expiration": 10 * 60,
}
DEFAULT_SLOW_TASK_SECONDS = 5 * 60

_worker_lock = threading.Lock()
_worker_alive = False


# -------------------------------------------------------------------
# Logs
# -------------------------------------------------------------------
_STATUS_LEVELS = {
    "start": ("START", "info"),
    "success": ("SUCCESS", "info"),
    "warning": ("WARNING", "warning"),
    "warn": ("WARNING", "warning"),
    "error": ("ERROR", "error"),
    "failed": ("ERROR", "error"),
}


def task_logs(task_id, status, message, details=None):
    label, level = _STATUS_LEVELS.get(str(status).lower().strip(), ("INFO", "info"))

    line = f"[TASK {task_id}] {label}: {message}"
    if details is not None:
        if not isinstance(details, str):
            try:
                details = json.dumps(details, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                details = str(details)
        line += f" | details={details}"

    getattr(logger, level)(line)


# -------------------------------------------------------------------
# État en base
# -------------------------------------------------------------------
def _set_state(task_id: int, status: str, error: Optional[str] = None, finished: bool = False) -> None:
    db.execute(
        f"""
        UPDATE tasks
        SET status = ?,
            last_error = ?,
            {"last_run = datetime('now')," if finished else ""}
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        """,
        (status, error, task_id),
    )


def _schedule_next(task_id: int, name: str, schedule: Optional[str]) -> None:
    if not schedule:
        return
    try:
        nxt = croniter(schedule, datetime.now()).get_next(datetime)
    except (ValueError, KeyError) as e:
        task_logs(task_id, "warning", f"cron invalide '{schedule}': {e}")
        return

    db.execute("UPDATE tasks SET next_run = ? WHERE id = ?", (nxt.isoformat(sep=" "), task_id))
    logger.debug(f"Prochaine passe '{name}' : {nxt}")


# -------------------------------------------------------------------
# Exécution
# -------------------------------------------------------------------
def run_task(task_id: int) -> None:
    row = db.query_one("SELECT id, name, schedule FROM tasks WHERE id = ?", (task_id,))
    if not row:
        logger.error(f"Tâche {task_id} introuvable")
        return

    name = row["name"]
    db.execute(
        "UPDATE tasks SET status = 'running', queued_count = 0, last_error = NULL, "
        "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (task_id,),
    )
    task_logs(task_id, "start", f"'{name}'")

    try:
        job = importlib.import_module(f"tasks.{name}").run
    except (ImportError, AttributeError) as e:
        task_logs(task_id, "error", f"module tasks.{name} inutilisable : {e}")
        _set_state(task_id, "error", str(e))
        return

    started = time.monotonic()
    try:
        job(task_id, db)
    except Exception as e:
        logger.error(f"Passe '{name}' en échec", exc_info=True)
        task_logs(task_id, "error", f"'{name}' : {e}")
        _set_state(task_id, "error", str(e), finished=True)
    else:
        elapsed = time.monotonic() - started
        if elapsed > SLOW_TASK_SECONDS.get(name, DEFAULT_SLOW_TASK_SECONDS):
            task_logs(task_id, "warning", f"'{name}' lente ({int(elapsed)}s)")
        _set_state(task_id, "idle", finished=True)
        task_logs(task_id, "success", f"'{name}' terminée")

    _schedule_next(task_id, name, row["schedule"])


def _worker() -> None:
    global _worker_alive
    try:
        while True:
            row = db.query_one(
                "SELECT id FROM tasks WHERE queued_count > 0 AND enabled = 1 "
                "ORDER BY updated_at ASC LIMIT 1"
            )
            if not row:
                return
            try:
                run_task(row["id"])
            except Exception:
                logger.error(f"Worker : tâche {row['id']} interrompue", exc_info=True)
    finally:
        with _worker_lock:
            _worker_alive = False


def _ensure_worker() -> None:
    global _worker_alive
    with _worker_lock:
        if _worker_alive:
            return
        _worker_alive = True
        threading.Thread(target=_worker, name="streamkeeper-worker", daemon=True).start()


def enqueue_task(task_id: int) -> bool:
    """False si la tâche est désactivée, déjà en file ou en cours."""
    row = db.query_one("SELECT enabled, status, queued_count FROM tasks WHERE id = ?", (task_id,))
    if not row or not row["enabled"]:
        logger.info(f"Tâche {task_id} ignorée (désactivée ou inconnue)")
        return False

    if row["status"] == "running" or int(row["queued_count"] or 0) > 0:
        logger.debug(f"Tâche {task_id} déjà en file ou en cours")
        return False

    db.execute(
        "UPDATE tasks SET queued_count = 1, status = 'queued', updated_at = CURRENT_TIMESTAMP "
        "WHERE id = ? AND enabled = 1",
        (task_id,),
    )
    _ensure_worker()
    return True


def run_task_by_name(task_name: str) -> bool:
    row = db.query_one("SELECT id, enabled FROM tasks WHERE name = ?", (task_name,))
    if not row:
        logger.error(f"Tâche inconnue : {task_name}")
        return False
    if not row["enabled"]:
        logger.warning(f"Tâche désactivée : {task_name}")
        return False
    return enqueue_task(row["id"])


# -------------------------------------------------------------------
# Scheduler
# -------------------------------------------------------------------
def _parse_db_time(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _is_due(row, now: datetime) -> bool:
    if not row["schedule"]:
        return False
    if row["last_run"] is None:
        return True

    nxt = _parse_db_time(row["next_run"])
    if nxt is None:
        base = _parse_db_time(row["last_run"]) or now
        nxt = croniter(row["schedule"], base).get_next(datetime)
    return nxt <= now


def scheduler_tick(now: Optional[datetime] = None) -> list:
    """Empile les tâches dues ; retourne leurs noms."""
    now = now or datetime.now()
    enqueued = []

    for row in db.query(
        "SELECT id, name, schedule, last_run, next_run, status FROM tasks WHERE enabled = 1"
    ):
        if row["status"] in ("running", "queued"):
            continue
        try:
            due = _is_due(row, now)
        except (ValueError, KeyError) as e:
            logger.error(f"Cron invalide pour '{row['name']}' : {e}")
            continue

        if due and enqueue_task(row["id"]):
            enqueued.append(row["name"])

    if enqueued:
        logger.info(f"Passes empilées : {', '.join(enqueued)}")
    return enqueued


def recover_stuck_tasks(max_minutes: int = STUCK_AFTER_MINUTES) -> None:
    db.execute(
        """
        UPDATE tasks
        SET status = 'idle',
            last_error = 'Watchdog: task was stuck in running state',
            updated_at = CURRENT_TIMESTAMP
        WHERE status = 'running'
          AND datetime(updated_at) < datetime('now', ?)
        """,
        (f"-{max_minutes} minutes",),
    )


def _loop(step, period: int, label: str) -> None:
    while True:
        try:
            step()
        except Exception:
            logger.error(f"{label} : itération en échec", exc_info=True)
        time.sleep(period)


def start_scheduler() -> None:
    logger.info("Démarrage scheduler + watchdog")
    threading.Thread(
        target=_loop, args=(recover_stuck_tasks, WATCHDOG_TICK_SECONDS, "watchdog"),
        name="streamkeeper-watchdog", daemon=True,
    ).start()
    threading.Thread(
        target=_loop, args=(scheduler_tick, SCHEDULER_TICK_SECONDS, "scheduler"),
        name="streamkeeper-scheduler", daemon=True,
    ).start()
