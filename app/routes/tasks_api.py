from flask import jsonify

from logging_utils import get_logger
from tasks_engine import run_task_by_name
from web.helpers import get_db

task_logger = get_logger("tasks_ui")


def register(app):
    @app.route("/api/tasks", methods=["GET"])
    def api_tasks_list():
        db = get_db()

        rows = db.query(
            """
            SELECT
                id,
                name,
                description,
                schedule,
                status,
                enabled,
                last_run,
                next_run,
                last_error
            FROM tasks
            ORDER BY name
            """
        )

        return jsonify({"tasks": [dict(r) for r in rows]})

    @app.route("/api/tasks/<string:name>/run", methods=["POST"])
    def api_task_run(name):
        db = get_db()

        row = db.query_one("SELECT id, enabled, status FROM tasks WHERE name = ?", (name,))
        if not row:
            return jsonify({"error": "Tâche inconnue"}), 404
        if not row["enabled"]:
            return jsonify({"error": "Tâche désactivée"}), 409

        queued = run_task_by_name(name)
        task_logger.info(f"Lancement manuel '{name}' -> queued={queued}")

        if not queued:
            # déjà en file ou en cours
            return jsonify({"status": "skipped", "task": name}), 409

        return jsonify({"status": "queued", "task": name}), 202
