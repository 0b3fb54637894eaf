import os

from flask import Flask, g, jsonify

from config import Config
from db_bootstrap import run_migrations
from db_manager import DBManager
from errors import PreconditionMissing, UpstreamUnavailable
from logging_utils import get_logger
from tasks_engine import start_scheduler

from api.subscriptions import subscriptions_api
from routes.plex_streams import plex_streams_api
from routes.tautulli import tautulli_api
from routes import tasks_api
from web.helpers import close_db, error_response

log = get_logger("app")


def load_version():
    info_path = "/app/INFO"
    if not os.path.exists(info_path):
        return "dev"

    version = "dev"
    with open(info_path) as f:
        for line in f:
            if line.startswith("VERSION="):
                version = line.split("=", 1)[1].strip()
                break
    return version

APP_VERSION = load_version()


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    run_migrations(DBManager(app.config["DATABASE"]))

    @app.before_request
    def inject_version():
        g.app_version = APP_VERSION

    app.register_blueprint(subscriptions_api)
    app.register_blueprint(plex_streams_api)
    app.register_blueprint(tautulli_api)
    tasks_api.register(app)

    app.teardown_appcontext(close_db)

    # -----------------------------
    # Erreurs -> JSON générique
    # -----------------------------
    @app.errorhandler(PreconditionMissing)
    def handle_precondition(e):
        return error_response(e, "request")

    @app.errorhandler(UpstreamUnavailable)
    def handle_upstream(e):
        return error_response(e, "request")

    @app.errorhandler(404)
    def handle_not_found(_e):
        return jsonify({"error": "Not found"}), 404


    log.info(f"Streamkeeper {APP_VERSION} prêt (db={app.config['DATABASE']})")
    return app


app = create_app()

if app.config.get("START_SCHEDULER"):
    start_scheduler()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
