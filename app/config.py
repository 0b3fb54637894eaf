import os

class Config:
    # Chemin vers la base SQLite (dans le conteneur)
    # Par défaut : /appdata/database.db
    DATABASE = os.environ.get("DATABASE_PATH", "/appdata/database.db")

    # Clé secrète Flask (change-la en prod)
    SECRET_KEY = os.environ.get("STREAMKEEPER_SECRET_KEY", "change-me")

    # Mode debug (0/1)
    DEBUG = bool(int(os.environ.get("STREAMKEEPER_DEBUG", "0")))

    # Démarrage du scheduler avec l'app (désactivé dans les tests)
    START_SCHEDULER = bool(int(os.environ.get("STREAMKEEPER_START_SCHEDULER", "1")))

    # Timeout HTTP vers Plex / Tautulli / TMDB (secondes)
    UPSTREAM_TIMEOUT = int(os.environ.get("STREAMKEEPER_UPSTREAM_TIMEOUT", "8"))
