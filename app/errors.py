"""Exceptions partagées par les passes d'enforcement et les routes API."""

from __future__ import annotations

from typing import Optional


class StreamkeeperError(Exception):
    """Base de toutes les erreurs applicatives."""


class PreconditionMissing(StreamkeeperError):
    """
    Configuration absente (token Plex, hôte, clé API...).
    Une passe qui rencontre cette erreur s'arrête entièrement.
    """


class UpstreamUnavailable(StreamkeeperError):
    """
    Erreur réseau / auth / parsing en parlant à un service externe.
    `service` = 'plex' | 'plex.tv' | 'tautulli' | 'tmdb'
    """

    def __init__(self, message: str, service: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class DataIntegrityWarning(UserWarning):
    """
    Donnée locale incohérente (date illisible, doublon plex_username).
    Jamais levée hors d'une passe : loggée, l'enregistrement est ignoré.
    """
