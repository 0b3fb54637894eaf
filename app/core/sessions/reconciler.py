from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from errors import UpstreamUnavailable
from logging_utils import get_logger
from core.sessions.identity import build_member_lookup, resolve_canonical_username, resolve_email
from core.sessions.models import (
    AccountMember,
    OwnerIdentity,
    ResolvedSession,
    Session,
    SharingIncident,
    SharingReport,
)

logger = get_logger("reconciler")

TerminateFn = Callable[[str, str], bool]


def reconcile(
    sessions: Iterable[Session],
    members: Iterable[AccountMember],
    owner: Optional[OwnerIdentity],
) -> List[ResolvedSession]:
    """
    Attribue chaque session à un username canonique.
    Les sessions sans session_id / display_name / remote_ip sont exclues.
    L'ordre du listing Plex est conservé.
    """
    lookup = build_member_lookup(members)
    out: List[ResolvedSession] = []

    for s in sessions or ():
        if not s.is_usable():
            logger.debug(
                f"session ignorée (incomplète) id={s.session_id} user={s.display_name} ip={s.remote_ip}"
            )
            continue

        username, resolved = resolve_canonical_username(s, lookup, owner)
        out.append(ResolvedSession(
            session=s,
            canonical_username=username,
            resolved=resolved,
            email=resolve_email(s, lookup, owner),
        ))

    return out


def _terminate(terminate: TerminateFn, session_id: str, reason: str) -> bool:
    try:
        return bool(terminate(session_id, reason))
    except UpstreamUnavailable as e:
        logger.error(f"terminate failed session={session_id}: {e}")
        return False


def detect_sharing(
    resolved: Iterable[ResolvedSession],
    terminate: TerminateFn,
    reason: str,
) -> SharingReport:
    """
    Détection d'IP multiples par utilisateur sur UNE passe.

    La première session vue pour un utilisateur sert de référence et n'est
    jamais remplacée : une 3e session depuis une 3e IP est comparée à la
    première, pas à la deuxième.
    """
    if not reason:
        raise ValueError("termination reason must not be empty")

    report = SharingReport()
    baseline: Dict[str, Tuple[str, str, ResolvedSession]] = {}

    for rs in resolved:
        report.sessions_resolved += 1
        user = rs.canonical_username

        first = baseline.get(user)
        if first is None:
            baseline[user] = (rs.session_id, rs.remote_ip, rs)
            continue

        first_id, first_ip, first_rs = first
        if first_ip == rs.remote_ip:
            # même IP = plusieurs écrans au même endroit, légitime
            continue

        logger.warning(
            f"Suspicious activity detected for user {user}: "
            f"IP mismatch {first_ip} / {rs.remote_ip} (sessions {first_id}, {rs.session_id})"
        )

        incident = SharingIncident(canonical_username=user, baseline=first_rs, offender=rs)
        for sid in (first_id, rs.session_id):
            if _terminate(terminate, sid, reason):
                incident.terminated.append(sid)

        logger.warning(
            f"Stopped sessions {incident.terminated} for user {user} (account sharing)"
        )
        report.incidents.append(incident)

    return report


def check_account_sharing(provider, reason: str) -> SharingReport:
    """
    Passe complète : identité du propriétaire, membres, sessions, détection.
    Toute UpstreamUnavailable sur le listing interrompt la passe (pas de
    résultat partiel).
    """
    owner = provider.get_own_identity()
    members = provider.list_account_members()
    sessions = provider.get_active_sessions()

    resolved = reconcile(sessions, members, owner)
    report = detect_sharing(resolved, provider.terminate_session, reason)
    report.sessions_seen = len(sessions)

    logger.info(f"Found {report.incident_count} session(s) with suspicious IP activity.")
    return report
