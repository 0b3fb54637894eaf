#!/usr/bin/env python3
"""
subscriptions.py
----------------
Deux passes autour de l'abonnement des utilisateurs locaux :

- enforce_expired   : coupe les streams Plex des utilisateurs dont
                      subscription_status est 'Expired' ou NULL
- sweep_expirations : passe 'Active' -> 'Expired' quand
                      subscription_expiration est dépassée

Les dates illisibles ne sont jamais corrigées : l'utilisateur est ignoré
et un DataIntegrityWarning est enregistré.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from errors import DataIntegrityWarning, UpstreamUnavailable
from logging_utils import get_logger
from core.sessions.identity import build_member_lookup, resolve_canonical_username
from core.sessions.models import AccountMember, OwnerIdentity, Session
from core.users import STATUS_EXPIRED, LocalUser

log = get_logger("subscriptions")


def parse_timestamp(value) -> Optional[datetime]:
    """
    Accepte:
      - 'YYYY-MM-DD'
      - 'YYYY-MM-DDTHH:MM[:SS][Z|+HH:MM]'
      - 'YYYY-MM-DD HH:MM[:SS]'
      - 'DD/MM/YYYY'
    Les dates sans fuseau sont lues en UTC. None si illisible.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None

        # format FR
        if "/" in s:
            parts = s.split("/")
            if len(parts) != 3:
                return None
            dd, mm, yyyy = parts[0].zfill(2), parts[1].zfill(2), parts[2].strip()
            s = f"{yyyy}-{mm}-{dd}"

        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ----------------------------------------------------
# Enforcement des streams
# ----------------------------------------------------
def _is_blocked(user: LocalUser) -> bool:
    return user.subscription_status in (STATUS_EXPIRED, None)


def enforce_expired(
    sessions: Iterable[Session],
    lookup_user: Callable[[str], Optional[LocalUser]],
    terminate: Callable[[str, str], bool],
    reason: str,
    members: Iterable[AccountMember] = (),
    owner: Optional[OwnerIdentity] = None,
) -> int:
    """
    Retourne le nombre de sessions effectivement coupées.
    Un échec de terminate est loggé, la boucle continue.
    """
    lookup = build_member_lookup(members)
    stopped = 0

    for s in sessions or ():
        if not s.session_id:
            log.warning(f"Session sans id ignorée (user={s.display_name})")
            continue

        username, resolved = resolve_canonical_username(s, lookup, owner)
        # sans données de compte, le username rapporté par Plex prime
        if owner is None and not resolved and s.username:
            username = s.username

        if not username:
            log.warning(f"No username found for session {s.session_id}")
            continue

        user = lookup_user(username)
        if user is None or not _is_blocked(user):
            continue

        try:
            terminate(str(s.session_id), reason)
        except UpstreamUnavailable as e:
            log.error(f"terminate failed session={s.session_id} user={username}: {e}")
            continue

        log.warning(
            f"Stopped the stream for user with username {user.plex_username or username} "
            f"due to {'expired' if user.subscription_status else 'missing'} subscription."
        )
        stopped += 1

    return stopped


# ----------------------------------------------------
# Sweep des expirations
# ----------------------------------------------------
@dataclass
class SweepResult:
    transitioned: List[int] = field(default_factory=list)
    warnings: List[DataIntegrityWarning] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.transitioned)


def sweep_expirations(repo, now: Optional[datetime] = None) -> SweepResult:
    """
    Active + expiration strictement passée -> Expired (persisté).
    Idempotent : un second passage ne voit plus ces utilisateurs en Active.
    """
    now = parse_timestamp(now or datetime.now(timezone.utc))
    result = SweepResult()

    for user in repo.list_active_subscriptions():
        if not user.subscription_expiration:
            continue

        exp = parse_timestamp(user.subscription_expiration)
        if exp is None:
            w = DataIntegrityWarning(
                f"Invalid expiration date for user {user.username} (id={user.id}): "
                f"{user.subscription_expiration!r}"
            )
            log.warning(str(w))
            result.warnings.append(w)
            continue

        if exp >= now:
            continue

        user.subscription_status = STATUS_EXPIRED
        repo.save_subscription(user)
        result.transitioned.append(user.id)

        log.info(f"{user.plex_username or user.username}'s subscription has expired")

    return result
