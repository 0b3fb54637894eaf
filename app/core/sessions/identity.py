from __future__ import annotations
from typing import Dict, Iterable, Optional, Tuple

from core.sessions.models import AccountMember, OwnerIdentity, Session


def build_member_lookup(members: Iterable[AccountMember]) -> Dict[str, AccountMember]:
    """display_name -> membre (le dernier gagne en cas de doublon)."""
    lookup: Dict[str, AccountMember] = {}
    for m in members or ():
        if m and m.display_name:
            lookup[m.display_name] = m
    return lookup


def resolve_canonical_username(
    session: Session,
    members_lookup: Dict[str, AccountMember],
    owner: Optional[OwnerIdentity],
) -> Tuple[Optional[str], bool]:
    """
    display_name Plex -> username canonique.

    1) session du propriétaire du token -> owner.username
    2) membre partagé connu             -> username mappé
    3) sinon fallback display_name (resolved=False) : la corrélation
       avec un LocalUser échouera silencieusement pour cette session.
    """
    display_name = session.display_name
    if not display_name:
        return None, False

    if owner is not None and display_name == owner.display_name:
        return owner.username, True

    member = members_lookup.get(display_name)
    if member is not None and member.username:
        return member.username, True

    return display_name, False


def resolve_email(
    session: Session,
    members_lookup: Dict[str, AccountMember],
    owner: Optional[OwnerIdentity],
) -> Optional[str]:
    display_name = session.display_name
    if not display_name:
        return None
    if owner is not None and display_name == owner.display_name:
        return owner.email
    member = members_lookup.get(display_name)
    return member.email if member is not None else None
