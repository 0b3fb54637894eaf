"""Tests for display-name -> canonical username resolution."""

from __future__ import annotations

from conftest import make_session
from core.sessions.identity import build_member_lookup, resolve_canonical_username, resolve_email
from core.sessions.models import AccountMember


class TestResolveCanonicalUsername:
    def test_owner_session_resolves_to_owner_username(self, owner, members) -> None:
        s = make_session("1", "Owner", "1.1.1.1")
        assert resolve_canonical_username(s, build_member_lookup(members), owner) == ("owner_user", True)

    def test_member_display_name_is_mapped(self, owner, members) -> None:
        s = make_session("1", "Bob B.", "1.1.1.1")
        assert resolve_canonical_username(s, build_member_lookup(members), owner) == ("bob", True)

    def test_unknown_display_name_falls_back(self, owner, members) -> None:
        s = make_session("1", "Stranger", "1.1.1.1")
        assert resolve_canonical_username(s, build_member_lookup(members), owner) == ("Stranger", False)

    def test_owner_checked_before_members(self, owner) -> None:
        lookup = build_member_lookup([AccountMember(display_name="Owner", username="someone_else")])
        s = make_session("1", "Owner", "1.1.1.1")
        assert resolve_canonical_username(s, lookup, owner) == ("owner_user", True)

    def test_missing_display_name(self, owner, members) -> None:
        s = make_session("1", None, "1.1.1.1")
        assert resolve_canonical_username(s, build_member_lookup(members), owner) == (None, False)

    def test_no_owner(self, members) -> None:
        s = make_session("1", "Alice", "1.1.1.1")
        assert resolve_canonical_username(s, build_member_lookup(members), None) == ("alice", True)


def test_duplicate_display_names_last_wins() -> None:
    lookup = build_member_lookup([
        AccountMember(display_name="Sam", username="sam1"),
        AccountMember(display_name="Sam", username="sam2"),
    ])
    assert lookup["Sam"].username == "sam2"


def test_resolve_email(owner, members) -> None:
    lookup = build_member_lookup(members)
    assert resolve_email(make_session("1", "Owner", "ip"), lookup, owner) == "owner@example.com"
    assert resolve_email(make_session("1", "Alice", "ip"), lookup, owner) == "alice@example.com"
    assert resolve_email(make_session("1", "Stranger", "ip"), lookup, owner) is None
