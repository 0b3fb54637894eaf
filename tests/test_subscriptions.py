"""Tests for expired-subscription enforcement and the expiration sweep."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from conftest import make_session
from core.subscriptions import enforce_expired, parse_timestamp, sweep_expirations
from core.users import STATUS_ACTIVE, STATUS_EXPIRED, LocalUser, UserRepository
from errors import UpstreamUnavailable

REASON = "Abonnement expiré"
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _lookup(users):
    by_name = {u.plex_username: u for u in users}
    return lambda username: by_name.get(username)


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-05-31", datetime(2024, 5, 31, tzinfo=timezone.utc)),
            ("2024-05-31T10:30:00Z", datetime(2024, 5, 31, 10, 30, tzinfo=timezone.utc)),
            ("2024-05-31 10:30", datetime(2024, 5, 31, 10, 30, tzinfo=timezone.utc)),
            ("31/05/2024", datetime(2024, 5, 31, tzinfo=timezone.utc)),
        ],
    )
    def test_accepted_formats(self, value, expected) -> None:
        assert parse_timestamp(value) == expected

    def test_offset_is_kept(self) -> None:
        dt = parse_timestamp("2024-05-31T10:30:00+02:00")
        assert dt == datetime(2024, 5, 31, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not-a-date", "2024-13-45", "31/05"])
    def test_unparsable(self, value) -> None:
        assert parse_timestamp(value) is None


class TestEnforceExpired:
    def test_expired_user_is_terminated_once(self, owner, members) -> None:
        users = [LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_EXPIRED)]
        terminate = MagicMock(return_value=True)

        stopped = enforce_expired(
            [make_session("a", "Alice", "1.1.1.1")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        )

        assert stopped == 1
        terminate.assert_called_once_with("a", REASON)

    def test_null_status_is_terminated(self, owner, members) -> None:
        users = [LocalUser(id=1, username="bob", plex_username="bob", subscription_status=None)]
        terminate = MagicMock(return_value=True)

        stopped = enforce_expired(
            [make_session("b", "Bob B.", "1.1.1.1")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        )

        assert stopped == 1

    def test_active_and_unknown_users_untouched(self, owner, members) -> None:
        users = [LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_ACTIVE)]
        terminate = MagicMock(return_value=True)

        stopped = enforce_expired(
            [make_session("a", "Alice", "1.1.1.1"), make_session("s", "Stranger", "2.2.2.2")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        )

        assert stopped == 0
        terminate.assert_not_called()

    def test_session_username_used_without_account_data(self) -> None:
        users = [LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_EXPIRED)]
        terminate = MagicMock(return_value=True)

        stopped = enforce_expired(
            [make_session("a", "Alice Display", "1.1.1.1", username="alice")],
            _lookup(users), terminate, REASON,
        )

        assert stopped == 1

    def test_session_username_ignored_with_account_data(self, owner, members) -> None:
        users = [LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_EXPIRED)]
        terminate = MagicMock(return_value=True)

        stopped = enforce_expired(
            [make_session("a", "Alice Display", "1.1.1.1", username="alice")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        )

        assert stopped == 0
        terminate.assert_not_called()

    def test_terminate_failure_is_not_counted(self, owner, members) -> None:
        users = [
            LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_EXPIRED),
            LocalUser(id=2, username="bob", plex_username="bob", subscription_status=STATUS_EXPIRED),
        ]

        def terminate(session_id, reason):
            if session_id == "a":
                raise UpstreamUnavailable("down", service="plex")
            return True

        stopped = enforce_expired(
            [make_session("a", "Alice", "1.1.1.1"), make_session("b", "Bob B.", "2.2.2.2")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        )

        assert stopped == 1

    def test_session_without_id_skipped(self, owner, members) -> None:
        users = [LocalUser(id=1, username="alice", plex_username="alice", subscription_status=STATUS_EXPIRED)]
        terminate = MagicMock(return_value=True)

        assert enforce_expired(
            [make_session(None, "Alice", "1.1.1.1")],
            _lookup(users), terminate, REASON, members=members, owner=owner,
        ) == 0


class TestSweepExpirations:
    def test_past_expiration_transitions(self, db, add_user) -> None:
        uid = add_user("alice", "alice", STATUS_ACTIVE, "2024-05-31")
        repo = UserRepository(db)

        result = sweep_expirations(repo, now=NOW)

        assert result.transitioned == [uid]
        assert repo.find_by_id(uid).subscription_status == STATUS_EXPIRED

    def test_idempotent(self, db, add_user) -> None:
        add_user("alice", "alice", STATUS_ACTIVE, "2024-05-31")
        repo = UserRepository(db)

        assert sweep_expirations(repo, now=NOW).count == 1
        assert sweep_expirations(repo, now=NOW).count == 0

    def test_future_and_missing_expirations_untouched(self, db, add_user) -> None:
        future = add_user("bob", "bob", STATUS_ACTIVE, "2024-07-01T00:00:00Z")
        missing = add_user("carol", "carol", STATUS_ACTIVE, None)
        repo = UserRepository(db)

        result = sweep_expirations(repo, now=NOW)

        assert result.count == 0
        assert repo.find_by_id(future).subscription_status == STATUS_ACTIVE
        assert repo.find_by_id(missing).subscription_status == STATUS_ACTIVE

    def test_exact_now_is_not_expired(self, db, add_user) -> None:
        add_user("dave", "dave", STATUS_ACTIVE, NOW.isoformat())
        assert sweep_expirations(UserRepository(db), now=NOW).count == 0

    def test_unparsable_date_warns_and_continues(self, db, add_user) -> None:
        bad = add_user("eve", "eve", STATUS_ACTIVE, "someday")
        good = add_user("frank", "frank", STATUS_ACTIVE, "01/05/2024")
        repo = UserRepository(db)

        result = sweep_expirations(repo, now=NOW)

        assert result.transitioned == [good]
        assert len(result.warnings) == 1
        assert repo.find_by_id(bad).subscription_status == STATUS_ACTIVE


class TestUserRepository:
    def test_duplicate_plex_username_uses_lowest_id(self, db, add_user) -> None:
        first = add_user("alice1", "alice", STATUS_ACTIVE)
        add_user("alice2", "alice", STATUS_EXPIRED)

        user = UserRepository(db).find_by_plex_username("alice")

        assert user.id == first

    def test_unknown_username(self, db) -> None:
        assert UserRepository(db).find_by_plex_username("nobody") is None
        assert UserRepository(db).find_by_plex_username(None) is None
