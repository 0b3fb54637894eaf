"""Tests for log anonymisation."""

from __future__ import annotations

import logging
from unittest.mock import patch

from logging_utils import AnonymizeFilter, get_logger


def _record(msg, *args):
    return logging.LogRecord("streamkeeper.test", logging.INFO, __file__, 1, msg, args, None)


def test_masks_email_and_tokens() -> None:
    record = _record("user %s GET /status?X-Plex-Token=abc123 apikey=deadbeef", "alice@example.com")
    with patch("logging_utils.is_debug_mode_enabled", return_value=False):
        assert AnonymizeFilter().filter(record) is True

    assert record.getMessage() == "user a****@example.com GET /status?X-Plex-Token=***REDACTED*** apikey=***REDACTED***"


def test_debug_mode_keeps_message() -> None:
    record = _record("token=abc123")
    with patch("logging_utils.is_debug_mode_enabled", return_value=True):
        AnonymizeFilter().filter(record)
    assert record.getMessage() == "token=abc123"


def test_child_logger_name() -> None:
    assert get_logger("plex_account_sharing").name == "streamkeeper.plex_account_sharing"
