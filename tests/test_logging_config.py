"""Tests for logging setup and secret redaction."""

from __future__ import annotations

import logging
import os

import pytest

from ocireg_mcp.display.logging_config import (
    SecretRedactionFilter,
    secret_redaction_filter,
    setup_logging,
)


def _record(msg, args=()) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


class TestSecretRedactionFilter:
    def test_redacts_message(self) -> None:
        f = SecretRedactionFilter()
        f.register("s3cr3t-value")
        record = _record("token is s3cr3t-value")
        assert f.filter(record) is True
        assert record.getMessage() == "token is ***REDACTED***"

    def test_redacts_tuple_args(self) -> None:
        f = SecretRedactionFilter()
        f.register("s3cr3t-value")
        record = _record("%s and %d", ("s3cr3t-value", 3))
        f.filter(record)
        assert record.getMessage() == "***REDACTED*** and 3"

    def test_redacts_dict_args(self) -> None:
        f = SecretRedactionFilter()
        f.register("s3cr3t-value")
        record = _record("%(tok)s", ({"tok": "s3cr3t-value"},))
        f.filter(record)
        assert record.getMessage() == "***REDACTED***"

    def test_longest_secret_first(self) -> None:
        f = SecretRedactionFilter()
        f.register("abcd")
        f.register("abcdefgh")
        record = _record("abcdefgh")
        f.filter(record)
        assert record.getMessage() == "***REDACTED***"

    def test_short_values_are_ignored(self) -> None:
        f = SecretRedactionFilter()
        f.register("abc")
        f.register("")
        record = _record("abc")
        f.filter(record)
        assert record.getMessage() == "abc"


class TestSetupLogging:
    def test_invalid_level_falls_back_to_info(self, restore_logging) -> None:
        log_fpath, level = setup_logging("chatty")
        assert log_fpath is None
        assert level == "INFO"

    def test_level_applied_to_package_logger(self, restore_logging) -> None:
        setup_logging("warning")
        assert logging.getLogger("ocireg_mcp").level == logging.WARNING

    def test_log_file_is_redacted(self, restore_logging, tmp_path) -> None:
        log_fpath, level = setup_logging("debug", str(tmp_path / "logs"))
        assert level == "DEBUG"
        assert log_fpath is not None
        assert os.path.dirname(log_fpath) == str(tmp_path / "logs")

        secret_redaction_filter.register("file-secret-token")
        logging.getLogger("ocireg_mcp.test").info("token=%s", "file-secret-token")
        for handler in logging.getLogger("ocireg_mcp").handlers:
            handler.flush()

        with open(log_fpath, encoding="utf-8") as fh:
            content = fh.read()
        assert "token=***REDACTED***" in content
        assert "file-secret-token" not in content

    @pytest.mark.parametrize("level", ["debug", "INFO", "Error"])
    def test_level_is_case_insensitive(self, level: str, restore_logging) -> None:
        _, validated = setup_logging(level)
        assert validated == level.upper()
