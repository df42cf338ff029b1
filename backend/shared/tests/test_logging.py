import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _serialize_enums, hash_value, redact_sensitive, sanitize_value, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_log_file_has_datetime_in_name(self, tmp_path):
        fixed_time = datetime(2026, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "arena")

        assert log_path is not None
        assert log_path.name == "2026-03-15_10-30-45.log"
        assert log_path.parent == tmp_path / "arena"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_skips_file_handler_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            result = setup_logging(log_dir=tmp_path / "arena")

        assert result is None
        assert not (tmp_path / "arena").exists()

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging()

        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "invalid_value")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_silences_http_client_request_logs(self):
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_mode_hashes_sensitive_fields(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "arena")

        test_logger = structlog.get_logger("test.json")
        test_logger.info("payment initiated", reference="ref-123", wallet_address="0xabc", amount="1")

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "payment initiated"
        assert parsed["amount"] == "1"
        assert parsed["reference"] == hash_value("ref-123")
        assert parsed["wallet_address"] == hash_value("0xabc")
        assert "ref-123" not in Path(log_path).read_text()


class TestRedaction:
    def test_hash_is_stable_and_prefixed(self):
        assert hash_value("abc") == hash_value("abc")
        assert hash_value("abc") != hash_value("abd")
        assert hash_value("abc").startswith("hash:")

    def test_hash_depends_on_secret(self, monkeypatch):
        monkeypatch.setenv("LOG_HASH_SECRET", "one")
        first = hash_value("abc")
        monkeypatch.setenv("LOG_HASH_SECRET", "two")

        assert hash_value("abc") != first

    def test_sanitize_walks_nested_structures(self):
        value = {"details": {"session_token": "s1", "score": 3}, "user_ids": ["u1", "u2"]}

        result = sanitize_value(value)

        assert result["details"]["session_token"] == hash_value("s1")
        assert result["details"]["score"] == 3
        assert result["user_ids"] == [hash_value("u1"), hash_value("u2")]

    def test_none_is_kept(self):
        assert sanitize_value(None, "wallet_address") is None

    def test_processor_keeps_event_metadata(self):
        event_dict = {"event": "session rejected", "level": "info", "nullifier_hash": "n1"}

        result = redact_sensitive(None, "", event_dict)

        assert result["event"] == "session rejected"
        assert result["level"] == "info"
        assert result["nullifier_hash"] == hash_value("n1")


class TestSerializeEnums:
    class _Status(Enum):
        PENDING = "pending"
        CONFIRMED = "confirmed"

    def test_replaces_enum_with_value(self):
        result = _serialize_enums(None, "", {"status": self._Status.PENDING, "msg": "hello"})
        assert result == {"status": "pending", "msg": "hello"}

    def test_replaces_enum_inside_dict_value(self):
        result = _serialize_enums(None, "", {"data": {"status": self._Status.CONFIRMED, "count": 3}})
        assert result["data"] == {"status": "confirmed", "count": 3}
