"""Structured logging configuration with structlog.

Environment variables:
- LOG_FORMAT: "json" for production log aggregation, "console" or unset for
  human-readable colored output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".
- LOG_HASH_SECRET: key used to hash identifying values (wallets, sessions,
  user ids, nullifiers, payment references) before they reach any log sink.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_VALID_LOG_FORMATS = {"json", "console", ""}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Substrings of field names whose values identify a person or a payment.
_SENSITIVE_KEY_PARTS = ("wallet", "user", "session", "nullifier", "reference", "transaction", "address")

_DEFAULT_HASH_SECRET = "log_salt"


def _hash_secret() -> bytes:
    return os.environ.get("LOG_HASH_SECRET", _DEFAULT_HASH_SECRET).encode("utf-8")


def hash_value(value: object) -> str:
    """Return a keyed, stable digest for a sensitive value."""
    digest = hmac.new(_hash_secret(), str(value).encode("utf-8"), hashlib.sha256).hexdigest()
    return f"hash:{digest[:16]}"


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


def sanitize_value(value: Any, key: str | None = None) -> Any:  # noqa: ANN401
    """Recursively replace values stored under sensitive keys with their hash."""
    if value is None:
        return None
    if isinstance(value, dict):
        return {k: sanitize_value(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_value(item, key) for item in value]
    if key is not None and is_sensitive_key(key):
        return hash_value(value)
    return value


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Replace Enum instances with their .value for readable log output."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, dict):
            event_dict[key] = {k: v.value if isinstance(v, Enum) else v for k, v in value.items()}
    return event_dict


def redact_sensitive(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Hash identifying fields so raw wallets and session tokens never hit the logs."""
    for key in list(event_dict.keys()):
        if key in {"event", "logger", "level", "timestamp"}:
            continue
        event_dict[key] = sanitize_value(event_dict[key], key)
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


@dataclass(frozen=True)
class _LogOptions:
    json_mode: bool
    level: int

    @classmethod
    def from_env(cls, level: int | None = None) -> _LogOptions:
        log_format = os.environ.get("LOG_FORMAT", "").lower()
        if log_format not in _VALID_LOG_FORMATS:
            msg = f"Invalid LOG_FORMAT={log_format!r}. Must be 'json', 'console', or unset."
            raise ValueError(msg)

        if level is None:
            name = os.environ.get("LOG_LEVEL", "INFO").upper()
            if name not in _VALID_LOG_LEVELS:
                msg = f"Invalid LOG_LEVEL={name!r}. Must be one of {', '.join(sorted(_VALID_LOG_LEVELS))}."
                raise ValueError(msg)
            level = getattr(logging, name)
        return cls(json_mode=log_format == "json", level=level)


def configure_structlog(*, timestamps: bool = True) -> None:
    """Route structlog through stdlib logging with enum serialization and redaction.

    Exceptions are formatted by the handler's ProcessorFormatter, so
    tracebacks are rendered once per sink.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]
    if timestamps:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        _serialize_enums,
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _attach(root: logging.Logger, handler: logging.Handler, *, json_mode: bool, colors: bool) -> None:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    root.addHandler(handler)


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Configure structlog with stdout and optional file output.

    Level comes from LOG_LEVEL (default INFO) unless given. With log_dir,
    a datetime-stamped file is added in that directory and its path returned.
    """
    options = _LogOptions.from_env(level)
    configure_structlog()

    root = logging.getLogger()
    root.setLevel(options.level)
    root.handlers.clear()

    # httpx logs every request line, which would include processor URLs with transaction ids.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _attach(root, logging.StreamHandler(sys.stdout), json_mode=options.json_mode, colors=sys.stdout.isatty())

    if log_dir is None or _is_test():
        return None

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    file_path = directory / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    _attach(root, logging.FileHandler(file_path), json_mode=options.json_mode, colors=False)
    return file_path
