"""Shared parsing helpers for settings and query parameters."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Settings fields that hold lists of strings and accept JSON or CSV env values.
_STRING_LIST_FIELDS = {"cors_origins"}


def is_hex_address(value: object) -> bool:
    """Return True for a 0x-prefixed, 40 hex digit account or contract address."""
    return isinstance(value, str) and bool(_ADDRESS_PATTERN.match(value.strip()))


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_json_list(value: str) -> list[str]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON array: {e}") from e
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise ValueError("JSON value must be an array of strings")
    return parsed


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a string list from an environment variable or config value.

    Accepts a list of strings, a JSON array string ('["a","b"]') or a
    comma-separated string ('a,b'). Raises ValueError for malformed JSON,
    and for empty results unless allow_empty is set.
    """
    if isinstance(value, list):
        result = value
    else:
        stripped = value.strip()
        if not stripped and not allow_empty:
            raise ValueError("String list value must not be empty")
        result = _parse_json_list(stripped) if stripped.startswith("[") else _split_csv(stripped)

    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


def parse_csv_query(value: str | None) -> list[str]:
    """Parse a comma-separated query parameter into lowercase, de-duplicated items."""
    if not value:
        return []
    seen: dict[str, None] = {}
    for item in _split_csv(value):
        seen.setdefault(item.lower(), None)
    return list(seen)


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands string-list fields to validators as raw strings.

    pydantic-settings JSON-decodes list-typed fields before validators run,
    which rejects the CSV form. This subclass skips that step for the
    fields in _STRING_LIST_FIELDS so parse_string_list sees the raw value.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
