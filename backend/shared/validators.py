"""Settings helpers for list-valued environment variables."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str]) -> list[str]:
    """Parse a non-empty list of strings from a JSON array or a comma-separated string.

    Raises ValueError for blank input, malformed JSON, non-string items
    and lists that end up empty.
    """
    if isinstance(value, list):
        items = value
    else:
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                items = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
                raise ValueError("JSON value must be an array of strings")
        else:
            items = [part.strip() for part in stripped.split(",") if part.strip()]

    if not items:
        raise ValueError("String list value must not be empty")
    return items


# Fields whose raw env value goes to parse_string_list untouched.
STRING_LIST_FIELDS = frozenset({"cors_origins"})


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that skips pydantic-settings' JSON pre-decoding for string-list fields.

    Without it a CSV value such as "http://a,http://b" fails before the
    field validator sees it.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
