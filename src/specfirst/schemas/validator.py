"""JSON Schema validation against schemas shipped as package data."""

from __future__ import annotations

from typing import Any

from jsonschema.exceptions import ValidationError
from jsonschema.validators import Draft202012Validator

from specfirst.utils.schema_registry import get_registry


def _describe(error: ValidationError) -> str:
    location = ".".join(str(part) for part in error.absolute_path)
    return f"{location}: {error.message}" if location else error.message


def validate_data(
    data: Any,
    schema_name: str,
    strict: bool = True,
) -> tuple[bool, list[str]]:
    """Validate a decoded JSON document against a packaged schema.

    Args:
        data: Decoded document (metadata.json contents).
        schema_name: Schema name with or without the ``.schema.json`` suffix.
        strict: Raise on the first failing document instead of returning errors.

    Returns:
        Tuple of (is_valid, error_messages), messages ordered by document path.

    Raises:
        KeyError: If the schema is not shipped with the package.
        ValueError: If validation fails and ``strict`` is True.
    """
    validator = Draft202012Validator(
        get_registry().get_json(schema_name),
        format_checker=Draft202012Validator.FORMAT_CHECKER,
    )
    messages = sorted(_describe(error) for error in validator.iter_errors(data))
    if not messages:
        return True, []

    if strict:
        details = "\n".join(f"  - {message}" for message in messages)
        raise ValueError(f"Schema validation failed for '{schema_name}':\n{details}")
    return False, messages
