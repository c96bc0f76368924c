"""Table naming utilities.

This module provides centralized validation and resolution for the DynamoDB
table that holds counter shards. Names must satisfy DynamoDB's rules:
- Letters, digits, underscores, hyphens, and periods only
- Between 3 and 255 characters
"""

import os
import re

from .exceptions import ValidationError

DEFAULT_TABLE_NAME = "loop-counters"
"""Default table name used by the CLI and ``Repository`` helpers."""

TABLE_ENV_VAR = "LOOP_COUNTERS_TABLE"
"""Environment variable for overriding the default table name."""

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_table_name(name: str) -> None:
    """
    Validate a DynamoDB table name.

    Args:
        name: The user-provided table name

    Raises:
        ValidationError: If the name is invalid
    """
    if not name:
        raise ValidationError("table_name", name, "Name cannot be empty")

    if " " in name:
        raise ValidationError(
            "table_name",
            name,
            "Contains spaces. Use hyphens instead (e.g., 'loop-counters' not 'loop counters')",
        )

    if not NAME_PATTERN.match(name):
        raise ValidationError(
            "table_name",
            name,
            "Only letters, digits, underscores, hyphens, and periods are allowed.",
        )

    if len(name) < 3:
        raise ValidationError("table_name", name, "Too short. Minimum length is 3 characters.")

    if len(name) > 255:
        raise ValidationError(
            "table_name", name, "Too long. Name exceeds 255 character limit."
        )


def resolve_table_name(name: str | None) -> str:
    """Resolve table name from explicit arg, env var, or default.

    Resolution order: ``name`` arg → ``LOOP_COUNTERS_TABLE`` env var → ``"loop-counters"``.

    Args:
        name: Explicit table name, or ``None`` to use env/default.

    Returns:
        Validated table name.
    """
    resolved = name or os.environ.get(TABLE_ENV_VAR) or DEFAULT_TABLE_NAME
    validate_table_name(resolved)
    return resolved
