"""Secret identifier validation."""

import re

# Canonical 8-4-4-4-12 form, version nibble 4, variant nibble 8/9/a/b
UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_secret_id(value: object) -> bool:
    return isinstance(value, str) and UUID_V4_PATTERN.fullmatch(value) is not None


def find_invalid_secret_ids(values: list[object]) -> list[object]:
    """Return every malformed identifier, in input order."""
    return [value for value in values if not is_valid_secret_id(value)]
