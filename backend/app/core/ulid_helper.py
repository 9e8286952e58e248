"""ULID generation for primary keys."""

import ulid


def generate_ulid() -> str:
    """Generate a new 26-character ULID string."""
    return str(ulid.ULID())
