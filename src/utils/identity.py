"""Caller identity helpers."""

import re
from typing import Optional

# Canonical 8-4-4-4-12 hex form used by the store's owner_id column
_UUID_SHAPE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def resolve_owner_id(user_id: str) -> Optional[str]:
    """
    Map a caller identity to the owner partition of the message store.

    Returns the identity itself when it is UUID-shaped, otherwise ``None``,
    which selects the shared anonymous partition (rows with NULL owner_id).
    """
    if user_id and _UUID_SHAPE.match(user_id):
        return user_id
    return None
