"""
DevTinder — Pairing key.

Canonicalises two user identifiers into an order-independent key so that a
pair is stored once regardless of who acted first::

    canonical_pair(a, b) == canonical_pair(b, a)

The total order is the lexicographic order of the canonical UUID string,
which for lowercase hyphenated UUIDs matches their integer order.
"""

from __future__ import annotations

import uuid

from devtinder.errors import ValidationError

UserRef = uuid.UUID | str


def parse_user_id(value: UserRef) -> uuid.UUID:
    """Coerce a UUID or UUID string into ``uuid.UUID``."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid user id: {value!r}") from exc


def canonical_pair(user_a: UserRef, user_b: UserRef) -> tuple[uuid.UUID, uuid.UUID]:
    """Return ``(first, second)`` with ``str(first) < str(second)``.

    Raises
    ------
    ValidationError
        If either identifier is malformed or both refer to the same user.
    """
    first = parse_user_id(user_a)
    second = parse_user_id(user_b)

    if first == second:
        raise ValidationError("A pair needs two different users")

    if str(second) < str(first):
        first, second = second, first
    return first, second
