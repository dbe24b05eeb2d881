"""Key grammar and hierarchy helpers.

Keys are ``/``-separated paths. Directories are never stored: a key such as
``a/b/c`` implies the non-terminal ancestors ``a`` and ``a/b``. Backends that
keep a flat set of terminal keys (memory, SQL) derive existence and listings
from that set with the helpers below, which keeps their answers identical.
"""

from __future__ import annotations

from collections.abc import Iterable

from .errors import InvalidKey

SEPARATOR = "/"

_RELATIVE_SEGMENTS = frozenset({".", ".."})


def validate_key(key: str) -> str:
    """Return `key` unchanged if it is well formed.

    Raises:
        InvalidKey: If the key is empty, starts or ends with a separator, has
            an empty segment, or has a ``.``/``..`` segment.
    """
    if not isinstance(key, str) or not key:
        raise InvalidKey(str(key) if key is not None else "", "empty key")
    for segment in key.split(SEPARATOR):
        if not segment:
            raise InvalidKey(key, "empty path segment")
        if segment in _RELATIVE_SEGMENTS:
            raise InvalidKey(key, f"relative path segment {segment!r}")
    return key


def is_valid_key(key: str) -> bool:
    """Return True if `validate_key` would accept `key`."""
    try:
        validate_key(key)
    except InvalidKey:
        return False
    return True


def join(*segments: str) -> str:
    """Join segments into a key."""
    return SEPARATOR.join(segments)


def ancestors(key: str) -> list[str]:
    """Return the strict ancestors of `key`, outermost first.

    Example:
        ``ancestors("a/b/c") == ["a", "a/b"]``
    """
    parts = key.split(SEPARATOR)
    return [join(*parts[:i]) for i in range(1, len(parts))]


def parent_of(key: str) -> str | None:
    """Return the immediate parent of `key`, or None for a top-level key."""
    head, sep, _ = key.rpartition(SEPARATOR)
    return head if sep else None


def is_descendant(key: str, parent: str) -> bool:
    """Return True if `key` lies strictly below `parent`."""
    return key.startswith(parent + SEPARATOR)


def list_descendants(
    parent: str, stored_keys: Iterable[str], recursive: bool
) -> list[str]:
    """Derive the listing of `parent` from a collection of terminal keys.

    Keys in `stored_keys` that are not below `parent` are ignored, so callers
    may pass a superset (e.g. a coarse database prefix match).

    Args:
        parent: The key being listed.
        stored_keys: Terminal keys known to the backend.
        recursive: If False, return only immediate children; otherwise every
            descendant, including implied directory keys.

    Returns:
        list[str]: Sorted, duplicate-free full keys.
    """
    prefix = parent + SEPARATOR
    found: set[str] = set()
    for key in stored_keys:
        if not key.startswith(prefix):
            continue
        relative = key[len(prefix) :].split(SEPARATOR)
        if recursive:
            for depth in range(1, len(relative) + 1):
                found.add(prefix + join(*relative[:depth]))
        else:
            found.add(prefix + relative[0])
    return sorted(found)
