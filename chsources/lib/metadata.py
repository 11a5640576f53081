"""Key-column metadata discovered from entity shapes.

An entity shape is a dataclass. Key fields are declared with
:func:`key_field`, in the order they should appear in a composite key:

    @dataclass
    class CountryLookup:
        Id: int = key_field()
        Name: str = ""

The key-column tuple of a shape never changes, so it is computed once per
shape per process and cached. Concurrent first calls may each compute the
tuple; the first one stored wins and every caller gets that same object.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Dict, List, Tuple

__all__ = [
    "KEY_METADATA",
    "clear_key_column_cache",
    "get_key_columns",
    "key_field",
]

logger = logging.getLogger(__name__)

KEY_METADATA = "chsources_key"

# Cache registry - keyed by shape class
_key_columns: Dict[type, Tuple[str, ...]] = {}
_key_columns_lock = threading.Lock()


def key_field(*, order: int = 0, **kwargs: Any) -> Any:
    """Declare a dataclass field as part of the entity key.

    Args:
        order: Position within a composite key (lower first); fields with
               equal order keep declaration order.
        **kwargs: Passed through to :func:`dataclasses.field`.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[KEY_METADATA] = order
    return dataclasses.field(metadata=metadata, **kwargs)


def _discover_key_columns(shape: type) -> Tuple[str, ...]:
    if not dataclasses.is_dataclass(shape):
        raise TypeError(f"{shape!r} is not a dataclass")

    keyed: List[Tuple[int, int, str]] = []
    for position, f in enumerate(dataclasses.fields(shape)):
        if KEY_METADATA in f.metadata:
            keyed.append((f.metadata[KEY_METADATA], position, f.name))

    keyed.sort()
    return tuple(name for _, _, name in keyed)


def get_key_columns(shape: type) -> Tuple[str, ...]:
    """Return the key-column names of ``shape`` (empty tuple if keyless)."""
    cached = _key_columns.get(shape)
    if cached is not None:
        return cached

    columns = _discover_key_columns(shape)

    with _key_columns_lock:
        winner = _key_columns.setdefault(shape, columns)

    if winner is columns:
        logger.debug("Cached key columns for %s: %s", shape.__name__, columns)
    return winner


def clear_key_column_cache() -> None:
    """Drop every cached entry (intended for tests)."""
    with _key_columns_lock:
        _key_columns.clear()
