"""Path-based projection of nested state dicts.

These helpers never raise on missing data: reading through an absent or
non-mapping intermediate yields None, which keeps them safe against
partially initialized state trees.

Example:
    state = {"user": {"name": "ada", "token": "x"}, "theme": "dark"}

    pick(state, ["user.name"])      # {"user": {"name": "ada"}}
    exclude(state, {"theme"})       # {"user": {...}}
"""

import copy
from typing import Any, Iterable, Mapping, MutableMapping, Optional, Sequence

# Segment name that must never be traversed or created when writing.
PROTO_KEY = "__proto__"


def get_path(state: Any, path: Sequence[str]) -> Any:
    """Read the value at path, or None if any step is missing."""
    obj = state
    for segment in path:
        if not isinstance(obj, Mapping):
            return None
        obj = obj.get(segment)
        if obj is None:
            return None
    return obj


def set_path(state: MutableMapping, path: Sequence[str], value: Any) -> MutableMapping:
    """Write value at path, creating intermediate dicts as needed.

    A "__proto__" segment is never followed or created; a detached dict
    takes its place, so the write cannot reach shared state. A final
    "__proto__" segment is not written at all.

    Returns:
        The same state object, mutated
    """
    if not path:
        return state

    obj = state
    for segment in path[:-1]:
        if segment == PROTO_KEY:
            obj = {}
            continue
        child = obj.get(segment) if isinstance(obj, Mapping) else None
        if not isinstance(child, MutableMapping):
            child = {}
            obj[segment] = child
        obj = child

    if path[-1] != PROTO_KEY:
        obj[path[-1]] = value
    return state


def pick(state: Mapping, paths: Iterable[str]) -> dict:
    """Copy only the given dotted paths into a new dict.

    Paths with no value are still written (as None) so the projected
    shape matches the requested paths. Picked dicts are copied, so
    overlapping paths never write back into state.
    """
    substate: dict = {}
    for path in paths:
        segments = path.split(".")
        value = get_path(state, segments)
        if isinstance(value, Mapping):
            value = copy.deepcopy(value)
        set_path(substate, segments, value)
    return substate


def exclude(state: Mapping, excludes: Iterable[str]) -> dict:
    """Shallow copy of state without the given top-level keys."""
    filtered = dict(state)
    for key in excludes:
        filtered.pop(key, None)
    return filtered


def project(
    state: Mapping,
    paths: Optional[Iterable[str]] = None,
    excludes: Optional[Iterable[str]] = None,
) -> Mapping:
    """Derive the substate to persist.

    Args:
        state: Full store state
        paths: Dotted paths to keep (takes the pick route)
        excludes: Top-level keys to drop (takes the exclude route)

    Returns:
        The projected substate, or state itself when neither is given
    """
    if paths is not None:
        return pick(state, paths)
    if excludes is not None:
        return exclude(state, excludes)
    return state
