"""Structural diff of JSON-like trees.

`diff(old, new)` walks both trees and reports CREATE / REMOVE / CHANGE entries
with the path to each differing leaf (dict keys as str, list indices as int).
Lists are compared by index, so callers that want identity-based matching run
both sides through `key_arrays_by_id` first.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator


class DiffType(str, Enum):
    CREATE = "CREATE"
    REMOVE = "REMOVE"
    CHANGE = "CHANGE"


PathKey = str | int


@dataclass(frozen=True)
class Difference:
    type: DiffType
    path: tuple[PathKey, ...]
    value: Any = None
    old_value: Any = None

    @property
    def path_str(self) -> str:
        return ".".join(str(p) for p in self.path)


def _entries(container: dict[str, Any] | list[Any]) -> Iterator[tuple[PathKey, Any]]:
    if isinstance(container, list):
        return iter(enumerate(container))
    return iter(container.items())


def _has(container: dict[str, Any] | list[Any], key: PathKey) -> bool:
    if isinstance(container, list):
        return isinstance(key, int) and 0 <= key < len(container)
    return key in container


def _same_scalar(a: Any, b: Any) -> bool:
    # True == 1 in Python; JSON booleans and numbers are distinct values
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


def _both_containers(a: Any, b: Any) -> bool:
    return (isinstance(a, dict) and isinstance(b, dict)) or (isinstance(a, list) and isinstance(b, list))


def diff(
    old: dict[str, Any] | list[Any],
    new: dict[str, Any] | list[Any],
    _path: tuple[PathKey, ...] = (),
) -> list[Difference]:
    out: list[Difference] = []
    for key, old_value in _entries(old):
        path = (*_path, key)
        if not _has(new, key):
            out.append(Difference(DiffType.REMOVE, path, old_value=old_value))
            continue
        new_value = new[key]  # type: ignore[index]
        if _both_containers(old_value, new_value):
            out.extend(diff(old_value, new_value, path))
        elif not _same_scalar(old_value, new_value):
            out.append(Difference(DiffType.CHANGE, path, value=new_value, old_value=old_value))

    for key, new_value in _entries(new):
        if not _has(old, key):
            out.append(Difference(DiffType.CREATE, (*_path, key), value=new_value))
    return out


def _all_have_unique_ids(items: list[Any]) -> bool:
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            return False
        if item["id"] in seen:
            return False
        seen.add(item["id"])
    return True


def key_arrays_by_id(value: Any) -> Any:
    """Recursively turn lists of objects with unique string `id`s into maps keyed by id.

    The `id` key itself is dropped from each value. Reordering such a list
    therefore produces no diff, and a change inside one element is reported
    at `<list>.<id>.<field>`.
    """
    if isinstance(value, list):
        if value and _all_have_unique_ids(value):
            return {item["id"]: key_arrays_by_id({k: v for k, v in item.items() if k != "id"}) for item in value}
        return [key_arrays_by_id(item) for item in value]
    if isinstance(value, dict):
        return {k: key_arrays_by_id(v) for k, v in value.items()}
    return value
