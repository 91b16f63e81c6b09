"""
Structural patches between JSON-like states.

A patch is an ordered list of operations in the RFC 6902 subset used by the
editor::

    {"op": "add" | "remove" | "replace", "path": "/0/children/2", "value": ...}

Paths are RFC 6901 JSON Pointers; ``""`` addresses the whole document.
Operations are applied sequentially, so each path refers to the document as
left by the previous operation.

Arrays whose items are all dicts with a unique ``id`` (layer lists and their
``children``) are diffed by identity rather than by position. When the relative
order of surviving items changes, or items are both added and removed, the whole
array is replaced: index-level operations for those cases are ambiguous and
brittle to replay.
"""
import copy
import logging
from typing import Any, Literal, NotRequired, TypedDict

from diff_match_patch import diff_match_patch

from services.exceptions import PatchApplicationError

logger = logging.getLogger(__name__)


class PatchOperation(TypedDict):
    """One patch operation. ``value`` is absent for removals."""

    op: Literal["add", "remove", "replace"]
    path: str
    value: NotRequired[Any]


Patch = list[PatchOperation]

_dmp = diff_match_patch()


# ---------------------------------------------------------------------------
# JSON Pointer helpers
# ---------------------------------------------------------------------------


def escape_pointer_token(token: str | int) -> str:
    """Escape one path segment per RFC 6901 (``~`` -> ``~0``, ``/`` -> ``~1``)."""
    return str(token).replace("~", "~0").replace("/", "~1")


def unescape_pointer_token(token: str) -> str:
    """Reverse escape_pointer_token."""
    return token.replace("~1", "/").replace("~0", "~")


def join_pointer(path: str, token: str | int) -> str:
    """Append a segment to a JSON pointer."""
    return f"{path}/{escape_pointer_token(token)}"


def parse_pointer(path: str) -> list[str]:
    """
    Split a JSON pointer into unescaped segments.

    Raises:
        ValueError: If the pointer is non-empty and does not start with "/".
    """
    if path == "":
        return []
    if not path.startswith("/"):
        raise ValueError(f"Invalid JSON pointer: {path!r}")
    return [unescape_pointer_token(part) for part in path[1:].split("/")]


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality for JSON-like values.

    Unlike ``==``, booleans never equal numbers (``True != 1``).
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b, strict=True))
    if isinstance(a, dict | list) or isinstance(b, dict | list):
        return False
    return a == b


# ---------------------------------------------------------------------------
# Patch creation
# ---------------------------------------------------------------------------


def _keyed_ids(items: list) -> list | None:
    """Return item ids if every item is a dict with a unique id, else None."""
    if not items:
        return None
    ids = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str | int):
            return None
        ids.append(item["id"])
    if len(set(ids)) != len(ids):
        return None
    return ids


def _diff(before: Any, after: Any, path: str, ops: Patch) -> None:
    if deep_equal(before, after):
        return
    if isinstance(before, dict) and isinstance(after, dict):
        _diff_objects(before, after, path, ops)
    elif isinstance(before, list) and isinstance(after, list):
        _diff_arrays(before, after, path, ops)
    else:
        ops.append({"op": "replace", "path": path, "value": copy.deepcopy(after)})


def _diff_objects(before: dict, after: dict, path: str, ops: Patch) -> None:
    for key in before:
        if key not in after:
            ops.append({"op": "remove", "path": join_pointer(path, key)})
    for key, value in after.items():
        if key not in before:
            ops.append({"op": "add", "path": join_pointer(path, key), "value": copy.deepcopy(value)})
        else:
            _diff(before[key], value, join_pointer(path, key), ops)


def _diff_arrays(before: list, after: list, path: str, ops: Patch) -> None:
    before_ids = _keyed_ids(before)
    after_ids = _keyed_ids(after)
    if before_ids is not None and after_ids is not None:
        _diff_keyed_arrays(before, after, before_ids, after_ids, path, ops)
        return

    # Positional diff: replace changed items, then trim or extend the tail
    common = min(len(before), len(after))
    for index in range(common):
        if not deep_equal(before[index], after[index]):
            ops.append({
                "op": "replace",
                "path": join_pointer(path, index),
                "value": copy.deepcopy(after[index]),
            })
    for index in range(len(before) - 1, common - 1, -1):
        ops.append({"op": "remove", "path": join_pointer(path, index)})
    for index in range(common, len(after)):
        ops.append({"op": "add", "path": join_pointer(path, index), "value": copy.deepcopy(after[index])})


def _diff_keyed_arrays(
    before: list[dict],
    after: list[dict],
    before_ids: list,
    after_ids: list,
    path: str,
    ops: Patch,
) -> None:
    before_set = set(before_ids)
    after_set = set(after_ids)
    removed = before_set - after_set
    added = after_set - before_set

    common_before_order = [item_id for item_id in before_ids if item_id in after_set]
    common_after_order = [item_id for item_id in after_ids if item_id in before_set]
    if common_before_order != common_after_order or (removed and added):
        ops.append({"op": "replace", "path": path, "value": copy.deepcopy(after)})
        return

    after_by_id = {item["id"]: item for item in after}

    # Modifications first, while indices still match ``before``
    for index, item in enumerate(before):
        if item["id"] in after_by_id:
            _diff(item, after_by_id[item["id"]], join_pointer(path, index), ops)

    # Removals from the end so earlier indices stay valid
    for index in range(len(before) - 1, -1, -1):
        if before[index]["id"] in removed:
            ops.append({"op": "remove", "path": join_pointer(path, index)})

    # Insertions in ascending final position
    for index, item in enumerate(after):
        if item["id"] in added:
            ops.append({"op": "add", "path": join_pointer(path, index), "value": copy.deepcopy(item)})


def create_patch(before: Any, after: Any) -> Patch:
    """
    Compute the operations that transform ``before`` into ``after``.

    Args:
        before: Original state.
        after: Target state.

    Returns:
        Ordered list of operations; empty when the states are equal.
    """
    ops: Patch = []
    _diff(before, after, "", ops)
    return ops


# ---------------------------------------------------------------------------
# Patch application
# ---------------------------------------------------------------------------


def _resolve_parent(document: Any, parts: list[str], operation: PatchOperation) -> Any:
    node = document
    for part in parts:
        if isinstance(node, dict):
            if part not in node:
                raise PatchApplicationError(operation, f"missing key {part!r}")
            node = node[part]
        elif isinstance(node, list):
            index = _list_index(node, part, operation, allow_end=False)
            node = node[index]
        else:
            raise PatchApplicationError(operation, f"cannot descend into {type(node).__name__}")
    return node


def _list_index(items: list, token: str, operation: PatchOperation, allow_end: bool) -> int:
    if allow_end and token == "-":
        return len(items)
    if not token.isdigit():
        raise PatchApplicationError(operation, f"invalid array index {token!r}")
    index = int(token)
    upper = len(items) if allow_end else len(items) - 1
    if index > upper:
        raise PatchApplicationError(operation, f"array index {index} out of range")
    return index


def _apply_operation(document: Any, operation: PatchOperation) -> Any:
    """Apply one operation in place (where possible) and return the new document."""
    op = operation.get("op")
    if op not in ("add", "remove", "replace"):
        raise PatchApplicationError(operation, f"unsupported op {op!r}")
    if op != "remove" and "value" not in operation:
        raise PatchApplicationError(operation, "missing value")

    try:
        parts = parse_pointer(operation["path"])
    except ValueError as e:
        raise PatchApplicationError(operation, str(e)) from e

    if not parts:
        return None if op == "remove" else copy.deepcopy(operation["value"])

    parent = _resolve_parent(document, parts[:-1], operation)
    token = parts[-1]

    if isinstance(parent, list):
        if op == "add":
            index = _list_index(parent, token, operation, allow_end=True)
            parent.insert(index, copy.deepcopy(operation["value"]))
        elif op == "remove":
            del parent[_list_index(parent, token, operation, allow_end=False)]
        else:
            parent[_list_index(parent, token, operation, allow_end=False)] = copy.deepcopy(
                operation["value"],
            )
    elif isinstance(parent, dict):
        if op in ("remove", "replace") and token not in parent:
            raise PatchApplicationError(operation, f"missing key {token!r}")
        if op == "remove":
            del parent[token]
        else:
            parent[token] = copy.deepcopy(operation["value"])
    else:
        raise PatchApplicationError(operation, f"cannot modify {type(parent).__name__}")
    return document


def apply_patch(document: Any, patch: Patch) -> Any:
    """
    Apply a patch to a copy of ``document``.

    The input is never mutated.

    Raises:
        PatchApplicationError: If any operation's path does not resolve.
    """
    result = copy.deepcopy(document)
    for operation in patch:
        result = _apply_operation(result, operation)
    return result


def _get_value(document: Any, parts: list[str], operation: PatchOperation) -> Any:
    parent = _resolve_parent(document, parts[:-1], operation)
    token = parts[-1]
    if isinstance(parent, list):
        return parent[_list_index(parent, token, operation, allow_end=False)]
    if isinstance(parent, dict):
        if token not in parent:
            raise PatchApplicationError(operation, f"missing key {token!r}")
        return parent[token]
    raise PatchApplicationError(operation, f"cannot read from {type(parent).__name__}")


def create_inverse_patch(before: Any, forward_patch: Patch) -> Patch:
    """
    Build the patch that turns the result of ``forward_patch`` back into ``before``.

    The forward patch is replayed against a copy of ``before`` to capture every
    value it overwrites or removes; the inverse operations are returned in
    reverse order. This is the mechanical inverse of exactly what was recorded,
    not a fresh diff.

    Raises:
        PatchApplicationError: If ``forward_patch`` does not apply to ``before``.
    """
    state = copy.deepcopy(before)
    inverse: Patch = []

    for operation in forward_patch:
        path = operation["path"]
        parts = parse_pointer(path)
        op = operation["op"]

        if not parts:
            previous = copy.deepcopy(state)
            if op == "remove":
                inverse.append({"op": "add", "path": path, "value": previous})
            else:
                inverse.append({"op": "replace", "path": path, "value": previous})
        elif op == "add":
            parent = _resolve_parent(state, parts[:-1], operation)
            if isinstance(parent, dict) and parts[-1] in parent:
                inverse.append({
                    "op": "replace",
                    "path": path,
                    "value": copy.deepcopy(parent[parts[-1]]),
                })
            elif isinstance(parent, list) and parts[-1] == "-":
                inverse.append({"op": "remove", "path": join_pointer(path[: path.rfind("/")], len(parent))})
            else:
                inverse.append({"op": "remove", "path": path})
        else:
            previous = copy.deepcopy(_get_value(state, parts, operation))
            if op == "remove":
                inverse.append({"op": "add", "path": path, "value": previous})
            else:
                inverse.append({"op": "replace", "path": path, "value": previous})

        state = _apply_operation(state, operation)

    inverse.reverse()
    return inverse


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def is_patch_empty(patch: Patch | None) -> bool:
    """True when a patch has no operations."""
    return not patch


def does_patch_change_state(base: Any, patch: Patch) -> bool:
    """
    Check whether applying ``patch`` to ``base`` produces a different state.

    Guards against non-empty patches that are no-ops on this base (e.g. a value
    replaced with itself). A patch that cannot be applied does not change state.
    """
    if is_patch_empty(patch):
        return False
    try:
        result = apply_patch(base, patch)
    except PatchApplicationError as e:
        logger.warning("Patch does not apply to base state: %s", e)
        return False
    return not deep_equal(base, result)


def _field_name(path: str) -> str:
    parts = parse_pointer(path)
    if not parts:
        return "content"
    last = parts[-1]
    if last.isdigit() or last == "-":
        return "layer"
    return last


def _is_keyed_array(value: Any) -> bool:
    return isinstance(value, list) and _keyed_ids(value) is not None


def describe_patch(patch: Patch, before: Any = None) -> str:
    """
    Best-effort human summary of a patch for version history lists.

    Args:
        patch: The forward patch.
        before: Optional state the patch applies to. When given, a single text
            edit is summarized with character counts.

    Returns:
        A short description such as "Changed text" or "Changed 3 properties".
    """
    if not patch:
        return "No changes"

    if len(patch) == 1:
        operation = patch[0]
        field = _field_name(operation["path"])
        if operation["op"] == "add":
            return f"Added {field}"
        if operation["op"] == "remove":
            return f"Removed {field}"
        if _is_keyed_array(operation.get("value")) and field != "layer":
            return "Rearranged layers"
        # A root replace has no parent to read the old text from
        if before is not None and operation["path"] and isinstance(operation.get("value"), str):
            try:
                old_value = _get_value(before, parse_pointer(operation["path"]), operation)
            except PatchApplicationError:
                old_value = None
            if isinstance(old_value, str):
                inserted, deleted = _count_text_changes(old_value, operation["value"])
                return f"Edited {field} (+{inserted}/-{deleted} chars)"
        return f"Changed {field}"

    if all(operation["op"] == "replace" for operation in patch):
        return f"Changed {len(patch)} properties"
    return f"{len(patch)} changes"


def _count_text_changes(old_text: str, new_text: str) -> tuple[int, int]:
    """Count inserted and deleted characters between two strings."""
    diffs = _dmp.diff_main(old_text, new_text)
    _dmp.diff_cleanupSemantic(diffs)
    inserted = sum(len(text) for op, text in diffs if op == _dmp.DIFF_INSERT)
    deleted = sum(len(text) for op, text in diffs if op == _dmp.DIFF_DELETE)
    return inserted, deleted
