"""
Helpers for layer trees.

A layer tree is a list of layer nodes. Each node is a dict with a unique ``id``,
a ``type``, optional reference fields (``componentId``, ``styleId``), and an
optional ``children`` list of nodes.
"""
from collections.abc import Iterator
from typing import Any

from services.patch_engine import parse_pointer

CHILDREN_KEY = "children"

# Editor-only annotations that never describe page content
UI_ONLY_KEYS = frozenset({
    "open",
    "selected",
    "hovered",
    "isSelected",
    "isHovered",
    "isDragging",
})


def _is_ui_only(key: str) -> bool:
    # Leading underscore marks computed caches (e.g. _measuredHeight)
    return key in UI_ONLY_KEYS or key.startswith("_")


def normalize_layer(layer: dict) -> dict:
    """
    Return a copy of a layer node with UI-only keys and null values removed.

    A property set to None and an absent property are the same content state.
    """
    normalized: dict = {}
    for key, value in layer.items():
        if _is_ui_only(key) or value is None:
            continue
        if key == CHILDREN_KEY and isinstance(value, list):
            normalized[key] = normalize_layers(value)
        else:
            normalized[key] = value
    return normalized


def normalize_layers(layers: list | None) -> list:
    """
    Normalize every node of a layer tree (see normalize_layer).

    Raises:
        ValueError: If the tree is not a list of layer objects.
    """
    if layers is None:
        return []
    if not isinstance(layers, list):
        raise ValueError(f"Layer tree must be a list, got {type(layers).__name__}")
    normalized = []
    for layer in layers:
        if not isinstance(layer, dict):
            raise ValueError(f"Layer nodes must be objects, got {type(layer).__name__}")
        normalized.append(normalize_layer(layer))
    return normalized


def iter_layers(layers: list | None) -> Iterator[dict]:
    """Yield every layer node depth-first, parents before children."""
    for layer in layers or []:
        if not isinstance(layer, dict):
            continue
        yield layer
        children = layer.get(CHILDREN_KEY)
        if isinstance(children, list):
            yield from iter_layers(children)


def find_layer(layers: list | None, layer_id: str) -> dict | None:
    """Find a layer node by id anywhere in the tree."""
    for layer in iter_layers(layers):
        if layer.get("id") == layer_id:
            return layer
    return None


def _deepest_layer_id(document: Any, path: str) -> str | None:
    """Walk a JSON pointer through a document, returning the last layer id passed."""
    node = document
    layer_id = None
    if isinstance(node, dict) and "id" in node:
        layer_id = node["id"]
    for part in parse_pointer(path):
        if isinstance(node, list):
            if not part.isdigit() or int(part) >= len(node):
                break
            node = node[int(part)]
        elif isinstance(node, dict):
            if part not in node:
                break
            node = node[part]
        else:
            break
        if isinstance(node, dict) and "id" in node:
            layer_id = node["id"]
    return layer_id


def affected_layer_ids(patch: list[dict], before: Any, after: Any) -> list[str]:
    """
    Return ids of the layers a patch touches, in first-touched order.

    Paths are resolved against the state the operation saw: removals against
    ``before``, additions and replacements against ``after``. Whole-tree
    replacements contribute no ids.
    """
    ids: list[str] = []
    for operation in patch:
        if operation["path"] == "":
            continue
        document = before if operation["op"] == "remove" else after
        layer_id = _deepest_layer_id(document, operation["path"])
        if layer_id is None and operation["op"] == "remove":
            layer_id = _deepest_layer_id(after, operation["path"])
        if layer_id is not None and layer_id not in ids:
            ids.append(layer_id)
    return ids
