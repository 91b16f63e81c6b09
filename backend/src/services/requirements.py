"""
Requirement extraction for layer tree changes.

A requirement is the id of a component or layer style that a version's patch
needs in order to apply meaningfully. Only references that differ between the
two trees are recorded: ids removed by the change are needed to undo it, ids
added by it are needed to redo it. References present on both sides are
already satisfied by the draft itself.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field

from services.layer_tree import iter_layers

COMPONENT_REF_KEY = "componentId"
STYLE_REF_KEY = "styleId"
STYLE_OVERRIDES_KEY = "styleOverrides"

REQUIREMENTS_METADATA_KEY = "requirements"


@dataclass
class Requirements:
    """Dependent entity ids required by a version."""

    component_ids: list[str] = field(default_factory=list)
    layer_style_ids: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when nothing is required."""
        return not self.component_ids and not self.layer_style_ids

    def to_metadata(self) -> dict[str, list[str]]:
        """Serialize for the version's ``metadata.requirements`` entry."""
        return {
            "component_ids": list(self.component_ids),
            "layer_style_ids": list(self.layer_style_ids),
        }

    @classmethod
    def from_metadata(cls, metadata: dict | None) -> "Requirements":
        """Read requirements back from a version's metadata (missing keys are empty)."""
        entry = (metadata or {}).get(REQUIREMENTS_METADATA_KEY) or {}
        return cls(
            component_ids=[str(i) for i in entry.get("component_ids") or []],
            layer_style_ids=[str(i) for i in entry.get("layer_style_ids") or []],
        )


def collect_references(layers: list | None) -> tuple[set[str], set[str]]:
    """
    Collect component and style ids referenced anywhere in a layer tree.

    Returns:
        (component_ids, layer_style_ids)
    """
    component_ids: set[str] = set()
    style_ids: set[str] = set()
    for layer in iter_layers(layers):
        component_id = layer.get(COMPONENT_REF_KEY)
        if component_id:
            component_ids.add(str(component_id))
        style_id = layer.get(STYLE_REF_KEY)
        if style_id:
            style_ids.add(str(style_id))
    return component_ids, style_ids


def _symmetric_difference(before: set[str], after: set[str]) -> list[str]:
    # Removed first (needed by undo), then added (needed by redo)
    return sorted(before - after) + sorted(after - before)


def extract_requirements(before_tree: list | None, after_tree: list | None) -> Requirements:
    """
    Compute the references that one side of a change has and the other lacks.

    Args:
        before_tree: Layer tree before the change.
        after_tree: Layer tree after the change.

    Returns:
        Requirements holding the symmetric difference of component and style
        references, de-duplicated.
    """
    before_components, before_styles = collect_references(before_tree)
    after_components, after_styles = collect_references(after_tree)
    return Requirements(
        component_ids=_symmetric_difference(before_components, after_components),
        layer_style_ids=_symmetric_difference(before_styles, after_styles),
    )


def _merge_ids(*id_lists: Iterable[str]) -> list[str]:
    merged: list[str] = []
    for ids in id_lists:
        for item in ids:
            if str(item) not in merged:
                merged.append(str(item))
    return merged


def merge_requirements(extracted: Requirements, extra: dict | None) -> Requirements:
    """
    Merge extracted requirements with caller-supplied ones.

    Args:
        extracted: Requirements derived from the trees.
        extra: A ``{"component_ids": [...], "layer_style_ids": [...]}`` dict, or None.

    Returns:
        Combined requirements with duplicates removed, extracted ids first.
    """
    extra = extra or {}
    return Requirements(
        component_ids=_merge_ids(extracted.component_ids, extra.get("component_ids") or []),
        layer_style_ids=_merge_ids(extracted.layer_style_ids, extra.get("layer_style_ids") or []),
    )
