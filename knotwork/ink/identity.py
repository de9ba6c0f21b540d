"""Carry item ids from one snapshot to the next.

After an edit the affected text is re-parsed, which assigns fresh ids. The
trees are aligned in document order and every item that still has a
counterpart gets its previous id back, so selections in an editor survive
edits and raw-text changes.
"""

from dataclasses import replace
from difflib import SequenceMatcher
from typing import Iterator

from ..models import (
    ChoiceItem,
    ConditionalBranch,
    ConditionalItem,
    ContentItem,
    Knot,
    ParsedInk,
)

Node = ContentItem | ConditionalBranch


def flatten_nodes(items: tuple[ContentItem, ...]) -> list[Node]:
    """Items and conditional branches in pre-order."""
    nodes: list[Node] = []
    for item in items:
        nodes.append(item)
        if isinstance(item, ChoiceItem):
            nodes.extend(flatten_nodes(item.nested_content))
        elif isinstance(item, ConditionalItem):
            for branch in item.branches:
                nodes.append(branch)
                nodes.extend(flatten_nodes(branch.content))
    return nodes


def _node_key(node: Node) -> tuple:
    if isinstance(node, ConditionalBranch):
        return ("branch", node.label)
    for attr in ("content", "filename", "text", "name", "target", "flag", "title", "duration"):
        if hasattr(node, attr):
            return (node.kind, getattr(node, attr))
    return (node.kind,)


def _node_kind(node: Node) -> str:
    return "branch" if isinstance(node, ConditionalBranch) else node.kind


def _match_ids(new_nodes: list[Node], old_nodes: list[Node]) -> list[str]:
    ids = [node.id for node in new_nodes]
    matcher = SequenceMatcher(
        None, [_node_key(n) for n in old_nodes], [_node_key(n) for n in new_nodes], autojunk=False
    )
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            for offset in range(i2 - i1):
                ids[j1 + offset] = old_nodes[i1 + offset].id
        elif tag == "replace":
            # Same kind in the same slot: an edited item keeps its identity
            for old, new_index in zip(old_nodes[i1:i2], range(j1, j2)):
                if _node_kind(old) == _node_kind(new_nodes[new_index]):
                    ids[new_index] = old.id
    return ids


def _rebuild(items: tuple[ContentItem, ...], ids: Iterator[str]) -> tuple[ContentItem, ...]:
    rebuilt = []
    for item in items:
        item_id = next(ids)
        if isinstance(item, ChoiceItem):
            item = replace(item, id=item_id, nested_content=_rebuild(item.nested_content, ids))
        elif isinstance(item, ConditionalItem):
            branches = []
            for branch in item.branches:
                branch_id = next(ids)
                branches.append(replace(branch, id=branch_id, content=_rebuild(branch.content, ids)))
            item = replace(item, id=item_id, branches=tuple(branches))
        else:
            item = replace(item, id=item_id)
        rebuilt.append(item)
    return tuple(rebuilt)


def carry_item_ids(
    items: tuple[ContentItem, ...], reference: tuple[ContentItem, ...]
) -> tuple[tuple[ContentItem, ...], dict[str, str]]:
    """Give ``items`` the ids of their counterparts in ``reference``.

    Returns:
        (rebuilt items, mapping of replaced id -> carried id)
    """
    new_nodes = flatten_nodes(items)
    ids = _match_ids(new_nodes, flatten_nodes(reference))
    mapping = {node.id: carried for node, carried in zip(new_nodes, ids) if node.id != carried}
    if not mapping:
        return items, {}
    return _rebuild(items, iter(ids)), mapping


def carry_knot_ids(knot: Knot, reference: tuple[ContentItem, ...]) -> Knot:
    items, mapping = carry_item_ids(knot.items, reference)
    if not mapping:
        return knot
    item_lines = {mapping.get(item_id, item_id): span for item_id, span in knot.item_lines.items()}
    return replace(knot, items=items, item_lines=item_lines)


def carry_ids(
    new_doc: ParsedInk,
    old_doc: ParsedInk,
    overrides: dict[str, tuple[ContentItem, ...]] | None = None,
) -> ParsedInk:
    """Carry ids from ``old_doc`` into the freshly parsed ``new_doc``.

    Knots are paired by name and occurrence. ``overrides`` supplies the
    reference tree for knots whose previous content is not in ``old_doc``
    under the same name (edited or renamed knots).
    """
    overrides = overrides or {}
    previous: dict[tuple[str, int], Knot] = {}
    seen: dict[str, int] = {}
    for knot in old_doc.knots:
        occurrence = seen.get(knot.name, 0)
        seen[knot.name] = occurrence + 1
        previous[(knot.name, occurrence)] = knot

    knots = []
    seen = {}
    for knot in new_doc.knots:
        occurrence = seen.get(knot.name, 0)
        seen[knot.name] = occurrence + 1
        if occurrence == 0 and knot.name in overrides:
            reference = overrides[knot.name]
        elif (knot.name, occurrence) in previous:
            reference = previous[(knot.name, occurrence)].items
        else:
            knots.append(knot)
            continue
        knots.append(carry_knot_ids(knot, reference))
    return replace(new_doc, knots=tuple(knots))
