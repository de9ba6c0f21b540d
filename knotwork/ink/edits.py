"""Pure edit operations on content trees.

Trees are immutable tuples, so every operation returns a new tree and leaves
its input untouched. Items keep their ids across operations; only a newly
inserted item brings a new id.

Containers are choices (their nested content) and conditional branches (their
content). A container is addressed by its id; ``None`` addresses the knot's
root list.
"""

from dataclasses import dataclass, replace
from typing import Callable

from ..errors import InvalidAddressError, ItemNotFoundError
from ..models import ChoiceItem, ConditionalBranch, ConditionalItem, ContentItem, StitchItem

Items = tuple[ContentItem, ...]


@dataclass(frozen=True)
class CaretPosition:
    """Insertion point: after ``after_index`` in the list owned by ``parent_id``.

    ``after_index == -1`` means before the first item.
    """

    parent_id: str | None = None
    after_index: int = -1

    @property
    def insert_index(self) -> int:
        return self.after_index + 1


@dataclass(frozen=True)
class Location:
    """Where an item sits in the tree."""

    item: ContentItem
    parent_id: str | None
    index: int
    depth: int


@dataclass(frozen=True)
class FlatEntry:
    """One row of a flattened tree, as an editor list would render it."""

    item: ContentItem
    depth: int
    parent_id: str | None
    index_in_parent: int
    is_last_in_parent: bool


def _walk(items: Items, parent_id: str | None = None, depth: int = 0):
    for index, item in enumerate(items):
        yield item, parent_id, index, depth
        if isinstance(item, ChoiceItem):
            yield from _walk(item.nested_content, item.id, depth + 1)
        elif isinstance(item, ConditionalItem):
            for branch in item.branches:
                yield from _walk(branch.content, branch.id, depth + 1)


def _subtree_ids(item: ContentItem) -> set[str]:
    ids = {item.id}
    for child, _, _, _ in _walk((item,)):
        ids.add(child.id)
        if isinstance(child, ConditionalItem):
            ids.update(branch.id for branch in child.branches)
    return ids


def locate(items: Items, item_id: str) -> Location | None:
    """Find an item anywhere in the tree, with its parent and index."""
    for item, parent_id, index, depth in _walk(items):
        if item.id == item_id:
            return Location(item, parent_id, index, depth)
    return None


def locate_container(items: Items, container_id: str) -> Location | None:
    """Location of a choice, or of the conditional owning a branch, by container id."""
    for item, parent_id, index, depth in _walk(items):
        if item.id == container_id:
            return Location(item, parent_id, index, depth)
        if isinstance(item, ConditionalItem) and any(b.id == container_id for b in item.branches):
            return Location(item, parent_id, index, depth)
    return None


def find_item(items: Items, item_id: str) -> ContentItem | None:
    found = locate(items, item_id)
    return found.item if found else None


def _check_placement(item: ContentItem, parent_id: str | None) -> None:
    # Stitch headers are written at column 0 and always reopen the root level
    if isinstance(item, StitchItem) and parent_id is not None:
        raise InvalidAddressError(f"Stitch '{item.name}' can only be placed at the knot's root level")


def _find_container(items: Items, container_id: str) -> ChoiceItem | ConditionalBranch | None:
    for item, _, _, _ in _walk(items):
        if item.id == container_id:
            return item if isinstance(item, ChoiceItem) else None
        if isinstance(item, ConditionalItem):
            for branch in item.branches:
                if branch.id == container_id:
                    return branch
    return None


def items_at_level(items: Items, parent_id: str | None) -> Items:
    """Items of the list owned by ``parent_id`` (the root list for None)."""
    if parent_id is None:
        return items
    container = _find_container(items, parent_id)
    if container is None:
        if locate(items, parent_id) is None:
            raise ItemNotFoundError(parent_id)
        raise InvalidAddressError(f"Item '{parent_id}' cannot contain other items")
    return container.nested_content if isinstance(container, ChoiceItem) else container.content


def flatten_items(items: Items) -> list[FlatEntry]:
    """Flatten choices' nested content for list rendering.

    Conditional blocks are rendered as a single row.
    """
    result: list[FlatEntry] = []

    def flatten(level: Items, depth: int, parent_id: str | None) -> None:
        for index, item in enumerate(level):
            result.append(FlatEntry(item, depth, parent_id, index, index == len(level) - 1))
            if isinstance(item, ChoiceItem) and item.nested_content:
                flatten(item.nested_content, depth + 1, item.id)

    flatten(items, 0, None)
    return result


def _edit_children(items: Items, parent_id: str | None, fn: Callable[[Items], Items]) -> Items:
    """Apply ``fn`` to the list owned by ``parent_id`` and rebuild the path to it."""
    if parent_id is None:
        return fn(items)
    result, found = _edit_nested(items, parent_id, fn)
    if not found:
        if locate(items, parent_id) is None:
            raise ItemNotFoundError(parent_id)
        raise InvalidAddressError(f"Item '{parent_id}' cannot contain other items")
    return result


def _edit_nested(items: Items, parent_id: str, fn: Callable[[Items], Items]) -> tuple[Items, bool]:
    out = list(items)
    for i, item in enumerate(items):
        if isinstance(item, ChoiceItem):
            if item.id == parent_id:
                out[i] = replace(item, nested_content=fn(item.nested_content))
                return tuple(out), True
            nested, found = _edit_nested(item.nested_content, parent_id, fn)
            if found:
                out[i] = replace(item, nested_content=nested)
                return tuple(out), True
        elif isinstance(item, ConditionalItem):
            branches = list(item.branches)
            for j, branch in enumerate(branches):
                if branch.id == parent_id:
                    content, found = fn(branch.content), True
                else:
                    content, found = _edit_nested(branch.content, parent_id, fn)
                if found:
                    branches[j] = replace(branch, content=content)
                    out[i] = replace(item, branches=tuple(branches))
                    return tuple(out), True
    return items, False


def insert_item(items: Items, item: ContentItem, position: CaretPosition) -> Items:
    """Insert ``item`` at a caret position."""
    _check_placement(item, position.parent_id)

    def insert(level: Items) -> Items:
        index = position.insert_index
        if not 0 <= index <= len(level):
            raise InvalidAddressError(
                f"Index {position.after_index} out of range for a list of {len(level)} items"
            )
        return level[:index] + (item,) + level[index:]

    return _edit_children(items, position.parent_id, insert)


def delete_item(items: Items, item_id: str) -> Items:
    """Remove an item and its whole subtree."""
    found = locate(items, item_id)
    if found is None:
        raise ItemNotFoundError(item_id)
    return _edit_children(
        items, found.parent_id, lambda level: level[: found.index] + level[found.index + 1 :]
    )


def replace_item(items: Items, item_id: str, new_item: ContentItem) -> Items:
    """Swap an item for ``new_item``; the replacement takes over the old id."""
    found = locate(items, item_id)
    if found is None:
        raise ItemNotFoundError(item_id)
    _check_placement(new_item, found.parent_id)
    new_item = replace(new_item, id=item_id)
    return _edit_children(
        items,
        found.parent_id,
        lambda level: level[: found.index] + (new_item,) + level[found.index + 1 :],
    )


def move_item(items: Items, item_id: str, position: CaretPosition) -> Items:
    """Move an item (with its subtree) to a caret position.

    The position is interpreted in the tree after the item has been removed.
    """
    found = locate(items, item_id)
    if found is None:
        raise ItemNotFoundError(item_id)
    if position.parent_id is not None and position.parent_id in _subtree_ids(found.item):
        raise InvalidAddressError("Cannot move an item into itself")
    return insert_item(delete_item(items, item_id), found.item, position)
