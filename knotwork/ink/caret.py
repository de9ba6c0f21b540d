"""Caret navigation over a knot's content tree.

Every function takes the current tree and caret and returns the new caret;
a move that is not possible returns the caret unchanged.
"""

from ..models import ChoiceItem
from .edits import CaretPosition, Items, items_at_level, locate, locate_container


def caret_at_end(items: Items) -> CaretPosition:
    return CaretPosition(None, len(items) - 1)


def caret_after(items: Items, item_id: str) -> CaretPosition | None:
    """Caret placed right after an item, or None if the id is unknown."""
    found = locate(items, item_id)
    if found is None:
        return None
    return CaretPosition(found.parent_id, found.index)


def move_up(items: Items, caret: CaretPosition) -> CaretPosition:
    if caret.after_index > -1:
        return CaretPosition(caret.parent_id, caret.after_index - 1)
    return caret


def move_down(items: Items, caret: CaretPosition) -> CaretPosition:
    level = items_at_level(items, caret.parent_id)
    if caret.after_index < len(level) - 1:
        return CaretPosition(caret.parent_id, caret.after_index + 1)
    return caret


def move_in(items: Items, caret: CaretPosition) -> CaretPosition:
    """Enter the choice just before the caret, landing at the end of its content."""
    level = items_at_level(items, caret.parent_id)
    if 0 <= caret.after_index < len(level):
        target = level[caret.after_index]
        if isinstance(target, ChoiceItem):
            return CaretPosition(target.id, len(target.nested_content) - 1)
    return caret


def move_out(items: Items, caret: CaretPosition) -> CaretPosition:
    """Leave the current container, landing right after it."""
    if caret.parent_id is None:
        return caret
    found = locate_container(items, caret.parent_id)
    if found is None:
        return caret
    return CaretPosition(found.parent_id, found.index)


def item_before_caret(items: Items, caret: CaretPosition) -> str | None:
    """Id of the item the caret sits after, if any."""
    level = items_at_level(items, caret.parent_id)
    if 0 <= caret.after_index < len(level):
        return level[caret.after_index].id
    return None
