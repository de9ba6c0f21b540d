"""Tests for pure tree edits, caret navigation and id carry-over."""

import pytest

from knotwork.errors import InvalidAddressError, ItemNotFoundError
from knotwork.ink.caret import (
    caret_after,
    caret_at_end,
    item_before_caret,
    move_down,
    move_in,
    move_out,
    move_up,
)
from knotwork.ink.edits import (
    CaretPosition,
    delete_item,
    find_item,
    flatten_items,
    insert_item,
    items_at_level,
    locate,
    locate_container,
    move_item,
    replace_item,
)
from knotwork.ink.identity import carry_item_ids
from knotwork.models import ChoiceItem, ConditionalBranch, ConditionalItem, DivertItem, StitchItem, TextItem


@pytest.fixture
def tree():
    branch = ConditionalBranch(flag="met", content=(TextItem("In branch"),))
    return (
        TextItem("Hello"),
        ChoiceItem("Go", nested_content=(TextItem("Nested"), DivertItem("a"))),
        ConditionalItem(branches=(branch,)),
    )


def test_insert_at_root_and_nested(tree):
    new = TextItem("First")
    items = insert_item(tree, new, CaretPosition(None, -1))
    assert items[0] is new
    assert items[1:] == tree

    choice = tree[1]
    items = insert_item(tree, TextItem("Inside"), CaretPosition(choice.id, 0))
    assert [i.content for i in items[1].nested_content[:2]] == ["Nested", "Inside"]
    assert items[1].id == choice.id
    # Input is untouched
    assert len(tree[1].nested_content) == 2


def test_insert_into_branch(tree):
    branch = tree[2].branches[0]
    items = insert_item(tree, DivertItem("next"), CaretPosition(branch.id, 0))
    assert items[2].branches[0].content[-1] == DivertItem("next")


def test_invalid_addresses(tree):
    with pytest.raises(InvalidAddressError):
        insert_item(tree, TextItem("x"), CaretPosition(None, 10))
    with pytest.raises(InvalidAddressError):
        insert_item(tree, TextItem("x"), CaretPosition(tree[0].id, -1))
    with pytest.raises(ItemNotFoundError):
        insert_item(tree, TextItem("x"), CaretPosition("nope", -1))
    with pytest.raises(ItemNotFoundError):
        delete_item(tree, "nope")


def test_delete_removes_subtree(tree):
    items = delete_item(tree, tree[1].id)
    assert items == (tree[0], tree[2])
    assert find_item(items, tree[1].nested_content[0].id) is None


def test_replace_keeps_id(tree):
    items = replace_item(tree, tree[0].id, TextItem("Changed"))
    assert items[0].content == "Changed"
    assert items[0].id == tree[0].id


def test_move_between_levels(tree):
    nested = tree[1].nested_content[0]
    items = move_item(tree, nested.id, CaretPosition(None, -1))
    assert items[0] is nested
    assert items[2].nested_content == (DivertItem("a"),)


def test_move_into_own_subtree_is_rejected(tree):
    with pytest.raises(InvalidAddressError):
        move_item(tree, tree[1].id, CaretPosition(tree[1].id, -1))


def test_locate_and_levels(tree):
    nested = tree[1].nested_content[1]
    found = locate(tree, nested.id)
    assert (found.parent_id, found.index, found.depth) == (tree[1].id, 1, 1)
    assert items_at_level(tree, tree[1].id) == tree[1].nested_content


def test_flatten_items(tree):
    rows = flatten_items(tree)
    assert [(row.item.id, row.depth) for row in rows] == [
        (tree[0].id, 0),
        (tree[1].id, 0),
        (tree[1].nested_content[0].id, 1),
        (tree[1].nested_content[1].id, 1),
        (tree[2].id, 0),
    ]
    assert rows[-1].is_last_in_parent
    assert rows[3].is_last_in_parent


def test_caret_navigation(tree):
    caret = caret_at_end(tree)
    assert caret == CaretPosition(None, 2)
    assert move_down(tree, caret) == caret

    caret = move_up(tree, caret)
    assert item_before_caret(tree, caret) == tree[1].id

    inside = move_in(tree, caret)
    assert inside == CaretPosition(tree[1].id, 1)
    assert move_out(tree, inside) == caret

    top = CaretPosition(None, -1)
    assert move_up(tree, top) == top
    assert move_out(tree, top) == top
    assert item_before_caret(tree, top) is None
    assert move_in(tree, CaretPosition(None, 0)) == CaretPosition(None, 0)
    assert caret_after(tree, "nope") is None
    assert caret_after(tree, tree[1].nested_content[0].id) == CaretPosition(tree[1].id, 0)


def test_stitches_stay_at_root(tree):
    choice, branch = tree[1], tree[2].branches[0]
    with pytest.raises(InvalidAddressError):
        insert_item(tree, StitchItem("mid"), CaretPosition(choice.id, 0))
    with pytest.raises(InvalidAddressError):
        insert_item(tree, StitchItem("mid"), CaretPosition(branch.id, -1))
    with pytest.raises(InvalidAddressError):
        replace_item(tree, choice.nested_content[0].id, StitchItem("mid"))

    items = insert_item(tree, StitchItem("mid"), CaretPosition(None, 0))
    assert items[1] == StitchItem("mid")
    with pytest.raises(InvalidAddressError):
        move_item(items, items[1].id, CaretPosition(choice.id, -1))


def test_move_out_of_branch(tree):
    conditional = tree[2]
    branch = conditional.branches[0]
    inside = CaretPosition(branch.id, 0)
    assert move_out(tree, inside) == CaretPosition(None, 2)

    found = locate_container(tree, branch.id)
    assert found.item is conditional
    assert locate_container(tree, tree[1].id).item is tree[1]
    assert locate_container(tree, "nope") is None


def test_carry_item_ids_after_reparse(tree):
    # Same structure with fresh ids, plus one inserted item
    fresh = (
        TextItem("Hello"),
        TextItem("Inserted"),
        ChoiceItem("Go", nested_content=(TextItem("Nested"), DivertItem("a"))),
        ConditionalItem(branches=(ConditionalBranch(flag="met", content=(TextItem("In branch"),)),)),
    )
    items, mapping = carry_item_ids(fresh, tree)
    assert items[0].id == tree[0].id
    assert items[1].id == fresh[1].id
    assert items[2].id == tree[1].id
    assert items[2].nested_content[1].id == tree[1].nested_content[1].id
    assert items[3].branches[0].id == tree[2].branches[0].id
    assert fresh[1].id not in mapping


def test_carry_item_ids_keeps_edited_item(tree):
    fresh = (TextItem("Hello, edited"),) + tree[1:]
    items, mapping = carry_item_ids(fresh, tree)
    assert items[0].id == tree[0].id
    assert mapping == {fresh[0].id: tree[0].id}


def test_carry_item_ids_does_not_reuse_across_kinds():
    old = (TextItem("Hello"),)
    items, mapping = carry_item_ids((DivertItem("a"),), old)
    assert items[0].id != old[0].id
    assert mapping == {}
