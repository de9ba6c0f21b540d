"""Tests for knot body parsing."""

from knotwork.ink.content import MAX_NESTING_DEPTH, parse_body
from knotwork.ink.parser import parse
from knotwork.models import (
    ChoiceItem,
    ConditionalItem,
    DivertItem,
    FlagOperationItem,
    PlayerImageItem,
    RawItem,
    StitchItem,
    TextItem,
)


def test_choice_with_inline_divert_and_trailing_end():
    doc = parse("=== start ===\nHello\n* [Hi] -> start\n-> END\n")

    assert [k.name for k in doc.knots] == ["start"]
    assert doc.initial_divert is None
    items = doc.knots[0].items
    assert len(items) == 2
    assert items[0] == TextItem("Hello")
    choice = items[1]
    assert isinstance(choice, ChoiceItem)
    assert choice.text == "Hi"
    assert choice.divert == "start"
    # Lines after a choice belong to it until a stitch or another choice
    assert choice.nested_content == (DivertItem("END"),)


def test_media_nested_in_choice_and_stitch_returns_to_root():
    body = "* [Send selfie]\n    <player-selfie.png>\n= after_selfie\n* [Done] -> goodbye"
    doc = parse("=== chat ===\n" + body + "\n")
    items = doc.knots[0].items

    assert [type(item) for item in items] == [ChoiceItem, StitchItem, ChoiceItem]
    assert items[0].nested_content == (PlayerImageItem("selfie"),)
    assert items[0].nested_content[0].extension == ".png"
    assert items[1].name == "after_selfie"
    assert items[2].text == "Done"
    assert items[2].divert == "goodbye"


def test_flag_usage_is_recorded_with_owning_knot():
    doc = parse('=== intro ===\n~ SetStoryFlag("met_sam")\n')
    flags = doc.knots[0].story_flags

    assert len(flags) == 1
    assert flags[0].name == "met_sam"
    assert flags[0].operation == "set"
    assert flags[0].knot == "intro"
    assert flags[0].line == 2


def test_trailing_divert_becomes_choice_divert():
    result = parse_body(["* [Ask]", "    Why?", "    -> reason"])
    choice = result.items[0]
    assert choice.divert == "reason"
    assert choice.nested_content == (TextItem("Why?"),)


def test_nested_choice_depths(nested):
    ask = nested.knots[0].items[0]
    assert ask.text == "Ask about work"
    assert ask.divert is None
    assert [type(item) for item in ask.nested_content] == [TextItem, ChoiceItem, ChoiceItem]
    good, bad = ask.nested_content[1:]
    assert good.divert == "chat.later"
    assert bad.divert == "chat.later"
    assert bad.nested_content == (TextItem("Sorry to hear that."),)


def test_conditional_branches(nested):
    items = nested.knots[0].items
    conditional = items[3]
    assert isinstance(conditional, ConditionalItem)

    flag, condition, other = conditional.branches
    assert flag.flag == "promoted"
    assert isinstance(flag.content[0], ChoiceItem)
    assert flag.content[0].divert == "END"
    assert condition.condition == "x > 3"
    assert condition.content == (TextItem("Three is not enough."),)
    assert other.is_else
    assert other.content == ()
    assert other.divert == "END"

    assert items[4:] == (TextItem("Bye."), DivertItem("END"))


def test_brace_without_branch_is_kept_raw():
    result = parse_body(["{", "Hello", "}"])
    assert result.items[0] == RawItem("{")
    assert result.items[1] == TextItem("Hello")


def test_unclosed_conditional_is_reported():
    result = parse_body(["{", '- GetStoryFlag("a"):', "    Hi"])
    assert isinstance(result.items[0], ConditionalItem)
    assert [issue.rule for issue in result.issues] == ["unclosed-conditional"]


def test_duplicate_stitch_is_reported():
    result = parse_body(["= a", "Hi", "= a"])
    assert [type(item) for item in result.items] == [StitchItem, TextItem, StitchItem]
    assert result.issues[0].rule == "duplicate-stitch"
    assert result.issues[0].severity == "error"


def test_deep_nesting_is_bounded():
    lines = [" ".join(["*"] * depth) + f" [level {depth}]" for depth in range(1, MAX_NESTING_DEPTH + 3)]
    result = parse_body(lines)

    depth = 0
    items = result.items
    while items and isinstance(items[0], ChoiceItem):
        depth += 1
        items = items[0].nested_content
    assert depth == MAX_NESTING_DEPTH
    assert isinstance(items[0], RawItem)
    assert any(issue.rule == "nesting-too-deep" for issue in result.issues)


def test_first_position_annotation_sets_knot_position():
    result = parse_body(['// <{ "pos-x": 5.0, "pos-y": 6.0 }>', "Hi"])
    assert result.position is not None
    assert (result.position.x, result.position.y) == (5.0, 6.0)
    assert result.items == (TextItem("Hi"),)


def test_comments_are_kept():
    result = parse_body(["// aside", "Hi"])
    assert result.items[0] == RawItem("// aside", "comment")


def test_item_line_offsets():
    result = parse_body(["Hi", "", "* [Go]", "    Ok", '    ~ SetStoryFlag("x")'], first_offset=1)
    text, choice = result.items
    assert result.item_lines[text.id] == (1, 1)
    assert result.item_lines[choice.id] == (3, 5)
    flag = choice.nested_content[1]
    assert isinstance(flag, FlagOperationItem)
    assert result.item_lines[flag.id] == (5, 5)
