"""Tests for line classification."""

import pytest

from knotwork.ink.lexer import LineKind, classify_line, classify_lines, split_extension


@pytest.mark.parametrize(
    "line, kind",
    [
        ("", LineKind.BLANK),
        ("   ", LineKind.BLANK),
        ("=== intro ===", LineKind.KNOT_HEADER),
        ("== intro", LineKind.KNOT_HEADER),
        ("= order", LineKind.STITCH_HEADER),
        ("// just a note", LineKind.COMMENT),
        ('// <{ "pos-x": 1.0, "pos-y": -2.5 }>', LineKind.POSITION),
        ('// <# start: { "pos-x": 3, "pos-y": 4 } #>', LineKind.START_POSITION),
        ('// <# end: { "pos-x": 3, "pos-y": 4 } #>', LineKind.END_POSITION),
        ("// <# StartRegion: Chapter One #>", LineKind.REGION_START),
        ("// <# EndRegion #>", LineKind.REGION_END),
        ("* [Yes]", LineKind.CHOICE),
        ("-> END", LineKind.DIVERT),
        ('~ SetStoryFlag("met")', LineKind.FLAG_OPERATION),
        ('~ ShowCustomTransition("A", "B")', LineKind.TRANSITION),
        ("{", LineKind.CONDITIONAL_OPEN),
        ("}", LineKind.CONDITIONAL_CLOSE),
        ("- else:", LineKind.BRANCH),
        ("<player-video-walk>", LineKind.PLAYER_VIDEO),
        ("<video-sunrise>", LineKind.VIDEO),
        ("<player-selfie>", LineKind.PLAYER_IMAGE),
        ("<fake-type-2>", LineKind.FAKE_TYPE),
        ("<wait-1.5>", LineKind.WAIT),
        ("<side-story-barista>", LineKind.SIDE_STORY),
        ("<alex_wave>", LineKind.IMAGE),
        ("EXTERNAL Show(a, b)", LineKind.EXTERNAL),
        ("INCLUDE shared.ink", LineKind.INCLUDE),
        ("Hello there", LineKind.TEXT),
        ("VAR x = 1", LineKind.RAW),
        ("~ x = x + 1", LineKind.RAW),
        ("*", LineKind.RAW),
    ],
)
def test_classify_line_kinds(line, kind):
    assert classify_line(line).kind is kind


def test_choice_fields():
    line = classify_line("  + + [Stay quiet] -> END  ")
    assert line.kind is LineKind.CHOICE
    assert line["depth"] == 2
    assert line["sticky"] is True
    assert line["text"] == "Stay quiet"
    assert line["bracketed"] is True
    assert line["divert"] == "END"


def test_unbracketed_choice_without_divert():
    line = classify_line("* Tell her the truth")
    assert line["bracketed"] is False
    assert line["text"] == "Tell her the truth"
    assert line["divert"] is None


def test_choice_divert_to_stitch():
    assert classify_line("* [Go] -> cafe.order")["divert"] == "cafe.order"


def test_text_with_inline_divert():
    line = classify_line("See you soon -> goodbye")
    assert line.kind is LineKind.TEXT
    assert line["content"] == "See you soon"
    assert line["divert"] == "goodbye"


def test_branch_fields():
    flag = classify_line('- GetStoryFlag("met_alex"):')
    assert flag["flag"] == "met_alex"
    assert flag["is_else"] is False

    other = classify_line("- x > 3: Big number")
    assert other["flag"] is None
    assert other["condition"] == "x > 3"
    assert other["rest"] == "Big number"

    assert classify_line("- else:")["is_else"] is True


def test_media_extension_is_split():
    line = classify_line("<player-selfie.PNG>")
    assert line.kind is LineKind.PLAYER_IMAGE
    assert line["filename"] == "selfie"
    assert line["extension"] == ".PNG"


def test_split_extension_only_strips_known_media_types():
    assert split_extension("photo.jpeg") == ("photo", ".jpeg")
    assert split_extension("clip.mp4") == ("clip", ".mp4")
    assert split_extension("v1.2") == ("v1.2", "")
    assert split_extension(".png") == (".png", "")


def test_position_values_are_floats():
    line = classify_line('// <{ "pos-x": 120, "pos-y": -40.5 }>')
    assert line["x"] == 120.0
    assert line["y"] == -40.5


def test_transition_without_subtitle():
    line = classify_line('~ ShowCustomTransition("Later")')
    assert line["title"] == "Later"
    assert line["subtitle"] == ""


def test_block_comment_lines_are_comments():
    kinds = [
        line.kind
        for line in classify_lines(["/* start", "* [not a choice]", "-> nowhere */", "-> real"])
    ]
    assert kinds == [LineKind.COMMENT, LineKind.COMMENT, LineKind.COMMENT, LineKind.DIVERT]
