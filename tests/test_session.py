"""Tests for editing sessions: snapshots, ids, history and saving."""

from pathlib import Path

import pytest

from knotwork.errors import DuplicateNameError, InvalidAddressError, InvalidNameError, KnotNotFoundError
from knotwork.ink.edits import CaretPosition, find_item
from knotwork.ink.parser import parse
from knotwork.ink.serializer import render_document
from knotwork.models import ChoiceItem, DivertItem, ImageItem, Position, StitchItem, TextItem, iter_items
from knotwork.session import EditSession

SCRIPT = """-> start

=== start ===
Hello
* [Hi] -> next
* [Bye]
    See you.
    -> END

=== next ===
Welcome.
-> END
"""


class MemoryFiles:
    """File service keeping scripts in a dict."""

    def __init__(self, files: dict[Path, str] | None = None):
        self.files = dict(files or {})
        self.writes: list[Path] = []

    def read(self, path: Path) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write(self, path: Path, text: str) -> None:
        self.writes.append(path)
        self.files[path] = text


@pytest.fixture
def session() -> EditSession:
    return EditSession(SCRIPT)


def ids_of(session: EditSession, knot: str) -> dict[str, str]:
    """Map of item id -> kind for every item of a knot."""
    return {item.id: item.kind for item in iter_items(session.knot(knot).items)}


def test_insert_then_delete_keeps_untouched_ids(session):
    before = ids_of(session, "start")
    hello = session.knot("start").items[0]

    session.insert("start", TextItem("New line"), CaretPosition(None, 0))
    inserted = session.knot("start").items[1]
    assert inserted.content == "New line"
    session.delete("start", hello.id)

    after = ids_of(session, "start")
    untouched = set(before) - {hello.id}
    assert untouched <= set(after)
    assert inserted.id in after


def test_edit_reparses_derived_data(session):
    bye = session.knot("start").items[2]
    session.replace("start", bye.id, ChoiceItem("Bye", divert="next"))

    knot = session.knot("start")
    assert knot.items[2].id == bye.id
    assert knot.items[2].divert == "next"
    assert session.document.reverse_diverts("next") == ["start"]
    assert "* [Bye] -> next" in session.text


def test_edits_other_knots_untouched(session):
    next_before = session.knot("next")
    session.insert("start", ImageItem("wave"), CaretPosition(None, -1))
    next_after = session.knot("next")
    assert next_after.items == next_before.items
    assert [i.id for i in next_after.items] == [i.id for i in next_before.items]
    assert next_after.line_start == next_before.line_start + 1


def test_insert_nested(session):
    bye = session.knot("start").items[2]
    session.insert("start", TextItem("Take care."), CaretPosition(bye.id, 0))
    nested = session.knot("start").items[2].nested_content
    assert [i.content for i in nested] == ["See you.", "Take care."]
    assert session.knot("start").items[2].divert == "END"


def test_serialization_after_edits_is_idempotent(session):
    session.insert("next", ChoiceItem("Again", divert="start"), CaretPosition(None, 1))
    session.add_stitch("next", "later")
    session.insert("next", TextItem("Later on"), CaretPosition(None, len(session.knot("next").items) - 1))
    once = render_document(session.document)
    assert render_document(parse(once)) == once


def test_duplicate_knot_is_rejected_and_document_unchanged(session):
    before = session.document
    with pytest.raises(DuplicateNameError):
        session.add_knot("start")
    assert session.document is before
    assert not session.can_undo


def test_invalid_knot_name(session):
    with pytest.raises(InvalidNameError):
        session.add_knot("not valid")


def test_duplicate_stitch_is_rejected(session):
    session.add_stitch("next", "later")
    with pytest.raises(DuplicateNameError):
        session.add_stitch("next", "later")
    with pytest.raises(InvalidNameError):
        session.insert("next", StitchItem("bad name"), CaretPosition(None, -1))


def test_unknown_knot(session):
    with pytest.raises(KnotNotFoundError):
        session.knot("missing")


def test_add_knot_with_body_and_position(session):
    session.add_knot("finale", "The end.\n-> END", position=Position(10, 20))
    knot = session.knot("finale")
    assert knot.position == Position(10.0, 20.0)
    assert knot.items[0] == TextItem("The end.")
    assert session.text.endswith("=== finale ===\n// <{ \"pos-x\": 10.0, \"pos-y\": 20.0 }>\nThe end.\n-> END\n")


def test_add_knot_into_region():
    session = EditSession("// <# StartRegion: R #>\n=== a ===\nHi\n\n// <# EndRegion #>\n")
    session.add_knot("b", "Yo", region="R")
    assert session.document.regions[0].knots == ("a", "b")


def test_delete_knot(session):
    session.delete_knot("next")
    assert session.document.knot_names == ["start"]


def test_rename_knot_updates_diverts(session):
    items_before = [i.id for i in session.knot("next").items]
    session.rename_knot("next", "welcome")

    assert session.document.find_knot("next") is None
    renamed = session.knot("welcome")
    assert renamed.header == "=== welcome ==="
    assert [i.id for i in renamed.items] == items_before
    assert session.knot("start").items[1].divert == "welcome"

    with pytest.raises(DuplicateNameError):
        session.rename_knot("welcome", "start")


def test_rename_does_not_touch_longer_names():
    session = EditSession("=== a ===\n-> ab\n-> a\n=== ab ===\nHi\n")
    session.rename_knot("a", "z")
    assert [i.target for i in session.knot("z").items] == ["ab", "z"]


def test_replace_knot_body(session):
    session.replace_knot("next", "Changed.\n-> start")
    assert [i.kind for i in session.knot("next").items] == ["text", "divert"]


def test_set_knot_position(session):
    session.set_knot_position("next", Position(1, 2))
    assert session.knot("next").position == Position(1.0, 2.0)
    session.set_knot_position("next", Position(3, 4))
    assert session.knot("next").position == Position(3.0, 4.0)
    assert session.text.count('"pos-x"') == 1


def test_initial_divert(session):
    session.set_initial_divert("next")
    assert session.document.initial_divert == "next"
    session.set_initial_divert(None)
    assert session.document.initial_divert is None

    empty = EditSession("=== a ===\nHi\n")
    empty.set_initial_divert("a")
    assert empty.text.startswith("-> a\n\n=== a ===")


def test_undo_redo(session):
    original = session.text
    session.add_knot("extra")
    changed = session.text

    assert session.undo()
    assert session.text == original
    assert session.redo()
    assert session.text == changed
    assert not session.redo()


def test_update_text_keeps_ids(session):
    hello = session.knot("start").items[0]
    session.update_text(session.text.replace("Hello", "Hello there"))
    assert session.knot("start").items[0].id == hello.id
    assert session.knot("start").items[0].content == "Hello there"


def test_open_and_save_through_file_service():
    path = Path("story.ink")
    files = MemoryFiles({path: SCRIPT})
    session = EditSession.open(path, files=files)
    assert not session.is_dirty

    session.add_knot("extra", "Hi")
    assert session.is_dirty
    assert session.save() == path
    assert files.files[path] == session.text
    assert not session.is_dirty


def test_io_errors_propagate():
    with pytest.raises(FileNotFoundError):
        EditSession.open(Path("missing.ink"), files=MemoryFiles())


def test_save_without_path(session):
    with pytest.raises(ValueError):
        session.save()


def test_find_items(session):
    choices = session.find_items("choice")
    assert [(knot, item.text) for knot, item in choices] == [("start", "Hi"), ("start", "Bye")]


BRANCHING = """=== a ===
{
- GetStoryFlag("f"): Hi -> b
- else: Bye
}

=== b ===
Done.
-> END
"""


def test_choice_after_branch_divert_is_rejected():
    session = EditSession(BRANCHING)
    before = session.document
    branch = session.knot("a").items[0].branches[0]
    assert branch.divert == "b"

    with pytest.raises(InvalidAddressError):
        session.insert("a", ChoiceItem("Pick"), CaretPosition(branch.id, 0))
    assert session.document is before
    assert session.knot("a").items[0].branches[0].divert == "b"
    assert not session.can_undo


def test_choice_in_branch_without_divert():
    session = EditSession(BRANCHING)
    other = session.knot("a").items[0].branches[1]
    pick = ChoiceItem("Pick", divert="b")
    session.insert("a", pick, CaretPosition(other.id, 0))

    branches = session.knot("a").items[0].branches
    assert branches[0].divert == "b"
    assert branches[1].content[-1] == pick
    assert find_item(session.knot("a").items, pick.id) is not None


def test_stitch_inside_choice_is_rejected():
    session = EditSession("=== a ===\n* [Go]\n    one\n    two\n= end\nBye.\n")
    before = session.document
    choice = session.knot("a").items[0]

    with pytest.raises(InvalidAddressError):
        session.insert("a", StitchItem("mid"), CaretPosition(choice.id, 0))
    stitch = session.knot("a").items[1]
    with pytest.raises(InvalidAddressError):
        session.move("a", stitch.id, CaretPosition(choice.id, -1))
    with pytest.raises(InvalidAddressError):
        session.replace("a", choice.nested_content[0].id, StitchItem("mid"))
    assert session.document is before
    assert [i.content for i in session.knot("a").items[0].nested_content] == ["one", "two"]


def test_trailing_divert_in_choice_without_divert_is_rejected():
    session = EditSession("=== a ===\n* [Go]\n    one\n    two\n")
    before = session.document
    choice = session.knot("a").items[0]

    with pytest.raises(InvalidAddressError):
        session.insert("a", DivertItem("a"), CaretPosition(choice.id, 1))
    assert session.document is before
    assert session.knot("a").items[0].divert is None


def test_divert_after_nested_content_keeps_choice_divert(session):
    bye = session.knot("start").items[2]
    divert = DivertItem("next")
    session.insert("start", divert, CaretPosition(bye.id, 0))

    choice = session.knot("start").items[2]
    assert choice.divert == "END"
    assert choice.nested_content == (TextItem("See you."), DivertItem("next"))
    assert find_item(session.knot("start").items, divert.id) is not None
    assert "* [Bye] -> END\n    See you.\n    -> next" in session.text


def test_text_after_root_choice_is_rejected(session):
    # Root text after the last choice would be read back inside that choice
    items = session.knot("start").items
    with pytest.raises(InvalidAddressError):
        session.insert("start", TextItem("Later"), CaretPosition(None, len(items) - 1))


def test_replace_knot_rejects_duplicate_stitch(session):
    before = session.document
    with pytest.raises(DuplicateNameError):
        session.replace_knot("next", "= s1\nx\n= s1\ny")
    assert session.document is before


def test_replace_knot_rejects_existing_knot_header(session):
    before = session.document
    with pytest.raises(DuplicateNameError):
        session.replace_knot("next", "Hi\n=== start ===\nsneaky")
    with pytest.raises(DuplicateNameError):
        session.replace_knot("next", "Hi\n=== next ===\nagain")
    assert session.document is before


def test_add_knot_body_names_are_checked(session):
    with pytest.raises(DuplicateNameError):
        session.add_knot("extra", "= s\nx\n= s\ny")
    with pytest.raises(DuplicateNameError):
        session.add_knot("extra", "Hi\n=== start ===\nx")
    assert session.document.find_knot("extra") is None

    # The same stitch name under a different knot header is fine
    session.add_knot("extra", "= s\nx\n=== other ===\n= s\ny")
    assert session.document.knot_names == ["start", "next", "extra", "other"]
