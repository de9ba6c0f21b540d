"""Tests for the divert graph."""

from knotwork.ink.graph import START, DivertGraph
from knotwork.ink.parser import parse


def test_reverse_map_with_initial_divert():
    doc = parse("-> a\n=== a ===\n-> b\n=== b ===\n-> END\n")
    assert doc.reverse_diverts("b") == ["a"]
    assert doc.reverse_diverts("a") == [START]


def test_resolve_targets(nested):
    graph = DivertGraph.from_document(nested)
    assert graph.resolve("chat", "chat.later") == ("chat", "later")
    assert graph.resolve("chat", "later") == ("chat", "later")
    assert graph.resolve("chat", "chat.nope") is None
    assert graph.resolve(None, "END") is None
    assert graph.is_valid_target("chat", "DONE")
    assert not graph.is_valid_target("chat", "elsewhere")


def test_stitch_jumps_inside_a_knot_are_not_edges(nested):
    graph = nested.graph
    assert graph.get_targets("chat") == []
    assert nested.reverse_diverts("chat") == []


def test_root_and_reachability(broken):
    graph = broken.graph
    assert graph.root == "start"
    assert graph.unreachable() == ["empty", "orphan"]


def test_root_defaults_to_first_knot():
    doc = parse("=== a ===\n-> b\n=== b ===\nHi\n=== c ===\n-> a\n")
    assert doc.graph.root == "a"
    assert doc.graph.transitive_closure("a") == {"a", "b"}
    assert doc.graph.unreachable() == ["c"]
    assert doc.reverse_diverts("a") == ["c"]


def test_incoming_refs(story):
    incoming = story.graph.incoming("morning")
    assert [(source, ref.choice_text) for source, ref in incoming] == [
        ("intro", "Yes"),
        ("intro", "Who is this?"),
    ]
    start_source, start_ref = story.graph.incoming("intro")[0]
    assert start_source == START
    assert start_ref.target == "intro"


def test_sources_in_document_order():
    doc = parse("-> c\n=== a ===\n-> c\n=== b ===\n-> c\n=== c ===\n-> a\n-> b\n")
    assert doc.reverse_diverts("c") == [START, "a", "b"]
