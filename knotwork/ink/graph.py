"""Divert graph construction and analysis."""

from collections import defaultdict
from dataclasses import dataclass, field

from ..models import TERMINAL_TARGETS, DivertRef, Knot, ParsedInk

START = "START"  # pseudo-source for the document's initial divert


@dataclass
class DivertGraph:
    """Graph of diverts between knots, with reverse lookup and reachability."""

    nodes: dict[str, Knot] = field(default_factory=dict)  # name -> first knot with that name
    order: list[str] = field(default_factory=list)  # knot names in document order
    edges: dict[str, set[str]] = field(
        default_factory=lambda: defaultdict(set)
    )  # knot -> knots it diverts to
    reverse_edges: dict[str, set[str]] = field(
        default_factory=lambda: defaultdict(set)
    )  # knot -> knots (or START) diverting to it
    incoming_refs: dict[str, list[tuple[str, DivertRef]]] = field(
        default_factory=lambda: defaultdict(list)
    )  # knot -> (source, divert) pairs
    initial_divert: str | None = None

    @classmethod
    def from_document(cls, doc: ParsedInk) -> "DivertGraph":
        """Build graph from the visible knots of a document."""
        graph = cls()
        graph.initial_divert = doc.initial_divert

        for knot in doc.visible_knots:
            graph.nodes[knot.name] = knot
            graph.order.append(knot.name)

        if doc.initial_divert:
            resolved = graph.resolve(None, doc.initial_divert)
            if resolved is not None:
                target = resolved[0]
                graph.edges[START].add(target)
                graph.reverse_edges[target].add(START)
                graph.incoming_refs[target].append(
                    (START, DivertRef(doc.initial_divert, None, "standalone"))
                )

        for knot in doc.visible_knots:
            for ref in knot.divert_refs:
                resolved = graph.resolve(knot.name, ref.target)
                if resolved is None:
                    continue
                target, stitch = resolved
                if target == knot.name and stitch is not None:
                    continue  # jump inside the same knot
                graph.edges[knot.name].add(target)
                graph.reverse_edges[target].add(knot.name)
                graph.incoming_refs[target].append((knot.name, ref))

        return graph

    def resolve(self, source: str | None, target: str) -> tuple[str, str | None] | None:
        """Resolve a divert target to (knot, stitch).

        Returns None for END/DONE and for targets that do not exist.
        """
        if target in TERMINAL_TARGETS:
            return None
        if "." in target:
            knot_name, stitch = target.split(".", 1)
            knot = self.nodes.get(knot_name)
            if knot is not None and stitch in knot.stitches:
                return knot_name, stitch
            return None
        if target in self.nodes:
            return target, None
        if source is not None and source in self.nodes and target in self.nodes[source].stitches:
            return source, target
        return None

    def is_valid_target(self, source: str | None, target: str) -> bool:
        return target in TERMINAL_TARGETS or self.resolve(source, target) is not None

    def get_targets(self, name: str) -> list[str]:
        """Knots this knot diverts to, in document order."""
        targets = self.edges.get(name, set())
        return [n for n in self.order if n in targets]

    def get_sources(self, name: str) -> list[str]:
        """Knots diverting to this knot, ``START`` first, then document order."""
        sources = self.reverse_edges.get(name, set())
        ordered = [START] if START in sources else []
        ordered.extend(n for n in self.order if n in sources)
        return ordered

    def incoming(self, name: str) -> list[tuple[str, DivertRef]]:
        return list(self.incoming_refs.get(name, []))

    @property
    def root(self) -> str | None:
        """Knot the story starts in."""
        targets = self.get_targets(START)
        if targets:
            return targets[0]
        return self.order[0] if self.order else None

    def transitive_closure(self, start: str) -> set[str]:
        """All knots reachable from start, start included."""
        visited = set()
        stack = [start]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)

            for target in self.edges.get(current, set()):
                if target not in visited:
                    stack.append(target)

        return visited

    def unreachable(self) -> list[str]:
        """Knots that cannot be reached from the story's start."""
        root = self.root
        if root is None:
            return []
        reachable = self.transitive_closure(root)
        return [n for n in self.order if n not in reachable]
