"""Data models for parsed story scripts.

Every model is an immutable snapshot. Content items carry an opaque ``id`` that
never takes part in equality, so ``==`` between items is structural equality.
"""

import uuid
from dataclasses import dataclass, field
from functools import cached_property
from typing import ClassVar, Iterator, Literal, Union

# Divert targets that end the story instead of naming a knot
TERMINAL_TARGETS = frozenset({"END", "DONE"})

FlagOperation = Literal["set", "remove", "check"]
Severity = Literal["error", "warning", "info"]


def new_id() -> str:
    """Return a fresh opaque item id."""
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Position:
    """Node-graph layout annotation stored in a position comment."""

    x: float
    y: float


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextItem:
    content: str
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class ImageItem:
    """NPC image, referenced by bare filename."""

    filename: str
    extension: str = field(default="", compare=False)  # stripped suffix, kept for text fidelity
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "image"


@dataclass(frozen=True)
class PlayerImageItem:
    filename: str
    extension: str = field(default="", compare=False)
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "player-image"


@dataclass(frozen=True)
class VideoItem:
    filename: str
    extension: str = field(default="", compare=False)
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "video"


@dataclass(frozen=True)
class PlayerVideoItem:
    filename: str
    extension: str = field(default="", compare=False)
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "player-video"


@dataclass(frozen=True)
class FakeTypeItem:
    """Typing indicator shown for ``duration`` seconds."""

    duration: float
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "fake-type"


@dataclass(frozen=True)
class WaitItem:
    duration: float
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "wait"


@dataclass(frozen=True)
class ChoiceItem:
    """A player choice; the only item with nested content of its own."""

    text: str
    is_sticky: bool = False
    divert: str | None = None
    nested_content: tuple["ContentItem", ...] = ()
    bracketed: bool = True  # [text] is not echoed after picking
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "choice"


@dataclass(frozen=True)
class StitchItem:
    """Marker for a named sub-section inside a knot."""

    name: str
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "stitch"


@dataclass(frozen=True)
class DivertItem:
    target: str
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "divert"


@dataclass(frozen=True)
class ConditionalBranch:
    """One branch of a conditional block.

    Exactly one of ``flag`` (a ``GetStoryFlag`` check), ``condition`` (any other
    expression, kept verbatim) or ``is_else`` describes when the branch runs.
    """

    flag: str | None = None
    condition: str | None = None
    is_else: bool = False
    content: tuple["ContentItem", ...] = ()
    divert: str | None = None
    id: str = field(default_factory=new_id, compare=False)

    @property
    def label(self) -> str:
        if self.is_else:
            return "else"
        if self.flag is not None:
            return self.flag
        return self.condition or ""


@dataclass(frozen=True)
class ConditionalItem:
    branches: tuple[ConditionalBranch, ...] = ()
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "conditional"


@dataclass(frozen=True)
class FlagOperationItem:
    operation: Literal["set", "remove"]
    flag: str
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "flag-operation"


@dataclass(frozen=True)
class SideStoryItem:
    name: str
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "side-story"


@dataclass(frozen=True)
class TransitionItem:
    title: str
    subtitle: str = ""
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "transition"


@dataclass(frozen=True)
class RawItem:
    """A line kept verbatim: a comment or syntax the parser does not model."""

    content: str
    reason: Literal["comment", "unrecognized"] = "unrecognized"
    id: str = field(default_factory=new_id, compare=False)
    kind: ClassVar[str] = "raw"


ContentItem = Union[
    TextItem,
    ImageItem,
    PlayerImageItem,
    VideoItem,
    PlayerVideoItem,
    FakeTypeItem,
    WaitItem,
    ChoiceItem,
    StitchItem,
    DivertItem,
    ConditionalItem,
    FlagOperationItem,
    SideStoryItem,
    TransitionItem,
    RawItem,
]

MediaItem = Union[ImageItem, PlayerImageItem, VideoItem, PlayerVideoItem]
MEDIA_ITEM_TYPES = (ImageItem, PlayerImageItem, VideoItem, PlayerVideoItem)


def iter_items(items: tuple[ContentItem, ...]) -> Iterator[ContentItem]:
    """Yield every item in the tree in document order (pre-order)."""
    for item in items:
        yield item
        if isinstance(item, ChoiceItem):
            yield from iter_items(item.nested_content)
        elif isinstance(item, ConditionalItem):
            for branch in item.branches:
                yield from iter_items(branch.content)


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DivertRef:
    """A single divert occurrence inside a knot."""

    target: str
    line: int | None
    context: Literal["standalone", "choice", "conditional"]
    choice_text: str | None = None
    flag: str | None = None
    is_else: bool = False

    @property
    def knot_target(self) -> str:
        """Knot part of a ``knot.stitch`` target."""
        return self.target.split(".", 1)[0]


@dataclass(frozen=True)
class StoryFlag:
    """One usage of a story flag."""

    name: str
    operation: FlagOperation
    line: int | None
    knot: str
    divert_target: str | None = None


@dataclass(frozen=True)
class FlagSummary:
    """All usages of one flag across the document."""

    name: str
    usages: tuple[StoryFlag, ...]

    @property
    def set_count(self) -> int:
        return sum(1 for u in self.usages if u.operation == "set")

    @property
    def remove_count(self) -> int:
        return sum(1 for u in self.usages if u.operation == "remove")

    @property
    def check_count(self) -> int:
        return sum(1 for u in self.usages if u.operation == "check")

    @property
    def knots(self) -> list[str]:
        return list(dict.fromkeys(u.knot for u in self.usages))


@dataclass(frozen=True)
class ParseIssue:
    """A content-level problem found while parsing."""

    rule: str
    message: str
    line: int | None = None
    severity: Severity = "warning"


@dataclass(frozen=True)
class Region:
    """Named group of knots delimited by region marker comments."""

    name: str
    line_start: int
    line_end: int
    position: Position | None = None
    knots: tuple[str, ...] = ()


@dataclass(frozen=True)
class External:
    """``EXTERNAL name(params)`` declaration."""

    name: str
    params: tuple[str, ...] = ()
    line: int | None = None


# ---------------------------------------------------------------------------
# Knot and document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Knot:
    """A named top-level section of the script."""

    name: str
    line_start: int
    line_end: int
    header: str = ""
    items: tuple[ContentItem, ...] = ()
    item_lines: dict[str, tuple[int, int]] = field(
        default_factory=dict, compare=False, hash=False
    )  # item id -> line offsets relative to the header
    content: str = field(default="", compare=False)  # raw span text
    position: Position | None = None
    region: str | None = None
    duplicate: bool = False  # a later knot reusing an earlier knot's name

    def line_range(self, item_id: str) -> tuple[int, int] | None:
        """Absolute (first, last) line numbers of an item or branch."""
        offsets = self.item_lines.get(item_id)
        if offsets is None:
            return None
        return (self.line_start + offsets[0], self.line_start + offsets[1])

    def line_of(self, item_id: str) -> int | None:
        span = self.line_range(item_id)
        return span[0] if span else None

    @cached_property
    def divert_refs(self) -> tuple[DivertRef, ...]:
        """Every divert in the knot, in document order."""
        refs: list[DivertRef] = []
        self._collect_diverts(self.items, None, refs)
        return tuple(refs)

    def _collect_diverts(
        self,
        items: tuple[ContentItem, ...],
        parent: ChoiceItem | ConditionalBranch | None,
        refs: list[DivertRef],
    ) -> None:
        for item in items:
            if isinstance(item, DivertItem):
                refs.append(self._ref(item.target, self.line_of(item.id), parent))
            elif isinstance(item, ChoiceItem):
                self._collect_diverts(item.nested_content, item, refs)
                if item.divert:
                    span = self.line_range(item.id)
                    refs.append(self._ref(item.divert, span[1] if span else None, item))
            elif isinstance(item, ConditionalItem):
                for branch in item.branches:
                    self._collect_diverts(branch.content, branch, refs)
                    if branch.divert:
                        span = self.line_range(branch.id)
                        refs.append(self._ref(branch.divert, span[1] if span else None, branch))

    @staticmethod
    def _ref(
        target: str, line: int | None, parent: ChoiceItem | ConditionalBranch | None
    ) -> DivertRef:
        if isinstance(parent, ChoiceItem):
            return DivertRef(target, line, "choice", choice_text=parent.text)
        if isinstance(parent, ConditionalBranch):
            return DivertRef(target, line, "conditional", flag=parent.flag, is_else=parent.is_else)
        return DivertRef(target, line, "standalone")

    @cached_property
    def diverts(self) -> tuple[str, ...]:
        """Distinct divert targets in first-seen order, END/DONE excluded."""
        targets = (ref.target for ref in self.divert_refs if ref.target not in TERMINAL_TARGETS)
        return tuple(dict.fromkeys(targets))

    @cached_property
    def story_flags(self) -> tuple[StoryFlag, ...]:
        """Flag operations and flag checks, in document order."""
        flags: list[StoryFlag] = []
        for item in iter_items(self.items):
            if isinstance(item, FlagOperationItem):
                flags.append(StoryFlag(item.flag, item.operation, self.line_of(item.id), self.name))
            elif isinstance(item, ConditionalItem):
                for branch in item.branches:
                    if branch.flag is not None:
                        flags.append(
                            StoryFlag(
                                branch.flag,
                                "check",
                                self.line_of(branch.id),
                                self.name,
                                divert_target=branch.divert,
                            )
                        )
        return tuple(flags)

    @cached_property
    def stitches(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.items if isinstance(item, StitchItem))

    @property
    def is_empty(self) -> bool:
        return not any(not isinstance(item, RawItem) or item.reason != "comment" for item in self.items)

    def find_item(self, item_id: str) -> ContentItem | None:
        for item in iter_items(self.items):
            if item.id == item_id:
                return item
        return None


@dataclass(frozen=True)
class ParsedInk:
    """Immutable parsed document with precomputed queries."""

    knots: tuple[Knot, ...] = ()
    regions: tuple[Region, ...] = ()
    externals: tuple[External, ...] = ()
    includes: tuple[str, ...] = ()
    initial_divert: str | None = None
    start_position: Position | None = None
    end_position: Position | None = None
    preamble: tuple[str, ...] = ()  # preamble lines not modelled elsewhere
    issues: tuple[ParseIssue, ...] = field(default=(), compare=False)
    lines: tuple[str, ...] = field(default=(), compare=False, repr=False)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @cached_property
    def _by_name(self) -> dict[str, Knot]:
        lookup: dict[str, Knot] = {}
        for knot in self.knots:
            lookup.setdefault(knot.name, knot)
        return lookup

    @property
    def visible_knots(self) -> tuple[Knot, ...]:
        """Knots minus later duplicates of an earlier name."""
        return tuple(k for k in self.knots if not k.duplicate)

    @property
    def knot_names(self) -> list[str]:
        return list(self._by_name)

    def find_knot(self, name: str) -> Knot | None:
        return self._by_name.get(name)

    def knot_index(self, name: str) -> int | None:
        for index, knot in enumerate(self.knots):
            if knot.name == name:
                return index
        return None

    @cached_property
    def graph(self):
        """Divert graph over the visible knots."""
        from .ink.graph import DivertGraph

        return DivertGraph.from_document(self)

    def reverse_diverts(self, name: str) -> list[str]:
        """Knots (and ``START``) that divert to ``name``."""
        return self.graph.get_sources(name)

    @cached_property
    def all_story_flags(self) -> tuple[StoryFlag, ...]:
        return tuple(flag for knot in self.visible_knots for flag in knot.story_flags)

    @cached_property
    def flag_usages(self) -> dict[str, FlagSummary]:
        """Flag usages grouped by flag name, sorted by name."""
        grouped: dict[str, list[StoryFlag]] = {}
        for flag in self.all_story_flags:
            grouped.setdefault(flag.name, []).append(flag)
        return {name: FlagSummary(name, tuple(grouped[name])) for name in sorted(grouped)}
