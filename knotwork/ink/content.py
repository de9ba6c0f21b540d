"""Knot body parsing.

Builds the ordered content tree of one knot from its body lines. Nesting is
tracked with a single explicit stack of insertion frames (root, choice,
conditional, branch) whose height is bounded by ``MAX_NESTING_DEPTH``; no
recursion is involved, so deeply nested input cannot exhaust the call stack.

Lines after a choice belong to that choice until a stitch header, a choice of
the same or lower depth, or the ``}`` of an enclosing conditional. Stitches are
the only explicit way back to the knot's root level.
"""

from dataclasses import dataclass, field
from typing import Sequence

from ..models import (
    ChoiceItem,
    ConditionalBranch,
    ConditionalItem,
    ContentItem,
    DivertItem,
    FakeTypeItem,
    FlagOperationItem,
    ImageItem,
    ParseIssue,
    PlayerImageItem,
    PlayerVideoItem,
    Position,
    RawItem,
    SideStoryItem,
    StitchItem,
    TextItem,
    TransitionItem,
    VideoItem,
    WaitItem,
    new_id,
)
from .lexer import ClassifiedLine, LineKind, classify_line, classify_lines

MAX_NESTING_DEPTH = 16

MEDIA_ITEMS = {
    LineKind.IMAGE: ImageItem,
    LineKind.PLAYER_IMAGE: PlayerImageItem,
    LineKind.VIDEO: VideoItem,
    LineKind.PLAYER_VIDEO: PlayerVideoItem,
}

COMMENT_KINDS = {
    LineKind.COMMENT,
    LineKind.POSITION,
    LineKind.START_POSITION,
    LineKind.END_POSITION,
    LineKind.REGION_START,
    LineKind.REGION_END,
}


@dataclass
class BodyParse:
    """Result of parsing one knot body.

    ``item_lines`` and issue lines are offsets relative to the knot header
    (the first body line has offset ``first_offset``).
    """

    items: tuple[ContentItem, ...]
    item_lines: dict[str, tuple[int, int]]
    issues: list[ParseIssue] = field(default_factory=list)
    position: Position | None = None


# Mutable drafts used only while a body is being parsed


@dataclass
class _Frame:
    kind: str  # root, choice, conditional, branch
    items: list = field(default_factory=list)
    id: str | None = None
    depth: int = 0  # choice marker count
    # choice fields
    text: str = ""
    sticky: bool = False
    bracketed: bool = True
    # choice/branch divert
    divert: str | None = None
    # branch fields
    flag: str | None = None
    condition: str | None = None
    is_else: bool = False


class _BodyParser:
    def __init__(self, lines: Sequence[str], first_offset: int):
        self.lines = list(classify_lines(lines))
        self.first_offset = first_offset
        self.root = _Frame("root")
        self.stack: list[_Frame] = [self.root]
        self.spans: dict[str, list[int]] = {}
        self.issues: list[ParseIssue] = []
        self.stitches: set[str] = set()
        self.position: Position | None = None

    @property
    def top(self) -> _Frame:
        return self.stack[-1]

    def parse(self) -> BodyParse:
        start = 0
        for index, line in enumerate(self.lines):
            if line.kind is LineKind.BLANK:
                continue
            if line.kind is LineKind.POSITION:
                self.position = Position(line["x"], line["y"])
                start = index + 1
            break

        for index in range(start, len(self.lines)):
            line = self.lines[index]
            if line.kind is LineKind.BLANK:
                continue
            self._process(line, index, self.first_offset + index)

        self._close_all(self.first_offset + len(self.lines) - 1)
        items = tuple(self._finish(item) for item in self.root.items)
        spans = {item_id: (span[0], span[1]) for item_id, span in self.spans.items()}
        return BodyParse(items, spans, self.issues, self.position)

    # -- line dispatch -------------------------------------------------

    def _process(self, line: ClassifiedLine, index: int, offset: int) -> None:
        kind = line.kind

        if kind is LineKind.STITCH_HEADER:
            self._close_all(offset)
            name = line["name"]
            if name in self.stitches:
                self._issue("duplicate-stitch", f"Duplicate stitch '{name}'", offset, "error")
            self.stitches.add(name)
            self._append(StitchItem(name), offset)
            return

        if kind is LineKind.CHOICE:
            self._open_choice(line, offset)
            return

        if kind is LineKind.CONDITIONAL_OPEN and self._opens_conditional(index):
            if self._has_room(line, offset):
                frame = _Frame("conditional", id=new_id())
                self._attach(frame, offset)
            return

        if kind is LineKind.BRANCH and self._find_conditional() is not None:
            self._open_branch(line, index, offset)
            return

        if kind is LineKind.CONDITIONAL_CLOSE and self._find_conditional() is not None:
            self._extend(offset)
            self._pop_through(self._find_conditional())
            return

        if self.top.kind == "conditional":
            # Content between branches of a conditional ends the block
            self._issue("unclosed-conditional", "Conditional block closed without '}'", offset)
            self._pop()

        self._append_line(line, offset)

    def _append_line(self, line: ClassifiedLine, offset: int) -> None:
        kind = line.kind
        if kind is LineKind.TEXT:
            self._append(TextItem(line["content"]), offset)
            if line["divert"]:
                self._append(DivertItem(line["divert"]), offset)
        elif kind is LineKind.DIVERT:
            self._append(DivertItem(line["target"]), offset)
        elif kind in MEDIA_ITEMS:
            self._append(MEDIA_ITEMS[kind](line["filename"], extension=line["extension"]), offset)
        elif kind is LineKind.FAKE_TYPE:
            self._append(FakeTypeItem(line["duration"]), offset)
        elif kind is LineKind.WAIT:
            self._append(WaitItem(line["duration"]), offset)
        elif kind is LineKind.SIDE_STORY:
            self._append(SideStoryItem(line["name"]), offset)
        elif kind is LineKind.FLAG_OPERATION:
            self._append(FlagOperationItem(line["operation"], line["flag"]), offset)
        elif kind is LineKind.TRANSITION:
            self._append(TransitionItem(line["title"], line["subtitle"]), offset)
        elif kind in COMMENT_KINDS:
            self._append(RawItem(line.text, "comment"), offset)
        else:
            self._append(RawItem(line.text), offset)

    # -- frames --------------------------------------------------------

    def _open_choice(self, line: ClassifiedLine, offset: int) -> None:
        depth = line["depth"]
        while self.top.kind == "choice" and self.top.depth >= depth:
            self._pop()
        if not self._has_room(line, offset):
            return
        frame = _Frame(
            "choice",
            id=new_id(),
            depth=depth,
            text=line["text"],
            sticky=line["sticky"],
            bracketed=line["bracketed"],
            divert=line["divert"],
        )
        self._attach(frame, offset)

    def _open_branch(self, line: ClassifiedLine, index: int, offset: int) -> None:
        conditional = self._find_conditional()
        while self.top is not conditional:
            self._pop()
        frame = _Frame(
            "branch",
            id=new_id(),
            flag=line["flag"],
            condition=line["condition"],
            is_else=line["is_else"],
        )
        self._attach(frame, offset)
        if line["rest"]:
            self._process(classify_line(line["rest"]), index, offset)

    def _opens_conditional(self, index: int) -> bool:
        for line in self.lines[index + 1:]:
            if line.kind is LineKind.BLANK:
                continue
            return line.kind is LineKind.BRANCH
        return False

    def _find_conditional(self) -> _Frame | None:
        for frame in reversed(self.stack):
            if frame.kind == "conditional":
                return frame
        return None

    def _has_room(self, line: ClassifiedLine, offset: int) -> bool:
        if len(self.stack) - 1 < MAX_NESTING_DEPTH:
            return True
        self._issue(
            "nesting-too-deep",
            f"Nesting deeper than {MAX_NESTING_DEPTH} levels; line kept as raw text",
            offset,
        )
        self._append(RawItem(line.text), offset)
        return False

    def _attach(self, frame: _Frame, offset: int) -> None:
        self.top.items.append(frame)
        self._extend(offset)
        self.spans[frame.id] = [offset, offset]
        self.stack.append(frame)

    def _append(self, item: ContentItem, offset: int) -> None:
        self.top.items.append(item)
        self.spans[item.id] = [offset, offset]
        self._extend(offset)

    def _extend(self, offset: int) -> None:
        for frame in self.stack[1:]:
            self.spans[frame.id][1] = offset

    def _pop(self) -> None:
        frame = self.stack.pop()
        if frame.kind in ("choice", "branch") and frame.divert is None:
            if frame.items and isinstance(frame.items[-1], DivertItem):
                trailing = frame.items.pop()
                self.spans.pop(trailing.id, None)
                frame.divert = trailing.target

    def _pop_through(self, target: _Frame) -> None:
        while self.stack[-1] is not target:
            self._pop()
        self._pop()

    def _close_all(self, offset: int) -> None:
        while len(self.stack) > 1:
            if self.top.kind == "conditional":
                self._issue("unclosed-conditional", "Conditional block missing closing '}'", offset)
            self._pop()

    def _issue(self, rule: str, message: str, offset: int, severity: str = "warning") -> None:
        self.issues.append(ParseIssue(rule, message, offset, severity))  # type: ignore[arg-type]

    # -- finalisation --------------------------------------------------

    def _finish(self, entry) -> ContentItem:
        if not isinstance(entry, _Frame):
            return entry
        if entry.kind == "choice":
            return ChoiceItem(
                text=entry.text,
                is_sticky=entry.sticky,
                divert=entry.divert,
                nested_content=tuple(self._finish(item) for item in entry.items),
                bracketed=entry.bracketed,
                id=entry.id,
            )
        branches = tuple(
            ConditionalBranch(
                flag=branch.flag,
                condition=branch.condition,
                is_else=branch.is_else,
                content=tuple(self._finish(item) for item in branch.items),
                divert=branch.divert,
                id=branch.id,
            )
            for branch in entry.items
        )
        return ConditionalItem(branches=branches, id=entry.id)


def parse_body(lines: Sequence[str], first_offset: int = 1) -> BodyParse:
    """Parse the lines of one knot body into a content tree.

    Args:
        lines: Body lines, header excluded
        first_offset: Offset assigned to ``lines[0]`` (1 = line after the header)

    Returns:
        BodyParse with items, item line offsets, parse issues and the knot's
        position annotation if the body starts with one
    """
    return _BodyParser(lines, first_offset).parse()
