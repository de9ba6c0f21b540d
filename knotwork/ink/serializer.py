"""Model to text serialization.

The output is canonical: re-parsing it yields a structurally equal model, and
serializing that model again yields the same text.
"""

from ..models import (
    ChoiceItem,
    ConditionalBranch,
    ConditionalItem,
    ContentItem,
    DivertItem,
    FakeTypeItem,
    FlagOperationItem,
    ImageItem,
    Knot,
    ParsedInk,
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
)

DEFAULT_INDENT = 4

MEDIA_PREFIXES = {
    ImageItem: "",
    PlayerImageItem: "player-",
    VideoItem: "video-",
    PlayerVideoItem: "player-video-",
}


def format_position(position: Position) -> str:
    return f'// <{{ "pos-x": {position.x:.1f}, "pos-y": {position.y:.1f} }}>'


def format_node_position(label: str, position: Position) -> str:
    """START/END node annotation, e.g. ``// <# start: {...} #>``."""
    return f'// <# {label}: {{ "pos-x": {position.x:.1f}, "pos-y": {position.y:.1f} }} #>'


def format_duration(seconds: float) -> str:
    return f"{seconds:g}"


def format_knot_header(name: str) -> str:
    return f"=== {name} ==="


def _branch_label(branch: ConditionalBranch) -> str:
    if branch.is_else:
        return "else"
    if branch.flag is not None:
        return f'GetStoryFlag("{branch.flag}")'
    return branch.condition or ""


def _choice_head(item: ChoiceItem, depth: int, inline_divert: bool) -> str:
    marker = "+" if item.is_sticky else "*"
    parts = [" ".join([marker] * depth)]
    if item.bracketed:
        parts.append(f"[{item.text}]")
    elif item.text:
        parts.append(item.text)
    if inline_divert:
        parts.append(f"-> {item.divert}")
    return " ".join(parts)


class _Renderer:
    def __init__(self, indent: int):
        self.indent = indent
        self.out: list[str] = []

    def emit(self, level: int, text: str) -> None:
        self.out.append(" " * (self.indent * level) + text if text else "")

    def render(self, items: tuple[ContentItem, ...], level: int, choice_depth: int) -> None:
        for item in items:
            self.render_item(item, level, choice_depth)

    def render_item(self, item: ContentItem, level: int, choice_depth: int) -> None:
        if isinstance(item, TextItem):
            self.emit(level, item.content)
        elif isinstance(item, MEDIA_ITEM_CLASSES):
            prefix = MEDIA_PREFIXES[type(item)]
            self.emit(level, f"<{prefix}{item.filename}{item.extension}>")
        elif isinstance(item, FakeTypeItem):
            self.emit(level, f"<fake-type-{format_duration(item.duration)}>")
        elif isinstance(item, WaitItem):
            self.emit(level, f"<wait-{format_duration(item.duration)}>")
        elif isinstance(item, StitchItem):
            self.emit(0, f"= {item.name}")
        elif isinstance(item, DivertItem):
            self.emit(level, f"-> {item.target}")
        elif isinstance(item, FlagOperationItem):
            function = "SetStoryFlag" if item.operation == "set" else "RemoveStoryFlag"
            self.emit(level, f'~ {function}("{item.flag}")')
        elif isinstance(item, SideStoryItem):
            self.emit(level, f"<side-story-{item.name}>")
        elif isinstance(item, TransitionItem):
            self.emit(level, f'~ ShowCustomTransition("{item.title}", "{item.subtitle}")')
        elif isinstance(item, RawItem):
            self.emit(level, item.content)
        elif isinstance(item, ChoiceItem):
            self.render_choice(item, level, choice_depth)
        elif isinstance(item, ConditionalItem):
            self.render_conditional(item, level)
        else:
            raise TypeError(f"Cannot serialize {type(item).__name__}")

    def render_choice(self, item: ChoiceItem, level: int, depth: int) -> None:
        nested = item.nested_content
        # A divert after trailing sub-choices would be captured by the last one,
        # and one after a trailing divert would run second
        inline = item.divert is not None and (
            not nested or isinstance(nested[-1], (ChoiceItem, DivertItem))
        )
        self.emit(level, _choice_head(item, depth, inline))
        self.render(nested, level + 1, depth + 1)
        if item.divert is not None and not inline:
            self.emit(level + 1, f"-> {item.divert}")

    def render_conditional(self, item: ConditionalItem, level: int) -> None:
        self.emit(level, "{")
        for branch in item.branches:
            self.emit(level, f"- {_branch_label(branch)}:")
            self.render(branch.content, level + 1, 1)
            if branch.divert is not None:
                self.emit(level + 1, f"-> {branch.divert}")
        self.emit(level, "}")


MEDIA_ITEM_CLASSES = tuple(MEDIA_PREFIXES)


def serialize_items(items: tuple[ContentItem, ...], indent: int = DEFAULT_INDENT) -> list[str]:
    """Render content items as body lines."""
    renderer = _Renderer(indent)
    renderer.render(items, 0, 1)
    return renderer.out


def render_knot_lines(knot: Knot, indent: int = DEFAULT_INDENT, header: str | None = None) -> list[str]:
    """Header, optional position annotation and body of a knot."""
    lines = [header if header is not None else format_knot_header(knot.name)]
    if knot.position is not None:
        lines.append(format_position(knot.position))
    lines.extend(serialize_items(knot.items, indent))
    return lines


def serialize_knot(knot: Knot, indent: int = DEFAULT_INDENT) -> str:
    return "\n".join(render_knot_lines(knot, indent)) + "\n"


def render_document(doc: ParsedInk, indent: int = DEFAULT_INDENT) -> str:
    """Regenerate the whole document in canonical form.

    Lines outside any knot that are not part of the preamble are not kept.
    """
    lines: list[str] = []
    if doc.start_position is not None:
        lines.append(format_node_position("start", doc.start_position))
    if doc.end_position is not None:
        lines.append(format_node_position("end", doc.end_position))
    for external in doc.externals:
        lines.append(f"EXTERNAL {external.name}({', '.join(external.params)})")
    for include in doc.includes:
        lines.append(f"INCLUDE {include}")
    lines.extend(doc.preamble)
    if doc.initial_divert is not None:
        if lines:
            lines.append("")
        lines.append(f"-> {doc.initial_divert}")

    # Regions and free-standing knots, in source order
    blocks: list[tuple[int, object]] = [(r.line_start, r) for r in doc.regions]
    blocks.extend((k.line_start, k) for k in doc.knots if k.region is None)
    blocks.sort(key=lambda block: block[0])

    def add_knot(knot: Knot) -> None:
        if lines:
            lines.append("")
        lines.extend(render_knot_lines(knot, indent))

    for _, block in blocks:
        if isinstance(block, Knot):
            add_knot(block)
            continue
        if lines:
            lines.append("")
        lines.append(f"// <# StartRegion: {block.name} #>")
        if block.position is not None:
            lines.append(format_position(block.position))
        for knot in doc.knots:
            if knot.region == block.name and block.line_start <= knot.line_start <= block.line_end:
                add_knot(knot)
        lines.append("")
        lines.append("// <# EndRegion #>")

    return "\n".join(lines) + "\n"


def structure_of(doc: ParsedInk) -> tuple:
    """Comparable structure of a document, free of ids and line numbers."""
    return (
        doc.initial_divert,
        tuple((e.name, e.params) for e in doc.externals),
        tuple((r.name, r.knots) for r in doc.regions),
        tuple((k.name, k.position, k.region, k.items) for k in doc.knots),
    )
