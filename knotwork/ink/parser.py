"""Document-level parsing: knots, regions and the preamble."""

from dataclasses import dataclass, field, replace

from ..models import External, Knot, ParsedInk, ParseIssue, Position, Region
from .content import parse_body
from .lexer import ClassifiedLine, LineKind, classify_lines


@dataclass
class _OpenRegion:
    name: str
    line_start: int
    position: Position | None = None
    knots: list[str] = field(default_factory=list)


class _DocumentParser:
    def __init__(self, text: str):
        self.lines = text.replace("\r\n", "\n").split("\n")
        self.classified = list(classify_lines(self.lines))
        self.knots: list[Knot] = []
        self.regions: list[Region] = []
        self.externals: list[External] = []
        self.includes: list[str] = []
        self.preamble: list[str] = []
        self.issues: list[ParseIssue] = []
        self.initial_divert: str | None = None
        self.start_position: Position | None = None
        self.end_position: Position | None = None
        self.seen_names: set[str] = set()
        self.knot_start: int | None = None  # 0-based index of the open knot's header
        self.region: _OpenRegion | None = None
        self.in_preamble = True

    def parse(self) -> ParsedInk:
        skip_position = False
        for index, line in enumerate(self.classified):
            kind = line.kind

            if kind is LineKind.KNOT_HEADER:
                self._close_knot(index - 1)
                self.in_preamble = False
                self.knot_start = index
                skip_position = False
                continue

            if kind is LineKind.REGION_START:
                self._close_knot(index - 1)
                if self.region is not None:
                    self._issue("unclosed-region", f"Region '{self.region.name}' missing EndRegion", index)
                    self._close_region(index - 1)
                self.in_preamble = False
                self.region = _OpenRegion(line["name"], index + 1)
                skip_position = True
                continue

            if kind is LineKind.REGION_END:
                self._close_knot(index - 1)
                if self.region is None:
                    self._issue("stray-region-end", "EndRegion without a matching StartRegion", index)
                else:
                    self._close_region(index)
                continue

            if self.knot_start is not None:
                continue

            if kind is LineKind.BLANK:
                continue
            if skip_position:
                skip_position = False
                if kind is LineKind.POSITION and self.region is not None:
                    self.region.position = Position(line["x"], line["y"])
                    continue

            if self.in_preamble:
                self._preamble_line(line, index)
            elif kind not in (LineKind.COMMENT, LineKind.POSITION):
                self._issue("content-outside-knot", "Line is not inside any knot", index, "info")

        self._close_knot(len(self.lines) - 1)
        if self.region is not None:
            self._issue("unclosed-region", f"Region '{self.region.name}' missing EndRegion", len(self.lines) - 1)
            self._close_region(len(self.lines) - 1)

        return ParsedInk(
            knots=tuple(self.knots),
            regions=tuple(self.regions),
            externals=tuple(self.externals),
            includes=tuple(self.includes),
            initial_divert=self.initial_divert,
            start_position=self.start_position,
            end_position=self.end_position,
            preamble=tuple(self.preamble),
            issues=tuple(sorted(self.issues, key=lambda i: i.line or 0)),
            lines=tuple(self.lines),
        )

    def _preamble_line(self, line: ClassifiedLine, index: int) -> None:
        kind = line.kind
        if kind is LineKind.START_POSITION:
            self.start_position = Position(line["x"], line["y"])
        elif kind is LineKind.END_POSITION:
            self.end_position = Position(line["x"], line["y"])
        elif kind is LineKind.EXTERNAL:
            self.externals.append(External(line["name"], line["params"], index + 1))
        elif kind is LineKind.INCLUDE:
            self.includes.append(line["path"])
        elif kind is LineKind.DIVERT and self.initial_divert is None:
            self.initial_divert = line["target"]
        else:
            self.preamble.append(line.text)

    def _close_knot(self, last_index: int) -> None:
        if self.knot_start is None:
            return
        start = self.knot_start
        self.knot_start = None
        header = self.classified[start]
        name = header["name"]
        line_start = start + 1

        body = parse_body(self.lines[start + 1 : last_index + 1], first_offset=1)
        for issue in body.issues:
            self.issues.append(replace(issue, line=line_start + (issue.line or 0)))

        duplicate = name in self.seen_names
        if duplicate:
            self._issue("duplicate-knot", f"Duplicate knot name '{name}'", start, "error")
        self.seen_names.add(name)

        if self.region is not None:
            self.region.knots.append(name)

        self.knots.append(
            Knot(
                name=name,
                line_start=line_start,
                line_end=last_index + 1,
                header=self.lines[start],
                items=body.items,
                item_lines=body.item_lines,
                content="\n".join(self.lines[start : last_index + 1]),
                position=body.position,
                region=self.region.name if self.region else None,
                duplicate=duplicate,
            )
        )

    def _close_region(self, last_index: int) -> None:
        region = self.region
        self.region = None
        self.regions.append(
            Region(region.name, region.line_start, last_index + 1, region.position, tuple(region.knots))
        )

    def _issue(self, rule: str, message: str, index: int, severity: str = "warning") -> None:
        self.issues.append(ParseIssue(rule, message, index + 1, severity))  # type: ignore[arg-type]


def parse(text: str) -> ParsedInk:
    """Parse script text into an immutable document.

    Never raises for malformed content: problems are recorded in
    ``ParsedInk.issues`` and unrecognized lines are kept as raw items.
    """
    return _DocumentParser(text).parse()
