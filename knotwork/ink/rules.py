"""Lint rules for story scripts."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

from ..config import MediaConfig
from ..models import (
    ChoiceItem,
    ConditionalItem,
    DivertItem,
    ParsedInk,
    RawItem,
    iter_items,
)
from .graph import DivertGraph
from .media import extract_media_references, find_missing_media


@dataclass
class LintResult:
    """A single lint finding."""

    level: Literal["error", "warning", "info"]
    rule: str
    file: Path | None
    message: str
    line: int | None = None
    knot: str | None = None

    def __str__(self) -> str:
        loc = self.file.name if self.file else "<text>"
        if self.line:
            loc += f":{self.line}"
        return f"{self.level.upper()}: [{self.rule}] {loc} - {self.message}"


RULE_EXPLANATIONS: dict[str, str] = {
    "broken-divert": """
# broken-divert

A divert (`-> target`) names a knot or stitch that does not exist.
`END` and `DONE` are always valid. Stitches are addressed as `knot.stitch`,
or by bare name from inside their own knot.
""",
    "dangling-choice": """
# dangling-choice

A choice has no divert and nothing inside it diverts anywhere, so the story
falls off the end of the knot when the player picks it.
""",
    "duplicate-knot": """
# duplicate-knot

Two knots share a name. Only the first one is reachable; the rest are shown
but ignored by divert resolution.
""",
    "duplicate-stitch": """
# duplicate-stitch

Two stitches inside the same knot share a name.
""",
    "empty-knot": """
# empty-knot

A knot has no content. Empty knots are legal but usually unfinished.
""",
    "unreachable-knot": """
# unreachable-knot

No chain of diverts leads from the start of the story to this knot.
The story starts at the initial divert, or at the first knot when there is none.
""",
    "unrecognized-syntax": """
# unrecognized-syntax

A line looks like script syntax but is not one of the modelled forms. It is
kept verbatim and round-trips unchanged.
""",
    "missing-media": """
# missing-media

An image or video tag names a file that is not in the project's asset
folders (`Images/` and `Videos/` by default, see `knotwork.toml`).
""",
    "unclosed-conditional": """
# unclosed-conditional

A `{` conditional block is not closed by `}` before the next stitch or the end
of the knot.
""",
    "nesting-too-deep": """
# nesting-too-deep

Choices and conditionals are nested deeper than the parser allows. The
offending line is kept as raw text.
""",
    "content-outside-knot": """
# content-outside-knot

A line sits between regions or after a region end, outside any knot. It is
kept in the file but not part of the story.
""",
    "unclosed-region": """
# unclosed-region

A `// <# StartRegion: name #>` marker has no matching `// <# EndRegion #>`.
""",
    "stray-region-end": """
# stray-region-end

An `// <# EndRegion #>` marker appears without an open region.
""",
}

PARSE_ISSUE_RULES = (
    "duplicate-knot",
    "duplicate-stitch",
    "unclosed-conditional",
    "nesting-too-deep",
    "content-outside-knot",
    "unclosed-region",
    "stray-region-end",
)


def get_rule_ids() -> list[str]:
    return sorted(RULE_EXPLANATIONS)


def _diverts_somewhere(choice: ChoiceItem) -> bool:
    if choice.divert:
        return True
    for item in iter_items(choice.nested_content):
        if isinstance(item, DivertItem):
            return True
        if isinstance(item, ChoiceItem) and item.divert:
            return True
        if isinstance(item, ConditionalItem) and any(b.divert for b in item.branches):
            return True
    return False


class LintRules:
    """Collection of lint rules for one parsed document."""

    def __init__(
        self,
        doc: ParsedInk,
        path: Path | None = None,
        images: Iterable[str] | None = None,
        videos: Iterable[str] | None = None,
        media_config: MediaConfig | None = None,
    ):
        self.doc = doc
        self.path = path
        self.graph: DivertGraph = doc.graph
        # Media listings; None disables the missing-media rule
        self.images = list(images) if images is not None else None
        self.videos = list(videos) if videos is not None else None
        self.media_config = media_config or MediaConfig()

    def run_all(
        self,
        allowed_rules: set[str] | None = None,
        disabled: Iterable[str] = (),
    ) -> list[LintResult]:
        """Run all lint checks and return findings."""
        results = []
        results.extend(self.check_parse_issues())
        results.extend(self.check_broken_diverts())
        results.extend(self.check_dangling_choices())
        results.extend(self.check_empty_knots())
        results.extend(self.check_unreachable_knots())
        results.extend(self.check_unrecognized_syntax())
        results.extend(self.check_missing_media())

        skipped = set(disabled)
        return [
            r
            for r in results
            if r.rule not in skipped and (allowed_rules is None or r.rule in allowed_rules)
        ]

    def _result(self, level, rule: str, message: str, line: int | None, knot: str | None = None) -> LintResult:
        return LintResult(level=level, rule=rule, file=self.path, message=message, line=line, knot=knot)

    def check_parse_issues(self) -> list[LintResult]:
        """Report problems the parser recorded (duplicates, unclosed blocks, ...)."""
        return [
            self._result(issue.severity, issue.rule, issue.message, issue.line)
            for issue in self.doc.issues
        ]

    def check_broken_diverts(self) -> list[LintResult]:
        """Check for diverts to knots or stitches that don't exist."""
        results = []

        initial = self.doc.initial_divert
        if initial and not self.graph.is_valid_target(None, initial):
            results.append(
                self._result("warning", "broken-divert", f"Initial divert to unknown knot '{initial}'", None)
            )

        for knot in self.doc.visible_knots:
            for ref in knot.divert_refs:
                if self.graph.is_valid_target(knot.name, ref.target):
                    continue
                where = f" from choice '{ref.choice_text}'" if ref.choice_text else ""
                results.append(
                    self._result(
                        "warning",
                        "broken-divert",
                        f"Divert to '{ref.target}'{where} - target not found",
                        ref.line,
                        knot.name,
                    )
                )

        return results

    def check_dangling_choices(self) -> list[LintResult]:
        """Check for choices that lead nowhere."""
        results = []

        for knot in self.doc.visible_knots:
            for item in iter_items(knot.items):
                if isinstance(item, ChoiceItem) and not _diverts_somewhere(item):
                    label = item.text or "(empty)"
                    results.append(
                        self._result(
                            "warning",
                            "dangling-choice",
                            f"Choice '{label}' has no divert",
                            knot.line_of(item.id),
                            knot.name,
                        )
                    )

        return results

    def check_empty_knots(self) -> list[LintResult]:
        return [
            self._result("warning", "empty-knot", f"Knot '{knot.name}' has no content", knot.line_start, knot.name)
            for knot in self.doc.visible_knots
            if knot.is_empty
        ]

    def check_unreachable_knots(self) -> list[LintResult]:
        """Check for knots no divert chain reaches from the start."""
        results = []
        for name in self.graph.unreachable():
            knot = self.graph.nodes[name]
            results.append(
                self._result("info", "unreachable-knot", f"Knot '{name}' is never diverted to", knot.line_start, name)
            )
        return results

    def check_unrecognized_syntax(self) -> list[LintResult]:
        results = []
        for knot in self.doc.visible_knots:
            for item in iter_items(knot.items):
                if isinstance(item, RawItem) and item.reason == "unrecognized":
                    results.append(
                        self._result(
                            "info",
                            "unrecognized-syntax",
                            f"Unrecognized syntax kept as-is: {item.content}",
                            knot.line_of(item.id),
                            knot.name,
                        )
                    )
        return results

    def check_missing_media(self) -> list[LintResult]:
        """Check media tags against the asset listings, if any were given."""
        if self.images is None and self.videos is None:
            return []
        refs = extract_media_references(self.doc)
        missing = find_missing_media(refs, self.images or [], self.videos or [], self.media_config)
        return [
            self._result(
                "warning",
                "missing-media",
                f"{ref.kind.replace('-', ' ').capitalize()} '{ref.filename}' not found",
                ref.line,
                ref.knot,
            )
            for ref in missing
        ]
