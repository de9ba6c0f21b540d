"""
Hover information for divert targets.

Hovering ``-> knot`` shows:
- the knot's opening line
- where the knot diverts to
- what diverts into it
- story flags it touches
"""

from __future__ import annotations

from ..ink.graph import START
from ..models import ChoiceItem, ParsedInk, TextItem, iter_items
from .diagnostics import DIVERT_ARROW_PATTERN

PREVIEW_LENGTH = 50


def divert_target_at(line: str, column: int) -> tuple[str, int, int] | None:
    """Divert target under the cursor as (target, start, end), if any."""
    for match in DIVERT_ARROW_PATTERN.finditer(line):
        if match.start() <= column <= match.end():
            return match.group(1), match.start(1), match.end(1)
    return None


def knot_preview(doc: ParsedInk, name: str) -> str | None:
    """First line of dialogue (or choice) of a knot, shortened."""
    knot = doc.find_knot(name)
    if knot is None:
        return None
    for item in iter_items(knot.items):
        if isinstance(item, TextItem):
            text = item.content
        elif isinstance(item, ChoiceItem):
            text = f"[{item.text}]"
        else:
            continue
        if len(text) > PREVIEW_LENGTH:
            text = text[: PREVIEW_LENGTH - 3] + "..."
        return text
    return ""


def get_hover_info(doc: ParsedInk, target: str) -> str | None:
    """
    Get hover information for a divert target.

    Args:
        doc: Parsed document the target appears in
        target: Divert target (``knot`` or ``knot.stitch``)

    Returns:
        Markdown-formatted hover content, or None if the knot doesn't exist
    """
    name, _, stitch = target.partition(".")
    knot = doc.find_knot(name)
    if knot is None:
        return None

    lines = [f"## {knot.name}" + (f" . {stitch}" if stitch else "")]
    lines.append("")

    preview = knot_preview(doc, name)
    if preview:
        lines.append(f"> {preview}")
        lines.append("")

    if knot.region:
        lines.append(f"**Region:** `{knot.region}`")
    lines.append(f"**Lines:** {knot.line_start}-{knot.line_end} | **Items:** {len(knot.items)}")
    lines.append("")

    if knot.diverts:
        lines.append("**Diverts to:** " + ", ".join(f"`{d}`" for d in knot.diverts))
    else:
        lines.append("**Diverts to:** nothing")

    sources = doc.reverse_diverts(name)
    if sources:
        labels = ["start of story" if s == START else f"`{s}`" for s in sources]
        lines.append("**Reached from:** " + ", ".join(labels))
    else:
        lines.append("**Reached from:** nowhere")

    flags = list(dict.fromkeys(f.name for f in knot.story_flags))
    if flags:
        lines.append("**Flags:** " + ", ".join(f"`{f}`" for f in flags[:5]))
        if len(flags) > 5:
            lines.append(f"... and {len(flags) - 5} more")

    return "\n".join(lines)
