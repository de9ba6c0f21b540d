"""Outline, reference and flag reports."""

from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..ink.graph import START
from ..ink.parser import parse


def run_outline(path: Path) -> int:
    """Print the knots of a script with their diverts and flags."""
    console = Console()
    doc = parse(path.read_text(encoding="utf-8"))

    table = Table(title=path.name)
    table.add_column("Knot", style="cyan")
    table.add_column("Lines", justify="right")
    table.add_column("Items", justify="right")
    table.add_column("Region")
    table.add_column("Diverts to")
    table.add_column("Flags")

    for knot in doc.knots:
        name = f"{knot.name} [red](duplicate)[/]" if knot.duplicate else knot.name
        table.add_row(
            name,
            f"{knot.line_start}-{knot.line_end}",
            str(len(knot.items)),
            knot.region or "",
            ", ".join(knot.diverts),
            ", ".join(dict.fromkeys(f.name for f in knot.story_flags)),
        )

    if doc.initial_divert:
        console.print(f"Starts at: [bold]{doc.initial_divert}[/]")
    console.print(table)
    return 0


def run_refs(path: Path, knot_name: str) -> int:
    """Print every divert that leads into a knot.

    Returns:
        Exit code (0 = success, 1 = knot not found)
    """
    console = Console()
    doc = parse(path.read_text(encoding="utf-8"))

    if doc.find_knot(knot_name) is None:
        console.print(f"Knot not found: {knot_name}", style="bold red")
        return 1

    incoming = doc.graph.incoming(knot_name)
    if not incoming:
        console.print(f"No diverts lead to '{knot_name}'", style="yellow")
        return 0

    table = Table(title=f"Diverts into {knot_name}")
    table.add_column("From", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Via")

    for source, ref in incoming:
        if source == START:
            via = "initial divert"
        elif ref.context == "choice":
            via = f"choice: {ref.choice_text}"
        elif ref.context == "conditional":
            via = "else branch" if ref.is_else else f"if {ref.flag}"
        else:
            via = "divert"
        table.add_row(source, str(ref.line or ""), via)

    console.print(table)
    return 0


def run_flags(path: Path) -> int:
    """Print story flags grouped by name with usage counts."""
    console = Console()
    doc = parse(path.read_text(encoding="utf-8"))

    if not doc.flag_usages:
        console.print("No story flags used", style="dim")
        return 0

    table = Table(title="Story flags")
    table.add_column("Flag", style="cyan")
    table.add_column("Set", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Checked", justify="right")
    table.add_column("Knots")

    for summary in doc.flag_usages.values():
        table.add_row(
            summary.name,
            str(summary.set_count),
            str(summary.remove_count),
            str(summary.check_count),
            ", ".join(summary.knots),
        )

    console.print(table)
    return 0
