"""Media command: resolve every image and video tag of a script."""

import asyncio
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import ProjectConfig
from ..ink.media import MediaValidator, extract_media_references
from ..ink.parser import parse


def run_media(path: Path, config: ProjectConfig, show_all: bool = False) -> int:
    """Report media references and whether their files exist.

    Returns:
        Exit code (0 = all found, 1 = missing files)
    """
    console = Console()
    root = config.root or path.parent
    doc = parse(path.read_text(encoding="utf-8"))
    refs = extract_media_references(doc)

    if not refs:
        console.print("No media references", style="dim")
        return 0

    validator = MediaValidator(root, config=config.media)
    results = asyncio.run(validator.validate_document(doc))

    table = Table(title=f"Media in {path.name}")
    table.add_column("Knot", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Kind")
    table.add_column("Reference")
    table.add_column("File")

    missing = 0
    for ref in refs:
        resolution = results[ref.item_id]
        if not resolution.is_valid:
            missing += 1
        elif not show_all:
            continue
        found = (
            f"[green]{resolution.path.relative_to(root)}[/]"
            if resolution.is_valid and resolution.path
            else "[red]missing[/]"
        )
        table.add_row(ref.knot, str(ref.line or ""), ref.kind, ref.filename, found)

    if table.rows:
        console.print(table)
    console.print(f"{len(refs)} reference(s), {missing} missing", style="bold red" if missing else "bold green")
    return 1 if missing else 0
