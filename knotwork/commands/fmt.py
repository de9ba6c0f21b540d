"""Format command: rewrite scripts in canonical form."""

import difflib
from pathlib import Path

from rich.console import Console

from ..ink.parser import parse
from ..ink.serializer import render_document


def format_text(text: str, indent: int = 4) -> str:
    return render_document(parse(text), indent)


def run_fmt(paths: list[Path], indent: int = 4, check: bool = False, show_diff: bool = False) -> int:
    """Format script files in place.

    Args:
        paths: Script files
        indent: Spaces per nesting level
        check: Only report files that would change
        show_diff: Print a unified diff for each changed file

    Returns:
        Exit code (1 if --check found unformatted files)
    """
    console = Console(stderr=True)
    changed = []

    for path in paths:
        original = path.read_text(encoding="utf-8")
        formatted = format_text(original, indent)
        if formatted == original:
            continue
        changed.append(path)

        if show_diff:
            diff = difflib.unified_diff(
                original.splitlines(keepends=True),
                formatted.splitlines(keepends=True),
                fromfile=str(path),
                tofile=f"{path} (formatted)",
            )
            print("".join(diff), end="")

        if check:
            console.print(f"Would reformat {path}", style="yellow")
        else:
            path.write_text(formatted, encoding="utf-8")
            console.print(f"Reformatted {path}", style="green")

    if not changed:
        console.print(f"{len(paths)} file(s) already formatted", style="dim")
    return 1 if check and changed else 0
