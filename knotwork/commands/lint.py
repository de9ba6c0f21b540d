"""Lint command implementation."""

import asyncio
import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import ProjectConfig
from ..ink.media import MediaValidator
from ..ink.parser import parse
from ..ink.rules import RULE_EXPLANATIONS, LintResult, LintRules, get_rule_ids

LEVEL_ORDER = {"error": 0, "warning": 1, "info": 2}


async def collect_asset_listings(validator: MediaValidator) -> tuple[list[str], list[str]]:
    """List every image and video folder concurrently."""
    image_folders = validator.folders_for("image")
    video_folders = validator.folders_for("video")
    listings = await asyncio.gather(
        *(validator.list_folder(folder) for folder in (*image_folders, *video_folders))
    )
    images = [name for listing in listings[: len(image_folders)] for name in listing]
    videos = [name for listing in listings[len(image_folders) :] for name in listing]
    return images, videos


def lint_path(path: Path, config: ProjectConfig, check_media: bool = True) -> list[LintResult]:
    """Lint one script file with the project's settings."""
    doc = parse(path.read_text(encoding="utf-8"))

    images = videos = None
    if check_media and config.lint.check_media and config.root is not None:
        validator = MediaValidator(config.root, config=config.media)
        images, videos = asyncio.run(collect_asset_listings(validator))

    rules = LintRules(doc, path, images=images, videos=videos, media_config=config.media)
    return rules.run_all(disabled=config.lint.disable)


def run_lint(
    paths: list[Path],
    config: ProjectConfig,
    fail_on: str | None = None,
    output_json: bool = False,
    check_media: bool = True,
) -> int:
    """Run lint checks on script files.

    Args:
        paths: Script files to lint
        config: Project configuration
        fail_on: Exit with error if this level or higher found (defaults to config)
        output_json: Output results as JSON instead of human-readable
        check_media: Check media tags against the asset folders

    Returns:
        Exit code (0 = success, 1 = failures found)
    """
    console = Console(stderr=True)
    fail_on = fail_on or config.lint.fail_on

    results: list[LintResult] = []
    for path in paths:
        console.print(f"Linting {path}...", style="dim")
        results.extend(lint_path(path, config, check_media))

    # Sort by level (errors first)
    results.sort(key=lambda r: (LEVEL_ORDER.get(r.level, 99), str(r.file), r.line or 0))

    counts = {"error": 0, "warning": 0, "info": 0}
    for r in results:
        counts[r.level] = counts.get(r.level, 0) + 1

    if output_json:
        _output_json(results, counts)
    else:
        _print_human_output(console, results, counts)

    threshold = LEVEL_ORDER.get(fail_on, 0)
    failing = sum(n for level, n in counts.items() if LEVEL_ORDER[level] <= threshold)
    return 1 if failing else 0


def _result_to_dict(result: LintResult) -> dict:
    return {
        "level": result.level,
        "rule": result.rule,
        "file": str(result.file) if result.file else None,
        "line": result.line,
        "knot": result.knot,
        "message": result.message,
    }


def _output_json(results: list[LintResult], counts: dict[str, int]) -> None:
    output = {
        "results": [_result_to_dict(r) for r in results],
        "summary": counts,
    }
    print(json.dumps(output, indent=2))


def _print_human_output(console: Console, results: list[LintResult], counts: dict[str, int]) -> None:
    """Print human-readable lint output."""
    if results:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Level")
        table.add_column("Location", style="cyan")
        table.add_column("Rule", style="magenta")
        table.add_column("Message")

        styles = {"error": "bold red", "warning": "yellow", "info": "dim"}
        for result in results:
            location = result.file.name if result.file else "<text>"
            if result.line:
                location += f":{result.line}"
            table.add_row(
                f"[{styles[result.level]}]{result.level.upper()}[/]",
                location,
                result.rule,
                result.message,
            )
        console.print(table)

    console.print()
    if counts["error"] > 0:
        console.print(f"{counts['error']} error(s)", style="bold red")
    if counts["warning"] > 0:
        console.print(f"{counts['warning']} warning(s)", style="yellow")
    if counts["info"] > 0:
        console.print(f"{counts['info']} info(s)", style="dim")

    if counts["error"] == 0 and counts["warning"] == 0:
        console.print("No errors or warnings", style="bold green")


def run_explain(rule_id: str) -> int:
    """Explain a specific lint rule.

    Returns:
        Exit code (0 = success, 1 = rule not found)
    """
    console = Console()
    rule_id = rule_id.lower().strip()

    if rule_id not in RULE_EXPLANATIONS:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print()
        console.print("Known rules:", style="bold")
        for rid in get_rule_ids():
            console.print(f"  - {rid}")
        return 1

    from rich.markdown import Markdown

    console.print(Markdown(RULE_EXPLANATIONS[rule_id]))
    return 0
