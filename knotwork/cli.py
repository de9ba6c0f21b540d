"""CLI entrypoint for knotwork."""

import logging
import sys
from pathlib import Path

import click

from . import __version__
from .config import find_project_root, load_project_config
from .errors import KnotworkError

SCRIPT_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


def _configure_logging(verbose: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group()
@click.version_option(__version__, prog_name="knotwork")
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Project root holding knotwork.toml and the asset folders (defaults to auto-detected)",
)
@click.option("--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, project: Path | None, verbose: bool) -> None:
    """knotwork - structured editing tools for branching-story scripts.

    Lint, inspect and format .ink scripts.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)

    if project is None:
        project = find_project_root(Path.cwd())
    elif not project.is_dir():
        raise click.BadParameter(f"Directory '{project}' does not exist.", param_hint="--project / -p")

    try:
        ctx.obj["config"] = load_project_config(project.resolve() if project else None)
    except KnotworkError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.argument("files", nargs=-1, type=SCRIPT_FILE)
@click.option(
    "--fail-on",
    type=click.Choice(["error", "warning", "info"]),
    default=None,
    help="Exit with error if this level or higher found (default from knotwork.toml, else error)",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.option("--no-media", is_flag=True, help="Skip checking media tags against asset folders")
@click.option(
    "--explain",
    "explain_rule",
    type=str,
    default=None,
    metavar="RULE_ID",
    help="Explain a specific rule and exit (e.g., --explain broken-divert)",
)
@click.pass_context
def lint(
    ctx: click.Context,
    files: tuple[Path, ...],
    fail_on: str | None,
    output_json: bool,
    no_media: bool,
    explain_rule: str | None,
) -> None:
    """Check scripts for broken diverts, dangling choices and other problems.

    Use --explain RULE_ID to see detailed documentation for a rule.
    """
    from .commands.lint import run_explain, run_lint

    if explain_rule:
        sys.exit(run_explain(explain_rule))

    if not files:
        raise click.UsageError("No script files given.")

    exit_code = run_lint(list(files), ctx.obj["config"], fail_on, output_json, check_media=not no_media)
    sys.exit(exit_code)


@cli.command()
@click.argument("file", type=SCRIPT_FILE)
def outline(file: Path) -> None:
    """List the knots of a script with their diverts and flags."""
    from .commands.outline import run_outline

    sys.exit(run_outline(file))


@cli.command()
@click.argument("file", type=SCRIPT_FILE)
@click.argument("knot")
def refs(file: Path, knot: str) -> None:
    """Show every divert leading into KNOT."""
    from .commands.outline import run_refs

    sys.exit(run_refs(file, knot))


@cli.command()
@click.argument("file", type=SCRIPT_FILE)
def flags(file: Path) -> None:
    """Show story flags grouped by name."""
    from .commands.outline import run_flags

    sys.exit(run_flags(file))


@cli.command()
@click.argument("files", nargs=-1, required=True, type=SCRIPT_FILE)
@click.option("--check", is_flag=True, help="Don't write; exit 1 if any file would change")
@click.option("--diff", "show_diff", is_flag=True, help="Print a unified diff of the changes")
@click.option("--indent", type=click.IntRange(1, 8), default=None, help="Spaces per nesting level")
@click.pass_context
def fmt(ctx: click.Context, files: tuple[Path, ...], check: bool, show_diff: bool, indent: int | None) -> None:
    """Rewrite scripts in canonical form."""
    from .commands.fmt import run_fmt

    indent = indent or ctx.obj["config"].format.indent
    sys.exit(run_fmt(list(files), indent=indent, check=check, show_diff=show_diff))


@cli.command()
@click.argument("file", type=SCRIPT_FILE)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Output format",
)
def dump(file: Path, output_format: str) -> None:
    """Print the parsed model of a script."""
    from .commands.dump import run_dump

    sys.exit(run_dump(file, output_format))


@cli.command()
@click.argument("file", type=SCRIPT_FILE)
@click.option("--all", "show_all", is_flag=True, help="List found files too, not only missing ones")
@click.pass_context
def media(ctx: click.Context, file: Path, show_all: bool) -> None:
    """Resolve image and video tags against the project's asset folders."""
    from .commands.media import run_media

    sys.exit(run_media(file, ctx.obj["config"], show_all))


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp"]),
    default="stdio",
    help="Transport method (stdio for editors, tcp for debugging)",
)
@click.pass_context
def lsp(ctx: click.Context, transport: str) -> None:
    """Start the language server for live diagnostics."""
    from .lsp import start_server

    start_server(ctx.obj["config"], transport)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
