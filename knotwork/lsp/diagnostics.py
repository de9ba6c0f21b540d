"""
Convert knotwork lint results to LSP diagnostics.

Parsing and linting a single script is cheap enough to run on every change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from ..config import ProjectConfig
from ..ink.parser import parse
from ..ink.rules import LintRules

DIVERT_ARROW_PATTERN = re.compile(r"->\s*([\w.]+)")


@dataclass
class LintDiagnostic:
    """A single lint diagnostic for LSP (0-indexed line and column)."""

    line: int
    column: int
    length: int
    message: str
    severity: str  # "error", "warning", "info"
    rule_id: str


def _locate(line_text: str, rule: str, message: str) -> tuple[int, int]:
    """Column and length to highlight for a finding on a line."""
    if rule == "broken-divert":
        quoted = re.search(r"'([^']+)'", message)
        for match in DIVERT_ARROW_PATTERN.finditer(line_text):
            if quoted is None or match.group(1) == quoted.group(1):
                return match.start(), match.end() - match.start()
    stripped = line_text.lstrip()
    column = len(line_text) - len(stripped)
    return column, max(len(stripped.rstrip()), 1)


def lint_text(
    content: str,
    file_path: Path | None = None,
    config: ProjectConfig | None = None,
    images: list[str] | None = None,
    videos: list[str] | None = None,
) -> list[LintDiagnostic]:
    """
    Run lint checks on one script's text.

    Args:
        content: Script text (may be unsaved editor content)
        file_path: Path of the script, used in results only
        config: Project configuration (rule toggles, media settings)
        images: Image folder listing; None skips media checks
        videos: Video folder listing

    Returns:
        List of diagnostics for this file
    """
    config = config or ProjectConfig()
    doc = parse(content)
    results = LintRules(
        doc, file_path, images=images, videos=videos, media_config=config.media
    ).run_all(disabled=config.lint.disable)

    lines = doc.lines
    diagnostics: list[LintDiagnostic] = []
    for result in results:
        line_index = (result.line or 1) - 1
        line_text = lines[line_index] if 0 <= line_index < len(lines) else ""
        column, length = _locate(line_text, result.rule, result.message)
        diagnostics.append(
            LintDiagnostic(
                line=max(line_index, 0),
                column=column,
                length=length,
                message=result.message,
                severity=result.level,
                rule_id=result.rule,
            )
        )
    return diagnostics
