"""
LSP server implementation for knotwork scripts.

Provides:
- Diagnostics from knotwork lint, refreshed as the script is edited
- Hover info for divert targets (preview, incoming diverts, flags)
- Go to definition on divert targets
- Code actions as suggestions (not auto-apply)
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer

from .. import __version__
from ..commands.lint import collect_asset_listings
from ..config import ProjectConfig, find_project_root, load_project_config
from ..errors import KnotworkError
from ..ink.media import MediaValidator
from ..ink.parser import parse
from ..models import StitchItem
from .diagnostics import lint_text
from .hover import divert_target_at, get_hover_info

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".ink"

SEVERITIES = {
    "error": lsp.DiagnosticSeverity.Error,
    "warning": lsp.DiagnosticSeverity.Warning,
    "info": lsp.DiagnosticSeverity.Information,
}

SUGGESTIONS = {
    "broken-divert": "Possible repair: check the spelling or add the missing knot",
    "dangling-choice": "Possible repair: add a divert (e.g. -> END) to the choice",
    "empty-knot": "Possible repair: add content or remove the knot",
    "missing-media": "Possible repair: add the file to the asset folder or fix the name",
}


class KnotworkLanguageServer(LanguageServer):
    """Language server for .ink scripts."""

    def __init__(self, config: ProjectConfig | None = None):
        super().__init__(name="knotwork-lsp", version=__version__)
        self.config = config or ProjectConfig()
        self._images: list[str] | None = None
        self._videos: list[str] | None = None

    def set_config(self, config: ProjectConfig) -> None:
        """Switch project configuration and drop cached asset listings."""
        self.config = config
        self._images = self._videos = None

    async def asset_listings(self) -> tuple[list[str] | None, list[str] | None]:
        """Image and video folder listings, loaded once per project."""
        if not self.config.lint.check_media or self.config.root is None:
            return None, None
        if self._images is None or self._videos is None:
            validator = MediaValidator(self.config.root, config=self.config.media)
            self._images, self._videos = await collect_asset_listings(validator)
        return self._images, self._videos

    def document_text(self, uri: str) -> str | None:
        """Current text of a document, preferring the editor's copy."""
        document = self.workspace.get_text_document(uri)
        try:
            return document.source
        except OSError:
            return None


def uri_to_path(uri: str) -> Path:
    """Convert a file URI to a Path."""
    parsed = urlparse(uri)
    path = unquote(parsed.path)
    # Windows drive paths arrive as /C:/...
    if path.startswith("/") and len(path) > 2 and path[2] == ":":
        path = path[1:]
    return Path(path)


def create_server(config: ProjectConfig | None = None) -> KnotworkLanguageServer:
    """Create and configure the LSP server."""
    server = KnotworkLanguageServer(config)

    @server.feature(lsp.INITIALIZE)
    def initialize(params: lsp.InitializeParams) -> None:
        """Handle initialize - load knotwork.toml from the workspace."""
        if server.config.root is not None or not params.root_uri:
            return
        root = find_project_root(uri_to_path(params.root_uri))
        if root is None:
            return
        try:
            server.set_config(load_project_config(root))
        except KnotworkError as exc:
            logger.warning("Ignoring invalid project config: %s", exc)

    @server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
    async def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
        """Handle document open - run initial lint."""
        await _validate_document(server, params.text_document.uri, params.text_document.text)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
    async def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
        """Handle document change - lint the unsaved text."""
        uri = params.text_document.uri
        content = server.document_text(uri)
        if content is not None:
            await _validate_document(server, uri, content)

    @server.feature(lsp.TEXT_DOCUMENT_DID_SAVE)
    async def did_save(params: lsp.DidSaveTextDocumentParams) -> None:
        """Handle document save - re-read asset folders and re-run lint."""
        server.set_config(server.config)
        uri = params.text_document.uri
        content = server.document_text(uri)
        if content is not None:
            await _validate_document(server, uri, content)

    @server.feature(lsp.TEXT_DOCUMENT_HOVER)
    def hover(params: lsp.HoverParams) -> lsp.Hover | None:
        """Provide hover information for divert targets."""
        content = server.document_text(params.text_document.uri)
        if content is None:
            return None

        lines = content.split("\n")
        if params.position.line >= len(lines):
            return None

        found = divert_target_at(lines[params.position.line], params.position.character)
        if found is None:
            return None

        target, start, end = found
        hover_info = get_hover_info(parse(content), target)
        if hover_info is None:
            return None
        return lsp.Hover(
            contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=hover_info),
            range=lsp.Range(
                start=lsp.Position(line=params.position.line, character=start),
                end=lsp.Position(line=params.position.line, character=end),
            ),
        )

    @server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
    def definition(params: lsp.DefinitionParams) -> lsp.Location | None:
        """Jump from a divert to the knot (or stitch) it targets."""
        uri = params.text_document.uri
        content = server.document_text(uri)
        if content is None:
            return None

        lines = content.split("\n")
        if params.position.line >= len(lines):
            return None

        found = divert_target_at(lines[params.position.line], params.position.character)
        if found is None:
            return None

        name, _, stitch = found[0].partition(".")
        knot = parse(content).find_knot(name)
        if knot is None:
            return None

        line = knot.line_start
        if stitch:
            for item in knot.items:
                if isinstance(item, StitchItem) and item.name == stitch:
                    line = knot.line_of(item.id) or line
                    break

        position = lsp.Position(line=line - 1, character=0)
        return lsp.Location(uri=uri, range=lsp.Range(start=position, end=position))

    @server.feature(lsp.TEXT_DOCUMENT_CODE_ACTION)
    def code_action(params: lsp.CodeActionParams) -> list[lsp.CodeAction]:
        """Provide code actions for diagnostics.

        Actions are phrased as suggestions and carry no edit.
        """
        actions = []
        for diagnostic in params.context.diagnostics:
            if diagnostic.source != "knotwork":
                continue

            rule_id = None
            if diagnostic.data and isinstance(diagnostic.data, dict):
                rule_id = diagnostic.data.get("rule_id")

            title = SUGGESTIONS.get(rule_id or "")
            if title:
                actions.append(
                    lsp.CodeAction(
                        title=title,
                        kind=lsp.CodeActionKind.QuickFix,
                        diagnostics=[diagnostic],
                    )
                )
        return actions

    return server


def to_lsp_diagnostics(diagnostics) -> list[lsp.Diagnostic]:
    """Convert lint diagnostics to protocol diagnostics."""
    return [
        lsp.Diagnostic(
            range=lsp.Range(
                start=lsp.Position(line=diag.line, character=diag.column),
                end=lsp.Position(line=diag.line, character=diag.column + diag.length),
            ),
            message=diag.message,
            severity=SEVERITIES.get(diag.severity, lsp.DiagnosticSeverity.Warning),
            source="knotwork",
            code=diag.rule_id,
            data={"rule_id": diag.rule_id},
        )
        for diag in diagnostics
    ]


async def _validate_document(server: KnotworkLanguageServer, uri: str, content: str) -> None:
    """Run lint on document text and publish diagnostics."""
    path = uri_to_path(uri)
    if path.suffix.lower() != SCRIPT_SUFFIX:
        return

    images, videos = await server.asset_listings()
    diagnostics = lint_text(content, path, server.config, images=images, videos=videos)
    logger.debug("Publishing %d diagnostic(s) for %s", len(diagnostics), path.name)

    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=to_lsp_diagnostics(diagnostics))
    )


def start_server(config: ProjectConfig | None = None, transport: str = "stdio") -> None:
    """Start the LSP server.

    Args:
        config: Project configuration (auto-detected from the workspace when empty)
        transport: Transport method ("stdio" or "tcp")
    """
    server = create_server(config)

    if transport == "stdio":
        server.start_io()
    else:
        # TCP transport for debugging
        server.start_tcp("localhost", 2087)
