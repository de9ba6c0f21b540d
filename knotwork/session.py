"""Editing sessions over a single script.

An ``EditSession`` owns exactly one document snapshot at a time. Every edit
produces a new snapshot: the affected knot is re-rendered, spliced into the
text and the text is re-parsed, so derived data (diverts, story flags, line
spans) is always recomputed. Item ids are carried over from the previous
snapshot wherever the item survived.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Protocol

from .errors import DuplicateNameError, InvalidAddressError, InvalidNameError, KnotNotFoundError
from .ink.edits import CaretPosition, delete_item, insert_item, move_item, replace_item
from .ink.identity import carry_ids
from .ink.lexer import NAME_PATTERN, LineKind, classify_line, classify_lines
from .ink.parser import parse
from .ink.serializer import (
    DEFAULT_INDENT,
    format_knot_header,
    format_position,
    render_knot_lines,
)
from .models import ContentItem, Knot, ParsedInk, Position, StitchItem, iter_items

logger = logging.getLogger(__name__)

STITCH_NAME_PATTERN = re.compile(r"^\w+$")


class FileService(Protocol):
    """Reads and writes script files."""

    def read(self, path: Path) -> str: ...

    def write(self, path: Path, text: str) -> None: ...


class LocalFileService:
    def read(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write(self, path: Path, text: str) -> None:
        path.write_text(text, encoding="utf-8")


def _validate_knot_name(name: str) -> None:
    if not NAME_PATTERN.match(name):
        raise InvalidNameError(f"Invalid knot name '{name}'")


def _check_body_names(knot_name: str, body_lines: list[str], taken: set[str]) -> None:
    """Reject raw body text that repeats a knot name or a stitch name."""
    seen = set(taken)
    current, stitches = knot_name, set()
    for line in classify_lines(body_lines):
        if line.kind is LineKind.KNOT_HEADER:
            current = line["name"]
            if current in seen:
                raise DuplicateNameError(current)
            seen.add(current)
            stitches = set()
        elif line.kind is LineKind.STITCH_HEADER:
            if line["name"] in stitches:
                raise DuplicateNameError(line["name"], f"knot '{current}'")
            stitches.add(line["name"])


def _trailing_blank_count(lines: list[str]) -> int:
    count = 0
    for line in reversed(lines):
        if line.strip():
            break
        count += 1
    return count


class EditSession:
    """Holds the current snapshot of one script and applies edits to it."""

    def __init__(
        self,
        text: str = "",
        path: Path | None = None,
        files: FileService | None = None,
        indent: int = DEFAULT_INDENT,
        history_limit: int = 200,
    ):
        self.path = path
        self.files = files or LocalFileService()
        self.indent = indent
        self.history_limit = history_limit
        self.document: ParsedInk = parse(text)
        self._saved_text = self.document.text
        self._undo: list[ParsedInk] = []
        self._redo: list[ParsedInk] = []

    @classmethod
    def open(cls, path: Path, files: FileService | None = None, indent: int = DEFAULT_INDENT) -> "EditSession":
        """Open a script through the file service. I/O errors propagate."""
        files = files or LocalFileService()
        session = cls(files.read(path), path=path, files=files, indent=indent)
        logger.info("Opened %s (%d knots)", path, len(session.document.knots))
        return session

    @property
    def text(self) -> str:
        return self.document.text

    @property
    def is_dirty(self) -> bool:
        return self.text != self._saved_text

    def save(self, path: Path | None = None) -> Path:
        target = path or self.path
        if target is None:
            raise ValueError("No path to save to")
        self.files.write(target, self.text)
        self.path = target
        self._saved_text = self.text
        logger.info("Saved %s", target)
        return target

    # -- history -------------------------------------------------------

    def _commit(self, document: ParsedInk, action: str) -> ParsedInk:
        self._undo.append(self.document)
        if len(self._undo) > self.history_limit:
            self._undo.pop(0)
        self._redo.clear()
        self.document = document
        logger.debug("%s -> %d knots, %d issues", action, len(document.knots), len(document.issues))
        return document

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self.document)
        self.document = self._undo.pop()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self.document)
        self.document = self._redo.pop()
        return True

    # -- helpers -------------------------------------------------------

    def knot(self, name: str) -> Knot:
        knot = self.document.find_knot(name)
        if knot is None:
            raise KnotNotFoundError(name)
        return knot

    def _reparse(self, lines: list[str], overrides: dict[str, tuple[ContentItem, ...]] | None = None) -> ParsedInk:
        return carry_ids(parse("\n".join(lines)), self.document, overrides)

    def _splice_knot(self, knot: Knot, new_span: list[str]) -> list[str]:
        lines = list(self.document.lines)
        old_span = lines[knot.line_start - 1 : knot.line_end]
        new_span = new_span + [""] * _trailing_blank_count(old_span)
        return lines[: knot.line_start - 1] + new_span + lines[knot.line_end :]

    def _rewrite_items(
        self, name: str, items: tuple[ContentItem, ...], action: str, exact: bool = True
    ) -> ParsedInk:
        """Render ``items`` into the knot and re-parse.

        With ``exact``, the edit is rejected unless the re-parsed knot has the
        requested structure (e.g. a divert after a branch's trailing choice
        would be read back as that choice's divert).
        """
        knot = self.knot(name)
        rendered = render_knot_lines(replace(knot, items=items), self.indent, header=knot.header)
        document = self._reparse(self._splice_knot(knot, rendered), {name: items})
        if exact and document.find_knot(name).items != items:
            raise InvalidAddressError(
                f"{action} cannot be written to knot '{name}' without changing its structure"
            )
        return self._commit(document, action)

    def _check_stitch(self, knot: Knot, item: ContentItem, replacing: str | None = None) -> None:
        if not isinstance(item, StitchItem):
            return
        if not STITCH_NAME_PATTERN.match(item.name):
            raise InvalidNameError(f"Invalid stitch name '{item.name}'")
        taken = [
            i.name for i in knot.items if isinstance(i, StitchItem) and i.id != replacing
        ]
        if item.name in taken:
            raise DuplicateNameError(item.name, f"knot '{knot.name}'")

    # -- item edits ----------------------------------------------------

    def insert(self, knot_name: str, item: ContentItem, position: CaretPosition) -> ParsedInk:
        """Insert an item at a caret position inside a knot."""
        knot = self.knot(knot_name)
        self._check_stitch(knot, item)
        items = insert_item(knot.items, item, position)
        return self._rewrite_items(knot_name, items, f"insert {item.kind}")

    def replace(self, knot_name: str, item_id: str, new_item: ContentItem) -> ParsedInk:
        knot = self.knot(knot_name)
        self._check_stitch(knot, new_item, replacing=item_id)
        items = replace_item(knot.items, item_id, new_item)
        return self._rewrite_items(knot_name, items, f"replace {item_id}")

    def delete(self, knot_name: str, item_id: str) -> ParsedInk:
        knot = self.knot(knot_name)
        items = delete_item(knot.items, item_id)
        return self._rewrite_items(knot_name, items, f"delete {item_id}", exact=False)

    def move(self, knot_name: str, item_id: str, position: CaretPosition) -> ParsedInk:
        knot = self.knot(knot_name)
        items = move_item(knot.items, item_id, position)
        return self._rewrite_items(knot_name, items, f"move {item_id}")

    def add_stitch(self, knot_name: str, name: str, position: CaretPosition | None = None) -> ParsedInk:
        knot = self.knot(knot_name)
        position = position or CaretPosition(None, len(knot.items) - 1)
        return self.insert(knot_name, StitchItem(name), position)

    # -- knot edits ----------------------------------------------------

    def add_knot(
        self,
        name: str,
        body: str = "",
        region: str | None = None,
        position: Position | None = None,
    ) -> ParsedInk:
        """Append a new knot, at the end of ``region`` if one is given."""
        _validate_knot_name(name)
        if self.document.find_knot(name) is not None:
            raise DuplicateNameError(name)

        body_lines = body.split("\n") if body else []
        _check_body_names(name, body_lines, set(self.document.knot_names) | {name})

        new_lines = [format_knot_header(name)]
        if position is not None:
            new_lines.append(format_position(position))
        new_lines.extend(body_lines)

        lines = list(self.document.lines)
        if region is not None:
            target = next((r for r in self.document.regions if r.name == region), None)
            if target is None:
                raise KeyError(f"Region '{region}' not found")
            at = target.line_end - 1  # before the EndRegion marker
            lines[at:at] = new_lines + [""]
        else:
            while lines and not lines[-1].strip():
                lines.pop()
            if lines:
                lines.append("")
            lines.extend(new_lines)
            lines.append("")
        return self._commit(self._reparse(lines), f"add knot {name}")

    def delete_knot(self, name: str) -> ParsedInk:
        knot = self.knot(name)
        lines = list(self.document.lines)
        del lines[knot.line_start - 1 : knot.line_end]
        return self._commit(self._reparse(lines), f"delete knot {name}")

    def rename_knot(self, old: str, new: str) -> ParsedInk:
        """Rename a knot and every divert that targets it."""
        knot = self.knot(old)
        _validate_knot_name(new)
        if new == old:
            return self.document
        if self.document.find_knot(new) is not None:
            raise DuplicateNameError(new)

        pattern = re.compile(r"(->\s*)" + re.escape(old) + r"(?!\w)")
        lines = [pattern.sub(lambda m: m.group(1) + new, line) for line in self.document.lines]
        header = knot.header.replace(old, new, 1)
        lines[knot.line_start - 1] = header if header != knot.header else format_knot_header(new)
        return self._commit(self._reparse(lines, {new: knot.items}), f"rename knot {old} -> {new}")

    def replace_knot(self, name: str, body: str) -> ParsedInk:
        """Replace a knot's whole body with raw text.

        Raises:
            DuplicateNameError: The body repeats a stitch name or adds a
                header for a knot that already exists
        """
        knot = self.knot(name)
        body_lines = body.rstrip("\n").split("\n") if body else []
        _check_body_names(name, body_lines, set(self.document.knot_names))

        span = [knot.header]
        if knot.position is not None:
            span.append(format_position(knot.position))
        span.extend(body_lines)
        return self._commit(self._reparse(self._splice_knot(knot, span)), f"replace knot {name}")

    def set_knot_position(self, name: str, position: Position) -> ParsedInk:
        knot = self.knot(name)
        lines = list(self.document.lines)
        annotation = format_position(position)
        for index in range(knot.line_start, knot.line_end):
            kind = classify_line(lines[index]).kind
            if kind is LineKind.BLANK:
                continue
            if kind is LineKind.POSITION:
                lines[index] = annotation
            else:
                lines.insert(knot.line_start, annotation)
            break
        else:
            lines.insert(knot.line_start, annotation)
        return self._commit(self._reparse(lines), f"move knot {name}")

    def set_initial_divert(self, target: str | None) -> ParsedInk:
        """Set, change or remove the divert that starts the story."""
        lines = list(self.document.lines)
        starts = [k.line_start for k in self.document.knots] + [r.line_start for r in self.document.regions]
        first_knot = min(starts) - 1 if starts else len(lines)
        existing = None
        for index in range(first_knot):
            if classify_line(lines[index]).kind is LineKind.DIVERT:
                existing = index
                break

        if existing is not None and target is None:
            del lines[existing]
        elif existing is not None:
            lines[existing] = f"-> {target}"
        elif target is not None:
            lines[first_knot:first_knot] = [f"-> {target}", ""]
        return self._commit(self._reparse(lines), f"initial divert {target}")

    # -- raw text ------------------------------------------------------

    def update_text(self, text: str) -> ParsedInk:
        """Replace the whole text (raw editor change), keeping ids where possible."""
        return self._commit(carry_ids(parse(text), self.document), "update text")

    def find_items(self, kind: str) -> list[tuple[str, ContentItem]]:
        """All items of one kind, as (knot name, item) pairs."""
        return [
            (knot.name, item)
            for knot in self.document.visible_knots
            for item in iter_items(knot.items)
            if item.kind == kind
        ]
