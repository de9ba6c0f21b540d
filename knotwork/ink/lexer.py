"""Line classification for story scripts.

Each physical line is classified into exactly one ``LineKind``. The classifier
never fails: a line that matches no rule becomes ``TEXT``, or ``RAW`` when it
looks like syntax that is malformed or not modelled.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".mkv", ".avi", ".m4v")

NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
TARGET = r"\w+(?:\.\w+)?"

# Headers
KNOT_HEADER_PATTERN = re.compile(r"^={2,}\s*(\w+)\s*(?:={2,})?\s*$")
STITCH_HEADER_PATTERN = re.compile(r"^=\s*(\w+)\s*$")

# Annotations hidden in comments
NUMBER = r"(-?\d+(?:\.\d+)?)"
POSITION_PATTERN = re.compile(
    r'^//\s*<\{\s*"pos-x"\s*:\s*' + NUMBER + r'\s*,\s*"pos-y"\s*:\s*' + NUMBER + r"\s*\}>\s*$"
)
START_POSITION_PATTERN = re.compile(
    r'^//\s*<#\s*start:\s*\{\s*"pos-x"\s*:\s*' + NUMBER + r'\s*,\s*"pos-y"\s*:\s*' + NUMBER + r"\s*\}\s*#>\s*$"
)
END_POSITION_PATTERN = re.compile(
    r'^//\s*<#\s*end:\s*\{\s*"pos-x"\s*:\s*' + NUMBER + r'\s*,\s*"pos-y"\s*:\s*' + NUMBER + r"\s*\}\s*#>\s*$"
)
REGION_START_PATTERN = re.compile(r"^//\s*<#\s*StartRegion:\s*(.+?)\s*#>\s*$")
REGION_END_PATTERN = re.compile(r"^//\s*<#\s*EndRegion\s*#>\s*$")

# Flow
CHOICE_PATTERN = re.compile(r"^((?:[*+]\s*)+)(.*)$")
DIVERT_SUFFIX_PATTERN = re.compile(r"^(.*?)\s*->\s*(" + TARGET + r")\s*$")
DIVERT_PATTERN = re.compile(r"^->\s*(" + TARGET + r")\s*$")
INLINE_DIVERT_PATTERN = re.compile(r"^(.*?\S)\s*->\s*(" + TARGET + r")\s*$")
BRACKETED_PATTERN = re.compile(r"^\[(.*)\]$")

# Functions
FLAG_OPERATION_PATTERN = re.compile(
    r'^~\s*(SetStoryFlag|RemoveStoryFlag)\(\s*"([^"]*)"\s*\)\s*;?\s*$'
)
TRANSITION_PATTERN = re.compile(
    r'^~\s*ShowCustomTransition\(\s*"([^"]*)"\s*(?:,\s*"([^"]*)"\s*)?\)\s*;?\s*$'
)

# Conditionals
BRANCH_PATTERN = re.compile(r"^-\s*(.+?)\s*:\s*(.*)$")
FLAG_CONDITION_PATTERN = re.compile(r'^GetStoryFlag\(\s*"([^"]*)"\s*\)$')

# Media and tags
PLAYER_VIDEO_PATTERN = re.compile(r"^<player-video-([^<>]+)>$")
VIDEO_PATTERN = re.compile(r"^<video-([^<>]+)>$")
PLAYER_IMAGE_PATTERN = re.compile(r"^<player-(?!video-)([^<>]+)>$")
FAKE_TYPE_PATTERN = re.compile(r"^<fake-type-(\d+(?:\.\d+)?)>$")
WAIT_PATTERN = re.compile(r"^<wait-(\d+(?:\.\d+)?)>$")
SIDE_STORY_PATTERN = re.compile(r"^<side-story-([^<>]+)>$")
IMAGE_PATTERN = re.compile(r"^<(?!player-|video-|fake-type-|wait-|side-story-)([^<>]+)>$")

# Preamble directives
EXTERNAL_PATTERN = re.compile(r"^EXTERNAL\s+(\w+)\s*\(([^)]*)\)\s*;?\s*$")
INCLUDE_PATTERN = re.compile(r"^INCLUDE\s+(.+?)\s*$")

# Prefixes that mark a line as syntax rather than dialogue
SYNTAX_PREFIXES = ("~", "<", "{", "}", "-", "=", "*", "+", "#", "VAR ", "CONST ", "INCLUDE ", "EXTERNAL ")


class LineKind(str, Enum):
    BLANK = "blank"
    KNOT_HEADER = "knot-header"
    STITCH_HEADER = "stitch-header"
    COMMENT = "comment"
    POSITION = "position"
    START_POSITION = "start-position"
    END_POSITION = "end-position"
    REGION_START = "region-start"
    REGION_END = "region-end"
    CHOICE = "choice"
    DIVERT = "divert"
    FLAG_OPERATION = "flag-operation"
    TRANSITION = "transition"
    BRANCH = "branch"
    CONDITIONAL_OPEN = "conditional-open"
    CONDITIONAL_CLOSE = "conditional-close"
    PLAYER_VIDEO = "player-video"
    VIDEO = "video"
    PLAYER_IMAGE = "player-image"
    FAKE_TYPE = "fake-type"
    WAIT = "wait"
    SIDE_STORY = "side-story"
    IMAGE = "image"
    EXTERNAL = "external"
    INCLUDE = "include"
    TEXT = "text"
    RAW = "raw"


@dataclass(frozen=True)
class ClassifiedLine:
    """A trimmed line, its kind and the fields captured for that kind."""

    kind: LineKind
    text: str
    fields: dict[str, Any] = field(default_factory=dict, compare=False)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


def split_extension(filename: str) -> tuple[str, str]:
    """Strip a known media extension from a filename.

    Returns:
        (bare name, extension) where extension is "" when none was recognised
    """
    lowered = filename.lower()
    for ext in IMAGE_EXTENSIONS + VIDEO_EXTENSIONS:
        if lowered.endswith(ext) and len(filename) > len(ext):
            return filename[: -len(ext)], filename[-len(ext):]
    return filename, ""


def _position_fields(match: re.Match) -> dict[str, Any]:
    return {"x": float(match.group(1)), "y": float(match.group(2))}


def _classify_comment(text: str) -> ClassifiedLine:
    if match := POSITION_PATTERN.match(text):
        return ClassifiedLine(LineKind.POSITION, text, _position_fields(match))
    if match := START_POSITION_PATTERN.match(text):
        return ClassifiedLine(LineKind.START_POSITION, text, _position_fields(match))
    if match := END_POSITION_PATTERN.match(text):
        return ClassifiedLine(LineKind.END_POSITION, text, _position_fields(match))
    if match := REGION_START_PATTERN.match(text):
        return ClassifiedLine(LineKind.REGION_START, text, {"name": match.group(1)})
    if REGION_END_PATTERN.match(text):
        return ClassifiedLine(LineKind.REGION_END, text)
    return ClassifiedLine(LineKind.COMMENT, text)


def _classify_choice(text: str, match: re.Match) -> ClassifiedLine:
    markers = match.group(1).replace(" ", "").replace("\t", "")
    rest = match.group(2).strip()

    divert = None
    if suffix := DIVERT_SUFFIX_PATTERN.match(rest):
        rest, divert = suffix.group(1).strip(), suffix.group(2)

    bracketed = False
    if bracket := BRACKETED_PATTERN.match(rest):
        rest, bracketed = bracket.group(1).strip(), True

    if not rest and not bracketed and divert is None:
        return ClassifiedLine(LineKind.RAW, text)

    return ClassifiedLine(
        LineKind.CHOICE,
        text,
        {
            "depth": len(markers),
            "sticky": markers[0] == "+",
            "text": rest,
            "bracketed": bracketed,
            "divert": divert,
        },
    )


def _classify_branch(text: str, match: re.Match) -> ClassifiedLine:
    condition = match.group(1).strip()
    fields: dict[str, Any] = {"flag": None, "condition": None, "is_else": False, "rest": match.group(2).strip()}
    if condition == "else":
        fields["is_else"] = True
    elif flag := FLAG_CONDITION_PATTERN.match(condition):
        fields["flag"] = flag.group(1)
    else:
        fields["condition"] = condition
    return ClassifiedLine(LineKind.BRANCH, text, fields)


def _media(kind: LineKind, text: str, raw_name: str) -> ClassifiedLine:
    name, ext = split_extension(raw_name.strip())
    return ClassifiedLine(kind, text, {"filename": name, "extension": ext})


def classify_line(line: str) -> ClassifiedLine:
    """Classify a single physical line.

    Rules are tried in a fixed order and the first match wins: headers,
    comments, choices, diverts, function calls, conditional syntax, media tags,
    preamble directives, then text or raw.
    """
    text = line.strip()
    if not text:
        return ClassifiedLine(LineKind.BLANK, text)

    if match := KNOT_HEADER_PATTERN.match(text):
        return ClassifiedLine(LineKind.KNOT_HEADER, text, {"name": match.group(1)})
    if match := STITCH_HEADER_PATTERN.match(text):
        return ClassifiedLine(LineKind.STITCH_HEADER, text, {"name": match.group(1)})

    if text.startswith("//"):
        return _classify_comment(text)
    if text.startswith("/*"):
        return ClassifiedLine(LineKind.COMMENT, text, {"block_open": "*/" not in text[2:]})

    if match := CHOICE_PATTERN.match(text):
        return _classify_choice(text, match)

    if match := DIVERT_PATTERN.match(text):
        return ClassifiedLine(LineKind.DIVERT, text, {"target": match.group(1)})

    if match := FLAG_OPERATION_PATTERN.match(text):
        operation = "set" if match.group(1) == "SetStoryFlag" else "remove"
        return ClassifiedLine(LineKind.FLAG_OPERATION, text, {"operation": operation, "flag": match.group(2)})
    if match := TRANSITION_PATTERN.match(text):
        return ClassifiedLine(
            LineKind.TRANSITION, text, {"title": match.group(1), "subtitle": match.group(2) or ""}
        )

    if text == "{":
        return ClassifiedLine(LineKind.CONDITIONAL_OPEN, text)
    if text == "}":
        return ClassifiedLine(LineKind.CONDITIONAL_CLOSE, text)
    if match := BRANCH_PATTERN.match(text):
        return _classify_branch(text, match)

    if match := PLAYER_VIDEO_PATTERN.match(text):
        return _media(LineKind.PLAYER_VIDEO, text, match.group(1))
    if match := VIDEO_PATTERN.match(text):
        return _media(LineKind.VIDEO, text, match.group(1))
    if match := PLAYER_IMAGE_PATTERN.match(text):
        return _media(LineKind.PLAYER_IMAGE, text, match.group(1))
    if match := FAKE_TYPE_PATTERN.match(text):
        return ClassifiedLine(LineKind.FAKE_TYPE, text, {"duration": float(match.group(1))})
    if match := WAIT_PATTERN.match(text):
        return ClassifiedLine(LineKind.WAIT, text, {"duration": float(match.group(1))})
    if match := SIDE_STORY_PATTERN.match(text):
        return ClassifiedLine(LineKind.SIDE_STORY, text, {"name": match.group(1).strip()})
    if match := IMAGE_PATTERN.match(text):
        return _media(LineKind.IMAGE, text, match.group(1))

    if match := EXTERNAL_PATTERN.match(text):
        params = tuple(p.strip() for p in match.group(2).split(",") if p.strip())
        return ClassifiedLine(LineKind.EXTERNAL, text, {"name": match.group(1), "params": params})
    if match := INCLUDE_PATTERN.match(text):
        return ClassifiedLine(LineKind.INCLUDE, text, {"path": match.group(1)})

    if text.startswith(SYNTAX_PREFIXES):
        return ClassifiedLine(LineKind.RAW, text)
    if match := INLINE_DIVERT_PATTERN.match(text):
        return ClassifiedLine(LineKind.TEXT, text, {"content": match.group(1), "divert": match.group(2)})
    return ClassifiedLine(LineKind.TEXT, text, {"content": text, "divert": None})


def classify_lines(lines: Iterable[str]) -> Iterator[ClassifiedLine]:
    """Classify lines in order, keeping ``/* ... */`` block comments intact."""
    in_block = False
    for line in lines:
        if in_block:
            text = line.strip()
            if "*/" in text:
                in_block = False
            yield ClassifiedLine(LineKind.COMMENT, text)
            continue
        classified = classify_line(line)
        if classified.kind is LineKind.COMMENT and classified.get("block_open"):
            in_block = True
        yield classified
