"""Export the parsed model as JSON or YAML."""

import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from ..ink.parser import parse
from ..models import ConditionalBranch, ParsedInk, Position


def _value(value: Any) -> Any:
    if isinstance(value, Position):
        return {"x": value.x, "y": value.y}
    if isinstance(value, tuple):
        return [_value(v) for v in value]
    if isinstance(value, ConditionalBranch) or hasattr(value, "kind"):
        return item_to_dict(value)
    return value


def item_to_dict(item: Any) -> dict[str, Any]:
    """Plain-dict form of a content item or conditional branch."""
    data: dict[str, Any] = {"id": item.id}
    if not isinstance(item, ConditionalBranch):
        data["type"] = item.kind
    for f in fields(item):
        if f.name in ("id", "extension"):
            continue
        data[f.name] = _value(getattr(item, f.name))
    return data


def document_to_dict(doc: ParsedInk) -> dict[str, Any]:
    return {
        "initial_divert": doc.initial_divert,
        "externals": [{"name": e.name, "params": list(e.params)} for e in doc.externals],
        "regions": [
            {"name": r.name, "knots": list(r.knots), "position": _value(r.position)} for r in doc.regions
        ],
        "knots": [
            {
                "name": knot.name,
                "line_start": knot.line_start,
                "line_end": knot.line_end,
                "region": knot.region,
                "position": _value(knot.position),
                "duplicate": knot.duplicate,
                "diverts": list(knot.diverts),
                "story_flags": [
                    {"name": f.name, "operation": f.operation, "line": f.line} for f in knot.story_flags
                ],
                "items": [item_to_dict(item) for item in knot.items],
            }
            for knot in doc.knots
        ],
        "issues": [
            {"rule": i.rule, "severity": i.severity, "line": i.line, "message": i.message} for i in doc.issues
        ],
    }


def run_dump(path: Path, output_format: str = "json") -> int:
    """Print the parsed model of a script.

    Args:
        path: Script file
        output_format: "json" or "yaml"

    Returns:
        Exit code (always 0)
    """
    data = document_to_dict(parse(path.read_text(encoding="utf-8")))
    if output_format == "yaml":
        print(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), end="")
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0
