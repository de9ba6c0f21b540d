"""Story script parsing, serialization and analysis."""

from .graph import START, DivertGraph
from .parser import parse
from .serializer import render_document, serialize_items, serialize_knot, structure_of

__all__ = [
    "START",
    "DivertGraph",
    "parse",
    "render_document",
    "serialize_items",
    "serialize_knot",
    "structure_of",
]
