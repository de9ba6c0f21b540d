"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from knotwork.ink.parser import parse
from knotwork.models import ParsedInk

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_path() -> Path:
    return FIXTURES


@pytest.fixture
def story_path() -> Path:
    """Script touching every item variant, a region and position annotations."""
    return FIXTURES / "story.ink"


@pytest.fixture
def story(story_path: Path) -> ParsedInk:
    return parse(story_path.read_text(encoding="utf-8"))


@pytest.fixture
def broken_path() -> Path:
    """Script with one instance of each lint problem."""
    return FIXTURES / "broken.ink"


@pytest.fixture
def broken(broken_path: Path) -> ParsedInk:
    return parse(broken_path.read_text(encoding="utf-8"))


@pytest.fixture
def nested_path() -> Path:
    """Canonically formatted script with nested choices, stitches and conditionals."""
    return FIXTURES / "nested.ink"


@pytest.fixture
def nested(nested_path: Path) -> ParsedInk:
    return parse(nested_path.read_text(encoding="utf-8"))


@pytest.fixture
def project_path() -> Path:
    """Project root with knotwork.toml and Images/Videos asset folders."""
    return FIXTURES / "project"
