"""Project configuration loaded from ``knotwork.toml``.

Example::

    [media]
    image_folders = ["Images"]
    video_folders = ["Videos"]

    [format]
    indent = 4

    [lint]
    disable = ["unreachable-knot"]
    fail_on = "warning"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .ink.lexer import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS

CONFIG_FILENAME = "knotwork.toml"
FAIL_ON_LEVELS = ("error", "warning", "info")


@dataclass(frozen=True)
class MediaConfig:
    image_folders: tuple[str, ...] = ("Images",)
    video_folders: tuple[str, ...] = ("Videos",)
    image_extensions: tuple[str, ...] = IMAGE_EXTENSIONS
    video_extensions: tuple[str, ...] = VIDEO_EXTENSIONS


@dataclass(frozen=True)
class FormatConfig:
    indent: int = 4


@dataclass(frozen=True)
class LintConfig:
    disable: tuple[str, ...] = ()
    fail_on: str = "error"
    check_media: bool = True


@dataclass(frozen=True)
class ProjectConfig:
    root: Path | None = None
    media: MediaConfig = field(default_factory=MediaConfig)
    format: FormatConfig = field(default_factory=FormatConfig)
    lint: LintConfig = field(default_factory=LintConfig)


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string_tuple(table: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(v.strip() for v in value if v.strip())


def _extensions(table: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    values = _string_tuple(table, key, default)
    return tuple(v.lower() if v.startswith(".") else f".{v.lower()}" for v in values)


def parse_config(data: dict[str, Any], root: Path | None = None) -> ProjectConfig:
    """Build a ProjectConfig from already-decoded TOML data."""
    media_raw = _coerce_dict(data.get("media"))
    media = MediaConfig(
        image_folders=_string_tuple(media_raw, "image_folders", MediaConfig.image_folders),
        video_folders=_string_tuple(media_raw, "video_folders", MediaConfig.video_folders),
        image_extensions=_extensions(media_raw, "image_extensions", IMAGE_EXTENSIONS),
        video_extensions=_extensions(media_raw, "video_extensions", VIDEO_EXTENSIONS),
    )

    format_raw = _coerce_dict(data.get("format"))
    indent = format_raw.get("indent", FormatConfig.indent)
    if not isinstance(indent, int) or isinstance(indent, bool) or not 1 <= indent <= 8:
        raise ConfigError("format.indent must be an integer between 1 and 8")

    lint_raw = _coerce_dict(data.get("lint"))
    fail_on = str(lint_raw.get("fail_on", LintConfig.fail_on)).strip().lower()
    if fail_on not in FAIL_ON_LEVELS:
        raise ConfigError(f"lint.fail_on must be one of: {', '.join(FAIL_ON_LEVELS)}")
    check_media = lint_raw.get("check_media", LintConfig.check_media)
    if not isinstance(check_media, bool):
        raise ConfigError("lint.check_media must be true or false")

    return ProjectConfig(
        root=root,
        media=media,
        format=FormatConfig(indent=indent),
        lint=LintConfig(
            disable=_string_tuple(lint_raw, "disable", ()),
            fail_on=fail_on,
            check_media=check_media,
        ),
    )


def load_config(path: Path) -> ProjectConfig:
    """Load a ``knotwork.toml`` file.

    Raises:
        ConfigError: if the file is not valid TOML or has invalid values
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    return parse_config(data, root=path.parent)


def find_project_root(start: Path) -> Path | None:
    """Find the nearest directory containing ``knotwork.toml``, walking up from `start`."""
    cur = start.resolve()
    if cur.is_file():
        cur = cur.parent
    for p in (cur, *cur.parents):
        if (p / CONFIG_FILENAME).is_file():
            return p
    return None


def load_project_config(root: Path | None) -> ProjectConfig:
    """Load the config of a project root, falling back to defaults."""
    if root is None:
        return ProjectConfig()
    path = root / CONFIG_FILENAME
    if path.is_file():
        return load_config(path)
    return ProjectConfig(root=root)
