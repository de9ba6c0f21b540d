"""Media reference validation.

Scripts reference images and videos by bare filename. Validation resolves each
name against the project's asset folders (``Images``/``Videos`` by default),
trying the configured extensions in order. Listing a folder can be slow, so
validation is asynchronous; ``ValidationScheduler`` cancels superseded
requests and never delivers their results.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Hashable, Iterable, Literal, Protocol

from ..config import MediaConfig
from ..models import (
    MEDIA_ITEM_TYPES,
    ContentItem,
    ParsedInk,
    PlayerVideoItem,
    VideoItem,
    iter_items,
)

logger = logging.getLogger(__name__)

MediaType = Literal["image", "video"]


class AssetLister(Protocol):
    """Lists the file names in a folder. May be sync or async."""

    def list_files(self, folder: Path) -> list[str] | Awaitable[list[str]]: ...


class FilesystemAssetLister:
    """Default lister backed by the local file system."""

    def list_files(self, folder: Path) -> list[str]:
        return sorted(entry.name for entry in folder.iterdir() if entry.is_file())


@dataclass(frozen=True)
class MediaReference:
    """A media item found in a document."""

    item_id: str
    kind: str  # image, player-image, video, player-video
    filename: str
    knot: str
    line: int | None

    @property
    def media_type(self) -> MediaType:
        return "video" if self.kind in ("video", "player-video") else "image"


@dataclass(frozen=True)
class MediaResolution:
    """Outcome of resolving one filename."""

    filename: str
    media_type: MediaType
    is_valid: bool
    resolved_name: str | None = None
    path: Path | None = None


def media_type_of(item: ContentItem) -> MediaType:
    return "video" if isinstance(item, (VideoItem, PlayerVideoItem)) else "image"


def extract_media_references(doc: ParsedInk) -> list[MediaReference]:
    """All media references of the visible knots, in document order."""
    refs = []
    for knot in doc.visible_knots:
        for item in iter_items(knot.items):
            if isinstance(item, MEDIA_ITEM_TYPES):
                refs.append(MediaReference(item.id, item.kind, item.filename, knot.name, knot.line_of(item.id)))
    return refs


def match_filename(filename: str, available: Iterable[str], extensions: Iterable[str]) -> str | None:
    """Find the file a bare filename refers to.

    An exact name wins, then ``filename + ext`` for each extension in order.
    Comparison falls back to case-insensitive when no exact match exists.
    """
    names = list(available)
    exact = set(names)
    folded = {name.lower(): name for name in names}
    candidates = [filename, *(filename + ext for ext in extensions)]
    for candidate in candidates:
        if candidate in exact:
            return candidate
    for candidate in candidates:
        if candidate.lower() in folded:
            return folded[candidate.lower()]
    return None


def find_missing_media(
    refs: Iterable[MediaReference],
    images: Iterable[str],
    videos: Iterable[str],
    config: MediaConfig | None = None,
) -> list[MediaReference]:
    """References whose file is not among the given listings."""
    config = config or MediaConfig()
    images = list(images)
    videos = list(videos)
    missing = []
    for ref in refs:
        if ref.media_type == "video":
            found = match_filename(ref.filename, videos, config.video_extensions)
        else:
            found = match_filename(ref.filename, images, config.image_extensions)
        if found is None:
            missing.append(ref)
    return missing


class MediaValidator:
    """Resolves media filenames against a project's asset folders."""

    def __init__(
        self,
        project_root: Path,
        lister: AssetLister | None = None,
        config: MediaConfig | None = None,
    ):
        self.project_root = project_root
        self.lister = lister or FilesystemAssetLister()
        self.config = config or MediaConfig()

    def folders_for(self, media_type: MediaType) -> tuple[str, ...]:
        return self.config.video_folders if media_type == "video" else self.config.image_folders

    def extensions_for(self, media_type: MediaType) -> tuple[str, ...]:
        return self.config.video_extensions if media_type == "video" else self.config.image_extensions

    async def list_folder(self, folder: str) -> list[str]:
        """List one asset folder; file-system errors count as an empty folder."""
        path = self.project_root / folder
        try:
            if inspect.iscoroutinefunction(self.lister.list_files):
                listing = await self.lister.list_files(path)
            else:
                listing = await asyncio.to_thread(self.lister.list_files, path)
                if inspect.isawaitable(listing):
                    listing = await listing
            return list(listing)
        except OSError as exc:
            logger.warning("Cannot list %s: %s", path, exc)
            return []

    async def _resolve_with(
        self, filename: str, media_type: MediaType, listings: dict[str, list[str]]
    ) -> MediaResolution:
        for folder in self.folders_for(media_type):
            if folder not in listings:
                listings[folder] = await self.list_folder(folder)
            found = match_filename(filename, listings[folder], self.extensions_for(media_type))
            if found is not None:
                return MediaResolution(filename, media_type, True, found, self.project_root / folder / found)
        return MediaResolution(filename, media_type, False)

    async def resolve(self, filename: str, media_type: MediaType) -> MediaResolution:
        """Resolve a single filename."""
        return await self._resolve_with(filename, media_type, {})

    async def validate_items(self, items: Iterable[ContentItem]) -> dict[str, MediaResolution]:
        """Validate every media item in ``items`` (nested content included).

        Each folder is listed at most once for the whole batch.

        Returns:
            Mapping of item id -> resolution
        """
        listings: dict[str, list[str]] = {}
        results: dict[str, MediaResolution] = {}
        for item in iter_items(tuple(items)):
            if isinstance(item, MEDIA_ITEM_TYPES):
                results[item.id] = await self._resolve_with(item.filename, media_type_of(item), listings)
        return results

    async def validate_document(self, doc: ParsedInk) -> dict[str, MediaResolution]:
        items = [item for knot in doc.visible_knots for item in knot.items]
        return await self.validate_items(items)


ResultCallback = Callable[[Hashable, dict[str, MediaResolution]], None]


class ValidationScheduler:
    """Runs one validation per key at a time.

    Submitting a new request for a key cancels the in-flight one; a superseded
    request never delivers its result, even if it finishes first.
    """

    def __init__(self, validator: MediaValidator, on_result: ResultCallback | None = None):
        self.validator = validator
        self.on_result = on_result
        self.latest: dict[Hashable, dict[str, MediaResolution]] = {}
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._generation: dict[Hashable, int] = {}

    def submit(self, key: Hashable, items: Iterable[ContentItem]) -> asyncio.Task:
        """Start validating ``items`` for ``key``. Must be called inside a running loop."""
        self.cancel(key)
        generation = self._generation[key]
        task = asyncio.create_task(self._run(key, generation, tuple(items)))
        self._tasks[key] = task
        return task

    async def _run(
        self, key: Hashable, generation: int, items: tuple[ContentItem, ...]
    ) -> dict[str, MediaResolution] | None:
        results = await self.validator.validate_items(items)
        if self._generation.get(key) != generation:
            logger.debug("Discarding superseded media validation for %r", key)
            return None
        self.latest[key] = results
        self._tasks.pop(key, None)
        if self.on_result is not None:
            self.on_result(key, results)
        return results

    def cancel(self, key: Hashable) -> None:
        """Cancel the in-flight request for ``key``; its result is never delivered."""
        self._generation[key] = self._generation.get(key, 0) + 1
        task = self._tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)
