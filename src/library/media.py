import os
import asyncio
import hashlib
import traceback
from dataclasses import dataclass
from typing import Protocol
from pathlib import Path

import logging
LOGGER = logging.getLogger(__name__)

from mutagen import File as MutagenFile
from mutagen import MutagenError

from errors import EnumerationError

AUDIO_EXTS = {".mp3", ".m4a", ".flac", ".ogg", ".opus", ".wav", ".aac"}


@dataclass(frozen=True)
class MediaAsset:
    id: str
    filename: str
    duration: float
    uri: str
    creation_time: int  # Epoch ms.
    artist: str | None = None


@dataclass(frozen=True)
class AssetPage:
    assets: list[MediaAsset]
    end_cursor: str | None
    has_next_page: bool


class MediaSource(Protocol):
    async def list_audio(self, first: int, after: str | None = None) -> AssetPage:
        """Up to `first` audio assets after cursor `after`, oldest first."""
        ...


class PermissionGate(Protocol):
    async def request(self) -> bool:
        ...


class FolderPermission:
    def __init__(self, root: str):
        self.root = root

    async def request(self) -> bool:
        granted = os.path.isdir(self.root) and os.access(self.root, os.R_OK | os.X_OK)
        LOGGER.debug(f"Read access to '{self.root}': {'granted' if granted else 'denied'}.")
        return granted


def _creation_time(stat: os.stat_result) -> int:
    created = getattr(stat, "st_birthtime", None) or stat.st_mtime
    return int(created * 1000)


def _asset_id(path: str) -> str:
    return hashlib.sha1(path.encode("utf-8")).hexdigest()[:16]


def _read_tags(path: str) -> tuple[float, str | None]:
    try:
        audio = MutagenFile(path, easy=True)
    except (MutagenError, OSError, ValueError):
        LOGGER.debug(f"Could not read tags of '{path}': {traceback.format_exc()}")
        return 0.0, None

    if audio is None:
        return 0.0, None

    duration = float(getattr(getattr(audio, "info", None), "length", 0) or 0)
    artist = None
    if hasattr(audio, "get"):
        artist = (audio.get("artist") or [None])[0]

    return duration, (artist.strip() or None) if artist else None


class FolderMediaSource:
    """
    Audio files under a directory, served page by page.

    The directory is scanned when a listing starts from the beginning (after=None);
    following pages are cut from that scan so a session sees a stable order.
    The cursor is the id of the last asset of the previous page.
    """

    def __init__(self, root: str):
        self.root = root
        self._scan: list[tuple[str, str, int]] = []  # (id, path, creation ms)

    def _scan_paths(self) -> list[tuple[str, str, int]]:
        if not os.path.isdir(self.root):
            raise EnumerationError(f"Music directory '{self.root}' does not exist.")

        entries = []
        for dirpath, _, filenames in os.walk(self.root):
            for fn in filenames:
                if os.path.splitext(fn)[1].lower() not in AUDIO_EXTS:
                    continue

                path = os.path.join(dirpath, fn)
                try:
                    created = _creation_time(os.stat(path))
                except OSError:
                    LOGGER.warning(f"Skipping unreadable file '{path}'.")
                    continue
                entries.append((_asset_id(path), path, created))

        entries.sort(key=lambda e: (e[2], e[1]))
        LOGGER.info(f"Scanned '{self.root}': {len(entries)} audio files.")
        return entries

    def _page(self, first: int, after: str | None) -> AssetPage:
        if after is None:
            self._scan = self._scan_paths()
            start = 0
        else:
            ids = [e[0] for e in self._scan]
            if after not in ids:
                raise EnumerationError(f"Unknown cursor '{after}'.")
            start = ids.index(after) + 1

        window = self._scan[start:start + first]
        assets = []
        for asset_id, path, created in window:
            duration, artist = _read_tags(path)
            assets.append(MediaAsset(id=asset_id,
                                     filename=os.path.basename(path),
                                     duration=duration,
                                     uri=Path(path).resolve().as_uri(),
                                     creation_time=created,
                                     artist=artist))

        end_cursor = assets[-1].id if assets else after
        return AssetPage(assets=assets,
                         end_cursor=end_cursor,
                         has_next_page=start + len(window) < len(self._scan))

    async def list_audio(self, first: int, after: str | None = None) -> AssetPage:
        try:
            return await asyncio.to_thread(self._page, first, after)
        except EnumerationError:
            raise
        except OSError as e:
            LOGGER.error(f"Listing '{self.root}' failed: {traceback.format_exc()}")
            raise EnumerationError(f"Listing '{self.root}' failed: {e}") from e
