import traceback
from dataclasses import dataclass
from typing import Protocol

import logging
LOGGER = logging.getLogger(__name__)

from errors import PlaybackError
from objects import Song
from library.playlists import LibraryStore

SKIP_MS = 10_000


@dataclass(frozen=True)
class EngineStatus:
    position_ms: int = 0
    duration_ms: int = 0
    is_playing: bool = False
    did_just_finish: bool = False


class PlaybackEngine(Protocol):
    async def load(self, locator: str, is_asset: bool = False) -> EngineStatus: ...
    async def play(self) -> None: ...
    async def pause(self) -> None: ...
    async def seek(self, position_ms: int) -> None: ...
    async def status(self) -> EngineStatus: ...
    async def unload(self) -> None: ...


def format_time(ms: int | float | None) -> str:
    """mm:ss, both padded to two digits."""
    if not ms or ms < 0:
        return "00:00"
    total_seconds = int(ms // 1000)
    return f"{total_seconds // 60:02d}:{total_seconds % 60:02d}"


class PlaybackSession:
    """The song being played and its position. Operations without a loaded
       song do nothing."""

    def __init__(self, engine: PlaybackEngine, library: LibraryStore | None = None):
        self.engine = engine
        self.library = library

        self.current: Song | None = None
        self.position_ms = 0
        self.duration_ms = 0
        self.is_playing = False

    async def _engine_call(self, action: str, coro):
        try:
            return await coro
        except Exception as e:
            LOGGER.error(f"Playback engine failed to {action}: {traceback.format_exc()}")
            raise PlaybackError(f"Could not {action}: {e}") from e

    def _apply(self, status: EngineStatus):
        self.position_ms = max(0, status.position_ms or 0)
        if status.duration_ms:
            self.duration_ms = status.duration_ms
        self.is_playing = status.is_playing

    async def start(self, song: Song) -> None:
        if self.current is not None:
            await self._engine_call("unload the previous song", self.engine.unload())
            self.current = None
            self.is_playing = False

        LOGGER.info(f"Playing '{song.title}' by {song.artist}.")
        status = await self._engine_call("load the song",
                                         self.engine.load(song.source_locator, is_asset=song.is_fallback_asset))
        self.current = song
        self.position_ms = 0
        self.duration_ms = status.duration_ms or int(song.duration_seconds * 1000)

        await self._engine_call("start playback", self.engine.play())
        self.is_playing = True

        if self.library is not None:
            await self.library.record_play(song)

    async def toggle(self) -> bool:
        if self.current is None:
            return False

        if self.is_playing:
            await self._engine_call("pause", self.engine.pause())
            self.is_playing = False
        else:
            await self._engine_call("resume", self.engine.play())
            self.is_playing = True
        return self.is_playing

    async def seek(self, position_ms: int) -> None:
        if self.current is None:
            return

        position_ms = min(max(0, int(position_ms)), self.duration_ms)
        await self._engine_call("seek", self.engine.seek(position_ms))
        self.position_ms = position_ms

    async def skip_forward(self) -> None:
        await self.seek(self.position_ms + SKIP_MS)

    async def skip_backward(self) -> None:
        await self.seek(self.position_ms - SKIP_MS)

    async def poll(self) -> EngineStatus | None:
        if self.current is None:
            return None

        status = await self._engine_call("read the playback status", self.engine.status())
        self._apply(status)

        if status.did_just_finish:
            LOGGER.debug(f"'{self.current.title}' finished, rewinding.")
            await self._engine_call("pause", self.engine.pause())
            await self._engine_call("rewind", self.engine.seek(0))
            self.is_playing = False
            self.position_ms = 0

        return status

    async def stop(self) -> None:
        if self.current is None:
            return

        await self._engine_call("unload the song", self.engine.unload())
        self.current = None
        self.position_ms = 0
        self.duration_ms = 0
        self.is_playing = False
