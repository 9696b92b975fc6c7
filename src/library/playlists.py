import traceback
from typing import Callable

import logging
LOGGER = logging.getLogger(__name__)

from errors import CacheIOError
from objects import Song, Playlist, now_ms
from store import KeyValueStore, PLAYLISTS_KEY, RECENT_SONGS_KEY, USER_DATA_KEY, read_json, write_json

MAX_RECENT_SONGS = 10


class LibraryStore:
    """User-owned collections kept next to the song cache: playlists, recently
       played songs and the signed-in user's profile."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    async def playlists(self) -> list[Playlist]:
        try:
            data = await read_json(self.store, PLAYLISTS_KEY, default=[])
            return [Playlist.from_dict(p) for p in data]
        except (CacheIOError, KeyError, TypeError, AttributeError):
            LOGGER.warning(f"Could not read playlists: {traceback.format_exc()}")
            return []

    async def create_playlist(self, name: str, description: str = "", is_public: bool = True,
                              cover_image: str | None = None) -> Playlist:
        name = name.strip()
        if not name:
            raise ValueError("Playlist name can't be empty.")

        playlist = Playlist(id=str(self.clock()),
                            name=name,
                            description=description.strip(),
                            is_public=is_public,
                            cover_image=cover_image)

        existing = await self.playlists()
        await write_json(self.store, PLAYLISTS_KEY, [p.to_dict() for p in existing + [playlist]])
        LOGGER.info(f"Created playlist '{playlist.name}' ({playlist.id}).")

        return playlist

    async def recent_songs(self) -> list[Song]:
        try:
            data = await read_json(self.store, RECENT_SONGS_KEY, default=[])
            return [Song.from_dict(s) for s in data]
        except (CacheIOError, KeyError, TypeError, AttributeError):
            LOGGER.warning(f"Could not read recent songs: {traceback.format_exc()}")
            return []

    async def record_play(self, song: Song) -> list[Song]:
        recent = [song] + [s for s in await self.recent_songs() if s.id != song.id]
        recent = recent[:MAX_RECENT_SONGS]

        try:
            await write_json(self.store, RECENT_SONGS_KEY, [s.to_dict() for s in recent])
        except CacheIOError:
            LOGGER.warning(f"Could not save recent songs: {traceback.format_exc()}")

        return recent

    async def user_data(self) -> dict | None:
        try:
            data = await read_json(self.store, USER_DATA_KEY)
        except CacheIOError:
            LOGGER.warning(f"Could not read user data: {traceback.format_exc()}")
            return None

        return data if isinstance(data, dict) else None
