import asyncio
import traceback
from typing import Callable

import logging
LOGGER = logging.getLogger(__name__)

from spotipy.oauth2 import SpotifyClientCredentials
from spotipy.cache_handler import MemoryCacheHandler

from errors import CacheIOError, RemoteAPIError
from objects import now_ms
from store import KeyValueStore, SPOTIFY_TOKEN_KEY, read_json, write_json

EXPIRY_BUFFER_MS = 60_000
DEFAULT_LIFETIME_MS = 3_600_000


class TokenCache:
    """
    Client-credentials access token, persisted under `spotifyToken` as
    {"access_token": ..., "expiresAt": <epoch ms>} so restarts reuse it.
    A stored token is used while it has more than a minute left.
    """

    def __init__(self, store: KeyValueStore, client_id: str, client_secret: str,
                 clock: Callable[[], int] = now_ms,
                 credentials_factory=SpotifyClientCredentials):
        self.store = store
        self.clock = clock
        self._cache_handler = MemoryCacheHandler()
        self._credentials = credentials_factory(client_id=client_id,
                                                client_secret=client_secret,
                                                cache_handler=self._cache_handler)
        self._lock = asyncio.Lock()

    async def _stored_token(self) -> str | None:
        try:
            data = await read_json(self.store, SPOTIFY_TOKEN_KEY)
        except CacheIOError:
            LOGGER.warning(f"Stored catalog token unreadable: {traceback.format_exc()}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            return None

        expires_at = data.get("expiresAt")
        if not isinstance(expires_at, (int, float)) or expires_at <= self.clock() + EXPIRY_BUFFER_MS:
            LOGGER.debug("Stored catalog token expired or about to.")
            return None

        return data["access_token"]

    async def access_token(self) -> str:
        async with self._lock:
            if token := await self._stored_token():
                return token

            LOGGER.info("Requesting a new catalog access token.")
            requested_at = self.clock()
            try:
                token = await asyncio.to_thread(self._credentials.get_access_token,
                                                as_dict=False, check_cache=False)
            except Exception as e:
                raise RemoteAPIError(f"Could not get a catalog access token: {e}") from e

            token_info = self._cache_handler.get_cached_token() or {}
            if isinstance(token_info.get("expires_at"), (int, float)):
                expires_at = int(token_info["expires_at"] * 1000)
            else:
                expires_at = requested_at + DEFAULT_LIFETIME_MS

            try:
                await write_json(self.store, SPOTIFY_TOKEN_KEY, {"access_token": token, "expiresAt": expires_at})
            except CacheIOError:
                LOGGER.warning(f"Could not persist catalog token: {traceback.format_exc()}")

            return token
