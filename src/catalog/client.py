import asyncio
import traceback

import logging
LOGGER = logging.getLogger(__name__)

import spotipy
from spotipy.exceptions import SpotifyException

from errors import RemoteAPIError
from catalog import placeholders
from catalog.tokens import TokenCache
from catalog.mapping import (
    CatalogPlaylist, CatalogArtist, SearchResults,
    PlaylistDetails, ArtistDetails, AlbumDetails,
    playlist_from_item, playlist_details_from, top_artists_from_releases,
    search_results_from, artist_details_from, album_details_from
)

SEARCH_TYPES = "track,artist,album,playlist"
MARKET = "US"


class CatalogClient:
    """
    Read-only access to the remote music catalog.

    Nothing here raises to the caller: every failed request is logged and answered
    with placeholder data, so browse screens always have something to show.
    """

    def __init__(self, tokens: TokenCache | None, spotify_factory=spotipy.Spotify, requests_timeout: int = 10):
        self.tokens = tokens
        self.spotify_factory = spotify_factory
        self.requests_timeout = requests_timeout
        self._client = None
        self._client_token = None

    def _spotify(self, token: str):
        if self._client is None or token != self._client_token:
            self._client = self.spotify_factory(auth=token, requests_timeout=self.requests_timeout)
            self._client_token = token
        return self._client

    async def _call(self, method: str, *args, **kwargs):
        if self.tokens is None:
            raise RemoteAPIError("No catalog credentials configured.")

        sp = self._spotify(await self.tokens.access_token())
        try:
            return await asyncio.to_thread(getattr(sp, method), *args, **kwargs) or {}
        except SpotifyException as e:
            if e.http_status == 404:
                LOGGER.warning(f"Catalog resource not found: {method}{args}")
            raise RemoteAPIError(f"Catalog request '{method}' failed: {e.msg}", status=e.http_status) from e
        except Exception as e:
            raise RemoteAPIError(f"Catalog request '{method}' failed: {e}") from e

    async def featured_playlists(self, limit: int = 10) -> list[CatalogPlaylist]:
        try:
            data = await self._call("featured_playlists", limit=limit)
            playlists = [playlist_from_item(i) for i in (data.get("playlists") or {}).get("items") or [] if i]
            if playlists:
                return playlists[:limit]
            LOGGER.info("Catalog returned no featured playlists, using placeholders.")
        except RemoteAPIError:
            LOGGER.error(f"Error getting featured playlists: {traceback.format_exc()}")

        return placeholders.featured_playlists(limit)

    async def playlist_details(self, playlist_id: str) -> PlaylistDetails:
        if playlist_id.startswith("fallback_playlist_"):
            return placeholders.playlist_details(playlist_id)

        try:
            return playlist_details_from(await self._call("playlist", playlist_id), playlist_id)
        except RemoteAPIError:
            LOGGER.error(f"Error fetching playlist details for {playlist_id}: {traceback.format_exc()}")
            return placeholders.playlist_details(playlist_id)

    async def top_artists(self, limit: int = 10) -> list[CatalogArtist]:
        try:
            artists = top_artists_from_releases(await self._call("new_releases", limit=limit), limit)
            if artists:
                return artists
            LOGGER.info("No artists in new releases, using placeholders.")
        except RemoteAPIError:
            LOGGER.error(f"Error getting top artists: {traceback.format_exc()}")

        return placeholders.fallback_artists(limit)

    async def search(self, query: str, types: str = SEARCH_TYPES, limit: int = 20) -> SearchResults:
        if not query or not query.strip():
            return SearchResults()

        try:
            return search_results_from(await self._call("search", q=query.strip(), type=types, limit=limit))
        except RemoteAPIError:
            LOGGER.error(f"Error searching catalog for '{query}': {traceback.format_exc()}")
            return SearchResults()

    async def artist_details(self, artist_id: str) -> ArtistDetails:
        if artist_id.startswith("fallback_artist_"):
            return placeholders.artist_details(artist_id)

        try:
            artist, top_tracks, albums = await asyncio.gather(
                self._call("artist", artist_id),
                self._call("artist_top_tracks", artist_id, country=MARKET),
                self._call("artist_albums", artist_id, include_groups="album,single", limit=10)
            )
        except RemoteAPIError:
            LOGGER.error(f"Error fetching artist details for {artist_id}: {traceback.format_exc()}")
            return placeholders.artist_details(artist_id)

        return artist_details_from(artist, top_tracks, albums)

    async def album_details(self, album_id: str) -> AlbumDetails:
        if "fallback_artist_" in album_id:
            return placeholders.album_details(album_id)

        try:
            return album_details_from(await self._call("album", album_id))
        except RemoteAPIError:
            LOGGER.error(f"Error fetching album details for {album_id}: {traceback.format_exc()}")
            return placeholders.album_details(album_id)
