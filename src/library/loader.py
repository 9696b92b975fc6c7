import os
import json
import asyncio
import traceback
from typing import Callable

import logging
LOGGER = logging.getLogger(__name__)

from config import LoaderSettings
from errors import PermissionDenied, EnumerationError, CacheIOError
from objects import Song, CatalogPage, CacheRecord, LoaderState, now_ms, PLACEHOLDER_ARTIST, PLACEHOLDER_COVER
from store import KeyValueStore, DEVICE_SONGS_KEY, CACHE_TIMESTAMP_KEY, read_json
from library.media import MediaSource, PermissionGate, MediaAsset, AssetPage
from library.fallback import FALLBACK_SONGS


def song_from_asset(asset: MediaAsset) -> Song:
    return Song(id=asset.id,
                title=os.path.splitext(asset.filename)[0],
                artist=asset.artist or PLACEHOLDER_ARTIST,
                duration_seconds=asset.duration,
                source_locator=asset.uri,
                cover_locator=PLACEHOLDER_COVER,
                is_fallback_asset=False,
                created_at=asset.creation_time)


def to_catalog_page(page: AssetPage) -> CatalogPage:
    return CatalogPage(songs=tuple(song_from_asset(a) for a in page.assets),
                       next_cursor=page.end_cursor,
                       has_more=page.has_next_page)


class CatalogLoader:
    """
    Keeps the playable song list filled from, in order of preference, the persisted
    cache, the device's media library, and the bundled fallback songs.

    All methods run on one event loop. Concurrent triggers are not queued: a trigger
    that arrives while its guard is set is dropped. Timers (watchdog, cache hydration,
    background refresh) are tasks owned by the loader and die with `close()`.
    """

    def __init__(self, store: KeyValueStore, media: MediaSource, permissions: PermissionGate,
                 settings: LoaderSettings | None = None,
                 clock: Callable[[], int] = now_ms,
                 on_alert: Callable[[str, str], None] | None = None):
        self.store = store
        self.media = media
        self.permissions = permissions
        self.settings = settings or LoaderSettings()
        self.clock = clock
        self.on_alert = on_alert

        self.songs: list[Song] = []
        self.cursor: str | None = None
        self.has_more = True
        self.phase = LoaderState.IDLE
        self.using_fallback = False
        self.last_device_refresh_at = clock()
        self.error: Exception | None = None

        self._closed = False
        self._loading_initial = False
        self._loading_more = False
        self._device_busy = False  # One enumeration-and-cache cycle at a time.
        self._last_load_started_at: int | None = None
        self._generation = 0
        self._cache_seq = 0
        self._last_write: asyncio.Task | None = None
        self._watchdog: asyncio.Task | None = None
        self._hydration: asyncio.Task | None = None
        self._timers: set[asyncio.Task] = set()
        self._writes: set[asyncio.Task] = set()
        self._listeners: list[Callable[["CatalogLoader"], None]] = []

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    @property
    def watchdog_armed(self) -> bool:
        return self._watchdog is not None and not self._watchdog.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Callable[["CatalogLoader"], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                LOGGER.error(f"Loader listener failed: {traceback.format_exc()}")

    def _set_phase(self, phase: LoaderState):
        if phase != self.phase:
            LOGGER.debug(f"Loader phase {self.phase.value} -> {phase.value}.")
        self.phase = phase
        self._notify()

    def _alert(self, title: str, message: str):
        LOGGER.warning(f"{title}: {message}")
        if self.on_alert is not None:
            self.on_alert(title, message)

    def _schedule(self, delay: float, job: Callable, name: str) -> asyncio.Task:
        async def runner():
            await asyncio.sleep(delay)
            if self._closed:
                return
            try:
                await job()
            except Exception:
                LOGGER.error(f"Scheduled job '{name}' failed: {traceback.format_exc()}")

        task = asyncio.create_task(runner(), name=f"catalog-loader-{name}")
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    def _arm_watchdog(self):
        self._cancel_watchdog()

        async def expire():
            self._watchdog = None
            LOGGER.warning(f"No songs after {self.settings.loading_timeout}s, trying bundled songs.")
            self.substitute_fallback()

        self._watchdog = self._schedule(self.settings.loading_timeout, expire, "watchdog")

    def _cancel_watchdog(self):
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    async def _request_permission(self, alert: bool = True):
        try:
            granted = await self.permissions.request()
        except Exception:
            LOGGER.error(f"Permission request failed: {traceback.format_exc()}")
            granted = False

        if not granted:
            if alert:
                self._alert("Permission Error",
                            "Unable to access your music files. Please grant storage permissions.")
            raise PermissionDenied("Access to the media library was not granted.")

    async def _read_fresh_cache(self, now: int) -> CacheRecord | None:
        """Cached songs if present and younger than the TTL. Any read problem is a miss."""
        try:
            raw_timestamp = await self.store.get(CACHE_TIMESTAMP_KEY)
            if raw_timestamp is None:
                LOGGER.debug("No cached song list.")
                return None

            captured_at = int(raw_timestamp)
            if now - captured_at >= self.settings.cache_ttl_ms:
                LOGGER.info(f"Cached song list is {(now - captured_at) // 1000}s old, ignoring it.")
                return None

            data = await read_json(self.store, DEVICE_SONGS_KEY, default=[])
            songs = tuple(Song.from_dict(s) for s in data)
        except (CacheIOError, ValueError, KeyError, TypeError, AttributeError):
            LOGGER.warning(f"Song cache unreadable, treating as a miss: {traceback.format_exc()}")
            return None

        if not songs:
            return None
        return CacheRecord(songs=songs, captured_at=captured_at)

    def _persist(self, songs: list[Song]):
        """Fire-and-forget cache write. Writes run in order and a write that is no
           longer the newest snapshot is skipped."""
        self._cache_seq += 1
        seq = self._cache_seq
        captured_at = self.clock()
        previous = self._last_write

        async def write():
            if previous is not None:
                await asyncio.wait([previous])
            if seq != self._cache_seq:
                LOGGER.debug(f"Skipping cache snapshot {seq}, a newer one is queued.")
                return

            try:
                await self.store.set(DEVICE_SONGS_KEY, json.dumps([s.to_dict() for s in songs]))
                await self.store.set(CACHE_TIMESTAMP_KEY, str(captured_at))
                LOGGER.info(f"Cached {len(songs)} songs.")
            except CacheIOError:
                LOGGER.warning(f"Caching {len(songs)} songs failed: {traceback.format_exc()}")
            except Exception:
                LOGGER.error(f"Unexpected error caching songs: {traceback.format_exc()}")

        task = asyncio.create_task(write(), name=f"catalog-loader-cache-{seq}")
        self._last_write = task
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    def _fail(self, error: Exception):
        self.error = error
        if self.using_fallback:
            LOGGER.info("Load failed but bundled songs are already shown.")
            return
        self._set_phase(LoaderState.ERROR)

    async def load_initial(self) -> LoaderState:
        if self._closed:
            return self.phase
        if self._loading_initial:
            LOGGER.debug("Initial load already running, dropping trigger.")
            return self.phase

        self._loading_initial = True
        self._last_load_started_at = self.clock()
        self.error = None
        self._set_phase(LoaderState.LOADING)
        self._arm_watchdog()

        try:
            now = self.clock()
            cached = await self._read_fresh_cache(now)
            if self._closed:
                return self.phase

            if cached is not None:
                self._serve_cache(cached, now)
            else:
                await self._load_from_device()
        finally:
            self._loading_initial = False

        return self.phase

    def _serve_cache(self, cached: CacheRecord, now: int):
        self._cancel_watchdog()

        if self.songs and not self.using_fallback and len(self.songs) >= len(cached.songs):
            LOGGER.info(f"Showing {len(self.songs)} songs already, keeping them over "
                        f"{len(cached.songs)} cached ones.")
            self._set_phase(LoaderState.SUCCESS)
            self._schedule_background_refresh(now)
            return

        LOGGER.info(f"Serving {len(cached.songs)} cached songs ({cached.age(now) // 1000}s old).")
        self.songs = list(cached.songs[:self.settings.initial_batch_size])
        self.using_fallback = False
        self.cursor = None
        self.has_more = False  # The cache is a complete snapshot; a refresh re-enables paging.
        self._set_phase(LoaderState.SUCCESS)

        generation = self._generation
        async def hydrate():
            if generation != self._generation or self.using_fallback:
                LOGGER.debug("Song list changed since the cache was served, not hydrating.")
                return
            self.songs = list(cached.songs)
            self._notify()

        if len(cached.songs) > len(self.songs):
            self._hydration = self._schedule(self.settings.hydrate_delay, hydrate, "hydrate")

        self._schedule_background_refresh(now)

    def _schedule_background_refresh(self, now: int):
        if now - self.last_device_refresh_at > self.settings.min_refresh_interval_ms:
            self.last_device_refresh_at = now
            self._schedule(self.settings.refresh_delay,
                           lambda: self.refresh(background=True), "background-refresh")
        else:
            LOGGER.debug("Device refreshed recently, skipping background refresh.")

    async def _load_from_device(self):
        try:
            await self._request_permission()
        except PermissionDenied as e:
            self._fail(e)
            return

        if self._device_busy:
            LOGGER.info("Device enumeration already running, leaving it to finish.")
            if self.songs:
                self._cancel_watchdog()
                self._set_phase(LoaderState.SUCCESS)
            return

        self._device_busy = True
        try:
            await self.load_batch(None, self.settings.initial_batch_size)
        except EnumerationError as e:
            LOGGER.error(f"Loading songs from device failed: {traceback.format_exc()}")
            self._fail(e)
            return
        finally:
            self._device_busy = False

        if self._closed:
            return

        self._cancel_watchdog()
        self._set_phase(LoaderState.SUCCESS)

    async def hydrated(self):
        """Wait until a served cache has been shown in full, or its hydration dropped."""
        if self._hydration is not None:
            await asyncio.gather(self._hydration, return_exceptions=True)

    async def load_batch(self, cursor: str | None, size: int) -> bool:
        """
        Append up to `size` device songs after `cursor` and return whether more remain.

        A batch starting from the beginning (cursor None) or landing while the bundled
        songs are shown replaces the list instead of extending it. A replacing batch that
        is empty puts the bundled songs in place, so listeners never see an empty list,
        and clears the cache.
        """
        generation = self._generation
        try:
            page = await self.media.list_audio(first=size, after=cursor)
        except EnumerationError:
            raise
        except Exception as e:
            raise EnumerationError(f"Listing {size} songs after '{cursor}' failed: {e}") from e

        if self._closed or generation != self._generation:
            LOGGER.debug("Dropping batch from a superseded enumeration.")
            return self.has_more

        batch = to_catalog_page(page)
        replace = self.using_fallback or cursor is None
        previous = 0 if replace else len(self.songs)

        if not replace:
            self.songs = self.songs + list(batch.songs)
        elif batch.songs:
            self.songs = list(batch.songs)
            self.using_fallback = False
        else:
            LOGGER.info(f"Device has no audio files, showing {len(FALLBACK_SONGS)} bundled songs.")
            self.songs = list(FALLBACK_SONGS)
            self.using_fallback = True

        self.cursor = batch.next_cursor
        self.has_more = batch.has_more
        LOGGER.debug(f"Loaded {len(batch.songs)} songs ({len(self.songs)} total, more: {self.has_more}).")

        total = previous + len(batch.songs)
        if not batch.songs:
            if cursor is None:
                self._persist([])  # An empty cache reads as a miss.
        elif previous == 0 or total >= self.settings.cache_checkpoint:
            self._persist(list(self.songs))

        self._notify()
        return self.has_more

    async def load_more(self) -> bool:
        """Load the next page and return whether it arrived. Returns False without doing
           anything when there is nothing to load or something else is loading."""
        if (self._closed or not self.has_more or self._loading_more or self._device_busy
                or self.phase == LoaderState.LOADING or self.using_fallback):
            return False

        self._loading_more = True
        self._device_busy = True
        self._notify()
        try:
            await self.load_batch(self.cursor, self.settings.batch_size)
        except EnumerationError as e:
            LOGGER.error(f"Loading more songs failed: {traceback.format_exc()}")
            self.error = e
            return False
        finally:
            self._loading_more = False
            self._device_busy = False
            self._notify()

        return True

    async def refresh(self, background: bool = False) -> bool:
        """
        Re-enumerate the device from the start. The current list stays visible until
        the first new batch replaces it. Failures never change the phase; in the
        foreground they raise an alert, in the background they are only logged.
        """
        if self._closed:
            return False
        if self._device_busy:
            LOGGER.debug("Device enumeration already running, dropping refresh.")
            return False

        self._device_busy = True
        try:
            try:
                await self._request_permission(alert=not background)
            except PermissionDenied as e:
                self.error = e
                return False

            previous_cursor, previous_has_more = self.cursor, self.has_more
            self._generation += 1
            self.cursor = None
            self.has_more = True
            self._arm_watchdog()

            try:
                await self.load_batch(None, self.settings.initial_batch_size)
            except EnumerationError as e:
                LOGGER.error(f"Refreshing songs from device failed: {traceback.format_exc()}")
                self.cursor, self.has_more = previous_cursor, previous_has_more
                self.error = e
                if not background:
                    self._alert("Error", "Failed to load songs from device")
                return False
            finally:
                self.last_device_refresh_at = self.clock()

            if self._closed:
                return False

            self._cancel_watchdog()
            self.error = None
            self._set_phase(LoaderState.SUCCESS)
            return True
        finally:
            self._device_busy = False

    def substitute_fallback(self) -> bool:
        """Show the bundled songs unless real songs are already shown."""
        if self._closed:
            return False
        if self.songs and not self.using_fallback:
            LOGGER.debug("Real songs already shown, not substituting bundled songs.")
            return False

        self._cancel_watchdog()
        LOGGER.info(f"Showing {len(FALLBACK_SONGS)} bundled songs.")
        self.songs = list(FALLBACK_SONGS)
        self.using_fallback = True
        self._set_phase(LoaderState.SUCCESS)
        return True

    async def on_focus(self) -> bool:
        """Screen came into view. Reloads unless a load is running or started very recently."""
        if self._closed or self._loading_initial or self._device_busy:
            return False

        now = self.clock()
        if (self._last_load_started_at is not None
                and now - self._last_load_started_at < self.settings.focus_debounce_ms):
            LOGGER.debug("Focus reload suppressed, last load just started.")
            return False

        await self.load_initial()
        return True

    async def close(self):
        """Drop every pending timer and wait for queued cache writes."""
        self._closed = True
        self._cancel_watchdog()

        timers = list(self._timers)
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        await asyncio.gather(*list(self._writes), return_exceptions=True)

        self._listeners.clear()
        LOGGER.debug("Catalog loader closed.")
