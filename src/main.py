import sys
import os

if "-t" in sys.argv or "--test" in sys.argv:
    os.environ["TEST_MODE"] = "true"


import logging
from logger import setup_logging, parse_level

log_level = logging.INFO
if "-ll" in sys.argv:
    idx = sys.argv.index("-ll") + 1
    if idx >= len(sys.argv): raise ValueError("Expected log level value after -ll, one of ([d]ebug, [i]nfo, [w]arning, [e]rror).")
    log_level = parse_level(sys.argv[idx])
setup_logging(console_level=log_level)

LOGGER = logging.getLogger(__name__)
import traceback

if os.getenv("TEST_MODE"):
    LOGGER.info("Test mode initiated, using test DB.")

import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import LoaderSettings, music_dir, spotify_credentials
from db import get_db_manager
from store import MemoryStore, SqlStore
from library.media import FolderMediaSource, FolderPermission
from library.loader import CatalogLoader
from catalog.tokens import TokenCache
from catalog.client import CatalogClient
from playback.session import format_time


def _arg_value(flag: str) -> str | None:
    if flag not in sys.argv:
        return None

    idx = sys.argv.index(flag) + 1
    if idx >= len(sys.argv): raise ValueError(f"Expected a value after {flag}.")
    return sys.argv[idx]


def print_alert(title: str, message: str):
    print(f"[{title}] {message}")


def print_library(loader: CatalogLoader):
    source = "bundled songs" if loader.using_fallback else "device"
    print(f"{len(loader.songs)} songs ({source}, {loader.phase.value}):")
    for i, song in enumerate(loader.songs, start=1):
        print(f"{i:>4}. {song.artist} - {song.title} ({format_time(song.duration_seconds * 1000)})")


async def refresh_library(loader: CatalogLoader):
    if await loader.refresh(background=True):
        print_library(loader)


async def print_catalog(client: CatalogClient):
    print("Featured playlists:")
    for playlist in await client.featured_playlists():
        print(f"  {playlist.name} ({playlist.songs} songs, by {playlist.owner})")

    print("Top artists:")
    for artist in await client.top_artists():
        print(f"  {artist.name} ({artist.genre})")


async def main():
    LOGGER.info("=== Music Library Starting ===")
    LOGGER.info(f"Python PID: {os.getpid()}")

    root = _arg_value("--dir") or music_dir()
    settings = LoaderSettings.from_env()
    in_memory = "--memory" in sys.argv

    if in_memory:
        LOGGER.info("Using an in-memory store, nothing will be persisted.")
        store = MemoryStore()
    else:
        await get_db_manager().initialize()
        store = SqlStore()

    loader = CatalogLoader(store, FolderMediaSource(root), FolderPermission(root),
                           settings=settings, on_alert=print_alert)
    scheduler = None
    try:
        await loader.load_initial()
        await loader.hydrated()
        while loader.has_more and await loader.load_more():
            pass
        print_library(loader)

        if "--catalog" in sys.argv:
            credentials = spotify_credentials()
            if credentials is None:
                LOGGER.warning("SPOTIFY_CLIENT_ID/SPOTIFY_CLIENT_SECRET not set, catalog shows placeholders.")
            await print_catalog(CatalogClient(TokenCache(store, *credentials) if credentials else None))

        if "--watch" in sys.argv:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(refresh_library, 'interval',
                              seconds=settings.min_refresh_interval_ms / 1000, args=(loader,))
            scheduler.start()

            LOGGER.info(f"Watching '{root}', refreshing every {settings.min_refresh_interval_ms // 1000}s.")
            await asyncio.Event().wait()
    except Exception:
        LOGGER.error(f"Main loop error: {traceback.format_exc()}")
    finally:
        if scheduler:
            scheduler.shutdown()

        await loader.close()
        if not in_memory:
            await get_db_manager().cleanup()

if __name__ == "__main__":
    asyncio.run(main())
