import pytest
import asyncio
import json
from hypothesis import given, settings, strategies as st

from config import LoaderSettings
from errors import PermissionDenied, EnumerationError
from objects import LoaderState, PLACEHOLDER_ARTIST
from store import MemoryStore, DEVICE_SONGS_KEY, CACHE_TIMESTAMP_KEY
from library.loader import CatalogLoader, song_from_asset
from library.fallback import FALLBACK_SONGS

from tests.mocks.library import (
    FakeMediaSource, FakePermission, FakeClock,
    make_assets, seed_cache, settle, FAST_SETTINGS
)
from tests.strategies.songs import song_list_strat

CACHE_TTL = 30 * 60 * 1000
MINUTE = 60 * 1000


def device_ids(n: int) -> list[str]:
    return [f"dev-{i}" for i in range(n)]


@given(age_ms=st.integers(min_value=0, max_value=CACHE_TTL - 1),
       songs=song_list_strat(min_size=1, max_size=60))
@settings(max_examples=25, deadline=None)
async def test_fresh_cache_never_touches_device(age_ms, songs):
    """Cache younger than the TTL: Success from cached data, no enumeration call."""
    store, clock, media = MemoryStore(), FakeClock(), FakeMediaSource(make_assets(5))
    seed_cache(store, songs, clock.now - age_ms)

    loader = CatalogLoader(store, media, FakePermission(), settings=FAST_SETTINGS, clock=clock)
    try:
        assert await loader.load_initial() == LoaderState.SUCCESS
        assert loader.songs == songs[:20]
        assert not loader.using_fallback

        await settle(0.05)
        assert media.calls == []
    finally:
        await loader.close()


@pytest.mark.parametrize("age_ms", [None, CACHE_TTL, CACHE_TTL + 1, 3 * 24 * 60 * MINUTE])
async def test_stale_or_missing_cache_enumerates_once(age_ms, store, clock, make_loader):
    if age_ms is not None:
        seed_cache(store, [song_from_asset(a) for a in make_assets(3, start=100)], clock.now - age_ms)
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)

    assert await loader.load_initial() == LoaderState.SUCCESS
    await settle()

    assert media.calls == [(20, None)]
    assert [s.id for s in loader.songs] == device_ids(5)
    assert not loader.using_fallback


async def test_hanging_empty_device_shows_bundled_songs(make_loader):
    media = FakeMediaSource([], hang=True)
    loader = make_loader(media)

    task = asyncio.create_task(loader.load_initial())
    await asyncio.sleep(0.05)
    assert loader.phase == LoaderState.LOADING
    assert loader.songs == []

    await asyncio.sleep(FAST_SETTINGS.loading_timeout)
    assert loader.phase == LoaderState.SUCCESS
    assert loader.using_fallback
    assert len(loader.songs) == 3
    assert (loader.songs[0].title, loader.songs[0].artist) == ("Jowo", "Davido")
    assert all(s.is_fallback_asset for s in loader.songs)

    media.release()
    await task


async def test_late_device_batch_replaces_bundled_songs(make_loader):
    media = FakeMediaSource(make_assets(7), hang=True)
    loader = make_loader(media)

    task = asyncio.create_task(loader.load_initial())
    await asyncio.sleep(FAST_SETTINGS.loading_timeout + 0.05)
    assert loader.using_fallback

    media.release()
    assert await task == LoaderState.SUCCESS

    assert [s.id for s in loader.songs] == device_ids(7)
    assert not loader.using_fallback
    assert not any(s.is_fallback_asset for s in loader.songs)


async def test_late_empty_device_result_keeps_bundled_songs(make_loader):
    media = FakeMediaSource([], hang=True)
    loader = make_loader(media)

    task = asyncio.create_task(loader.load_initial())
    await asyncio.sleep(FAST_SETTINGS.loading_timeout + 0.05)

    media.release()
    await task

    assert loader.phase == LoaderState.SUCCESS
    assert loader.using_fallback
    assert loader.songs == list(FALLBACK_SONGS)


async def test_empty_device_substitutes_fallback_right_away(make_loader):
    loader = make_loader(FakeMediaSource([]))

    assert await loader.load_initial() == LoaderState.SUCCESS
    assert loader.using_fallback
    assert len(loader.songs) == 3
    assert not loader.watchdog_armed


async def test_load_more_noop_without_more(make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    await loader.load_initial()
    assert not loader.has_more

    assert not await loader.load_more()
    assert len(loader.songs) == 5
    assert len(media.calls) == 1


async def test_load_more_noop_with_fallback(make_loader):
    media = FakeMediaSource(make_assets(40), hang=True)
    loader = make_loader(media)

    task = asyncio.create_task(loader.load_initial())
    await asyncio.sleep(FAST_SETTINGS.loading_timeout + 0.05)
    assert loader.using_fallback and loader.has_more

    assert not await loader.load_more()
    assert len(loader.songs) == 3
    assert len(media.calls) == 1

    media.release()
    await task


async def test_load_more_noop_while_loading(make_loader):
    media = FakeMediaSource(make_assets(30))
    loader = make_loader(media)
    await loader.load_initial()
    assert len(loader.songs) == 20

    media.delay = 0.05
    first = asyncio.create_task(loader.load_more())
    await asyncio.sleep(0)
    assert loader.loading_more

    assert not await loader.load_more()
    assert len(loader.songs) == 20

    assert await first
    assert [s.id for s in loader.songs] == device_ids(30)
    assert media.calls == [(20, None), (50, "dev-19")]


async def test_pagination_keeps_device_order_and_checkpoints_cache(store, make_loader):
    media = FakeMediaSource(make_assets(130))
    loader = make_loader(media)

    await loader.load_initial()
    while await loader.load_more():
        pass
    await settle()

    assert [s.id for s in loader.songs] == device_ids(130)
    assert not loader.has_more
    assert [size for size, _ in media.calls] == [20, 50, 50, 50]

    cached = json.loads(store.data[DEVICE_SONGS_KEY])
    assert [s["id"] for s in cached] == device_ids(130)


async def test_cache_not_rewritten_below_checkpoint(store, make_loader):
    loader = make_loader(FakeMediaSource(make_assets(60)))

    await loader.load_initial()
    await loader.load_more()
    await settle()

    assert len(loader.songs) == 60
    assert len(json.loads(store.data[DEVICE_SONGS_KEY])) == 20
    assert store.writes == [DEVICE_SONGS_KEY, CACHE_TIMESTAMP_KEY]


@given(songs=song_list_strat(min_size=1, max_size=120))
@settings(max_examples=15, deadline=None)
async def test_cache_round_trip(songs):
    """Cold load within the TTL shows the first 20 cached songs, then all of them in order."""
    store, clock, media = MemoryStore(), FakeClock(), FakeMediaSource()
    seed_cache(store, songs, clock.now - MINUTE)

    loader = CatalogLoader(store, media, FakePermission(), settings=FAST_SETTINGS, clock=clock)
    try:
        await loader.load_initial()
        assert loader.songs == songs[:20]

        await settle()
        assert loader.songs == songs
        assert media.calls == []
    finally:
        await loader.close()


async def test_large_fresh_cache_hydrates_without_device(store, clock, make_loader):
    songs = [song_from_asset(a) for a in make_assets(150)]
    seed_cache(store, songs, clock.now - 10 * MINUTE)
    media = FakeMediaSource(make_assets(3))
    loader = make_loader(media, LoaderSettings(hydrate_delay=0.3))

    await loader.load_initial()
    assert loader.phase == LoaderState.SUCCESS
    assert loader.songs == songs[:20]

    await asyncio.sleep(0.4)
    assert loader.songs == songs
    assert media.calls == []


async def test_stale_device_refresh_runs_in_background(store, clock, alerts, make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    clock.advance(6 * MINUTE)
    seed_cache(store, [song_from_asset(a) for a in make_assets(3, start=50)], clock.now - MINUTE)

    await loader.load_initial()
    assert [s.id for s in loader.songs] == ["dev-50", "dev-51", "dev-52"]

    await settle()
    assert media.calls == [(20, None)]
    assert [s.id for s in loader.songs] == device_ids(5)
    assert loader.last_device_refresh_at == clock.now
    assert alerts == []


async def test_hydration_never_overwrites_refreshed_songs(store, clock, make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media, LoaderSettings(loading_timeout=0.2, hydrate_delay=0.15, refresh_delay=0.01))
    clock.advance(6 * MINUTE)
    seed_cache(store, [song_from_asset(a) for a in make_assets(40, start=100)], clock.now - MINUTE)

    await loader.load_initial()
    await asyncio.sleep(0.3)

    assert [s.id for s in loader.songs] == device_ids(5)


async def test_permission_denied_alerts_then_falls_back(permission, alerts, make_loader):
    permission.granted = False
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)

    assert await loader.load_initial() == LoaderState.ERROR
    assert isinstance(loader.error, PermissionDenied)
    assert alerts == [("Permission Error", "Unable to access your music files. Please grant storage permissions.")]
    assert media.calls == []

    await asyncio.sleep(FAST_SETTINGS.loading_timeout + 0.05)
    assert loader.phase == LoaderState.SUCCESS
    assert loader.using_fallback


async def test_enumeration_failure_is_retryable(make_loader):
    media = FakeMediaSource(make_assets(5), fail=True)
    loader = make_loader(media)

    assert await loader.load_initial() == LoaderState.ERROR
    assert isinstance(loader.error, EnumerationError)
    assert loader.watchdog_armed

    media.fail = False
    assert await loader.load_initial() == LoaderState.SUCCESS
    assert [s.id for s in loader.songs] == device_ids(5)
    assert loader.error is None


async def test_substitute_fallback_from_error(make_loader):
    loader = make_loader(FakeMediaSource(fail=True))
    await loader.load_initial()

    assert loader.substitute_fallback()
    assert loader.phase == LoaderState.SUCCESS
    assert loader.songs == list(FALLBACK_SONGS)
    assert not loader.watchdog_armed


async def test_substitute_fallback_keeps_device_songs(make_loader):
    loader = make_loader(FakeMediaSource(make_assets(4)))
    await loader.load_initial()

    assert not loader.substitute_fallback()
    assert [s.id for s in loader.songs] == device_ids(4)
    assert not loader.using_fallback


async def test_unreadable_cache_is_a_miss(store, clock, make_loader):
    store.data[CACHE_TIMESTAMP_KEY] = str(clock.now)
    store.data[DEVICE_SONGS_KEY] = "{not json"
    media = FakeMediaSource(make_assets(2))
    loader = make_loader(media)

    assert await loader.load_initial() == LoaderState.SUCCESS
    assert len(media.calls) == 1


async def test_store_failures_never_surface(store, make_loader):
    store.fail_reads = True
    store.fail_writes = True
    media = FakeMediaSource(make_assets(3))
    loader = make_loader(media)

    assert await loader.load_initial() == LoaderState.SUCCESS
    await settle()
    assert [s.id for s in loader.songs] == device_ids(3)
    assert store.data == {}


async def test_refresh_failure_keeps_list_and_alerts(clock, alerts, make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    await loader.load_initial()

    media.fail = True
    clock.advance(MINUTE)
    assert not await loader.refresh()

    assert loader.phase == LoaderState.SUCCESS
    assert [s.id for s in loader.songs] == device_ids(5)
    assert alerts == [("Error", "Failed to load songs from device")]
    assert loader.last_device_refresh_at == clock.now


async def test_refresh_replaces_list_from_the_start(make_loader):
    media = FakeMediaSource(make_assets(30))
    loader = make_loader(media)
    await loader.load_initial()
    await loader.load_more()

    media.assets = make_assets(25, start=500)
    assert await loader.refresh()

    assert [s.id for s in loader.songs] == [f"dev-{i}" for i in range(500, 520)]
    assert loader.has_more
    assert media.calls[-1] == (20, None)


async def test_concurrent_refresh_is_dropped(make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    await loader.load_initial()

    media.delay = 0.05
    first = asyncio.create_task(loader.refresh())
    await asyncio.sleep(0)

    assert not await loader.refresh()
    assert await first
    assert len(media.calls) == 2


async def test_focus_reload_is_debounced(clock, make_loader):
    loader = make_loader(FakeMediaSource(make_assets(3)))
    await loader.load_initial()

    assert not await loader.on_focus()

    clock.advance(FAST_SETTINGS.focus_debounce_ms + 1)
    assert await loader.on_focus()
    assert loader.phase == LoaderState.SUCCESS


async def test_close_cancels_watchdog(make_loader):
    media = FakeMediaSource([], hang=True)
    loader = make_loader(media)

    task = asyncio.create_task(loader.load_initial())
    await asyncio.sleep(0.05)
    await loader.close()

    await asyncio.sleep(FAST_SETTINGS.loading_timeout + 0.05)
    assert loader.phase == LoaderState.LOADING
    assert loader.songs == []

    media.release()
    await task
    assert loader.songs == []


async def test_listeners_see_every_phase(make_loader):
    loader = make_loader(FakeMediaSource(make_assets(2)))
    phases = []
    unsubscribe = loader.subscribe(lambda l: phases.append(l.phase))

    await loader.load_initial()
    unsubscribe()

    assert phases[0] == LoaderState.LOADING
    assert phases[-1] == LoaderState.SUCCESS


def test_asset_mapping_uses_stem_and_placeholders():
    asset = make_assets(2)[1]
    song = song_from_asset(asset)

    assert song.title == "Track 1"
    assert song.artist == PLACEHOLDER_ARTIST
    assert song.source_locator == asset.uri
    assert not song.is_fallback_asset
    assert song.created_at == asset.creation_time


async def test_focus_reload_keeps_paged_list_over_smaller_cache(store, clock, make_loader):
    media = FakeMediaSource(make_assets(100))
    loader = make_loader(media)
    await loader.load_initial()
    await loader.load_more()
    await settle()
    assert len(json.loads(store.data[DEVICE_SONGS_KEY])) == 20

    clock.advance(FAST_SETTINGS.focus_debounce_ms + 1)
    assert await loader.on_focus()

    assert loader.phase == LoaderState.SUCCESS
    assert [s.id for s in loader.songs] == device_ids(70)
    assert loader.has_more and loader.cursor == "dev-69"
    assert await loader.load_more()
    assert [s.id for s in loader.songs] == device_ids(100)
    assert media.calls == [(20, None), (50, "dev-19"), (50, "dev-69")]


async def test_hydrated_waits_for_full_cached_list(store, clock, make_loader):
    songs = [song_from_asset(a) for a in make_assets(150)]
    seed_cache(store, songs, clock.now - MINUTE)
    loader = make_loader(FakeMediaSource())

    await loader.load_initial()
    assert len(loader.songs) == 20

    await loader.hydrated()
    assert loader.songs == songs


async def test_failed_page_reports_nothing_loaded(make_loader):
    media = FakeMediaSource(make_assets(30))
    loader = make_loader(media)
    await loader.load_initial()

    media.fail = True
    assert not await loader.load_more()
    assert isinstance(loader.error, EnumerationError)
    assert loader.phase == LoaderState.SUCCESS
    assert loader.has_more and loader.cursor == "dev-19"
    assert len(loader.songs) == 20

    media.fail = False
    assert await loader.load_more()
    assert [s.id for s in loader.songs] == device_ids(30)


async def test_refresh_of_emptied_device_never_shows_empty_list(make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    await loader.load_initial()

    seen = []
    loader.subscribe(lambda l: seen.append((l.phase, len(l.songs))))
    media.assets = []
    assert await loader.refresh()

    assert seen
    assert all(count > 0 for _, count in seen)
    assert loader.phase == LoaderState.SUCCESS
    assert loader.using_fallback
    assert loader.songs == list(FALLBACK_SONGS)


async def test_refresh_of_emptied_device_clears_cache(store, make_loader):
    media = FakeMediaSource(make_assets(5))
    loader = make_loader(media)
    await loader.load_initial()
    await settle()

    media.assets = []
    await loader.refresh()
    await settle()
    assert json.loads(store.data[DEVICE_SONGS_KEY]) == []

    fresh = FakeMediaSource(make_assets(2))
    again = make_loader(fresh)
    assert await again.load_initial() == LoaderState.SUCCESS
    assert fresh.calls == [(20, None)]
    assert [s.id for s in again.songs] == device_ids(2)
