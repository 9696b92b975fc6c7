from objects import Song, PLACEHOLDER_COVER

# Bundled with the app, shown when the device library can't be read in time.
FALLBACK_SONGS: tuple[Song, ...] = (
    Song(id="asset-1",
         title="Jowo",
         artist="Davido",
         duration_seconds=218,
         source_locator="assets/music/Davido_-_Jowo__Official_Video_(128k).m4a",
         cover_locator=PLACEHOLDER_COVER,
         is_fallback_asset=True),
    Song(id="asset-2",
         title="You Wanna Bamba",
         artist="Goya Menor",
         duration_seconds=187,
         source_locator="assets/music/Goya_Menor_&_Nektunez_–_Ameno_Amapiano_Remix_(You_Wanna_Bamba)_[Official_Video](256k).mp3",
         cover_locator=PLACEHOLDER_COVER,
         is_fallback_asset=True),
    Song(id="asset-3",
         title="Fathermoh ft Odi wa Muranga",
         artist="Kwa Bar",
         duration_seconds=242,
         source_locator="assets/music/Kwa_Bar_by_Odi_Wa_Muranga_ft._Fathermoh_&_Harry_Craze(256k).mp3",
         cover_locator=PLACEHOLDER_COVER,
         is_fallback_asset=True),
)
