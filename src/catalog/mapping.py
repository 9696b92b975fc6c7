from dataclasses import dataclass, field
from datetime import datetime, timezone

from objects import PLACEHOLDER_ARTIST

UNKNOWN_TRACK = "Unknown Track"
NO_DURATION = "0:00"
TRACK_COVER = "https://placehold.co/300x300/8A2BE2/FFF?text=Track"
PLAYLIST_COVER = "https://placehold.co/300x300/8A2BE2/FFF?text=Playlist"


def ms_to_min_sec(ms: int | float | None) -> str:
    if not isinstance(ms, (int, float)) or ms < 0:
        return NO_DURATION
    total_seconds = int(ms // 1000)
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def _first_image(item: dict | None) -> str | None:
    images = (item or {}).get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


def _artist_names(item: dict | None) -> str:
    names = [a.get("name") for a in (item or {}).get("artists") or [] if a and a.get("name")]
    return ", ".join(names) or PLACEHOLDER_ARTIST


@dataclass
class CatalogTrack:
    id: str
    title: str
    artist: str = PLACEHOLDER_ARTIST
    album: str | None = None
    duration: str = NO_DURATION
    cover: str | None = None
    uri: str = ""
    preview_url: str = ""
    popularity: int | None = None
    track_number: int | None = None


@dataclass
class CatalogArtist:
    id: str
    name: str
    genre: str = "Unknown"
    image: str | None = None
    popularity: int | None = None
    uri: str | None = None


@dataclass
class CatalogAlbum:
    id: str
    name: str
    artist: str = PLACEHOLDER_ARTIST
    cover: str | None = None
    release_date: str | None = None
    total_tracks: int = 0
    uri: str | None = None


@dataclass
class CatalogPlaylist:
    id: str
    name: str
    description: str = ""
    songs: int = 0
    cover: str | None = None
    owner: str = "Unknown"
    is_public: bool = True
    uri: str | None = None


@dataclass
class PlaylistDetails:
    id: str
    name: str
    description: str
    cover_image: str
    songs: list[CatalogTrack]
    owner: str = "Unknown"
    is_public: bool = True
    created_at: str | None = None


@dataclass
class ArtistDetails:
    id: str
    name: str
    genres: list[str] = field(default_factory=list)
    popularity: int | None = None
    followers: int | None = None
    image: str | None = None
    top_tracks: list[CatalogTrack] = field(default_factory=list)
    albums: list[CatalogAlbum] = field(default_factory=list)


@dataclass
class AlbumDetails:
    id: str
    name: str
    artist: str = PLACEHOLDER_ARTIST
    artist_id: str | None = None
    release_date: str | None = None
    total_tracks: int = 0
    popularity: int | None = None
    cover: str | None = None
    genres: list[str] = field(default_factory=list)
    tracks: list[CatalogTrack] = field(default_factory=list)
    uri: str | None = None


@dataclass
class SearchResults:
    tracks: list[CatalogTrack] = field(default_factory=list)
    artists: list[CatalogArtist] = field(default_factory=list)
    albums: list[CatalogAlbum] = field(default_factory=list)
    playlists: list[CatalogPlaylist] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.tracks or self.artists or self.albums or self.playlists)


def track_from_item(track: dict | None, fallback_id: str) -> CatalogTrack:
    track = track or {}
    album = track.get("album") or {}

    return CatalogTrack(id=track.get("id") or fallback_id,
                        title=track.get("name") or UNKNOWN_TRACK,
                        artist=_artist_names(track),
                        album=album.get("name"),
                        duration=ms_to_min_sec(track.get("duration_ms")),
                        cover=_first_image(album) or TRACK_COVER,
                        uri=track.get("uri") or "",
                        preview_url=track.get("preview_url") or "",
                        popularity=track.get("popularity"),
                        track_number=track.get("track_number"))


def artist_from_item(artist: dict) -> CatalogArtist:
    genres = artist.get("genres") or []
    return CatalogArtist(id=artist.get("id") or "",
                         name=artist.get("name") or PLACEHOLDER_ARTIST,
                         genre=genres[0] if genres else "Unknown",
                         image=_first_image(artist),
                         popularity=artist.get("popularity"),
                         uri=artist.get("uri"))


def album_from_item(album: dict) -> CatalogAlbum:
    return CatalogAlbum(id=album.get("id") or "",
                        name=album.get("name") or "Unknown Album",
                        artist=_artist_names(album),
                        cover=_first_image(album),
                        release_date=album.get("release_date"),
                        total_tracks=album.get("total_tracks") or 0,
                        uri=album.get("uri"))


def playlist_from_item(item: dict) -> CatalogPlaylist:
    return CatalogPlaylist(id=item.get("id") or "",
                           name=item.get("name") or "Playlist",
                           description=item.get("description") or "",
                           songs=(item.get("tracks") or {}).get("total") or 0,
                           cover=_first_image(item),
                           owner=(item.get("owner") or {}).get("display_name") or "Unknown",
                           is_public=item.get("public") is not False,
                           uri=item.get("uri"))


def playlist_details_from(data: dict, playlist_id: str) -> PlaylistDetails:
    items = (data.get("tracks") or {}).get("items") or []
    tracks = [track_from_item((item or {}).get("track"), f"track_{playlist_id}_{i}")
              for i, item in enumerate(items)]

    return PlaylistDetails(id=data.get("id") or playlist_id,
                           name=data.get("name") or "Playlist",
                           description=data.get("description") or "",
                           cover_image=_first_image(data) or PLAYLIST_COVER,
                           songs=tracks,
                           owner=(data.get("owner") or {}).get("display_name") or "Unknown",
                           is_public=data.get("public") is not False,
                           created_at=datetime.now(timezone.utc).isoformat() if data.get("followers") else None)


def top_artists_from_releases(data: dict, limit: int) -> list[CatalogArtist]:
    """First artist of each new release, deduplicated by id, in release order."""
    artists: dict[str, CatalogArtist] = {}
    for album in (data.get("albums") or {}).get("items") or []:
        first = ((album or {}).get("artists") or [None])[0]
        if not first or not first.get("id") or first["id"] in artists:
            continue

        genres = album.get("genres") or []
        artists[first["id"]] = CatalogArtist(id=first["id"],
                                             name=first.get("name") or PLACEHOLDER_ARTIST,
                                             genre=genres[0] if genres else "Unknown",
                                             image=_first_image(album),
                                             uri=first.get("uri"))

    return list(artists.values())[:limit]


def search_results_from(data: dict) -> SearchResults:
    def items(kind: str) -> list[dict]:
        return [i for i in (data.get(kind) or {}).get("items") or [] if i]

    return SearchResults(tracks=[track_from_item(t, f"track_{i}") for i, t in enumerate(items("tracks"))],
                         artists=[artist_from_item(a) for a in items("artists")],
                         albums=[album_from_item(a) for a in items("albums")],
                         playlists=[playlist_from_item(p) for p in items("playlists")])


def artist_details_from(artist: dict, top_tracks: dict, albums: dict) -> ArtistDetails:
    return ArtistDetails(id=artist.get("id") or "",
                         name=artist.get("name") or PLACEHOLDER_ARTIST,
                         genres=list(artist.get("genres") or []),
                         popularity=artist.get("popularity"),
                         followers=(artist.get("followers") or {}).get("total"),
                         image=_first_image(artist),
                         top_tracks=[track_from_item(t, f"track_{i}")
                                     for i, t in enumerate(top_tracks.get("tracks") or []) if t],
                         albums=[album_from_item(a) for a in albums.get("items") or [] if a])


def album_details_from(data: dict) -> AlbumDetails:
    album_id = data.get("id") or ""
    tracks = [track_from_item(t, f"track_{album_id}_{i}")
              for i, t in enumerate((data.get("tracks") or {}).get("items") or []) if t]

    return AlbumDetails(id=album_id,
                        name=data.get("name") or "Unknown Album",
                        artist=_artist_names(data),
                        artist_id=((data.get("artists") or [{}])[0] or {}).get("id"),
                        release_date=data.get("release_date"),
                        total_tracks=data.get("total_tracks") or len(tracks),
                        popularity=data.get("popularity"),
                        cover=_first_image(data),
                        genres=list(data.get("genres") or []),
                        tracks=tracks,
                        uri=data.get("uri"))
