"""
Stand-in catalog data for when the remote catalog can't be reached.

Everything here is derived from a `random.Random` seeded with the requested id, so
asking twice for the same playlist, artist or album gives the same answer.
"""
import re
import random
from datetime import datetime, timezone

from catalog.mapping import (
    CatalogTrack, CatalogArtist, CatalogAlbum, CatalogPlaylist,
    PlaylistDetails, ArtistDetails, AlbumDetails
)

COLORS = ["8A2BE2", "4169E1", "FF4500", "FFD700", "32CD32", "FF1493", "00CED1", "FFA500"]

GENRES = {
    "Pop": (["Taylor Swift", "Ed Sheeran", "Ariana Grande", "Justin Bieber", "Billie Eilish"],
            ["Summer Nights", "Dancing in the Dark", "Perfect Day", "Midnight Sky", "Golden Hour"]),
    "Rock": (["Foo Fighters", "Arctic Monkeys", "The Killers", "Imagine Dragons", "Twenty One Pilots"],
             ["High Voltage", "Stone Cold", "Burning Bridges", "Rising Star", "Heavy Crown"]),
    "Hip Hop": (["Drake", "Kendrick Lamar", "J. Cole", "Travis Scott", "Cardi B"],
                ["City Lights", "Street Dreams", "Money Moves", "Real Talk", "Fresh Prince"]),
    "EDM": (["Calvin Harris", "Marshmello", "Avicii", "David Guetta", "Martin Garrix"],
            ["Electric Soul", "Bass Drop", "Neon Nights", "Club Paradise", "Synthetic Heart"]),
    "Chill": (["Bon Iver", "Frank Ocean", "Lana Del Rey", "Tame Impala", "Mac DeMarco"],
              ["Ocean Breeze", "Sunset Dreams", "Mountain View", "Calm Waters", "Silent Echo"]),
    "Mixed": (["Various Artists", "Unknown Artist", "The Band", "Studio Musicians", "DJ Mix"],
              ["Untitled Track", "New Song", "Amazing Tune", "Great Music", "Cool Vibes"]),
}

# id: (name, description, listed song count, cover color, cover text color, cover text, mock songs, genre)
FEATURED = {
    "fallback_playlist_1": ("Today's Hits", "The most popular songs right now", 50, "8A2BE2", "FFF", "Popular", 10, "Pop"),
    "fallback_playlist_2": ("Chill Vibes", "Relaxing tunes to unwind", 45, "4169E1", "FFF", "Chill", 8, "Chill"),
    "fallback_playlist_3": ("Workout Mix", "Energy boosting tracks for your exercise", 40, "FF4500", "FFF", "Workout", 12, "EDM"),
    "fallback_playlist_4": ("Hip Hop Essentials", "Classic and current hip hop tracks", 55, "FFD700", "000", "HipHop", 15, "Hip Hop"),
}

ARTISTS = [
    ("The Weeknd", "R&B/Pop"),
    ("Taylor Swift", "Pop"),
    ("Drake", "Hip Hop"),
    ("Billie Eilish", "Pop"),
    ("Bad Bunny", "Reggaeton"),
    ("Dua Lipa", "Pop"),
    ("Kendrick Lamar", "Hip Hop"),
    ("Adele", "Pop/Soul"),
    ("Harry Styles", "Pop/Rock"),
    ("BTS", "K-Pop"),
]

ARTIST_ID = re.compile(r"fallback_artist_(\d+)")


def cover_url(color: str, text: str, text_color: str = "FFF") -> str:
    return f"https://placehold.co/300x300/{color}/{text_color}?text={text}"


def _rng(seed: str) -> random.Random:
    return random.Random(seed)


def mock_tracks(count: int, genre: str, rng: random.Random) -> list[CatalogTrack]:
    artists, titles = GENRES.get(genre, GENRES["Mixed"])

    return [CatalogTrack(id=f"mock_song_{i}",
                         title=f"{rng.choice(titles)} {i + 1}",
                         artist=rng.choice(artists),
                         duration=f"{rng.randint(2, 5)}:{rng.randint(0, 59):02d}",
                         cover=cover_url(rng.choice(COLORS), genre),
                         uri=f"spotify:track:mock_{i}",
                         preview_url="")
            for i in range(count)]


def featured_playlists(limit: int = 10) -> list[CatalogPlaylist]:
    return [CatalogPlaylist(id=playlist_id,
                            name=name,
                            description=description,
                            songs=songs,
                            cover=cover_url(color, text, text_color),
                            owner="Spotify",
                            is_public=True)
            for playlist_id, (name, description, songs, color, text_color, text, _, _) in FEATURED.items()][:limit]


def playlist_details(playlist_id: str) -> PlaylistDetails:
    rng = _rng(playlist_id)

    if playlist_id in FEATURED:
        name, description, _, color, text_color, text, count, genre = FEATURED[playlist_id]
        cover = cover_url(color, text, text_color)
    else:
        name, description, count, genre = "Playlist", "Playlist description", 5, "Mixed"
        cover = cover_url("8A2BE2", "Playlist")

    return PlaylistDetails(id=playlist_id,
                           name=name,
                           description=description,
                           cover_image=cover,
                           songs=mock_tracks(count, genre, rng),
                           owner="Spotify",
                           is_public=True,
                           created_at=datetime.now(timezone.utc).isoformat())


def fallback_artists(limit: int = 10) -> list[CatalogArtist]:
    artists = []
    for i, (name, genre) in enumerate(ARTISTS[:limit], start=1):
        artist_id = f"fallback_artist_{i}"
        artists.append(CatalogArtist(id=artist_id,
                                     name=name,
                                     genre=genre,
                                     image=cover_url(_rng(artist_id).choice(COLORS), name.replace(" ", ""))))
    return artists


def _artist_number(artist_id: str) -> int:
    match = ARTIST_ID.search(artist_id)
    return int(match.group(1)) if match and int(match.group(1)) > 0 else 1


def artist_details(artist_id: str) -> ArtistDetails:
    rng = _rng(artist_id)
    artist = fallback_artists()[(_artist_number(artist_id) - 1) % len(ARTISTS)]

    top_tracks = mock_tracks(10, artist.genre.split("/")[0], rng)
    for track in top_tracks:
        track.album = f"{artist.name} - Greatest Hits"
        track.popularity = rng.randrange(100)

    albums = [CatalogAlbum(id=f"album_{artist_id}_{i}",
                           name="Latest Release" if i == 0 else f"{artist.name} Album {i}",
                           artist=artist.name,
                           cover=cover_url(rng.choice(COLORS), f"Album{i}"),
                           release_date=f"{2023 - i}-05-{rng.randint(1, 28):02d}",
                           total_tracks=rng.randint(8, 19),
                           uri=f"spotify:album:mock_{artist_id}_{i}")
              for i in range(5)]

    return ArtistDetails(id=artist_id,
                         name=artist.name,
                         genres=artist.genre.split("/"),
                         popularity=rng.randrange(100),
                         followers=rng.randint(1_000_000, 10_999_999),
                         image=artist.image,
                         top_tracks=top_tracks,
                         albums=albums)


def album_details(album_id: str) -> AlbumDetails:
    match = ARTIST_ID.search(album_id)
    artist_id = match.group(0) if match else "fallback_artist_1"
    artist = artist_details(artist_id)

    rng = _rng(album_id)
    genre = artist.genres[0] if artist.genres else "Pop"
    tracks = mock_tracks(10, genre, rng)
    for number, track in enumerate(tracks, start=1):
        track.artist = artist.name
        track.track_number = number

    return AlbumDetails(id=album_id,
                        name=f"{artist.name} - Album",
                        artist=artist.name,
                        artist_id=artist_id,
                        release_date=f"{rng.randint(2020, 2024)}-{rng.randint(1, 12):02d}-01",
                        total_tracks=len(tracks),
                        popularity=rng.randrange(100),
                        cover=cover_url(rng.choice(COLORS), "Album"),
                        genres=artist.genres,
                        tracks=tracks,
                        uri=f"spotify:album:{album_id}")
