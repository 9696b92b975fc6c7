from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone
import time

Json = dict | list

PLACEHOLDER_ARTIST = "Unknown Artist"
PLACEHOLDER_COVER = "assets/images/burnaboy.jpeg"


def now_ms() -> int:
    return int(time.time() * 1000)


class LoaderState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Song:
    id: str
    title: str
    artist: str
    duration_seconds: float
    source_locator: str
    cover_locator: str = PLACEHOLDER_COVER
    is_fallback_asset: bool = False
    created_at: int | None = None  # Epoch ms, device songs only.

    def to_dict(self) -> dict:
        data = {"id": self.id,
                "title": self.title,
                "artist": self.artist,
                "duration": self.duration_seconds,
                "uri": self.source_locator,
                "cover": self.cover_locator,
                "isAssetMusic": self.is_fallback_asset}
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Song":
        """Build a Song from its persisted shape. Missing optional fields get defaults,
           a missing id raises KeyError."""
        duration = data.get("duration") or 0

        return cls(id=str(data["id"]),
                   title=data.get("title") or "Unknown Track",
                   artist=data.get("artist") or PLACEHOLDER_ARTIST,
                   duration_seconds=float(duration) if isinstance(duration, (int, float)) else 0.0,
                   source_locator=data.get("uri") or "",
                   cover_locator=data.get("cover") if isinstance(data.get("cover"), str) else PLACEHOLDER_COVER,
                   is_fallback_asset=bool(data.get("isAssetMusic", False)),
                   created_at=data.get("createdAt"))


@dataclass(frozen=True)
class CatalogPage:
    songs: tuple[Song, ...]
    next_cursor: str | None
    has_more: bool


@dataclass(frozen=True)
class CacheRecord:
    songs: tuple[Song, ...]
    captured_at: int  # Epoch ms.

    def age(self, now: int) -> int:
        return now - self.captured_at

    def is_fresh(self, now: int, ttl_ms: int) -> bool:
        return self.age(now) < ttl_ms


@dataclass
class Playlist:
    id: str
    name: str
    description: str = ""
    is_public: bool = True
    cover_image: str | None = None
    songs: list[Song] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {"id": self.id,
                "name": self.name,
                "description": self.description,
                "isPublic": self.is_public,
                "coverImage": self.cover_image,
                "songs": [s.to_dict() for s in self.songs],
                "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict) -> "Playlist":
        return cls(id=str(data["id"]),
                   name=data.get("name") or "Playlist",
                   description=data.get("description") or "",
                   is_public=bool(data.get("isPublic", True)),
                   cover_image=data.get("coverImage") if isinstance(data.get("coverImage"), str) else None,
                   songs=[Song.from_dict(s) for s in data.get("songs") or []],
                   created_at=data.get("createdAt") or "")
