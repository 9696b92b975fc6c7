import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv
load_dotenv()


@dataclass(frozen=True)
class LoaderSettings:
    cache_ttl_ms: int = 30 * 60 * 1000
    min_refresh_interval_ms: int = 5 * 60 * 1000
    focus_debounce_ms: int = 2000
    loading_timeout: float = 15.0  # Seconds until the bundled songs are shown.
    initial_batch_size: int = 20
    batch_size: int = 50
    cache_checkpoint: int = 100
    hydrate_delay: float = 0.3
    refresh_delay: float = 2.0

    @classmethod
    def from_env(cls) -> "LoaderSettings":
        env_names = {"cache_ttl_ms": "LOADER_CACHE_TTL_MS",
                     "min_refresh_interval_ms": "LOADER_MIN_REFRESH_MS",
                     "focus_debounce_ms": "LOADER_FOCUS_DEBOUNCE_MS",
                     "loading_timeout": "LOADER_TIMEOUT_S",
                     "initial_batch_size": "LOADER_INITIAL_BATCH",
                     "batch_size": "LOADER_BATCH",
                     "cache_checkpoint": "LOADER_CHECKPOINT",
                     "hydrate_delay": "LOADER_HYDRATE_DELAY_S",
                     "refresh_delay": "LOADER_REFRESH_DELAY_S"}

        overrides = {}
        for f in fields(cls):
            if (raw := os.environ.get(env_names[f.name])) is not None:
                overrides[f.name] = float(raw) if f.type is float else int(raw)

        return cls(**overrides)


def music_dir() -> str:
    return os.environ.get("MUSIC_DIR", os.path.expanduser("~/Music"))


def spotify_credentials() -> tuple[str, str] | None:
    client_id = os.environ.get("SPOTIFY_CLIENT_ID")
    client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET")

    if not client_id or not client_secret:
        return None
    return client_id, client_secret
