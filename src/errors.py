class MusicAppError(Exception):
    """Base class for every error raised by the library and catalog layers."""


class PermissionDenied(MusicAppError):
    """The user (or the host platform) declined access to the media library."""


class EnumerationError(MusicAppError):
    """Listing audio assets from the device failed."""


class CacheIOError(MusicAppError):
    """Reading or writing the persisted key-value store failed."""


class RemoteAPIError(MusicAppError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class PlaybackError(MusicAppError):
    pass
