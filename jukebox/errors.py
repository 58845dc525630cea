class JukeboxError(Exception):
    """Base class for jukebox failures."""


class ResourceLoadFailure(JukeboxError):
    """An audio resource could not be created for a track."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Could not load audio from {url}: {reason}")
        self.url = url
        self.reason = reason


class PersistenceFailure(JukeboxError):
    """The session store rejected a read or write."""


class ResolutionFailure(JukeboxError):
    """A folder link could not be turned into a playlist."""


class StoreConnectionError(JukeboxError):
    """The session store could not be opened at startup."""
