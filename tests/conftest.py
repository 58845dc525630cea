"""Shared fakes for the audio host and the session store."""

import pytest

from jukebox.errors import PersistenceFailure, ResourceLoadFailure
from jukebox.models.state import PlaybackState
from jukebox.models.track import TrackDescriptor
from jukebox.music.catalog import TrackCatalog
from jukebox.music.persistence import PersistenceGate
from jukebox.music.player import AudioResource, PlaybackMode, PlaybackParams
from jukebox.music.transport import TransportController


class FakeHandle:
    def __init__(self, resource: AudioResource, params: PlaybackParams):
        self.resource = resource
        self.params = params
        self.paused = False
        self.stopped = False

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def stop(self):
        self.stopped = True

    def set_state(self, params: PlaybackParams):
        self.params = params


class FakeHost:
    def __init__(self):
        self.created: list[tuple[TrackDescriptor, PlaybackMode]] = []
        self.handles: list[FakeHandle] = []
        self.fail_urls: set[str] = set()
        self.fail_start_urls: set[str] = set()

    async def create_resource(self, track, mode):
        self.created.append((track, mode))
        if track.source_url in self.fail_urls:
            raise ResourceLoadFailure(track.source_url, "unplayable")
        return AudioResource(track=track, mode=mode, data=b"pcm")

    def start_playback(self, resource, params):
        if resource.track.source_url in self.fail_start_urls:
            raise ResourceLoadFailure(resource.track.source_url, "ffmpeg was not found")
        handle = FakeHandle(resource, params)
        self.handles.append(handle)
        return handle


class FakeStore:
    def __init__(self, record=None):
        self.record = record
        self.state_writes: list[tuple[str, dict]] = []
        self.playlist_writes: list[tuple[str, list]] = []
        self.fail_writes = False
        self.fail_reads = False

    async def get_session_record(self, session_id):
        if self.fail_reads:
            raise PersistenceFailure("database is locked")
        return self.record

    async def upsert_playlist(self, session_id, tracks):
        if self.fail_writes:
            raise PersistenceFailure("disk I/O error")
        self.playlist_writes.append((session_id, list(tracks)))

    async def upsert_state(self, session_id, snapshot):
        if self.fail_writes:
            raise PersistenceFailure("disk I/O error")
        self.state_writes.append((session_id, dict(snapshot)))

    @property
    def write_count(self) -> int:
        return len(self.state_writes) + len(self.playlist_writes)


def make_tracks(count: int, duration: float = 5.0) -> list[TrackDescriptor]:
    return [
        TrackDescriptor(
            name=f"Track {chr(65 + i)}",
            duration_seconds=duration,
            source_url=f"https://dl.dropboxusercontent.com/sh/abc/track{i}.ogg",
            file_name=f"track{i}",
        )
        for i in range(count)
    ]


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def build_controller(host, store):
    """Factory: a controller over the given tracks, wired to the fake host and store."""

    def _build(tracks, state=None, playback_mode=PlaybackMode.BUFFERED):
        catalog = TrackCatalog(tracks)
        state = state or PlaybackState()
        gate = PersistenceGate("guild-1", store, state, catalog)
        return TransportController(catalog, state, host, gate, playback_mode=playback_mode)

    return _build
