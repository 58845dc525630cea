from enum import Enum
from typing import Callable

from loguru import logger

from jukebox.errors import PersistenceFailure
from jukebox.models.state import PlaybackState, PlaybackStatus
from jukebox.models.track import TrackDescriptor
from jukebox.music.catalog import TrackCatalog
from jukebox.music.clock import CLOCK_INTERVAL_SECONDS, TRACK_END_BUFFER_SECONDS, PlaybackClock
from jukebox.music.persistence import PERSIST_INTERVAL_SECONDS, PersistenceGate
from jukebox.music.player import AudioHost, PlaybackMode
from jukebox.music.transport import TransportController
from jukebox.storage.session_store import SessionStore


class Command(str, Enum):
    PLAY_PAUSE = "play_pause"
    SKIP_FORWARD = "skip_forward"
    SKIP_BACKWARD = "skip_backward"
    SHUFFLE = "shuffle"
    VOLUME = "volume"
    SPREAD = "spread"
    ROLLOFF = "rolloff"


class SessionBootstrap:
    """Restores a session's playlist and state from the store, or starts fresh."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def initialize(self, session_id: str) -> tuple[TrackCatalog, PlaybackState]:
        try:
            record = await self.store.get_session_record(session_id)
        except PersistenceFailure as e:
            logger.error(f"Could not read session {session_id}, starting from defaults: {e}")
            record = None

        if record is None:
            return TrackCatalog(), PlaybackState()

        catalog = TrackCatalog(record.playlist)
        state = record.state or PlaybackState()
        state.elapsed_seconds = 0.0
        if state.logical_index >= len(catalog):
            state.logical_index = 0
        if state.shuffle_enabled:
            catalog.shuffle_index.regenerate(len(catalog))
        logger.info(f"Restored session {session_id}: {len(catalog)} tracks")
        return catalog, state


class Session:
    """One live jukebox: catalog, state, controller, and its two timers."""

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        host: AudioHost,
        playback_mode: PlaybackMode = PlaybackMode.BUFFERED,
        clock_interval_seconds: float = CLOCK_INTERVAL_SECONDS,
        track_end_buffer_seconds: float = TRACK_END_BUFFER_SECONDS,
        persist_interval_seconds: float = PERSIST_INTERVAL_SECONDS,
        on_state_change: Callable[["Session"], None] | None = None,
    ):
        self.session_id = session_id
        self.store = store
        self.host = host
        self.playback_mode = playback_mode
        self.clock_interval_seconds = clock_interval_seconds
        self.track_end_buffer_seconds = track_end_buffer_seconds
        self.persist_interval_seconds = persist_interval_seconds
        self.on_state_change = on_state_change

        self.catalog: TrackCatalog | None = None
        self.state: PlaybackState | None = None
        self.gate: PersistenceGate | None = None
        self.controller: TransportController | None = None
        self.clock: PlaybackClock | None = None
        self._alive = False

    @property
    def alive(self) -> bool:
        return self._alive

    async def start(self, run_timers: bool = True) -> None:
        self.catalog, self.state = await SessionBootstrap(self.store).initialize(self.session_id)
        self.gate = PersistenceGate(
            self.session_id,
            self.store,
            self.state,
            self.catalog,
            interval_seconds=self.persist_interval_seconds,
        )
        self.controller = TransportController(
            self.catalog,
            self.state,
            self.host,
            self.gate,
            playback_mode=self.playback_mode,
            on_state_change=self._notify,
        )
        self.clock = PlaybackClock(
            self.state,
            self.controller,
            interval_seconds=self.clock_interval_seconds,
            buffer_seconds=self.track_end_buffer_seconds,
        )
        self._alive = True
        logger.info(f"Session {self.session_id} started")

        if run_timers:
            self.clock.start()
            self.gate.start()
        await self.controller.load_track()

    async def dispatch(self, command: Command, delta: int = 0):
        """Run one control command. Returns the command's result, or None if the session is gone."""
        if not self._alive:
            return None

        if command == Command.PLAY_PAUSE:
            return self.controller.toggle_play_pause()
        if command == Command.SKIP_FORWARD:
            return await self.controller.skip_forward()
        if command == Command.SKIP_BACKWARD:
            return await self.controller.skip_backward()
        if command == Command.SHUFFLE:
            return await self.controller.toggle_shuffle()
        if command == Command.VOLUME:
            return self.controller.set_volume(delta)
        if command == Command.SPREAD:
            return self.controller.set_spread(delta)
        if command == Command.ROLLOFF:
            return self.controller.set_rolloff(delta)
        raise ValueError(f"Unknown command: {command}")

    async def apply_folder(self, tracks: list[TrackDescriptor]) -> bool:
        """Install a freshly resolved playlist. Dropped if the session ended meanwhile."""
        if not self._alive:
            logger.info(f"Session {self.session_id} closed before its folder resolved")
            return False
        await self.controller.set_catalog(tracks)
        return True

    def status(self) -> PlaybackStatus:
        loaded = self.controller.loaded if self.controller else None
        track = loaded.track if loaded else None
        elapsed_ratio = 0.0
        if track and track.duration_seconds > 0:
            elapsed_ratio = min(1.0, self.state.elapsed_seconds / track.duration_seconds)

        return PlaybackStatus(
            track_name=track.name if track else None,
            track_duration=track.duration_str if track else None,
            elapsed_ratio=elapsed_ratio,
            is_playing=self.state.is_playing,
            shuffle_enabled=self.state.shuffle_enabled,
            volume=self.controller.set_volume(0),
            spread=self.controller.set_spread(0),
            rolloff=self.controller.set_rolloff(0),
            position=self.state.logical_index,
            catalog_length=len(self.catalog),
        )

    def _notify(self) -> None:
        if self.on_state_change and self._alive:
            self.on_state_change(self)

    async def close(self) -> None:
        """Stop the timers, save one last time, and release audio."""
        if not self._alive:
            return
        self._alive = False
        self.clock.stop()
        self.gate.stop()
        await self.gate.flush()
        self.controller.close()
        logger.info(f"Session {self.session_id} closed")


class SessionManager:
    """Manages sessions for all guilds."""

    def __init__(
        self,
        store: SessionStore,
        playback_mode: PlaybackMode = PlaybackMode.BUFFERED,
        clock_interval_seconds: float = CLOCK_INTERVAL_SECONDS,
        track_end_buffer_seconds: float = TRACK_END_BUFFER_SECONDS,
        persist_interval_seconds: float = PERSIST_INTERVAL_SECONDS,
    ):
        self._sessions: dict[str, Session] = {}
        self._store = store
        self._playback_mode = playback_mode
        self._clock_interval_seconds = clock_interval_seconds
        self._track_end_buffer_seconds = track_end_buffer_seconds
        self._persist_interval_seconds = persist_interval_seconds

    async def create(
        self,
        session_id: str,
        host: AudioHost,
        on_state_change: Callable[[Session], None] | None = None,
    ) -> Session:
        """Start a session, replacing any session already running under that id."""
        await self.remove(session_id)
        session = Session(
            session_id,
            self._store,
            host,
            playback_mode=self._playback_mode,
            clock_interval_seconds=self._clock_interval_seconds,
            track_end_buffer_seconds=self._track_end_buffer_seconds,
            persist_interval_seconds=self._persist_interval_seconds,
            on_state_change=on_state_change,
        )
        self._sessions[session_id] = session
        await session.start()
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> None:
        """Tear down a session (call when the last listener leaves)."""
        session = self._sessions.pop(session_id, None)
        if session:
            await session.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.remove(session_id)
