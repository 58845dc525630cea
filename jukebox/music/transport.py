"""Playback state machine for one session.

Every control funnels through here. Track changes go through ``load_track``,
parameter changes through the setters, and both mark the persistence gate dirty.
"""

from enum import Enum
from typing import Callable

from loguru import logger

from jukebox.errors import ResourceLoadFailure
from jukebox.models.state import PlaybackState
from jukebox.models.track import TrackDescriptor
from jukebox.music.catalog import TrackCatalog
from jukebox.music.persistence import PersistenceGate
from jukebox.music.player import AudioHost, LoadedTrack, PlaybackMode, PlaybackParams

VOLUME_STEP = 0.01
SPREAD_STEP = 0.1
ROLLOFF_FINE_STEP = 0.1
ROLLOFF_COARSE_STEP = 1.0
ROLLOFF_COARSE_THRESHOLD = 1.0
ROLLOFF_FLOOR = 0.2


class TransportStatus(str, Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    PLAYING = "playing"


def _sign(delta: int) -> int:
    return (delta > 0) - (delta < 0)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class TransportController:
    """Executes play/pause/skip/shuffle/parameter transitions against a PlaybackState."""

    def __init__(
        self,
        catalog: TrackCatalog,
        state: PlaybackState,
        host: AudioHost,
        gate: PersistenceGate,
        playback_mode: PlaybackMode = PlaybackMode.BUFFERED,
        on_state_change: Callable[[], None] | None = None,
    ):
        self.catalog = catalog
        self.state = state
        self.host = host
        self.gate = gate
        self.playback_mode = playback_mode
        self.on_state_change = on_state_change
        self.loaded: LoadedTrack | None = None

        self._loading = False
        self._reload_requested = False
        self._carried_elapsed = 0.0
        self._closed = False

    @property
    def status(self) -> TransportStatus:
        if self.loaded is None:
            return TransportStatus.STOPPED
        return TransportStatus.PLAYING if self.state.is_playing else TransportStatus.PAUSED

    @property
    def is_loading(self) -> bool:
        return self._loading

    # -- track changes -------------------------------------------------

    async def load_track(self, logical_index: int | None = None) -> bool:
        """
        Replace the loaded track with the one at the current logical index.

        Requests made while a load is in flight coalesce: the running loader
        picks up the latest index once its current resource resolves.
        Returns False if the request was coalesced into a running load.
        """
        if logical_index is not None:
            self.state.logical_index = logical_index
        # Kept so a failed load can hand the old track its position back
        if self._loading:
            self._carried_elapsed += self.state.elapsed_seconds
        else:
            self._carried_elapsed = self.state.elapsed_seconds
        self.state.elapsed_seconds = 0.0
        self._reload_requested = True

        if self._loading:
            return False

        self._loading = True
        try:
            while self._reload_requested and not self._closed:
                self._reload_requested = False
                await self._load(self.state.logical_index)
        finally:
            self._loading = False

        self._notify()
        return True

    async def _load(self, logical_index: int) -> None:
        if self.catalog.is_empty():
            self._teardown_loaded()
            return

        physical_index = self.catalog.shuffle_index.resolve(
            logical_index, self.state.shuffle_enabled
        )
        track = self.catalog.get(physical_index)
        if track is None:
            self._teardown_loaded()
            return

        mode = self._select_mode(track)
        try:
            resource = await self.host.create_resource(track, mode)
        except ResourceLoadFailure as e:
            logger.warning(f"Keeping current track, {track.name} failed to load: {e}")
            self._restore_loaded_position()
            return

        if self._closed or self._reload_requested:
            resource.release()
            return

        try:
            handle = self.host.start_playback(resource, self._params())
        except ResourceLoadFailure as e:
            logger.warning(f"Keeping current track, {track.name} failed to start: {e}")
            resource.release()
            self._restore_loaded_position()
            return

        self._teardown_loaded()
        loaded = LoadedTrack(
            logical_index=logical_index,
            physical_index=physical_index,
            track=track,
            resource=resource,
            handle=handle,
        )
        if not self.state.is_playing:
            handle.pause()
        self.loaded = loaded
        self.state.elapsed_seconds = 0.0
        self._carried_elapsed = 0.0
        logger.info(
            f"Loaded track {logical_index} -> {physical_index} '{track.name}' ({mode.value})"
        )

    def _select_mode(self, track: TrackDescriptor) -> PlaybackMode:
        if track.is_youtube:
            return PlaybackMode.STREAM
        return self.playback_mode

    def _restore_loaded_position(self) -> None:
        """Point the state back at the track that is still playing after a failed load."""
        if self.loaded is None or self._reload_requested:
            return

        self.state.elapsed_seconds += self._carried_elapsed
        self._carried_elapsed = 0.0

        physical_index = self.loaded.physical_index
        if self.catalog.get(physical_index) != self.loaded.track:
            # Playlist was replaced; the old track has no position in it
            return
        logical_index = self.catalog.shuffle_index.position_of(
            physical_index, self.state.shuffle_enabled
        )
        self.state.logical_index = logical_index
        self.loaded.logical_index = logical_index

    def _teardown_loaded(self) -> None:
        if self.loaded is not None:
            self.loaded.teardown()
            self.loaded = None

    async def skip_forward(self) -> None:
        count = len(self.catalog)
        if count == 0:
            return
        self.state.logical_index = (self.state.logical_index + 1) % count
        self.gate.mark_dirty()
        await self.load_track()

    async def skip_backward(self) -> None:
        count = len(self.catalog)
        if count == 0:
            return
        self.state.logical_index = (self.state.logical_index - 1 + count) % count
        self.gate.mark_dirty()
        await self.load_track()

    async def toggle_shuffle(self) -> bool:
        """Flip shuffle. Turning it on reshuffles and jumps to a new random track."""
        self.state.shuffle_enabled = not self.state.shuffle_enabled
        self.gate.mark_dirty()

        if self.state.shuffle_enabled:
            self.catalog.shuffle_index.regenerate(len(self.catalog))
            await self.skip_forward()
        else:
            # Continue in catalog order from whatever is audible now
            if self.loaded is not None:
                self.state.logical_index = self.loaded.physical_index
                self.loaded.logical_index = self.loaded.physical_index
            self.catalog.shuffle_index.reset()
            self._notify()
        return self.state.shuffle_enabled

    async def set_catalog(self, tracks: list[TrackDescriptor]) -> None:
        self.catalog.load(tracks)
        if self.state.shuffle_enabled:
            self.catalog.shuffle_index.regenerate(len(self.catalog))
        if self.state.logical_index >= len(self.catalog):
            self.state.logical_index = 0
        self.gate.mark_playlist_dirty()
        self.gate.mark_dirty()
        await self.load_track()

    # -- in-place controls ---------------------------------------------

    def toggle_play_pause(self) -> bool:
        """Flip playing/paused on the loaded track. No-op when nothing is loaded."""
        if self.loaded is None or self.loaded.handle is None:
            return self.state.is_playing

        self.state.is_playing = not self.state.is_playing
        if self.state.is_playing:
            self.loaded.handle.resume()
        else:
            self.loaded.handle.pause()
        self.gate.mark_dirty()
        self._notify()
        return self.state.is_playing

    def set_volume(self, delta: int) -> str:
        """Step volume by 1%. A delta of 0 only reads the current value."""
        if delta:
            self.state.volume = round(
                _clamp(self.state.volume + _sign(delta) * VOLUME_STEP, 0.0, 1.0), 2
            )
            self._params_changed()
        return f"{round(self.state.volume * 100)}%"

    def set_spread(self, delta: int) -> str:
        if delta:
            self.state.spread = round(
                _clamp(self.state.spread + _sign(delta) * SPREAD_STEP, 0.0, 1.0), 1
            )
            self._params_changed()
        return f"{round(self.state.spread * 100)}%"

    def set_rolloff(self, delta: int) -> str:
        """Fine steps below 1.0, coarse steps above it, never under the floor."""
        current = self.state.rolloff_start_distance
        if delta > 0:
            step = ROLLOFF_COARSE_STEP if current >= ROLLOFF_COARSE_THRESHOLD else ROLLOFF_FINE_STEP
            current = current + step
        elif delta < 0:
            if current > ROLLOFF_COARSE_THRESHOLD:
                current = max(ROLLOFF_COARSE_THRESHOLD, current - ROLLOFF_COARSE_STEP)
            else:
                current = current - ROLLOFF_FINE_STEP
        if delta:
            self.state.rolloff_start_distance = round(max(ROLLOFF_FLOOR, current), 1)
            self._params_changed()
        return f"{self.state.rolloff_start_distance:.1f}"

    def _params(self) -> PlaybackParams:
        return PlaybackParams(
            volume=self.state.volume,
            spread=self.state.spread,
            rolloff_start_distance=self.state.rolloff_start_distance,
            start_offset_seconds=0.0,
        )

    def _params_changed(self) -> None:
        if self.loaded is not None and self.loaded.handle is not None:
            self.loaded.handle.set_state(self._params())
        self.gate.mark_dirty()
        self._notify()

    def publish_progress(self) -> None:
        """Notify listeners that elapsed time moved, without any state transition."""
        if self.loaded is not None:
            self._notify()

    def _notify(self) -> None:
        if self.on_state_change and not self._closed:
            self.on_state_change()

    def close(self) -> None:
        """Stop accepting loads and release the loaded track."""
        self._closed = True
        self._teardown_loaded()
