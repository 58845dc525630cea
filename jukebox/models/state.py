from dataclasses import dataclass, field

from jukebox.models.track import TrackDescriptor

DEFAULT_VOLUME = 0.04
DEFAULT_SPREAD = 0.4
DEFAULT_ROLLOFF_START_DISTANCE = 2.5


@dataclass
class PlaybackState:
    """Authoritative playback record for one session.

    Mutated only by the session's TransportController. Everything else reads it.
    """

    logical_index: int = 0
    is_playing: bool = False
    volume: float = DEFAULT_VOLUME
    spread: float = DEFAULT_SPREAD
    rolloff_start_distance: float = DEFAULT_ROLLOFF_START_DISTANCE
    shuffle_enabled: bool = False
    elapsed_seconds: float = 0.0

    def snapshot(self) -> dict:
        """Persistable view of the state. Elapsed time is never stored."""
        return {
            "songIndex": self.logical_index,
            "musicIsPlaying": self.is_playing,
            "volume": self.volume,
            "spread": self.spread,
            "rolloffStartDistance": self.rolloff_start_distance,
            "shuffle": self.shuffle_enabled,
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "PlaybackState":
        """Restore from a stored snapshot, filling missing keys with defaults."""
        return cls(
            logical_index=max(0, int(data.get("songIndex", 0))),
            is_playing=bool(data.get("musicIsPlaying", False)),
            volume=float(data.get("volume", DEFAULT_VOLUME)),
            spread=float(data.get("spread", DEFAULT_SPREAD)),
            rolloff_start_distance=float(
                data.get("rolloffStartDistance", DEFAULT_ROLLOFF_START_DISTANCE)
            ),
            shuffle_enabled=bool(data.get("shuffle", False)),
            elapsed_seconds=0.0,
        )


@dataclass
class SessionRecord:
    """One persisted row: a session's playlist and its last saved state."""

    session_id: str
    playlist: list[TrackDescriptor] = field(default_factory=list)
    state: PlaybackState | None = None


@dataclass
class PlaybackStatus:
    """Render-ready view of a session, pushed to the control surface."""

    track_name: str | None
    track_duration: str | None
    elapsed_ratio: float
    is_playing: bool
    shuffle_enabled: bool
    volume: str
    spread: str
    rolloff: str
    position: int
    catalog_length: int
