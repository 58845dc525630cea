import pytest

from jukebox.models.state import PlaybackState
from jukebox.models.track import TrackDescriptor


def test_snapshot_never_includes_elapsed():
    state = PlaybackState(logical_index=3, elapsed_seconds=42.0)
    snapshot = state.snapshot()

    assert snapshot == {
        "songIndex": 3,
        "musicIsPlaying": False,
        "volume": 0.04,
        "spread": 0.4,
        "rolloffStartDistance": 2.5,
        "shuffle": False,
    }


def test_restored_state_starts_at_zero_elapsed():
    state = PlaybackState.from_snapshot({"songIndex": 2, "musicIsPlaying": True})
    assert state.elapsed_seconds == 0.0
    assert state.is_playing
    assert state.volume == 0.04


def test_negative_index_is_clamped():
    assert PlaybackState.from_snapshot({"songIndex": -4}).logical_index == 0


@pytest.mark.parametrize(
    "seconds, expected", [(0, "0:00"), (9.9, "0:09"), (65, "1:05"), (3600, "60:00")]
)
def test_duration_str(seconds, expected):
    assert TrackDescriptor("x", seconds, "https://example.com/x.ogg").duration_str == expected


def test_descriptor_reads_stored_keys():
    track = TrackDescriptor.from_dict(
        {"name": "Theme", "duration": "12.5", "url": "https://dl.dropboxusercontent.com/sh/a/t.ogg", "fileName": "t"}
    )
    assert track == TrackDescriptor("Theme", 12.5, "https://dl.dropboxusercontent.com/sh/a/t.ogg", "t")
    assert not track.is_youtube
    assert track.to_dict()["fileName"] == "t"


def test_descriptor_tolerates_missing_fields():
    track = TrackDescriptor.from_dict({"url": "https://youtu.be/abc"})
    assert track.name == "Unknown"
    assert track.duration_seconds == 0.0
    assert track.is_youtube
