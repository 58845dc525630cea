from conftest import make_tracks
from jukebox.models.state import PlaybackState
from jukebox.music.clock import PlaybackClock


def count_skips(controller) -> list[int]:
    """Wrap skip_forward so each call is recorded with the index it started from."""
    calls = []
    original = controller.skip_forward

    async def recording_skip_forward():
        calls.append(controller.state.logical_index)
        await original()

    controller.skip_forward = recording_skip_forward
    return calls


async def test_advances_once_after_duration_plus_buffer(build_controller):
    controller = build_controller(make_tracks(3, duration=10), PlaybackState(is_playing=True))
    await controller.load_track()
    skips = count_skips(controller)
    clock = PlaybackClock(controller.state, controller, interval_seconds=1.0, buffer_seconds=2.0)

    for _ in range(12):
        assert await clock.tick() is False
    assert skips == []

    assert await clock.tick() is True
    assert skips == [0]
    assert controller.state.logical_index == 1
    assert controller.state.elapsed_seconds == 0.0


async def test_elapsed_is_frozen_while_paused(build_controller):
    controller = build_controller(make_tracks(2, duration=3))
    await controller.load_track()
    skips = count_skips(controller)
    clock = PlaybackClock(controller.state, controller)

    for _ in range(20):
        await clock.tick()

    assert controller.state.elapsed_seconds == 0.0
    assert skips == []


async def test_no_advance_without_loaded_track(build_controller):
    controller = build_controller([], PlaybackState(is_playing=True))
    skips = count_skips(controller)
    clock = PlaybackClock(controller.state, controller)

    for _ in range(10):
        await clock.tick()

    assert skips == []


async def test_stopped_clock_is_a_noop(build_controller):
    controller = build_controller(make_tracks(2, duration=1), PlaybackState(is_playing=True))
    await controller.load_track()
    skips = count_skips(controller)
    clock = PlaybackClock(controller.state, controller)
    clock.stop()

    for _ in range(10):
        assert await clock.tick() is False

    assert controller.state.elapsed_seconds == 0.0
    assert skips == []


async def test_two_track_session_advances_then_shuffles(build_controller):
    controller = build_controller(make_tracks(2, duration=5), PlaybackState(is_playing=True))
    await controller.load_track()
    skips = count_skips(controller)
    clock = PlaybackClock(controller.state, controller, interval_seconds=1.0, buffer_seconds=2.0)

    for _ in range(8):
        await clock.tick()

    assert controller.state.logical_index == 1
    assert len(skips) == 1

    await controller.toggle_shuffle()

    assert controller.catalog.shuffle_index.order in ([0, 1], [1, 0])
    assert len(skips) == 2


async def test_progress_is_published_every_few_ticks(build_controller):
    controller = build_controller(make_tracks(1, duration=60), PlaybackState(is_playing=True))
    await controller.load_track()
    events = []
    controller.on_state_change = lambda: events.append(controller.state.elapsed_seconds)
    clock = PlaybackClock(controller.state, controller, interval_seconds=1.0, progress_ticks=5)

    for _ in range(12):
        await clock.tick()

    assert events == [5.0, 10.0]


async def test_no_progress_while_paused(build_controller):
    controller = build_controller(make_tracks(1, duration=60))
    await controller.load_track()
    events = []
    controller.on_state_change = lambda: events.append(controller.state.elapsed_seconds)
    clock = PlaybackClock(controller.state, controller, progress_ticks=1)

    for _ in range(10):
        await clock.tick()

    assert events == []
