from conftest import FakeStore, make_tracks
from jukebox.models.state import PlaybackState, SessionRecord
from jukebox.music.session import Command, Session, SessionBootstrap, SessionManager
from jukebox.music.transport import TransportStatus


async def test_bootstrap_defaults_for_new_session(store):
    catalog, state = await SessionBootstrap(store).initialize("guild-1")

    assert len(catalog) == 0
    assert state == PlaybackState()
    assert state.volume == 0.04
    assert state.spread == 0.4
    assert state.rolloff_start_distance == 2.5
    assert state.logical_index == 0
    assert not state.is_playing
    assert not state.shuffle_enabled


async def test_bootstrap_restores_record_with_elapsed_reset():
    tracks = make_tracks(4)
    saved = PlaybackState(logical_index=2, is_playing=True, volume=0.5, elapsed_seconds=99.0)
    store = FakeStore(SessionRecord("guild-1", playlist=tracks, state=saved))

    catalog, state = await SessionBootstrap(store).initialize("guild-1")

    assert catalog.get_list() == tracks
    assert state.logical_index == 2
    assert state.is_playing
    assert state.volume == 0.5
    assert state.elapsed_seconds == 0.0


async def test_bootstrap_regenerates_shuffle_when_restored_on():
    store = FakeStore(
        SessionRecord("guild-1", playlist=make_tracks(5), state=PlaybackState(shuffle_enabled=True))
    )

    catalog, state = await SessionBootstrap(store).initialize("guild-1")

    assert sorted(catalog.shuffle_index.order) == [0, 1, 2, 3, 4]


async def test_bootstrap_clamps_stale_index():
    store = FakeStore(
        SessionRecord("guild-1", playlist=make_tracks(2), state=PlaybackState(logical_index=9))
    )
    _, state = await SessionBootstrap(store).initialize("guild-1")
    assert state.logical_index == 0


async def test_bootstrap_falls_back_when_store_unreadable(store):
    store.fail_reads = True
    catalog, state = await SessionBootstrap(store).initialize("guild-1")
    assert len(catalog) == 0
    assert state == PlaybackState()


async def test_session_start_loads_restored_track(host):
    store = FakeStore(SessionRecord("guild-1", playlist=make_tracks(3), state=PlaybackState(logical_index=1)))
    session = Session("guild-1", store, host)

    await session.start(run_timers=False)

    assert session.alive
    assert session.controller.loaded.track.name == "Track B"
    assert session.controller.status == TransportStatus.PAUSED


async def test_dispatch_routes_commands(host, store):
    session = Session("guild-1", store, host)
    await session.start(run_timers=False)
    await session.apply_folder(make_tracks(3))

    assert await session.dispatch(Command.VOLUME, +1) == "5%"
    assert await session.dispatch(Command.SPREAD, -1) == "30%"
    assert await session.dispatch(Command.ROLLOFF, +1) == "3.5"
    assert await session.dispatch(Command.PLAY_PAUSE) is True
    await session.dispatch(Command.SKIP_FORWARD)
    assert session.state.logical_index == 1
    await session.dispatch(Command.SKIP_BACKWARD)
    assert session.state.logical_index == 0
    assert await session.dispatch(Command.SHUFFLE) is True


async def test_status_reports_render_values(host, store):
    session = Session("guild-1", store, host)
    await session.start(run_timers=False)
    await session.apply_folder(make_tracks(2, duration=10))
    session.state.elapsed_seconds = 5.0

    status = session.status()

    assert status.track_name == "Track A"
    assert status.track_duration == "0:10"
    assert status.elapsed_ratio == 0.5
    assert status.volume == "4%"
    assert status.spread == "40%"
    assert status.rolloff == "2.5"
    assert status.catalog_length == 2
    assert not status.is_playing


async def test_state_changes_notify_listener(host, store):
    seen = []
    session = Session("guild-1", store, host, on_state_change=seen.append)
    await session.start(run_timers=False)
    seen.clear()

    await session.dispatch(Command.VOLUME, +1)

    assert seen == [session]


async def test_close_flushes_and_releases(host, store):
    session = Session("guild-1", store, host)
    await session.start(run_timers=False)
    await session.apply_folder(make_tracks(2))
    await session.dispatch(Command.VOLUME, +1)

    await session.close()

    assert not session.alive
    assert session.controller.loaded is None
    assert host.handles[-1].stopped
    assert store.state_writes[-1][1]["volume"] == 0.05
    assert store.playlist_writes


async def test_folder_after_close_is_dropped(host, store):
    session = Session("guild-1", store, host)
    await session.start(run_timers=False)
    await session.close()

    assert await session.apply_folder(make_tracks(3)) is False
    assert await session.dispatch(Command.SKIP_FORWARD) is None
    assert host.created == []


async def test_manager_replaces_and_removes_sessions(host, store):
    manager = SessionManager(store, persist_interval_seconds=60)
    first = await manager.create("guild-1", host)
    second = await manager.create("guild-1", host)

    assert not first.alive
    assert manager.get("guild-1") is second

    await manager.close_all()
    assert not second.alive
    assert manager.get("guild-1") is None
