from unittest.mock import Mock

import discord
import pytest

from conftest import make_tracks
from jukebox.clients.youtube import StreamSource
from jukebox.errors import ResourceLoadFailure
from jukebox.music import player
from jukebox.music.player import (
    AudioResource,
    PlaybackMode,
    PlaybackParams,
    VoiceAudioHost,
    VoicePlaybackHandle,
)

PARAMS = PlaybackParams(volume=0.04, spread=0.4, rolloff_start_distance=2.5)


def make_voice_client() -> Mock:
    voice_client = Mock()
    voice_client.is_playing.return_value = True
    voice_client.is_paused.return_value = False
    return voice_client


def test_missing_ffmpeg_for_buffered_audio_keeps_current_track(monkeypatch):
    def ffmpeg_not_found(*args, **kwargs):
        raise discord.ClientException("ffmpeg was not found.")

    monkeypatch.setattr(discord, "FFmpegPCMAudio", ffmpeg_not_found)
    voice_client = make_voice_client()
    host = VoiceAudioHost(voice_client, youtube=Mock())
    resource = AudioResource(track=make_tracks(1)[0], mode=PlaybackMode.BUFFERED, data=b"OggS")

    with pytest.raises(ResourceLoadFailure):
        host.start_playback(resource, PARAMS)

    voice_client.stop.assert_not_called()
    voice_client.play.assert_not_called()


def test_missing_ffmpeg_for_streams_keeps_current_track(monkeypatch):
    def no_binary(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(player.subprocess, "Popen", no_binary)
    voice_client = make_voice_client()
    host = VoiceAudioHost(voice_client, youtube=Mock())
    track = make_tracks(1)[0]
    resource = AudioResource(
        track=track,
        mode=PlaybackMode.STREAM,
        stream=StreamSource(url=track.source_url, http_headers={}),
    )

    with pytest.raises(ResourceLoadFailure):
        host.start_playback(resource, PARAMS)

    voice_client.stop.assert_not_called()


def test_released_resource_cannot_start():
    host = VoiceAudioHost(make_voice_client(), youtube=Mock())
    resource = AudioResource(track=make_tracks(1)[0], mode=PlaybackMode.BUFFERED, data=b"x")
    resource.release()

    with pytest.raises(ResourceLoadFailure):
        host.start_playback(resource, PARAMS)


def test_stale_handle_leaves_newer_audio_alone():
    voice_client = make_voice_client()
    old_source, new_source = Mock(), Mock()
    voice_client.source = new_source
    handle = VoicePlaybackHandle(voice_client, old_source, PARAMS)

    handle.pause()
    handle.stop()

    voice_client.pause.assert_not_called()
    voice_client.stop.assert_not_called()

    voice_client.source = old_source
    handle.stop()
    voice_client.stop.assert_called_once()


def test_handle_applies_volume_to_source():
    voice_client = make_voice_client()
    source = Mock()
    handle = VoicePlaybackHandle(voice_client, source, PARAMS)

    handle.set_state(PlaybackParams(volume=0.5, spread=0.1, rolloff_start_distance=1.0))

    assert source.volume == 0.5
    assert handle.params.spread == 0.1
