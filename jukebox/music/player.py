import asyncio
import io
import queue
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import discord
import requests
from loguru import logger

from jukebox.clients.youtube import StreamSource, YouTubeClient
from jukebox.errors import ResourceLoadFailure
from jukebox.models.track import TrackDescriptor

# Audio constants
FRAME_SIZE = 3840  # 20ms of 48kHz stereo 16-bit audio (48000 * 2 * 2 * 0.02)
FRAMES_PER_SECOND = 50

# Buffer configuration
AUDIO_BUFFER_SECONDS = 5.0  # Max buffer size
AUDIO_PREBUFFER_SECONDS = 2.0  # Wait for this much audio before starting playback

DOWNLOAD_TIMEOUT_SECONDS = 60
MAX_BUFFERED_BYTES = 64 * 1024 * 1024


class PlaybackMode(str, Enum):
    STREAM = "stream"
    BUFFERED = "buffered"


@dataclass
class PlaybackParams:
    volume: float
    spread: float
    rolloff_start_distance: float
    start_offset_seconds: float = 0.0


@dataclass
class AudioResource:
    """A track made ready for decoding. Buffered resources hold the whole file."""

    track: TrackDescriptor
    mode: PlaybackMode
    stream: StreamSource | None = None
    data: bytes | None = None

    def release(self) -> None:
        self.data = None
        self.stream = None


class PlaybackHandle(Protocol):
    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def set_state(self, params: PlaybackParams) -> None: ...


class AudioHost(Protocol):
    """What a session needs from whatever actually renders audio."""

    async def create_resource(self, track: TrackDescriptor, mode: PlaybackMode) -> AudioResource: ...

    def start_playback(self, resource: AudioResource, params: PlaybackParams) -> PlaybackHandle: ...


@dataclass
class LoadedTrack:
    """The one audio resource a session keeps resident, plus its playback handle."""

    logical_index: int
    physical_index: int
    track: TrackDescriptor
    resource: AudioResource
    handle: PlaybackHandle | None = None
    destroyed: bool = field(default=False, init=False)

    def teardown(self) -> None:
        """Stop playback and drop the decoded resource. Safe to call twice."""
        if self.destroyed:
            return
        self.destroyed = True
        if self.handle is not None:
            self.handle.stop()
            self.handle = None
        self.resource.release()


class BufferedFFmpegSource(discord.AudioSource):
    """Audio source that streams a URL through ffmpeg with buffering.

    Uses a background thread to continuously read from ffmpeg into a thread-safe
    buffer, isolating Discord's read() calls from network jitter.
    """

    def __init__(
        self,
        url: str,
        http_headers: dict[str, str] | None = None,
        start_offset_seconds: float = 0.0,
        buffer_seconds: float = AUDIO_BUFFER_SECONDS,
        prebuffer_seconds: float = AUDIO_PREBUFFER_SECONDS,
    ):
        self.url = url
        self.http_headers = http_headers or {}
        self.start_offset_seconds = start_offset_seconds
        self._ffmpeg: subprocess.Popen | None = None

        self._buffer_frames = int(buffer_seconds * FRAMES_PER_SECOND)
        self._prebuffer_frames = int(prebuffer_seconds * FRAMES_PER_SECOND)

        self._buffer: queue.Queue[bytes] = queue.Queue(maxsize=self._buffer_frames)
        self._buffer_thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._prebuffer_ready = threading.Event()
        self._eof = False

        self._start_buffering()

    def _start_buffering(self):
        self._spawn_process()
        self._buffer_thread = threading.Thread(target=self._buffer_loop, daemon=True)
        self._buffer_thread.start()

    def _spawn_process(self):
        ffmpeg_path = shutil.which("ffmpeg") or "ffmpeg"
        args = [
            ffmpeg_path,
            "-reconnect", "1",
            "-reconnect_streamed", "1",
            "-reconnect_delay_max", "5",
        ]
        if self.http_headers:
            header_blob = "".join(f"{k}: {v}\r\n" for k, v in self.http_headers.items())
            args += ["-headers", header_blob]
        if self.start_offset_seconds > 0:
            args += ["-ss", f"{self.start_offset_seconds:.2f}"]
        args += [
            "-i", self.url,
            "-f", "s16le",
            "-ar", "48000",
            "-ac", "2",
            "-loglevel", "quiet",
            "pipe:1",
        ]
        self._ffmpeg = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )

    def _buffer_loop(self):
        """Background thread: continuously read from ffmpeg into buffer."""
        frames_buffered = 0

        while not self._stop_event.is_set():
            data = self._ffmpeg.stdout.read(FRAME_SIZE)

            if len(data) < FRAME_SIZE:
                self._eof = True
                self._prebuffer_ready.set()  # Unblock read() if waiting
                break

            try:
                self._buffer.put(data, timeout=1.0)
                frames_buffered += 1
                if frames_buffered == self._prebuffer_frames:
                    self._prebuffer_ready.set()
            except queue.Full:
                pass

    def read(self) -> bytes:
        """Read 20ms of audio from buffer."""
        if not self._prebuffer_ready.is_set():
            self._prebuffer_ready.wait(timeout=10.0)

        try:
            return self._buffer.get(timeout=0.5)
        except queue.Empty:
            if self._eof:
                return b""
            # Underrun - silence rather than speed up
            return b"\x00" * FRAME_SIZE

    def cleanup(self):
        self._stop_event.set()

        if self._buffer_thread and self._buffer_thread.is_alive():
            self._buffer_thread.join(timeout=2.0)

        if self._ffmpeg:
            self._ffmpeg.kill()
            self._ffmpeg = None


class VoicePlaybackHandle:
    """Playback handle over a guild voice client."""

    def __init__(
        self,
        voice_client: discord.VoiceClient,
        source: discord.PCMVolumeTransformer,
        params: PlaybackParams,
    ):
        self.voice_client = voice_client
        self.source = source
        self.params = params

    @property
    def is_current(self) -> bool:
        """Whether the voice client is still playing this handle's source."""
        return self.voice_client.source is self.source

    def pause(self) -> None:
        if self.is_current and self.voice_client.is_playing():
            self.voice_client.pause()

    def resume(self) -> None:
        if self.is_current and self.voice_client.is_paused():
            self.voice_client.resume()

    def stop(self) -> None:
        # A newer track may already own the connection
        if self.is_current and (self.voice_client.is_playing() or self.voice_client.is_paused()):
            self.voice_client.stop()

    def set_state(self, params: PlaybackParams) -> None:
        # Voice has no spatial audio; spread and rolloff are carried for the panel only
        self.params = params
        self.source.volume = params.volume


class VoiceAudioHost:
    """Renders a session's audio into one guild voice connection."""

    def __init__(self, voice_client: discord.VoiceClient, youtube: YouTubeClient):
        self.voice_client = voice_client
        self.youtube = youtube
        self._http = requests.Session()

    async def create_resource(self, track: TrackDescriptor, mode: PlaybackMode) -> AudioResource:
        if track.is_youtube:
            stream = await asyncio.to_thread(self.youtube.get_stream_source, track.source_url)
            if stream is None:
                raise ResourceLoadFailure(track.source_url, "no playable audio stream")
            return AudioResource(track=track, mode=PlaybackMode.STREAM, stream=stream)

        if mode == PlaybackMode.STREAM:
            await asyncio.to_thread(self._probe, track.source_url)
            return AudioResource(
                track=track,
                mode=mode,
                stream=StreamSource(url=track.source_url, http_headers={}),
            )

        data = await asyncio.to_thread(self._download, track.source_url)
        return AudioResource(track=track, mode=mode, data=data)

    def _probe(self, url: str) -> None:
        try:
            response = self._http.head(url, allow_redirects=True, timeout=DOWNLOAD_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResourceLoadFailure(url, str(e)) from e

    def _download(self, url: str) -> bytes:
        buf = io.BytesIO()
        try:
            with self._http.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS) as response:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    buf.write(chunk)
                    if buf.tell() > MAX_BUFFERED_BYTES:
                        raise ResourceLoadFailure(url, "file too large to buffer")
        except requests.RequestException as e:
            raise ResourceLoadFailure(url, str(e)) from e

        if buf.tell() == 0:
            raise ResourceLoadFailure(url, "empty response")
        return buf.getvalue()

    def _build_source(self, resource: AudioResource, params: PlaybackParams) -> discord.AudioSource:
        if resource.mode == PlaybackMode.BUFFERED and resource.data is not None:
            before = f"-ss {params.start_offset_seconds:.2f}" if params.start_offset_seconds > 0 else None
            return discord.FFmpegPCMAudio(io.BytesIO(resource.data), pipe=True, before_options=before)
        if resource.stream is not None:
            return BufferedFFmpegSource(
                resource.stream.url,
                http_headers=resource.stream.http_headers,
                start_offset_seconds=params.start_offset_seconds,
            )
        raise ResourceLoadFailure(resource.track.source_url, "resource already released")

    def start_playback(self, resource: AudioResource, params: PlaybackParams) -> VoicePlaybackHandle:
        """Decode the resource into the voice connection, replacing whatever it was playing.

        The ffmpeg source is built before the current audio is stopped, so a
        missing or broken ffmpeg leaves the previous track audible.
        """
        try:
            pcm = self._build_source(resource, params)
        except (discord.ClientException, OSError) as e:
            raise ResourceLoadFailure(resource.track.source_url, str(e)) from e

        source = discord.PCMVolumeTransformer(pcm, volume=params.volume)

        def after_callback(error: Exception | None):
            if error:
                logger.error(f"Voice playback error for {resource.track.name}: {error}")

        try:
            if self.voice_client.is_playing() or self.voice_client.is_paused():
                self.voice_client.stop()
            self.voice_client.play(source, after=after_callback)
        except discord.ClientException as e:
            source.cleanup()
            raise ResourceLoadFailure(resource.track.source_url, str(e)) from e

        return VoicePlaybackHandle(self.voice_client, source, params)
