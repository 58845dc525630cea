import asyncio

from loguru import logger

from jukebox.models.state import PlaybackState
from jukebox.music.transport import TransportController

CLOCK_INTERVAL_SECONDS = 1.0
# Duration tags are imprecise; wait a little past the end before advancing
TRACK_END_BUFFER_SECONDS = 2.0
# Listeners hear about elapsed time every this many ticks while playing
PROGRESS_NOTIFY_TICKS = 5


class PlaybackClock:
    """Integrates elapsed play time and advances when the current track runs out."""

    def __init__(
        self,
        state: PlaybackState,
        controller: TransportController,
        interval_seconds: float = CLOCK_INTERVAL_SECONDS,
        buffer_seconds: float = TRACK_END_BUFFER_SECONDS,
        progress_ticks: int = PROGRESS_NOTIFY_TICKS,
    ):
        self.state = state
        self.controller = controller
        self.interval_seconds = interval_seconds
        self.buffer_seconds = buffer_seconds
        self.progress_ticks = progress_ticks
        self._ticks_since_progress = 0
        self._task: asyncio.Task | None = None
        self._stopped = False

    async def tick(self) -> bool:
        """One clock step. Returns True if it advanced to the next track."""
        if self._stopped:
            return False

        if self.state.is_playing:
            self.state.elapsed_seconds += self.interval_seconds

        loaded = self.controller.loaded
        if loaded is None or loaded.destroyed:
            return False

        if self.state.elapsed_seconds > loaded.track.duration_seconds + self.buffer_seconds:
            logger.debug(f"'{loaded.track.name}' finished, advancing")
            self._ticks_since_progress = 0
            await self.controller.skip_forward()
            return True

        if self.state.is_playing and self.progress_ticks > 0:
            self._ticks_since_progress += 1
            if self._ticks_since_progress >= self.progress_ticks:
                self._ticks_since_progress = 0
                self.controller.publish_progress()
        return False

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception:
                logger.exception("Playback clock tick failed")

    def start(self) -> None:
        self._stopped = False
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        self._stopped = True
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
