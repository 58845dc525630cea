import asyncio

from loguru import logger

from jukebox.errors import PersistenceFailure
from jukebox.models.state import PlaybackState
from jukebox.music.catalog import TrackCatalog
from jukebox.storage.session_store import SessionStore

PERSIST_INTERVAL_SECONDS = 10.0


class PersistenceGate:
    """Change-gated, periodic saving of one session's state and playlist.

    Flags are cleared before each write and set again if the write fails, so a
    mutation that lands mid-write is picked up by the next tick.
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        state: PlaybackState,
        catalog: TrackCatalog,
        interval_seconds: float = PERSIST_INTERVAL_SECONDS,
    ):
        self.session_id = session_id
        self.store = store
        self.state = state
        self.catalog = catalog
        self.interval_seconds = interval_seconds
        self._dirty = False
        self._playlist_dirty = False
        self._task: asyncio.Task | None = None

    @property
    def dirty(self) -> bool:
        return self._dirty or self._playlist_dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def mark_playlist_dirty(self) -> None:
        self._playlist_dirty = True

    async def tick(self) -> int:
        """Write whatever changed since the last successful flush. Returns the write count."""
        writes = 0

        if self._playlist_dirty:
            self._playlist_dirty = False
            try:
                await self.store.upsert_playlist(self.session_id, self.catalog.get_list())
                writes += 1
            except PersistenceFailure as e:
                self._playlist_dirty = True
                logger.warning(f"Playlist save failed for {self.session_id}, will retry: {e}")
            except Exception:
                self._playlist_dirty = True
                raise

        if self._dirty:
            self._dirty = False
            try:
                await self.store.upsert_state(self.session_id, self.state.snapshot())
                writes += 1
            except PersistenceFailure as e:
                self._dirty = True
                logger.warning(f"State save failed for {self.session_id}, will retry: {e}")
            except Exception:
                self._dirty = True
                raise

        return writes

    async def flush(self) -> None:
        """Final best-effort save, used on teardown."""
        writes = await self.tick()
        if self.dirty:
            logger.error(f"Unsaved changes dropped for session {self.session_id}")
        elif writes:
            logger.debug(f"Flushed {writes} write(s) for session {self.session_id}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception:
                logger.exception(f"Save tick failed for session {self.session_id}")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
