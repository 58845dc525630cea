"""SQLite-backed session store.

One row per session holds the playlist blob and the playback state blob. The
public API is async; each call runs on a worker thread with its own connection
so the event loop never blocks on disk.
"""

import asyncio
import json
import sqlite3
from pathlib import Path

from loguru import logger

from jukebox.errors import PersistenceFailure, StoreConnectionError
from jukebox.models.state import PlaybackState, SessionRecord
from jukebox.models.track import TrackDescriptor

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessiondata (
    sessionid TEXT PRIMARY KEY,
    playlistjson TEXT,
    statejson TEXT
)
"""


class SessionStore:
    def __init__(self, db_path: Path | str):
        self._db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path, timeout=10.0)

    async def initialize(self) -> None:
        """Open the database and create the table. Failure here is fatal to the process."""
        try:
            await asyncio.to_thread(self._initialize_sync)
        except (sqlite3.Error, OSError) as e:
            raise StoreConnectionError(f"Cannot open session store at {self._db_path}: {e}") from e
        logger.info(f"Session store ready at {self._db_path}")

    async def get_session_record(self, session_id: str) -> SessionRecord | None:
        row = await self._run(self._select_sync, session_id)
        if row is None:
            return None
        playlist_json, state_json = row
        return SessionRecord(
            session_id=session_id,
            playlist=_decode_playlist(session_id, playlist_json),
            state=_decode_state(session_id, state_json),
        )

    async def upsert_playlist(self, session_id: str, tracks: list[TrackDescriptor]) -> None:
        blob = json.dumps([t.to_dict() for t in tracks])
        await self._run(self._upsert_sync, "playlistjson", session_id, blob)

    async def upsert_state(self, session_id: str, snapshot: dict) -> None:
        await self._run(self._upsert_sync, "statejson", session_id, json.dumps(snapshot))

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise PersistenceFailure(str(e)) from e

    def _initialize_sync(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            with conn:
                conn.execute(SCHEMA)
        finally:
            conn.close()

    def _select_sync(self, session_id: str) -> tuple[str | None, str | None] | None:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT playlistjson, statejson FROM sessiondata WHERE sessionid = ?",
                (session_id,),
            )
            return cursor.fetchone()
        finally:
            conn.close()

    def _upsert_sync(self, column: str, session_id: str, blob: str) -> None:
        # column is one of two literals chosen above, never user input
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO sessiondata (sessionid, {column}) VALUES (?, ?) "
                    f"ON CONFLICT(sessionid) DO UPDATE SET {column} = excluded.{column}",
                    (session_id, blob),
                )
        finally:
            conn.close()


def _decode_playlist(session_id: str, blob: str | None) -> list[TrackDescriptor]:
    if not blob:
        return []
    try:
        return [TrackDescriptor.from_dict(item) for item in json.loads(blob)]
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable playlist for session {session_id}: {e}")
        return []


def _decode_state(session_id: str, blob: str | None) -> PlaybackState | None:
    if not blob:
        return None
    try:
        return PlaybackState.from_snapshot(json.loads(blob))
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable state for session {session_id}: {e}")
        return None
