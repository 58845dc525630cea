import asyncio
from typing import Iterator

import requests
from loguru import logger

from jukebox.clients.dropbox import DropboxClient, extract_file_name, is_dropbox_folder, is_scl_folder
from jukebox.clients.youtube import YouTubeClient
from jukebox.errors import ResolutionFailure
from jukebox.models.track import TrackDescriptor

MAX_FOLDER_TRACKS = 500


class Resolver:
    """Resolves a shared folder link into a session playlist."""

    def __init__(self, dropbox: DropboxClient, youtube: YouTubeClient):
        self.dropbox = dropbox
        self.youtube = youtube

    async def resolve_folder(self, url: str) -> list[TrackDescriptor]:
        """
        Resolve a folder link to its tracks without blocking the event loop.

        Supports:
        - Dropbox shared folders (audio files are downloaded and their tags read)
        - YouTube playlists

        Raises ResolutionFailure if nothing playable was found.
        """
        return await asyncio.to_thread(self.resolve, url)

    def resolve(self, url: str) -> list[TrackDescriptor]:
        input_type = self._detect_input_type(url)
        if input_type == "dropbox_folder":
            tracks = list(self.iter_dropbox_folder(url))
        elif input_type == "youtube_playlist":
            tracks = list(self.iter_youtube_playlist(url))
        elif input_type == "dropbox_scl_folder":
            raise ResolutionFailure(
                "New-style Dropbox folder links (dropbox.com/scl/fo/) are not supported. "
                "Share the folder with a dropbox.com/sh/ link instead."
            )
        else:
            raise ResolutionFailure(f"Not a supported folder link: {url}")

        if not tracks:
            raise ResolutionFailure(f"No playable audio found in: {url}")
        logger.info(f"Resolved {len(tracks)} tracks from {url}")
        return tracks

    def _detect_input_type(self, url: str) -> str:
        if is_dropbox_folder(url):
            return "dropbox_folder"
        if is_scl_folder(url):
            return "dropbox_scl_folder"
        if "youtube.com/playlist" in url:
            return "youtube_playlist"
        return "unsupported"

    def iter_dropbox_folder(self, url: str) -> Iterator[TrackDescriptor]:
        """Yield tracks from a Dropbox folder one at a time, skipping unreadable files."""
        try:
            links = self.dropbox.list_folder(url)
        except requests.RequestException as e:
            raise ResolutionFailure(f"Could not load folder: {url}") from e

        for link in links[:MAX_FOLDER_TRACKS]:
            metadata = self.dropbox.get_metadata(link)
            if metadata is None:
                continue
            file_name = extract_file_name(link)
            yield TrackDescriptor(
                name=metadata.title or file_name,
                duration_seconds=metadata.duration_seconds,
                source_url=link,
                file_name=file_name,
            )

    def iter_youtube_playlist(self, url: str) -> Iterator[TrackDescriptor]:
        """Yield tracks from a YouTube playlist one at a time."""
        entries = self.youtube.get_playlist_entries(url)
        if not entries:
            raise ResolutionFailure(f"Could not load YouTube playlist: {url}")

        for entry in entries[:MAX_FOLDER_TRACKS]:
            yield TrackDescriptor(
                name=entry["title"],
                duration_seconds=float(entry["duration"]),
                source_url=f"https://www.youtube.com/watch?v={entry['id']}",
                file_name=entry["id"],
            )
