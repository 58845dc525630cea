import io
import re
from urllib.parse import unquote, urlsplit

import requests
from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from jukebox.models.track import TrackMetadata

AUDIO_EXTENSIONS = ("ogg", "mp3", "m4a", "flac", "wav")

# Shared-file links inside a Dropbox folder page
LINK_PATTERN = re.compile(
    r"https://www\.dropbox\.com/sh/[a-zA-Z0-9%\-?_/=.&+]*?\.(?:"
    + "|".join(AUDIO_EXTENSIONS)
    + r")(?![a-zA-Z0-9])",
    re.IGNORECASE,
)

REQUEST_TIMEOUT_SECONDS = 30


def is_dropbox_folder(url: str) -> bool:
    return "dropbox.com/sh/" in url


def is_scl_folder(url: str) -> bool:
    """New-style shared folder links, whose pages carry no scrapeable file links."""
    return "dropbox.com/scl/fo/" in url


def extract_file_links(page: str) -> list[str]:
    """Pull unique audio links out of a folder page, in page order."""
    seen: dict[str, None] = {}
    for match in LINK_PATTERN.findall(page):
        seen.setdefault(match, None)
    return list(seen)


def to_direct_download(link: str) -> str:
    """Rewrite a share link so it serves the raw file instead of a preview page."""
    return link.replace("www.dropbox", "dl.dropboxusercontent")


def extract_file_name(url: str) -> str:
    """Readable name from the last path segment of a link, without extension."""
    path = urlsplit(url).path
    name = path.rsplit("/", 1)[-1]
    name = unquote(name)
    for ext in AUDIO_EXTENSIONS:
        if name.lower().endswith("." + ext):
            name = name[: -(len(ext) + 1)]
            break
    return name


class DropboxClient:
    """Client for reading shared Dropbox folders and the audio files inside them."""

    def __init__(self, session: requests.Session | None = None):
        self._http = session or requests.Session()

    def list_folder(self, folder_url: str) -> list[str]:
        """
        Fetch a shared folder page and return direct-download links for its audio files.
        Raises requests.RequestException if the page cannot be fetched.
        """
        response = self._http.get(folder_url, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        links = extract_file_links(response.text)
        logger.debug(f"{len(links)} audio links found in {folder_url}")
        return [to_direct_download(link) for link in links]

    def get_metadata(self, file_url: str) -> TrackMetadata | None:
        """
        Download an audio file and read its title tag and duration.
        Returns None if the file is unreachable or not a readable audio file.
        """
        try:
            response = self._http.get(file_url, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Could not fetch {file_url}: {e}")
            return None

        try:
            audio = MutagenFile(io.BytesIO(response.content), easy=True)
        except MutagenError as e:
            logger.warning(f"Could not parse metadata for {file_url}: {e}")
            return None

        if audio is None or audio.info is None:
            logger.warning(f"Unrecognised audio format: {file_url}")
            return None

        titles = audio.tags.get("title") if audio.tags else None
        title = titles[0] if titles else None
        return TrackMetadata(title=title or None, duration_seconds=float(audio.info.length))
