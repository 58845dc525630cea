from dataclasses import dataclass

import yt_dlp
from loguru import logger


@dataclass
class StreamSource:
    url: str
    http_headers: dict[str, str]


class YouTubeClient:
    YTDL_OPTIONS = {
        "format": "bestaudio/best",
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
        "extract_flat": False,
    }

    def __init__(self):
        self._ytdl = yt_dlp.YoutubeDL(self.YTDL_OPTIONS)

    def get_stream_source(self, video_url: str) -> StreamSource | None:
        """
        Extract the direct audio stream (URL + headers) for a YouTube video.
        Call this right before playback - URLs expire after ~6 hours.
        """
        try:
            info = self._ytdl.extract_info(video_url, download=False)
        except yt_dlp.DownloadError as e:
            logger.warning(f"yt-dlp could not extract {video_url}: {e}")
            return None

        http_headers = info.get("http_headers", {})
        formats = info.get("formats", [])
        audio_formats = [
            f for f in formats if f.get("acodec") != "none" and f.get("vcodec") == "none"
        ]

        if audio_formats:
            # Opus first, it decodes cheapest for voice
            opus = [f for f in audio_formats if "opus" in (f.get("acodec") or "").lower()]
            chosen = opus[0] if opus else audio_formats[0]
            url = chosen.get("url")
            http_headers = chosen.get("http_headers", http_headers)
        else:
            url = info.get("url")

        if not url:
            return None
        return StreamSource(url=url, http_headers=http_headers)

    def get_playlist_entries(self, url: str) -> list[dict]:
        """Get video entries from a YouTube playlist using flat extraction."""
        opts = {
            "extract_flat": "in_playlist",
            "quiet": True,
            "no_warnings": True,
            "ignoreerrors": True,
        }
        with yt_dlp.YoutubeDL(opts) as ytdl:
            try:
                result = ytdl.extract_info(url, download=False)
            except yt_dlp.DownloadError as e:
                logger.warning(f"yt-dlp could not read playlist {url}: {e}")
                return []

        entries = result.get("entries", []) if result else []
        return [
            {
                "id": e.get("id"),
                "title": e.get("title") or "Unknown",
                "duration": e.get("duration") or 0,
            }
            for e in entries
            if e and e.get("id")
        ]
