from dataclasses import dataclass


@dataclass
class TrackMetadata:
    """Metadata read from an audio file. Source-agnostic intermediate representation."""

    title: str | None
    duration_seconds: float


@dataclass(frozen=True)
class TrackDescriptor:
    """A track ready to be placed in a session catalog and played."""

    name: str
    duration_seconds: float
    source_url: str
    file_name: str = ""

    @property
    def duration_str(self) -> str:
        """Format duration as MM:SS"""
        total_seconds = int(self.duration_seconds)
        minutes = total_seconds // 60
        seconds = total_seconds % 60
        return f"{minutes}:{seconds:02d}"

    @property
    def is_youtube(self) -> bool:
        return "youtube.com/watch" in self.source_url or "youtu.be/" in self.source_url

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "duration": self.duration_seconds,
            "url": self.source_url,
            "fileName": self.file_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrackDescriptor":
        return cls(
            name=data.get("name") or "Unknown",
            duration_seconds=float(data.get("duration") or 0),
            source_url=data.get("url", ""),
            file_name=data.get("fileName", ""),
        )
