import random

from jukebox.models.track import TrackDescriptor


class ShuffleIndex:
    """Permutation mapping logical song positions onto catalog positions."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._order: list[int] = []

    def regenerate(self, length: int) -> list[int]:
        """Build a fresh uniform permutation of range(length) (Fisher-Yates)."""
        order = list(range(length))
        for i in range(length - 1, 0, -1):
            j = self._rng.randint(0, i)
            order[i], order[j] = order[j], order[i]
        self._order = order
        return list(order)

    def reset(self) -> None:
        """Drop the permutation; resolution falls back to identity."""
        self._order = []

    def resolve(self, logical_index: int, enabled: bool) -> int:
        """Map a logical index to the catalog index that should play."""
        if not enabled:
            return logical_index
        return self._order[logical_index]

    def position_of(self, physical_index: int, enabled: bool) -> int:
        """Inverse of resolve: the logical index that plays a catalog position."""
        if not enabled or physical_index not in self._order:
            return physical_index
        return self._order.index(physical_index)

    @property
    def order(self) -> list[int]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)


class TrackCatalog:
    """Ordered track list for a single session."""

    def __init__(self, tracks: list[TrackDescriptor] | None = None):
        self._tracks: list[TrackDescriptor] = list(tracks or [])
        self.shuffle_index = ShuffleIndex()

    def load(self, tracks: list[TrackDescriptor]) -> None:
        """Replace the catalog. The shuffle permutation is reset to identity."""
        self._tracks = list(tracks)
        self.shuffle_index.reset()

    def get(self, index: int) -> TrackDescriptor | None:
        """Get the track at a position. Returns None if empty or out of range."""
        if 0 <= index < len(self._tracks):
            return self._tracks[index]
        return None

    def get_list(self) -> list[TrackDescriptor]:
        """Get a copy of the catalog as a list."""
        return list(self._tracks)

    def is_empty(self) -> bool:
        return len(self._tracks) == 0

    def __len__(self) -> int:
        return len(self._tracks)
