import random
from collections import Counter

import pytest

from conftest import make_tracks
from jukebox.music.catalog import ShuffleIndex, TrackCatalog


def test_regenerate_is_always_a_permutation():
    index = ShuffleIndex(random.Random(7))
    for length in range(0, 25):
        order = index.regenerate(length)
        assert sorted(order) == list(range(length))
        assert len(index) == length


def test_regenerate_is_uniform_over_positions():
    index = ShuffleIndex(random.Random(1234))
    trials = 1000
    counts = {pos: Counter() for pos in range(10)}
    for _ in range(trials):
        for pos, value in enumerate(index.regenerate(10)):
            counts[pos][value] += 1

    expected = trials / 10
    for pos in range(10):
        for value in range(10):
            # ~5 standard deviations
            assert abs(counts[pos][value] - expected) < 50, (pos, value, counts[pos][value])


def test_resolve_is_identity_when_disabled():
    index = ShuffleIndex(random.Random(3))
    index.regenerate(5)
    assert [index.resolve(i, enabled=False) for i in range(5)] == [0, 1, 2, 3, 4]


def test_resolve_uses_permutation_when_enabled():
    index = ShuffleIndex(random.Random(3))
    order = index.regenerate(5)
    assert [index.resolve(i, enabled=True) for i in range(5)] == order


def test_resolve_out_of_range_is_an_error():
    index = ShuffleIndex()
    index.regenerate(3)
    with pytest.raises(IndexError):
        index.resolve(3, enabled=True)


def test_empty_catalog_has_no_tracks():
    catalog = TrackCatalog()
    assert catalog.is_empty()
    assert len(catalog) == 0
    assert catalog.get(0) is None


def test_get_out_of_bounds_returns_none():
    catalog = TrackCatalog(make_tracks(2))
    assert catalog.get(1).name == "Track B"
    assert catalog.get(2) is None
    assert catalog.get(-1) is None


def test_load_replaces_tracks_and_resets_shuffle():
    catalog = TrackCatalog(make_tracks(3))
    catalog.shuffle_index.regenerate(3)

    catalog.load(make_tracks(5))

    assert len(catalog) == 5
    assert len(catalog.shuffle_index) == 0
    assert catalog.shuffle_index.resolve(4, enabled=False) == 4


def test_position_of_inverts_resolve():
    index = ShuffleIndex(random.Random(11))
    index.regenerate(6)
    for logical in range(6):
        physical = index.resolve(logical, enabled=True)
        assert index.position_of(physical, enabled=True) == logical
    assert index.position_of(4, enabled=False) == 4
