import pytest

from metagraph_sync.services.sequence_cache import DEFAULT_MAX_SIZE, SequenceCache


def test_resolve_uses_authority_when_nothing_cached():
    cache = SequenceCache()
    assert cache.resolve("fiber-1", 0) == 0
    assert cache.resolve("fiber-1", 7) == 7
    assert len(cache) == 0


def test_rapid_submissions_increase_by_one_while_authority_lags():
    cache = SequenceCache()
    seen = []
    for _ in range(3):
        sequence = cache.resolve("f", 0)
        seen.append(sequence)
        cache.advance("f", sequence)

    assert seen == [0, 1, 2]
    assert cache.get("f") == 3


def test_authority_wins_when_ahead_of_cache():
    cache = SequenceCache()
    for sequence in range(3):
        cache.advance("f", sequence)
    assert cache.get("f") == 3

    assert cache.resolve("f", 5) == 5


def test_advance_never_moves_backwards():
    cache = SequenceCache()
    cache.advance("f", 4)
    cache.advance("f", 1)
    cache.advance("f", 4)

    assert cache.get("f") == 5


def test_negative_advance_does_not_create_entry():
    cache = SequenceCache()
    cache.advance("f", -1)

    assert "f" not in cache


def test_entities_are_independent():
    cache = SequenceCache()
    cache.advance("a", 0)
    cache.advance("a", 1)
    cache.advance("b", 9)

    assert cache.resolve("a", 0) == 2
    assert cache.resolve("b", 0) == 10
    assert cache.resolve("c", 0) == 0


def test_capacity_evicts_least_recently_advanced():
    cache = SequenceCache(max_size=5)
    for i in range(1, 6):
        cache.advance(f"fiber-{i}", 0)
    assert all(cache.get(f"fiber-{i}") == 1 for i in range(1, 6))

    cache.advance("fiber-6", 0)

    assert len(cache) == 5
    assert "fiber-1" not in cache
    assert list(cache.entity_ids()) == [f"fiber-{i}" for i in range(2, 7)]


def test_refreshed_entry_survives_eviction():
    cache = SequenceCache(max_size=3)
    cache.advance("a", 0)
    cache.advance("b", 0)
    cache.advance("c", 0)

    cache.advance("a", 1)
    cache.advance("d", 0)

    assert "a" in cache
    assert "b" not in cache
    assert list(cache.entity_ids()) == ["c", "a", "d"]


def test_non_advancing_write_does_not_refresh_order():
    cache = SequenceCache(max_size=2)
    cache.advance("a", 5)
    cache.advance("b", 0)

    cache.advance("a", 2)
    cache.advance("c", 0)

    assert "a" not in cache
    assert list(cache.entity_ids()) == ["b", "c"]


def test_reset_removes_entry_and_ignores_unknown_ids():
    cache = SequenceCache()
    cache.advance("f", 3)

    cache.reset("f")
    cache.reset("never-seen")

    assert "f" not in cache
    assert cache.resolve("f", 1) == 1


def test_clear_empties_cache():
    cache = SequenceCache()
    cache.advance("a", 0)
    cache.advance("b", 0)

    cache.clear()

    assert len(cache) == 0


def test_instances_do_not_share_state():
    first = SequenceCache()
    second = SequenceCache()
    first.advance("f", 0)

    assert second.get("f") == 0
    assert first.max_size == second.max_size == DEFAULT_MAX_SIZE


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        SequenceCache(max_size=0)
