from webdaw.models import EntityKind, IdAllocator


def test_ids_start_at_one_and_increase_per_kind():
    ids = IdAllocator()
    assert ids.next_id(EntityKind.CHANNEL) == 1
    assert ids.next_id(EntityKind.CHANNEL) == 2
    # kinds are independent
    assert ids.next_id(EntityKind.MIXER) == 1
    assert ids.peek(EntityKind.CHANNEL) == 3


def test_seed_only_raises():
    ids = IdAllocator()
    ids.seed(EntityKind.PATTERN, 10)
    assert ids.next_id(EntityKind.PATTERN) == 10

    ids.seed(EntityKind.PATTERN, 3)
    assert ids.next_id(EntityKind.PATTERN) == 11


def test_copy_is_independent():
    ids = IdAllocator()
    ids.next_id(EntityKind.CLIP)
    clone = ids.copy()
    clone.next_id(EntityKind.CLIP)

    assert ids.peek(EntityKind.CLIP) == 2
    assert clone.peek(EntityKind.CLIP) == 3
    assert set(ids.counters()) == set(EntityKind)
