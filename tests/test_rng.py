import json

import pytest

from roguecore.sim.rng import SEED_MODULUS, SEED_SOURCE_TIME, RandomService, normalize_seed


def test_same_seed_produces_identical_stream() -> None:
    first = RandomService(42)
    second = RandomService(42)

    assert [first.next() for _ in range(20)] == [second.next() for _ in range(20)]
    assert first.draw_count == 20


def test_reseed_restarts_stream_and_draw_count() -> None:
    rng = RandomService(9)
    expected = [rng.next() for _ in range(5)]

    rng.reseed(9)

    assert rng.draw_count == 0
    assert [rng.next() for _ in range(5)] == expected


def test_rand_int_swaps_reversed_bounds_and_stays_inclusive() -> None:
    rng = RandomService(3)
    values = {rng.rand_int(6, 2) for _ in range(400)}

    assert values == {2, 3, 4, 5, 6}


def test_rand_float_rounds_to_requested_decimals() -> None:
    rng = RandomService(11)
    for _ in range(50):
        value = rng.rand_float(10, 35, 0)
        assert 10 <= value <= 35
        assert value == int(value)


def test_chance_extremes() -> None:
    rng = RandomService(1)

    assert not any(rng.chance(0.0) for _ in range(50))
    assert all(rng.chance(1.0) for _ in range(50))


def test_state_payload_round_trips_through_json() -> None:
    rng = RandomService(77)
    for _ in range(13):
        rng.next()

    payload = json.loads(json.dumps(rng.state_payload()))
    restored = RandomService(1)
    restored.restore_state(payload)

    assert restored.seed == 77
    assert restored.draw_count == 13
    assert [restored.next() for _ in range(5)] == [rng.next() for _ in range(5)]


def test_missing_seed_is_time_derived_and_recorded() -> None:
    rng = RandomService()

    assert rng.seed_source == SEED_SOURCE_TIME
    assert 0 <= rng.seed <= SEED_MODULUS


def test_normalize_seed_masks_to_unsigned_32_bits() -> None:
    assert normalize_seed(-1) == SEED_MODULUS
    assert normalize_seed(5) == 5
    with pytest.raises(ValueError, match="seed must be an integer"):
        normalize_seed(True)


def test_choice_rejects_empty_options() -> None:
    with pytest.raises(ValueError, match="options must be non-empty"):
        RandomService(1).choice([])
