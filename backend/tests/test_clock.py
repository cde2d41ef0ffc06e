import pytest

from matchup.services.tournament.clock import (
    CHECKPOINTS,
    checkpoint_at,
    due_checkpoint,
    next_decide_at,
    remaining_sec,
    slice_ms,
)

START = 1_700_000_000.0
PERIOD = 100


def test_checkpoint_edges_within_cycle():
    assert checkpoint_at(START, PERIOD, START) == 0
    assert checkpoint_at(START, PERIOD, START + 1) == 1
    assert checkpoint_at(START, PERIOD, START + 19) == 1
    assert checkpoint_at(START, PERIOD, START + 21) == 2
    assert checkpoint_at(START, PERIOD, START + 41) == 3
    assert checkpoint_at(START, PERIOD, START + 61) == 4
    assert checkpoint_at(START, PERIOD, START + 81) == 5
    assert checkpoint_at(START, PERIOD, START + 99.5) == 5


def test_checkpoint_is_monotonic_and_bounded():
    seen = []
    for tenth in range(0, PERIOD * 10):
        k = checkpoint_at(START, PERIOD, START + tenth / 10.0)
        assert 0 <= k <= CHECKPOINTS
        seen.append(k)
    assert seen == sorted(seen)
    assert seen[-1] == CHECKPOINTS


def test_checkpoint_wraps_at_cycle_boundary():
    assert checkpoint_at(START, PERIOD, START + PERIOD) == 0
    assert checkpoint_at(START, PERIOD, START + PERIOD + 21) == 2


def test_period_not_divisible_by_five_uses_floor_slice():
    assert slice_ms(7) == 1400
    values = [checkpoint_at(START, 7, START + ms / 1000.0) for ms in range(0, 7000, 50)]
    assert values == sorted(values)
    assert all(0 <= v <= CHECKPOINTS for v in values)


def test_non_positive_period_rejected():
    with pytest.raises(ValueError):
        checkpoint_at(START, 0, START)


def test_due_checkpoint_does_not_wrap():
    assert due_checkpoint(START, PERIOD, START - 5) == 0
    assert due_checkpoint(START, PERIOD, START + 41) == 3
    assert due_checkpoint(START, PERIOD, START + PERIOD) == CHECKPOINTS
    assert due_checkpoint(START, PERIOD, START + 10 * PERIOD) == CHECKPOINTS


def test_next_decide_at_matches_checkpoint_edges():
    assert next_decide_at(START, PERIOD, 0) == pytest.approx(START + 0.002)
    assert next_decide_at(START, PERIOD, 4) == pytest.approx(START + 80.002)
    for k in range(CHECKPOINTS):
        edge = next_decide_at(START, PERIOD, k)
        assert checkpoint_at(START, PERIOD, edge + 0.001) == k + 1
        assert checkpoint_at(START, PERIOD, edge - 0.001) == k


def test_remaining_sec_rounds_up_and_floors_at_zero():
    assert remaining_sec(START, PERIOD, START) == 100
    assert remaining_sec(START, PERIOD, START + 0.5) == 100
    assert remaining_sec(START, PERIOD, START + 93) == 7
    assert remaining_sec(START, PERIOD, START + 150) == 0
