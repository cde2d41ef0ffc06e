"""Bracket shape: rounds, slots, pairings and phase keys.

A cycle has 31 slots. Slot ``n`` of round ``R`` is fed by slots ``2n-1`` and
``2n`` of round ``R-1``. A phase key joins the cycle's base timestamp and a
slot, e.g. ``2025-01-01T00:00:00Z::qf2``.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from matchup.errors import ValidationError

RED = 'red'
BLUE = 'blue'
COLORS = (RED, BLUE)

KEY_SEPARATOR = '::'

STAGES = ('r32', 'r16', 'qf', 'sf', 'final')
STAGE_COMPLETE = 'complete'
ROUND_COUNT = len(STAGES)

DEFAULT_SEED_URL = 'https://picsum.photos/seed/{seed}/1600/1200'

# Round number -> slot names, in bracket order
_ROUND_SLOTS: Dict[int, List[str]] = {
    1: [f'r32_{i}' for i in range(1, 17)],
    2: [f'r16_{i}' for i in range(1, 9)],
    3: [f'qf{i}' for i in range(1, 5)],
    4: ['sf1', 'sf2'],
    5: ['final'],
}
_SLOT_ROUND: Dict[str, int] = {s: r for r, slots in _ROUND_SLOTS.items() for s in slots}

ALL_SLOTS: List[str] = [s for r in range(1, ROUND_COUNT + 1) for s in _ROUND_SLOTS[r]]

_LABELS = {1: 'R32', 2: 'R16', 3: 'QF', 4: 'SF', 5: 'Final'}


def iso_seconds(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def iso_millis(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def stage_for_round(round_num: int) -> str:
    return STAGES[round_num - 1]


def round_for_stage(stage: str) -> int:
    if stage == STAGE_COMPLETE:
        return ROUND_COUNT + 1
    return STAGES.index(stage) + 1


def is_slot(slot: str) -> bool:
    return slot in _SLOT_ROUND


def round_of(slot: str) -> int:
    try:
        return _SLOT_ROUND[slot]
    except KeyError:
        raise ValidationError(f'Unknown slot: {slot}')


def slots_for_round(round_num: int) -> List[str]:
    if round_num not in _ROUND_SLOTS:
        raise ValidationError(f'Unknown round: {round_num}')
    return list(_ROUND_SLOTS[round_num])


def slot_index(slot: str) -> int:
    """1-based position of the slot within its round."""
    return _ROUND_SLOTS[round_of(slot)].index(slot) + 1


def parents_of(slot: str) -> Optional[Tuple[str, str]]:
    """The two slots whose winners meet in ``slot``; None for round-of-32."""
    round_num = round_of(slot)
    if round_num == 1:
        return None
    n = slot_index(slot)
    prev = _ROUND_SLOTS[round_num - 1]
    return prev[2 * n - 2], prev[2 * n - 1]


def phase_key(base_iso: str, slot: str) -> str:
    return f'{base_iso}{KEY_SEPARATOR}{slot}'


def parse_phase_key(key: str) -> Tuple[str, str]:
    base, sep, slot = (key or '').rpartition(KEY_SEPARATOR)
    if not sep or not base or not is_slot(slot):
        raise ValidationError(f'Malformed phase key: {key!r}')
    return base, slot


def keys_for_round(base_iso: str, round_num: int) -> List[str]:
    return [phase_key(base_iso, s) for s in slots_for_round(round_num)]


def seed_url(base_iso: str, suffix: str, template: str = DEFAULT_SEED_URL) -> str:
    return template.format(seed=quote(f'{base_iso}-{suffix}', safe=''))


def seed_pair(base_iso: str, slot: str, template: str = DEFAULT_SEED_URL) -> Tuple[str, str]:
    """Fixed images of a round-of-32 slot."""
    n = slot_index(slot)
    return seed_url(base_iso, f'A{n}', template), seed_url(base_iso, f'B{n}', template)


def slot_label(slot: str) -> dict:
    round_num = round_of(slot)
    if round_num == 1:
        n = slot_index(slot)
        return {'round': _LABELS[1], 'title': f'Seed A{n} vs B{n}'}
    if round_num == ROUND_COUNT:
        return {'round': _LABELS[round_num], 'title': 'Winners of SF 1/2'}
    left, right = parents_of(slot)
    prev = _LABELS[round_num - 1]
    return {'round': _LABELS[round_num], 'title': f'Winners of {prev} {slot_index(left)}/{slot_index(right)}'}
