"""Infer the current stage purely from which winner rows exist.

No cached "current stage" is consulted, so a viewer that joins late or comes
back from being offline lands on the same answer as everybody else.
"""

from typing import Callable, Dict, List, Optional

from .bracket import ROUND_COUNT, STAGE_COMPLETE, STAGES, keys_for_round, stage_for_round

# keys -> {key: color} for the keys that have a winner
WinnerLookup = Callable[[List[str]], Dict[str, str]]


def round_decided(base_iso: str, round_num: int, lookup: WinnerLookup) -> bool:
    keys = keys_for_round(base_iso, round_num)
    found = lookup(keys)
    return all(key in found for key in keys)


def detect_stage(base_iso: Optional[str], lookup: WinnerLookup) -> str:
    if not base_iso:
        return STAGES[0]
    for round_num in range(ROUND_COUNT, 0, -1):
        if round_decided(base_iso, round_num, lookup):
            if round_num == ROUND_COUNT:
                return STAGE_COMPLETE
            return stage_for_round(round_num + 1)
    return STAGES[0]
