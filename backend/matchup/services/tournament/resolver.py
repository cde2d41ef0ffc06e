import random
from typing import Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from matchup import db
from matchup.models import Winner
from . import clock
from .bracket import BLUE, RED, keys_for_round
from .votes import tally, winner_for


def pick_color(counts: Dict[str, int], rng: Optional[random.Random] = None) -> str:
    """Majority wins; a tie is settled by a fair coin."""
    r, b = counts.get(RED, 0), counts.get(BLUE, 0)
    if r > b:
        return RED
    if b > r:
        return BLUE
    return (rng or random).choice((RED, BLUE))


def _insert_winner(phase_key: str, base_iso: str, round_num: int, color: str) -> str:
    """Insert a winner row; the first writer wins and everyone reads its color."""
    db.session.add(Winner(
        phase_key=phase_key,
        base_iso=base_iso,
        round_num=round_num,
        color=color,
        decided_at=clock.utcnow(),
    ))
    try:
        db.session.commit()
        return color
    except IntegrityError:
        db.session.rollback()
        stored = winner_for(phase_key)
        current_app.logger.info(f"[winner-conflict] key={phase_key} kept={stored} dropped={color}")
        return stored


def decide_phase(phase_key: str, base_iso: str, round_num: int, rng: Optional[random.Random] = None) -> str:
    existing = winner_for(phase_key)
    if existing is not None:
        return existing
    counts = tally(phase_key)
    color = pick_color(counts, rng)
    stored = _insert_winner(phase_key, base_iso, round_num, color)
    current_app.logger.info(
        f"[winner] key={phase_key} red={counts[RED]} blue={counts[BLUE]} color={stored}"
    )
    return stored


def decide_round(base_iso: str, round_num: int, rng: Optional[random.Random] = None) -> Dict[str, str]:
    """Decide every matchup of ``round_num`` in the cycle ``base_iso``.

    Safe to call again or concurrently: already decided keys are left alone
    and a lost insert race returns the winner that got there first.
    """
    return {
        key: decide_phase(key, base_iso, round_num, rng)
        for key in keys_for_round(base_iso, round_num)
    }
