from typing import Dict, Iterable, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from matchup import db
from matchup.errors import ValidationError, VotingClosedError
from matchup.models import PhaseVote, Winner
from . import clock
from .bracket import COLORS, parse_phase_key, round_for_stage, round_of
from .stage import detect_stage


def check_voting_open(phase_key: str, current_base: str) -> None:
    """Only the live round of the running cycle takes votes."""
    base, slot = parse_phase_key(phase_key)
    if base != current_base:
        raise VotingClosedError('Voting is closed: that cycle is not running.')
    if round_of(slot) != round_for_stage(detect_stage(base, colors_for)):
        raise VotingClosedError('Voting is only open for the live round.')


def upsert_vote(phase_key: str, voter_id, vote: str) -> PhaseVote:
    """Record ``voter_id``'s choice for ``phase_key``; a later vote replaces an earlier one."""
    parse_phase_key(phase_key)
    vote = (vote or '').lower()
    if vote not in COLORS:
        raise ValidationError(f'vote must be one of {", ".join(COLORS)}')
    if winner_for(phase_key) is not None:
        raise VotingClosedError()

    voter_id = str(voter_id)
    now = clock.utcnow()
    row = PhaseVote.query.filter_by(phase_key=phase_key, voter_id=voter_id).first()
    if row:
        row.vote = vote
        row.updated_at = now
        db.session.commit()
    else:
        row = _insert_vote(phase_key, voter_id, vote, now)
    current_app.logger.info(f"[vote] key={phase_key} voter={voter_id} vote={vote}")
    return row


def _insert_vote(phase_key: str, voter_id: str, vote: str, now: float) -> PhaseVote:
    row = PhaseVote(phase_key=phase_key, voter_id=voter_id, vote=vote, updated_at=now)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Same voter raced us from another tab; their row exists now, overwrite it
        db.session.rollback()
        row = PhaseVote.query.filter_by(phase_key=phase_key, voter_id=voter_id).one()
        row.vote = vote
        row.updated_at = now
        db.session.commit()
    return row


def tally(phase_key: str) -> Dict[str, int]:
    counts = {color: 0 for color in COLORS}
    rows = (
        db.session.query(PhaseVote.vote, func.count(PhaseVote.id))
        .filter(PhaseVote.phase_key == phase_key)
        .group_by(PhaseVote.vote)
        .all()
    )
    for vote, n in rows:
        if vote in counts:
            counts[vote] = n
    return counts


def winner_for(phase_key: str) -> Optional[str]:
    row = Winner.query.filter_by(phase_key=phase_key).first()
    return row.color if row else None


def colors_for(keys: Iterable[str]) -> Dict[str, str]:
    """Winner colors for whichever of ``keys`` are decided."""
    keys = list(dict.fromkeys(keys))
    if not keys:
        return {}
    rows = Winner.query.filter(Winner.phase_key.in_(keys)).all()
    return {row.phase_key: row.color for row in rows}
