"""Catch-up drivers for the bracket clock and the single-period countdown.

Nothing here sleeps or keeps in-process timers. Every request calls into the
driver, which replays whatever transitions became due since the row was last
observed. Concurrent callers coordinate only through the store: winner rows are
unique per phase key and the singleton rows are moved with compare-and-set
updates.
"""

import math
import random
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from matchup import db
from matchup.errors import ValidationError
from matchup.models import Cycle, TournamentState, ZeroRollover
from . import clock
from .bracket import iso_millis, iso_seconds, stage_for_round
from .projector import get_image_cache
from .resolver import decide_round
from .stage import detect_stage
from .votes import colors_for

SINGLETON_ID = 1


def _now(now: Optional[float]) -> float:
    return clock.utcnow() if now is None else now


def _period(value) -> int:
    try:
        period = int(value)
    except (TypeError, ValueError):
        raise ValidationError('period_sec must be an integer')
    if period <= 0:
        raise ValidationError('period_sec must be positive')
    return period


# ---- bracket clock (5 checkpoints per cycle) ----

def load_cycle(now: Optional[float] = None) -> Cycle:
    """Return the cycle row, creating it on first use."""
    cycle = db.session.get(Cycle, SINGLETON_ID)
    if cycle:
        return cycle
    now = _now(now)
    start = float(math.floor(now))
    cycle = Cycle(
        id=SINGLETON_ID,
        base_iso=iso_seconds(start),
        cycle_start=start,
        period_sec=_period(current_app.config.get('TIMER_PERIOD_SEC', 100)),
        paused=False,
        last_checkpoint=0,
        updated_at=now,
    )
    db.session.add(cycle)
    try:
        db.session.commit()
        current_app.logger.info(f"[timer-init] base={cycle.base_iso} period={cycle.period_sec}s")
    except IntegrityError:
        # Another request created it first
        db.session.rollback()
        cycle = db.session.get(Cycle, SINGLETON_ID)
    return cycle


def _store_checkpoint(base_iso: str, checkpoint: int, now: float) -> bool:
    updated = (
        Cycle.query
        .filter(
            Cycle.id == SINGLETON_ID,
            Cycle.base_iso == base_iso,
            Cycle.last_checkpoint < checkpoint,
        )
        .update({Cycle.last_checkpoint: checkpoint, Cycle.updated_at: now}, synchronize_session=False)
    )
    db.session.commit()
    return bool(updated)


def catch_up(now: Optional[float] = None, rng: Optional[random.Random] = None) -> List[int]:
    """Decide every round whose checkpoint passed since the last observation.

    Returns the checkpoints fired by this call, in order.
    """
    now = _now(now)
    cycle = load_cycle(now)
    if cycle.paused:
        return []
    base = cycle.base_iso
    last = cycle.last_checkpoint
    due = clock.due_checkpoint(cycle.cycle_start, cycle.period_sec, now)
    if due <= last:
        return []

    fired = []
    for k in range(last + 1, due + 1):
        decide_round(base, k, rng)
        fired.append(k)
        current_app.logger.info(f"[checkpoint] base={base} k={k} round={stage_for_round(k)}")
    stored = _store_checkpoint(base, due, now)
    current_app.logger.info(f"[catch-up] base={base} checkpoint {last} -> {due} stored={stored}")
    return fired


def advance(now: Optional[float] = None, rng: Optional[random.Random] = None) -> int:
    """Force exactly one checkpoint step regardless of the clock."""
    now = _now(now)
    cycle = load_cycle(now)
    base = cycle.base_iso
    nxt = min(clock.CHECKPOINTS, cycle.last_checkpoint + 1)
    decide_round(base, nxt, rng)
    _store_checkpoint(base, nxt, now)
    current_app.logger.info(f"[timer-action] advance base={base} checkpoint={nxt}")
    return nxt


def pause(now: Optional[float] = None) -> Cycle:
    now = _now(now)
    catch_up(now)
    cycle = load_cycle(now)
    if cycle.paused:
        return cycle
    end = clock.cycle_end(cycle.cycle_start, cycle.period_sec)
    remaining = min(float(cycle.period_sec), max(0.0, end - now))
    Cycle.query.filter(Cycle.id == SINGLETON_ID, Cycle.paused.is_(False)).update(
        {Cycle.paused: True, Cycle.paused_remaining_sec: remaining, Cycle.updated_at: now},
        synchronize_session=False,
    )
    db.session.commit()
    current_app.logger.info(f"[timer-action] pause base={cycle.base_iso} remaining={remaining:.3f}s")
    return load_cycle(now)


def resume(now: Optional[float] = None) -> Cycle:
    now = _now(now)
    cycle = load_cycle(now)
    if not cycle.paused:
        return cycle
    remaining = cycle.paused_remaining_sec
    if remaining is None:
        remaining = max(0.0, clock.cycle_end(cycle.cycle_start, cycle.period_sec) - now)
    # Re-anchor so exactly `remaining` seconds are left from now
    new_start = now - (cycle.period_sec - remaining)
    Cycle.query.filter(Cycle.id == SINGLETON_ID, Cycle.paused.is_(True)).update(
        {
            Cycle.cycle_start: new_start,
            Cycle.paused: False,
            Cycle.paused_remaining_sec: None,
            Cycle.updated_at: now,
        },
        synchronize_session=False,
    )
    db.session.commit()
    current_app.logger.info(f"[timer-action] resume base={cycle.base_iso} remaining={remaining:.3f}s")
    return load_cycle(now)


def reset(now: Optional[float] = None, period_sec=None) -> Cycle:
    """Start a new cycle at ``now`` with checkpoint 0."""
    now = _now(now)
    cycle = load_cycle(now)
    period = cycle.period_sec if period_sec is None else _period(period_sec)
    start = float(math.floor(now))
    # Bases must never repeat, or the new cycle would inherit old winners
    while iso_seconds(start) <= cycle.base_iso:
        start += 1
    cycle.base_iso = iso_seconds(start)
    cycle.cycle_start = start
    cycle.period_sec = period
    cycle.last_checkpoint = 0
    cycle.paused = False
    cycle.paused_remaining_sec = None
    cycle.updated_at = now
    db.session.commit()
    get_image_cache().bind(cycle.base_iso)
    current_app.logger.info(f"[timer-action] reset base={cycle.base_iso} period={period}s")
    return cycle


def cycle_payload(cycle: Cycle, now: Optional[float] = None) -> dict:
    now = _now(now)
    if cycle.paused:
        remaining = cycle.paused_remaining_sec or 0.0
        phase_end = now + remaining
        remaining_sec = math.ceil(remaining)
        next_edge = None
    else:
        phase_end = clock.cycle_end(cycle.cycle_start, cycle.period_sec)
        remaining_sec = clock.remaining_sec(cycle.cycle_start, cycle.period_sec, now)
        next_edge = None
        if cycle.last_checkpoint < clock.CHECKPOINTS:
            next_edge = iso_millis(clock.next_decide_at(cycle.cycle_start, cycle.period_sec, cycle.last_checkpoint))
    return {
        'base_iso': cycle.base_iso,
        'cycle_start': iso_millis(cycle.cycle_start),
        'period_sec': cycle.period_sec,
        'paused': cycle.paused,
        'last_checkpoint': cycle.last_checkpoint,
        'next_decide_at': next_edge,
        'remaining_sec': remaining_sec,
        'phase_end_at': iso_millis(phase_end),
        'updated_at': iso_millis(cycle.updated_at or now),
        'stage': detect_stage(cycle.base_iso, colors_for),
    }


# ---- single-period countdown ----

def load_countdown(now: Optional[float] = None) -> TournamentState:
    state = db.session.get(TournamentState, SINGLETON_ID)
    if state:
        return state
    now = _now(now)
    period = _period(current_app.config.get('COUNTDOWN_PERIOD_SEC', 10))
    state = TournamentState(
        id=SINGLETON_ID,
        phase_end_at=now + period,
        period_sec=period,
        paused=False,
        updated_at=now,
    )
    db.session.add(state)
    try:
        db.session.commit()
        current_app.logger.info(f"[countdown-init] period={period}s")
    except IntegrityError:
        db.session.rollback()
        state = db.session.get(TournamentState, SINGLETON_ID)
    return state


def _log_rollover(phase_end_at: float, now: float, source: str) -> bool:
    db.session.add(ZeroRollover(phase_end_at=phase_end_at, rollover_at=now, source=source))
    try:
        db.session.commit()
    except IntegrityError:
        # Logged already by a concurrent request
        db.session.rollback()
        return False
    current_app.logger.info(f"[rollover] phase_end_at={iso_millis(phase_end_at)} source={source}")
    return True


def roll_countdown(now: Optional[float] = None) -> List[float]:
    """Advance the countdown past every period that ended, logging each once.

    Returns the phase ends this call logged.
    """
    now = _now(now)
    state = load_countdown(now)
    if state.paused or state.phase_end_at > now:
        return []
    period = state.period_sec
    old_end = state.phase_end_at
    missed = int((now - old_end) // period) + 1
    first = 0
    limit = int(current_app.config.get('COUNTDOWN_MAX_CATCHUP', 1000))
    if missed > limit:
        first = missed - limit
        current_app.logger.warning(f"[rollover] skipping {first} periods older than the replay window")

    logged = []
    for i in range(first, missed):
        end = old_end + i * period
        if _log_rollover(end, now, 'timer'):
            logged.append(end)

    TournamentState.query.filter(
        TournamentState.id == SINGLETON_ID,
        TournamentState.phase_end_at == old_end,
    ).update(
        {TournamentState.phase_end_at: old_end + missed * period, TournamentState.updated_at: now},
        synchronize_session=False,
    )
    db.session.commit()
    return logged


def pause_countdown(now: Optional[float] = None) -> TournamentState:
    now = _now(now)
    roll_countdown(now)
    state = load_countdown(now)
    if not state.paused:
        state.paused_remaining_sec = max(0.0, state.phase_end_at - now)
        state.paused = True
        state.updated_at = now
        db.session.commit()
        current_app.logger.info(f"[timer-action] countdown pause remaining={state.paused_remaining_sec:.3f}s")
    return state


def resume_countdown(now: Optional[float] = None) -> TournamentState:
    now = _now(now)
    state = load_countdown(now)
    if state.paused:
        remaining = state.paused_remaining_sec
        if remaining is None:
            remaining = max(0.0, state.phase_end_at - now)
        state.phase_end_at = now + remaining
        state.paused = False
        state.paused_remaining_sec = None
        state.updated_at = now
        db.session.commit()
        current_app.logger.info(f"[timer-action] countdown resume remaining={remaining:.3f}s")
    return state


def force_countdown(now: Optional[float] = None) -> TournamentState:
    """End the current period immediately and start a fresh one."""
    now = _now(now)
    state = load_countdown(now)
    _log_rollover(state.phase_end_at, now, 'force')
    state = load_countdown(now)
    state.phase_end_at = now + state.period_sec
    state.paused = False
    state.paused_remaining_sec = None
    state.updated_at = now
    db.session.commit()
    current_app.logger.info("[timer-action] countdown force")
    return state


def countdown_payload(state: TournamentState, now: Optional[float] = None) -> dict:
    now = _now(now)
    if state.paused:
        remaining = state.paused_remaining_sec
        if remaining is None:
            remaining = max(0.0, state.phase_end_at - now)
    else:
        remaining = max(0.0, state.phase_end_at - now)
    return {
        'phase_end_at': iso_millis(state.phase_end_at),
        'period_sec': state.period_sec,
        'paused': state.paused,
        'remaining_sec': math.ceil(remaining),
        'updated_at': iso_millis(state.updated_at or now),
    }
