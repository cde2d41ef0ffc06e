from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required
from matchup.socketio_events import broadcast
from matchup.errors import NotFoundError, ValidationError, json_body
from matchup.services.tournament import scheduler
from matchup.services.tournament.bracket import DEFAULT_SEED_URL, is_slot, parse_phase_key, phase_key
from matchup.services.tournament.projector import bracket_rows, get_image_cache, project_slot
from matchup.services.tournament.stage import detect_stage
from matchup.services.tournament.votes import check_voting_open, colors_for, tally, upsert_vote


tournament = Blueprint('tournament', __name__)

# Guard against clients asking for unbounded key lists
MAX_WINNER_KEYS = 64


@tournament.before_request
def _catch_up():
    # Every request ticks the clock so decisions never wait on /timer polls
    if request.method == 'OPTIONS':
        return
    fired = scheduler.catch_up()
    if fired:
        state = scheduler.cycle_payload(scheduler.load_cycle())
        broadcast('timer_update', {'state': state, 'fired': fired})


def _current_base() -> str:
    return scheduler.load_cycle().base_iso


def _seed_template() -> str:
    return current_app.config.get('SEED_IMAGE_URL') or DEFAULT_SEED_URL


@tournament.route('/votes', methods=['POST'])
@login_required
def submit_vote():
    data = json_body()
    key = data.get('phase_key')
    vote = data.get('vote')
    if not key or not vote:
        raise ValidationError('phase_key and vote are required')
    check_voting_open(key, _current_base())
    upsert_vote(key, current_user.id, vote)
    counts = tally(key)
    broadcast('votes_update', {'phase_key': key, **counts})
    return jsonify({'ok': True, 'phase_key': key, **counts}), 201


@tournament.route('/votes', methods=['GET'])
def get_votes():
    key = request.args.get('phase_key', '')
    parse_phase_key(key)
    return jsonify({'phase_key': key, **tally(key)})


@tournament.route('/winners', methods=['GET'])
def get_winners():
    keys = request.args.getlist('key')
    if len(keys) > MAX_WINNER_KEYS:
        raise ValidationError(f'At most {MAX_WINNER_KEYS} keys per request')
    for key in keys:
        parse_phase_key(key)
    return jsonify({'winners': colors_for(keys)})


@tournament.route('/stage', methods=['GET'])
def get_stage():
    base = _current_base()
    return jsonify({'base_iso': base, 'stage': detect_stage(base, colors_for)})


@tournament.route('/bracket', methods=['GET'])
def get_bracket():
    base = _current_base()
    stage = detect_stage(base, colors_for)
    rows = bracket_rows(
        base,
        stage,
        colors_for,
        tally,
        template=_seed_template(),
        cache=get_image_cache(),
    )
    return jsonify({'base_iso': base, 'stage': stage, 'rows': rows})


@tournament.route('/bracket/<string:slot>', methods=['GET'])
def get_bracket_slot(slot):
    if not is_slot(slot):
        raise NotFoundError(f'Unknown slot: {slot}')
    base = _current_base()
    a, b = project_slot(
        slot,
        base,
        colors_for,
        template=_seed_template(),
        cache=get_image_cache(),
    )
    return jsonify({
        'slot': slot,
        'phase_key': phase_key(base, slot),
        'A': a,
        'B': b,
        'ready': bool(a and b),
    })
