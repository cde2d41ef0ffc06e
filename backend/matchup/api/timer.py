from flask import Blueprint, jsonify, request, current_app
from matchup.socketio_events import broadcast
from matchup.errors import ValidationError, json_body
from matchup.services.tournament import clock
from matchup.services.tournament import scheduler


timer = Blueprint('timer', __name__)


def _action(data: dict) -> str:
    action = data.get('action')
    if action is None and data.get('force') is True:
        return 'advance'
    if not isinstance(action, str):
        raise ValidationError('action is required')
    return action.lower()


@timer.route('/timer', methods=['GET', 'OPTIONS'])
def get_timer():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    now = clock.utcnow()
    fired = scheduler.catch_up(now)
    state = scheduler.cycle_payload(scheduler.load_cycle(now), now)
    if fired:
        broadcast('timer_update', {'state': state, 'fired': fired})
    return jsonify({'state': state})


@timer.route('/timer', methods=['POST'])
def post_timer():
    data = json_body()
    action = _action(data)
    now = clock.utcnow()
    if action == 'pause':
        scheduler.pause(now)
    elif action == 'resume':
        scheduler.resume(now)
    elif action == 'reset':
        scheduler.reset(now, data.get('period_sec'))
    elif action == 'advance':
        scheduler.advance(now)
    else:
        raise ValidationError(f'Unknown action: {action}')
    state = scheduler.cycle_payload(scheduler.load_cycle(now), now)
    current_app.logger.info(f"[timer-action] {action} -> checkpoint={state['last_checkpoint']} paused={state['paused']}")
    broadcast('timer_update', {'state': state, 'action': action})
    return jsonify({'ok': True, 'state': state})


@timer.route('/countdown', methods=['GET', 'OPTIONS'])
def get_countdown():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    now = clock.utcnow()
    rolled = scheduler.roll_countdown(now)
    state = scheduler.countdown_payload(scheduler.load_countdown(now), now)
    if rolled:
        broadcast('countdown_update', {'state': state, 'rollovers': len(rolled)})
    return jsonify({'state': state})


@timer.route('/countdown', methods=['POST'])
def post_countdown():
    data = json_body()
    action = _action(data)
    now = clock.utcnow()
    if action == 'pause':
        scheduler.pause_countdown(now)
    elif action == 'resume':
        scheduler.resume_countdown(now)
    elif action == 'advance':
        scheduler.force_countdown(now)
    else:
        raise ValidationError(f'Unknown action: {action}')
    scheduler.roll_countdown(now)
    state = scheduler.countdown_payload(scheduler.load_countdown(now), now)
    broadcast('countdown_update', {'state': state, 'action': action})
    return jsonify({'ok': True, 'state': state})
