from flask_socketio import join_room, leave_room, emit
from matchup import socketio
from matchup.services.tournament import clock, scheduler

TOURNAMENT_ROOM = 'tournament'


def broadcast(event: str, payload: dict) -> None:
    """Push to every viewer; polling stays authoritative if a push is lost."""
    socketio.emit(event, payload, to=TOURNAMENT_ROOM, namespace='/ws')


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_tournament(data=None):
    join_room(TOURNAMENT_ROOM)
    emit('joined', {'room': TOURNAMENT_ROOM})
    # Give the newcomer a snapshot so it need not wait for the next broadcast
    now = clock.utcnow()
    scheduler.catch_up(now)
    emit('timer_update', {'state': scheduler.cycle_payload(scheduler.load_cycle(now), now)})


def handle_leave_tournament(data=None):
    leave_room(TOURNAMENT_ROOM)
    emit('left', {'room': TOURNAMENT_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_tournament', handle_join_tournament, namespace='/ws')
    socketio.on_event('leave_tournament', handle_leave_tournament, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_tournament', handle_join_tournament, namespace='/')
        socketio.on_event('leave_tournament', handle_leave_tournament, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
