from conftest import BASE_ISO, T0
from matchup.models import PhaseVote, ZeroRollover
from matchup.services.tournament.bracket import phase_key

KEY = phase_key(BASE_ISO, 'r32_1')


def test_get_timer_creates_cycle(client):
    res = client.get('/api/timer')
    assert res.status_code == 200
    state = res.get_json()['state']
    assert state['base_iso'] == BASE_ISO
    assert state['last_checkpoint'] == 0
    assert state['paused'] is False
    assert state['remaining_sec'] == 100
    assert state['stage'] == 'r32'


def test_get_timer_catches_up(client, frozen_clock):
    client.get('/api/timer')
    frozen_clock.advance(45)
    state = client.get('/api/timer').get_json()['state']
    assert state['last_checkpoint'] == 3
    assert state['stage'] == 'sf'


def test_timer_actions(client, frozen_clock):
    client.get('/api/timer')
    frozen_clock.advance(30)
    res = client.post('/api/timer', json={'action': 'pause'})
    assert res.status_code == 200
    body = res.get_json()
    assert body['ok'] is True
    assert body['state']['paused'] is True
    assert body['state']['remaining_sec'] == 70
    assert body['state']['next_decide_at'] is None

    frozen_clock.advance(500)
    state = client.post('/api/timer', json={'action': 'resume'}).get_json()['state']
    assert state['paused'] is False
    assert state['remaining_sec'] == 70

    state = client.post('/api/timer', json={'action': 'advance'}).get_json()['state']
    assert state['last_checkpoint'] == 3

    state = client.post('/api/timer', json={'action': 'reset', 'period_sec': 50}).get_json()['state']
    assert state['last_checkpoint'] == 0
    assert state['period_sec'] == 50
    assert state['base_iso'] > BASE_ISO


def test_timer_force_flag_advances(client):
    client.get('/api/timer')
    state = client.post('/api/timer', json={'force': True}).get_json()['state']
    assert state['last_checkpoint'] == 1


def test_timer_rejects_unknown_action(client):
    res = client.post('/api/timer', json={'action': 'explode'})
    assert res.status_code == 400
    assert 'error' in res.get_json()
    assert client.post('/api/timer', json={}).status_code == 400


def test_options_and_cors(client):
    res = client.options(
        '/api/timer',
        headers={
            'Origin': 'https://viewer.example',
            'Access-Control-Request-Method': 'POST',
            'Access-Control-Request-Headers': 'content-type, apikey',
        },
    )
    assert res.status_code == 200
    assert res.headers['Access-Control-Allow-Origin'] == '*'
    allowed = res.headers['Access-Control-Allow-Headers'].lower()
    assert 'content-type' in allowed and 'apikey' in allowed
    assert 'POST' in res.headers['Access-Control-Allow-Methods']

    res = client.get('/api/timer', headers={'Origin': 'https://viewer.example'})
    assert res.headers['Access-Control-Allow-Origin'] == '*'


def test_countdown_endpoints(client, frozen_clock):
    state = client.get('/api/countdown').get_json()['state']
    assert state['remaining_sec'] == 10
    frozen_clock.advance(25)
    state = client.get('/api/countdown').get_json()['state']
    assert state['remaining_sec'] == 5
    assert ZeroRollover.query.count() == 2

    state = client.post('/api/countdown', json={'action': 'pause'}).get_json()['state']
    assert state['paused'] is True
    state = client.post('/api/countdown', json={'force': True}).get_json()['state']
    assert state['paused'] is False
    assert state['remaining_sec'] == 10
    assert client.post('/api/countdown', json={'action': 'reset'}).status_code == 400


def test_vote_requires_login(client):
    res = client.post('/api/votes', json={'phase_key': KEY, 'vote': 'red'})
    assert res.status_code == 401
    assert res.get_json()['error'] == 'Login required'


def test_vote_and_tally(client, logged_in):
    client.get('/api/timer')
    res = client.post('/api/votes', json={'phase_key': KEY, 'vote': 'red'})
    assert res.status_code == 201
    assert res.get_json()['red'] == 1
    # Changing your mind replaces the earlier vote
    client.post('/api/votes', json={'phase_key': KEY, 'vote': 'blue'})
    res = client.get('/api/votes', query_string={'phase_key': KEY})
    assert res.get_json() == {'phase_key': KEY, 'red': 0, 'blue': 1}


def test_vote_validation(client, logged_in):
    assert client.post('/api/votes', json={'phase_key': KEY}).status_code == 400
    assert client.post('/api/votes', json={'phase_key': KEY, 'vote': 'green'}).status_code == 400
    assert client.get('/api/votes', query_string={'phase_key': 'junk'}).status_code == 400


def test_vote_rejected_once_decided(client, logged_in, frozen_clock):
    client.get('/api/timer')
    client.post('/api/votes', json={'phase_key': KEY, 'vote': 'blue'})
    frozen_clock.advance(5)
    res = client.post('/api/votes', json={'phase_key': KEY, 'vote': 'red'})
    assert res.status_code == 409
    winners = client.get('/api/winners', query_string={'key': KEY}).get_json()['winners']
    assert winners == {KEY: 'blue'}


def test_winners_caps_key_count(client):
    keys = [KEY] * 65
    assert client.get('/api/winners', query_string={'key': keys}).status_code == 400


def test_stage_and_bracket(client, frozen_clock):
    assert client.get('/api/stage').get_json() == {'base_iso': BASE_ISO, 'stage': 'r32'}
    frozen_clock.set(T0 + 21)
    body = client.get('/api/bracket').get_json()
    assert body['stage'] == 'qf'
    assert len(body['rows']) == 31
    live = [row['slot'] for row in body['rows'] if row['live']]
    assert live == ['qf1', 'qf2', 'qf3', 'qf4']


def test_bracket_slot(client):
    body = client.get('/api/bracket/r32_2').get_json()
    assert body['phase_key'] == phase_key(BASE_ISO, 'r32_2')
    assert body['ready'] is True
    assert body['A'].endswith('-A2/1600/1200')

    body = client.get('/api/bracket/final').get_json()
    assert body == {
        'slot': 'final',
        'phase_key': phase_key(BASE_ISO, 'final'),
        'A': '',
        'B': '',
        'ready': False,
    }
    assert client.get('/api/bracket/r64_1').status_code == 404


def test_auth_flow(client):
    res = client.post('/register', json={'username': 'amy', 'password': 'pw'})
    assert res.status_code == 201
    assert client.post('/register', json={'username': 'amy', 'password': 'pw'}).status_code == 400
    assert client.get('/check_login').get_json()['user']['username'] == 'amy'
    assert client.post('/login', json={'username': 'amy', 'password': 'nope'}).status_code == 401
    assert client.post('/login', json={'username': 'amy', 'password': 'pw'}).get_json()['success'] is True


def test_non_object_json_body_is_rejected(client, logged_in):
    for url in ('/api/timer', '/api/countdown', '/api/votes'):
        res = client.post(url, json=['pause'])
        assert res.status_code == 400, url
        assert res.get_json()['error'] == 'Request body must be a JSON object'


def test_votes_only_for_live_round_of_running_cycle(client, logged_in):
    client.get('/api/timer')
    old_base = '2023-11-14T22:00:00Z'
    res = client.post('/api/votes', json={'phase_key': phase_key(old_base, 'r32_1'), 'vote': 'red'})
    assert res.status_code == 409
    res = client.post('/api/votes', json={'phase_key': phase_key(BASE_ISO, 'qf1'), 'vote': 'red'})
    assert res.status_code == 409
    assert client.post('/api/votes', json={'phase_key': KEY, 'vote': 'red'}).status_code == 201
    assert PhaseVote.query.count() == 1
