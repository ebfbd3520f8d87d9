def _create(client, name='Alice', session_id='alice-session', **config):
    res = client.post('/api/rooms', json={'name': name, 'session_id': session_id, **config})
    assert res.status_code == 201
    return res.get_json()


def _join(client, code, name, session_id):
    return client.post('/api/rooms/join', json={'room_code': code, 'name': name, 'session_id': session_id})


def _state(client, code, session_id=None):
    headers = {'X-Session-Id': session_id} if session_id else {}
    res = client.get(f'/api/rooms/{code}/state', headers=headers)
    assert res.status_code == 200
    return res.get_json()


def _playing_room(client, fixed_chooser, count=3, answer='Flamengo'):
    fixed_chooser(0)
    code = _create(client)['room_code']
    sessions = ['alice-session']
    for i in range(1, count):
        sid = f'guest-{i}'
        assert _join(client, code, f'Guest{i}', sid).status_code == 201
        sessions.append(sid)
    assert client.post(f'/api/rooms/{code}/start', json={'session_id': sessions[0]}).status_code == 200
    res = client.post(f'/api/rooms/{code}/answer', json={'session_id': sessions[0], 'answer': answer})
    assert res.status_code == 200
    return code, sessions


def test_index_and_health(client):
    assert client.get('/').status_code == 200
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json()['database'] is True


def test_create_room(client):
    data = _create(client, max_guesses=2, max_rounds=2)
    assert len(data['room_code']) == 6
    assert data['player']['is_host'] is True
    assert 'session_id' not in data['player']
    room = data['room']
    assert room['status'] == 'waiting'
    assert room['max_guesses'] == 2
    assert room['you'] == data['player']['id']
    assert room['host_id'] == data['player']['id']


def test_create_room_validation(client):
    res = client.post('/api/rooms', json={'name': '', 'session_id': 'abc'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_name'

    res = client.post('/api/rooms', json={'name': 'Alice', 'session_id': 'abc', 'max_guesses': 0})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_config'


def test_join_and_state(client):
    code = _create(client)['room_code']
    res = _join(client, code.lower(), 'Bob', 'bob-session')
    assert res.status_code == 201
    bob = res.get_json()['player']

    state = _state(client, code, 'bob-session')
    assert state['code'] == code
    assert [p['name'] for p in state['players']] == ['Alice', 'Bob']
    assert state['you'] == bob['id']

    # Same session again is a reconnect
    res = _join(client, code, 'Bob', 'bob-session')
    assert res.status_code == 200
    assert res.get_json()['player']['id'] == bob['id']


def test_join_errors(client):
    res = _join(client, 'ZZZZZZ', 'Bob', 'bob-session')
    assert res.status_code == 404
    assert res.get_json()['error'] == 'room_not_found'

    code = _create(client)['room_code']
    for i in range(3):
        assert _join(client, code, f'P{i}', f'p{i}').status_code == 201
    res = _join(client, code, 'Eve', 'eve-session')
    assert res.status_code == 409
    assert res.get_json()['error'] == 'room_full'


def test_state_of_unknown_room(client):
    res = client.get('/api/rooms/NOPE00/state')
    assert res.status_code == 404


def test_start_requires_host(client):
    code = _create(client)['room_code']
    _join(client, code, 'Bob', 'bob-session')
    res = client.post(f'/api/rooms/{code}/start', json={'session_id': 'bob-session'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'not_host'


def test_answer_visible_only_to_chooser(client, fixed_chooser):
    code, sessions = _playing_room(client, fixed_chooser)
    chooser_view = _state(client, code, sessions[0])
    guesser_view = _state(client, code, sessions[1])
    public_view = _state(client, code)

    assert chooser_view['current_answer'] == 'Flamengo'
    assert 'current_answer' not in guesser_view
    assert 'current_answer' not in public_view
    assert guesser_view['has_answer'] is True
    assert guesser_view['answer_choices'] == ['Yes', 'No', 'Maybe']
    assert guesser_view['status'] == 'playing'
    assert guesser_view['turn_player_id'] == guesser_view['players'][1]['id']


def test_question_answer_guess_flow(client, fixed_chooser):
    code, sessions = _playing_room(client, fixed_chooser)

    res = client.post(f'/api/rooms/{code}/questions', json={'session_id': sessions[1], 'question': 'Is it from Rio?'})
    assert res.status_code == 201
    entry = res.get_json()['entry']
    assert entry['is_guess'] is False
    assert entry['answer'] is None

    res = client.post(
        f'/api/rooms/{code}/questions/{entry["id"]}/answer',
        json={'session_id': sessions[0], 'answer': 'Yes'},
    )
    assert res.status_code == 200
    room = res.get_json()['room']
    assert room['turn_player_id'] == room['players'][2]['id']
    assert room['entries'][0]['answer'] == 'Yes'

    res = client.post(f'/api/rooms/{code}/guesses', json={'session_id': sessions[2], 'guess': 'Flamengoo'})
    assert res.status_code == 201
    body = res.get_json()
    assert body['entry']['is_correct'] is True
    assert body['room']['status'] == 'round_end'
    assert body['room']['revealed_answer'] == 'Flamengo'
    scores = {p['id']: p['score'] for p in body['room']['players']}
    assert scores[body['room']['players'][2]['id']] == 5

    res = client.get(f'/api/rooms/{code}/entries?round=1')
    assert res.status_code == 200
    assert [e['is_guess'] for e in res.get_json()['entries']] == [False, True]


def test_out_of_turn_actions_rejected(client, fixed_chooser):
    code, sessions = _playing_room(client, fixed_chooser)

    res = client.post(f'/api/rooms/{code}/guesses', json={'session_id': sessions[2], 'guess': 'Vasco'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'not_your_turn'

    res = client.post(f'/api/rooms/{code}/questions', json={'session_id': sessions[1], 'question': '   '})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'empty_question'

    res = client.post(f'/api/rooms/{code}/questions/999/answer', json={'session_id': sessions[0], 'answer': 'No'})
    assert res.status_code == 404
    assert res.get_json()['error'] == 'entry_not_found'

    state = _state(client, code)
    assert state['entries'] == []
    assert state['turn_player_id'] == state['players'][1]['id']


def test_pass_advance_end_and_restart(client, fixed_chooser):
    code, sessions = _playing_room(client, fixed_chooser, count=2)

    res = client.post(f'/api/rooms/{code}/pass', json={'session_id': sessions[1]})
    assert res.status_code == 200

    res = client.post(f'/api/rooms/{code}/advance', json={'session_id': sessions[0]})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'wrong_phase'

    res = client.post(f'/api/rooms/{code}/guesses', json={'session_id': sessions[1], 'guess': 'flamengo'})
    assert res.status_code == 201
    res = client.post(f'/api/rooms/{code}/advance', json={'session_id': sessions[0]})
    state = res.get_json()
    assert state['status'] == 'choosing'
    assert state['current_round'] == 2
    assert state['chooser_id'] == state['players'][1]['id']

    res = client.post(f'/api/rooms/{code}/end', json={'session_id': sessions[0]})
    assert res.get_json()['status'] == 'game_over'

    res = client.post(f'/api/rooms/{code}/restart', json={'session_id': sessions[0]})
    state = res.get_json()
    assert res.status_code == 200
    assert state['status'] == 'waiting'
    assert state['code'] == code
    assert state['game_number'] == 2
    assert all(p['score'] == 0 for p in state['players'])


def test_kick(client):
    code = _create(client)['room_code']
    bob = _join(client, code, 'Bob', 'bob-session').get_json()['player']

    res = client.post(f'/api/rooms/{code}/kick', json={'session_id': 'bob-session', 'player_id': bob['id']})
    assert res.status_code == 409

    res = client.post(f'/api/rooms/{code}/kick', json={'session_id': 'alice-session', 'player_id': 'bob'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_player_id'

    res = client.post(f'/api/rooms/{code}/kick', json={'session_id': 'alice-session', 'player_id': bob['id']})
    assert res.status_code == 200
    assert [p['name'] for p in res.get_json()['players']] == ['Alice']


def test_heartbeat(client):
    data = _create(client)
    code = data['room_code']
    res = client.post(f'/api/rooms/{code}/heartbeat', headers={'X-Session-Id': 'alice-session'})
    assert res.status_code == 200
    assert res.get_json() == {'ok': True, 'player_id': data['player']['id']}

    res = client.post(f'/api/rooms/{code}/heartbeat', json={'session_id': 'stranger'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'not_in_room'
