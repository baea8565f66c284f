def _events(test_client, name):
    return [pkt['args'][0] for pkt in test_client.get_received() if pkt['name'] == name]


def _drain(*clients):
    for test_client in clients:
        test_client.get_received()


def test_socket_connect(sio_factory):
    sio_client = sio_factory()
    assert sio_client.is_connected()
    received = sio_client.get_received()
    assert any(pkt['name'] == 'connected' for pkt in received)


def test_create_game_requires_quiz(sio_factory):
    host = sio_factory()
    _drain(host)
    host.emit('create-game', {})
    [error] = _events(host, 'error')
    assert error['code'] == 'missing_quiz_data'


def test_join_unknown_game_reports_error(sio_factory):
    player = sio_factory()
    _drain(player)
    player.emit('join-game', {'pin': 'NOPE00', 'playerName': 'Alice'})
    [error] = _events(player, 'error')
    assert error['code'] == 'session_not_found'


def test_missing_fields_report_error(sio_factory):
    player = sio_factory()
    _drain(player)
    player.emit('join-game', {'pin': 'DEMO01'})
    [error] = _events(player, 'error')
    assert error['code'] == 'bad_request'


def test_full_round_over_socketio(sio_factory, app_scheduler, quiz_data):
    host, alice, bob = sio_factory(), sio_factory(), sio_factory()
    _drain(host, alice, bob)

    host.emit('create-game', {'quiz': quiz_data})
    [created] = _events(host, 'game-created')
    pin = created['pin']
    assert len(pin) == 6

    alice.emit('join-game', {'pin': pin, 'playerName': 'Alice'})
    [joined] = _events(alice, 'joined-game')
    assert joined['player']['name'] == 'Alice'
    bob.emit('join-game', {'pin': pin, 'playerName': 'Bob'})
    assert _events(host, 'player-joined')[-1]['totalPlayers'] == 2

    intruder = sio_factory()
    _drain(intruder)
    intruder.emit('join-game', {'pin': pin, 'playerName': 'Alice'})
    assert _events(intruder, 'error')[0]['code'] == 'name_taken'

    bob.emit('start-game', {'pin': pin})
    assert _events(bob, 'error')[0]['code'] == 'unauthorized'

    _drain(host, alice, bob)
    host.emit('start-game', {'pin': pin})
    assert _events(alice, 'game-started')[0]['currentQuestionIndex'] == 0
    app_scheduler.advance(3)
    [question] = _events(bob, 'question-started')
    assert question['question']['id'] == 'q1'

    _drain(host, alice, bob)
    alice.emit('submit-answer', {'questionId': 'q1', 'answerIndex': 2, 'timeToAnswer': 5})
    bob.emit('submit-answer', {'questionId': 'q1', 'answerIndex': 0, 'timeToAnswer': 10})
    received = host.get_received()
    names = [pkt['name'] for pkt in received]
    assert 'question-ended' in names
    board = [pkt['args'][0] for pkt in received if pkt['name'] == 'leaderboard-updated'][0]['leaderboard']
    assert board[0]['name'] == 'Alice'
    assert board[0]['score'] > 1000
    assert board[1]['score'] == 0


def test_host_disconnect_leaves_game_running(sio_factory, app_scheduler, flask_app):
    host, alice = sio_factory(), sio_factory()
    host.emit('host-join-game', {'pin': 'DEMO01'})
    alice.emit('join-game', {'pin': 'DEMO01', 'playerName': 'Alice'})
    host.emit('start-game', {'pin': 'DEMO01'})
    app_scheduler.advance(3)
    host.disconnect()
    _drain(alice)

    session = flask_app.extensions['quizlive']['registry'].get('DEMO01')
    assert session.host_conn_id is None
    alice.emit('submit-answer', {'questionId': 'q1', 'answerIndex': 2, 'timeToAnswer': 3})
    # single player answered: resolves right away even without a host
    assert _events(alice, 'question-ended')[0]['correctAnswer'] == 2


def test_kick_and_disconnect_update_counts(sio_factory):
    host, alice, bob = sio_factory(), sio_factory(), sio_factory()
    host.emit('host-join-game', {'pin': 'DEMO01'})
    alice.emit('join-game', {'pin': 'DEMO01', 'playerName': 'Alice'})
    bob.emit('join-game', {'pin': 'DEMO01', 'playerName': 'Bob'})
    bob_id = _events(bob, 'joined-game')[0]['player']['id']
    _drain(host, alice)

    host.emit('kick-player', {'pin': 'DEMO01', 'playerId': bob_id})
    assert _events(bob, 'kicked-from-game')
    assert _events(host, 'player-left')[-1] == {'playerId': bob_id, 'totalPlayers': 1}

    alice.disconnect()
    assert _events(host, 'player-left')[-1]['totalPlayers'] == 0


def test_pause_toggle_broadcasts(sio_factory):
    host, alice = sio_factory(), sio_factory()
    host.emit('host-join-game', {'pin': 'DEMO01'})
    alice.emit('join-game', {'pin': 'DEMO01', 'playerName': 'Alice'})
    _drain(host, alice)
    host.emit('pause-game', {'pin': 'DEMO01'})
    assert _events(alice, 'game-paused') == [{'isPaused': True}]
    alice.emit('pause-game', {'pin': 'DEMO01'})
    assert _events(alice, 'error')[0]['code'] == 'unauthorized'


def test_blank_player_name_is_rejected(sio_factory, flask_app):
    player = sio_factory()
    _drain(player)
    player.emit('join-game', {'pin': 'DEMO01', 'playerName': '   '})
    [error] = _events(player, 'error')
    assert error['code'] == 'bad_request'
    assert flask_app.extensions['quizlive']['registry'].get('DEMO01').players == {}

    player.emit('join-game', {'pin': 'DEMO01', 'playerName': '  Alice  '})
    [joined] = _events(player, 'joined-game')
    assert joined['player']['name'] == 'Alice'


def test_connection_ids_come_from_the_gateway(sio_factory, flask_app, monkeypatch):
    gateway = flask_app.extensions['quizlive']['gateway']
    identify = gateway.identify
    seen = []

    def recording_identify():
        conn_id = identify()
        seen.append(conn_id)
        return conn_id

    monkeypatch.setattr(gateway, 'identify', recording_identify)
    host = sio_factory()
    [connected] = _events(host, 'connected')
    host.emit('host-join-game', {'pin': 'DEMO01'})

    session = flask_app.extensions['quizlive']['registry'].get('DEMO01')
    assert session.host_conn_id == connected['id']
    assert seen and set(seen) == {connected['id']}
