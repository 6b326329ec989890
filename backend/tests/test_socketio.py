from blindrank import socketio
from blindrank import socketio_events


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    # Flush any initial events
    sio_client.get_received('/ws')

    sio_client.emit('join_game', {'game_code': 'abcd'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined
    assert joined[0]['args'][0] == {'room': 'game:ABCD', 'is_host': False}


def test_join_requires_game_code(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_game', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_writes_broadcast_state_update(client, sio_client):
    code = client.post('/api/rooms/create', json={'name': 'Alice', 'topic_id': 'meat-consumed', 'player_id': 'alice'}).get_json()['room']['code']
    sio_client.emit('join_game', {'game_code': code, 'player_id': 'bob'}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post('/api/rooms/join', json={'game_code': code, 'name': 'Bob', 'player_id': 'bob'})
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'state_update' and pkt['args'][0] == {'game_code': code} for pkt in received)


def test_host_socket_drives_advancement(flask_app, client):
    code = client.post('/api/rooms/create', json={'name': 'Alice', 'topic_id': 'meat-consumed', 'player_id': 'alice'}).get_json()['room']['code']
    client.post('/api/rooms/join', json={'game_code': code, 'name': 'Bob', 'player_id': 'bob'})

    before = len(socketio_events._host_sessions)
    host_client = socketio.test_client(flask_app, namespace='/ws')
    host_client.emit('join_game', {'game_code': code, 'player_id': 'alice'}, namespace='/ws')
    received = host_client.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0]['is_host'] for pkt in received)
    assert len(socketio_events._host_sessions) == before + 1

    client.post(f'/api/rooms/{code}/start', json={'player_id': 'alice'})
    client.post(f'/api/rooms/{code}/submit', json={'player_id': 'alice', 'slot': 0})
    assert client.get(f'/api/rooms/{code}/state').get_json()['room']['current_index'] == 0
    client.post(f'/api/rooms/{code}/submit', json={'player_id': 'bob', 'slot': 9})
    assert client.get(f'/api/rooms/{code}/state').get_json()['room']['current_index'] == 1

    # Host leaves: nobody drives the room any more
    host_client.disconnect(namespace='/ws')
    assert len(socketio_events._host_sessions) == before
    client.post(f'/api/rooms/{code}/submit', json={'player_id': 'alice', 'slot': 1})
    client.post(f'/api/rooms/{code}/submit', json={'player_id': 'bob', 'slot': 8})
    assert client.get(f'/api/rooms/{code}/state').get_json()['room']['current_index'] == 1


def test_leave_game_closes_host_session(flask_app, client):
    code = client.post('/api/rooms/create', json={'name': 'Alice', 'topic_id': 'meat-consumed', 'player_id': 'alice'}).get_json()['room']['code']
    host_client = socketio.test_client(flask_app, namespace='/ws')
    host_client.emit('join_game', {'game_code': code, 'player_id': 'alice'}, namespace='/ws')
    sessions = list(socketio_events._host_sessions.values())
    assert sessions

    host_client.emit('leave_game', {'game_code': code}, namespace='/ws')
    received = host_client.get_received('/ws')
    assert any(pkt['name'] == 'left' for pkt in received)
    assert all(s.closed for s in sessions)
    host_client.disconnect(namespace='/ws')
