import pytest
from sqlalchemy.exc import OperationalError

from blindrank import store
from blindrank.exceptions import (
    ItemAlreadyPlaced,
    PlayerNotFound,
    RoomNotFound,
    StoreUnavailable,
    TransactionConflict,
)
from blindrank.store import parse_path, player_path, players_path, room_path


def test_parse_path_kinds():
    assert parse_path('rooms/ABCD') == ('room', 'ABCD', None)
    assert parse_path('rooms/ABCD/players') == ('players', 'ABCD', None)
    assert parse_path('rooms/ABCD/players/p1') == ('player', 'ABCD', 'p1')
    with pytest.raises(ValueError):
        parse_path('games/ABCD')


def test_get_missing_documents(flask_app):
    assert store.get(room_path('NONE')) is None
    assert store.get(player_path('NONE', 'p1')) is None
    assert store.list(players_path('NONE')) == []


def test_update_merges_fields(make_room):
    make_room(['A', 'B'])
    store.update(room_path('ABCD'), {'status': 'in_round', 'current_index': 0, 'round_ends_at': 50.0})
    room = store.get(room_path('ABCD'))
    assert room['status'] == 'in_round'
    assert room['order'] == ['A', 'B']
    assert room['host_id'] == 'host'


def test_update_missing_documents_raise(make_room):
    make_room(['A'])
    with pytest.raises(RoomNotFound):
        store.update(room_path('ZZZZ'), {'status': 'complete'})
    with pytest.raises(PlayerNotFound):
        store.update(player_path('ABCD', 'ghost'), {'ranking': ['A']})


def test_player_needs_existing_room(flask_app):
    with pytest.raises(RoomNotFound):
        store.set(player_path('ZZZZ', 'p1'), {'name': 'P', 'ranking': [None], 'joined_at': 0.0})


def test_set_replaces_existing_player(make_room):
    make_room(['A', 'B'], players=('host',))
    store.set(player_path('ABCD', 'host'), {'name': 'Host', 'ranking': ['B', None], 'joined_at': 3.0})
    assert store.get(player_path('ABCD', 'host')) == {
        'id': 'host', 'name': 'Host', 'ranking': ['B', None], 'joined_at': 3.0, 'version': 2,
    }



def test_set_replaces_whole_room_document(make_room):
    make_room(['A', 'B'], status='in_round', current_index=1, round_ends_at=50.0)
    store.set(room_path('ABCD'), {'topic_id': 'fast-food', 'order': ['B', 'A'], 'host_id': 'host'})
    room = store.get(room_path('ABCD'))
    assert room['order'] == ['B', 'A']
    assert room['status'] == 'lobby'
    assert room['current_index'] == -1
    assert room['round_ends_at'] is None


def test_documents_carry_their_version(make_room):
    make_room(['A'], players=('host',))
    assert store.get(room_path('ABCD'))['version'] == 1
    store.update(room_path('ABCD'), {'status': 'in_round', 'current_index': 0, 'round_ends_at': 9.0})
    assert store.get(room_path('ABCD'))['version'] == 2
    assert [p['version'] for p in store.list(players_path('ABCD'))] == [1]

def test_subscribe_delivers_now_and_on_change(make_room):
    make_room(['A', 'B'])
    seen = []
    unsubscribe = store.subscribe(room_path('ABCD'), seen.append)
    assert seen[0]['status'] == 'lobby'

    store.update(room_path('ABCD'), {'status': 'in_round', 'current_index': 0, 'round_ends_at': 9.0})
    assert len(seen) == 2
    assert seen[-1]['current_index'] == 0

    unsubscribe()
    store.update(room_path('ABCD'), {'current_index': 1})
    assert len(seen) == 2
    assert store.subscriber_count(room_path('ABCD')) == 0


def test_collection_subscription_sees_player_writes(make_room):
    make_room(['A', 'B'], players=('host',))
    seen = []
    store.subscribe(players_path('ABCD'), seen.append)
    assert [p['id'] for p in seen[-1]] == ['host']

    store.set(player_path('ABCD', 'guest'), {'name': 'Guest', 'ranking': [None, None], 'joined_at': 5.0})
    assert [p['id'] for p in seen[-1]] == ['host', 'guest']


def test_delete_signals_removal(make_room):
    make_room(['A'], players=('host',))
    rooms_seen, players_seen = [], []
    store.subscribe(room_path('ABCD'), rooms_seen.append)
    store.subscribe(players_path('ABCD'), players_seen.append)

    store.delete(room_path('ABCD'))
    assert rooms_seen[-1] is None
    assert players_seen[-1] == []


def test_commit_hook_receives_room_code(flask_app, make_room, monkeypatch):
    codes = []
    monkeypatch.setattr(store, '_on_commit', codes.append)
    make_room(['A'], players=('host',))
    assert codes == ['ABCD', 'ABCD']


def test_run_atomic_retries_after_version_conflict(make_room):
    make_room(['A', 'B'])
    path = room_path('ABCD')
    reads = []

    def bump(txn):
        room = txn.get(path)
        reads.append(room['current_index'])
        if len(reads) == 1:
            # Another writer commits between our read and our write
            store.update(path, {'current_index': 5})
        txn.update(path, {'current_index': room['current_index'] + 1})
        return len(reads)

    assert store.run_atomic(bump) == 2
    assert reads == [-1, 5]
    assert store.get(path)['current_index'] == 6


def test_run_atomic_gives_up_after_max_attempts(make_room):
    make_room(['A'])
    path = room_path('ABCD')
    attempts = []

    def always_loses(txn):
        room = txn.get(path)
        attempts.append(room['current_index'])
        store.update(path, {'current_index': room['current_index'] + 10})
        txn.update(path, {'current_index': 0})

    with pytest.raises(TransactionConflict):
        store.run_atomic(always_loses)
    assert len(attempts) == store.max_attempts
    assert store.get(path)['current_index'] == -1 + 10 * store.max_attempts


def test_run_atomic_domain_error_writes_nothing(make_room):
    make_room(['A', 'B'], players=('host',))
    path = player_path('ABCD', 'host')

    def refuse(txn):
        txn.update(path, {'ranking': ['A', None]})
        raise ItemAlreadyPlaced('A is already placed.')

    with pytest.raises(ItemAlreadyPlaced):
        store.run_atomic(refuse)
    assert store.get(path)['ranking'] == [None, None]


def test_run_atomic_can_create_documents(make_room):
    make_room(['A'], players=('host',))
    path = player_path('ABCD', 'late')

    def create(txn):
        if txn.get(path) is None:
            txn.set(path, {'name': 'Late', 'ranking': [None], 'joined_at': 1.0})
            return True
        return False

    assert store.run_atomic(create) is True
    assert store.run_atomic(create) is False
    assert store.get(path)['name'] == 'Late'


def test_database_errors_surface_as_store_unavailable(make_room, monkeypatch):
    make_room(['A'])

    def boom(*args, **kwargs):
        raise OperationalError('UPDATE room', {}, Exception('database is gone'))

    monkeypatch.setattr(store, '_update_row', boom)
    with pytest.raises(StoreUnavailable):
        store.update(room_path('ABCD'), {'status': 'in_round'})
    assert store.get(room_path('ABCD'))['status'] == 'lobby'


def test_run_atomic_rechecks_documents_it_only_read(make_room):
    make_room(['A', 'B'], players=('host',))
    seen = []

    def copy_status(txn):
        room = txn.get(room_path('ABCD'))
        seen.append(room['status'])
        if len(seen) == 1:
            store.update(room_path('ABCD'), {'status': 'in_round', 'current_index': 0, 'round_ends_at': 9.0})
        txn.update(player_path('ABCD', 'host'), {'name': room['status']})

    store.run_atomic(copy_status)
    assert seen == ['lobby', 'in_round']
    assert store.get(player_path('ABCD', 'host'))['name'] == 'in_round'
