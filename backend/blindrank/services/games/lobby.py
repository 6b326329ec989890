import logging
import random
import re
import time
import uuid

from blindrank.exceptions import (
    ItemAlreadyPlaced,
    MissingField,
    PlayerNotFound,
    RoomNotFound,
    RoomNotInLobby,
    RoomNotInRound,
    SlotNotChosen,
    SlotUnavailable,
    UnknownTopic,
)
from blindrank.models import generate_room_code
from blindrank.store import player_path, room_path
from blindrank.topics import get_topic
from .rounds import current_item

logger = logging.getLogger(__name__)


def new_player_id():
    return uuid.uuid4().hex


def sanitize_code(code):
    return re.sub(r'[^a-zA-Z0-9]', '', code or '').upper()


def shuffle(items, rng=random):
    copy = list(items)
    rng.shuffle(copy)
    return copy


def _player_document(name, slot_count):
    return {'name': name, 'ranking': [None] * slot_count, 'joined_at': time.time()}


def create_room(store, player_id, name, topic_id, code_length=4, rng=random):
    """Create a lobby for ``topic_id`` hosted by ``player_id`` and seat the host."""
    name = (name or '').strip()
    if not name:
        raise MissingField('Please enter your name.')
    topic = get_topic(topic_id)
    if not topic:
        raise UnknownTopic(topic_id)

    code = generate_room_code(code_length, rng)
    while store.get(room_path(code)) is not None:
        logger.warning(f"Room code collision detected, regenerating: {code}")
        code = generate_room_code(code_length, rng)

    store.set(room_path(code), {
        'code': code,
        'topic_id': topic['id'],
        'status': 'lobby',
        'order': shuffle(topic['items'], rng),
        'current_index': -1,
        'round_ends_at': None,
        'host_id': player_id,
        'created_at': time.time(),
    })
    store.set(player_path(code, player_id), _player_document(name, len(topic['items'])))
    logger.info(f"[room-created] room={code} topic={topic['id']} host={player_id}")
    return store.get(room_path(code)), store.get(player_path(code, player_id))


def join_room(store, code, player_id, name):
    """Seat a player in a lobby. Rejoining with the same id keeps the first name.

    The lobby check and the insert commit together, so a join racing the
    host's start is retried and then refused.
    """
    name = (name or '').strip()
    code = sanitize_code(code)
    if not name:
        raise MissingField('Please enter your name.')
    if not code:
        raise MissingField('Enter a room code to join.')

    path = player_path(code, player_id)

    def _seat(txn):
        room = txn.get(room_path(code))
        if room is None:
            raise RoomNotFound(code)
        existing = txn.get(path)
        if existing is not None:
            return existing
        if room['status'] != 'lobby':
            raise RoomNotInLobby('That room already started. Create a new one.')
        txn.set(path, _player_document(name, len(room['order'])))
        return None

    existing = store.run_atomic(_seat)
    if existing is not None:
        return existing
    logger.info(f"[player-joined] room={code} player={player_id}")
    return store.get(path)


def submit_choice(store, code, player_id, slot):
    """Place the revealed item into ``slot`` of the player's own ranking.

    The write re-reads the room and the ranking inside an atomic operation,
    so it cannot overwrite a placement made by the auto-fill in the meantime
    and cannot land after the round it was meant for has ended.
    """
    room = store.get(room_path(code))
    if room is None:
        raise RoomNotFound(code)
    item = current_item(room)
    if not item:
        raise RoomNotInRound('No item is being revealed right now.')
    if slot is None or slot == '':
        raise SlotNotChosen('Choose a slot before locking in.')
    try:
        slot = int(slot)
    except (TypeError, ValueError):
        raise SlotUnavailable(f"Slot {slot!r} is not a number")
    path = player_path(code, player_id)

    def _place(txn):
        if current_item(txn.get(room_path(code))) != item:
            raise RoomNotInRound(f"The round for {item} is over.")
        player = txn.get(path)
        if player is None:
            raise PlayerNotFound(player_id)
        ranking = list(player.get('ranking') or [])
        if item in ranking:
            raise ItemAlreadyPlaced(f"{item} is already placed.")
        if not 0 <= slot < len(ranking) or ranking[slot] is not None:
            raise SlotUnavailable(f"Slot {slot + 1} is not available.")
        ranking[slot] = item
        txn.update(path, {'ranking': ranking})
        return dict(player, ranking=ranking, version=player['version'] + 1)

    return store.run_atomic(_place)
