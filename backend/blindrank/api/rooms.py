from flask import Blueprint, current_app, jsonify, request
import logging
import time

from blindrank import store
from blindrank.exceptions import BlindRankError, MissingField, RoomNotFound, ValidationError
from blindrank.services.games import lobby
from blindrank.services.games.rounds import current_item, start_game
from blindrank.services.games.scoring import build_answers_table, build_scoreboard
from blindrank.store import players_path, room_path
from blindrank.topics import TOPICS, true_order

rooms = Blueprint('rooms', __name__)
logger = logging.getLogger(__name__)


@rooms.errorhandler(BlindRankError)
def handle_game_error(exc):
    payload = {'error': str(exc)}
    if exc.status_code == 503:
        payload['retryable'] = True
        logger.warning(f"Store unavailable while handling {request.path}: {exc}")
    return jsonify(payload), exc.status_code


def _round_duration():
    return int(current_app.config.get('ROUND_DURATION_SEC', 20))


def _get_room_or_404(game_code):
    code = lobby.sanitize_code(game_code)
    room = store.get(room_path(code))
    if room is None:
        raise RoomNotFound(code)
    return room


@rooms.route('/topics', methods=['GET'])
def list_topics():
    return jsonify([
        {'id': t['id'], 'name': t['name'], 'item_count': len(t['items'])}
        for t in TOPICS
    ])


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or lobby.new_player_id()
    room, player = lobby.create_room(
        store,
        player_id,
        data.get('name'),
        data.get('topic_id'),
        code_length=int(current_app.config.get('ROOM_CODE_LENGTH', 4)),
    )
    return jsonify({'room': room, 'player': player}), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or lobby.new_player_id()
    player = lobby.join_room(store, data.get('game_code'), player_id, data.get('name'))
    return jsonify(player), 201


@rooms.route('/<string:game_code>/state', methods=['GET'])
def get_room_state(game_code):
    room = _get_room_or_404(game_code)
    players = store.list(players_path(room['code']))
    deadline = room.get('round_ends_at')
    payload = {
        'room': room,
        'players': players,
        'current_item': current_item(room),
        'remaining': max(0.0, deadline - time.time()) if deadline else None,
        'round_duration': _round_duration(),
    }
    return jsonify(payload)


@rooms.route('/<string:game_code>/start', methods=['POST'])
def start_room(game_code):
    data = request.get_json(silent=True) or {}
    room = _get_room_or_404(game_code)
    if not data.get('player_id'):
        raise MissingField('player_id is required')
    started = start_game(store, room['code'], data['player_id'], _round_duration())
    return jsonify(started)


@rooms.route('/<string:game_code>/submit', methods=['POST'])
def submit_choice(game_code):
    data = request.get_json(silent=True) or {}
    room = _get_room_or_404(game_code)
    if not data.get('player_id'):
        raise MissingField('player_id is required')
    player = lobby.submit_choice(store, room['code'], data['player_id'], data.get('slot'))
    return jsonify(player)


@rooms.route('/<string:game_code>/results', methods=['GET'])
def get_results(game_code):
    room = _get_room_or_404(game_code)
    if room['status'] != 'complete':
        raise ValidationError('Results are available once the game is complete')
    players = store.list(players_path(room['code']))
    answers = true_order(room['topic_id'])
    return jsonify({
        'reveal_order': room['order'],
        'scoreboard': build_scoreboard(answers, players),
        'answers': build_answers_table(answers, players),
        'players': players,
    })
