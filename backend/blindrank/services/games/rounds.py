"""Round advancement.

Any client that believes it is the host may call into this module, possibly
several at once. Every transition is a version-checked atomic operation
against the store, so duplicate attempts collapse into one.
"""
import logging
import time
from functools import partial
from typing import Callable, List, Optional, Sequence

from blindrank.exceptions import NotHost, RoomNotFound, StoreUnavailable
from blindrank.store import player_path, room_path

logger = logging.getLogger(__name__)

ADVANCED = 'advanced'
COMPLETED = 'completed'


def current_item(room: Optional[dict]) -> Optional[str]:
    """The item revealed this round, if any."""
    if not room or room.get('status') != 'in_round':
        return None
    order = room.get('order') or []
    index = room.get('current_index', -1)
    if 0 <= index < len(order):
        return order[index]
    return None


def all_players_submitted(players: Sequence[dict], item: Optional[str]) -> bool:
    """True once every known player has placed ``item``. Never true with no players."""
    if not item:
        return False
    return len(players) > 0 and all(item in (p.get('ranking') or []) for p in players)


def _fill_first_open_slot(path: str, item: str, txn) -> bool:
    player = txn.get(path)
    if player is None:
        return False
    ranking = list(player.get('ranking') or [])
    if item in ranking:
        return False
    if None not in ranking:
        logger.warning(f"[autofill-full] {path} has no open slot for {item!r} (slots={len(ranking)})")
        return False
    ranking[ranking.index(None)] = item
    txn.update(path, {'ranking': ranking})
    return True


def auto_fill_missing(store, room: dict, players: Sequence[dict]) -> List[str]:
    """Place the revealed item in the first open slot of every player who missed the round.

    Each player is filled in a separate atomic operation that re-checks the
    player's ranking. A player that cannot be filled right now is logged and
    skipped; advancement does not depend on it.
    """
    item = current_item(room)
    if not item:
        return []
    code = room['code']
    filled = []
    for player in players:
        if item in (player.get('ranking') or []):
            continue
        path = player_path(code, player['id'])
        try:
            if store.run_atomic(partial(_fill_first_open_slot, path, item)):
                filled.append(player['id'])
        except StoreUnavailable as exc:
            logger.warning(f"[autofill-failed] room={code} player={player['id']}: {exc}")
    if filled:
        logger.info(f"[autofill] room={code} index={room.get('current_index')} item={item!r} players={filled}")
    return filled


def advance_round(
    store,
    code: str,
    expected_index: int,
    round_duration: float,
    clock: Callable[[], float] = time.time,
) -> Optional[str]:
    """Move the room past round ``expected_index``.

    Returns ``'advanced'``, ``'completed'``, or None when the room is no
    longer in that round (another caller won, or the game never started).
    """
    path = room_path(code)

    def _transition(txn):
        room = txn.get(path)
        if room is None:
            raise RoomNotFound(code)
        if room['status'] != 'in_round' or room['current_index'] != expected_index:
            return None
        next_index = room['current_index'] + 1
        if next_index >= len(room['order']):
            txn.update(path, {'status': 'complete', 'round_ends_at': None})
            return COMPLETED
        txn.update(path, {'current_index': next_index, 'round_ends_at': clock() + round_duration})
        return ADVANCED

    outcome = store.run_atomic(_transition)
    if outcome is None:
        logger.info(f"[advance-abort] room={code} expected_index={expected_index}")
    elif outcome == COMPLETED:
        logger.info(f"[round-complete] room={code} last_index={expected_index}")
    else:
        logger.info(f"[round-advance] room={code} index={expected_index + 1}")
    return outcome


def evaluate_round(
    store,
    room: dict,
    players: Sequence[dict],
    now: float,
    round_duration: float,
    clock: Callable[[], float] = time.time,
) -> Optional[str]:
    """Host-side policy run on every snapshot and timer expiry.

    Past the deadline: auto-fill the stragglers, then advance. Before it:
    advance early once everybody has answered.
    """
    if not room or room.get('status') != 'in_round':
        return None
    index = room['current_index']
    deadline = room.get('round_ends_at')
    if deadline is None or deadline - now <= 0:
        auto_fill_missing(store, room, players)
        return advance_round(store, room['code'], index, round_duration, clock)
    if all_players_submitted(players, current_item(room)):
        return advance_round(store, room['code'], index, round_duration, clock)
    return None


def start_game(
    store,
    code: str,
    player_id: str,
    round_duration: float,
    clock: Callable[[], float] = time.time,
) -> dict:
    """Open the first round. Only the host may start; starting twice is harmless."""
    path = room_path(code)
    room = store.get(path)
    if room is None:
        raise RoomNotFound(code)
    if room['host_id'] != player_id:
        raise NotHost('Only the host may start the game')
    if room['status'] != 'lobby':
        # Idempotent start: already started
        return room
    store.update(path, {
        'status': 'in_round',
        'current_index': 0,
        'round_ends_at': clock() + round_duration,
    })
    logger.info(f"[round-start] room={code} items={len(room['order'])}")
    return store.get(path)
