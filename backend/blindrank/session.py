"""One client's live view of a room.

A ``RoomSession`` subscribes to the room document and its players
collection, keeps the latest snapshots, runs the round timer, and, when its
player is the host, drives round advancement. Store callbacks and timer
expiry are queued on a mailbox and handled one at a time, so the advancement
policy never runs re-entrantly even when callbacks arrive from request
threads and the timer worker at once. While a round is overdue the host
re-evaluates on every timer tick until the room moves on. Snapshots older
than the one already held are dropped.
"""
import logging
import threading
import time
from collections import deque
from functools import partial

from flask import has_app_context

from blindrank.exceptions import BlindRankError, RoomNotFound
from blindrank.services.games import lobby, rounds
from blindrank.services.games.scoring import build_answers_table, build_scoreboard
from blindrank.services.games.timer import RoundTimer
from blindrank.store import players_path, room_path
from blindrank.topics import true_order

logger = logging.getLogger(__name__)


class RoomSession:
    def __init__(
        self,
        store,
        code,
        player_id,
        round_duration=20,
        poll_interval=0.2,
        clock=time.time,
        spawn=None,
        sleep=time.sleep,
        app=None,
        on_change=None,
        on_error=None,
    ):
        self.store = store
        self.code = code
        self.player_id = player_id
        self.round_duration = round_duration
        self.clock = clock
        self.app = app
        self.on_change = on_change
        self.on_error = on_error

        self.room = None
        self.players = []
        self.players_loaded = False
        self.closed = False
        self.last_outcome = None

        self._mailbox = deque()
        self._mailbox_lock = threading.Lock()
        self._draining = False
        self._advancing = False
        self._unsubscribers = []
        self.timer = RoundTimer(
            on_expire=self._on_timer_expired,
            on_overdue=self._on_timer_overdue,
            interval=poll_interval,
            clock=clock,
            spawn=spawn,
            sleep=sleep,
        )

    # ---- Lifecycle ----

    def open(self):
        logger.info(f"[session-open] room={self.code} player={self.player_id}")
        for path, kind in ((room_path(self.code), 'room'), (players_path(self.code), 'players')):
            unsubscribe = self.store.subscribe(path, partial(self.post, kind))
            if self.closed:
                # The room vanished while subscribing
                unsubscribe()
                break
            self._unsubscribers.append(unsubscribe)
        return self

    def close(self):
        if self.closed:
            return
        self.closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.timer.cancel()
        with self._mailbox_lock:
            self._mailbox.clear()
        logger.info(f"[session-close] room={self.code} player={self.player_id}")

    # ---- Derived state ----

    @property
    def is_host(self):
        return bool(self.room) and self.room.get('host_id') == self.player_id

    @property
    def me(self):
        return next((p for p in self.players if p.get('id') == self.player_id), None)

    @property
    def current_item(self):
        return rounds.current_item(self.room)

    def remaining(self):
        return self.timer.remaining()

    def scoreboard(self):
        if not self.room:
            return []
        return build_scoreboard(true_order(self.room['topic_id']), self.players)

    def answers(self):
        if not self.room:
            return []
        return build_answers_table(true_order(self.room['topic_id']), self.players)

    # ---- Player actions ----

    def start(self):
        return rounds.start_game(self.store, self.code, self.player_id, self.round_duration, self.clock)

    def submit(self, slot):
        return lobby.submit_choice(self.store, self.code, self.player_id, slot)

    # ---- Mailbox ----

    def post(self, kind, payload=None):
        with self._mailbox_lock:
            if self.closed:
                return
            self._mailbox.append((kind, payload))
            if self._draining:
                return
            self._draining = True
        self._drain()

    def _drain(self):
        while True:
            with self._mailbox_lock:
                if not self._mailbox or self.closed:
                    self._draining = False
                    return
                kind, payload = self._mailbox.popleft()
            try:
                if self.app is not None and not has_app_context():
                    with self.app.app_context():
                        self._handle(kind, payload)
                else:
                    self._handle(kind, payload)
            except Exception:
                with self._mailbox_lock:
                    self._draining = False
                raise

    def _on_timer_expired(self, key):
        self.post('expired', key)

    def _on_timer_overdue(self, key):
        # Keep retrying while the round is overdue; a failed advance is not final
        if self.is_host:
            self.post('overdue', key)

    def _handle(self, kind, payload):
        if kind == 'room':
            if payload is None:
                self.close()
                self._report(RoomNotFound(self.code))
                return
            if _version(payload) < _version(self.room):
                logger.info(
                    f"[session-stale] room={self.code} version={_version(payload)} held={_version(self.room)}"
                )
                return
            self.room = payload
            self._sync_timer()
        elif kind == 'players':
            self.players = self._merge_players(payload or [])
            self.players_loaded = True
        elif kind in ('expired', 'overdue'):
            if payload != self.timer.key:
                return
        if self.on_change:
            self.on_change(self)
        self._evaluate()

    def _merge_players(self, incoming):
        held = {p.get('id'): p for p in self.players}
        merged = []
        for player in incoming:
            current = held.get(player.get('id'))
            merged.append(current if _version(current) > _version(player) else player)
        return merged

    def _sync_timer(self):
        room = self.room
        if room.get('status') == 'in_round' and room.get('round_ends_at') is not None:
            self.timer.arm((room['code'], room['current_index'], room['round_ends_at']), room['round_ends_at'])
        else:
            self.timer.cancel()

    def _evaluate(self):
        if self.closed or not self.is_host or not self.players_loaded or self._advancing:
            return
        if self.room.get('status') != 'in_round':
            return
        self._advancing = True
        try:
            outcome = rounds.evaluate_round(
                self.store,
                self.room,
                self.players,
                now=self.clock(),
                round_duration=self.round_duration,
                clock=self.clock,
            )
            if outcome:
                self.last_outcome = outcome
        except BlindRankError as exc:
            self._report(exc)
        finally:
            self._advancing = False

    def _report(self, exc):
        logger.warning(f"[session-error] room={self.code} player={self.player_id}: {exc}")
        if self.on_error:
            self.on_error(exc)
        elif not isinstance(exc, RoomNotFound):
            raise exc


def _version(document):
    return (document or {}).get('version', 0)
