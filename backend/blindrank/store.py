"""Shared document store.

Rooms and players are exposed as JSON-like documents addressed by path:

    rooms/<code>                      room document
    rooms/<code>/players              players collection
    rooms/<code>/players/<player_id>  player document

Every row carries a ``version`` column. Plain writes bump it blindly;
``run_atomic`` records the versions it reads and commits its writes as
conditional updates (``WHERE version = <seen>``). Documents it only read
are re-checked with ``SELECT ... FOR UPDATE`` before the writes. The whole
function is retried when another writer got there first. Committed writes
are pushed to in-process subscribers and to the ``on_commit`` hook
(Socket.IO broadcast). Documents carry their ``version`` so subscribers can
drop a snapshot that arrives after a newer one.
"""
import logging
import threading
from functools import wraps

from sqlalchemy import select, update as sa_update, delete as sa_delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blindrank import db
from blindrank.exceptions import (
    BlindRankError,
    PlayerNotFound,
    RoomNotFound,
    StoreUnavailable,
    TransactionConflict,
)

logger = logging.getLogger(__name__)


def room_path(code):
    return f"rooms/{code}"


def players_path(code):
    return f"rooms/{code}/players"


def player_path(code, player_id):
    return f"rooms/{code}/players/{player_id}"


def parse_path(path):
    """Split a path into ``(kind, room_code, player_id)``.

    ``kind`` is one of ``room``, ``players`` or ``player``.
    """
    parts = path.strip('/').split('/')
    if len(parts) >= 2 and parts[0] == 'rooms' and parts[1]:
        if len(parts) == 2:
            return 'room', parts[1], None
        if len(parts) == 3 and parts[2] == 'players':
            return 'players', parts[1], None
        if len(parts) == 4 and parts[2] == 'players' and parts[3]:
            return 'player', parts[1], parts[3]
    raise ValueError(f"Unsupported document path: {path!r}")


def _not_found(path):
    kind, code, player_id = parse_path(path)
    if kind == 'player':
        return PlayerNotFound(player_id)
    return RoomNotFound(code)


class _VersionConflict(Exception):
    pass


def _store_call(func):
    """Roll back on failure; surface database errors as StoreUnavailable."""
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except BlindRankError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"[store-error] {func.__name__} failed: {exc}", exc_info=True)
            raise StoreUnavailable(f"Store request failed: {func.__name__}") from exc
    return wrapper


class Subscription:
    def __init__(self, path, callback):
        self.path = path
        self.callback = callback
        self.active = True


class Transaction:
    """Handle passed to ``run_atomic`` functions.

    Reads hit the database; writes are buffered until the function returns.
    """

    def __init__(self, store):
        self._store = store
        self._seen = {}
        self._writes = []

    def get(self, path):
        document, version = self._store._read(path)
        self._seen[path] = version
        return document

    def update(self, path, fields):
        if path not in self._seen:
            self.get(path)
        if self._seen[path] is None:
            raise _not_found(path)
        self._writes.append((path, dict(fields)))

    def set(self, path, document):
        if path not in self._seen:
            self.get(path)
        if self._seen[path] is not None:
            model, _ = self._store._model_filters(path)
            document = dict(model.defaults(), **document)
        self._writes.append((path, dict(document)))

    def commit(self):
        if self._writes:
            # Documents that were only read must still be at the version seen
            targets = {path for path, _ in self._writes}
            for path, version in self._seen.items():
                if path not in targets and self._store._locked_version(path) != version:
                    raise _VersionConflict(path)
        written = []
        for path, fields in self._writes:
            version = self._seen[path]
            if version is None:
                self._store._insert(path, fields)
                self._seen[path] = 1
            else:
                if not self._store._update_row(path, fields, expected_version=version):
                    raise _VersionConflict(path)
                self._seen[path] = version + 1
            if path not in written:
                written.append(path)
        db.session.commit()
        return written


class DocumentStore:
    def __init__(self, max_attempts=5):
        self.max_attempts = max_attempts
        self._on_commit = None
        self._subscribers = {}
        self._lock = threading.RLock()

    def init_app(self, app, on_commit=None):
        self.max_attempts = int(app.config.get('ATOMIC_MAX_ATTEMPTS', self.max_attempts))
        self._on_commit = on_commit
        with self._lock:
            self._subscribers.clear()
        app.extensions['blindrank_store'] = self

    # ---- Reads ----

    @_store_call
    def get(self, path):
        document, _ = self._read(path)
        return document

    @_store_call
    def list(self, collection_path):
        kind, code, _ = parse_path(collection_path)
        if kind != 'players':
            raise ValueError(f"{collection_path!r} is not a collection")
        return self._list_players(code)

    # ---- Plain writes ----

    @_store_call
    def set(self, path, document):
        _, version = self._read(path)
        if version is None:
            self._insert(path, document)
        else:
            model, _ = self._model_filters(path)
            self._update_row(path, dict(model.defaults(), **document))
        db.session.commit()
        self._publish([path])

    @_store_call
    def update(self, path, fields):
        if not self._update_row(path, fields):
            raise _not_found(path)
        db.session.commit()
        self._publish([path])

    @_store_call
    def delete(self, path):
        from blindrank.models import Player, Room

        kind, code, player_id = parse_path(path)
        if kind == 'room':
            db.session.execute(sa_delete(Player).where(Player.room_code == code))
            db.session.execute(sa_delete(Room).where(Room.code == code))
            written = [path, players_path(code)]
        elif kind == 'player':
            db.session.execute(
                sa_delete(Player).where(Player.room_code == code, Player.id == player_id)
            )
            written = [path]
        else:
            raise ValueError(f"Cannot delete collection {path!r}")
        db.session.commit()
        self._publish(written)

    # ---- Atomic read-modify-write ----

    def run_atomic(self, fn):
        """Run ``fn(txn)`` until its writes commit without a version conflict.

        ``fn`` may run several times and must not have side effects outside
        the transaction handle. Domain errors raised by ``fn`` propagate
        immediately and nothing is written.
        """
        for attempt in range(1, self.max_attempts + 1):
            txn = Transaction(self)
            try:
                result = fn(txn)
                written = txn.commit()
            except (_VersionConflict, IntegrityError) as exc:
                db.session.rollback()
                logger.info(f"[atomic-retry] attempt={attempt} conflict={exc}")
                continue
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[store-error] run_atomic failed: {exc}", exc_info=True)
                raise StoreUnavailable('Store request failed: run_atomic') from exc
            except Exception:
                db.session.rollback()
                raise
            self._publish(written)
            return result
        raise TransactionConflict(self.max_attempts)

    # ---- Subscriptions ----

    def subscribe(self, path, on_change):
        """Deliver the current value now and after every committed change.

        Documents are delivered as dicts (``None`` when absent or removed);
        collections as lists. Returns a function that cancels the
        subscription; no callback runs after it returns.
        """
        parse_path(path)
        sub = Subscription(path, on_change)
        with self._lock:
            self._subscribers.setdefault(path, []).append(sub)

        def unsubscribe():
            with self._lock:
                sub.active = False
                subs = self._subscribers.get(path, [])
                if sub in subs:
                    subs.remove(sub)
                if not subs:
                    self._subscribers.pop(path, None)

        if sub.active:
            on_change(self._snapshot(path))
        return unsubscribe

    def subscriber_count(self, path):
        with self._lock:
            return len(self._subscribers.get(path, []))

    # ---- Internals ----

    def _model_filters(self, path):
        from blindrank.models import Player, Room

        kind, code, player_id = parse_path(path)
        if kind == 'room':
            return Room, (Room.code == code,)
        if kind == 'player':
            return Player, (Player.room_code == code, Player.id == player_id)
        raise ValueError(f"{path!r} is a collection, not a document")

    def _read(self, path):
        model, filters = self._model_filters(path)
        row = db.session.execute(
            select(model).where(*filters).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None, None
        return row.to_dict(), row.version

    def _locked_version(self, path):
        model, filters = self._model_filters(path)
        return db.session.execute(
            select(model.version).where(*filters).with_for_update()
        ).scalar_one_or_none()

    def _list_players(self, code):
        from blindrank.models import Player

        rows = db.session.execute(
            select(Player)
            .where(Player.room_code == code)
            .order_by(Player.joined_at, Player.id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dict() for row in rows]

    def _insert(self, path, document):
        from blindrank.models import Player, Room

        kind, code, player_id = parse_path(path)
        if kind == 'room':
            values = Room.columns_from(document)
            values['code'] = code
            db.session.add(Room(version=1, **values))
        else:
            _, room_version = self._read(room_path(code))
            if room_version is None:
                raise RoomNotFound(code)
            db.session.add(Player(room_code=code, id=player_id, version=1, **Player.columns_from(document)))
        db.session.flush()

    def _update_row(self, path, fields, expected_version=None):
        model, filters = self._model_filters(path)
        values = model.columns_from(fields)
        stmt = sa_update(model).where(*filters)
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
        stmt = stmt.values(version=model.version + 1, **values).execution_options(synchronize_session=False)
        return db.session.execute(stmt).rowcount > 0

    def _snapshot(self, path):
        kind, code, _ = parse_path(path)
        if kind == 'players':
            return self._list_players(code)
        document, _ = self._read(path)
        return document

    def _publish(self, paths):
        targets = []
        codes = []
        for path in paths:
            kind, code, _ = parse_path(path)
            if path not in targets:
                targets.append(path)
            if kind == 'player' and players_path(code) not in targets:
                targets.append(players_path(code))
            if code not in codes:
                codes.append(code)

        for path in targets:
            with self._lock:
                subs = [s for s in self._subscribers.get(path, []) if s.active]
            if not subs:
                continue
            snapshot = self._snapshot(path)
            for sub in subs:
                if not sub.active:
                    continue
                try:
                    sub.callback(snapshot)
                except Exception:
                    logger.exception(f"[subscriber-error] path={path}")

        if self._on_commit:
            for code in codes:
                self._on_commit(code)
