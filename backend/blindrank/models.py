from blindrank import db
import json
import random
import time

ROOM_CODE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'


def generate_room_code(length=4, rng=random):
    """Generate a short join code without look-alike characters (0/O, 1/I/L)."""
    return ''.join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def _dump_list(value):
    return json.dumps(list(value)) if value is not None else None


def _load_list(raw):
    if not raw:
        return []
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return []


class Room(db.Model):
    __tablename__ = 'room'
    code = db.Column(db.String(8), primary_key=True)
    topic_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='lobby')  # lobby, in_round, complete
    order = db.Column(db.Text, nullable=False)  # JSON-encoded reveal order
    current_index = db.Column(db.Integer, nullable=False, default=-1)
    round_ends_at = db.Column(db.Float, nullable=True)
    host_id = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    version = db.Column(db.Integer, nullable=False, default=1)
    players = db.relationship('Player', back_populates='room', cascade='all, delete-orphan')

    @staticmethod
    def defaults():
        """Values written for fields a replacing ``set`` leaves out."""
        return {
            'topic_id': '',
            'status': 'lobby',
            'order': [],
            'current_index': -1,
            'round_ends_at': None,
            'host_id': '',
            'created_at': time.time(),
        }

    @staticmethod
    def columns_from(document):
        """Map document fields onto column values."""
        values = {}
        for key in ('code', 'topic_id', 'status', 'current_index', 'round_ends_at', 'host_id', 'created_at'):
            if key in document:
                values[key] = document[key]
        if 'order' in document:
            values['order'] = _dump_list(document['order'])
        return values

    def to_dict(self):
        return {
            'code': self.code,
            'topic_id': self.topic_id,
            'status': self.status,
            'order': _load_list(self.order),
            'current_index': self.current_index,
            'round_ends_at': self.round_ends_at,
            'host_id': self.host_id,
            'created_at': self.created_at,
            'version': self.version,
        }


class Player(db.Model):
    __tablename__ = 'player'
    room_code = db.Column(db.String(8), db.ForeignKey('room.code'), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    ranking = db.Column(db.Text, nullable=False)  # JSON-encoded slots, null for empty
    joined_at = db.Column(db.Float, nullable=False, default=time.time)
    version = db.Column(db.Integer, nullable=False, default=1)
    room = db.relationship('Room', back_populates='players')

    @staticmethod
    def defaults():
        return {'name': '', 'ranking': [], 'joined_at': time.time()}

    @staticmethod
    def columns_from(document):
        values = {}
        for key in ('name', 'joined_at'):
            if key in document:
                values[key] = document[key]
        if 'ranking' in document:
            values['ranking'] = _dump_list(document['ranking'])
        return values

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'ranking': _load_list(self.ranking),
            'joined_at': self.joined_at,
            'version': self.version,
        }
