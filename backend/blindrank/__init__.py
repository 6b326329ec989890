from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

# The store needs `db` and `socketio` at import time
from blindrank.store import DocumentStore  # noqa: E402

store = DocumentStore()


def broadcast_state(game_code):
    """Tell every client watching a room that one of its documents changed."""
    socketio.emit('state_update', {'game_code': game_code}, to=f"game:{game_code}", namespace='/ws')


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)
    store.init_app(flask_app, on_commit=broadcast_state)

    # Register tables on db.metadata for create_all and autogenerate
    from blindrank import models  # noqa: F401

    from blindrank.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Bind Socket.IO handlers to the initialized socketio instance
    from blindrank.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @flask_app.route('/')
    def index():
        return {'message': 'Welcome to the Blind Rank game server!'}

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates every table."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
