from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Engine services live on app.extensions['gamelite']
    from tapgame.services.gamelite.runtime import init_gamelite
    gamelite = init_gamelite(flask_app)

    from tapgame.api.taps import taps
    flask_app.register_blueprint(taps, url_prefix='/api/rfid')

    from tapgame.api.game_lite import game_lite
    flask_app.register_blueprint(game_lite, url_prefix='/api/game-lite')

    from tapgame.api.kiosk import kiosk
    flask_app.register_blueprint(kiosk, url_prefix='/api/kiosk')

    # Kiosk displays on Socket.IO get the same taps as the SSE stream
    from tapgame.socketio_events import register_socketio_handlers, relay_tap_to_kiosks
    register_socketio_handlers()
    gamelite.bus.subscribe(relay_tap_to_kiosks)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with demo teams."""
        from tapgame.models import Registration, Member
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            teams = {
                'portal1': ['CARD-A1', 'CARD-A2', 'CARD-A3'],
                'portal2': ['CARD-B1', 'CARD-B2'],
            }
            for portal, cards in teams.items():
                team = Registration(portal=portal, group_size=len(cards))
                db.session.add(team)
                db.session.flush()
                for idx, card in enumerate(cards):
                    role = 'LEADER' if idx == 0 else 'MEMBER'
                    db.session.add(Member(registration_id=team.id, rfid_card_id=card, role=role))

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
