import os
import sys
import threading
from datetime import datetime, timedelta

import pytest

# Ensure the backend root (containing the `tapgame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from tapgame import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    GAMELITE_CONFIG_FILE = ''
    GAMELITE_ADMIN_KEY = 'test-admin'
    EXIT_LABEL = 'EXITOUT'
    KIOSK_HEARTBEAT_SEC = 1
    KIOSK_QUEUE_SIZE = 10


ADMIN_HEADERS = {'X-Admin-Key': TestConfig.GAMELITE_ADMIN_KEY}


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import tapgame.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/kiosk'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/kiosk')
    except Exception:
        pass


@pytest.fixture()
def gamelite(flask_app):
    return flask_app.extensions['gamelite']


@pytest.fixture()
def make_team(flask_app):
    """Create a registration with one member per card; returns its id."""
    from tapgame.models import Registration, Member

    def _make(*cards, portal='portal1', group_size=None):
        team = Registration(portal=portal, group_size=len(cards) if group_size is None else group_size)
        db.session.add(team)
        db.session.flush()
        team_id = team.id
        for idx, card in enumerate(cards):
            db.session.add(Member(registration_id=team_id, rfid_card_id=card, role='LEADER' if idx == 0 else 'MEMBER'))
        db.session.commit()
        return team_id

    return _make


@pytest.fixture()
def tap(flask_app, gamelite):
    """Persist a tap one second after the previous one and run it through scoring."""
    from tapgame.models import TapLog
    clock = {'now': datetime(2026, 5, 1, 12, 0, 0)}

    def _tap(card, label, portal='reader1'):
        clock['now'] += timedelta(seconds=1)
        log = TapLog(rfid_card_id=card, label=label, portal=portal, log_time=clock['now'])
        db.session.add(log)
        db.session.commit()
        return gamelite.scoring.on_tap_persisted(log)

    return _tap


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, so each thread gets its own connection."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'tapgame.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import tapgame.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def run_together(flask_app, count, action):
    """Run ``action()`` on ``count`` threads released at the same moment.

    Returns ``(results, errors)`` in completion order.
    """
    barrier = threading.Barrier(count)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        with flask_app.app_context():
            barrier.wait()
            try:
                outcome = action()
            except Exception as exc:
                with lock:
                    errors.append(exc)
            else:
                with lock:
                    results.append(outcome)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors
