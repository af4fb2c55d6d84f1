from flask_socketio import join_room, leave_room, emit
from tapgame import socketio
from tapgame.services.gamelite.config import normalize_label
from typing import Any, Dict


KIOSK_NAMESPACE = '/kiosk'


def _room(cluster: str) -> str:
    return f"cluster:{cluster}"


def handle_connect():
    emit('connected', {'message': f'Connected to {KIOSK_NAMESPACE}'})


def handle_join_cluster(data):
    cluster = normalize_label((data or {}).get('cluster'))
    if not cluster:
        emit('error', {'message': 'cluster is required'})
        return
    join_room(_room(cluster))
    emit('hello', {'ok': True, 'cluster': cluster})


def handle_leave_cluster(data):
    cluster = normalize_label((data or {}).get('cluster'))
    if not cluster:
        emit('error', {'message': 'cluster is required'})
        return
    leave_room(_room(cluster))
    emit('left', {'room': _room(cluster)})


def handle_ping(data):
    emit('pong', data or {})


def relay_tap_to_kiosks(event: Dict[str, Any]) -> None:
    """LiveEventBus subscriber: forward a tap to displays joined to its cluster."""
    cluster = normalize_label((event or {}).get('label'))
    if not cluster:
        return
    socketio.emit('tap', event, to=_room(cluster), namespace=KIOSK_NAMESPACE)


def register_socketio_handlers() -> None:
    """Register kiosk display handlers on the '/kiosk' namespace."""
    socketio.on_event('connect', handle_connect, namespace=KIOSK_NAMESPACE)
    socketio.on_event('join_cluster', handle_join_cluster, namespace=KIOSK_NAMESPACE)
    socketio.on_event('leave_cluster', handle_leave_cluster, namespace=KIOSK_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=KIOSK_NAMESPACE)
