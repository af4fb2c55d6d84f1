from flask import Blueprint, jsonify, request, current_app
from tapgame import db
from tapgame.models import TapLog
from tapgame.services.gamelite.runtime import get_gamelite

taps = Blueprint('taps', __name__)


@taps.route('/read', methods=['POST'])
def rfid_read():
    """Log one reader event, then hand it to the scoring engine.

    The tap is committed first; whatever happens while scoring, the reader
    gets its success response.
    """
    data = request.get_json(silent=True) or {}
    reader = data.get('reader')
    portal = data.get('portal')
    tag = data.get('tag')
    current_app.logger.debug(f"[rfid-read] reader={reader} portal={portal} tag={tag}")
    if not all([reader, portal, tag]):
        return jsonify({'error': 'Missing reader, portal or tag'}), 400

    tap = TapLog(rfid_card_id=str(tag), portal=str(portal), label=str(reader))
    try:
        db.session.add(tap)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception('[rfid-read] tap insert failed')
        return jsonify({'error': 'Database insert failed'}), 500
    entry = tap.to_dict()

    try:
        scoring = get_gamelite().scoring.on_tap_persisted(tap)
    except Exception as exc:
        current_app.logger.exception(f"[rfid-read] scoring failed for tap={entry['id']}")
        scoring = {'error': str(exc)}

    return jsonify({'status': 'success', 'entry': entry, 'scoring': scoring})
