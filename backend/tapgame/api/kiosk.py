from flask import Blueprint, Response, jsonify, stream_with_context
from tapgame.services.gamelite import queries
from tapgame.services.gamelite.config import normalize_label
from tapgame.services.gamelite.runtime import get_gamelite

kiosk = Blueprint('kiosk', __name__)


@kiosk.route('/clusters', methods=['GET'])
def list_clusters():
    return jsonify({'clusters': get_gamelite().config.cluster_labels()})


@kiosk.route('/cluster/<string:cluster_label>/stream', methods=['GET'])
def cluster_stream(cluster_label):
    gamelite = get_gamelite()
    want = normalize_label(cluster_label)
    if want not in gamelite.config.cluster_labels():
        return jsonify({'error': 'Unknown cluster', 'cluster': want}), 404

    stream = gamelite.open_kiosk_stream(want)
    response = Response(
        stream_with_context(stream.events()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
    # Unsubscribe even if the display drops before the first frame is sent
    response.call_on_close(stream.close)
    return response


@kiosk.route('/eligibility/by-card/<string:rfid>', methods=['GET'])
def eligibility_by_card(rfid):
    return jsonify(queries.eligibility_for_card(rfid, get_gamelite().config))
