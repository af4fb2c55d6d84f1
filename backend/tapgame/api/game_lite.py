from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from tapgame.services.gamelite import queries
from tapgame.services.gamelite.config import normalize_label
from tapgame.services.gamelite.errors import RedemptionError
from tapgame.services.gamelite.runtime import get_gamelite

game_lite = Blueprint('game_lite', __name__)


def require_admin(view):
    """Guard with the shared X-Admin-Key header."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        key = current_app.config.get('GAMELITE_ADMIN_KEY') or ''
        if not key:
            return jsonify({'error': 'Admin key not configured'}), 403
        provided = request.headers.get('X-Admin-Key')
        if not provided or provided != key:
            return jsonify({'error': 'Unauthorized'}), 401
        return view(*args, **kwargs)
    return wrapper


@game_lite.route('/status', methods=['GET'])
def status():
    cfg = get_gamelite().config.get()
    return jsonify({'ok': True, 'enabled': cfg['enabled'], 'rules': cfg['rules']})


@game_lite.route('/config', methods=['GET'])
def get_config():
    return jsonify(get_gamelite().config.get())


@game_lite.route('/config', methods=['POST'])
@require_admin
def update_config():
    data = request.get_json(silent=True) or {}
    cfg = get_gamelite().config.update(data)
    current_app.logger.info(f"[config-update] enabled={cfg['enabled']}")
    return jsonify(cfg)


@game_lite.route('/config/reset', methods=['POST'])
@require_admin
def reset_config():
    current_app.logger.info('[config-reset] rules restored to defaults')
    return jsonify(get_gamelite().config.reset())


@game_lite.route('/team/<int:registration_id>/score', methods=['GET'])
def team_score(registration_id):
    return jsonify({'registration_id': registration_id, 'score': queries.get_team_score(registration_id)})


@game_lite.route('/teams/scores', methods=['GET'])
def team_scores():
    return jsonify(queries.list_team_scores())


@game_lite.route('/redeem', methods=['POST'])
@require_admin
def redeem():
    data = request.get_json(silent=True) or {}
    try:
        registration_id = int(data.get('registration_id') or 0)
    except (TypeError, ValueError):
        registration_id = 0
    cluster_label = normalize_label(data.get('cluster_label'))
    if not registration_id or not cluster_label:
        return jsonify({'error': 'registration_id and cluster_label required'}), 400
    redeemed_by = data.get('redeemed_by')
    try:
        out = get_gamelite().redemption.redeem(
            registration_id,
            cluster_label,
            redeemed_by=str(redeemed_by) if redeemed_by is not None else None,
        )
    except RedemptionError as exc:
        return jsonify({'error': str(exc)}), 400
    return jsonify(out)


@game_lite.route('/eligible-teams', methods=['GET'])
def eligible_teams():
    return jsonify(queries.eligible_teams(get_gamelite().config))


@game_lite.route('/leaderboard', methods=['GET'])
def leaderboard():
    try:
        limit = int(request.args.get('limit', 10))
    except (TypeError, ValueError):
        limit = 10
    limit = max(1, min(1000, limit))
    return jsonify(queries.leaderboard(limit))
