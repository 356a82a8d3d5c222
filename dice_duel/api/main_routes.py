from flask import (
    Blueprint,
    current_app,
    jsonify
)
from ..extensions import limiter

bp = Blueprint('main', __name__)


def _match_lookup_limit():
    return current_app.config['MATCH_LOOKUP_RATE_LIMIT']


@bp.route('/health')
def health():
    """Liveness probe."""
    return jsonify({"status": "ok"})


@bp.route('/api/matches/<match_id>')
@limiter.limit(_match_lookup_limit)
def get_match(match_id):
    """
    Public summary of a running match. Bets are never included.
    """
    summary = current_app.game_service.get_match_summary(match_id)
    if summary is None:
        current_app.logger.info(f"Match lookup for unknown id {match_id}")
        return jsonify({"error": "Match not found"}), 404
    return jsonify(summary)
