from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
import logging

from quiztime.errors import StorageUnavailableError
from quiztime.models import db
from quiztime.services.leaderboard import get_leaderboard
from quiztime.services.stats import default_stats, get_stats_by_username
from quiztime.utils.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)

bp = Blueprint('stats', __name__)


@bp.route('/stats/<username>', methods=['GET'])
def get_user_stats(username):
    stats = get_stats_by_username(username)
    if not stats:
        return jsonify({
            "message": "No stats found",
            "stats": default_stats(username)
        }), 200
    return jsonify({"stats": stats.to_dict()}), 200


@bp.route('/leaderboard', methods=['GET'])
def leaderboard():
    try:
        entries = get_leaderboard()
    except (SQLAlchemyError, StorageUnavailableError) as e:
        db.session.rollback()
        logger.error(f"Error fetching leaderboard, serving JSON copy: {e}")
        entries = _json_leaderboard()
    return jsonify({"leaderboard": entries}), 200


def _json_leaderboard():
    """
    Read-only leaderboard from ``leaderboard.json`` when the database is down.

    An unreadable copy raises ``StorageUnavailableError`` so the caller gets a
    retryable 503.
    """
    data = JsonDocumentStore(current_app.config['DATA_DIR']).read('leaderboard', None)
    if not data:
        return []
    rows = data.get('leaderboard', []) if isinstance(data, dict) else data
    entries = []
    for raw in rows:
        if not isinstance(raw, dict):
            continue
        if 'prizeWon' in raw:
            entries.append(raw)
        elif 'score' in raw:
            entries.append({
                'userId': None,
                'playerName': raw.get('username'),
                'prizeWon': raw.get('score', 0),
                'questionsAnswered': raw.get('questionsAnswered', 0),
                'totalQuestions': raw.get('questionsAnswered', 0),
                'completionDate': raw.get('date'),
                'completionTime': raw.get('totalTime', 0),
            })
    entries.sort(key=lambda e: e.get('prizeWon') or 0, reverse=True)
    return entries[:current_app.config.get('LEADERBOARD_SIZE', 100)]
