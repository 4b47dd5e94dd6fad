from flask import Blueprint, jsonify

bp = Blueprint('main', __name__)


@bp.route('/', strict_slashes=True)
def index():
    """Return API status"""
    return jsonify({
        "name": "QuizTime API",
        "status": "ok",
        "version": "1.0.0"
    })


@bp.route('/api/health')
def health_check():
    """API health check endpoint"""
    return jsonify({"status": "ok", "message": "QuizTime API is running"})


@bp.route('/api')
def api_info():
    return jsonify({
        "message": "Welcome to QuizTime API",
        "version": "1.0.0",
        "endpoints": {
            "game": "/api/game/questions",
            "complete": "/api/game/complete",
            "questions": "/api/questions",
            "checkAnswer": "/api/check-answer",
            "lifelines": "/api/lifelines",
            "stats": "/api/stats/<username>",
            "leaderboard": "/api/leaderboard",
            "score": "/api/score/<username>",
            "profile": "/profile"
        }
    })
