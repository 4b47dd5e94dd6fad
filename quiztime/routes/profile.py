from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity
import logging

from quiztime.errors import ValidationError
from quiztime.routes.auth import issue_token
from quiztime.services.accounts import get_score, get_user, rename_user, set_score
from quiztime.models import UserStats, db

logger = logging.getLogger(__name__)

bp = Blueprint('profile', __name__)


def _user_summary(user):
    return {
        "id": user.user_id,
        "username": user.username,
        "email": user.email,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "lastActivity": user.last_activity.isoformat() if user.last_activity else None,
    }


@bp.route('/profile', methods=['GET'])
@jwt_required()
def get_profile():
    """Account details of the caller, with their stats when they have any"""
    user = get_user(get_jwt_identity())
    stats = db.session.get(UserStats, user.user_id)
    return jsonify({
        "user": _user_summary(user),
        "stats": stats.to_dict() if stats else None
    }), 200


@bp.route('/profile', methods=['PATCH'])
@jwt_required()
def update_profile():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    user = get_user(get_jwt_identity())
    if 'username' in data:
        user = rename_user(user.user_id, data['username'])

    # The old token still carries the previous username claim
    return jsonify({
        "message": "Profile updated successfully",
        "user": _user_summary(user),
        "access_token": issue_token(user)
    }), 200


@bp.route('/api/score', methods=['POST'])
def save_score():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    username = data.get('username')
    score = data.get('score')
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    if isinstance(score, bool) or not isinstance(score, int) or score < 0:
        raise ValidationError("score must be a non-negative integer")

    set_score(username, score)
    return jsonify({"success": True}), 200


@bp.route('/api/score/<username>', methods=['GET'])
def user_score(username):
    return jsonify({"score": get_score(username)}), 200
