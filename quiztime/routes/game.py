from flask import Blueprint, jsonify, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt
import logging

from quiztime.errors import ForbiddenError, NotFoundError, ValidationError
from quiztime.models import db, LEVELS
from quiztime.services.completion import complete_game
from quiztime.services.game_session import GAME_LENGTH, build_game_session, game_structure
from quiztime.services.progress import get_or_create_user, next_batch, record_served, reset_progress
from quiztime.services.question_store import find_question, load_catalog
from quiztime.services.stats import CompletionDelta

# Set up logging
logger = logging.getLogger(__name__)

bp = Blueprint('game', __name__)

LIFELINES = ['50-50', 'skip', 'audience', 'hint', 'timer-extension']


def current_identity():
    """(user_id, username) of the authenticated caller."""
    user_id = get_jwt_identity()
    username = get_jwt().get('username') or user_id
    return user_id, username


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _required_int(data, field, minimum=0):
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return value


@bp.route('/game/questions', methods=['POST'])
@jwt_required()
def game_questions():
    """Start a full game: 16 questions across three tiers"""
    user_id, username = current_identity()
    # The body is optional here
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    requested = data.get('username')
    if requested and requested != username:
        raise ForbiddenError("Cannot start a game for another user")

    questions = build_game_session(load_catalog(),
                                   rng=current_app.extensions['quiztime_rng'])
    if questions:
        user = get_or_create_user(username, user_id)
        record_served(user, [q['id'] for q in questions])

    logger.debug(f"Built a {len(questions)} question game for {username}")
    return jsonify({
        "success": True,
        "questions": questions,
        "totalQuestions": GAME_LENGTH,
        "gameStructure": game_structure()
    }), 200


@bp.route('/questions', methods=['POST'])
def get_questions():
    """Questions of one level the user has not been served before"""
    data = _json_body()
    questions = next_batch(data.get('username'), data.get('level'),
                           data.get('count', 1))
    return jsonify(questions), 200


@bp.route('/check-answer', methods=['POST'])
def check_answer():
    data = _json_body()
    level = data.get('level')
    question_id = data.get('questionId')
    if level not in LEVELS:
        raise ValidationError("Invalid level")
    if question_id is None or question_id == '':
        raise ValidationError("questionId is required")
    if 'answer' not in data:
        raise ValidationError("answer is required")

    question = find_question(question_id, level)
    if not question:
        raise NotFoundError("Question not found")

    answer = data['answer']
    if isinstance(answer, int) and not isinstance(answer, bool):
        options = question['options']
        is_correct = 0 <= answer < len(options) and options[answer] == question['answer']
    else:
        is_correct = answer == question['answer']

    return jsonify({
        "correct": is_correct,
        "correctAnswer": None if is_correct else question['answer']
    }), 200


@bp.route('/game/complete', methods=['POST'])
@jwt_required()
def game_complete():
    """Record a finished game into stats and the leaderboard"""
    user_id, username = current_identity()
    data = _json_body()

    questions_answered = _required_int(data, 'questionsAnswered')
    correct_answers = _required_int(data, 'correctAnswers')
    total_questions = _required_int(data, 'totalQuestions')
    final_prize = _required_int(data, 'finalPrize')
    completion_time = _required_int(data, 'completionTime')
    game_completed = data.get('gameCompleted', False)
    if not isinstance(game_completed, bool):
        raise ValidationError("gameCompleted must be a boolean")
    if correct_answers > questions_answered:
        raise ValidationError("correctAnswers cannot exceed questionsAnswered")
    if total_questions and questions_answered > total_questions:
        raise ValidationError("questionsAnswered cannot exceed totalQuestions")

    delta = CompletionDelta(questions_answered=questions_answered,
                            correct_answers=correct_answers,
                            prize_won=final_prize,
                            completed=game_completed,
                            completion_time=completion_time)
    stats, rank = complete_game(user_id, username, delta, total_questions)

    response = {"success": True, "stats": stats.to_dict()}
    if rank is not None:
        response["leaderboardPosition"] = rank
    return jsonify(response), 200


@bp.route('/lifelines', methods=['GET'])
def lifelines():
    return jsonify({"lifelines": LIFELINES}), 200


@bp.route('/reset-questions', methods=['POST'])
@jwt_required()
def reset_questions():
    """Forget which questions the caller has been served"""
    user_id, username = current_identity()
    user = get_or_create_user(username, user_id)
    db.session.commit()
    reset_progress(user)
    return jsonify({"success": True}), 200
