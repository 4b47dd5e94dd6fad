from collections import namedtuple
from datetime import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError

from quiztime.errors import StorageUnavailableError
from quiztime.models import db, UserStats
from quiztime.services.locks import get_locks, user_key

logger = logging.getLogger(__name__)

CompletionDelta = namedtuple(
    'CompletionDelta',
    ['questions_answered', 'correct_answers', 'prize_won', 'completed', 'completion_time'],
    defaults=(False, 0))


def compute_accuracy(correct, answered):
    """Percentage of correct answers, rounded half up, 0 when nothing was answered."""
    if not answered:
        return 0
    return (200 * correct + answered) // (2 * answered)


def apply_completion(stats, delta, now=None):
    """Fold one completion event into a stats record in place."""
    stats.games_played = (stats.games_played or 0) + 1
    if delta.completed:
        stats.games_completed = (stats.games_completed or 0) + 1
    stats.total_prize = (stats.total_prize or 0) + delta.prize_won
    stats.questions_answered = (stats.questions_answered or 0) + delta.questions_answered
    stats.correct_answers = (stats.correct_answers or 0) + delta.correct_answers
    stats.accuracy = compute_accuracy(stats.correct_answers, stats.questions_answered)

    stats.total_completion_time = (stats.total_completion_time or 0) + (delta.completion_time or 0)
    stats.average_completion_time = round(stats.total_completion_time / stats.games_played, 1)
    stats.last_played = now or datetime.utcnow()
    return stats


def empty_stats(user_id, username):
    return UserStats(user_id=user_id,
                     username=username,
                     games_played=0,
                     games_completed=0,
                     total_prize=0,
                     questions_answered=0,
                     correct_answers=0,
                     accuracy=0,
                     total_completion_time=0,
                     average_completion_time=0.0)


def record_completion(user_id, username, delta, commit=True):
    """
    Merge a completion event into the user's running totals.

    The read and the write happen under the user's lock, and the row is read
    with ``SELECT ... FOR UPDATE`` where the database supports it, so two
    completions for the same user never overwrite each other.

    Args:
        user_id (str): User ID
        username (str): stored alongside the totals for lookups by name
        delta (CompletionDelta): the finished game's counts
        commit (bool): False when the caller commits as part of a wider write

    Returns:
        UserStats: the updated record
    """
    with get_locks().hold(user_key(user_id)):
        try:
            stats = db.session.get(UserStats,
                                   user_id,
                                   with_for_update=True,
                                   populate_existing=True)
            if stats is None:
                stats = empty_stats(user_id, username)
                db.session.add(stats)
                logger.info(f"Creating stats for user {user_id}")
            elif username and stats.username != username:
                stats.username = username

            apply_completion(stats, delta)

            if commit:
                db.session.commit()
            logger.info(f"User stats updated for user {user_id}")
            return stats
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error updating user stats: {e}")
            raise StorageUnavailableError("Could not save game statistics")


def get_stats_by_username(username):
    return UserStats.query.filter_by(username=username).first()


def default_stats(username):
    return {
        'userId': None,
        'username': username,
        'gamesPlayed': 0,
        'gamesCompleted': 0,
        'totalPrize': 0,
        'questionsAnswered': 0,
        'correctAnswers': 0,
        'accuracy': 0,
        'averageCompletionTime': 0,
        'lastPlayed': None,
    }
