from datetime import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError

from quiztime.errors import StorageUnavailableError
from quiztime.models import db
from quiztime.services.leaderboard import submit
from quiztime.services.locks import get_locks, user_key, LEADERBOARD_KEY
from quiztime.services.stats import record_completion

logger = logging.getLogger(__name__)


def complete_game(user_id, username, delta, total_questions):
    """
    Record a finished game: fold it into the user's stats and, for a positive
    prize, submit it to the leaderboard. Both writes commit together or not
    at all.

    Locks are always taken user first, leaderboard second.

    Returns:
        tuple: (UserStats, leaderboard rank or None)
    """
    locks = get_locks()
    with locks.hold(user_key(user_id)):
        with locks.hold(LEADERBOARD_KEY):
            try:
                stats = record_completion(user_id, username, delta, commit=False)
                rank = None
                if delta.prize_won > 0:
                    rank = submit({
                        'user_id': user_id,
                        'player_name': username,
                        'prize_won': delta.prize_won,
                        'questions_answered': delta.questions_answered,
                        'total_questions': total_questions,
                        'completion_date': datetime.utcnow(),
                        'completion_time': delta.completion_time,
                    }, commit=False)
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error recording game completion for {user_id}: {e}")
                raise StorageUnavailableError("Could not record game completion")
            except Exception:
                db.session.rollback()
                raise

    logger.info(f"Recorded completion for {username}: prize {delta.prize_won}, rank {rank}")
    return stats, rank
