import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quiztime.errors import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from quiztime.models import db, User, UserStats, LeaderboardEntry
from quiztime.services.locks import get_locks, user_key, LEADERBOARD_KEY
from quiztime.services.progress import get_or_create_user, progress_key

logger = logging.getLogger(__name__)


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_score(username):
    user = User.query.filter_by(username=username).first()
    return (user.score or 0) if user else 0


def set_score(username, score):
    """Store the last reported score for ``username``, creating the user if needed."""
    with get_locks().hold(progress_key(username)):
        try:
            user = get_or_create_user(username)
            user.score = score
            db.session.commit()
            logger.info(f"Saved score {score} for {username}")
            return user
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error saving score for {username}: {e}")
            raise StorageUnavailableError("Could not save score")


def rename_user(user_id, new_username):
    """
    Change a user's name everywhere it is stored.

    The stats record and the leaderboard entry carry a copy of the name, so
    they are updated in the same commit. Progress locks for both names are
    taken in sorted order; the full order is user, progress, leaderboard.

    Raises:
        ValidationError: the new name is empty
        ConflictError: another user already has the name
        NotFoundError: no user with ``user_id``
    """
    if not isinstance(new_username, str) or not new_username.strip():
        raise ValidationError("username must be a non-empty string")
    new_username = new_username.strip()

    locks = get_locks()
    with locks.hold(user_key(user_id)):
        user = get_user(user_id)
        old_username = user.username
        if new_username == old_username:
            return user

        first, second = sorted([progress_key(old_username), progress_key(new_username)])
        with locks.hold(first), locks.hold(second), locks.hold(LEADERBOARD_KEY):
            if User.query.filter_by(username=new_username).first():
                raise ConflictError("Username already taken")
            try:
                user.username = new_username
                UserStats.query.filter_by(user_id=user_id).update(
                    {UserStats.username: new_username})
                LeaderboardEntry.query.filter_by(user_id=user_id).update(
                    {LeaderboardEntry.player_name: new_username})
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                raise ConflictError("Username already taken")
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error renaming {old_username}: {e}")
                raise StorageUnavailableError("Could not update profile")

    logger.info(f"Renamed user {user_id} from {old_username} to {new_username}")
    return user
