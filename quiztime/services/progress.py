import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quiztime.errors import StorageUnavailableError, ValidationError
from quiztime.models import db, User, LEVELS
from quiztime.services.locks import get_locks
from quiztime.services.question_store import primary_store, secondary_store

logger = logging.getLogger(__name__)

CATALOG_KEY = 'catalog'
MAX_BATCH = 100


def progress_key(username):
    return f"progress:{username}"


def get_or_create_user(username, user_id=None):
    """Find a user by id or username, creating a credential-less one if needed."""
    user = None
    if user_id:
        user = db.session.get(User, user_id, populate_existing=True)
    if user is None:
        user = User.query.filter_by(username=username).populate_existing().first()
    if user is None:
        user = User(username=username, user_id=user_id)
        db.session.add(user)
        db.session.flush()
        logger.info(f"Created user record for {username}")
    return user


def next_batch(username, level, count, user_id=None):
    """
    Return up to ``count`` questions of ``level`` the user has never been served
    and record them as served before returning.

    When the database has nothing left to offer (for instance because it was
    never seeded) the JSON catalogue is filtered by the same rule and whatever
    it yields is copied into the database.
    """
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    if level not in LEVELS:
        raise ValidationError("Invalid level")
    count = _batch_size(count)
    if count < 1 or count > MAX_BATCH:
        raise ValidationError(f"count must be between 1 and {MAX_BATCH}")

    locks = get_locks()
    with locks.hold(progress_key(username)):
        try:
            return _serve_batch(locks, username, level, count, user_id)
        except IntegrityError:
            # Another process backfilled the same ids first; they are in the
            # database now, so a second pass reads them from there.
            db.session.rollback()
            logger.info("Backfill raced with another writer, retrying batch")
            try:
                return _serve_batch(locks, username, level, count, user_id)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error serving questions to {username}: {e}")
                raise StorageUnavailableError("Question store unavailable")
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error serving questions to {username}: {e}")
            raise StorageUnavailableError("Question store unavailable")
        except StorageUnavailableError:
            db.session.rollback()
            raise


def _batch_size(count):
    """Integer batch size; digit strings are accepted, bools and fractions are not."""
    if isinstance(count, bool):
        raise ValidationError("count must be an integer")
    if isinstance(count, int):
        return count
    if isinstance(count, str) and count.strip().isdigit():
        return int(count)
    raise ValidationError("count must be an integer")


def _serve_batch(locks, username, level, count, user_id):
    user = get_or_create_user(username, user_id)
    served = set(user.answered_question_ids or [])

    questions = primary_store().query_excluding(level, served, count)
    if not questions:
        with locks.hold(CATALOG_KEY):
            questions = secondary_store().query_excluding(level, served, count)
            if questions:
                logger.info(
                    f"Primary store had no unseen {level} questions for {username}, "
                    f"using {len(questions)} from the JSON catalogue")
                primary_store().put_many(questions)
            user.mark_served(q['id'] for q in questions)
            db.session.commit()
        return questions

    user.mark_served(q['id'] for q in questions)
    db.session.commit()
    return questions


def record_served(user, question_ids):
    """Append ids served outside ``next_batch`` (full game sessions)."""
    with get_locks().hold(progress_key(user.username)):
        try:
            db.session.refresh(user)
            user.mark_served(question_ids)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error recording served questions for {user.username}: {e}")
            raise StorageUnavailableError("Could not record served questions")


def reset_progress(user):
    with get_locks().hold(progress_key(user.username)):
        try:
            db.session.refresh(user)
            user.answered_question_ids = []
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error resetting progress for {user.username}: {e}")
            raise StorageUnavailableError("Could not reset question history")
